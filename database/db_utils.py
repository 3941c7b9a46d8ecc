import os
import json
import logging
import argparse

import psycopg2

logger = logging.getLogger(__name__)


def get_db_connection():
    """
    Establishes and returns a connection to the PostgreSQL database.
    """
    try:
        conn = psycopg2.connect(
            dbname=os.getenv("POSTGRES_DB", "shipping_invoices"),
            user=os.getenv("POSTGRES_USER", "user"),
            password=os.getenv("POSTGRES_PASSWORD", "password"),
            host=os.getenv("POSTGRES_HOST", "localhost"),
            port=os.getenv("POSTGRES_PORT", "5432")
        )
        return conn
    except psycopg2.OperationalError as e:
        logger.error("Could not connect to the database. Please ensure it is running. Details: %s", e)
        return None


def initialize_database():
    """
    Initializes the database by executing the DDL statements in 'schema.sql'.
    """
    conn = None
    schema_path = None
    try:
        script_dir = os.path.dirname(os.path.abspath(__file__))
        schema_path = os.path.join(script_dir, 'schema.sql')
        logger.info("Reading database schema from %s...", schema_path)
        with open(schema_path, 'r') as f:
            schema_sql = f.read()
        conn = get_db_connection()
        if conn is None:
            return
        with conn.cursor() as cur:
            cur.execute(schema_sql)
            conn.commit()
            logger.info("Database initialized successfully.")
    except FileNotFoundError:
        logger.error("schema.sql not found at %s", schema_path)
    except Exception as e:
        logger.error("An error occurred during database initialization: %s", e)
        if conn:
            conn.rollback()
    finally:
        if conn:
            conn.close()


def log_process_failure(conn, related_id, process_name, details, payload=None):
    """
    Logs an unrecoverable error to the 'process_failures' table.
    Never raises: a failure here must not break the caller's workflow.
    """
    try:
        with conn.cursor() as cur:
            if isinstance(payload, (dict, list)):
                payload = json.dumps(payload, default=str)
            cur.execute(
                "INSERT INTO process_failures (related_id, process_name, details, payload) VALUES (%s, %s, %s, %s);",
                (related_id, process_name, details, payload)
            )
        conn.commit()
        logger.warning("Logged process failure for '%s' in process '%s'.", related_id, process_name)
    except Exception as e:
        logger.error("Could not log process failure. Reason: %s", e)
        try:
            conn.rollback()
        except Exception:
            logger.debug("Rollback after failed process_failures insert also failed.", exc_info=True)


def log_api_call(conn, service, endpoint, related_id, request_payload, response_body, status_code, is_success):
    """
    Logs the details of a third-party API call to the generic 'api_calls' table.
    Never raises.
    """
    try:
        with conn.cursor() as cur:
            if isinstance(request_payload, (dict, list)):
                request_payload = json.dumps(request_payload, default=str)
            cur.execute(
                "INSERT INTO api_calls (service, endpoint, related_id, request_payload, response_body, status_code, is_success) VALUES (%s, %s, %s, %s, %s, %s, %s);",
                (service, endpoint, related_id, request_payload, response_body, status_code, is_success)
            )
        conn.commit()
    except Exception as e:
        logger.error("Could not log API call. Reason: %s", e)
        try:
            conn.rollback()
        except Exception:
            logger.debug("Rollback after failed api_calls insert also failed.", exc_info=True)


def make_api_call_logger(conn, service='EMpost'):
    """
    Returns a callable suitable for `EMpostAPIClient(api_call_logger=...)` that
    writes every carrier call to the 'api_calls' table.
    """
    def _log(endpoint, related_id, request_payload, response_body, status_code, is_success):
        log_api_call(conn, service, endpoint, related_id, request_payload, response_body, status_code, is_success)
    return _log


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    parser = argparse.ArgumentParser(description="Database utility script.")
    parser.add_argument('--init', action='store_true', help='Initialize the database schema without prompting for confirmation.')
    args = parser.parse_args()

    if args.init:
        initialize_database()
    else:
        print("WARNING: This script is destructive and will drop all existing tables.")
        confirm = input("Are you sure you want to drop all existing tables and re-initialize the database? (yes/no): ")
        if confirm.lower() == 'yes':
            initialize_database()
        else:
            print("INFO: Database initialization cancelled.")
