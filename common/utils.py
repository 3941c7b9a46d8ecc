# -*- coding: utf-8 -*-
"""
================================================================================
Common Utility Functions
================================================================================
Purpose:
----------------
This script provides common, reusable utility functions that are shared across
multiple modules in the project: reading configuration and secrets, and setting
up logging for the scheduled jobs and the web application.

Secrets are looked up in the process environment first. When a key is not set
there, the `secrets.txt` file in the project root is consulted, with each line
formatted as `KEY_NAME=SECRET_VALUE`.

Key Functions:
- `get_secret(key_name)`: The core lookup used by every other helper.
- `get_empost_config()`: Returns the EMpost base URL and client credentials.
  Missing credentials are reported later, at the first authentication attempt.
- `get_awb_prefix()`: The 3-letter prefix used for newly issued AWB numbers.
- `setup_logging(log_name)`: Dated log file plus stdout.
----------------
"""

# =====================================================================================
# --- Imports and Configuration ---
# =====================================================================================
import os
import sys
import logging
from datetime import datetime

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
SECRETS_FILE = os.path.join(PROJECT_ROOT, 'secrets.txt')
LOG_DIR = os.path.join(PROJECT_ROOT, 'logs')

DEFAULT_EMPOST_BASE_URL = 'https://api.epgl.ae'
DEFAULT_AWB_PREFIX = 'PHL'


# =====================================================================================
# --- Core Functions ---
# =====================================================================================

def get_secret(key_name, default=None):
    """
    Reads a configuration value, preferring the environment over `secrets.txt`.

    Args:
        key_name (str): The name of the key to retrieve (e.g., "EMPOST_CLIENT_ID").
        default: Value returned when the key is found in neither place.

    Returns:
        str or None: The value as a string if the key is found, otherwise `default`.
    """
    value = os.getenv(key_name)
    if value:
        return value
    try:
        with open(SECRETS_FILE, 'r') as f:
            for line in f:
                if line.startswith(key_name + '='):
                    secret_value = line.strip().split('=', 1)[1]
                    if secret_value:
                        return secret_value
    except FileNotFoundError:
        pass
    return default


def get_empost_config():
    """
    Collects the settings needed to talk to the EMpost API.

    Returns:
        dict: `base_url`, `client_id` and `client_secret`. The credentials may be
              None; the token manager raises a configuration error when it first
              tries to authenticate without them.
    """
    base_url = get_secret('EMPOST_API_BASE_URL', DEFAULT_EMPOST_BASE_URL)
    return {
        'base_url': base_url.rstrip('/'),
        'client_id': get_secret('EMPOST_CLIENT_ID'),
        'client_secret': get_secret('EMPOST_CLIENT_SECRET'),
    }


def get_awb_prefix():
    return get_secret('AWB_PREFIX', DEFAULT_AWB_PREFIX)


def setup_logging(log_name, level=logging.INFO):
    """Sets up a dated log file under `logs/` plus stdout for a job or service."""
    os.makedirs(LOG_DIR, exist_ok=True)
    log_filename = datetime.now().strftime(f"{log_name}_%Y-%m-%d.log")
    log_path = os.path.join(LOG_DIR, log_filename)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_path),
            logging.StreamHandler(sys.stdout)
        ]
    )
    return logging.getLogger()
