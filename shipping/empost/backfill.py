# -*- coding: utf-8 -*-
"""
================================================================================
EMpost Backfill Workflow
================================================================================
Purpose:
----------------
Catches up invoices that never received a UHAWB, typically because EMpost was
unreachable when they were created or updated. Each one is pushed again with
`sync_invoice`; since the EMpost endpoint is an upsert, re-sending an invoice
that did reach EMpost is harmless.

This script is intended to be run as a scheduled task.
----------------
"""
import sys
import logging
from collections import Counter

from common.utils import setup_logging
from database.db_utils import get_db_connection, make_api_call_logger
from database.invoice_store import InvoiceStore
from shipping.empost.api_client import EMpostAPIClient
from shipping.empost.sync import sync_invoice

logger = logging.getLogger(__name__)

BATCH_SIZE = 100


def backfill_missing_uhawbs(store, api_client, batch_size=BATCH_SIZE):
    """
    Re-syncs up to `batch_size` invoices without a UHAWB.

    Returns:
        Counter: Number of invoices per `SyncResult.status`.
    """
    invoice_ids = store.get_invoices_missing_uhawb(batch_size)
    logger.info("Found %d invoices without an EMpost UHAWB.", len(invoice_ids))

    outcomes = Counter()
    for invoice_id in invoice_ids:
        result = sync_invoice(store, api_client, invoice_id=invoice_id, reason='UHAWB backfill')
        outcomes[result.status] += 1
    logger.info("Backfill finished: %s", dict(outcomes))
    return outcomes


def main():
    logger_root = setup_logging('empost_backfill')
    logger_root.info("--- Starting EMpost Backfill Workflow ---")

    conn = get_db_connection()
    if not conn:
        logger_root.critical("Cannot proceed without a DB connection.")
        sys.exit(1)

    try:
        store = InvoiceStore(conn)
        api_client = EMpostAPIClient(api_call_logger=make_api_call_logger(conn))
        backfill_missing_uhawbs(store, api_client)
    finally:
        conn.close()
    logger_root.info("--- EMpost Backfill Workflow Finished ---")


if __name__ == '__main__':
    main()
