# -*- coding: utf-8 -*-
"""
================================================================================
EMpost Synchronization
================================================================================
Purpose:
----------------
Pushes the current state of an invoice to EMpost whenever something about it
changes (creation, status updates, remittance).

This is the boundary between our invoice workflows and the carrier: whatever
goes wrong below it (no credentials, EMpost down, a database hiccup while
loading the invoice) is logged and written to `process_failures`, and the
caller always gets a `SyncResult` back. Nothing is re-raised, so an invoice
update never fails because EMpost was unreachable.

Key Functions:
- `sync_invoice(...)`: Resolve the invoice by id or by shipment request, upsert
  the EMpost shipment and store the returned UHAWB if it changed.
- `publish_invoice(...)`: Used right after an invoice is created. Upserts the
  shipment, stores the UHAWB, then issues the invoice in EMpost.
----------------
"""
import logging
from collections import namedtuple

from common.errors import ConfigurationError
from database.db_utils import log_process_failure, make_api_call_logger
from shipping.empost.api_client import EMpostAPIClient

logger = logging.getLogger(__name__)

SYNC_PROCESS_NAME = 'EMpostSync'
PUBLISH_PROCESS_NAME = 'EMpostPublish'

# status is one of: 'synced', 'unchanged', 'skipped', 'failed'
SyncResult = namedtuple('SyncResult', ['status', 'invoice_id', 'uhawb', 'error'])


def _default_api_client(store):
    conn = getattr(store, 'conn', None)
    return EMpostAPIClient(api_call_logger=make_api_call_logger(conn) if conn is not None else None)


def _record_failure(store, related_id, process_name, error, payload=None):
    logger.error("[EMPOST SYNC] %s failed for %s: %s", process_name, related_id, error, exc_info=error)
    conn = getattr(store, 'conn', None)
    if conn is not None:
        log_process_failure(conn, related_id, process_name, f"{type(error).__name__}: {error}", payload)


def _store_uhawb(store, invoice, uhawb):
    """Persists a new non-empty UHAWB. Returns True when the stored value changed."""
    if not uhawb or uhawb == invoice.empost_uhawb:
        return False
    store.save_invoice_uhawb(invoice.id, uhawb)
    invoice.empost_uhawb = uhawb
    return True


def sync_invoice(store, api_client=None, invoice_id=None, request_id=None, reason=None):
    """
    Upserts the EMpost shipment for one invoice. Never raises once the
    arguments are valid.

    Args:
        store (InvoiceStore): Invoice lookups and the UHAWB update.
        api_client (EMpostAPIClient, optional): Defaults to a client using the
            process-wide token manager.
        invoice_id (int, optional): Primary key of the invoice to sync.
        request_id (int, optional): Shipment request whose newest invoice to sync.
        reason (str, optional): Why the sync was triggered, for the logs.

    Returns:
        SyncResult: The outcome, including the error when it failed.

    Raises:
        ConfigurationError: unless exactly one of `invoice_id` / `request_id` is given.
    """
    if (invoice_id is None) == (request_id is None):
        raise ConfigurationError("sync_invoice needs exactly one of invoice_id or request_id")

    target = f"invoice {invoice_id}" if invoice_id is not None else f"request {request_id}"
    invoice = None
    try:
        if invoice_id is not None:
            invoice = store.get_invoice(invoice_id)
        else:
            invoice = store.get_latest_invoice_for_request(request_id)

        if invoice is None:
            logger.info("[EMPOST SYNC] No invoice found for %s, skipping EMPOST update.", target)
            return SyncResult('skipped', None, None, None)

        context = f" ({reason})" if reason else ''
        logger.info("[EMPOST SYNC] Updating EMPOST shipment for invoice %s%s",
                    invoice.invoice_id or invoice.id, context)

        api_client = api_client or _default_api_client(store)
        uhawb = api_client.create_shipment(invoice)

        if _store_uhawb(store, invoice, uhawb):
            logger.info("[EMPOST SYNC] Updated invoice %s with latest UHAWB %s.", invoice.id, uhawb)
            return SyncResult('synced', invoice.id, uhawb, None)
        return SyncResult('unchanged', invoice.id, invoice.empost_uhawb, None)
    except Exception as e:
        related_id = invoice.invoice_id if invoice is not None and invoice.invoice_id else target
        _record_failure(store, related_id, SYNC_PROCESS_NAME, e, {'reason': reason})
        return SyncResult('failed', invoice.id if invoice is not None else None, None, e)


def publish_invoice(store, invoice_id, api_client=None):
    """
    Creates the EMpost shipment for a new invoice, stores the UHAWB and issues
    the invoice. Same never-raises contract as `sync_invoice`.
    """
    invoice = None
    try:
        invoice = store.get_invoice(invoice_id)
        if invoice is None:
            logger.info("[EMPOST SYNC] No invoice %s to publish, skipping.", invoice_id)
            return SyncResult('skipped', None, None, None)

        logger.info("Starting EMpost integration for invoice %s", invoice.invoice_id)
        api_client = api_client or _default_api_client(store)
        uhawb = api_client.create_shipment(invoice)
        changed = _store_uhawb(store, invoice, uhawb)
        api_client.issue_invoice(invoice)
        logger.info("EMpost integration completed for invoice %s", invoice.invoice_id)
        return SyncResult('synced' if changed else 'unchanged', invoice.id, invoice.empost_uhawb, None)
    except Exception as e:
        related_id = invoice.invoice_id if invoice is not None and invoice.invoice_id else f"invoice {invoice_id}"
        _record_failure(store, related_id, PUBLISH_PROCESS_NAME, e)
        return SyncResult('failed', invoice.id if invoice is not None else None, None, e)
