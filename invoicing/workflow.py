# -*- coding: utf-8 -*-
"""
================================================================================
Invoice Workflow
================================================================================
Purpose:
----------------
Creates invoices and applies edits and status changes, keeping EMpost in step.

Key Steps (creation):
1.  **Allocate Identifiers**: An `INV-` number from the durable counter and,
    unless one was supplied, an AWB number with the configured prefix. Both
    are checked against the primary and legacy columns.
2.  **Persist**: The invoice and its line items are inserted in one transaction.
3.  **Publish to EMpost**: The shipment is created, the UHAWB stored and the
    invoice issued. This step is best-effort; the invoice exists whether or
    not EMpost answered.

Status changes and other edits are persisted first and then trigger
`sync_invoice`.
----------------
"""
import logging
from decimal import Decimal, InvalidOperation

from common.utils import get_awb_prefix
from database.models import LineItem
from invoicing.id_generators import allocate_unique_invoice_number, allocate_unique_tracking_identifier
from shipping.empost.payloads import DELIVERY_STATUS_MAP
from shipping.empost.sync import publish_invoice, sync_invoice

logger = logging.getLogger(__name__)

INVOICE_STATUSES = frozenset(DELIVERY_STATUS_MAP)
PASSTHROUGH_FIELDS = (
    'delivery_type', 'receiver_name', 'receiver_address', 'receiver_phone', 'issue_date', 'due_date',
)
MONEY_FIELDS = ('amount', 'tax_amount', 'total_amount')
DECIMAL_FIELDS = MONEY_FIELDS + ('weight_kg', 'volume_cbm')
EDITABLE_FIELDS = ('status',) + DECIMAL_FIELDS + PASSTHROUGH_FIELDS


def _to_decimal(value, field_name, required=False):
    if value is None or value == '':
        if required:
            raise ValueError(f"'{field_name}' is required")
        return None
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"'{field_name}' must be a number")
    if not number.is_finite():
        raise ValueError(f"'{field_name}' must be a number")
    return number


def _line_items_from(data):
    items = []
    for index, raw in enumerate(data.get('line_items') or []):
        if not isinstance(raw, dict):
            raise ValueError(f"line_items[{index}] must be an object")
        items.append(LineItem(
            description=raw.get('description'),
            quantity=int(raw.get('quantity') or 1),
            unit_price=_to_decimal(raw.get('unit_price'), f"line_items[{index}].unit_price"),
            total=_to_decimal(raw.get('total'), f"line_items[{index}].total"),
        ))
    return items


def create_invoice(store, data, api_client=None):
    """
    Creates an invoice and publishes it to EMpost.

    Args:
        store (InvoiceStore): Persistence and identifier checks.
        data (dict): Invoice fields. `client_id` and `amount` are required.
        api_client (EMpostAPIClient, optional): Client used for publishing.

    Returns:
        dict: `id`, `invoice_id`, `awb_number` and the EMpost outcome.

    Raises:
        ValueError: Invalid input or a caller-supplied invoice_id already in use.
    """
    if not data.get('client_id'):
        raise ValueError("'client_id' is required")
    amount = _to_decimal(data.get('amount'), 'amount', required=True)
    tax_amount = _to_decimal(data.get('tax_amount'), 'tax_amount') or Decimal('0')
    total_amount = _to_decimal(data.get('total_amount'), 'total_amount')
    line_items = _line_items_from(data)

    status = data.get('status') or 'UNPAID'
    if status not in INVOICE_STATUSES:
        raise ValueError(f"Unknown invoice status '{status}'")

    invoice_id = data.get('invoice_id')
    if invoice_id:
        if store.invoice_number_exists(invoice_id):
            raise ValueError(f"Invoice with ID {invoice_id} already exists")
    else:
        invoice_id = allocate_unique_invoice_number(store.invoice_number_exists, store.next_sequence_value)

    awb_number = data.get('awb_number')
    if not awb_number:
        awb_number = allocate_unique_tracking_identifier(store.tracking_number_exists, prefix=get_awb_prefix())

    row = {
        'invoice_id': invoice_id,
        'awb_number': awb_number,
        'client_id': data['client_id'],
        'request_id': data.get('request_id'),
        'status': status,
        'amount': amount,
        'tax_amount': tax_amount,
        'total_amount': total_amount if total_amount is not None else amount + tax_amount,
        'weight_kg': _to_decimal(data.get('weight_kg'), 'weight_kg'),
        'volume_cbm': _to_decimal(data.get('volume_cbm'), 'volume_cbm'),
    }
    for field_name in PASSTHROUGH_FIELDS:
        row[field_name] = data.get(field_name)

    invoice_pk = store.create_invoice(row, line_items)
    logger.info("Invoice %s saved with AWB %s.", invoice_id, awb_number)

    result = publish_invoice(store, invoice_pk, api_client)
    if result.status == 'failed':
        logger.warning("EMpost integration failed for invoice %s (invoice creation will continue).", invoice_id)

    return {
        'id': invoice_pk,
        'invoice_id': invoice_id,
        'awb_number': awb_number,
        'empost_uhawb': result.uhawb,
        'empost_status': result.status,
    }


def update_invoice(store, invoice_pk, changes, api_client=None):
    """
    Applies an edit to an existing invoice and re-syncs it with EMpost.

    Only EDITABLE_FIELDS may be changed; identifiers and the client are fixed
    once an invoice exists.

    Returns:
        SyncResult or None: None when the invoice does not exist.

    Raises:
        ValueError: Unknown or invalid fields.
    """
    unknown = sorted(set(changes) - set(EDITABLE_FIELDS))
    if unknown:
        raise ValueError(f"Fields cannot be edited: {', '.join(unknown)}")
    if not changes:
        raise ValueError("No fields to update")

    fields = {}
    for field_name, value in changes.items():
        if field_name in DECIMAL_FIELDS:
            fields[field_name] = _to_decimal(value, field_name, required=field_name in MONEY_FIELDS)
        else:
            fields[field_name] = value
    if 'status' in fields and fields['status'] not in INVOICE_STATUSES:
        raise ValueError(f"Unknown invoice status '{fields['status']}'")

    if not store.update_invoice_fields(invoice_pk, fields):
        return None
    logger.info("Invoice %s updated (%s).", invoice_pk, ', '.join(sorted(fields)))
    return sync_invoice(store, api_client, invoice_id=invoice_pk, reason='Invoice update')


def update_invoice_status(store, invoice_pk, status, api_client=None):
    """
    Persists a status change and re-syncs the invoice with EMpost.

    Returns:
        SyncResult or None: None when the invoice does not exist.

    Raises:
        ValueError: Unknown status.
    """
    if status not in INVOICE_STATUSES:
        raise ValueError(f"Unknown invoice status '{status}'")
    if not store.update_invoice_status(invoice_pk, status):
        return None
    logger.info("Invoice %s status updated to '%s'.", invoice_pk, status)
    return sync_invoice(store, api_client, invoice_id=invoice_pk, reason=f"Invoice status update ({status})")
