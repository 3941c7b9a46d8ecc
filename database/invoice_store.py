# -*- coding: utf-8 -*-
"""
================================================================================
Invoice Store
================================================================================
Purpose:
----------------
Data access for invoices, their clients and shipment requests, and the durable
counters used for invoice numbering. This is the collaborator the EMpost sync
and the identifier allocator call into.

Unlike the logging helpers in `db_utils`, nothing here swallows errors: a
failed lookup or existence check must reach the caller. The allocator relies
on this so it never hands out an identifier whose uniqueness check failed, and
the sync orchestrator records the failure itself.
----------------
"""
import logging

from psycopg2 import extras

from database.models import Client, Invoice, LineItem, ShipmentRequest

logger = logging.getLogger(__name__)

INVOICE_COLUMNS = (
    'invoice_id', 'invoice_number', 'awb_number', 'tracking_code', 'request_id', 'client_id',
    'status', 'amount', 'tax_amount', 'total_amount', 'delivery_type', 'weight_kg', 'volume_cbm',
    'receiver_name', 'receiver_address', 'receiver_phone', 'issue_date', 'due_date',
)


class InvoiceStore:

    def __init__(self, conn):
        self.conn = conn

    def _fetchone(self, query, params):
        with self.conn.cursor(cursor_factory=extras.DictCursor) as cur:
            cur.execute(query, params)
            row = cur.fetchone()
        return dict(row) if row else None

    def _fetchall(self, query, params):
        with self.conn.cursor(cursor_factory=extras.DictCursor) as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        return [dict(row) for row in rows]

    # --- Lookups ---

    def get_client(self, client_id):
        row = self._fetchone("SELECT * FROM clients WHERE id = %s;", (client_id,))
        return Client.from_row(row) if row else None

    def get_request(self, request_pk):
        row = self._fetchone("SELECT * FROM shipment_requests WHERE id = %s;", (request_pk,))
        return ShipmentRequest.from_row(row) if row else None

    def get_line_items(self, invoice_pk):
        rows = self._fetchall(
            "SELECT * FROM invoice_line_items WHERE invoice_id = %s ORDER BY id;", (invoice_pk,)
        )
        return [LineItem.from_row(row) for row in rows]

    def _load_invoice(self, row):
        """Attaches client, request and line items to an invoice row."""
        client = self.get_client(row['client_id'])
        if client is None:
            raise LookupError(f"Invoice {row['id']} references missing client {row['client_id']}")
        request = self.get_request(row['request_id']) if row.get('request_id') else None
        return Invoice.from_row(row, client, request, self.get_line_items(row['id']))

    def get_invoice(self, invoice_pk):
        row = self._fetchone("SELECT * FROM invoices WHERE id = %s;", (invoice_pk,))
        return self._load_invoice(row) if row else None

    def get_latest_invoice_for_request(self, request_pk):
        """The most recently created invoice linked to a shipment request."""
        row = self._fetchone(
            "SELECT * FROM invoices WHERE request_id = %s ORDER BY created_at DESC, id DESC LIMIT 1;",
            (request_pk,)
        )
        return self._load_invoice(row) if row else None

    def get_invoices_missing_uhawb(self, limit=100):
        rows = self._fetchall(
            """
            SELECT id FROM invoices
            WHERE empost_uhawb IS NULL OR empost_uhawb = '' OR empost_uhawb = 'N/A'
            ORDER BY created_at ASC
            LIMIT %s;
            """,
            (limit,)
        )
        return [row['id'] for row in rows]

    # --- Identifier checks ---

    def tracking_number_exists(self, value):
        """True when `value` is used as an AWB or legacy tracking code anywhere."""
        row = self._fetchone(
            """
            SELECT EXISTS (
                SELECT 1 FROM invoices WHERE awb_number = %s OR tracking_code = %s
                UNION ALL
                SELECT 1 FROM shipment_requests WHERE awb_number = %s OR tracking_code = %s
            ) AS found;
            """,
            (value, value, value, value)
        )
        return bool(row and row['found'])

    def invoice_number_exists(self, value):
        row = self._fetchone(
            "SELECT EXISTS (SELECT 1 FROM invoices WHERE invoice_id = %s OR invoice_number = %s) AS found;",
            (value, value)
        )
        return bool(row and row['found'])

    def next_sequence_value(self, name):
        """
        Atomically increments the named counter and returns the new value.
        The read-modify-write is a single statement, so concurrent callers
        never observe the same value.
        """
        with self.conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO counters (name, seq) VALUES (%s, 1)
                ON CONFLICT (name) DO UPDATE SET seq = counters.seq + 1
                RETURNING seq;
                """,
                (name,)
            )
            seq = cur.fetchone()[0]
        self.conn.commit()
        return seq

    # --- Writes ---

    def save_invoice_uhawb(self, invoice_pk, uhawb):
        """Partial update of the EMpost handle only. Empty values are rejected."""
        if not uhawb:
            raise ValueError("Refusing to clear the stored EMpost UHAWB")
        with self.conn.cursor() as cur:
            cur.execute(
                "UPDATE invoices SET empost_uhawb = %s, updated_at = NOW() WHERE id = %s;",
                (uhawb, invoice_pk)
            )
        self.conn.commit()
        logger.info("Stored UHAWB %s on invoice %s.", uhawb, invoice_pk)

    def update_invoice_status(self, invoice_pk, status):
        with self.conn.cursor() as cur:
            cur.execute(
                "UPDATE invoices SET status = %s, updated_at = NOW() WHERE id = %s;",
                (status, invoice_pk)
            )
            updated = cur.rowcount
        self.conn.commit()
        return updated > 0

    def update_invoice_fields(self, invoice_pk, fields):
        """
        Partial update of editable invoice columns. Keys outside INVOICE_COLUMNS
        are ignored. Returns False when the invoice does not exist.
        """
        columns = [c for c in INVOICE_COLUMNS if c in fields]
        if not columns:
            return self.get_invoice(invoice_pk) is not None
        assignments = ', '.join(f"{c} = %s" for c in columns)
        try:
            with self.conn.cursor() as cur:
                cur.execute(
                    f"UPDATE invoices SET {assignments}, updated_at = NOW() WHERE id = %s;",
                    tuple(fields[c] for c in columns) + (invoice_pk,)
                )
                updated = cur.rowcount
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return updated > 0

    def create_invoice(self, data, line_items=None):
        """Inserts an invoice (and its line items) and returns the new primary key."""
        columns = [c for c in INVOICE_COLUMNS if data.get(c) is not None]
        placeholders = ', '.join(['%s'] * len(columns))
        try:
            with self.conn.cursor() as cur:
                cur.execute(
                    f"INSERT INTO invoices ({', '.join(columns)}) VALUES ({placeholders}) RETURNING id;",
                    tuple(data[c] for c in columns)
                )
                invoice_pk = cur.fetchone()[0]
                for item in line_items or []:
                    cur.execute(
                        """
                        INSERT INTO invoice_line_items (invoice_id, description, quantity, unit_price, total)
                        VALUES (%s, %s, %s, %s, %s);
                        """,
                        (invoice_pk, item.description, item.quantity, item.unit_price, item.total)
                    )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        logger.info("Created invoice %s (%s).", invoice_pk, data.get('invoice_id'))
        return invoice_pk
