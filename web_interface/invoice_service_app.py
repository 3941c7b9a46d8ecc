# -*- coding: utf-8 -*-
"""
================================================================================
Invoice Service Web Application
================================================================================
Purpose:
----------------
A small Flask API used by the finance dashboard to create invoices, change
their status and manually re-push an invoice to EMpost.

Every request opens its own database connection. EMpost failures never change
the HTTP status of a response: the invoice operation succeeded, and the carrier
outcome is reported in the body (`empost_status`) and in the logs.
----------------
"""

# =====================================================================================
# --- Imports and Setup ---
# =====================================================================================
from flask import Flask, request, jsonify, g
import os
import sys

# --- Project Path Setup ---
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database.db_utils import get_db_connection
from database.invoice_store import InvoiceStore
from invoicing import workflow
from shipping.empost.sync import sync_invoice

app = Flask(__name__)


def get_store():
    """One InvoiceStore per request, closed in `close_connection`."""
    if 'store' not in g:
        conn = get_db_connection()
        if conn is None:
            return None
        g.store = InvoiceStore(conn)
    return g.store


@app.teardown_appcontext
def close_connection(exception):
    store = g.pop('store', None)
    if store is not None:
        store.conn.close()


def _sync_payload(result):
    return {
        'empost_status': result.status,
        'empost_uhawb': result.uhawb,
        'invoice_id': result.invoice_id,
    }


# =====================================================================================
# --- JSON API Endpoints ---
# =====================================================================================

@app.route('/api/invoices', methods=['POST'])
def create_invoice():
    """
    Creates an invoice, allocating its invoice number and AWB, and publishes it to EMpost.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "A JSON object body is required"}), 400
    store = get_store()
    if store is None:
        return jsonify({"error": "Database unavailable"}), 503
    try:
        invoice = workflow.create_invoice(store, data)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(invoice), 201


@app.route('/api/invoices/<int:invoice_id>', methods=['PUT'])
def update_invoice(invoice_id):
    """
    Edits an invoice's amounts, receiver or dates and re-syncs it with EMpost.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "A JSON object body is required"}), 400
    store = get_store()
    if store is None:
        return jsonify({"error": "Database unavailable"}), 503
    try:
        result = workflow.update_invoice(store, invoice_id, data)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if result is None:
        return jsonify({"error": f"Invoice {invoice_id} not found"}), 404
    return jsonify(_sync_payload(result)), 200


@app.route('/api/invoices/<int:invoice_id>/status', methods=['PUT'])
def update_invoice_status(invoice_id):
    """
    Updates an invoice's status and re-syncs it with EMpost.
    """
    data = request.get_json(silent=True) or {}
    status = data.get('status')
    if not status:
        return jsonify({"error": "'status' is required"}), 400
    store = get_store()
    if store is None:
        return jsonify({"error": "Database unavailable"}), 503
    try:
        result = workflow.update_invoice_status(store, invoice_id, status)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if result is None:
        return jsonify({"error": f"Invoice {invoice_id} not found"}), 404
    body = _sync_payload(result)
    body['status'] = status
    return jsonify(body), 200


@app.route('/api/invoices/<int:invoice_id>/empost-sync', methods=['POST'])
def resync_invoice(invoice_id):
    """
    Manually re-pushes an invoice to EMpost.
    """
    store = get_store()
    if store is None:
        return jsonify({"error": "Database unavailable"}), 503
    result = sync_invoice(store, invoice_id=invoice_id, reason='Manual re-sync')
    if result.status == 'skipped':
        return jsonify({"error": f"Invoice {invoice_id} not found"}), 404
    return jsonify(_sync_payload(result)), 200


# =====================================================================================
# --- Direct Execution (for development) ---
# =====================================================================================
if __name__ == '__main__':
    # For production, a proper WSGI server like Gunicorn should be used instead.
    app.run(debug=True, host='0.0.0.0', port=5003)
