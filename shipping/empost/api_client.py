# -*- coding: utf-8 -*-
"""
================================================================================
EMpost API Client
================================================================================
Purpose:
----------------
Creates/updates shipments and issues invoices with EMpost.

Each call gets a bearer token from the token manager, builds the payload with
`shipping.empost.payloads` and POSTs it through `execute_with_backoff`.
HTTP failures are translated into the integration error types so the retry
executor knows what to do with them:

- timeouts, connection errors, 5xx -> `TransientNetworkError` (retried)
- 401                              -> `AuthenticationError` (token dropped, not retried)
- other 4xx                        -> `PermanentRequestError` (not retried)

Both endpoints are upserts keyed by the invoice's tracking number, so calling
them again for the same invoice is safe.
----------------
"""
import json
import time
import logging

import requests

from common.errors import AuthenticationError, PermanentRequestError, TransientNetworkError
from common.utils import get_empost_config
from shipping.empost.auth import CLIENT_USER_AGENT, REQUEST_TIMEOUT_SECONDS, get_default_token_manager
from shipping.empost.payloads import map_invoice_to_empost_invoice, map_invoice_to_shipment
from shipping.empost.retry import DEFAULT_BASE_DELAY_MS, DEFAULT_MAX_RETRIES, execute_with_backoff

logger = logging.getLogger(__name__)

CREATE_SHIPMENT_PATH = '/api/v1/shipment/create'
ISSUE_INVOICE_PATH = '/api/v1/shipment/issueInvoice'


class EMpostAPIClient:

    def __init__(self, token_manager=None, base_url=None, session=None, max_retries=DEFAULT_MAX_RETRIES,
                 base_delay_ms=DEFAULT_BASE_DELAY_MS, sleep=time.sleep, api_call_logger=None):
        self.token_manager = token_manager or get_default_token_manager()
        self.base_url = (base_url or get_empost_config()['base_url']).rstrip('/')
        self.session = session or requests.Session()
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.sleep = sleep
        self.api_call_logger = api_call_logger

    def _record(self, endpoint, related_id, payload, response_body, status_code, is_success):
        if self.api_call_logger is None:
            return
        try:
            self.api_call_logger(endpoint, related_id, payload, response_body, status_code, is_success)
        except Exception:
            logger.exception("API call logger failed for %s", endpoint)

    def _post_once(self, path, payload, related_id):
        headers = {
            'Content-Type': 'application/json',
            'User-Agent': CLIENT_USER_AGENT,
        }
        headers.update(self.token_manager.get_auth_headers())
        url = f"{self.base_url}{path}"

        try:
            response = self.session.post(url, json=payload, headers=headers, timeout=REQUEST_TIMEOUT_SECONDS)
        except requests.exceptions.RequestException as e:
            self._record(path, related_id, payload, str(e), None, False)
            raise TransientNetworkError(f"Network error calling EMpost {path}: {e}") from e

        status_code = response.status_code
        response_text = response.text
        is_success = 200 <= status_code < 300
        self._record(path, related_id, payload, response_text, status_code, is_success)

        if status_code == 401:
            self.token_manager.invalidate()
            raise AuthenticationError(
                f"EMpost rejected the access token for {path}",
                status_code=status_code, response_body=response_text
            )
        if 400 <= status_code < 500:
            raise PermanentRequestError(
                f"EMpost rejected {path} with HTTP {status_code}: {response_text}",
                status_code=status_code, response_body=response_text
            )
        if not is_success:
            raise TransientNetworkError(
                f"EMpost returned HTTP {status_code} for {path}",
                status_code=status_code, response_body=response_text
            )

        try:
            return response.json()
        except ValueError:
            logger.warning("EMpost returned a non-JSON body for %s: %r", path, response_text[:200])
            return {}

    def _post(self, path, payload, related_id):
        return execute_with_backoff(
            lambda: self._post_once(path, payload, related_id),
            max_retries=self.max_retries,
            base_delay_ms=self.base_delay_ms,
            sleep=self.sleep,
            description=f"EMpost {path}",
        )

    def create_shipment(self, invoice):
        """
        Creates or updates the EMpost shipment for an invoice.

        Returns:
            str or None: The UHAWB EMpost assigned, or None if the response had none.
        """
        logger.info("Creating shipment in EMpost for invoice %s", invoice.invoice_id)
        payload = map_invoice_to_shipment(invoice)
        result = self._post(CREATE_SHIPMENT_PATH, payload, payload['trackingNumber'])
        data = result.get('data') if isinstance(result, dict) else None
        uhawb = data.get('uhawb') if isinstance(data, dict) else None
        logger.info("Shipment created in EMpost: %s", uhawb)
        return uhawb or None

    def issue_invoice(self, invoice):
        """Issues the invoice in EMpost and returns the acknowledgement body."""
        logger.info("Issuing invoice in EMpost for invoice %s", invoice.invoice_id)
        payload = map_invoice_to_empost_invoice(invoice)
        result = self._post(ISSUE_INVOICE_PATH, payload, payload['trackingNumber'])
        logger.info("Invoice issued in EMpost: %s", json.dumps(result, default=str)[:200])
        return result
