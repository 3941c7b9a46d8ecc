# -*- coding: utf-8 -*-
"""
================================================================================
EMpost Authentication
================================================================================
Purpose:
----------------
Obtains and caches the bearer token every EMpost call needs.

The token is requested from `POST /api/v1/auth/authenticate` with our client id
and secret and kept in memory only. It is considered valid until 60 seconds
before the expiry EMpost reports, so a token never runs out in the middle of a
call. After that the next `get_token()` authenticates again.

Authentication failures are never retried: a rejected secret will not start
working on the second attempt, and hammering the endpoint can lock the account.

Most code uses the process-wide instance from `get_default_token_manager()`.
Tests and multi-tenant callers create their own `EMpostTokenManager`.
----------------
"""
import math
import time
import logging

import requests

from common.errors import AuthenticationError, MissingCredentialsError
from common.utils import get_empost_config

logger = logging.getLogger(__name__)

AUTH_PATH = '/api/v1/auth/authenticate'
CLIENT_USER_AGENT = 'KNEX-Finance-System/1.0 (Platform Integration)'
REQUEST_TIMEOUT_SECONDS = 30
DEFAULT_TOKEN_TTL_SECONDS = 3600
TOKEN_SAFETY_MARGIN_SECONDS = 60


class EMpostTokenManager:

    def __init__(self, client_id, client_secret, base_url, session=None, clock=time.time,
                 safety_margin=TOKEN_SAFETY_MARGIN_SECONDS, timeout=REQUEST_TIMEOUT_SECONDS):
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.clock = clock
        self.safety_margin = safety_margin
        self.timeout = timeout
        self._access_token = None
        self._expires_at = None

    @property
    def expires_at(self):
        return self._expires_at

    def has_valid_token(self):
        return bool(self._access_token) and self._expires_at is not None and self.clock() < self._expires_at

    def invalidate(self):
        self._access_token = None
        self._expires_at = None

    def get_token(self):
        """
        Returns a token that is valid for at least the safety margin.

        Raises:
            MissingCredentialsError: client id or secret is not configured.
            AuthenticationError: the exchange failed or returned no token.
        """
        if self.has_valid_token():
            return self._access_token

        if not self.client_id or not self.client_secret:
            raise MissingCredentialsError(
                "EMpost credentials not configured. Please set EMPOST_CLIENT_ID and "
                "EMPOST_CLIENT_SECRET in environment variables."
            )

        logger.info("Authenticating with EMpost API...")
        try:
            response = self.session.post(
                f"{self.base_url}{AUTH_PATH}",
                json={'clientId': self.client_id, 'clientSecret': self.client_secret},
                headers={'Content-Type': 'application/json', 'User-Agent': CLIENT_USER_AGENT},
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except requests.exceptions.RequestException as e:
            status_code = e.response.status_code if e.response is not None else None
            response_text = e.response.text if e.response is not None else str(e)
            logger.error("EMpost authentication failed: %s", response_text)
            raise AuthenticationError(
                f"EMpost authentication failed: {response_text}",
                status_code=status_code, response_body=response_text
            ) from e
        except ValueError as e:
            raise AuthenticationError("Invalid authentication response from EMpost API") from e

        access_token = body.get('accessToken') if isinstance(body, dict) else None
        if not access_token:
            raise AuthenticationError("Invalid authentication response from EMpost API")

        try:
            ttl = float(body.get('expiresIn') or DEFAULT_TOKEN_TTL_SECONDS)
        except (TypeError, ValueError) as e:
            raise AuthenticationError("Invalid authentication response from EMpost API: bad expiresIn") from e
        if not math.isfinite(ttl):
            raise AuthenticationError("Invalid authentication response from EMpost API: bad expiresIn")

        self._access_token = access_token
        self._expires_at = self.clock() + ttl - self.safety_margin
        logger.info("EMpost authentication successful.")
        return self._access_token

    def get_auth_headers(self):
        return {'Authorization': f'Bearer {self.get_token()}'}


_default_manager = None


def get_default_token_manager():
    """The process-wide token manager, built from configuration on first use."""
    global _default_manager
    if _default_manager is None:
        config = get_empost_config()
        _default_manager = EMpostTokenManager(config['client_id'], config['client_secret'], config['base_url'])
    return _default_manager


def reset_default_token_manager():
    global _default_manager
    _default_manager = None
