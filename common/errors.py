# -*- coding: utf-8 -*-
"""
================================================================================
EMpost Integration Errors
================================================================================
Purpose:
----------------
One place for every error the carrier integration can raise, so callers can
decide what is worth retrying without inspecting HTTP responses themselves.

- `ConfigurationError`: the integration was called with missing settings or
  invalid arguments. Never retried.
- `AuthenticationError`: EMpost rejected our credentials or the token exchange
  failed. Never retried.
- `TransientNetworkError`: timeouts, connection resets and 5xx responses.
  Retried with backoff.
- `PermanentRequestError`: 4xx responses other than 401. Never retried.
- `AllocationDegraded`: a warning category (not an exception that is raised)
  used when identifier allocation fell back to a timestamp-suffixed value.
----------------
"""


class EMpostError(Exception):
    """Base class for all carrier integration errors."""

    retryable = False

    def __init__(self, message, status_code=None, response_body=None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class ConfigurationError(EMpostError):
    pass


class AuthenticationError(EMpostError):
    pass


class MissingCredentialsError(ConfigurationError, AuthenticationError):
    """EMPOST_CLIENT_ID / EMPOST_CLIENT_SECRET are not set."""


class TransientNetworkError(EMpostError):
    retryable = True


class PermanentRequestError(EMpostError):
    pass


class AllocationDegraded(UserWarning):
    """Identifier allocation exhausted its attempts and used the fallback value."""
