"""
Bounded exponential backoff for EMpost calls.

An action is attempted up to `max_retries` times in total. Between attempts the
executor sleeps `base_delay_ms * 2 ** (attempt - 1)` milliseconds (1s, 2s with
the defaults). Bad requests and authentication failures are raised on the
first attempt.
"""
import time
import logging

import requests

from common.errors import AuthenticationError, ConfigurationError, PermanentRequestError

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_MS = 1000
PERMANENT_STATUS_CODES = (400, 401)


def _status_code_of(exc):
    if isinstance(exc, requests.exceptions.RequestException) and exc.response is not None:
        return exc.response.status_code
    return getattr(exc, 'status_code', None)


def is_permanent_error(exc):
    if isinstance(exc, (AuthenticationError, ConfigurationError, PermanentRequestError)):
        return True
    return _status_code_of(exc) in PERMANENT_STATUS_CODES


def execute_with_backoff(action, max_retries=DEFAULT_MAX_RETRIES, base_delay_ms=DEFAULT_BASE_DELAY_MS,
                         sleep=time.sleep, description='EMpost API call'):
    """
    Runs `action()` and returns its result, retrying transient failures.

    Raises:
        The first permanent error, or the last error once attempts run out.
    """
    if max_retries < 1:
        raise ValueError("max_retries must be at least 1")

    for attempt in range(1, max_retries + 1):
        try:
            return action()
        except Exception as e:
            if is_permanent_error(e):
                logger.error("%s failed permanently: %s", description, e)
                raise
            if attempt == max_retries:
                logger.error("%s failed after %d attempts: %s", description, max_retries, e)
                raise
            backoff_ms = base_delay_ms * 2 ** (attempt - 1)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %dms: %s",
                description, attempt, max_retries, backoff_ms, e
            )
            sleep(backoff_ms / 1000.0)
