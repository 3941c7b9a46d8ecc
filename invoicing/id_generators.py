# -*- coding: utf-8 -*-
"""
================================================================================
ID Generators
================================================================================
Purpose:
----------------
Issues the two business identifiers every invoice carries:

- **AWB / tracking number**: 15 characters following the carrier pattern
  `[A-Z]{3}[0-9][A-Z]{2}[0-9][A-Z]{2}[0-9]{2}[A-Z]{2}[0-9][A-Z]`
  (e.g. `PHL2VN3KT28US9H`), optionally starting with a fixed 3-letter prefix.
- **Invoice number**: `INV-` followed by a 6-digit zero-padded value taken
  from a durable database counter (e.g. `INV-000042`).

Uniqueness is enforced by generate-then-check: a candidate is generated and
looked up with `exists_fn`, which must check both the primary and the legacy
alias column. After `max_attempts` collisions the last candidate is suffixed
with timestamp digits and returned without a further check. That fallback is
logged and reported as an `AllocationDegraded` warning; it is not an error.

Errors raised by `exists_fn` or the counter are never caught here.
----------------
"""
import random
import string
import time
import logging
import warnings

from common.errors import AllocationDegraded

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 100
INVOICE_SEQUENCE_NAME = 'invoice_number_seq'
INVOICE_PREFIX = 'INV-'
INVOICE_DIGITS = 6

# L = letter, D = digit; the prefix (if any) replaces the leading letters.
AWB_PATTERN = 'LLLDLLDLLDDLLDL'
AWB_REGEX = r'^[A-Z]{3}[0-9][A-Z]{2}[0-9][A-Z]{2}[0-9]{2}[A-Z]{2}[0-9][A-Z]$'

_system_random = random.SystemRandom()


def _timestamp_digits(count):
    return str(int(time.time() * 1000))[-count:]


def _clean_prefix(prefix):
    if not prefix:
        return ''
    return ''.join(ch for ch in prefix.upper() if ch in string.ascii_uppercase)[:3]


def allocate_tracking_identifier(prefix=None, rng=None):
    """
    Generates one AWB number. No uniqueness check.

    Args:
        prefix (str, optional): Up to 3 letters for the start of the number.
            Non-letters are dropped; shorter prefixes are padded with random letters.
        rng (random.Random, optional): Source of randomness, injectable for tests.
    """
    rng = rng or _system_random
    chars = list(_clean_prefix(prefix))
    for kind in AWB_PATTERN[len(chars):]:
        pool = string.ascii_uppercase if kind == 'L' else string.digits
        chars.append(rng.choice(pool))
    return ''.join(chars)


def allocate_unique_tracking_identifier(exists_fn, prefix=None, max_attempts=DEFAULT_MAX_ATTEMPTS, rng=None):
    """
    Generates an AWB number that `exists_fn` reports as unused.

    Args:
        exists_fn (callable): `exists_fn(value) -> bool`, checking both the
            `awb_number` and `tracking_code` columns.
        prefix (str, optional): See `allocate_tracking_identifier`.
        max_attempts (int): Collisions tolerated before falling back.
        rng (random.Random, optional): Injectable randomness.

    Returns:
        str: A fresh AWB number, or the last candidate plus 6 timestamp digits
             when every attempt collided.
    """
    candidate = None
    for attempt in range(1, max_attempts + 1):
        candidate = allocate_tracking_identifier(prefix, rng)
        if not exists_fn(candidate):
            return candidate
        logger.debug("AWB candidate %s already in use (attempt %d/%d).", candidate, attempt, max_attempts)

    fallback = (candidate or allocate_tracking_identifier(prefix, rng)) + _timestamp_digits(6)
    message = f"Used fallback AWB generation after {max_attempts} attempts: {fallback}"
    logger.warning(message)
    warnings.warn(message, AllocationDegraded, stacklevel=2)
    return fallback


def format_invoice_number(seq):
    return f"{INVOICE_PREFIX}{seq:0{INVOICE_DIGITS}d}"


def allocate_invoice_number(next_sequence_fn, sequence_name=INVOICE_SEQUENCE_NAME):
    """
    Takes the next value of a durable counter and formats it as an invoice number.

    Args:
        next_sequence_fn (callable): `next_sequence_fn(name) -> int`. Must be an
            atomic increment at the storage layer (see `InvoiceStore.next_sequence_value`).
        sequence_name (str): Counter name.
    """
    seq = next_sequence_fn(sequence_name)
    return format_invoice_number(seq or 1)


def allocate_unique_invoice_number(exists_fn, next_sequence_fn, max_attempts=DEFAULT_MAX_ATTEMPTS,
                                   sequence_name=INVOICE_SEQUENCE_NAME):
    """
    Returns an invoice number not present in the `invoice_id` or `invoice_number`
    columns, falling back to `INV-` plus 8 timestamp digits after `max_attempts`.
    Counter values skipped because they collided are not reused.
    """
    for attempt in range(1, max_attempts + 1):
        candidate = allocate_invoice_number(next_sequence_fn, sequence_name)
        if not exists_fn(candidate):
            return candidate
        logger.debug("Invoice number %s already in use (attempt %d/%d).", candidate, attempt, max_attempts)

    fallback = f"{INVOICE_PREFIX}{_timestamp_digits(8)}"
    message = f"Used fallback invoice number generation after {max_attempts} attempts: {fallback}"
    logger.warning(message)
    warnings.warn(message, AllocationDegraded, stacklevel=2)
    return fallback
