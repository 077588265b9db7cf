"""Deterministic record identities used to make bank imports idempotent.

An imported row's id is an order-preserving encoding of its
(date, description, amount) triple, so a bank re-export of the same row
always maps to the same id. Manual entries carry a ``manual-`` prefix plus
a creation timestamp and random suffix, so they can never collide with an
import or with each other.
"""

import base64
import time
from collections.abc import Callable
from datetime import date
from decimal import Decimal
from uuid import uuid4

from rental_tax_ledger.domain.tax_years import normalize_date
from rental_tax_ledger.domain.value_objects import quantize_money, to_decimal

MANUAL_PREFIX = "manual-"


def _canonical_triple(
    txn_date: date | str, description: str, amount: Decimal | int | float | str
) -> str:
    canonical_amount = quantize_money(to_decimal(amount))
    if canonical_amount == 0:
        canonical_amount = abs(canonical_amount)  # "-0.00" and "0.00" are one row
    return f"{normalize_date(txn_date).isoformat()}-{description}-{canonical_amount}"


def _encode(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def import_identity(
    txn_date: date | str, description: str, amount: Decimal | int | float | str
) -> str:
    """Identity of an imported bank row; equal triples give equal ids."""
    return _encode(_canonical_triple(txn_date, description, amount))


def manual_identity(
    txn_date: date | str,
    description: str,
    amount: Decimal | int | float | str,
    clock: Callable[[], int] = time.time_ns,
) -> str:
    """Identity of a manually entered transaction. Never deterministic."""
    triple = _encode(_canonical_triple(txn_date, description, amount))
    return f"{MANUAL_PREFIX}{triple}-{clock()}-{uuid4().hex[:8]}"


def is_manual_identity(record_id: str) -> bool:
    return record_id.startswith(MANUAL_PREFIX)
