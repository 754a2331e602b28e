# ledger.py
import logging
import re
from decimal import Decimal, InvalidOperation

from errors import FieldLocked, InvalidAmount
from models import COMPLETED

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
# Numeric(12, 2) holds at most ten integer digits
MAX_AMOUNT = Decimal("1e10")
WHITESPACE_RE = re.compile(r"\s+")


def parse_amount(raw):
    """Normalize a typed amount: "1 500,50" -> Decimal("1500.50")."""
    if raw is None or isinstance(raw, bool):
        raise InvalidAmount("amount is required")
    if isinstance(raw, (int, float, Decimal)):
        text = str(raw)
    elif isinstance(raw, str):
        text = WHITESPACE_RE.sub("", raw).replace(",", ".")
    else:
        raise InvalidAmount(f"amount must be a number, got {type(raw).__name__}")

    try:
        value = Decimal(text)
    except InvalidOperation:
        raise InvalidAmount(f"amount {raw!r} is not a number")
    if not value.is_finite():
        raise InvalidAmount(f"amount {raw!r} is not a finite number")
    if value < 0:
        raise InvalidAmount("amount must not be negative")
    if value >= MAX_AMOUNT:
        raise InvalidAmount(f"amount must be below {MAX_AMOUNT:,.0f}")
    return value.quantize(CENTS)


def set_amount(appointment, raw):
    """Direct amount edits are only allowed once the visit is completed."""
    if appointment.status != COMPLETED:
        raise FieldLocked(
            f"amount can only be edited on a completed appointment (status is {appointment.status})",
            field="amount",
        )
    amount = parse_amount(raw)
    appointment.amount = amount
    logger.info("amount of appointment %s set to %s", appointment.id, amount)
    return amount
