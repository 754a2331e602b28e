# workflow.py
"""Appointment status machine and the field locks that go with each status.

    pending ──► confirmed ──► completed
       │            │
       └────────────┴──────► cancelled

completed and cancelled are terminal.
"""
import logging

from errors import FieldLocked, ForbiddenTransition, MissingCancellationReason, ValidationError
from ledger import parse_amount
from models import PENDING, CONFIRMED, COMPLETED, CANCELLED, STATUSES

logger = logging.getLogger(__name__)

TRANSITIONS = {
    PENDING: {CONFIRMED, COMPLETED, CANCELLED},
    CONFIRMED: {COMPLETED, CANCELLED},
    COMPLETED: set(),
    CANCELLED: set(),
}

# fields a caller may change without moving the status
OPEN_FIELDS = {"appointment_date", "duration", "doctor_id", "patient_id", "reason", "notes"}
EDITABLE_FIELDS = {
    PENDING: OPEN_FIELDS,
    CONFIRMED: OPEN_FIELDS,
    COMPLETED: {"amount"},
    CANCELLED: set(),
}

# changing any of these moves the booked interval
SLOT_FIELDS = {"appointment_date", "duration", "doctor_id"}


def can_transition(current, target):
    return target in TRANSITIONS.get(current, set())


def check_transition(current, target):
    if target not in STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(STATUSES)}", field="status")
    if not can_transition(current, target):
        raise ForbiddenTransition(
            f"cannot move appointment from {current} to {target}",
            current_status=current, target_status=target,
        )


def check_editable(status, fields):
    allowed = EDITABLE_FIELDS.get(status, set())
    locked = sorted(set(fields) - allowed)
    if locked:
        raise FieldLocked(
            f"field(s) {', '.join(locked)} cannot be changed while appointment is {status}",
            fields=locked, current_status=status,
        )


def apply_transition(appointment, target, payload=None, parse_date=None):
    """Move `appointment` to `target`, applying the side data the target needs.

    `payload` may carry `amount` (completed) or `cancellation_reason` and
    `suggested_new_date` (cancelled). Nothing is written unless every check passes.
    """
    payload = payload or {}
    current = appointment.status
    check_transition(current, target)

    changes = {"status": target}
    if target == COMPLETED:
        if payload.get("amount") is not None:
            changes["amount"] = parse_amount(payload["amount"])
    elif target == CANCELLED:
        reason = payload.get("cancellation_reason")
        if not isinstance(reason, str) or not reason.strip():
            raise MissingCancellationReason("cancellation reason is required")
        changes["cancellation_reason"] = reason.strip()
        suggested = payload.get("suggested_new_date")
        if suggested:
            changes["suggested_new_date"] = parse_date(suggested) if parse_date else suggested

    for field, value in changes.items():
        setattr(appointment, field, value)
    logger.info("appointment %s: %s -> %s", appointment.id, current, target)
    return appointment
