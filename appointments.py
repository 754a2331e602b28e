# appointments.py
"""Booking commands and queries.

Each command validates everything first, then writes inside a single
commit. Bookings and moves take the doctor's booking lock so the conflict
check and the insert/update cannot interleave with another writer.
"""
import logging
from contextlib import nullcontext
from datetime import datetime, timedelta, time

from dateutil import parser
from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from availability import build_busy_intervals, resolve_day
from conflicts import booking_lock, find_conflict
from errors import FieldLocked, NotFound, PastSlot, SlotConflict, StaleState, ValidationError
from ledger import set_amount
from models import (
    db, Appointment, Doctor, Patient, TreatmentCategory,
    PENDING, STATUSES, MIN_DURATION, MAX_DURATION,
)
from schedules import get_doctor_or_404, get_weekly_schedule
from workflow import SLOT_FIELDS, apply_transition, check_editable

logger = logging.getLogger(__name__)

REASON_MAX = 500
NOTES_MAX = 1000

# keys a caller may send alongside field changes to guard against lost updates
CONTROL_KEYS = {"version", "expected_status"}
APPOINTMENT_FIELDS = {c.name for c in Appointment.__table__.columns}


def now():
    return current_app.config["CLOCK"]()


# -------------------------
# Parsing helpers
# -------------------------

def parse_datetime(value, field):
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        try:
            dt = parser.isoparse(value.strip())
        except (ValueError, OverflowError):
            raise ValidationError(f"{field} must be an ISO-8601 datetime", field=field)
    else:
        raise ValidationError(f"{field} must be an ISO-8601 datetime", field=field)
    if dt.tzinfo is not None:
        # stored times are local wall-clock
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


def parse_date(value, field="date"):
    # "2025-12-03" -> date
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be YYYY-MM-DD", field=field)


def parse_duration(value, field="duration"):
    if isinstance(value, bool) or not isinstance(value, int):
        if isinstance(value, str) and value.isdigit():
            value = int(value)
        else:
            raise ValidationError(f"{field} must be a whole number of minutes", field=field)
    if not MIN_DURATION <= value <= MAX_DURATION:
        raise ValidationError(
            f"{field} must be between {MIN_DURATION} and {MAX_DURATION} minutes", field=field)
    return value


def parse_id(value, field):
    if isinstance(value, bool) or not isinstance(value, int):
        if isinstance(value, str) and value.isdigit():
            return int(value)
        raise ValidationError(f"{field} must be an integer id", field=field)
    return value


def parse_text(value, field, limit):
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be text", field=field)
    if len(value) > limit:
        raise ValidationError(f"{field} must be at most {limit} characters", field=field)
    return value


def ensure_future(start):
    if start <= now():
        raise PastSlot("appointment date must be in the future", field="appointment_date")
    return start


# -------------------------
# Lookups
# -------------------------

def get_appointment_or_404(appointment_id):
    appt = db.session.get(Appointment, appointment_id)
    if appt is None:
        raise NotFound(f"appointment {appointment_id} not found")
    return appt


def get_patient_or_404(patient_id):
    patient = db.session.get(Patient, patient_id)
    if patient is None:
        raise NotFound(f"patient {patient_id} not found")
    return patient


def category_duration(reason):
    """Default duration of the treatment category whose name equals `reason`, if any."""
    if not reason:
        return None
    category = TreatmentCategory.query.filter_by(name=reason.strip()).first()
    return category.default_duration if category else None


def appointments_on(doctor_id, target_date):
    return Appointment.query.filter(
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date >= datetime.combine(target_date, time(0, 0)),
        Appointment.appointment_date < datetime.combine(target_date + timedelta(days=1), time(0, 0)),
    ).order_by(Appointment.appointment_date).all()


def list_appointments(doctor_id=None, patient_id=None, status=None, date_from=None, date_to=None):
    query = Appointment.query
    if doctor_id is not None:
        query = query.filter(Appointment.doctor_id == doctor_id)
    if patient_id is not None:
        query = query.filter(Appointment.patient_id == patient_id)
    if status is not None:
        if status not in STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(STATUSES)}", field="status")
        query = query.filter(Appointment.status == status)
    if date_from is not None:
        query = query.filter(Appointment.appointment_date >= datetime.combine(date_from, time(0, 0)))
    if date_to is not None:
        query = query.filter(
            Appointment.appointment_date < datetime.combine(date_to + timedelta(days=1), time(0, 0)))
    return query.order_by(Appointment.appointment_date).all()


# -------------------------
# Availability
# -------------------------

def get_busy_slots(doctor_id, target_date):
    get_doctor_or_404(doctor_id)
    return build_busy_intervals(appointments_on(doctor_id, target_date), doctor_id, target_date)


def get_availability(doctor_id, target_date, duration=None, interval=None):
    duration = parse_duration(
        duration if duration is not None else current_app.config["DEFAULT_APPOINTMENT_DURATION"])
    interval = interval if interval is not None else current_app.config["SLOT_INTERVAL_MINUTES"]

    schedule = get_weekly_schedule(doctor_id)
    day = schedule.for_date(target_date)
    busy = build_busy_intervals(appointments_on(doctor_id, target_date), doctor_id, target_date)
    slots = resolve_day(day, target_date, duration, interval, busy, now())
    return {
        "doctor_id": doctor_id,
        "date": target_date.isoformat(),
        "duration": duration,
        "interval": interval,
        "is_working": day.is_working,
        "slots": [s.to_dict() for s in slots],
    }


# -------------------------
# Commit boundary
# -------------------------

def run_atomic(action, doctor_id=None):
    """Run `action` and commit, under the doctor's booking lock when given.

    A transient database error rolls back and reruns the whole unit; any
    other failure rolls back and propagates untouched.
    """
    attempts = current_app.config.get("COMMIT_RETRIES", 0) + 1
    for attempt in range(1, attempts + 1):
        try:
            with booking_lock(doctor_id) if doctor_id is not None else nullcontext():
                result = action()
                db.session.commit()
            return result
        except StaleDataError:
            db.session.rollback()
            logger.warning("lost update race (doctor %s)", doctor_id)
            raise StaleState("appointment was changed by someone else, reload and retry")
        except OperationalError:
            db.session.rollback()
            if attempt == attempts:
                raise
            logger.warning("transient commit failure, retrying (%d/%d)", attempt, attempts - 1)
        except Exception:
            db.session.rollback()
            raise


def _guard_version(appt, payload):
    expected_version = payload.get("version")
    if expected_version is not None and expected_version != appt.version:
        raise StaleState(
            f"appointment {appt.id} is at version {appt.version}, not {expected_version}",
            current_version=appt.version,
        )
    expected_status = payload.get("expected_status")
    if expected_status is not None and expected_status != appt.status:
        raise StaleState(
            f"appointment {appt.id} is {appt.status}, not {expected_status}",
            current_status=appt.status,
        )


def _reject_conflict(doctor_id, start, duration, excluding_appointment_id=None):
    clash = find_conflict(doctor_id, start, duration, excluding_appointment_id)
    if clash is not None:
        logger.warning(
            "slot conflict for doctor %s at %s (%s min) with appointment %s",
            doctor_id, start.isoformat(), duration, clash.id)
        raise SlotConflict("time slot already taken", overlap_with=clash.id)


# -------------------------
# Commands
# -------------------------

def create_doctor(data):
    name = (data or {}).get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required", field="name")
    doctor = Doctor(name=name.strip())
    db.session.add(doctor)
    db.session.commit()
    return doctor


def create_patient(data):
    data = data or {}
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required", field="name")
    patient = Patient(name=name.strip(), phone=parse_text(data.get("phone"), "phone", 50))
    db.session.add(patient)
    db.session.commit()
    return patient


def create_category(data):
    data = data or {}
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required", field="name")
    name = name.strip()
    if TreatmentCategory.query.filter_by(name=name).first() is not None:
        raise ValidationError(f"treatment category {name!r} already exists", field="name")
    category = TreatmentCategory(
        name=name,
        default_duration=parse_duration(data.get("default_duration", 30), "default_duration"),
        color=parse_text(data.get("color"), "color", 32),
    )
    db.session.add(category)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError(f"treatment category {name!r} already exists", field="name")
    return category


def create_appointment(data):
    """
    payload:
    {
      "doctor_id": 1,
      "patient_id": 3,
      "appointment_date": "2025-12-03T10:00:00",
      "duration": 30,
      "reason": "Consultation",
      "notes": ""
    }
    """
    data = data or {}
    required = ["doctor_id", "patient_id", "appointment_date"]
    missing = [k for k in required if data.get(k) in (None, "")]
    if missing:
        raise ValidationError(f"missing fields: {', '.join(missing)}", fields=missing)
    if data.get("amount") is not None:
        raise FieldLocked("amount can only be recorded once the appointment is completed",
                          field="amount")

    doctor_id = parse_id(data["doctor_id"], "doctor_id")
    patient_id = parse_id(data["patient_id"], "patient_id")
    start = ensure_future(parse_datetime(data["appointment_date"], "appointment_date"))
    reason = parse_text(data.get("reason"), "reason", REASON_MAX)
    notes = parse_text(data.get("notes"), "notes", NOTES_MAX)
    if data.get("duration") is not None:
        duration = parse_duration(data["duration"])
    else:
        duration = category_duration(reason) or current_app.config["DEFAULT_APPOINTMENT_DURATION"]

    get_doctor_or_404(doctor_id)
    get_patient_or_404(patient_id)

    def book():
        _reject_conflict(doctor_id, start, duration)
        appt = Appointment(
            doctor_id=doctor_id,
            patient_id=patient_id,
            appointment_date=start,
            duration=duration,
            status=PENDING,
            reason=reason,
            notes=notes,
            registered_at=now(),
        )
        db.session.add(appt)
        db.session.flush()
        return appt

    appt = run_atomic(book, doctor_id=doctor_id)
    logger.info("booked appointment %s for doctor %s at %s",
                appt.id, doctor_id, start.isoformat())
    return appt


def transition_status(appointment_id, target, payload=None):
    payload = payload or {}

    def move():
        appt = get_appointment_or_404(appointment_id)
        _guard_version(appt, payload)
        apply_transition(appt, target, payload,
                         parse_date=lambda v: parse_datetime(v, "suggested_new_date"))
        return appt

    return run_atomic(move)


def update_amount(appointment_id, raw, payload=None):
    payload = payload or {}

    def write():
        appt = get_appointment_or_404(appointment_id)
        _guard_version(appt, payload)
        set_amount(appt, raw)
        return appt

    return run_atomic(write)


def update_appointment(appointment_id, changes):
    """Change fields of an appointment without moving its status."""
    changes = dict(changes or {})
    control = {k: changes.pop(k) for k in list(changes) if k in CONTROL_KEYS}
    if not changes:
        raise ValidationError("nothing to update")
    unknown = sorted(set(changes) - APPOINTMENT_FIELDS)
    if unknown:
        raise ValidationError(f"unknown field(s): {', '.join(unknown)}", fields=unknown)

    appt = get_appointment_or_404(appointment_id)
    check_editable(appt.status, changes)
    _guard_version(appt, control)

    if "amount" in changes:
        # only reachable on completed appointments, where amount is the sole open field
        return update_amount(appointment_id, changes["amount"], control)

    values = {}
    if "appointment_date" in changes:
        values["appointment_date"] = ensure_future(
            parse_datetime(changes["appointment_date"], "appointment_date"))
    if "duration" in changes:
        values["duration"] = parse_duration(changes["duration"])
    if "doctor_id" in changes:
        values["doctor_id"] = parse_id(changes["doctor_id"], "doctor_id")
        get_doctor_or_404(values["doctor_id"])
    if "patient_id" in changes:
        values["patient_id"] = parse_id(changes["patient_id"], "patient_id")
        get_patient_or_404(values["patient_id"])
    if "reason" in changes:
        values["reason"] = parse_text(changes["reason"], "reason", REASON_MAX)
    if "notes" in changes:
        values["notes"] = parse_text(changes["notes"], "notes", NOTES_MAX)

    moves_slot = bool(SLOT_FIELDS & set(values))
    target_doctor = values.get("doctor_id", appt.doctor_id)

    def write():
        current = get_appointment_or_404(appointment_id)
        # refresh under the lock: status may have moved since validation
        db.session.refresh(current)
        check_editable(current.status, changes)
        _guard_version(current, control)
        if moves_slot:
            _reject_conflict(
                target_doctor,
                values.get("appointment_date", current.appointment_date),
                values.get("duration", current.duration),
                excluding_appointment_id=current.id,
            )
        for field, value in values.items():
            setattr(current, field, value)
        return current

    updated = run_atomic(write, doctor_id=target_doctor if moves_slot else None)
    logger.info("updated appointment %s: %s", appointment_id, ", ".join(sorted(values)))
    return updated


def reschedule_appointment(appointment_id, new_start, new_duration=None, payload=None):
    changes = {"appointment_date": new_start}
    if new_duration is not None:
        changes["duration"] = new_duration
    for key in CONTROL_KEYS:
        if payload and payload.get(key) is not None:
            changes[key] = payload[key]
    return update_appointment(appointment_id, changes)
