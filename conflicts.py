# conflicts.py
import threading
from collections import defaultdict
from contextlib import contextmanager
from datetime import timedelta

from availability import overlaps
from models import db, Appointment, Doctor, CANCELLED, MAX_DURATION

_registry_lock = threading.Lock()
_doctor_locks = defaultdict(threading.Lock)


def find_conflict(doctor_id, start, duration, excluding_appointment_id=None):
    """Return the first non-cancelled appointment of the doctor overlapping [start, start+duration)."""
    end = start + timedelta(minutes=duration)
    # nothing longer than MAX_DURATION can reach into the window from further back
    query = Appointment.query.filter(
        Appointment.doctor_id == doctor_id,
        Appointment.status != CANCELLED,
        Appointment.appointment_date < end,
        Appointment.appointment_date > start - timedelta(minutes=MAX_DURATION),
    )
    if excluding_appointment_id is not None:
        query = query.filter(Appointment.id != excluding_appointment_id)

    for appt in query.order_by(Appointment.appointment_date).all():
        if overlaps(start, end, appt.appointment_date, appt.end_time):
            return appt
    return None


def check_conflict(doctor_id, start, duration, excluding_appointment_id=None):
    return find_conflict(doctor_id, start, duration, excluding_appointment_id) is not None


@contextmanager
def booking_lock(doctor_id):
    """Serialize check-then-write for one doctor.

    The in-process lock covers threads of this worker; the row lock on the
    doctor covers other workers on databases that honour FOR UPDATE.
    """
    with _registry_lock:
        lock = _doctor_locks[doctor_id]
    with lock:
        db.session.query(Doctor).filter(Doctor.id == doctor_id).with_for_update().first()
        yield
