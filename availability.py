# availability.py
"""Slot generation and classification for the booking picker.

Everything here is a pure function of its arguments: the current time is
passed in, never read from the system clock.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, time
from typing import List, Optional

from errors import ValidationError
from models import CANCELLED


@dataclass(frozen=True)
class BusyInterval:
    start: datetime
    end: datetime
    appointment_id: Optional[int] = None

    def to_dict(self):
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "appointment_id": self.appointment_id,
        }


@dataclass(frozen=True)
class SlotClassification:
    time: time
    is_busy: bool
    is_past: bool

    @property
    def available(self):
        return not self.is_busy and not self.is_past

    def to_dict(self):
        return {
            "time": self.time.strftime("%H:%M"),
            "is_busy": self.is_busy,
            "is_past": self.is_past,
            "available": self.available,
        }


def overlaps(start1, end1, start2, end2):
    # half-open intervals: touching endpoints do not overlap
    return start1 < end2 and start2 < end1


def generate_slots(day, interval) -> List[time]:
    """Start times for one DaySchedule, every `interval` minutes.

    A trailing slot whose full interval would run past end_time is dropped.
    """
    if isinstance(interval, bool) or not isinstance(interval, int) or interval <= 0:
        raise ValidationError(f"slot interval must be a positive number of minutes, got {interval!r}")
    if not day.is_working:
        return []

    anchor = datetime.combine(datetime.min.date(), day.start_time)
    work_end = datetime.combine(datetime.min.date(), day.end_time)
    step = timedelta(minutes=interval)

    slots = []
    current = anchor
    while current + step <= work_end:
        slots.append(current.time())
        current += step
    return slots


def build_busy_intervals(appointments, doctor_id, target_date) -> List[BusyInterval]:
    busy = [
        BusyInterval(a.appointment_date, a.end_time, a.id)
        for a in appointments
        if a.doctor_id == doctor_id
        and a.appointment_date.date() == target_date
        and a.status != CANCELLED
    ]
    busy.sort(key=lambda b: (b.start, b.end))
    return busy


def merge_intervals(intervals) -> List[BusyInterval]:
    """Collapse overlapping or touching intervals; merged ones lose their appointment id."""
    merged = []
    for iv in sorted(intervals, key=lambda b: (b.start, b.end)):
        if merged and iv.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = BusyInterval(last.start, max(last.end, iv.end))
        else:
            merged.append(iv)
    return merged


def is_past(candidate_start, now):
    if candidate_start.date() < now.date():
        return True
    return candidate_start.date() == now.date() and candidate_start <= now


def classify(candidate_start, duration, busy_intervals, now) -> SlotClassification:
    candidate_end = candidate_start + timedelta(minutes=duration)
    busy = any(
        overlaps(candidate_start, candidate_end, b.start, b.end) for b in busy_intervals
    )
    return SlotClassification(candidate_start.time(), busy, is_past(candidate_start, now))


def resolve_day(day, target_date, duration, interval, busy_intervals, now) -> List[SlotClassification]:
    """Classify every generated slot of `target_date` for a booking of `duration` minutes."""
    return [
        classify(datetime.combine(target_date, slot), duration, busy_intervals, now)
        for slot in generate_slots(day, interval)
    ]
