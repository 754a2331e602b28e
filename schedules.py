# schedules.py
"""Weekly working hours of a doctor.

A WeeklySchedule always has seven DaySchedule entries, Sunday=0 through
Saturday=6. Doctors without a saved schedule get DEFAULT_HOURS on weekdays
and the weekend off. Updates replace all seven rows in one transaction.
"""
import logging
import re
from dataclasses import dataclass
from datetime import time
from typing import Optional

from errors import InvalidSchedule, NotFound
from models import db, Doctor, DoctorSchedule, fmt_time

logger = logging.getLogger(__name__)

DAYS_IN_WEEK = 7
DEFAULT_HOURS = (time(9, 0), time(18, 0))
WEEKEND = (0, 6)

TIME_RE = re.compile(r"^([01][0-9]|2[0-3]):[0-5][0-9]$")


@dataclass(frozen=True)
class DaySchedule:
    day_of_week: int
    is_working: bool
    start_time: Optional[time] = None
    end_time: Optional[time] = None

    def validate(self):
        if self.day_of_week not in range(DAYS_IN_WEEK):
            raise InvalidSchedule(f"invalid day_of_week {self.day_of_week}, must be 0-6")
        if self.is_working:
            if self.start_time is None or self.end_time is None:
                raise InvalidSchedule(
                    f"day {self.day_of_week} is working but missing start_time or end_time")
            if self.start_time >= self.end_time:
                raise InvalidSchedule(
                    f"day {self.day_of_week}: start_time must be before end_time")
        elif self.start_time is not None or self.end_time is not None:
            raise InvalidSchedule(f"day {self.day_of_week} is not working but has hours")
        return self

    def to_dict(self):
        return {
            "day_of_week": self.day_of_week,
            "is_working": self.is_working,
            "start_time": fmt_time(self.start_time),
            "end_time": fmt_time(self.end_time),
        }


@dataclass(frozen=True)
class WeeklySchedule:
    doctor_id: int
    days: tuple
    is_default: bool = False

    def __post_init__(self):
        if len(self.days) != DAYS_IN_WEEK:
            raise InvalidSchedule("a weekly schedule needs exactly 7 days")
        for index, day in enumerate(self.days):
            if day.day_of_week != index:
                raise InvalidSchedule("days must be ordered Sunday (0) to Saturday (6)")
            day.validate()

    def for_date(self, d) -> DaySchedule:
        return self.days[weekday_index(d)]

    def to_dict(self):
        return {
            "doctor_id": self.doctor_id,
            "is_default": self.is_default,
            "days": [day.to_dict() for day in self.days],
        }


def weekday_index(d):
    # date.weekday() is Monday=0; schedules count from Sunday=0
    return (d.weekday() + 1) % DAYS_IN_WEEK


def parse_time_str(t_str):
    # "09:00" -> time(9,0)
    if not isinstance(t_str, str) or not TIME_RE.match(t_str):
        raise InvalidSchedule(f"invalid time {t_str!r}, expected HH:MM")
    h, m = map(int, t_str.split(":"))
    return time(h, m)


def default_schedule(doctor_id) -> WeeklySchedule:
    start, end = DEFAULT_HOURS
    days = tuple(
        DaySchedule(d, False) if d in WEEKEND else DaySchedule(d, True, start, end)
        for d in range(DAYS_IN_WEEK)
    )
    return WeeklySchedule(doctor_id, days, is_default=True)


def parse_schedule_payload(doctor_id, entries) -> WeeklySchedule:
    """Build a WeeklySchedule from the JSON list sent by the schedule editor."""
    if not isinstance(entries, list) or len(entries) != DAYS_IN_WEEK:
        raise InvalidSchedule("schedule must be a list of exactly 7 days")

    by_day = {}
    for entry in entries:
        if not isinstance(entry, dict):
            raise InvalidSchedule("each schedule entry must be an object")
        day = entry.get("day_of_week")
        if not isinstance(day, int) or isinstance(day, bool) or day not in range(DAYS_IN_WEEK):
            raise InvalidSchedule(f"invalid day_of_week {day!r}, must be 0-6")
        if day in by_day:
            raise InvalidSchedule(f"day_of_week {day} appears more than once")

        is_working = entry.get("is_working", True)
        if not isinstance(is_working, bool):
            raise InvalidSchedule(f"day {day}: is_working must be a boolean")
        if is_working:
            if not entry.get("start_time") or not entry.get("end_time"):
                raise InvalidSchedule(f"day {day} is working but missing start_time or end_time")
            by_day[day] = DaySchedule(
                day, True, parse_time_str(entry["start_time"]), parse_time_str(entry["end_time"]))
        else:
            # hours sent for a day off are dropped
            by_day[day] = DaySchedule(day, False)

    return WeeklySchedule(doctor_id, tuple(by_day[d] for d in range(DAYS_IN_WEEK)))


def get_doctor_or_404(doctor_id):
    doctor = db.session.get(Doctor, doctor_id)
    if doctor is None:
        raise NotFound(f"doctor {doctor_id} not found")
    return doctor


def get_weekly_schedule(doctor_id) -> WeeklySchedule:
    get_doctor_or_404(doctor_id)
    rows = DoctorSchedule.query.filter_by(doctor_id=doctor_id).order_by(
        DoctorSchedule.day_of_week).all()
    if len(rows) != DAYS_IN_WEEK:
        return default_schedule(doctor_id)
    days = tuple(
        DaySchedule(r.day_of_week, r.is_working, r.start_time, r.end_time) for r in rows
    )
    return WeeklySchedule(doctor_id, days)


def replace_weekly_schedule(schedule: WeeklySchedule) -> WeeklySchedule:
    """Overwrite all seven rows for the doctor atomically."""
    get_doctor_or_404(schedule.doctor_id)
    try:
        DoctorSchedule.query.filter_by(doctor_id=schedule.doctor_id).delete()
        db.session.flush()
        for day in schedule.days:
            db.session.add(DoctorSchedule(
                doctor_id=schedule.doctor_id,
                day_of_week=day.day_of_week,
                is_working=day.is_working,
                start_time=day.start_time,
                end_time=day.end_time,
            ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("replaced weekly schedule for doctor %s", schedule.doctor_id)
    return WeeklySchedule(schedule.doctor_id, schedule.days)
