"""
Slot generation, busy intervals and slot classification
"""

from datetime import date, datetime, time, timedelta
from types import SimpleNamespace

import pytest

from availability import (
    BusyInterval, build_busy_intervals, classify, generate_slots,
    merge_intervals, overlaps, resolve_day,
)
from errors import ValidationError
from schedules import DaySchedule

NOW = datetime(2026, 10, 19, 12, 0)
TUESDAY = date(2026, 10, 20)


def at(d, hh, mm=0):
    return datetime.combine(d, time(hh, mm))


def appt(id, start, duration=30, status="pending", doctor_id=1):
    return SimpleNamespace(
        id=id, doctor_id=doctor_id, appointment_date=start, status=status,
        duration=duration, end_time=start + timedelta(minutes=duration),
    )


class TestSlotGenerator:

    def test_full_working_day_yields_eighteen_half_hour_slots(self):
        day = DaySchedule(1, True, time(9, 0), time(18, 0))
        slots = generate_slots(day, 30)
        assert len(slots) == 18
        assert slots[0] == time(9, 0)
        assert slots[-1] == time(17, 30)

    def test_day_off_is_empty_even_with_hours(self):
        day = DaySchedule(6, False, time(9, 0), time(18, 0))
        assert generate_slots(day, 30) == []

    def test_trailing_partial_slot_is_dropped(self):
        day = DaySchedule(2, True, time(9, 0), time(10, 45))
        assert generate_slots(day, 30) == [time(9, 0), time(9, 30), time(10, 0)]

    def test_slots_are_ascending_and_repeatable(self):
        day = DaySchedule(3, True, time(8, 0), time(12, 0))
        first = generate_slots(day, 15)
        assert first == sorted(first)
        assert generate_slots(day, 15) == first

    @pytest.mark.parametrize("interval", [0, -30, "30", None])
    def test_bad_interval_is_rejected(self, interval):
        day = DaySchedule(1, True, time(9, 0), time(18, 0))
        with pytest.raises(ValidationError):
            generate_slots(day, interval)


class TestOverlap:

    def test_overlap_is_symmetric(self):
        points = [at(TUESDAY, 9) + timedelta(minutes=m) for m in range(0, 120, 15)]
        for a_start in points:
            for a_end in points:
                if a_end <= a_start:
                    continue
                for b_start in points:
                    for b_end in points:
                        if b_end <= b_start:
                            continue
                        assert overlaps(a_start, a_end, b_start, b_end) == \
                            overlaps(b_start, b_end, a_start, a_end)

    def test_touching_endpoints_do_not_overlap(self):
        assert not overlaps(at(TUESDAY, 10), at(TUESDAY, 10, 30),
                            at(TUESDAY, 10, 30), at(TUESDAY, 11))


class TestBusyIntervals:

    def test_only_live_appointments_of_the_doctor_on_that_date(self):
        appointments = [
            appt(1, at(TUESDAY, 11)),
            appt(2, at(TUESDAY, 10), status="cancelled"),
            appt(3, at(TUESDAY, 9), doctor_id=2),
            appt(4, at(TUESDAY + timedelta(days=1), 9)),
            appt(5, at(TUESDAY, 9, 30), duration=45, status="confirmed"),
        ]
        busy = build_busy_intervals(appointments, 1, TUESDAY)
        assert [b.appointment_id for b in busy] == [5, 1]
        assert busy[0].end == at(TUESDAY, 10, 15)

    def test_merge_collapses_overlapping_and_touching(self):
        busy = [
            BusyInterval(at(TUESDAY, 10), at(TUESDAY, 10, 30), 1),
            BusyInterval(at(TUESDAY, 10, 30), at(TUESDAY, 11), 2),
            BusyInterval(at(TUESDAY, 10, 45), at(TUESDAY, 11, 15), 3),
            BusyInterval(at(TUESDAY, 14), at(TUESDAY, 14, 30), 4),
        ]
        merged = merge_intervals(busy)
        assert [(b.start, b.end) for b in merged] == [
            (at(TUESDAY, 10), at(TUESDAY, 11, 15)),
            (at(TUESDAY, 14), at(TUESDAY, 14, 30)),
        ]


class TestClassify:

    busy = [BusyInterval(at(TUESDAY, 10), at(TUESDAY, 10, 30), 7)]

    def test_candidate_starting_when_busy_ends_is_available(self):
        result = classify(at(TUESDAY, 10, 30), 30, self.busy, NOW)
        assert not result.is_busy
        assert result.available

    def test_candidate_ending_when_busy_starts_is_available(self):
        assert classify(at(TUESDAY, 9, 30), 30, self.busy, NOW).available

    def test_strict_overlap_is_busy(self):
        result = classify(at(TUESDAY, 10, 15), 30, self.busy, NOW)
        assert result.is_busy
        assert not result.available

    def test_long_booking_reaching_into_busy_interval_is_busy(self):
        assert classify(at(TUESDAY, 9), 90, self.busy, NOW).is_busy

    def test_classification_is_idempotent(self):
        first = classify(at(TUESDAY, 10, 15), 30, self.busy, NOW)
        second = classify(at(TUESDAY, 10, 15), 30, self.busy, NOW)
        assert first == second

    def test_earlier_today_is_past(self):
        today = NOW.date()
        assert classify(at(today, 11, 30), 30, [], NOW).is_past
        assert classify(at(today, 12, 0), 30, [], NOW).is_past
        assert not classify(at(today, 12, 30), 30, [], NOW).is_past

    def test_future_date_is_never_past(self):
        assert not classify(at(TUESDAY, 8), 30, [], NOW).is_past

    def test_past_and_busy_are_reported_together(self):
        today = NOW.date()
        busy = [BusyInterval(at(today, 9), at(today, 9, 30), 1)]
        result = classify(at(today, 9), 30, busy, NOW)
        assert result.is_busy and result.is_past
        assert result.to_dict() == {
            "time": "09:00", "is_busy": True, "is_past": True, "available": False,
        }


class TestResolveDay:

    def test_every_slot_of_the_day_is_classified(self):
        day = DaySchedule(2, True, time(9, 0), time(12, 0))
        busy = [BusyInterval(at(TUESDAY, 10), at(TUESDAY, 10, 30), 1)]
        slots = resolve_day(day, TUESDAY, 30, 30, busy, NOW)
        assert [s.time for s in slots] == [
            time(9), time(9, 30), time(10), time(10, 30), time(11), time(11, 30)]
        assert [s.is_busy for s in slots] == [False, False, True, False, False, False]
