"""Appointment scheduling rules.

All date arithmetic happens in the clinic's fixed time zone
(``CLINIC_TIMEZONE``).  A booking request is checked against seven rules,
in this order, stopping at the first failure:

  1. the date parses to a calendar day
  2. the day lies in the booking horizon (today .. today + 6)
  3. the doctor works on that weekday
  4. the patient has no Pending appointment with the doctor that day
  5. the doctor still has capacity that day
  6. the appointment starts at least ``MIN_LEAD_TIME_HOURS`` from now
  7. the doctor has not blacked out that day

Rules 4 and 5 need the store; the caller supplies a :class:`BookingLookup`
and it is only consulted once rules 1-3 have passed.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Protocol
from zoneinfo import ZoneInfo

from medibot.config import BOOKING_WINDOW_DAYS, CLINIC_TIMEZONE, MIN_LEAD_TIME_HOURS
from medibot.services.results import Err, ErrorKind, Ok, Result

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

# ── Rejection messages (one per rule) ───────────────────────────────
INVALID_DATE = "Invalid date provided. Please use the YYYY-MM-DD format."
OUTSIDE_HORIZON = f"You can only book appointments within the next {BOOKING_WINDOW_DAYS} days."
DOCTOR_UNAVAILABLE_WEEKDAY = "Doctor is not available on {weekday}. Available days: {available}."
DUPLICATE_APPOINTMENT = "You already have an appointment with this doctor on the same date."
DOCTOR_FULLY_BOOKED = "Doctor has already reached the maximum number of appointments for this day."
INSUFFICIENT_LEAD_TIME = f"Appointments must be booked at least {MIN_LEAD_TIME_HOURS} hours in advance."
DOCTOR_BLACKOUT = "Doctor is not available on the selected day."


# ── Time-zone helpers ────────────────────────────────────────────────


def clinic_tz() -> ZoneInfo:
    return ZoneInfo(CLINIC_TIMEZONE)


def clinic_now() -> datetime:
    """The current instant, expressed in the clinic time zone."""
    return datetime.now(clinic_tz())


def to_storage(dt: datetime) -> datetime:
    """Aware datetime -> naive UTC, the form instants are persisted in."""
    return dt.astimezone(UTC).replace(tzinfo=None)


def from_storage(dt: datetime) -> datetime:
    """Naive UTC from the store -> aware datetime in the clinic time zone."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(clinic_tz())


def parse_day(value: str) -> date | None:
    """Parse ``YYYY-MM-DD`` (or a full ISO timestamp) to a clinic calendar day."""
    try:
        parsed = datetime.fromisoformat(value.strip())
    except (AttributeError, ValueError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(clinic_tz())
    return parsed.date()


def parse_hhmm(value: str) -> time:
    hour, minute = (int(part) for part in value.strip().split(":")[:2])
    return time(hour, minute)


# ── Validator ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DoctorSchedule:
    """The parts of a doctor record the rules look at."""

    name: str
    availability: tuple[str, ...]
    hours_start: str
    max_appointments_per_day: int
    blackout_days: frozenset[date] = frozenset()

    @classmethod
    def from_doctor(cls, doctor) -> DoctorSchedule:
        return cls(
            name=doctor.name,
            availability=tuple(doctor.availability or ()),
            hours_start=doctor.hours_start,
            max_appointments_per_day=doctor.max_appointments_per_day,
            blackout_days=blackout_days(c.cancelled_on for c in doctor.cancellations),
        )

    def works_on(self, weekday: str) -> bool:
        return weekday.lower() in {d.strip().lower() for d in self.availability}


def blackout_days(cancelled_on: Iterable[datetime]) -> frozenset[date]:
    """Calendar days (clinic time zone) of stored cancellation instants."""
    return frozenset(from_storage(dt).date() for dt in cancelled_on)


class BookingLookup(Protocol):
    """Store lookups for the rules that need existing appointments."""

    def has_pending_appointment(self, day: date) -> bool: ...

    def count_appointments(self, day: date) -> int: ...


def validate_booking(
    doctor: DoctorSchedule,
    requested_date: str,
    now: datetime,
    lookup: BookingLookup,
) -> Result:
    """Run the booking rules in order.

    Returns ``Ok(value=<aware appointment datetime>)`` when every rule
    passes, otherwise ``Err`` describing the first rule that failed.
    The appointment always starts at the doctor's ``hours_start``.
    """
    tz = clinic_tz()
    now = now.astimezone(tz)

    day = parse_day(requested_date)
    if day is None:
        return Err(ErrorKind.VALIDATION_FAILED, INVALID_DATE)
    appointment_at = datetime.combine(day, parse_hhmm(doctor.hours_start), tzinfo=tz)

    today = now.date()
    if not today <= day <= today + timedelta(days=BOOKING_WINDOW_DAYS - 1):
        return Err(ErrorKind.VALIDATION_FAILED, OUTSIDE_HORIZON)

    weekday = WEEKDAYS[day.weekday()]
    if not doctor.works_on(weekday):
        return Err(
            ErrorKind.VALIDATION_FAILED,
            DOCTOR_UNAVAILABLE_WEEKDAY.format(
                weekday=weekday, available=", ".join(doctor.availability),
            ),
        )

    if lookup.has_pending_appointment(day):
        return Err(ErrorKind.CONFLICT, DUPLICATE_APPOINTMENT)

    if lookup.count_appointments(day) >= doctor.max_appointments_per_day:
        return Err(ErrorKind.VALIDATION_FAILED, DOCTOR_FULLY_BOOKED)

    # Elapsed time, not wall-clock difference, across DST transitions
    if appointment_at.astimezone(UTC) - now.astimezone(UTC) < timedelta(hours=MIN_LEAD_TIME_HOURS):
        return Err(ErrorKind.VALIDATION_FAILED, INSUFFICIENT_LEAD_TIME)

    if day in doctor.blackout_days:
        return Err(ErrorKind.VALIDATION_FAILED, DOCTOR_BLACKOUT)

    return Ok(appointment_at)
