"""Shared test fixtures for the MediBot test suite."""

from __future__ import annotations

import os
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

IST = ZoneInfo("Asia/Kolkata")
# Wednesday 21 Oct 2026, 08:00 clinic time
NOW = datetime(2026, 10, 21, 8, 0, tzinfo=IST)
WEEKDAYS_ONLY = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]
TEST_JWT_SECRET = "test-jwt-secret-0123456789abcdefghijklmnop"


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ["JWT_SECRET"] = TEST_JWT_SECRET
    os.environ["DATABASE_URL"] = "sqlite://"
    os.environ["CLINIC_TIMEZONE"] = "Asia/Kolkata"
    os.environ["APPOINTMENT_TAX"] = "18"
    os.environ["METRICS_ENABLED"] = "false"


class FixedClock:
    """Callable clock whose current instant tests can move."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def db():
    """A fresh in-memory database with the schema created."""
    from medibot.services.database import open_database

    database = open_database("sqlite://")
    yield database
    database.dispose()


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def service(db, clock):
    from medibot.services.appointments import AppointmentService

    return AppointmentService(db, tax=18.0, clock=clock)


@pytest.fixture
def add_patient(db):
    """Factory inserting a patient and returning it (detached, attributes loaded)."""
    from medibot.models import Patient, PatientReport

    counter = {"n": 0}

    def _add(name: str | None = None, email: str | None = None, phone: str | None = None, reports=None):
        counter["n"] += 1
        n = counter["n"]
        patient = Patient(
            name=name or f"Patient {n}",
            email=email or f"patient{n}@example.com",
            phone=phone or f"90000000{n:02d}",
            reports=[PatientReport(position=i, **r) for i, r in enumerate(reports or [])],
        )
        with db.session() as session:
            session.add(patient)
            session.commit()
            session.refresh(patient)
        return patient

    return _add


@pytest.fixture
def add_doctor(db):
    """Factory inserting a doctor and returning it."""
    from medibot.models import Doctor, DoctorCancellation
    from medibot.services.scheduling import to_storage

    def _add(
        name: str = "Asha Rao",
        phone: str = "9876543210",
        availability=None,
        hours_start: str = "10:00",
        max_per_day: int = 2,
        blackout: list[datetime] | None = None,
    ):
        doctor = Doctor(
            name=name,
            phone=phone,
            specialization="Cardiology",
            fees=800,
            availability=list(WEEKDAYS_ONLY if availability is None else availability),
            hours_start=hours_start,
            hours_end="14:00",
            max_appointments_per_day=max_per_day,
            cancellations=[DoctorCancellation(cancelled_on=to_storage(dt)) for dt in blackout or []],
        )
        with db.session() as session:
            session.add(doctor)
            session.commit()
            session.refresh(doctor)
        return doctor

    return _add


@pytest.fixture
def patient(add_patient):
    return add_patient(name="Rahul Mehta", email="rahul@example.com", phone="9123456780")


@pytest.fixture
def doctor(add_doctor):
    return add_doctor()
