"""Tests for the database lifecycle, store constraints and seed data."""

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from medibot.models import Appointment, AppointmentStatus, Doctor, Patient
from medibot.services.database import Database, open_database, seed_database
from medibot.services.scheduling import DoctorSchedule, from_storage
from medibot.services.store import AppointmentStore, DoctorStore, PatientStore
from tests.conftest import IST


def _appointment(patient, doctor, status=AppointmentStatus.PENDING, day=date(2026, 10, 22), slot=1):
    return Appointment(
        patient_id=patient.id,
        patient_name=patient.name,
        doctor_id=doctor.id,
        doctor_name=doctor.name,
        scheduled_at=datetime(2026, 10, 22, 4, 30),
        day=day,
        time="10:00",
        slot=slot,
        status=status,
        specialization="Cardiology",
        fees=800,
    )


class TestLifecycle:
    def test_open_database_creates_tables(self):
        db = open_database("sqlite://")
        try:
            with db.session() as session:
                assert session.exec(select(Patient)).all() == []
        finally:
            db.dispose()

    def test_in_memory_database_is_shared_between_sessions(self, db, patient):
        with db.session() as session:
            assert session.get(Patient, patient.id) is not None

    def test_file_database(self, tmp_path):
        db = Database(f"sqlite:///{tmp_path / 'medibot.db'}")
        db.create_tables()
        db.dispose()
        assert (tmp_path / "medibot.db").exists()


class TestConstraints:
    def test_one_pending_appointment_per_patient_doctor_day(self, db, patient, doctor):
        with db.session() as session:
            session.add(_appointment(patient, doctor))
            session.commit()
            session.add(_appointment(patient, doctor))
            with pytest.raises(IntegrityError):
                session.commit()

    def test_cancelled_rows_do_not_block_a_pending_one(self, db, patient, doctor):
        with db.session() as session:
            session.add(_appointment(patient, doctor, AppointmentStatus.CANCEL))
            session.add(_appointment(patient, doctor, AppointmentStatus.CANCEL))
            session.add(_appointment(patient, doctor))
            session.commit()
            assert AppointmentStore.count_pending_for_doctor(session, doctor.id, date(2026, 10, 22)) == 1

    def test_one_pending_appointment_per_doctor_slot(self, db, add_patient, doctor):
        first, second = add_patient(), add_patient()
        with db.session() as session:
            session.add(_appointment(first, doctor, slot=1))
            session.commit()
            session.add(_appointment(second, doctor, slot=1))
            with pytest.raises(IntegrityError):
                session.commit()

    def test_different_slots_share_a_day(self, db, add_patient, doctor):
        first, second = add_patient(), add_patient()
        with db.session() as session:
            session.add(_appointment(first, doctor, slot=1))
            session.add(_appointment(second, doctor, slot=2))
            session.commit()
            assert AppointmentStore.count_pending_for_doctor(session, doctor.id, date(2026, 10, 22)) == 2

    def test_patient_email_is_unique(self, db, add_patient):
        add_patient(email="same@example.com")
        with pytest.raises(IntegrityError):
            add_patient(email="same@example.com")


class TestStore:
    def test_find_doctor_by_name_and_phone(self, db, doctor):
        with db.session() as session:
            assert DoctorStore.find_by_name_and_phone(session, "Asha Rao", "9876543210").id == doctor.id
            assert DoctorStore.find_by_name_and_phone(session, "Asha Rao", "0000000000") is None

    def test_push_and_pull_references(self, db, patient):
        with db.session() as session:
            stored = PatientStore.get(session, patient.id)
            PatientStore.push_appointment(session, stored, "a1")
            PatientStore.push_appointment(session, stored, "a2")
            session.commit()
        with db.session() as session:
            stored = PatientStore.get(session, patient.id)
            assert stored.appointment_ids == ["a1", "a2"]
            PatientStore.pull_appointment(session, stored, "a1")
            session.commit()
        with db.session() as session:
            assert PatientStore.get(session, patient.id).appointment_ids == ["a2"]

    def test_free_slot_skips_pending_and_reuses_cancelled(self, db, add_patient, doctor):
        day = date(2026, 10, 22)
        cancelled, holder, latecomer = add_patient(), add_patient(), add_patient()
        with db.session() as session:
            session.add(_appointment(cancelled, doctor, AppointmentStatus.CANCEL, slot=1))
            session.add(_appointment(holder, doctor, slot=2))
            session.commit()
            assert AppointmentStore.free_slot(session, doctor.id, day, 2) == 1
            assert AppointmentStore.free_slot(session, doctor.id, day, 1) == 1
            session.add(_appointment(latecomer, doctor, slot=1))
            session.commit()
            assert AppointmentStore.free_slot(session, doctor.id, day, 2) is None

    def test_find_pending_ignores_cancelled(self, db, patient, doctor):
        with db.session() as session:
            session.add(_appointment(patient, doctor, AppointmentStatus.CANCEL))
            session.commit()
            assert AppointmentStore.find_pending(session, patient.id, date(2026, 10, 22)) is None


class TestSeed:
    def test_seed_inserts_sample_data_once(self, db):
        assert seed_database(db) is True
        assert seed_database(db) is False
        with db.session() as session:
            assert len(session.exec(select(Doctor)).all()) == 1
            patient = session.exec(select(Patient)).one()
            assert [r.name for r in patient.reports] == ["Blood Test", None]


class TestInstants:
    def test_booked_appointment_reads_back_as_naive_utc(self, db, service, patient, doctor):
        booked = service.book_appointment(patient.id, doctor.name, doctor.phone, "2026-10-22")
        assert booked.ok

        with db.session() as session:
            stored = session.get(Appointment, booked.value["appointment_id"])
            # 10:00 IST
            assert stored.scheduled_at == datetime(2026, 10, 22, 4, 30)
            assert stored.scheduled_at.tzinfo is None
            assert stored.day == date(2026, 10, 22)

    def test_cancellation_instant_round_trips(self, db, add_doctor):
        doctor = add_doctor(blackout=[datetime(2026, 10, 22, 0, 0, tzinfo=IST)])
        with db.session() as session:
            stored = DoctorStore.get(session, doctor.id)
            assert [c.cancelled_on for c in stored.cancellations] == [datetime(2026, 10, 21, 18, 30)]
            assert DoctorSchedule.from_doctor(stored).blackout_days == frozenset({date(2026, 10, 22)})

    def test_aware_values_from_the_driver_are_accepted(self):
        aware = datetime(2026, 10, 22, 4, 30, tzinfo=UTC)
        assert from_storage(aware) == datetime(2026, 10, 22, 10, 0, tzinfo=IST)
