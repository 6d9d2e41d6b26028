"""Store access for patients, doctors and appointments.

Thin query helpers over a SQLModel ``Session``.  Nothing here commits;
the caller owns the transaction.
"""

from __future__ import annotations

from datetime import date

from sqlmodel import Session, func, select

from medibot.models import Appointment, AppointmentStatus, Doctor, Patient


def _append_ref(refs: list[str] | None, ref: str) -> list[str]:
    # Reassign instead of mutating so the JSON column is flagged dirty
    return [*(refs or []), ref]


def _remove_ref(refs: list[str] | None, ref: str) -> list[str]:
    return [r for r in (refs or []) if r != ref]


class PatientStore:
    """Patient lookups and field updates."""

    @staticmethod
    def get(session: Session, patient_id: str) -> Patient | None:
        return session.get(Patient, patient_id)

    @staticmethod
    def set_fields(session: Session, patient: Patient, **fields) -> Patient:
        for name, value in fields.items():
            setattr(patient, name, value)
        session.add(patient)
        session.flush()
        return patient

    @staticmethod
    def push_appointment(session: Session, patient: Patient, appointment_id: str) -> None:
        patient.appointment_ids = _append_ref(patient.appointment_ids, appointment_id)
        session.add(patient)

    @staticmethod
    def pull_appointment(session: Session, patient: Patient, appointment_id: str) -> None:
        patient.appointment_ids = _remove_ref(patient.appointment_ids, appointment_id)
        session.add(patient)


class DoctorStore:
    """Doctor lookups and appointment reference bookkeeping."""

    @staticmethod
    def get(session: Session, doctor_id: str) -> Doctor | None:
        return session.get(Doctor, doctor_id)

    @staticmethod
    def find_by_name_and_phone(session: Session, name: str, phone: str) -> Doctor | None:
        statement = select(Doctor).where(Doctor.name == name, Doctor.phone == phone)
        return session.exec(statement).first()

    @staticmethod
    def push_appointment(session: Session, doctor: Doctor, appointment_id: str) -> None:
        doctor.appointment_ids = _append_ref(doctor.appointment_ids, appointment_id)
        session.add(doctor)

    @staticmethod
    def pull_appointment(session: Session, doctor: Doctor, appointment_id: str) -> None:
        doctor.appointment_ids = _remove_ref(doctor.appointment_ids, appointment_id)
        session.add(doctor)


class AppointmentStore:
    """Appointment queries keyed by clinic calendar day."""

    @staticmethod
    def find_pending(
        session: Session, patient_id: str, day: date, doctor_id: str | None = None,
    ) -> Appointment | None:
        statement = select(Appointment).where(
            Appointment.patient_id == patient_id,
            Appointment.day == day,
            Appointment.status == AppointmentStatus.PENDING,
        )
        if doctor_id is not None:
            statement = statement.where(Appointment.doctor_id == doctor_id)
        return session.exec(statement.order_by(Appointment.scheduled_at)).first()

    @staticmethod
    def count_pending_for_doctor(session: Session, doctor_id: str, day: date) -> int:
        statement = select(func.count()).select_from(Appointment).where(
            Appointment.doctor_id == doctor_id,
            Appointment.day == day,
            Appointment.status == AppointmentStatus.PENDING,
        )
        return session.exec(statement).one()

    @staticmethod
    def free_slot(session: Session, doctor_id: str, day: date, max_slots: int) -> int | None:
        """Lowest slot in 1..max_slots not held by a Pending appointment, or ``None``."""
        statement = select(Appointment.slot).where(
            Appointment.doctor_id == doctor_id,
            Appointment.day == day,
            Appointment.status == AppointmentStatus.PENDING,
        )
        taken = set(session.exec(statement).all())
        return next((slot for slot in range(1, max_slots + 1) if slot not in taken), None)

    @staticmethod
    def list_for_patient(session: Session, patient_id: str) -> list[Appointment]:
        statement = select(Appointment).where(
            Appointment.patient_id == patient_id,
        ).order_by(Appointment.scheduled_at)
        return list(session.exec(statement).all())

    @staticmethod
    def create(session: Session, **fields) -> Appointment:
        appointment = Appointment(**fields)
        session.add(appointment)
        session.flush()
        return appointment

    @staticmethod
    def set_status(session: Session, appointment: Appointment, status: AppointmentStatus) -> None:
        appointment.status = status
        session.add(appointment)
