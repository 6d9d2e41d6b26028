"""Appointment and patient-profile operations used by the agent's tools.

Every public method returns a tagged :mod:`~medibot.services.results`
value and never raises: store failures are logged and turned into an
``Err(ErrorKind.UNEXPECTED, ...)`` so that a failing tool is just another
observation for the model to reason about.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from medibot.config import APPOINTMENT_TAX
from medibot.models import Appointment, AppointmentStatus
from medibot.services.database import Database
from medibot.services.metrics import metrics
from medibot.services.results import Empty, Err, ErrorKind, Ok, Result
from medibot.services.scheduling import (
    DOCTOR_FULLY_BOOKED,
    DUPLICATE_APPOINTMENT,
    INVALID_DATE,
    DoctorSchedule,
    clinic_now,
    from_storage,
    parse_day,
    to_storage,
    validate_booking,
)
from medibot.services.store import AppointmentStore, DoctorStore, PatientStore

logger = logging.getLogger(__name__)

PATIENT_NOT_FOUND = "Patient not found."
DOCTOR_NOT_FOUND = "Doctor not found."
NO_ACTIVE_APPOINTMENT = "No active appointment found for this patient on the given date."
NO_APPOINTMENTS = "No appointments found for this patient."
NO_REPORTS = "No reports found for this patient."
INVALID_NAME = "Please provide a non-empty name."
INVALID_PHONE = "Please provide a valid 10-digit phone number."
EMAIL_IN_USE = "This email is already in use."
PHONE_IN_USE = "This phone number is already in use."

_PHONE_RE = re.compile(r"^\d{10}$")


class _SessionBookingLookup:
    """Answers the store-backed booking rules for one (patient, doctor) pair."""

    def __init__(self, session: Session, patient_id: str, doctor_id: str) -> None:
        self._session = session
        self._patient_id = patient_id
        self._doctor_id = doctor_id

    def has_pending_appointment(self, day: date) -> bool:
        existing = AppointmentStore.find_pending(
            self._session, self._patient_id, day, doctor_id=self._doctor_id,
        )
        return existing is not None

    def count_appointments(self, day: date) -> int:
        return AppointmentStore.count_pending_for_doctor(self._session, self._doctor_id, day)


def project_appointment(appointment: Appointment) -> dict:
    """The view of an appointment that is shown to patients."""
    return {
        "doctor": appointment.doctor_name,
        "date": from_storage(appointment.scheduled_at).date().isoformat(),
        "time": appointment.time,
        "status": AppointmentStatus(appointment.status).value,
        "specialization": appointment.specialization,
        "fees": appointment.fees,
    }


class AppointmentService:
    """Book, cancel and list appointments; update patient contact fields.

    Args:
        db: The process-wide database handle.
        tax: Tax amount copied onto every new appointment.
        clock: Returns "now" as an aware datetime (injectable for tests).
    """

    def __init__(
        self,
        db: Database,
        *,
        tax: float = APPOINTMENT_TAX,
        clock: Callable[[], datetime] = clinic_now,
    ) -> None:
        self._db = db
        self._tax = tax
        self._clock = clock

    # ── Error boundary ───────────────────────────────────────────────

    def _run(self, operation: str, failure: str, func: Callable[[], Result]) -> Result:
        """Execute *func*, record metrics, and convert any failure to ``Err``."""
        try:
            with metrics.track("database", operation):
                return func()
        except Exception:
            logger.exception("Error in %s", operation)
            return Err(ErrorKind.UNEXPECTED, failure)

    # ── Booking ──────────────────────────────────────────────────────

    def book_appointment(
        self, patient_id: str, doctor_name: str, doctor_phone: str, date: str,
    ) -> Result:
        """Book the doctor's first slot on *date* for the patient."""
        return self._run(
            "book_appointment",
            "Failed to book appointment. Please try again later.",
            lambda: self._book(patient_id, doctor_name, doctor_phone, date),
        )

    def _book(self, patient_id: str, doctor_name: str, doctor_phone: str, requested: str) -> Result:
        with self._db.session() as session:
            patient = PatientStore.get(session, patient_id)
            if patient is None:
                return Err(ErrorKind.NOT_FOUND, PATIENT_NOT_FOUND)

            doctor = DoctorStore.find_by_name_and_phone(
                session, doctor_name.strip(), doctor_phone.strip(),
            )
            if doctor is None:
                return Err(ErrorKind.NOT_FOUND, DOCTOR_NOT_FOUND)

            verdict = validate_booking(
                DoctorSchedule.from_doctor(doctor),
                requested,
                self._clock(),
                _SessionBookingLookup(session, patient.id, doctor.id),
            )
            if isinstance(verdict, Err):
                logger.info("Booking rejected for patient %s: %s", patient.id, verdict.detail)
                return verdict
            appointment_at: datetime = verdict.value
            day = appointment_at.date()

            slot = AppointmentStore.free_slot(session, doctor.id, day, doctor.max_appointments_per_day)
            if slot is None:
                return Err(ErrorKind.VALIDATION_FAILED, DOCTOR_FULLY_BOOKED)

            try:
                appointment = AppointmentStore.create(
                    session,
                    patient_id=patient.id,
                    patient_name=patient.name,
                    doctor_id=doctor.id,
                    doctor_name=doctor.name,
                    scheduled_at=to_storage(appointment_at),
                    day=day,
                    time=doctor.hours_start,
                    slot=slot,
                    status=AppointmentStatus.PENDING,
                    specialization=doctor.specialization,
                    fees=doctor.fees,
                    tax=self._tax,
                )
                PatientStore.push_appointment(session, patient, appointment.id)
                DoctorStore.push_appointment(session, doctor, appointment.id)
                session.commit()
            except IntegrityError:
                # Lost a race against a concurrent booking for the same day
                session.rollback()
                return self._explain_lost_race(session, patient_id, doctor, day)

            logger.info("Booked appointment %s with doctor %s", appointment.id, doctor.id)
            return Ok(
                value={"appointment_id": appointment.id, **project_appointment(appointment)},
                message=(
                    f"Appointment booked successfully with Dr. {doctor.name} on "
                    f"{appointment_at:%d %b %Y} at {doctor.hours_start}."
                ),
            )

    def _explain_lost_race(self, session: Session, patient_id: str, doctor, day: date) -> Result:
        """Name the index that refused the insert: the doctor's capacity or a duplicate."""
        booked = AppointmentStore.count_pending_for_doctor(session, doctor.id, day)
        if booked >= doctor.max_appointments_per_day:
            logger.info("Overbooking blocked by the store for doctor %s on %s", doctor.id, day)
            return Err(ErrorKind.VALIDATION_FAILED, DOCTOR_FULLY_BOOKED)
        logger.info("Duplicate booking blocked by the store for patient %s", patient_id)
        return Err(ErrorKind.CONFLICT, DUPLICATE_APPOINTMENT)

    # ── Cancellation ─────────────────────────────────────────────────

    def cancel_appointment(self, patient_id: str, date: str) -> Result:
        """Cancel the patient's Pending appointment on *date*."""
        return self._run(
            "cancel_appointment",
            "Failed to cancel appointment. Please try again later.",
            lambda: self._cancel(patient_id, date),
        )

    def _cancel(self, patient_id: str, requested: str) -> Result:
        with self._db.session() as session:
            patient = PatientStore.get(session, patient_id)
            if patient is None:
                return Err(ErrorKind.NOT_FOUND, PATIENT_NOT_FOUND)

            day = parse_day(requested)
            if day is None:
                return Err(ErrorKind.VALIDATION_FAILED, INVALID_DATE)

            appointment = AppointmentStore.find_pending(session, patient.id, day)
            if appointment is None:
                return Err(ErrorKind.NOT_FOUND, NO_ACTIVE_APPOINTMENT)

            doctor = DoctorStore.get(session, appointment.doctor_id)
            if doctor is None:
                return Err(ErrorKind.NOT_FOUND, DOCTOR_NOT_FOUND)

            PatientStore.pull_appointment(session, patient, appointment.id)
            DoctorStore.pull_appointment(session, doctor, appointment.id)
            AppointmentStore.set_status(session, appointment, AppointmentStatus.CANCEL)
            session.commit()

            logger.info("Cancelled appointment %s", appointment.id)
            return Ok(
                value=project_appointment(appointment),
                message=(
                    f"Appointment with Dr. {doctor.name} on {day:%d %b %Y} "
                    f"has been canceled successfully."
                ),
            )

    # ── Profile updates ──────────────────────────────────────────────

    def update_name(self, patient_id: str, new_name: str) -> Result:
        new_name = (new_name or "").strip()
        if not new_name:
            return Err(ErrorKind.VALIDATION_FAILED, INVALID_NAME)
        return self._run(
            "update_patient_name",
            "Failed to update patient name.",
            lambda: self._update_field(
                patient_id, "name", new_name,
                f"Patient name updated successfully to {new_name}.",
            ),
        )

    def update_email(self, patient_id: str, new_email: str) -> Result:
        new_email = new_email.strip()
        return self._run(
            "update_patient_email",
            "Failed to update patient email.",
            lambda: self._update_field(
                patient_id, "email", new_email,
                f"Patient email updated successfully to {new_email}.",
                conflict=EMAIL_IN_USE,
            ),
        )

    def update_phone(self, patient_id: str, new_phone: str) -> Result:
        """Update the phone number; the format is checked before touching the store."""
        new_phone = (new_phone or "").strip()
        if not _PHONE_RE.match(new_phone):
            return Err(ErrorKind.VALIDATION_FAILED, INVALID_PHONE)
        return self._run(
            "update_patient_phone",
            "Failed to update patient phone number.",
            lambda: self._update_field(
                patient_id, "phone", new_phone,
                f"Patient phone number updated successfully to {new_phone}.",
                conflict=PHONE_IN_USE,
            ),
        )

    def _update_field(
        self,
        patient_id: str,
        field: str,
        value: str,
        success: str,
        conflict: str | None = None,
    ) -> Result:
        with self._db.session() as session:
            patient = PatientStore.get(session, patient_id)
            if patient is None:
                return Err(ErrorKind.NOT_FOUND, PATIENT_NOT_FOUND)
            try:
                PatientStore.set_fields(session, patient, **{field: value})
                session.commit()
            except IntegrityError:
                if conflict is None:
                    raise
                session.rollback()
                return Err(ErrorKind.CONFLICT, conflict)
            return Ok(value={field: value}, message=success)

    # ── Listings ─────────────────────────────────────────────────────

    def list_appointments(self, patient_id: str) -> Result:
        """All appointments of the patient, any status, oldest first."""
        return self._run(
            "view_patient_appointments",
            "Failed to fetch appointments.",
            lambda: self._list_appointments(patient_id),
        )

    def _list_appointments(self, patient_id: str) -> Result:
        with self._db.session() as session:
            if PatientStore.get(session, patient_id) is None:
                return Err(ErrorKind.NOT_FOUND, PATIENT_NOT_FOUND)
            appointments = AppointmentStore.list_for_patient(session, patient_id)
            if not appointments:
                return Empty(NO_APPOINTMENTS)
            return Ok([project_appointment(a) for a in appointments])

    def list_reports(self, patient_id: str) -> Result:
        return self._run(
            "view_patient_reports",
            "Failed to fetch reports.",
            lambda: self._list_reports(patient_id),
        )

    def _list_reports(self, patient_id: str) -> Result:
        with self._db.session() as session:
            patient = PatientStore.get(session, patient_id)
            if patient is None:
                return Err(ErrorKind.NOT_FOUND, PATIENT_NOT_FOUND)
            if not patient.reports:
                return Empty(NO_REPORTS)
            return Ok([
                {
                    "reportNo": number,
                    "name": report.name or f"Report {number}",
                    "link": report.link or "#",
                }
                for number, report in enumerate(patient.reports, start=1)
            ])
