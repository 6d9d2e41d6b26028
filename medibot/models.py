"""Database models for the MediBot service.

Patients, doctors and appointments are explicit SQLModel tables.  Report
and cancellation records live in child tables; appointment references on
patients and doctors are ordered JSON lists of appointment ids.

Instants are stored as naive UTC in columns typed explicitly as
``DateTime(timezone=False)``.  ``Appointment.day`` holds the calendar
day in the clinic time zone so that "one Pending appointment per
(patient, doctor, day)" and the doctor's daily capacity (one Pending
appointment per numbered slot) are enforced by partial unique indexes.
"""

import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import JSON, Column, DateTime, Index, text
from sqlalchemy import Enum as SAEnum
from sqlmodel import Field, Relationship, SQLModel


def new_id() -> str:
    """Opaque record identity."""
    return uuid.uuid4().hex


class AppointmentStatus(str, Enum):
    PENDING = "Pending"
    CANCEL = "Cancel"


class Patient(SQLModel, table=True):
    """Patient record; email and phone are unique across patients."""

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str = Field(max_length=255)
    email: str = Field(index=True, unique=True, max_length=255)
    phone: str = Field(index=True, unique=True, max_length=10)
    appointment_ids: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    reports: list["PatientReport"] = Relationship(
        back_populates="patient",
        sa_relationship_kwargs={"order_by": "PatientReport.position"},
    )


class PatientReport(SQLModel, table=True):
    """A medical report attached to a patient.  Name and link may be absent."""

    id: str = Field(default_factory=new_id, primary_key=True)
    patient_id: str = Field(foreign_key="patient.id", index=True)
    position: int = Field(default=0)
    name: str | None = Field(default=None, max_length=255)
    link: str | None = Field(default=None)

    patient: Patient | None = Relationship(back_populates="reports")


class Doctor(SQLModel, table=True):
    """Doctor record.  Read-only here apart from the appointment references."""

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str = Field(index=True, max_length=255)
    phone: str = Field(index=True, max_length=10)
    specialization: str = Field(max_length=255)
    fees: float = Field(default=0)
    availability: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    hours_start: str = Field(description="Start of the available-hours window, HH:MM")
    hours_end: str = Field(description="End of the available-hours window, HH:MM")
    max_appointments_per_day: int = Field(default=1)
    appointment_ids: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    cancellations: list["DoctorCancellation"] = Relationship(back_populates="doctor")


class DoctorCancellation(SQLModel, table=True):
    """A day the doctor has blacked out, stored as a UTC instant."""

    id: str = Field(default_factory=new_id, primary_key=True)
    doctor_id: str = Field(foreign_key="doctor.id", index=True)
    cancelled_on: datetime = Field(sa_column=Column(DateTime(timezone=False), nullable=False))

    doctor: Doctor | None = Relationship(back_populates="cancellations")


class Appointment(SQLModel, table=True):
    """A booked appointment.  Doctor fields are copied at creation time."""

    __table_args__ = (
        Index(
            "uq_pending_appointment_per_day",
            "patient_id",
            "doctor_id",
            "day",
            unique=True,
            sqlite_where=text("status = 'Pending'"),
            postgresql_where=text("status = 'Pending'"),
        ),
        Index(
            "uq_pending_slot_per_doctor_day",
            "doctor_id",
            "day",
            "slot",
            unique=True,
            sqlite_where=text("status = 'Pending'"),
            postgresql_where=text("status = 'Pending'"),
        ),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    patient_id: str = Field(foreign_key="patient.id", index=True)
    patient_name: str
    doctor_id: str = Field(foreign_key="doctor.id", index=True)
    doctor_name: str
    scheduled_at: datetime = Field(
        sa_column=Column(DateTime(timezone=False), nullable=False, index=True),
        description="Appointment instant, naive UTC",
    )
    day: date = Field(index=True, description="Calendar day in the clinic time zone")
    time: str = Field(description="Doctor's start time, HH:MM")
    slot: int = Field(default=1, description="Place in the doctor's day, 1 .. max_appointments_per_day")
    status: AppointmentStatus = Field(
        default=AppointmentStatus.PENDING,
        sa_column=Column(
            SAEnum(
                AppointmentStatus,
                name="appointment_status",
                values_callable=lambda statuses: [s.value for s in statuses],
            ),
            nullable=False,
        ),
    )
    specialization: str
    fees: float = Field(default=0)
    tax: float = Field(default=0)
