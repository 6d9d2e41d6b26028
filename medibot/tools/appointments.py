"""LangChain tools for appointment and patient-profile management.

Each tool wraps an :class:`~medibot.services.appointments.AppointmentService`
method and returns a human-readable string that the LLM can use to
formulate its answer.  Tools are built per service instance by
:func:`build_appointment_tools` so the database handle is passed in
rather than looked up globally.
"""

from __future__ import annotations

import json
import re

from langchain_core.tools import BaseTool, tool
from pydantic import BaseModel, Field

from medibot.services.appointments import AppointmentService
from medibot.services.results import Empty, Err, ErrorKind, Ok, Result

# Loose RFC 5322 subset; requires a dotted domain.
_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)


def _validate_email(email: str) -> str | None:
    """Return an error message if *email* looks invalid, else ``None``."""
    if not email or not email.strip():
        return "No email address was provided. Please ask the patient for their new email."
    email = email.strip()
    if not _EMAIL_RE.match(email):
        return (
            f'"{email}" does not look like a valid email address. '
            "Please ask the patient to double-check and provide a corrected email."
        )
    return None


def render_result(result: Result) -> str:
    """Turn a service result into the text the model sees."""
    if isinstance(result, Ok):
        if result.message:
            return result.message
        return json.dumps(result.value, ensure_ascii=False)
    if isinstance(result, Empty):
        return result.message
    if isinstance(result, Err):
        if result.kind is ErrorKind.UNEXPECTED:
            return f"Sorry, something went wrong on our side. {result.detail}"
        return result.detail
    raise TypeError(f"Unknown result type: {type(result).__name__}")


# ── Argument schemas ────────────────────────────────────────────────


class PatientIdInput(BaseModel):
    patient_id: str = Field(description="The unique ID of the patient")


class BookAppointmentInput(PatientIdInput):
    doctor_name: str = Field(description="The doctor's name")
    doctor_phone: str = Field(description="The doctor's 10-digit phone number")
    date: str = Field(description="Appointment date in YYYY-MM-DD format")


class CancelAppointmentInput(PatientIdInput):
    date: str = Field(description="The appointment date in YYYY-MM-DD format")


class UpdateNameInput(PatientIdInput):
    new_name: str = Field(description="The new name for the patient")


class UpdateEmailInput(PatientIdInput):
    new_email: str = Field(description="The new email for the patient")


class UpdatePhoneInput(PatientIdInput):
    new_phone: str = Field(description="The new 10-digit phone number")


# ── Tool factory ────────────────────────────────────────────────────


def build_appointment_tools(service: AppointmentService) -> list[BaseTool]:
    """Create the agent's tools bound to *service*."""

    @tool("book_appointment_tool", args_schema=BookAppointmentInput)
    def book_appointment(patient_id: str, doctor_name: str, doctor_phone: str, date: str) -> str:
        """Book an appointment with a doctor by providing patient id, doctor name,
        the doctor's phone number and the date. The time is always the doctor's
        first available hour. Bookings are only possible within the next 7 days."""
        return render_result(
            service.book_appointment(patient_id, doctor_name, doctor_phone, date)
        )

    @tool("cancel_appointment_tool", args_schema=CancelAppointmentInput)
    def cancel_appointment(patient_id: str, date: str) -> str:
        """Cancel an appointment by providing patient id and date."""
        return render_result(service.cancel_appointment(patient_id, date))

    @tool("update_patient_name", args_schema=UpdateNameInput)
    def update_patient_name(patient_id: str, new_name: str) -> str:
        """Update a patient's name by providing patient id and new name."""
        return render_result(service.update_name(patient_id, new_name))

    @tool("update_patient_email", args_schema=UpdateEmailInput)
    def update_patient_email(patient_id: str, new_email: str) -> str:
        """Update a patient's email by providing patient id and new email."""
        email_error = _validate_email(new_email)
        if email_error:
            return email_error
        return render_result(service.update_email(patient_id, new_email))

    @tool("update_patient_phone", args_schema=UpdatePhoneInput)
    def update_patient_phone(patient_id: str, new_phone: str) -> str:
        """Update a patient's phone number by providing patient id and new phone number."""
        return render_result(service.update_phone(patient_id, new_phone))

    @tool("view_patient_appointments", args_schema=PatientIdInput)
    def view_patient_appointments(patient_id: str) -> str:
        """Fetch all appointments for a patient by patient id."""
        return render_result(service.list_appointments(patient_id))

    @tool("view_patient_reports", args_schema=PatientIdInput)
    def view_patient_reports(patient_id: str) -> str:
        """Fetch all medical reports for a patient by patient id."""
        return render_result(service.list_reports(patient_id))

    return [
        book_appointment,
        cancel_appointment,
        update_patient_name,
        update_patient_email,
        update_patient_phone,
        view_patient_appointments,
        view_patient_reports,
    ]
