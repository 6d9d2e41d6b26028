"""Patient authentication for the chat endpoint.

The patient portal issues an HS256 JWT on login and stores it in a cookie
(``AUTH_COOKIE_NAME``).  The token's ``id`` claim (or ``sub``) is the
patient id; the patient must still exist in the store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import jwt
from fastapi import Request

from medibot.config import AUTH_COOKIE_NAME, JWT_ALGORITHM, JWT_SECRET
from medibot.services.database import Database
from medibot.services.store import PatientStore

logger = logging.getLogger(__name__)


class ChatAPIError(Exception):
    """An error answered with the ``{success: false, message}`` envelope."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        if status_code is not None:
            self.status_code = status_code
        self.message = message
        super().__init__(message)


class AuthenticationError(ChatAPIError):
    """Raised before the agent runs when the caller is not a known patient."""

    status_code = 401


class ServiceUnavailableError(ChatAPIError):
    """Shared resources are not attached to the app yet (or any more)."""

    status_code = 503


@dataclass(frozen=True)
class AuthenticatedPatient:
    id: str
    name: str


def _get_database(request: Request) -> Database:
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise ServiceUnavailableError("The service is still starting up. Please try again in a moment.")
    return db


def decode_patient_id(token: str) -> str:
    """Return the patient id carried by *token* or raise ``AuthenticationError``."""
    try:
        claims = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError as exc:
        logger.info("Authentication error: %s", exc)
        raise AuthenticationError("Invalid or expired token.") from exc

    patient_id = claims.get("id") or claims.get("sub")
    if not patient_id:
        raise AuthenticationError("Invalid or expired token.")
    return str(patient_id)


def get_current_patient(request: Request) -> AuthenticatedPatient:
    """FastAPI dependency resolving the session cookie to a patient."""
    token = request.cookies.get(AUTH_COOKIE_NAME)
    if not token:
        raise AuthenticationError("Access denied. Please log in.")

    patient_id = decode_patient_id(token)
    db = _get_database(request)
    with db.session() as session:
        patient = PatientStore.get(session, patient_id)
        if patient is None:
            raise AuthenticationError("Patient not found.", status_code=404)
        return AuthenticatedPatient(id=patient.id, name=patient.name)
