"""Process-wide database handle.

The engine is created once at startup (see the FastAPI lifespan in
``server.py``) and disposed once at shutdown.  Everything else borrows
sessions from the shared :class:`Database` instance that is passed in
explicitly.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from medibot import models

logger = logging.getLogger(__name__)


class Database:
    """Owns the SQLAlchemy engine and hands out sessions."""

    def __init__(self, url: str, *, echo: bool = False) -> None:
        self.url = url
        kwargs: dict = {"echo": echo}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise every session sees an empty DB
                kwargs["poolclass"] = StaticPool
        self._engine = create_engine(url, **kwargs)

    @property
    def engine(self):
        return self._engine

    def create_tables(self) -> None:
        """Create tables and indexes that do not exist yet."""
        SQLModel.metadata.create_all(self._engine)
        logger.info("Database tables ready (%s)", self._engine.url.render_as_string(hide_password=True))

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Yield a session; the caller commits, anything uncommitted is rolled back."""
        with Session(self._engine, expire_on_commit=False) as session:
            yield session

    def dispose(self) -> None:
        self._engine.dispose()
        logger.info("Database connections closed")


def open_database(url: str, *, echo: bool = False) -> Database:
    """Create the process-wide database and make sure the schema exists."""
    db = Database(url, echo=echo)
    db.create_tables()
    return db


def seed_database(db: Database) -> bool:
    """Insert a sample doctor and patient when the store is empty.

    Returns ``True`` if anything was inserted.
    """
    with db.session() as session:
        if session.exec(select(models.Doctor)).first() is not None:
            logger.info("Database already seeded.")
            return False

        doctor = models.Doctor(
            name="Asha Rao",
            phone="9876543210",
            specialization="General Physician",
            fees=500,
            availability=["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"],
            hours_start="10:00",
            hours_end="14:00",
            max_appointments_per_day=10,
        )
        patient = models.Patient(
            name="Rahul Mehta",
            email="rahul.mehta@example.com",
            phone="9123456780",
            reports=[
                models.PatientReport(position=0, name="Blood Test", link="https://reports.example.com/r/1"),
                models.PatientReport(position=1),
            ],
        )
        session.add(doctor)
        session.add(patient)
        session.commit()
        logger.info("Seeded doctor %s and patient %s", doctor.id, patient.id)
        return True
