"""CLI entry point for MediBot.

A terminal chat loop for development.  It talks to the same agent and
database as the API server but skips cookie authentication: the patient
is chosen with ``--patient-id``.  For production, use the FastAPI server
(medibot/server.py).

Usage:
    python -m medibot.main --seed                 # create sample data, print ids
    python -m medibot.main --patient-id <ID>      # chat as that patient
    python -m medibot.main --patient-id <ID> --debug
"""

from __future__ import annotations

import argparse
import logging

from dotenv import load_dotenv
from langchain_core.messages import HumanMessage
from sqlmodel import select

from medibot.agent import create_medibot_agent, extract_reply
from medibot.config import DATABASE_URL, DB_ECHO
from medibot.models import Doctor, Patient
from medibot.prompts import build_patient_message
from medibot.services.appointments import AppointmentService
from medibot.services.database import Database, open_database, seed_database
from medibot.services.store import PatientStore

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )
    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("medibot").setLevel(logging.DEBUG if debug else logging.INFO)


def _print_directory(db: Database) -> None:
    with db.session() as session:
        for doctor in session.exec(select(Doctor)).all():
            print(f"  Doctor  {doctor.name} ({doctor.specialization}) phone {doctor.phone}")
        for patient in session.exec(select(Patient)).all():
            print(f"  Patient {patient.name} id {patient.id}")


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="MediBot CLI")
    parser.add_argument("--patient-id", help="Chat as this patient")
    parser.add_argument("--seed", action="store_true", help="Insert sample data if the database is empty")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    db = open_database(DATABASE_URL, echo=DB_ECHO)
    try:
        if args.seed:
            seed_database(db)
            _print_directory(db)
        if not args.patient_id:
            if not args.seed:
                parser.error("--patient-id is required to chat")
            return

        with db.session() as session:
            patient = PatientStore.get(session, args.patient_id)
        if patient is None:
            parser.error(f"No patient with id {args.patient_id}")

        _chat(db, patient.id, patient.name)
    finally:
        db.dispose()


def _chat(db: Database, patient_id: str, patient_name: str) -> None:
    print("\n" + "=" * 60)
    print("  MediBot - CLI Chat")
    print("=" * 60)
    print(f"  Chatting as {patient_name}. Type 'quit' to exit.")
    print("=" * 60 + "\n")

    agent = create_medibot_agent(AppointmentService(db))

    while True:
        try:
            user_input = input("You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            break

        if not user_input:
            continue

        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye! Take care!")
            break

        try:
            result = agent.invoke({
                "messages": [HumanMessage(content=build_patient_message(user_input, patient_name, patient_id))],
                "llm_calls": 0,
            })
            reply = extract_reply(result)
            if reply is None:
                print("MediBot: I'm sorry, I wasn't able to generate a response. Please try again.\n")
                continue
            print(f"\nMediBot: {reply}\n")

        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break
        except Exception as e:
            logger.exception("Error processing message")
            print(f"\nMediBot: I'm sorry, something went wrong: {e}\n")


if __name__ == "__main__":
    main()
