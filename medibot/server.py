"""FastAPI server for MediBot.

Run with:
    uvicorn medibot.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from medibot.agent import create_medibot_agent
from medibot.api.auth import ChatAPIError
from medibot.api.routes import router
from medibot.api.schemas import ChatResponse
from medibot.config import CORS_ORIGINS, DATABASE_URL, DB_ECHO, SERVER_HOST, SERVER_PORT
from medibot.services.appointments import AppointmentService
from medibot.services.database import open_database

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Open the database and compile the agent once; close the database on exit."""
    logger.info("Connecting to database…")
    db = open_database(DATABASE_URL, echo=DB_ECHO)
    application.state.db = db

    logger.info("Compiling LangGraph agent…")
    application.state.agent = create_medibot_agent(AppointmentService(db))
    logger.info("Agent ready.")
    try:
        yield
    finally:
        application.state.agent = None
        application.state.db = None
        db.dispose()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="MediBot",
    description=(
        "AI medical help assistant — book and cancel appointments, "
        "update contact details, list appointments and reports."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS (patient portal sends the session cookie) ───────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a unique request ID to every request for log correlation.

    The ID is echoed in the ``X-Request-ID`` response header.
    """
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(ChatAPIError)
async def chat_api_error_handler(request: Request, exc: ChatAPIError):
    return JSONResponse(
        status_code=exc.status_code,
        content=ChatResponse(success=False, message=exc.message).model_dump(),
    )


def _describe_validation_error(error: dict) -> str:
    field = ".".join(str(part) for part in error["loc"] if part != "body") or "body"
    return f"{field}: {error['msg']}"


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Report body validation failures in the same envelope as other errors."""
    problems = "; ".join(_describe_validation_error(error) for error in exc.errors())
    return JSONResponse(
        status_code=422,
        content=ChatResponse(success=False, message=f"Invalid request. {problems}").model_dump(),
    )


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {"success": True, "message": "Hello From AI API server"}


if __name__ == "__main__":
    logger.info("Starting MediBot API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "medibot.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
