"""Tagged results returned by the appointment operations.

Operations never raise past their boundary.  They return one of:

* :class:`Ok`    — success, with an optional payload and a human message
* :class:`Empty` — the lookup worked but there is nothing to show
* :class:`Err`   — a failure of a known :class:`ErrorKind`

Turning a result into text for the model is the job of the tool layer
(``medibot.tools.appointments.render_result``).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    VALIDATION_FAILED = "validation_failed"
    CONFLICT = "conflict"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class Ok:
    value: Any = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Empty:
    message: str

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    detail: str

    @property
    def ok(self) -> bool:
        return False


Result = Ok | Empty | Err
