"""Wire forms of the messages exchanged with the client."""

from __future__ import annotations

from typing import Any, Optional

from sexpdata import Symbol

from .literals import keyword

# Requests
EMACS_REX = keyword("emacs-rex")
EMACS_RETURN_STRING = keyword("emacs-return-string")
EMACS_INTERRUPT = keyword("emacs-interrupt")
EMACS_PONG = keyword("emacs-pong")

# Replies and events
RETURN = keyword("return")
OK = keyword("ok")
ABORT = keyword("abort")
DEBUG = keyword("debug")
DEBUG_ACTIVATE = keyword("debug-activate")
DEBUG_RETURN = keyword("debug-return")
READ_STRING = keyword("read-string")
WRITE_STRING = keyword("write-string")
READER_ERROR = keyword("reader-error")

# There is one logical thread of control per session.
THREAD = True


def ok(value: Any, request_id: Any) -> list[Any]:
    return [RETURN, [OK, value], request_id]


def abort(request_id: Any) -> list[Any]:
    return [RETURN, [ABORT], request_id]


def debug(
    level: int,
    condition: list[Any],
    restarts: list[Any],
    frames: list[Any],
    request_id: Any,
) -> list[Any]:
    return [DEBUG, THREAD, level, condition, restarts, frames, [request_id]]


def debug_activate(level: int) -> list[Any]:
    return [DEBUG_ACTIVATE, THREAD, level, None]


def debug_return(level: int) -> list[Any]:
    return [DEBUG_RETURN, THREAD, level, None]


def read_string(level: int) -> list[Any]:
    return [READ_STRING, THREAD, level]


def write_string(text: str) -> list[Any]:
    return [WRITE_STRING, text]


def reader_error(packet: str, message: str) -> list[Any]:
    return [READER_ERROR, packet, message]


def tag_of(message: Any) -> Optional[str]:
    """Return the leading keyword of a decoded message as text."""
    if isinstance(message, list) and message:
        head = message[0]
        if isinstance(head, Symbol):
            return str(head)
    return None
