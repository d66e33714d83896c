"""Debug escalation: turn a failed request into a nested debugger level."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from . import messages
from .call_chain import format_chain

if TYPE_CHECKING:
    from .dispatcher import Failure
    from .session import Session

logger = logging.getLogger(__name__)

RESTARTS = [["ABORT", "Return to top level."]]


def describe_condition(error: BaseException) -> list[Any]:
    """Build the ``(summary type-line extras)`` triple for a failure."""
    message = _message(error)
    name = type(error).__name__
    summary = f"{name}: {message}" if message else name
    location = _location(error)
    if location:
        summary = f"{location}: {summary}"
    return [summary, f"[Condition of type {type(error).__qualname__}]", None]


class Debugger:
    """Host a nested request loop for each failed evaluation."""

    def escalate(
        self,
        session: "Session",
        failure: "Failure",
        request_id: Any,
        level: int,
    ) -> None:
        """Announce the failure, serve the nested level, then close it.

        The ``:debug-return`` is sent on every way out of the level, including
        an escape that unwinds several levels at once.
        """
        frames = [list(entry) for entry in format_chain(failure.chain)]
        condition = describe_condition(failure.error)
        logger.info("Entering debugger level %d: %s", level, condition[0])
        session.send(messages.debug(level, condition, RESTARTS, frames, request_id))
        try:
            session.send(messages.debug_activate(level))
            while session.serve(level) is not None:
                logger.warning("Ignoring string return in debugger level %d", level)
        finally:
            logger.info("Leaving debugger level %d", level)
            session.send(messages.debug_return(level))


def _one_line(text: str) -> str:
    return " ".join(text.split())


def _message(error: BaseException) -> str:
    if isinstance(error, SyntaxError) and error.msg:
        return _one_line(error.msg)
    text = _one_line(str(error))
    if not text and error.args:
        text = _one_line(repr(error.args))
    return text


def _location(error: BaseException) -> Optional[str]:
    if isinstance(error, SyntaxError) and error.lineno is not None:
        filename = error.filename or "<unknown>"
        if error.offset:
            return f"{filename}:{error.lineno}:{error.offset}"
        return f"{filename}:{error.lineno}"
    return None
