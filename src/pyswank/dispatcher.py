"""Command dispatch and outcome classification.

Each request runs exactly one handler inside a protected boundary whose
outcome is classified once:

* ``Success``: the handler returned a value.
* ``Failure``: the handler raised an ``Exception``; the debugger takes over.
* ``Interrupted``: a ``KeyboardInterrupt``; control goes straight back to the
  top level through the session's escape handle.

Any other ``BaseException`` is not ours to handle and propagates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional, Union

from . import messages
from .call_chain import CallChain
from .debugger import Debugger
from .exceptions import FramingError, UnknownCommandError
from .literals import normalize, symbol_name
from .streams import InputSource, OutputSink

if TYPE_CHECKING:
    from .session import Session

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]


@dataclass
class CommandContext:
    """What a handler may use besides its arguments.

    Attributes:
        session: The session the request arrived on.
        level: Debugger nesting depth of the loop that read the request.
        package: Package (namespace) name sent with the request, if any.
        stdout: Stream whose writes become ``:write-string`` messages.
        stdin: Stream that prompts the client with ``:read-string``.
    """

    session: "Session"
    level: int
    package: Optional[str]
    stdout: OutputSink
    stdin: InputSource


@dataclass(frozen=True)
class Success:
    value: Any


@dataclass(frozen=True)
class Failure:
    error: Exception
    chain: CallChain = field(default_factory=CallChain)


@dataclass(frozen=True)
class Interrupted:
    interrupt: KeyboardInterrupt


Outcome = Union[Success, Failure, Interrupted]


class Dispatcher:
    """Run command handlers on behalf of a session.

    Args:
        handlers: Mapping of protocol command name to handler. Handlers are
            called as ``handler(ctx, *args)``.
        debugger: Debug escalation protocol to use on failure.
    """

    def __init__(
        self,
        handlers: Mapping[str, Handler],
        debugger: Optional[Debugger] = None,
    ) -> None:
        self._handlers: Mapping[str, Handler] = MappingProxyType(dict(handlers))
        self.debugger = debugger or Debugger()

    @property
    def handlers(self) -> Mapping[str, Handler]:
        return self._handlers

    def dispatch(
        self,
        session: "Session",
        form: list[Any],
        package: Optional[str],
        request_id: Any,
        level: int,
    ) -> None:
        """Handle one ``:emacs-rex`` request and send its reply.

        A request that does not complete normally, because the debugger was
        escaped or the peer went away, is answered with ``(:return (:abort))``
        while it unwinds.
        """
        completed = False
        try:
            outcome = self.invoke(session, form, package, level)
            if isinstance(outcome, Success):
                try:
                    session.send(messages.ok(outcome.value, request_id))
                    completed = True
                except FramingError as exc:
                    logger.warning("Reply to request %r cannot be framed: %s", request_id, exc)
                    outcome = Failure(exc, CallChain.capture(exc))
            if isinstance(outcome, Interrupted):
                logger.info("Request %r interrupted", request_id)
                session.escape()
            elif isinstance(outcome, Failure):
                session.most_recent_call_chain = outcome.chain
                self.debugger.escalate(session, outcome, request_id, level + 1)
        finally:
            if not completed:
                session.send(messages.abort(request_id))

    def invoke(
        self,
        session: "Session",
        form: list[Any],
        package: Optional[str],
        level: int,
    ) -> Outcome:
        """Normalize a request form, run the handler it names and classify the result."""
        stdout = OutputSink(session.send)
        stdin = InputSource(lambda: session.request_input(level))
        ctx = CommandContext(session, level, package, stdout, stdin)
        try:
            form = normalize(form)
            handler = self._lookup(form[0])
            value = handler(ctx, *form[1:])
        except KeyboardInterrupt as exc:
            return Interrupted(exc)
        except Exception as exc:  # noqa: BLE001 - every handler error goes to the debugger
            logger.debug("Command %r failed: %r", form, exc)
            return Failure(exc, CallChain.capture(exc))
        return Success(value)

    def _lookup(self, name: Any) -> Handler:
        text = symbol_name(name)
        handler = self._handlers.get(text) if text is not None else None
        if handler is None:
            raise UnknownCommandError(str(name))
        return handler
