"""Per-connection protocol state and the request event loop.

Waiting on the client, whether for a debugger command or for a line of input,
is done by calling ``Session.serve`` again from inside the command that needs
the answer. The Python call stack is therefore the stack of suspended
sessions: the innermost ``serve`` is the one reading.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, BinaryIO, NoReturn, Optional

from sexpdata import Symbol

from . import messages
from .call_chain import CallChain
from .exceptions import MalformedPayloadError, ProtocolError, TopLevelEscape
from .framing import decode, dumps, encode

if TYPE_CHECKING:
    from .dispatcher import Dispatcher

logger = logging.getLogger(__name__)

_IGNORED_TAGS = {str(messages.EMACS_INTERRUPT), str(messages.EMACS_PONG)}


class EscapeHandle:
    """Reusable target for unwinding to a session's outermost loop.

    Calling the handle raises ``TopLevelEscape``; only the session that owns
    the handle stops it, after every nested level's cleanup has run.
    """

    def __call__(self) -> NoReturn:
        raise TopLevelEscape(self)

    def owns(self, exc: TopLevelEscape) -> bool:
        return exc.handle is self


class Session:
    """Protocol state for one accepted connection.

    Attributes:
        most_recent_call_chain: Chain captured by the last evaluation failure.
        escape: The session's escape handle.
        closed: True once the peer has gone away.
    """

    def __init__(self, reader: BinaryIO, writer: BinaryIO, dispatcher: "Dispatcher") -> None:
        self._reader = reader
        self._writer = writer
        self.dispatcher = dispatcher
        self.most_recent_call_chain = CallChain()
        self.escape = EscapeHandle()
        self.closed = False

    def send(self, message: Any) -> None:
        """Frame and write one message; a no-op once the session is closed."""
        if self.closed:
            logger.debug("Dropping message for closed session: %r", message)
            return
        frame = encode(message)
        logger.debug("--> %s", frame)
        try:
            self._writer.write(frame)
            self._writer.flush()
        except OSError as exc:
            logger.info("Connection lost while writing: %s", exc)
            self.closed = True

    def receive(self) -> Optional[Any]:
        """Read the next well-formed message, or None at end of stream.

        Unreadable frames are answered with a reader error and skipped.
        """
        while True:
            try:
                message = decode(self._reader)
            except MalformedPayloadError as exc:
                logger.warning("Malformed packet %r: %s", exc.packet, exc.original_error)
                self.send(messages.reader_error(exc.packet, str(exc)))
                continue
            if message is not None:
                logger.debug("<-- %r", message)
            return message

    def serve(self, level: int = 0) -> Optional[str]:
        """Handle requests until a string return arrives or the peer leaves.

        Args:
            level: Debugger nesting depth of this loop.

        Returns:
            The string carried by an ``:emacs-return-string`` request, or None
            when the stream ended.
        """
        while True:
            message = self.receive()
            if message is None:
                self.closed = True
                return None
            tag = messages.tag_of(message)
            try:
                if tag == str(messages.EMACS_REX):
                    self._dispatch(message, level)
                elif tag == str(messages.EMACS_RETURN_STRING):
                    return _returned_string(message)
                elif tag in _IGNORED_TAGS:
                    logger.info("Ignoring %s while idle", tag)
                else:
                    raise ProtocolError(dumps(message), f"Unknown request tag: {tag}")
            except ProtocolError as exc:
                logger.warning("Protocol error: %s", exc)
                self.send(messages.reader_error(exc.packet, str(exc)))

    def request_input(self, level: int) -> Optional[str]:
        """Ask the client for a string and serve requests until it arrives."""
        self.send(messages.read_string(level))
        return self.serve(level)

    def run(self) -> None:
        """Serve the connection until the peer closes it."""
        logger.info("Session started")
        try:
            while not self.closed:
                try:
                    reply = self.serve(0)
                except TopLevelEscape as exc:
                    if not self.escape.owns(exc):
                        raise
                    logger.info("Returned to top level")
                    continue
                if reply is not None:
                    logger.warning("Ignoring string return with no pending read: %r", reply)
        finally:
            self.close()
        logger.info("Session closed")

    def close(self) -> None:
        self.closed = True
        for stream in (self._writer, self._reader):
            try:
                stream.close()
            except OSError:
                pass

    def _dispatch(self, message: list[Any], level: int) -> None:
        if len(message) != 5 or not isinstance(message[1], list) or not message[1]:
            raise ProtocolError(dumps(message), "Malformed :emacs-rex request")
        form, package, _thread, request_id = message[1:]
        package_name = None
        if isinstance(package, str) and not isinstance(package, Symbol):
            package_name = str(package)
        self.dispatcher.dispatch(self, form, package_name, request_id, level)


def _returned_string(message: list[Any]) -> str:
    value = message[-1] if len(message) > 1 else None
    if isinstance(value, Symbol) or not isinstance(value, str):
        return ""
    return value
