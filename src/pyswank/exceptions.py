"""Custom exceptions for the pyswank protocol engine."""

from __future__ import annotations


class SwankError(Exception):
    """Base class for protocol engine errors."""


class FramingError(SwankError):
    """Raised when a payload cannot be framed for the wire."""


class MalformedPayloadError(FramingError):
    """Raised when a frame body cannot be read as one S-expression."""

    def __init__(self, packet: str, original_error: Exception) -> None:
        self.packet = packet
        self.original_error = original_error
        super().__init__(f"Cannot read packet: {original_error}")


class ProtocolError(SwankError):
    """Raised when a well-formed message has an unknown request tag."""

    def __init__(self, packet: str, message: str) -> None:
        self.packet = packet
        super().__init__(message)


class UnknownCommandError(SwankError):
    """Raised when a request names a command with no registered handler."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Undefined command: {name}")


class NoRestartError(SwankError):
    """Raised when the client invokes a restart that does not exist."""

    def __init__(self, index: object) -> None:
        self.index = index
        super().__init__(f"No restart numbered {index}")


class TopLevelEscape(BaseException):
    """Unwind signal raised by an escape handle.

    Derives from BaseException so evaluated code that catches Exception
    cannot stop it on its way to the session's outermost loop.
    """

    def __init__(self, handle: object) -> None:
        self.handle = handle
        super().__init__("escape to top level")
