"""Text streams that route evaluated code's I/O through the protocol."""

from __future__ import annotations

import io
from typing import Any, Callable, Optional

from . import messages


class OutputSink(io.TextIOBase):
    """Writable text stream that sends every write as a ``:write-string``.

    Args:
        send: Callable that frames and sends one message.
    """

    def __init__(self, send: Callable[[Any], None]) -> None:
        super().__init__()
        self._send = send

    @property
    def encoding(self) -> str:
        return "utf-8"

    def writable(self) -> bool:
        return True

    def write(self, text: str) -> int:
        if not isinstance(text, str):
            raise TypeError(f"write() argument must be str, not {type(text).__name__}")
        if text:
            self._send(messages.write_string(text))
        return len(text)

    def flush(self) -> None:
        pass


class InputSource(io.TextIOBase):
    """Readable text stream fed by the remote client.

    Reads are served from the last string the client returned. Once that
    string is used up, one read reports end of input by returning ``""``.
    The read after that calls ``request``, which asks the client for more
    input and blocks until it answers. A ``None`` or empty answer is also
    end of input.

    Args:
        request: Callable returning the client's next string, or None.
    """

    def __init__(self, request: Callable[[], Optional[str]]) -> None:
        super().__init__()
        self._request = request
        self._buffer = ""
        self._position = 0

    @property
    def encoding(self) -> str:
        return "utf-8"

    def readable(self) -> bool:
        return True

    def pending(self) -> str:
        """Buffered text not yet consumed."""
        return self._buffer[self._position:]

    def _fill(self) -> bool:
        if self._position < len(self._buffer):
            return True
        if self._buffer:
            # Exhausted reply: end of input once, then ask again.
            self._buffer = ""
            self._position = 0
            return False
        reply = self._request()
        self._buffer = reply or ""
        self._position = 0
        return bool(self._buffer)

    def read(self, size: Optional[int] = -1) -> str:
        if size == 0 or not self._fill():
            return ""
        end = len(self._buffer) if size is None or size < 0 else self._position + size
        chunk = self._buffer[self._position:end]
        self._position += len(chunk)
        return chunk

    def readline(self, size: Optional[int] = -1) -> str:
        if size == 0 or not self._fill():
            return ""
        newline = self._buffer.find("\n", self._position)
        end = len(self._buffer) if newline < 0 else newline + 1
        if size is not None and size >= 0:
            end = min(end, self._position + size)
        line = self._buffer[self._position:end]
        self._position = end
        return line
