"""Call chains captured when evaluation fails.

A chain is stored oldest frame first, the way Python tracebacks are ordered,
and shown most recent first: display index 0 is the frame that raised.
"""

from __future__ import annotations

import linecache
import reprlib
import sys
import traceback
from dataclasses import dataclass
from types import FrameType, TracebackType
from typing import Any, Optional

FRAME_MARKER = "[py] "

_PACKAGE_PREFIX = __name__.rpartition(".")[0] + "."

_value_repr = reprlib.Repr()
_value_repr.maxstring = 200
_value_repr.maxother = 200


def render_value(value: Any) -> str:
    """Short textual rendering of a local value."""
    try:
        return _value_repr.repr(value)
    except Exception:  # noqa: BLE001  # pylint: disable=broad-exception-caught
        return f"<unprintable {type(value).__name__}>"


@dataclass(frozen=True)
class CallFrame:
    """One entry of a call chain.

    Attributes:
        function: Name of the code object that was running.
        filename: File or pseudo-file the code came from.
        lineno: Line being executed.
        source: Text of that line, stripped.
        frame: The live frame, when the entry has inspectable locals.
    """

    function: str
    filename: str
    lineno: int
    source: str
    frame: Optional[FrameType] = None

    @property
    def inspectable(self) -> bool:
        return self.frame is not None

    def label(self) -> str:
        marker = FRAME_MARKER if self.inspectable else ""
        text = f"{self.function} ({self.filename}:{self.lineno})"
        if self.source:
            text = f"{text} {self.source}"
        return marker + text

    def locals(self) -> list[tuple[str, int, str]]:
        if self.frame is None:
            return []
        code = self.frame.f_code
        bindings = self.frame.f_locals
        if self.frame.f_locals is self.frame.f_globals:
            declared = [name for name in code.co_names if name in bindings]
        else:
            declared = list(code.co_varnames + code.co_cellvars + code.co_freevars)
        entries = []
        for slot, name in enumerate(declared):
            if name in bindings:
                entries.append((name, slot, render_value(bindings[name])))
        return entries


class CallChain:
    """Snapshot of the stack active when an exception was raised."""

    def __init__(self, frames: Optional[list[CallFrame]] = None) -> None:
        self._frames: list[CallFrame] = list(frames or [])

    def __len__(self) -> int:
        return len(self._frames)

    def __iter__(self):
        return iter(self._frames)

    @classmethod
    def capture(cls, exc: BaseException) -> "CallChain":
        """Build the chain for an exception.

        The traceback carried by the exception is used when there is one;
        otherwise the caller's live stack is walked.
        """
        if exc.__traceback__ is not None:
            frames = _frames_from_traceback(exc.__traceback__)
        else:
            frames = _frames_from_stack(sys._getframe(1))
        own = [entry for entry in frames if not _is_own_frame(entry)]
        if own:
            frames = own
        if isinstance(exc, SyntaxError) and exc.lineno is not None:
            frames.append(
                CallFrame(
                    function="<syntax>",
                    filename=exc.filename or "<unknown>",
                    lineno=exc.lineno,
                    source=(exc.text or "").strip(),
                )
            )
        return cls(frames)

    def displayed(self) -> list[CallFrame]:
        return list(reversed(self._frames))

    def frame(self, index: int) -> Optional[CallFrame]:
        """Frame at a display index, or None when out of range."""
        if isinstance(index, bool) or not isinstance(index, int):
            return None
        if not 0 <= index < len(self._frames):
            return None
        return self._frames[len(self._frames) - 1 - index]


def format_chain(chain: CallChain) -> list[tuple[int, str]]:
    """Number the chain most recent first and render each frame."""
    return [(index, entry.label()) for index, entry in enumerate(chain.displayed())]


def frame_locals(chain: CallChain, index: int) -> list[tuple[str, int, str]]:
    """List ``(name, slot, value_text)`` for the frame at a display index.

    Out-of-range indexes and frames without locals give an empty list.
    """
    entry = chain.frame(index)
    if entry is None:
        return []
    return entry.locals()


def frame_source_location(chain: CallChain, index: int) -> Optional[tuple[str, int]]:
    """Return ``(filename, line)`` for a frame whose source can be found."""
    entry = chain.frame(index)
    if entry is None:
        return None
    if not linecache.getline(entry.filename, entry.lineno):
        return None
    return entry.filename, entry.lineno


def _frames_from_traceback(tb: TracebackType) -> list[CallFrame]:
    frames = []
    for frame, lineno in traceback.walk_tb(tb):
        frames.append(_describe(frame, lineno))
    return frames


def _frames_from_stack(start: FrameType) -> list[CallFrame]:
    frames = []
    frame: Optional[FrameType] = start
    while frame is not None:
        frames.append(_describe(frame, frame.f_lineno))
        frame = frame.f_back
    frames.reverse()
    return frames


def _describe(frame: FrameType, lineno: int) -> CallFrame:
    filename = frame.f_code.co_filename
    source = linecache.getline(filename, lineno, frame.f_globals).strip()
    return CallFrame(
        function=frame.f_code.co_name,
        filename=filename,
        lineno=lineno,
        source=source,
        frame=frame,
    )


def _is_own_frame(entry: CallFrame) -> bool:
    if entry.frame is None:
        return False
    name = entry.frame.f_globals.get("__name__", "")
    return isinstance(name, str) and name.startswith(_PACKAGE_PREFIX)
