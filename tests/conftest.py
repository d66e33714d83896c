"""Pytest fixtures for driving sessions over in-memory streams."""

from __future__ import annotations

import io
from typing import Any, Callable, Mapping, Optional

import pytest

from pyswank.commands import SwankCommands
from pyswank.dispatcher import Dispatcher
from pyswank.framing import decode
from pyswank.literals import keyword_name, normalize
from pyswank.runtime import PythonRuntime
from pyswank.session import Session


class Transcript(io.BytesIO):
    """Byte sink that keeps its contents after the session closes it."""

    def close(self) -> None:
        pass


def frame(text: str) -> bytes:
    """Frame raw S-expression text the way a client would."""
    data = text.encode("utf-8")
    return f"{len(data):06x}".encode("ascii") + data


def client_stream(*texts: str) -> io.BytesIO:
    return io.BytesIO(b"".join(frame(text) for text in texts))


def rex(form: str, request_id: int, package: str = '"__swank__"') -> str:
    return f"(:emacs-rex {form} {package} t {request_id})"


def read_messages(data: bytes) -> list[Any]:
    """Decode every frame in ``data`` and normalize it."""
    stream = io.BytesIO(data)
    messages = []
    while True:
        message = decode(stream)
        if message is None:
            return messages
        messages.append(normalize(message))


def tag(message: list[Any]) -> Optional[str]:
    return keyword_name(message[0])


def tags(messages: list[list[Any]]) -> list[Optional[str]]:
    return [tag(message) for message in messages]


class SessionDriver:
    """Run a whole session against a scripted client."""

    def __init__(self, handlers: Mapping[str, Callable[..., Any]]) -> None:
        self.handlers = handlers
        self.transcript = Transcript()
        self.session: Optional[Session] = None

    def run(self, *texts: str) -> list[Any]:
        self.session = Session(
            client_stream(*texts),
            self.transcript,
            Dispatcher(self.handlers),
        )
        self.session.run()
        return read_messages(self.transcript.getvalue())


@pytest.fixture
def runtime() -> PythonRuntime:
    return PythonRuntime()


@pytest.fixture
def commands(runtime: PythonRuntime) -> SwankCommands:
    return SwankCommands(runtime)


@pytest.fixture
def drive(commands: SwankCommands) -> Callable[..., list[Any]]:
    """Run scripted client texts through a session; extra handlers merge in."""

    def _drive(*texts: str, extra: Optional[Mapping[str, Callable[..., Any]]] = None) -> list[Any]:
        handlers = dict(commands.handlers)
        handlers.update(extra or {})
        return SessionDriver(handlers).run(*texts)

    return _drive
