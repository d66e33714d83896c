"""TCP listener serving a single editor connection."""

from __future__ import annotations

import logging
import socket
import threading
from pathlib import Path
from typing import Optional

from .commands import SwankCommands
from .dispatcher import Dispatcher
from .port_discovery import remove_port_file, write_port_file
from .session import Session

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 4005


class SwankServer:
    """Accept one connection, serve it to completion, release the listener.

    Args:
        commands: Command table; a default one over a fresh runtime if omitted.
        host: Interface to bind.
        port: Port to bind; 0 picks an ephemeral port.
        port_file: Where to publish the bound port, if anywhere.
    """

    def __init__(
        self,
        commands: Optional[SwankCommands] = None,
        *,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        port_file: Optional[Path] = None,
    ) -> None:
        self.commands = commands or SwankCommands()
        self.host = host
        self.requested_port = port
        self.port_file = port_file
        self.actual_port: Optional[int] = None
        self.session: Optional[Session] = None
        self.ready = threading.Event()
        self._listener: Optional[socket.socket] = None
        self._running = False
        self._stopping = False

    def start(self) -> None:
        """Bind, serve one connection and return once it closes (blocking)."""
        self._running = True
        self._stopping = False
        try:
            with self._create_listener() as listener:
                self._listener = listener
                self.actual_port = listener.getsockname()[1]
                logger.info("Listening on %s:%d", self.host, self.actual_port)
                self._write_port_file()
                self.ready.set()
                try:
                    connection, address = listener.accept()
                except OSError:
                    if self._stopping:
                        logger.info("Stopped before a connection arrived")
                        return
                    raise
                logger.info("Accepted connection from %s:%d", *address[:2])
                with connection:
                    self._serve(connection)
        finally:
            self._listener = None
            self._running = False
            self.ready.set()
            if self.port_file is not None:
                remove_port_file(self.port_file)
            logger.info("Listener released")

    def stop(self) -> None:
        """Close the listener; unblocks a pending accept."""
        self._stopping = True
        listener = self._listener
        if listener is None:
            return
        try:
            listener.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        listener.close()

    def is_running(self) -> bool:
        """Check if server is running.

        Returns:
            True if running, False otherwise.
        """
        return self._running

    def get_port(self) -> Optional[int]:
        """Port the listener is bound to, once bound."""
        return self.actual_port

    def _serve(self, connection: socket.socket) -> None:
        reader = connection.makefile("rb")
        writer = connection.makefile("wb")
        self.session = Session(reader, writer, Dispatcher(self.commands.handlers))
        self.session.run()

    def _create_listener(self) -> socket.socket:
        try:
            return socket.create_server((self.host, self.requested_port), backlog=1)
        except OSError as exc:
            if self.requested_port == 0 or not _is_address_in_use(exc):
                raise
            logger.warning(
                "Port %d is occupied, binding an ephemeral port instead",
                self.requested_port,
            )
            return socket.create_server((self.host, 0), backlog=1)

    def _write_port_file(self) -> None:
        if self.port_file is None or self.actual_port is None:
            return
        try:
            write_port_file(self.actual_port, self.port_file)
        except OSError as exc:
            logger.warning("Could not write port file %s: %s", self.port_file, exc)


def _is_address_in_use(exc: OSError) -> bool:
    if exc.errno in {98, 48}:  # Linux and macOS
        return True
    return "Address already in use" in str(exc)
