"""Side-channel file holding the port a server is listening on.

Clients that start the server with ``--port 0`` read the decimal port number
from this file once it appears.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def default_port_file() -> Path:
    """Path used when a port file is requested without a location."""
    return Path.home() / ".pyswank" / "port"


def write_port_file(port: int, port_file: Path) -> None:
    """Publish the port number.

    The number is written to a sibling temporary file first and moved into
    place, so readers never see a partial value.
    """
    port_file.parent.mkdir(parents=True, exist_ok=True)
    staging = port_file.with_name(f".{port_file.name}.{os.getpid()}")
    staging.write_text(f"{port}\n", encoding="ascii")
    os.replace(staging, port_file)
    logger.info("Port %d written to %s", port, port_file)


def read_port_file(port_file: Path) -> Optional[int]:
    """Port number from the file, or None if it is missing or not a port."""
    try:
        text = port_file.read_text(encoding="ascii").strip()
    except (OSError, UnicodeDecodeError):
        return None
    if not text.isdigit():
        return None
    port = int(text)
    return port if 1 <= port <= 65535 else None


def remove_port_file(port_file: Path) -> None:
    try:
        port_file.unlink()
    except FileNotFoundError:
        pass
