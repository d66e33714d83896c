"""Length-prefixed S-expression framing.

Each message on the wire is a six digit lowercase hexadecimal header holding
the UTF-8 byte length of the payload, immediately followed by the payload: one
S-expression in text form.
"""

from __future__ import annotations

import logging
import string
from typing import Any, BinaryIO, Optional

import sexpdata

from .exceptions import FramingError, MalformedPayloadError

logger = logging.getLogger(__name__)

HEADER_WIDTH = 6
MAX_PAYLOAD_SIZE = 16 ** HEADER_WIDTH - 1

_HEX_DIGITS = frozenset(string.hexdigits.encode("ascii"))


def dumps(payload: Any) -> str:
    """Render a payload in its canonical S-expression text form."""
    return sexpdata.dumps(payload)


def loads(text: str) -> Any:
    """Read one S-expression, keeping ``nil`` and ``t`` as raw symbols."""
    return sexpdata.loads(text, nil=None, true=None)


def encode(payload: Any) -> bytes:
    """Serialize a payload and prefix it with its byte length.

    Args:
        payload: Lists, symbols, strings and numbers to send.

    Returns:
        The complete frame, header included.

    Raises:
        FramingError: If the payload is larger than the header can describe.
    """
    data = dumps(payload).encode("utf-8")
    if len(data) > MAX_PAYLOAD_SIZE:
        raise FramingError(
            f"Payload of {len(data)} bytes exceeds the {MAX_PAYLOAD_SIZE} byte frame limit"
        )
    header = f"{len(data):0{HEADER_WIDTH}x}".encode("ascii")
    return header + data


def decode(stream: BinaryIO) -> Optional[Any]:
    """Read one frame from a byte stream.

    Args:
        stream: A readable binary stream.

    Returns:
        The decoded payload, or None once the peer has gone away: the stream
        ended, a read failed, or the header is not six hex digits.

    Raises:
        MalformedPayloadError: If the frame body is not one S-expression.
    """
    header = _read_exact(stream, HEADER_WIDTH)
    if header is None:
        return None
    if not all(byte in _HEX_DIGITS for byte in header):
        logger.warning("Rejecting frame with non-hex header %r", header)
        return None
    length = int(header, 16)
    data = _read_exact(stream, length)
    if data is None:
        logger.warning("Stream ended inside a %d byte frame", length)
        return None
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedPayloadError(data.decode("utf-8", errors="replace"), exc) from exc
    try:
        return loads(text)
    except Exception as exc:  # noqa: BLE001 - sexpdata has no common error base
        raise MalformedPayloadError(text, exc) from exc


def _read_exact(stream: BinaryIO, size: int) -> Optional[bytes]:
    chunks: list[bytes] = []
    remaining = size
    while remaining > 0:
        try:
            chunk = stream.read(remaining)
        except OSError as exc:
            logger.debug("Read failed: %s", exc)
            return None
        if not chunk:
            return None
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)
