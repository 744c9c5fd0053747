"""Packet codec for 512-byte command frames and tagged device responses.

Outbound frame layout::

    +------------------+-----+-------------------+----------------+
    | Command (ASCII)  | ':' | Argument          | Zero padding   |
    | len(command) B   | 1 B | len(argument) B   | to 512 bytes   |
    +------------------+-----+-------------------+----------------+

- The separator is present only when an argument is given.
- Raw data frames carry payload from offset 0 with no command or
  separator; the final chunk of a transfer may be shorter than 512 bytes.

Inbound response layout::

    +----------+----------------------------------+
    | Tag      | Value                            |
    | 4 bytes  | up to 252 bytes                  |
    +----------+----------------------------------+

- Tag: one of OKAY, FAIL, DATA, INFO, TEXT
- DATA value: 8 ASCII hex digits, the number of bytes to transfer
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from ..errors import MalformedLengthField

FRAME_SIZE = 512
MAX_RESPONSE_SIZE = 256  # largest bootloader response
TAG_SIZE = 4
SEPARATOR = b":"

_LENGTH_FIELD = re.compile(rb"[0-9a-fA-F]{8}")


class ResponseType(Enum):
    """Response tags sent by the bootloader."""

    OKAY = "OKAY"
    FAIL = "FAIL"
    DATA = "DATA"
    INFO = "INFO"
    TEXT = "TEXT"
    UNKNOWN = "UNKNOWN"


@dataclass
class Response:
    """A decoded device response.

    ``value`` is text when it decodes as UTF-8 and the raw bytes otherwise.
    ``length`` is only set for DATA responses.
    """

    type: ResponseType
    value: str | bytes = ""
    tag: bytes = b""
    length: int | None = None

    @property
    def text(self) -> str:
        if isinstance(self.value, bytes):
            return self.value.decode("utf-8", errors="replace")
        return self.value

    def __repr__(self) -> str:
        if self.type is ResponseType.DATA:
            return f"Response(DATA, length=0x{self.length:08x})"
        if self.type is ResponseType.UNKNOWN:
            return f"Response(UNKNOWN, tag={self.tag!r})"
        return f"Response({self.type.value}, value={self.value!r})"


def _to_bytes(value: str | bytes) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def encode_frame(
    command: str,
    argument: str | bytes | None = None,
    raw: bool = False,
) -> bytes:
    """Build a 512-byte outbound frame.

    Args:
        command: ASCII command name. Ignored for raw frames.
        argument: Optional text or bytes. For raw frames this is the payload.
        raw: Place ``argument`` at offset 0 with no command or separator.

    Returns:
        A zero-padded ``bytes`` object of exactly ``FRAME_SIZE`` bytes.

    Raises:
        ValueError: If the content does not fit in one frame.
    """
    if raw:
        content = _to_bytes(argument) if argument is not None else b""
    else:
        content = command.encode("ascii")
        if argument is not None:
            content += SEPARATOR + _to_bytes(argument)

    if len(content) > FRAME_SIZE:
        raise ValueError(
            f"Frame content must be at most {FRAME_SIZE} bytes, got {len(content)}"
        )
    return content + b"\x00" * (FRAME_SIZE - len(content))


def parse_length_field(value: bytes) -> int:
    """Parse the 8-hex-digit length carried by a DATA response."""
    field = value.rstrip(b"\x00")
    if not _LENGTH_FIELD.fullmatch(field):
        raise MalformedLengthField(value)
    return int(field, 16)


def decode_response(data: bytes) -> Response:
    """Decode a device response into a tagged :class:`Response`.

    Unrecognized tags are classified as ``ResponseType.UNKNOWN`` with the
    raw tag bytes kept for diagnostics rather than raising.

    Raises:
        MalformedLengthField: If a DATA value is not 8 hex digits.
    """
    data = bytes(data)
    tag = data[:TAG_SIZE]
    value = data[TAG_SIZE:]

    try:
        rtype = ResponseType(tag.decode("ascii"))
    except (UnicodeDecodeError, ValueError):
        rtype = ResponseType.UNKNOWN
    if rtype is ResponseType.UNKNOWN:
        return Response(type=rtype, value=value, tag=tag)

    if rtype is ResponseType.DATA:
        return Response(
            type=rtype, value=value, tag=tag, length=parse_length_field(value)
        )

    try:
        text: str | bytes = value.decode("utf-8")
    except UnicodeDecodeError:
        text = value
    return Response(type=rtype, value=text, tag=tag)
