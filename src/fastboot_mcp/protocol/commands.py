"""Command names and frame builders for the bootloader commands we speak.

Only a representative subset of the vendor command set is implemented:
``boot``, ``flash`` and ``getvar``, plus the ``download`` command that
precedes every bulk data transfer.
"""

from __future__ import annotations

from enum import Enum

from .framing import FRAME_SIZE, SEPARATOR, encode_frame

MAX_DOWNLOAD_SIZE = 0xFFFFFFFF


class Command(str, Enum):
    """Bootloader command names."""

    BOOT = "boot"
    FLASH = "flash"
    GETVAR = "getvar"
    DOWNLOAD = "download"


def build_command(command: Command, argument: str | None = None) -> bytes:
    """Build a 512-byte frame for a named command."""
    return encode_frame(command.value, argument)


def format_download_size(size: int) -> str:
    """Render a transfer size as 8 lowercase, zero-padded hex digits.

    Args:
        size: Number of bytes, 0 to 0xFFFFFFFF.
    """
    if not 0 <= size <= MAX_DOWNLOAD_SIZE:
        raise ValueError(f"Download size must be 0-0xFFFFFFFF, got {size}")
    return f"{size:08x}"


def build_boot() -> bytes:
    """Build a ``boot`` command for the image most recently downloaded."""
    return build_command(Command.BOOT)


def build_getvar(name: str) -> bytes:
    """Build a ``getvar:<name>`` command.

    Args:
        name: Bootloader variable, e.g. ``version`` or ``product``.
    """
    if not name:
        raise ValueError("Variable name must not be empty")
    return build_command(Command.GETVAR, name)


def build_flash(partition: str) -> bytes:
    """Build a ``flash:<partition>`` command.

    The image itself must already have been sent with ``download``.
    """
    if not partition:
        raise ValueError("Partition name must not be empty")
    return build_command(Command.FLASH, partition)


def build_download(size: int) -> bytes:
    """Build a ``download:<size>`` command announcing a transfer."""
    return build_command(Command.DOWNLOAD, format_download_size(size))


def build_data_chunk(chunk: bytes) -> bytes:
    """Build a raw data frame for one chunk of a transfer.

    Args:
        chunk: At most 512 bytes; only the last chunk may be shorter.
    """
    if len(chunk) > FRAME_SIZE:
        raise ValueError(
            f"Chunk must be at most {FRAME_SIZE} bytes, got {len(chunk)}"
        )
    return encode_frame("", chunk, raw=True)


def split_command(frame: bytes) -> tuple[str, str | None]:
    """Split a non-raw frame back into its command name and argument.

    Used for diagnostics; the device does the real parsing.
    """
    content = frame.rstrip(b"\x00")
    command, sep, argument = content.partition(SEPARATOR)
    return command.decode("ascii"), argument.decode("utf-8") if sep else None
