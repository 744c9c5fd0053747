"""Chunked bulk upload driven by the ``download`` command.

A transfer announces its total size, waits for the device to answer
DATA, then streams the image as raw 512-byte frames followed by one
short frame for any remainder. The device is told the exact length up
front, so the zero padding of the last frame is never interpreted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterator

from ..errors import LengthMismatch, UnexpectedResponse
from .commands import build_data_chunk, build_download
from .framing import FRAME_SIZE
from .interpreter import (
    Failure,
    Outcome,
    Success,
    TransferRequested,
    Transport,
    send_and_receive,
)

logger = logging.getLogger(__name__)


@dataclass
class TransferSession:
    """Bookkeeping for one download."""

    total_length: int
    chunk_size: int = FRAME_SIZE
    chunk_count: int = 0
    remainder: int = 0
    bytes_sent: int = 0
    requested_length: int | None = None


def plan_transfer(total_length: int, chunk_size: int = FRAME_SIZE) -> TransferSession:
    """Work out how many whole chunks and how large a tail a transfer needs."""
    chunk_count, remainder = divmod(total_length, chunk_size)
    return TransferSession(
        total_length=total_length,
        chunk_size=chunk_size,
        chunk_count=chunk_count,
        remainder=remainder,
    )


def iter_chunks(data: bytes, chunk_size: int = FRAME_SIZE) -> Iterator[bytes]:
    """Yield consecutive slices of ``data``; the last one may be short."""
    view = memoryview(data)
    for offset in range(0, len(view), chunk_size):
        yield bytes(view[offset : offset + chunk_size])


def download(
    transport: Transport,
    data: bytes,
    output: Callable[[str], None] | None = None,
    on_progress: Callable[[int, int], None] | None = None,
    verify_length: bool = True,
    max_info_frames: int | None = None,
) -> Outcome:
    """Send ``data`` to the device's download buffer.

    Args:
        transport: Channel to the device.
        data: The complete image.
        output: Receives bootloader chatter and status lines.
        on_progress: Called as ``(chunks_sent, total_chunks)`` after each
            whole chunk.
        verify_length: Abort if the device asks for a different length
            than the one announced. When off, a mismatch is only logged
            and the announced length is sent regardless.
        max_info_frames: Forwarded to the response interpreter.

    Returns:
        ``Success`` once every byte was accepted, or the first ``Failure``
        the device reported. A FAIL part way through stops the stream.

    Raises:
        LengthMismatch: If the echoed length differs and ``verify_length``.
        UnexpectedResponse: If the device answers out of turn.
    """
    emit = output or (lambda text: None)
    session = plan_transfer(len(data))

    outcome = send_and_receive(
        transport, build_download(session.total_length), emit, max_info_frames
    )
    if isinstance(outcome, Failure):
        return outcome
    if not isinstance(outcome, TransferRequested):
        raise UnexpectedResponse(outcome, "in reply to download")

    session.requested_length = outcome.length
    if outcome.length != session.total_length:
        if verify_length:
            raise LengthMismatch(session.total_length, outcome.length)
        logger.warning(
            "Device requested %d bytes, sending %d",
            outcome.length,
            session.total_length,
        )
    emit(f"Sending {outcome.length} bytes to client.")
    logger.info(
        "Transferring %d bytes (%d chunks + %d)",
        session.total_length,
        session.chunk_count,
        session.remainder,
    )

    result: Outcome = Success()
    for index, chunk in enumerate(iter_chunks(data, session.chunk_size)):
        result = send_and_receive(
            transport, build_data_chunk(chunk), emit, max_info_frames
        )
        session.bytes_sent += len(chunk)

        if isinstance(result, Failure):
            logger.info(
                "Transfer stopped after %d of %d bytes: %s",
                session.bytes_sent,
                session.total_length,
                result.message,
            )
            return result
        if isinstance(result, TransferRequested):
            raise UnexpectedResponse(result, "during data transfer")
        if index < session.chunk_count and on_progress is not None:
            on_progress(index + 1, session.chunk_count)

    logger.info("Transferred %d bytes", session.bytes_sent)
    return result
