"""Response interpreter: reads frames until the device gives a terminal answer.

After every outbound frame the host waits for a response. INFO and TEXT
frames are progress chatter that is shown to the user immediately, and
unrecognized tags are reported and skipped. OKAY, FAIL and DATA end the
wait.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Protocol, Union

from ..errors import InfoFrameLimitExceeded, ProtocolFailure
from .framing import MAX_RESPONSE_SIZE, ResponseType, decode_response

logger = logging.getLogger(__name__)

INVALID_PACKET = "INVALID PACKET!"


class Transport(Protocol):
    """Bidirectional byte channel to one device."""

    def write(self, data: bytes) -> int:
        ...

    def read(self, size: int) -> bytes:
        ...


@dataclass(frozen=True)
class Success:
    """OKAY: the command completed. ``message`` may be empty."""

    message: str = ""

    def raise_for_failure(self) -> Success:
        return self


@dataclass(frozen=True)
class Failure:
    """FAIL: the device rejected the command."""

    message: str = ""

    def raise_for_failure(self) -> Failure:
        raise ProtocolFailure(self.message)


@dataclass(frozen=True)
class TransferRequested:
    """DATA: the device is ready to exchange ``length`` bytes."""

    length: int

    def raise_for_failure(self) -> TransferRequested:
        return self


Outcome = Union[Success, Failure, TransferRequested]


def read_response(
    transport: Transport,
    output: Callable[[str], None] | None = None,
    max_info_frames: int | None = None,
) -> Outcome:
    """Read responses until the device sends OKAY, FAIL or DATA.

    Args:
        transport: Channel to read from; each read is bounded to 256 bytes.
        output: Receives INFO/TEXT values and invalid-packet notices.
        max_info_frames: Optional bound on non-terminal frames. ``None``
            waits for as long as the device keeps talking.

    Returns:
        The terminal outcome.

    Raises:
        MalformedLengthField: If a DATA response carries a bad length.
        InfoFrameLimitExceeded: If ``max_info_frames`` is exceeded.
        TransportFailure: If the read itself fails.
    """
    emit = output or (lambda text: None)
    skipped = 0

    while True:
        response = decode_response(transport.read(MAX_RESPONSE_SIZE))
        logger.debug("<- %r", response)

        if response.type is ResponseType.OKAY:
            return Success(response.text)
        elif response.type is ResponseType.FAIL:
            return Failure(response.text)
        elif response.type is ResponseType.DATA:
            return TransferRequested(response.length)
        elif response.type is ResponseType.INFO:
            emit(f"(bootloader) {response.text}")
        elif response.type is ResponseType.TEXT:
            emit(response.text)
        else:
            logger.warning("Invalid packet with tag %r", response.tag)
            emit(INVALID_PACKET)

        skipped += 1
        if max_info_frames is not None and skipped > max_info_frames:
            raise InfoFrameLimitExceeded(max_info_frames)


def send_and_receive(
    transport: Transport,
    frame: bytes,
    output: Callable[[str], None] | None = None,
    max_info_frames: int | None = None,
) -> Outcome:
    """Write one frame and wait for the device's terminal response."""
    transport.write(frame)
    return read_response(transport, output, max_info_frames)
