"""Device session and the fastboot commands issued against it.

A :class:`DeviceSession` owns the transport for one connected device.
It starts out inactive, becomes active on :meth:`DeviceSession.connect`
(or :meth:`DeviceSession.attach`), and is closed on disconnect or
as soon as a transport operation fails, so later commands fail fast with
:class:`NoActiveSession` instead of touching a dead device.

Commands run strictly one at a time: each writes a frame and waits for
the device's terminal response before returning.
"""

from __future__ import annotations

import logging
from typing import Callable

from .errors import NoActiveSession, TransportFailure
from .protocol.commands import (
    build_boot,
    build_flash,
    build_getvar,
    split_command,
)
from .protocol.interpreter import (
    Failure,
    Outcome,
    Success,
    Transport,
    send_and_receive,
)
from .protocol.transfer import download
from .transport.usb_connection import DeviceInfo, USBConnection

logger = logging.getLogger(__name__)


class DeviceSession:
    """Commands against a single connected bootloader."""

    def __init__(
        self,
        transport: Transport | None = None,
        output: Callable[[str], None] | None = None,
        verify_length: bool = True,
        max_info_frames: int | None = None,
    ) -> None:
        self._transport = transport
        self._device_info: DeviceInfo | None = None
        self.output = output or (lambda text: None)
        self.verify_length = verify_length
        self.max_info_frames = max_info_frames

    @property
    def active(self) -> bool:
        return self._transport is not None

    @property
    def device_info(self) -> DeviceInfo | None:
        return self._device_info

    def connect(
        self,
        vendor_id: int | None = None,
        product_id: int | None = None,
        timeout_ms: int | None = None,
    ) -> DeviceInfo:
        """Open a USB bootloader and make it the session's device."""
        self.close()
        kwargs = {} if timeout_ms is None else {"timeout_ms": timeout_ms}
        connection = USBConnection(vendor_id, product_id, **kwargs)
        info = connection.open()
        self.attach(connection, info)
        return info

    def attach(self, transport: Transport, info: DeviceInfo | None = None) -> None:
        """Use an already opened transport."""
        self._transport = transport
        self._device_info = info

    def invalidate(self) -> None:
        """Forget the transport without trying to talk to it again."""
        if self._transport is not None:
            logger.info("Device session invalidated")
        self._transport = None
        self._device_info = None

    def close(self) -> None:
        """Close the transport, if it supports closing, and invalidate."""
        transport = self._transport
        self.invalidate()
        close = getattr(transport, "close", None)
        if close is not None:
            close()

    def _abandon(self) -> None:
        """Release a transport that just failed, ignoring further errors."""
        try:
            self.close()
        except TransportFailure as e:
            logger.warning("Error releasing failed device: %s", e)

    def _require(self) -> Transport:
        if self._transport is None:
            raise NoActiveSession()
        return self._transport

    def _report(self, outcome: Outcome) -> Outcome:
        if isinstance(outcome, Success):
            if outcome.message:
                self.output(outcome.message)
            self.output("Done")
        elif isinstance(outcome, Failure):
            self.output(f"Error: {outcome.message}")
        return outcome

    def send_command(self, frame: bytes) -> Outcome:
        """Send one command frame and return the device's terminal outcome.

        Raises:
            NoActiveSession: If no device is connected.
            TransportFailure: If the device went away; the transport is closed
                and the session invalidated before the error propagates.
        """
        transport = self._require()
        logger.debug("-> %s", split_command(frame))
        try:
            outcome = send_and_receive(
                transport, frame, self.output, self.max_info_frames
            )
        except TransportFailure:
            self._abandon()
            raise
        return self._report(outcome)

    def boot(self) -> Outcome:
        """Boot the image previously sent with :meth:`download`."""
        return self.send_command(build_boot())

    def getvar(self, name: str) -> Outcome:
        """Query a bootloader variable; the value is the outcome's message."""
        return self.send_command(build_getvar(name))

    def download(
        self,
        data: bytes,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> Outcome:
        """Transfer ``data`` into the device's download buffer."""
        transport = self._require()
        try:
            outcome = download(
                transport,
                data,
                output=self.output,
                on_progress=on_progress,
                verify_length=self.verify_length,
                max_info_frames=self.max_info_frames,
            )
        except TransportFailure:
            self._abandon()
            raise
        if isinstance(outcome, Failure):
            self._report(outcome)
        return outcome

    def flash(
        self,
        partition: str,
        image: bytes,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> Outcome:
        """Download ``image`` and write it to ``partition``.

        The ``flash`` command is only sent once the whole image was
        accepted; a failed download is returned as is.
        """
        frame = build_flash(partition)
        outcome = self.download(image, on_progress)
        if not isinstance(outcome, Success):
            logger.info("Not flashing %s: download did not complete", partition)
            return outcome
        logger.info("Flashing %d bytes to %s", len(image), partition)
        return self.send_command(frame)

