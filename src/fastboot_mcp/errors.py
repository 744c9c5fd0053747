"""Exception hierarchy for the fastboot client.

All errors derive from :class:`FastbootError` so callers can catch
everything the engine raises with a single except clause.
"""

from __future__ import annotations


class FastbootError(Exception):
    """Base exception for fastboot client errors."""


class TransportFailure(FastbootError):
    """A USB read or write was rejected, e.g. the device disconnected."""


class DeviceNotFound(TransportFailure):
    """No matching bootloader device, or it lacks bulk IN/OUT endpoints."""


class NoActiveSession(FastbootError):
    """A command was issued without a connected device."""

    def __init__(self, message: str = "No device connected.") -> None:
        super().__init__(message)


class ProtocolError(FastbootError):
    """The device and host disagree about the state of the conversation."""


class MalformedLengthField(ProtocolError):
    """A DATA response whose value is not 8 ASCII hex digits."""

    def __init__(self, value: bytes) -> None:
        self.value = value
        super().__init__(f"Malformed DATA length field: {value!r}")


class LengthMismatch(ProtocolError):
    """The device requested a different length than the one announced."""

    def __init__(self, expected: int, requested: int) -> None:
        self.expected = expected
        self.requested = requested
        super().__init__(
            f"Device requested {requested} bytes, announced {expected}"
        )


class InfoFrameLimitExceeded(ProtocolError):
    """Too many INFO/TEXT frames arrived without a terminal response."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(
            f"No terminal response after {limit} informational frames"
        )


class UnexpectedResponse(ProtocolError):
    """A terminal response that makes no sense at this point of a command."""

    def __init__(self, outcome: object, context: str) -> None:
        self.outcome = outcome
        super().__init__(f"Unexpected {outcome!r} {context}")


class ProtocolFailure(FastbootError):
    """The device answered FAIL; the message is reported verbatim."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class FileNotFoundInStore(FastbootError, KeyError):
    """A file name that was never uploaded to the virtual file store."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"No such file: {name}")

    def __str__(self) -> str:
        return f"No such file: {self.name}"
