"""Shared test helpers."""

from __future__ import annotations

import pytest


class ScriptedTransport:
    """In-memory transport that records writes and replays canned responses.

    A response that is an exception instance is raised from ``read``.
    """

    def __init__(self, responses=()):
        self.responses = list(responses)
        self.writes: list[bytes] = []
        self.read_sizes: list[int] = []

    def write(self, data: bytes) -> int:
        self.writes.append(bytes(data))
        return len(data)

    def read(self, size: int) -> bytes:
        self.read_sizes.append(size)
        if not self.responses:
            raise AssertionError("device has nothing more to say")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response[:size]


@pytest.fixture
def make_transport():
    """Factory for :class:`ScriptedTransport` instances."""
    return ScriptedTransport
