"""Output sink for user-facing lines and the transfer progress bar."""

from __future__ import annotations

import logging
import math

logger = logging.getLogger(__name__)

PROGRESS_BARS = 16


class OutputSink:
    """Append-only collection of lines shown to the user for one command."""

    def __init__(self) -> None:
        self._lines: list[str] = []

    def write(self, text: str) -> None:
        logger.debug("%s", text)
        self._lines.append(text)

    __call__ = write

    @property
    def lines(self) -> list[str]:
        return list(self._lines)

    def clear(self) -> None:
        self._lines.clear()

    def __len__(self) -> int:
        return len(self._lines)


def render_progress(sent: int, total: int, bars: int = PROGRESS_BARS) -> str:
    """Render ``[=====     ] 50%`` for ``sent`` of ``total`` chunks."""
    fraction = sent / total if total else 1.0
    filled = "=" * math.floor(fraction * bars)
    return f"[{filled.ljust(bars)}] {math.floor(fraction * 100)}%"
