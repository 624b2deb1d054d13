"""OutputSink: the human-readable per-task report of a cycle."""

from __future__ import annotations

import sys
from email.utils import format_datetime
from enum import IntEnum
from typing import TYPE_CHECKING, TextIO

from crontask.clock import SystemClock

if TYPE_CHECKING:
    from crontask.clock import Clock


class Verbosity(IntEnum):
    """How noisy a cycle's report is."""

    SILENT = 0
    NORMAL = 1
    DEBUG = 2

    @classmethod
    def parse(cls, value: str | int | Verbosity) -> Verbosity:
        """Accept ``"silent"``/``"normal"``/``"debug"`` or 0-2."""
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                msg = f"Unknown verbosity: {value!r}"
                raise ValueError(msg) from None
        return cls(value)


class OutputSink:
    """Writes timestamped report lines at or below the chosen verbosity.

    Lines are echoed to *stream* (stdout when not given) unless *echo* is
    False, and always kept in :attr:`lines` so HTTP callers can return them.
    """

    def __init__(
        self,
        verbosity: Verbosity = Verbosity.NORMAL,
        stream: TextIO | None = None,
        clock: Clock | None = None,
        echo: bool = True,
    ) -> None:
        self.verbosity = Verbosity(verbosity)
        self._stream = stream
        self._echo = echo
        self._clock = clock or SystemClock()
        self.lines: list[str] = []

    def output(self, message: str, min_verbosity: Verbosity = Verbosity.NORMAL) -> None:
        if self.verbosity < min_verbosity:
            return
        line = f"{format_datetime(self._clock.now())} - {message}"
        self.lines.append(line)
        if self._echo:
            print(line, file=self._stream or sys.stdout, flush=True)
