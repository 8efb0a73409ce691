"""Console logging with levels, colors, progress lines and debug history."""

from __future__ import annotations

import sys
import threading
from datetime import datetime
from typing import TextIO

_MESSAGE = 0
_WARNING = 1
_ERROR = 2
_PROGRESS = 99

_MAX_WARNINGS = 100

_COLORS = {_MESSAGE: "\033[37m", _WARNING: "\033[33m", _ERROR: "\033[31m"}
_RESET = "\033[0m"
_REWIND_LINE = "\033[A\033[2K"


class FatalLogError(RuntimeError):
    """Raised when a logged condition ends the program."""


def _format(fmt: str, args: tuple) -> str:
    return fmt % args if args else fmt


class Logger:
    """Writes leveled messages to a stream and keeps debug history."""

    def __init__(
        self, stream: TextIO | None = None, level: int = 0, color: bool = False
    ) -> None:
        self._stream = stream
        self._level = level
        self._color = color
        self._filter = 0
        self._rewind = 0
        self._warnings = 0
        self._history: list[str] = []
        self._lock = threading.Lock()

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stderr

    def _write_console(self, level: int, text: str) -> None:
        if level < self._filter:
            return
        progress = level == _PROGRESS
        if progress:
            level = _MESSAGE
        out = self.stream
        out.write(_REWIND_LINE * self._rewind)
        self._rewind = 0
        if self._color:
            out.write(_COLORS.get(level, ""))
        out.write(text)
        if self._color:
            out.write(_RESET)
        out.write("\n")
        if progress:
            self._rewind = 1
        out.flush()

    def _log(self, level: int, fmt: str, args: tuple) -> None:
        text = _format(fmt, args)
        with self._lock:
            self._write_console(level, text)
            if level == _WARNING:
                self._warnings += 1
                if self._warnings > _MAX_WARNINGS:
                    self.stream.write("Max number of warnings reached!\n")
                    raise FatalLogError("Max number of warnings reached")
            if level == _ERROR:
                self.stream.write("Terminating\n")
                raise FatalLogError(text)

    def message(self, fmt: str, *args) -> None:
        """Write an ordinary message."""
        self._log(_MESSAGE, fmt, args)

    def warning(self, fmt: str, *args) -> None:
        """Write a warning; too many warnings raise FatalLogError."""
        self._log(_WARNING, fmt, args)

    def error(self, fmt: str, *args) -> None:
        """Write an error and raise FatalLogError."""
        self._log(_ERROR, fmt, args)

    def progress(self, fmt: str, *args) -> None:
        """Write a status line that the next output overwrites."""
        self._log(_PROGRESS, fmt, args)

    def debug(self, level: int, fmt: str, *args) -> None:
        """Record a debug message if ``level`` is in the logger's level mask."""
        if not self._level & level:
            return
        with self._lock:
            self._history.append(f"{level}\t{_format(fmt, args)}")

    def filter_level(self, level: int) -> None:
        """Suppress console output below ``level``."""
        self._filter = level

    def set_color(self, color: bool) -> None:
        """Turn colored console output on or off."""
        self._color = color

    def history(self) -> list[str]:
        """Return the recorded debug messages."""
        with self._lock:
            return list(self._history)


def add_timestamp(text: str, now: datetime | None = None) -> str:
    """Replace the first ``%s`` in ``text`` with a ``YYYY-MM-DD_HH-MM-SS`` stamp."""
    if "%s" not in text:
        return text
    moment = now if now is not None else datetime.now()
    return text.replace("%s", moment.strftime("%Y-%m-%d_%H-%M-%S"), 1)