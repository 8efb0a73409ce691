"""Buffer that writes reads in the order of their ids."""

from __future__ import annotations

import bisect
import threading
from collections.abc import Callable

from lrmap.mapped_read import MappedRead

DEFAULT_MAX_SIZE = 100000


class BufferFullError(RuntimeError):
    """Raised when the buffer holds too many reads."""


class OutputReadBuffer:
    """Collects reads finished out of order and writes them in id order."""

    def __init__(
        self,
        writer: Callable[[MappedRead, bool], None],
        max_size: int = DEFAULT_MAX_SIZE,
    ) -> None:
        self._writer = writer
        self.max_size = max_size
        self._buffer: list[tuple[MappedRead, bool]] = []
        self._lock = threading.Lock()
        self.next_read_id = 0

    def add_read(self, read: MappedRead, mapped: bool) -> None:
        """Queue a read; it is written once all reads before it are."""
        with self._lock:
            if len(self._buffer) >= self.max_size:
                raise BufferFullError("max buffer size reached")
            index = bisect.bisect_left(
                self._buffer, read.read_id, key=lambda pair: pair[0].read_id
            )
            self._buffer.insert(index, (read, mapped))

    def drain(self) -> list[tuple[MappedRead, bool]]:
        """Write every read that is next in line and return them."""
        written = []
        with self._lock:
            while self._buffer and self._buffer[0][0].read_id == self.next_read_id:
                read, mapped = self._buffer.pop(0)
                self.next_read_id += 1
                self._writer(read, mapped)
                written.append((read, mapped))
        return written

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)