"""Banded dynamic-programming matrix used by the corridor aligner.

Only two score rows (the current and the previous one) are kept in memory.
The backtracking directions are stored for every cell inside the corridor.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import IntEnum

_BYTES_PER_MB = 1000.0 * 1000.0
_BORDER_FRACTION = 0.1


class CigarOp(IntEnum):
    """Operations stored in the direction matrix."""

    M = 0
    I = 1  # noqa: E741
    D = 2
    N = 3
    S = 4
    H = 5
    P = 6
    EQ = 7
    X = 8
    STOP = 10


@dataclass
class CorridorLine:
    """Part of one matrix row that lies inside the alignment corridor."""

    offset: int
    length: int
    offset_in_matrix: int = 0


@dataclass
class MatrixElement:
    """One cell of a score row."""

    score: float = 0.0
    indel_run: int = 0
    direction: CigarOp = CigarOp.STOP


class MatrixIndexError(IndexError):
    """Raised when a cell outside the kept rows or the corridor is accessed."""


class MatrixTooLargeError(MemoryError):
    """Raised when the direction matrix would exceed the allowed size."""


def _in_line(line: CorridorLine, x: int) -> bool:
    return line.offset <= x < line.offset + line.length


class AlignmentMatrix:
    """Corridor-shaped alignment matrix with two live score rows."""

    def __init__(self, max_matrix_size_mb: int | None = None) -> None:
        self.max_matrix_size_mb = max_matrix_size_mb
        self.width = 0
        self.height = 0
        self._corridor: list[CorridorLine] = []
        self._directions = bytearray()
        self._current: list[MatrixElement] = []
        self._last: list[MatrixElement] = []
        self._current_line = CorridorLine(0, 0)
        self._last_line = CorridorLine(0, 0)
        self._current_y = 0
        self._last_y = 0

    def prepare(self, width: int, height: int, corridor: Iterable[CorridorLine]) -> None:
        """Set up the corridor layout and allocate the matrix."""
        lines = list(corridor)
        size = 0
        max_length = 0
        for line in lines:
            line.offset_in_matrix = size
            size += line.length
            max_length = max(max_length, line.length)

        if self.max_matrix_size_mb is not None:
            size_mb = int(size / _BYTES_PER_MB)
            if size_mb >= self.max_matrix_size_mb:
                raise MatrixTooLargeError(
                    f"required memory ({size_mb}) > max matrix size "
                    f"({self.max_matrix_size_mb})"
                )

        self.width = width
        self.height = height
        self._corridor = lines
        self._directions = bytearray([CigarOp.STOP]) * size
        self._current = [MatrixElement() for _ in range(max_length)]
        self._last = [MatrixElement() for _ in range(max_length)]
        self._current_line = CorridorLine(0, 0)
        self._last_line = CorridorLine(0, 0)
        self._current_y = 0
        self._last_y = 0

    def clean(self) -> None:
        """Release the rows and the direction matrix."""
        self._current = []
        self._last = []
        self._directions = bytearray()

    def prepare_line(self, y: int) -> bool:
        """Make row ``y`` current; the old current row becomes the last row."""
        if y < 0 or y >= self.height:
            return False
        recycled = self._last
        self._last = self._current
        self._last_y = self._current_y
        self._last_line = self._current_line

        for cell in recycled:
            cell.score = 0.0
            cell.indel_run = 0
            cell.direction = CigarOp.STOP
        self._current = recycled
        self._current_y = y
        self._current_line = self._corridor[y]
        return True

    def _row(self, y: int) -> tuple[CorridorLine, list[MatrixElement]]:
        if y == self._current_y:
            return self._current_line, self._current
        if y == self._last_y:
            return self._last_line, self._last
        raise MatrixIndexError(f"row {y} is not in memory")

    def element(self, x: int, y: int) -> MatrixElement:
        """Return the cell at ``(x, y)``, or an empty cell outside the corridor."""
        if x < 0 or y < 0:
            return MatrixElement()
        line, row = self._row(y)
        if not _in_line(line, x):
            return MatrixElement()
        return row[x - line.offset]

    def element_edit(self, x: int, y: int) -> MatrixElement:
        """Return the cell at ``(x, y)`` for writing; it must be in the corridor."""
        if x < 0 or y < 0:
            raise MatrixIndexError("element not found in alignment matrix")
        line, row = self._row(y)
        if not _in_line(line, x):
            raise MatrixIndexError("element not found in alignment matrix")
        return row[x - line.offset]

    def element_up(self, x: int) -> MatrixElement:
        """Return cell ``x`` of the last row, or an empty cell."""
        if x < 0 or not _in_line(self._last_line, x):
            return MatrixElement()
        return self._last[x - self._last_line.offset]

    def element_current(self, x: int) -> MatrixElement:
        """Return cell ``x`` of the current row, or an empty cell."""
        if x < 0 or not _in_line(self._current_line, x):
            return MatrixElement()
        return self._current[x - self._current_line.offset]

    def _direction_index(self, x: int, y: int) -> int | None:
        if y < 0 or y > self.height - 1 or x < 0:
            return None
        line = self._corridor[y]
        if not _in_line(line, x):
            return None
        return line.offset_in_matrix + (x - line.offset)

    def direction(self, x: int, y: int) -> CigarOp:
        """Return the backtracking direction at ``(x, y)``; STOP outside."""
        index = self._direction_index(x, y)
        if index is None:
            return CigarOp.STOP
        return CigarOp(self._directions[index])

    def set_direction(self, x: int, y: int, op: CigarOp) -> None:
        """Store the backtracking direction at ``(x, y)``."""
        index = self._direction_index(x, y)
        if index is None:
            raise MatrixIndexError("element not found in alignment matrix")
        self._directions[index] = CigarOp(op)

    def score(self, x: int, y: int) -> float:
        """Return the score of the cell at ``(x, y)``."""
        return self.element(x, y).score

    def corridor_offset(self, y: int) -> int:
        """Return the first column of the corridor in row ``y``."""
        return self._corridor[y].offset

    def corridor_length(self, y: int) -> int:
        """Return the corridor width in row ``y``."""
        return self._corridor[y].length

    def valid_path(self, x: int, y: int) -> bool:
        """Return False if ``x`` is too close to the corridor border in row ``y``."""
        line = self._corridor[y]
        width = line.length
        min_corridor = int(line.offset + _BORDER_FRACTION * width)
        max_corridor = int(min_corridor + width - _BORDER_FRACTION * width)
        return min_corridor < x < max_corridor

    def format_matrix(self, ref_seq: str, qry_seq: str) -> str:
        """Render the direction matrix as a table."""
        parts = ["     - "]
        parts.extend(f"  {ref_seq[x]} " for x in range(self.width))
        parts.append("\n")
        for y in range(-1, self.height):
            parts.append("-: " if y == -1 else f"{qry_seq[y]}: ")
            parts.extend(
                f"{int(self.direction(x, y)):3d} " for x in range(-1, self.width)
            )
            parts.append("\n")
        return "".join(parts)