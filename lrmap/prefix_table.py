"""Reference k-mer index: the positions of every k-mer in a reference.

The table is split into units, each covering at most ``TABLE_LOC_MAX``
positions, so that positions stored inside a unit fit into 32 bits.
"""

from __future__ import annotations

import os
import struct
from array import array
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass

from lrmap.kmer import get_bin, iterate_kmers, reverse_complement_kmer

TABLE_LOC_MAX = 2**32 - 1

_COOKIE = 0x1701E
_MAX_KMER_LENGTH = 16
_UINT = struct.Struct("<I")
_ULOC = struct.Struct("<Q")
_INDEX_ENTRY = struct.Struct("<Ib")
_HEADER = struct.Struct("<5I")


class IndexFormatError(ValueError):
    """Raised when a stored index does not match or is corrupted."""


@dataclass(frozen=True)
class RefEntry:
    """Occurrences of one k-mer (or its reverse complement) in one unit."""

    locations: tuple[int, ...]
    reverse: bool
    weight: int
    ref_total: int
    offset: int

    @property
    def ref_count(self) -> int:
        return len(self.locations)


@dataclass
class _Unit:
    offset: int
    tab_index: array
    weights: array
    locations: array

    def used(self, prefix: int) -> bool:
        return self.weights[prefix] != 0

    def slot_range(self, prefix: int) -> tuple[int, int]:
        start = self.tab_index[prefix] - 1
        return start, self.tab_index[prefix + 1] - 1 - start


def cache_path(reference: str | os.PathLike, kmer_length: int, kmer_skip: int) -> str:
    """Return the file name under which the index of ``reference`` is cached."""
    return f"{os.fspath(reference)}-ht-{kmer_length}-{kmer_skip}.2.ngm"


class PrefixTable:
    """Index of k-mer positions, with frequency weights and a repeat filter."""

    def __init__(
        self,
        kmer_length: int = 13,
        kmer_skip: int = 0,
        bin_size: int = 0,
        max_prefix_freq: int = 1000,
        skip_repeats: bool = True,
    ) -> None:
        if not 1 <= kmer_length <= _MAX_KMER_LENGTH:
            raise ValueError(
                f"k-mer length must be between 1 and {_MAX_KMER_LENGTH}"
            )
        if kmer_skip < 0:
            raise ValueError("k-mer skip must not be negative")
        if max_prefix_freq <= 0:
            raise ValueError("maximum prefix frequency must be positive")
        self.kmer_length = kmer_length
        self.kmer_skip = kmer_skip
        self.bin_size = bin_size
        self.max_prefix_freq = max_prefix_freq
        self.skip_repeats = skip_repeats
        self._units: list[_Unit] = []

    @property
    def index_size(self) -> int:
        return 4**self.kmer_length + 1

    def _positions(
        self, sequences: Sequence[str], starts: Sequence[int], low: int, high: int
    ) -> Iterator[tuple[int, int, bool]]:
        """Yield ``(prefix, position, is_repeat)`` for k-mers within ``[low, high]``."""
        for seq, start in zip(sequences, starts):
            last_prefix: int | None = None
            last_bin = -1
            for prefix, pos in iterate_kmers(
                seq, self.kmer_length, self.kmer_skip, start
            ):
                if not low <= pos <= high:
                    continue
                repeat = False
                if self.skip_repeats:
                    if prefix == last_prefix:
                        current_bin = get_bin(pos, self.bin_size)
                        repeat = current_bin == last_bin and last_bin != -1
                        last_bin = current_bin
                    else:
                        last_bin = -1
                    last_prefix = prefix
                yield prefix, pos, repeat

    def _build_unit(
        self, sequences: Sequence[str], starts: Sequence[int], low: int, high: int
    ) -> _Unit:
        size = self.index_size
        freqs = [0] * size
        for prefix, _, repeat in self._positions(sequences, starts, low, high):
            if not repeat:
                freqs[prefix] += 1

        tab_index = array("I", [0]) * size
        weights = array("b", [0]) * size
        limit = self.max_prefix_freq
        next_slot = 0
        for prefix in range(size - 1):
            freq = freqs[prefix]
            total = freq + freqs[reverse_complement_kmer(prefix, self.kmer_length)]
            tab_index[prefix] = next_slot + 1
            if freq > 0 and total < limit:
                weights[prefix] = int((limit - total) * 100.0 / limit)
                next_slot += freq
        tab_index[size - 1] = next_slot + 1

        unit = _Unit(low, tab_index, weights, array("I", [0]) * next_slot)
        filled: dict[int, int] = {}
        for prefix, pos, repeat in self._positions(sequences, starts, low, high):
            if repeat or not unit.used(prefix):
                continue
            start, slots = unit.slot_range(prefix)
            used = filled.get(prefix, 0)
            if used >= slots:
                raise RuntimeError(
                    f"no free slot for k-mer {prefix} at position {start}"
                )
            unit.locations[start + used] = pos - low
            filled[prefix] = used + 1
        return unit

    def build(self, sequences: Iterable[str]) -> None:
        """Index the given reference sequences, laid out one after another."""
        seqs = [seq.upper() for seq in sequences]
        starts = []
        genome_size = 0
        for seq in seqs:
            starts.append(genome_size)
            genome_size += len(seq)

        unit_count = 1 + genome_size // TABLE_LOC_MAX
        units = []
        low = 0
        for _ in range(unit_count):
            units.append(self._build_unit(seqs, starts, low, low + TABLE_LOC_MAX))
            low += TABLE_LOC_MAX
        self._units = units

    def chain_length(self) -> int:
        """Return the number of entries :meth:`lookup` returns."""
        return len(self._units) * 2

    def _slice(self, unit: _Unit, prefix: int) -> tuple[int, tuple[int, ...]]:
        if not unit.used(prefix):
            return 0, ()
        start, count = unit.slot_range(prefix)
        return unit.weights[prefix], tuple(
            unit.offset + loc for loc in unit.locations[start:start + count]
        )

    def lookup(self, prefix: int) -> list[RefEntry]:
        """Return a forward and a reverse-complement entry for every unit."""
        if not self._units:
            raise RuntimeError("prefix table has not been built")
        if not 0 <= prefix < 4**self.kmer_length:
            raise ValueError(f"invalid prefix {prefix}")
        rev_prefix = reverse_complement_kmer(prefix, self.kmer_length)
        entries = []
        for unit in self._units:
            fwd_weight, fwd_locs = self._slice(unit, prefix)
            rev_weight, rev_locs = self._slice(unit, rev_prefix)
            if rev_locs or unit.used(rev_prefix):
                total = len(fwd_locs) + len(rev_locs)
                fwd_total = rev_total = total
            else:
                fwd_total, rev_total = len(fwd_locs), 0
            entries.append(
                RefEntry(fwd_locs, False, fwd_weight, fwd_total, unit.offset)
            )
            entries.append(
                RefEntry(rev_locs, True, rev_weight, rev_total, unit.offset)
            )
        return entries

    def _signature(self, unit_count: int, index_size: int) -> int:
        return (
            _COOKIE + self.kmer_length + self.kmer_skip + unit_count + index_size
        ) & 0xFFFFFFFF

    def save(self, path: str | os.PathLike) -> None:
        """Write the index to ``path``."""
        if not self._units:
            raise RuntimeError("prefix table has not been built")
        size = self.index_size
        with open(path, "wb") as fh:
            fh.write(
                _HEADER.pack(
                    _COOKIE, self.kmer_length, self.kmer_skip, len(self._units), size
                )
            )
            for unit in self._units:
                fh.write(_UINT.pack(len(unit.locations)))
                fh.write(
                    b"".join(
                        _INDEX_ENTRY.pack(t, w)
                        for t, w in zip(unit.tab_index, unit.weights)
                    )
                )
                fh.write(struct.pack(f"<{len(unit.locations)}I", *unit.locations))
                fh.write(_ULOC.pack(unit.offset))
            fh.write(_UINT.pack(self._signature(len(self._units), size)))

    @classmethod
    def load(
        cls,
        path: str | os.PathLike,
        kmer_length: int = 13,
        kmer_skip: int = 0,
        bin_size: int = 0,
    ) -> PrefixTable:
        """Read an index written by :meth:`save`."""
        table = cls(kmer_length, kmer_skip, bin_size)
        with open(path, "rb") as fh:
            data = fh.read()
        try:
            cookie, k, skip, unit_count, size = _HEADER.unpack_from(data, 0)
        except struct.error as exc:
            raise IndexFormatError(f"truncated reference index: {path}") from exc
        if cookie != _COOKIE or k != kmer_length or skip != kmer_skip:
            raise IndexFormatError(f"invalid reference table found: {path}")
        if size != table.index_size:
            raise IndexFormatError(f"invalid reference table found: {path}")
        if len(data) < _HEADER.size + _UINT.size or (
            _UINT.unpack_from(data, len(data) - _UINT.size)[0]
            != table._signature(unit_count, size)
        ):
            raise IndexFormatError(f"reference table corrupted: {path}")

        units = []
        pos = _HEADER.size
        try:
            for _ in range(unit_count):
                (table_len,) = _UINT.unpack_from(data, pos)
                pos += _UINT.size
                index_bytes = data[pos:pos + size * _INDEX_ENTRY.size]
                if len(index_bytes) != size * _INDEX_ENTRY.size:
                    raise struct.error("index truncated")
                pairs = list(_INDEX_ENTRY.iter_unpack(index_bytes))
                pos += len(index_bytes)
                locations = struct.unpack_from(f"<{table_len}I", data, pos)
                pos += table_len * _UINT.size
                (offset,) = _ULOC.unpack_from(data, pos)
                pos += _ULOC.size
                units.append(
                    _Unit(
                        offset,
                        array("I", (t for t, _ in pairs)),
                        array("b", (w for _, w in pairs)),
                        array("I", locations),
                    )
                )
        except struct.error as exc:
            raise IndexFormatError(f"truncated reference index: {path}") from exc
        table._units = units
        return table