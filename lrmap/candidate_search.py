"""Candidate search: vote for mapping locations of a read with its k-mers.

Every k-mer of a read is looked up in the reference index. Each occurrence
votes for the bin where the read would start if it mapped there. Votes are
collected in an open-addressing hash table; bins whose vote count reaches a
fraction of the best count are reported as candidate locations.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable

from lrmap.kmer import get_bin, iterate_kmers, resolve_bin
from lrmap.mapped_read import LocationScore, MappedRead
from lrmap.prefix_table import PrefixTable

_log = logging.getLogger(__name__)

_HASH_MULTIPLIER = 11400714819323199488
_MASK64 = (1 << 64) - 1

MAX_TABLE_BITS = 24
DEFAULT_TABLE_BITS = 16
MIN_ADAPTIVE_BITS = 8
MAX_FALLBACK_BITS = 20
DEFAULT_BATCH_SIZE = 10

_PROBE_FRACTION = 0.333
_FALLBACK_PROBE_FRACTION = 0.777
_KMER_MISS_FRACTION = 0.9
_OVERFLOW_FRACTION = 0.01


class SearchTableOverflow(RuntimeError):
    """Raised when the vote table needs too many probes for one read."""


class CandidateSearch:
    """Finds candidate mapping locations for reads."""

    def __init__(
        self,
        table: PrefixTable,
        sensitivity: float,
        table_bits: int = DEFAULT_TABLE_BITS,
        min_kmer_hits: float = 0.0,
        max_candidates: int = sys.maxsize,
        adaptive: bool = True,
    ) -> None:
        self.table = table
        self.sensitivity = sensitivity
        self.min_kmer_hits = min_kmer_hits
        self.max_candidates = max_candidates
        self.adaptive = adaptive
        self.batch_size = DEFAULT_BATCH_SIZE

        self.processed_reads = 0
        self.overflows = 0
        self.failed_reads = 0
        self._grown = False

        self._locations: list[int] = []
        self._fscores: list[float] = []
        self._rscores: list[float] = []
        self._states: list[int] = []
        self._listed: list[bool] = []
        self._listed_slots: list[int] = []
        self._state = 0
        self._max_hits = 0.0
        self._threshold = 0.0
        self._probe_budget = 0
        self._kmer_misses = 0
        self._read_length = 0

        self.set_table_bits(table_bits)
        self._begin(_PROBE_FRACTION)

    def set_table_bits(self, bits: int) -> None:
        """Use a vote table of ``2**bits`` slots."""
        if bits >= MAX_TABLE_BITS:
            raise ValueError("search table exceeded length")
        if bits < 1:
            raise ValueError("search table needs at least one bit")
        self.table_bits = bits
        self._bit_shift = 64 - bits
        self.table_len = 1 << bits
        missing = self.table_len - len(self._locations)
        if missing > 0:
            self._locations.extend([0] * missing)
            self._fscores.extend([0.0] * missing)
            self._rscores.extend([0.0] * missing)
            self._states.extend([0] * missing)
            self._listed.extend([False] * missing)

    def hash(self, location: int) -> int:
        """Return the vote-table slot of a location (multiplicative hashing)."""
        return ((location * _HASH_MULTIPLIER) & _MASK64) >> self._bit_shift

    def _begin(self, probe_fraction: float) -> None:
        self._state += 1
        self._listed_slots = []
        self._max_hits = 0.0
        self._threshold = 0.0
        self._probe_budget = int(self.table_len * probe_fraction)

    def add_location(self, location: int, reverse: bool, weight: float = 1.0) -> float:
        """Add a vote for a bin on one strand and return that strand's total."""
        slot = self.hash(location)
        while True:
            occupied = self._states[slot] == self._state
            if not occupied or self._locations[slot] == location:
                break
            slot += 1
            if slot >= self.table_len:
                slot = 0
            self._probe_budget -= 1
            if self._probe_budget <= 0:
                raise SearchTableOverflow("too many probes in the search table")

        if not occupied:
            self._locations[slot] = location
            self._states[slot] = self._state
            self._listed[slot] = False
            if reverse:
                self._fscores[slot] = 0.0
                self._rscores[slot] = weight
            else:
                self._fscores[slot] = weight
                self._rscores[slot] = 0.0
            score = weight
        elif reverse:
            self._rscores[slot] += weight
            score = self._rscores[slot]
        else:
            self._fscores[slot] += weight
            score = self._fscores[slot]

        if score > self._max_hits:
            self._max_hits = score
            self._threshold = self._max_hits * self.sensitivity

        if not self._listed[slot] and score >= self._threshold:
            self._listed[slot] = True
            self._listed_slots.append(slot)
        return score

    def _scan(self, sequence: str) -> None:
        k = self.table.kmer_length
        bin_size = self.table.bin_size
        for prefix, pos in iterate_kmers(sequence, k):
            entries = self.table.lookup(prefix)
            if entries and entries[0].ref_total == 0:
                self._kmer_misses += 1
            for entry in entries:
                correction = self._read_length - (pos + k) if entry.reverse else pos
                for loc in entry.locations:
                    self.add_location(
                        get_bin(loc - correction, bin_size), entry.reverse, 1.0
                    )

    def _collect(self, read: MappedRead) -> list[LocationScore]:
        k = self.table.kmer_length
        if self._kmer_misses > int((read.length - k + 1) * _KMER_MISS_FRACTION):
            read.mapping_qlty = 0
        read.s = self._max_hits

        threshold = max(self.min_kmer_hits, self._threshold)
        bin_size = self.table.bin_size
        found = []
        for slot in self._listed_slots:
            location = resolve_bin(self._locations[slot], bin_size)
            if self._fscores[slot] >= threshold:
                found.append(LocationScore(self._fscores[slot], location, False))
            if self._rscores[slot] >= threshold:
                found.append(LocationScore(self._rscores[slot], location, True))
        if len(found) < self.max_candidates:
            read.alloc_scores(found)
        return found

    def _fallback(self, read: MappedRead) -> list[LocationScore]:
        backup = self.table_bits
        extra = 2
        try:
            while backup + extra <= MAX_FALLBACK_BITS:
                self.set_table_bits(backup + extra)
                self._begin(_FALLBACK_PROBE_FRACTION)
                try:
                    self._scan(read.seq)
                    return self._collect(read)
                except SearchTableOverflow:
                    extra += 1
            self.failed_reads += 1
            _log.warning(
                "Couldn't find candidate for read %s (too many candidates)", read.name
            )
            return []
        finally:
            self.set_table_bits(backup)

    def _dispatch(self, read: MappedRead) -> None:
        count = read.num_scores()
        if read.group is not None:
            read.calculated = 0
            if count == 0:
                read.mapping_qlty = 0
                read.group.reads_finished += 1
        elif count > 0:
            read.calculated = 0

    def search(self, read: MappedRead) -> list[LocationScore]:
        """Find the candidate locations of ``read`` and store them on it."""
        self.processed_reads += 1
        self._kmer_misses = 0
        self._read_length = read.length
        try:
            self._begin(_PROBE_FRACTION)
            self._scan(read.seq)
            found = self._collect(read)
        except SearchTableOverflow:
            self.overflows += 1
            found = self._fallback(read)
        self._dispatch(read)
        return found

    def run_batch(self, reads: Iterable[MappedRead]) -> int:
        """Search every read of a batch; return the number of candidates found."""
        total = sum(len(self.search(read)) for read in reads)
        if self.adaptive:
            if (
                self.overflows <= 5
                and not self._grown
                and self.table_bits > MIN_ADAPTIVE_BITS
            ):
                self.set_table_bits(self.table_bits - 1)
            elif self.overflows > self.batch_size * _OVERFLOW_FRACTION:
                self.set_table_bits(self.table_bits + 1)
                self._grown = True
        self.overflows = 0
        return total