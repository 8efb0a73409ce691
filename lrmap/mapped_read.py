"""Reads under mapping, together with their candidate locations."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

_COMPLEMENT = str.maketrans("ATCG", "TAGC")


def reverse_complement(sequence: str) -> str:
    """Return the reverse complement; bases other than A, C, G, T are kept."""
    return sequence.translate(_COMPLEMENT)[::-1]


@dataclass
class LocationScore:
    """A candidate mapping location of a read and its k-mer score."""

    score: float
    location: int
    reverse: bool = False


@dataclass
class ReadGroup:
    """Sub-reads that a long read was split into."""

    full_read: MappedRead | None = None
    reads: list[MappedRead] = field(default_factory=list)
    reads_finished: int = 0
    fwd_mapped: int = 0
    reverse_mapped: int = 0
    best_score_sum: int = 0
    read_id: int = 0

    @property
    def read_number(self) -> int:
        return len(self.reads)


@dataclass
class MappedRead:
    """A read with the candidate locations found for it.

    ``calculated`` is -1 until the read has passed the candidate search; it is
    then set to 0 and counts the scores computed for the read.
    """

    read_id: int
    qry_max_len: int = 0
    seq: str = ""
    name: str = ""
    qlty: str | None = None
    additional_info: str | None = None
    calculated: int = -1
    scores: list[LocationScore] = field(default_factory=list)
    alignments: list = field(default_factory=list)
    status: int = 0
    mapping_qlty: int = 255
    s: float = 0.0
    group: ReadGroup | None = None
    _rev_seq: str | None = field(default=None, repr=False, compare=False)

    @property
    def length(self) -> int:
        return len(self.seq)

    def reverse_sequence(self) -> str:
        """Return the reverse complement of the read, computed once."""
        if self._rev_seq is None:
            self._rev_seq = reverse_complement(self.seq)
        return self._rev_seq

    def alloc_scores(self, scores: Iterable[LocationScore]) -> None:
        """Store a copy of the given candidate locations."""
        self.scores = list(scores)

    def clear_scores(self, top_score: int | None = None) -> None:
        """Drop all candidates, or all but the one at index ``top_score``."""
        if not self.scores:
            return
        if top_score is None:
            self.scores = []
        else:
            self.scores = [self.scores[top_score]]

    def num_scores(self) -> int:
        """Return the number of candidate locations."""
        return len(self.scores)

    def has_candidates(self) -> bool:
        """Return True if the read has at least one candidate location."""
        return bool(self.scores)

    def set_flag(self, flag: int) -> None:
        """Set a status flag."""
        self.status |= int(flag)

    def has_flag(self, flag: int) -> bool:
        """Return True if the status flag is set."""
        return (self.status & int(flag)) != 0