"""K-mer encoding, iteration and binning of genomic positions."""

from __future__ import annotations

from collections.abc import Iterator

# The 2-bit encoding works on one 32-bit word for reverse complements.
_MAX_REVCOMP_KMER = 16
_COMPLEMENT_BITS = 0xAAAAAAAA


def encode_base(base: str) -> int:
    """Return the 2-bit code of a base: A->0, C->1, T->2, G->3."""
    return (ord(base) >> 1) & 3


def kmer_mask(kmer_length: int) -> int:
    """Return the bit mask that keeps the last ``kmer_length`` encoded bases."""
    return (1 << (kmer_length * 2)) - 1


def iterate_kmers(
    sequence: str, kmer_length: int, skip: int = 0, offset: int = 0
) -> Iterator[tuple[int, int]]:
    """Yield ``(prefix, position)`` for the k-mers of ``sequence``.

    K-mers spanning an ``N`` are left out. After each emitted k-mer the next
    ``skip`` k-mers are passed over; the count restarts after every ``N``.
    Positions are shifted by ``offset``.
    """
    if kmer_length < 1:
        raise ValueError("k-mer length must be at least 1")
    mask = kmer_mask(kmer_length)
    end = len(sequence)
    start = 0
    while end - start >= kmer_length:
        if sequence[start] == "N":
            n_skip = 1
            while start + n_skip < end and sequence[start + n_skip] == "N":
                n_skip += 1
            if n_skip >= end - start - kmer_length:
                return
            start += n_skip

        restart = None
        prefix = 0
        for i in range(start, start + kmer_length - 1):
            if sequence[i] == "N":
                restart = i + 1
                break
            prefix = (prefix << 2) | encode_base(sequence[i])
        if restart is not None:
            start = restart
            continue

        skip_count = skip
        for i in range(start + kmer_length - 1, end):
            base = sequence[i]
            if base == "N":
                restart = i + 1
                break
            prefix = ((prefix << 2) | encode_base(base)) & mask
            if skip_count == skip:
                yield prefix, offset + i + 1 - kmer_length
                skip_count = 0
            else:
                skip_count += 1
        if restart is None:
            return
        start = restart


def reverse_complement_kmer(prefix: int, kmer_length: int) -> int:
    """Return the encoded reverse complement of an encoded k-mer (k <= 16)."""
    if not 1 <= kmer_length <= _MAX_REVCOMP_KMER:
        raise ValueError(
            f"k-mer length must be between 1 and {_MAX_REVCOMP_KMER}"
        )
    complement = (prefix ^ _COMPLEMENT_BITS) & kmer_mask(kmer_length)
    result = 0
    for _ in range(kmer_length):
        result = (result << 2) | (complement & 3)
        complement >>= 2
    return result


def get_bin(position: int, bin_size: int) -> int:
    """Return the bin of a position for a grid of ``2**bin_size`` bases."""
    return position >> bin_size


def resolve_bin(bin_index: int, bin_size: int) -> int:
    """Return the position at the middle of a bin."""
    middle = 1 << (bin_size - 1) if bin_size > 0 else 0
    return (bin_index << bin_size) + middle