"""Long-read mapping building blocks: k-mer index, candidate search, alignment matrix and command line."""

__version__ = "0.1.0"

__all__ = [
    "candidate_search",
    "cli",
    "kmer",
    "linreg",
    "log",
    "mapped_read",
    "matrix",
    "output_buffer",
    "prefix_table",
]