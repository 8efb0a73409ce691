# lrmap

Pieces of a long-read mapper in pure Python, with a small command that indexes
a reference and lists candidate mapping locations for each read.

## Modules

- `lrmap.kmer` — 2-bit base encoding (`encode_base`), k-mer iteration that
  leaves out k-mers spanning `N` (`iterate_kmers`), reverse complement of a
  packed k-mer (`reverse_complement_kmer`, k up to 16), and position binning
  (`get_bin`, `resolve_bin`).
- `lrmap.prefix_table` — `PrefixTable`, a reference k-mer index with a
  frequency cutoff (`max_prefix_freq`), optional skipping of repeated k-mers
  in the same bin, `lookup(prefix)` returning forward and reverse-complement
  `RefEntry` objects, and `save` / `load` of a binary cache file
  (`cache_path` gives its name; a mismatching or damaged file raises
  `IndexFormatError`).
- `lrmap.candidate_search` — `CandidateSearch`, which votes k-mer hits into
  reference bins through an open-addressing hash table and returns
  `LocationScore` candidates whose vote count reaches `sensitivity` times the
  best count. On table overflow it retries with a larger table;
  `run_batch` can shrink or grow the table between batches.
- `lrmap.matrix` — `AlignmentMatrix`, a corridor-shaped dynamic-programming
  matrix that keeps two score rows (`MatrixElement`) and a direction matrix of
  `CigarOp` values, laid out by `CorridorLine` objects. It can refuse layouts
  larger than a size limit (`MatrixTooLargeError`) and renders itself with
  `format_matrix`.
- `lrmap.mapped_read` — `MappedRead`, `ReadGroup`, `LocationScore` and
  `reverse_complement`.
- `lrmap.output_buffer` — `OutputReadBuffer`, which takes reads in any order
  and hands them to a writer callable in read-id order (`drain`); it raises
  `BufferFullError` past `max_size` reads.
- `lrmap.linreg` — `linreg(x, y)` returning a `LinearFit` (slope, intercept,
  correlation); raises `SingularFitError` when the x values do not determine a
  line.
- `lrmap.log` — `Logger` with messages, warnings, errors (which raise
  `FatalLogError`), overwriting progress lines, masked debug history, and
  `add_timestamp`.
- `lrmap.cli` — option parsing (`parse_args`, `build_parser`, `usage`,
  `Config`) and the `main` entry point.

## Install

```
pip install .
```

## Command line

```
lrmap -r reference.fa -q reads.fq -o candidates.tsv
lrmap --help
```

The command:

1. parses the options (presets `pacbio` and `ont`; scoring values with the
   wrong sign are flipped with a message) and stops with exit status 1 if the
   query, reference, `--bed-filter` or `--vcf` file does not exist;
2. loads the reference index from `<reference>-ht-<k>-<skip>.2.ngm` if it is
   there and valid, otherwise builds it from the FASTA/FASTQ reference
   (gzipped input is accepted) and writes it to that file unless
   `--skip-write` is given;
3. runs the candidate search on every read of the query file (standard input
   by default) and writes, to `-o` or standard output, one tab-separated line
   per candidate: read name, location, strand (`+`/`-`) and score, best score
   first. A read without candidates gives `name * * 0`.

## Library use

```python
from lrmap.prefix_table import PrefixTable
from lrmap.candidate_search import CandidateSearch
from lrmap.mapped_read import MappedRead

table = PrefixTable(kmer_length=11, kmer_skip=0, bin_size=4)
table.build(["ACGTTGCATGCCATGATCGGATCCTAGCTAGGCTTACGATCGATCGGCTA"])

search = CandidateSearch(table, sensitivity=0.8, table_bits=16)
read = MappedRead(read_id=0, seq="TGCCATGATCGGATCCTAGCTAGG", name="r1")
for candidate in search.search(read):
    print(candidate.location, candidate.reverse, candidate.score)
```

## What it does not do

The package stops at candidate locations. It does not align reads: there is
no scoring of candidates, no CIGAR or MD computation and no SAM/BAM output,
and `AlignmentMatrix` is only the matrix such an aligner would fill. Options
such as the read-group fields, `--threads`, `--min-identity`, the scoring
values and the sub-read settings are parsed into `Config` but do not change
what the command does. Reads are processed one after another in a single
thread.

## Tests

```
pip install .[test]
pytest
```