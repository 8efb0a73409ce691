"""Command line of the long-read mapper: options, usage text and entry point."""

from __future__ import annotations

import argparse
import contextlib
import gzip
import os
import sys
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, fields

from lrmap.candidate_search import CandidateSearch
from lrmap.log import FatalLogError, Logger
from lrmap.mapped_read import MappedRead
from lrmap.prefix_table import IndexFormatError, PrefixTable, cache_path

PROGRAM = "ngmlr"
_OUT_DEFAULT = "stdout"
_NONE_DEFAULT = "none"
_ONT_GAP_DECAY = 0.15


@dataclass
class Config:
    """Settings of one mapping run."""

    query_file: str | None = "/dev/stdin"
    reference_file: str | None = None
    output_file: str | None = None
    vcf_file: str | None = None
    bed_file: str | None = None
    rg_id: str | None = None
    rg_sm: str | None = None
    rg_lb: str | None = None
    rg_pl: str | None = None
    rg_ds: str | None = None
    rg_dt: str | None = None
    rg_pu: str | None = None
    rg_pi: str | None = None
    rg_pg: str | None = None
    rg_cn: str | None = None
    rg_fo: str | None = None
    rg_ks: str | None = None
    preset: str = "pacbio"
    min_identity: float = 0.65
    min_residues: float = 0.25
    sensitivity: float = 0.8
    threads: int = 1
    bin_size: int = 4
    kmer_length: int = 13
    kmer_skip: int = 2
    max_segments_per_kb: int = 1
    score_match: float = 2.0
    score_mismatch: float = -5.0
    score_gap_open: float = -5.0
    score_gap_extend_max: float = -5.0
    score_gap_extend_min: float = -1.0
    score_gap_decay: float = 0.05
    stdout_mode: int = 0
    subread_aligner: int = 2
    read_part_length: int = 256
    read_part_corridor: int = 40
    progress: bool = True
    color: bool = False
    verbose: bool = False
    low_quality_split: bool = True
    small_inversion_detection: bool = True
    print_all_alignments: bool = False
    skip_save: bool = False
    nosse: bool = False
    bam_cigar_fix: bool = False
    skip_align: bool = False
    full_command_line: str | None = None


_DEFAULTS = Config()


@dataclass(frozen=True)
class _Option:
    dest: str
    short: str
    long: str
    help: str
    kind: type | None
    default: object
    type_desc: str = ""
    required: bool = False

    @property
    def takes_value(self) -> bool:
        return self.kind is not None

    def long_id(self) -> str:
        value = f" <{self.type_desc}>" if self.takes_value else ""
        text = ""
        if self.short:
            text = f"-{self.short}{value},  "
        return f"{text}--{self.long}{value}"

    def default_text(self) -> str:
        if not self.takes_value:
            return "true" if self.default else "false"
        if self.kind is float:
            return f"{self.default:g}"
        return str(self.default)


def _str(dest, short, long, help_, default, type_desc, required=False):
    return _Option(dest, short, long, help_, str, default, type_desc, required)


def _switch(dest, long, help_, default=False):
    return _Option(dest, "", long, help_, None, default)


_OPTIONS: tuple[_Option, ...] = (
    _str("query", "q", "query", "Path to the read file (FASTA/Q)", "/dev/stdin", "file"),
    _str("reference", "r", "reference",
         "Path to the reference genome (FASTA/Q, can be gzipped)",
         _NONE_DEFAULT, "file", required=True),
    _str("output", "o", "output", "Path to output file", _NONE_DEFAULT, "string"),
    _str("vcf", "", "vcf", "SNPs will be taken into account when building reference index",
         _NONE_DEFAULT, "file"),
    _str("bed_filter", "", "bed-filter",
         "Only reads in the regions specified by the BED file are read from the "
         "input file (requires BAM input)", _NONE_DEFAULT, "file"),
    _str("rg_id", "", "rg-id", "Adds RG:Z:<string> to all alignments in SAM/BAM",
         _NONE_DEFAULT, "string"),
    _str("rg_sm", "", "rg-sm", "RG header: Sample", _NONE_DEFAULT, "string"),
    _str("rg_lb", "", "rg-lb", "RG header: Library", _NONE_DEFAULT, "string"),
    _str("rg_pl", "", "rg-pl", "RG header: Platform", _NONE_DEFAULT, "string"),
    _str("rg_ds", "", "rg-ds", "RG header: Description", _NONE_DEFAULT, "string"),
    _str("rg_dt", "", "rg-dt", "RG header: Date (format: YYYY-MM-DD)", _NONE_DEFAULT, "string"),
    _str("rg_pu", "", "rg-pu", "RG header: Platform unit", _NONE_DEFAULT, "string"),
    _str("rg_pi", "", "rg-pi", "RG header: Median insert size", _NONE_DEFAULT, "string"),
    _str("rg_pg", "", "rg-pg", "RG header: Programs", _NONE_DEFAULT, "string"),
    _str("rg_cn", "", "rg-cn", "RG header: sequencing center", _NONE_DEFAULT, "string"),
    _str("rg_fo", "", "rg-fo", "RG header: Flow order", _NONE_DEFAULT, "string"),
    _str("rg_ks", "", "rg-ks", "RG header: Key sequence", _NONE_DEFAULT, "string"),
    _str("presets", "x", "presets", "Parameter presets for different sequencing technologies",
         "pacbio", "pacbio, ont"),
    _Option("min_identity", "i", "min-identity",
            "Alignments with an identity lower than this threshold will be discarded",
            float, _DEFAULTS.min_identity, "0-1"),
    _Option("min_residues", "R", "min-residues",
            "Alignments containing less than <int> or (<float> * read length) "
            "residues will be discarded", float, _DEFAULTS.min_residues, "int/float"),
    _Option("sensitivity", "s", "sensitivity", "", float, _DEFAULTS.sensitivity, "0-1"),
    _Option("threads", "t", "threads", "Number of threads", int, _DEFAULTS.threads, "int"),
    _Option("bin_size", "", "bin-size", "Sets the size of the grid used during candidate search",
            int, _DEFAULTS.bin_size, "int"),
    _Option("kmer_length", "k", "kmer-length", "K-mer length in bases",
            int, _DEFAULTS.kmer_length, "10-15"),
    _Option("kmer_skip", "", "kmer-skip",
            "Number of k-mers to skip when building the lookup table from the reference",
            int, _DEFAULTS.kmer_skip, "int"),
    _Option("max_segments", "", "max-segments", "Max number of segments allowed for a read per kb",
            int, _DEFAULTS.max_segments_per_kb, "int"),
    _Option("match", "", "match", "Match score", float, _DEFAULTS.score_match, "float"),
    _Option("mismatch", "", "mismatch", "Mismatch score", float, _DEFAULTS.score_mismatch, "float"),
    _Option("gap_open", "", "gap-open", "Gap open score", float, _DEFAULTS.score_gap_open, "float"),
    _Option("gap_extend_max", "", "gap-extend-max", "Gap open extend max",
            float, _DEFAULTS.score_gap_extend_max, "float"),
    _Option("gap_extend_min", "", "gap-extend-min", "Gap open extend min",
            float, _DEFAULTS.score_gap_extend_min, "float"),
    _Option("gap_decay", "", "gap-decay", "Gap extend decay",
            float, _DEFAULTS.score_gap_decay, "float"),
    _Option("stdout", "", "stdout", "Debug mode", int, _DEFAULTS.stdout_mode, "0-7"),
    _Option("subread_aligner", "", "subread-aligner", "Choose subread aligning method",
            int, _DEFAULTS.subread_aligner, "0-3"),
    _Option("subread_length", "", "subread-length", "Length of fragments reads are split into",
            int, _DEFAULTS.read_part_length, "int"),
    _Option("subread_corridor", "", "subread-corridor",
            "Length of corridor sub-reads are aligned with",
            int, _DEFAULTS.read_part_corridor, "int"),
    _switch("no_progress", "no-progress", "Don't print progress info while mapping"),
    _switch("verbose", "verbose", "Debug output"),
    _switch("color", "color", "Colored command line output"),
    _switch("no_lowqualitysplit", "no-lowqualitysplit", "Split alignments with poor quality"),
    _switch("no_smallinv", "no-smallinv", "Don't detect small inversions"),
    _switch("print_all", "print-all", "Print all alignments. Disable filtering. (debug)"),
    _switch("skip_write", "skip-write", "Don't write reference index to disk",
            _DEFAULTS.skip_save),
    _switch("nosse", "nosse", "Debug switch (don't use if you don't know what you are doing)"),
    _switch("bam_fix", "bam-fix",
            "Report reads with > 64k CIGAR operations as unmapped. "
            "Required to be compatibel to BAM format"),
    _switch("skip_align", "skip-align", "Skip alignment step. Only for debugging purpose"),
)

_BY_DEST = {opt.dest: opt for opt in _OPTIONS}

_SECTIONS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Input/Output:", (
        "reference", "query", "output", "skip_write", "bam_fix", "rg_id", "rg_sm",
        "rg_lb", "rg_pl", "rg_ds", "rg_dt", "rg_pu", "rg_pi", "rg_pg", "rg_cn",
        "rg_fo", "rg_ks",
    )),
    ("General:", (
        "threads", "presets", "min_identity", "min_residues", "no_smallinv",
        "no_lowqualitysplit", "verbose", "no_progress",
    )),
    ("Advanced:", (
        "match", "mismatch", "gap_open", "gap_extend_max", "gap_extend_min",
        "gap_decay", "kmer_length", "kmer_skip", "bin_size", "max_segments",
        "subread_length", "subread_corridor",
    )),
)


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the mapper's options."""
    parser = argparse.ArgumentParser(prog=PROGRAM, add_help=False, allow_abbrev=False)
    parser.add_argument("-h", "--help", action="store_true", dest="help")
    for opt in _OPTIONS:
        flags = [f"-{opt.short}"] if opt.short else []
        flags.append(f"--{opt.long}")
        if opt.takes_value:
            parser.add_argument(
                *flags, dest=opt.dest, type=opt.kind, default=None,
                metavar=opt.type_desc, help=opt.help or None,
            )
        else:
            parser.add_argument(
                *flags, dest=opt.dest, action="store_true",
                default=bool(opt.default), help=opt.help,
            )
    return parser


def usage() -> str:
    """Return the usage text listing the options and their defaults."""
    lines = ["", f"Usage: {PROGRAM} [options] -r <reference> -q <reads> [-o <output>]"]
    for title, dests in _SECTIONS:
        lines.append("")
        lines.append(title)
        for dest in dests:
            opt = _BY_DEST[dest]
            lines.append(f"    {opt.long_id()}")
            desc = f"        {opt.help}"
            if not opt.required:
                desc += f" [{opt.default_text()}]"
            lines.append(desc)
    return "\n".join(lines) + "\n"


def _from_string(value: str | None) -> str | None:
    if not value or value in (_OUT_DEFAULT, _NONE_DEFAULT):
        return None
    return value


def _value(ns: argparse.Namespace, dest: str):
    given = getattr(ns, dest)
    return _BY_DEST[dest].default if given is None else given


def _must_be(logger: Logger, name: str, value: float, positive: bool) -> float:
    if positive and value < 0.0:
        logger.message(
            "--%s must not be smaller than zero. changing from %f to %f",
            name, value, -value,
        )
        return -value
    if not positive and value > 0.0:
        logger.message(
            "--%s must not be greater than zero. changing from %f to %f",
            name, value, -value,
        )
        return -value
    return value


def parse_args(argv: Sequence[str] | None = None) -> Config:
    """Parse command-line arguments (without the program name) into a Config."""
    args = list(sys.argv[1:] if argv is None else argv)
    logger = Logger()
    parser = build_parser()
    ns = parser.parse_args(args)
    if ns.help:
        sys.stdout.write(usage())
        raise SystemExit(0)
    if ns.reference is None:
        parser.error("the following arguments are required: -r/--reference")

    config = Config(
        query_file=_from_string(_value(ns, "query")),
        reference_file=_from_string(ns.reference),
        output_file=_from_string(_value(ns, "output")),
        vcf_file=_from_string(_value(ns, "vcf")),
        bed_file=_from_string(_value(ns, "bed_filter")),
        rg_id=_from_string(_value(ns, "rg_id")),
        rg_sm=_from_string(_value(ns, "rg_sm")),
        rg_lb=_from_string(_value(ns, "rg_lb")),
        rg_pl=_from_string(_value(ns, "rg_pl")),
        rg_ds=_from_string(_value(ns, "rg_ds")),
        rg_dt=_from_string(_value(ns, "rg_dt")),
        rg_pu=_from_string(_value(ns, "rg_pu")),
        rg_pi=_from_string(_value(ns, "rg_pi")),
        rg_pg=_from_string(_value(ns, "rg_pg")),
        rg_cn=_from_string(_value(ns, "rg_cn")),
        rg_fo=_from_string(_value(ns, "rg_fo")),
        rg_ks=_from_string(_value(ns, "rg_ks")),
        preset=_value(ns, "presets"),
        min_identity=_value(ns, "min_identity"),
        min_residues=_value(ns, "min_residues"),
        sensitivity=_value(ns, "sensitivity"),
        threads=_value(ns, "threads"),
        bin_size=_value(ns, "bin_size"),
        kmer_length=_value(ns, "kmer_length"),
        kmer_skip=_value(ns, "kmer_skip"),
        max_segments_per_kb=_value(ns, "max_segments"),
        score_match=_must_be(logger, "match", _value(ns, "match"), True),
        score_mismatch=_must_be(logger, "mismatch", _value(ns, "mismatch"), False),
        score_gap_open=_must_be(logger, "gap-open", _value(ns, "gap_open"), False),
        score_gap_extend_max=_must_be(
            logger, "gap-extend-max", _value(ns, "gap_extend_max"), False
        ),
        score_gap_extend_min=_must_be(
            logger, "gap-extend-min", _value(ns, "gap_extend_min"), False
        ),
        score_gap_decay=_must_be(logger, "gap-decay", _value(ns, "gap_decay"), True),
        stdout_mode=_value(ns, "stdout"),
        subread_aligner=_value(ns, "subread_aligner"),
        read_part_length=_value(ns, "subread_length"),
        read_part_corridor=_value(ns, "subread_corridor"),
        progress=not ns.no_progress,
        color=ns.color,
        verbose=ns.verbose,
        low_quality_split=not ns.no_lowqualitysplit,
        small_inversion_detection=not ns.no_smallinv,
        print_all_alignments=ns.print_all,
        skip_save=ns.skip_write,
        nosse=ns.nosse,
        bam_cigar_fix=ns.bam_fix,
        skip_align=ns.skip_align,
    )

    if config.preset == "ont":
        if ns.gap_decay is None:
            config.score_gap_decay = _ONT_GAP_DECAY
    elif config.preset != "pacbio":
        sys.stderr.write(f"Preset {config.preset} not found\n")

    config.full_command_line = _from_string(" ".join([PROGRAM, *args]))

    def exists(path: str | None) -> bool:
        return path is not None and os.path.exists(path)

    if not exists(config.query_file):
        logger.error("Query file (%s) does not exist.", config.query_file)
    if not exists(config.reference_file):
        logger.error("Reference file (%s) does not exist.", config.reference_file)
    if config.bed_file is not None and not exists(config.bed_file):
        logger.error("BED filter file (%s) does not exist.", config.bed_file)
    if config.vcf_file is not None and not exists(config.vcf_file):
        logger.error("SNP file (%s) does not exist.", config.vcf_file)
    return config


def _open_text(path: str):
    with open(path, "rb") as fh:
        magic = fh.read(2)
    if magic == b"\x1f\x8b":
        return gzip.open(path, "rt")
    return open(path, "r")


def _record_name(header: str) -> str:
    parts = header[1:].split(maxsplit=1)
    return parts[0] if parts else ""


def _read_records(path: str) -> Iterator[tuple[str, str, str | None]]:
    """Yield ``(name, sequence, quality)`` from a FASTA or FASTQ file."""
    with _open_text(path) as fh:
        lines = (line.rstrip("\r\n") for line in fh)
        name: str | None = None
        seq: list[str] = []
        for line in lines:
            if not line:
                continue
            if line.startswith("@") and name is None:
                read_name = _record_name(line)
                bases = next(lines, "")
                next(lines, "")
                qual = next(lines, "")
                yield read_name, bases, qual
            elif line.startswith(">"):
                if name is not None:
                    yield name, "".join(seq), None
                name = _record_name(line)
                seq = []
            elif name is not None:
                seq.append(line.strip())
        if name is not None:
            yield name, "".join(seq), None


def _reference_index(config: Config, logger: Logger) -> PrefixTable:
    path = cache_path(config.reference_file, config.kmer_length, config.kmer_skip)
    if os.path.exists(path):
        logger.message("Reading reference index from %s", path)
        try:
            return PrefixTable.load(
                path, config.kmer_length, config.kmer_skip, config.bin_size
            )
        except IndexFormatError:
            logger.warning("Reference table corrupted, rebuilding...")

    table = PrefixTable(config.kmer_length, config.kmer_skip, config.bin_size)
    table.build(seq for _, seq, _ in _read_records(config.reference_file))
    if config.skip_save:
        logger.warning("Reference index not saved to disk! (--skip-save)")
    else:
        logger.message("Writing reference index to %s", path)
        try:
            table.save(path)
        except OSError:
            logger.warning(
                "WARNING: Could not write reference index to disk: Error while "
                "opening file %s for writing. Please check file permissions.", path
            )
    return table


def _map_reads(config: Config, logger: Logger) -> None:
    table = _reference_index(config, logger)
    search = CandidateSearch(table, config.sensitivity)
    with contextlib.ExitStack() as stack:
        if config.output_file is None:
            out = sys.stdout
        else:
            out = stack.enter_context(open(config.output_file, "w"))
        for read_id, (name, seq, qual) in enumerate(_read_records(config.query_file)):
            read = MappedRead(read_id=read_id, seq=seq.upper(), name=name, qlty=qual)
            found = sorted(search.search(read), key=lambda c: -c.score)
            if not found:
                out.write(f"{name}\t*\t*\t0\n")
            for cand in found:
                strand = "-" if cand.reverse else "+"
                out.write(f"{name}\t{cand.location}\t{strand}\t{cand.score:g}\n")


def main(argv: Sequence[str] | None = None) -> int:
    """Parse the command line, index the reference and report read candidates."""
    try:
        config = parse_args(argv)
    except FatalLogError:
        return 1
    logger = Logger(color=config.color)
    try:
        _map_reads(config, logger)
    except FatalLogError:
        return 1
    except (OSError, ValueError) as exc:
        sys.stderr.write(f"{exc}\n")
        return 1
    return 0