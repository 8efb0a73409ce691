import random

import pytest

from lrmap.cli import Config, build_parser, main, parse_args, usage
from lrmap.kmer import get_bin, resolve_bin
from lrmap.log import FatalLogError
from lrmap.prefix_table import cache_path


@pytest.fixture
def files(tmp_path):
    ref = tmp_path / "ref.fa"
    ref.write_text(">chr1\nACGTACGTAC\n")
    qry = tmp_path / "reads.fa"
    qry.write_text(">r1\nACGTAC\n")
    return str(ref), str(qry)


def test_defaults_come_from_config(files):
    ref, qry = files
    config = parse_args(["-r", ref, "-q", qry])
    defaults = Config()
    assert config.reference_file == ref
    assert config.query_file == qry
    assert config.kmer_length == defaults.kmer_length
    assert config.score_gap_decay == defaults.score_gap_decay
    assert config.output_file is None
    assert config.rg_id is None
    assert config.progress is True
    assert config.low_quality_split is True


def test_none_and_stdout_become_none(files):
    ref, qry = files
    config = parse_args(["-r", ref, "-q", qry, "-o", "stdout", "--rg-id", "none"])
    assert config.output_file is None
    assert config.rg_id is None


def test_values_are_parsed(files):
    ref, qry = files
    config = parse_args(
        ["-r", ref, "-q", qry, "-k", "11", "-t", "4", "--rg-sm", "sample", "-o", "out.sam"]
    )
    assert config.kmer_length == 11
    assert config.threads == 4
    assert config.rg_sm == "sample"
    assert config.output_file == "out.sam"


def test_switches_invert(files):
    ref, qry = files
    config = parse_args(
        ["-r", ref, "-q", qry, "--no-progress", "--no-smallinv",
         "--no-lowqualitysplit", "--skip-write", "--bam-fix"]
    )
    assert config.progress is False
    assert config.small_inversion_detection is False
    assert config.low_quality_split is False
    assert config.skip_save is True
    assert config.bam_cigar_fix is True


def test_score_signs_are_corrected(files, capsys):
    ref, qry = files
    config = parse_args(
        ["-r", ref, "-q", qry, "--match", "-3", "--mismatch", "4", "--gap-open", "2"]
    )
    assert config.score_match == 3.0
    assert config.score_mismatch == -4.0
    assert config.score_gap_open == -2.0
    err = capsys.readouterr().err
    assert "--match must not be smaller than zero" in err
    assert "--mismatch must not be greater than zero" in err


def test_ont_preset_sets_gap_decay(files):
    ref, qry = files
    assert parse_args(["-r", ref, "-q", qry, "-x", "ont"]).score_gap_decay == 0.15


def test_ont_preset_keeps_explicit_gap_decay(files):
    ref, qry = files
    config = parse_args(["-r", ref, "-q", qry, "-x", "ont", "--gap-decay", "0.5"])
    assert config.score_gap_decay == 0.5


def test_unknown_preset_is_reported(files, capsys):
    ref, qry = files
    config = parse_args(["-r", ref, "-q", qry, "-x", "foo"])
    assert config.preset == "foo"
    assert "Preset foo not found" in capsys.readouterr().err


def test_full_command_line(files):
    ref, qry = files
    config = parse_args(["-r", ref, "-q", qry])
    assert config.full_command_line == " ".join(["ngmlr", "-r", ref, "-q", qry])


def test_missing_reference_option_exits(files):
    _, qry = files
    with pytest.raises(SystemExit) as info:
        parse_args(["-q", qry])
    assert info.value.code == 2


def test_missing_reference_file_is_fatal(files, tmp_path, capsys):
    _, qry = files
    with pytest.raises(FatalLogError):
        parse_args(["-r", str(tmp_path / "missing.fa"), "-q", qry])
    assert "does not exist" in capsys.readouterr().err


def test_missing_vcf_file_is_fatal(files, tmp_path):
    ref, qry = files
    with pytest.raises(FatalLogError):
        parse_args(["-r", ref, "-q", qry, "--vcf", str(tmp_path / "x.vcf")])


def test_help_prints_usage(capsys):
    with pytest.raises(SystemExit) as info:
        parse_args(["--help"])
    assert info.value.code == 0
    assert capsys.readouterr().out == usage()


def test_usage_layout():
    text = usage()
    assert "Usage: ngmlr [options] -r <reference> -q <reads> [-o <output>]" in text
    assert "    -r <file>,  --reference <file>\n" in text
    assert "    --skip-write\n" in text
    assert "Path to the read file (FASTA/Q) [/dev/stdin]" in text
    assert text.index("Input/Output:") < text.index("General:") < text.index("Advanced:")
    assert "--vcf" not in text


def test_parser_accepts_negative_values():
    ns = build_parser().parse_args(["-r", "ref.fa", "--mismatch", "-7"])
    assert ns.mismatch == -7.0
    assert ns.reference == "ref.fa"


def test_main_fails_on_missing_reference(tmp_path, files):
    _, qry = files
    assert main(["-r", str(tmp_path / "nope.fa"), "-q", qry]) == 1


def test_main_maps_read(tmp_path):
    rng = random.Random(1)
    genome = "".join(rng.choice("ACGT") for _ in range(300))
    ref = tmp_path / "genome.fa"
    ref.write_text(">chr1\n" + genome[:150] + "\n" + genome[150:] + "\n")
    qry = tmp_path / "reads.fq"
    qry.write_text("@read1 extra\n" + genome[64:144] + "\n+\n" + "I" * 80 + "\n")
    out = tmp_path / "out.tsv"

    code = main(["-r", str(ref), "-q", str(qry), "-o", str(out), "-k", "8"])
    assert code == 0
    lines = out.read_text().splitlines()
    name, location, strand, _ = lines[0].split("\t")
    assert name == "read1"
    assert strand == "+"
    assert int(location) == resolve_bin(get_bin(64, 4), 4)
    assert (tmp_path / "genome.fa-ht-8-2.2.ngm").exists()
    assert cache_path(str(ref), 8, 2).endswith("genome.fa-ht-8-2.2.ngm")

    again = tmp_path / "again.tsv"
    assert main(["-r", str(ref), "-q", str(qry), "-o", str(again), "-k", "8"]) == 0
    assert again.read_text() == out.read_text()


def test_main_skip_write_leaves_no_cache(tmp_path):
    rng = random.Random(2)
    genome = "".join(rng.choice("ACGT") for _ in range(200))
    ref = tmp_path / "g.fa"
    ref.write_text(">c\n" + genome + "\n")
    qry = tmp_path / "q.fa"
    qry.write_text(">q\n" + genome[20:100] + "\n")
    out = tmp_path / "o.tsv"
    assert main(["-r", str(ref), "-q", str(qry), "-o", str(out),
                 "-k", "8", "--skip-write"]) == 0
    assert not (tmp_path / "g.fa-ht-8-2.2.ngm").exists()
    assert out.read_text().startswith("q\t")