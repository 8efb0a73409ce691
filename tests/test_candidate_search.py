import random

import pytest

from lrmap.candidate_search import CandidateSearch, SearchTableOverflow
from lrmap.mapped_read import MappedRead, ReadGroup, reverse_complement
from lrmap.prefix_table import PrefixTable

K = 8


@pytest.fixture(scope="module")
def reference():
    rng = random.Random(7)
    return "".join(rng.choices("ACGT", k=3000))


@pytest.fixture(scope="module")
def table(reference):
    t = PrefixTable(kmer_length=K, kmer_skip=0, bin_size=0)
    t.build([reference])
    return t


def best(scores):
    return max(scores, key=lambda s: s.score)


def test_hash_stays_in_table(table):
    cs = CandidateSearch(table, 0.5, table_bits=10)
    for loc in range(0, 100000, 137):
        assert 0 <= cs.hash(loc) < 2**10
    assert cs.hash(0) == 0


def test_hash_takes_top_bits_of_product(table):
    wide = CandidateSearch(table, 0.5, table_bits=12)
    narrow = CandidateSearch(table, 0.5, table_bits=10)
    for loc in (1, 7, 123456, 987654321):
        assert wide.hash(loc) >> 2 == narrow.hash(loc)


def test_table_bits_limit(table):
    cs = CandidateSearch(table, 0.5)
    with pytest.raises(ValueError):
        cs.set_table_bits(24)


def test_forward_read_found(table, reference):
    read = MappedRead(0, seq=reference[1000:1300], name="r0")
    cs = CandidateSearch(table, 0.5)
    found = cs.search(read)
    top = best(found)
    assert top.location == 1000
    assert top.reverse is False
    assert top.score == len(read.seq) - K + 1
    assert read.scores == found
    assert read.calculated == 0


def test_reverse_read_found(table, reference):
    read = MappedRead(1, seq=reverse_complement(reference[500:800]), name="r1")
    cs = CandidateSearch(table, 0.5)
    top = best(cs.search(read))
    assert top.location == 500
    assert top.reverse is True


def test_scores_respect_threshold(table, reference):
    read = MappedRead(2, seq=reference[200:450])
    cs = CandidateSearch(table, 0.5)
    found = cs.search(read)
    assert read.s == best(found).score
    assert all(s.score >= 0.5 * read.s for s in found)


def test_short_read_has_no_candidates(table):
    read = MappedRead(3, seq="ACGT")
    cs = CandidateSearch(table, 0.5)
    assert cs.search(read) == []
    assert read.has_candidates() is False
    assert read.calculated == -1


def test_min_kmer_hits_filters_everything(table, reference):
    read = MappedRead(4, seq=reference[0:100])
    cs = CandidateSearch(table, 0.5, min_kmer_hits=10**6)
    assert cs.search(read) == []


def test_max_candidates_keeps_scores_off_read(table, reference):
    read = MappedRead(5, seq=reference[0:100])
    cs = CandidateSearch(table, 0.5, max_candidates=0)
    found = cs.search(read)
    assert len(found) >= 1
    assert read.num_scores() == 0


def test_add_location_accumulates(table):
    cs = CandidateSearch(table, 0.5)
    assert cs.add_location(42, False, 1.0) == 1.0
    assert cs.add_location(42, False, 1.0) == 2.0
    assert cs.add_location(42, True, 1.0) == 1.0


def test_add_location_overflow(table):
    cs = CandidateSearch(table, 0.5, table_bits=2)
    with pytest.raises(SearchTableOverflow):
        for loc in range(5):
            cs.add_location(loc, False, 1.0)


def test_run_batch_counts_and_shrinks(table, reference):
    reads = [MappedRead(i, seq=reference[i * 300:i * 300 + 200]) for i in range(3)]
    cs = CandidateSearch(table, 0.5, table_bits=16)
    total = cs.run_batch(reads)
    assert total == sum(r.num_scores() for r in reads)
    assert cs.table_bits == 15
    assert cs.processed_reads == 3


def test_run_batch_fixed_size(table, reference):
    cs = CandidateSearch(table, 0.5, table_bits=16, adaptive=False)
    cs.run_batch([MappedRead(0, seq=reference[0:200])])
    assert cs.table_bits == 16


def test_unmatched_group_read_is_finished(table):
    small = PrefixTable(kmer_length=K, bin_size=0)
    small.build(["C" * 40])
    group = ReadGroup()
    read = MappedRead(6, seq="A" * 50, group=group)
    group.reads.append(read)
    cs = CandidateSearch(small, 0.5)
    assert cs.search(read) == []
    assert read.mapping_qlty == 0
    assert group.reads_finished == 1
    assert read.calculated == 0