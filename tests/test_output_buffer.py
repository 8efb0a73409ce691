import pytest

from lrmap.mapped_read import MappedRead
from lrmap.output_buffer import BufferFullError, OutputReadBuffer


def make_buffer(max_size=100000):
    written = []
    buf = OutputReadBuffer(lambda read, mapped: written.append(read.read_id), max_size)
    return buf, written


def add_and_drain(buf, read_id):
    buf.add_read(MappedRead(read_id, 100), False)
    return [read.read_id for read, _ in buf.drain()]


def test_writes_in_id_order():
    buf, written = make_buffer()
    assert add_and_drain(buf, 4) == []
    assert add_and_drain(buf, 1) == []
    assert add_and_drain(buf, 0) == [0, 1]
    assert add_and_drain(buf, 2) == [2]
    assert add_and_drain(buf, 3) == [3, 4]
    assert add_and_drain(buf, 5) == [5]
    assert add_and_drain(buf, 6) == [6]
    assert written == [0, 1, 2, 3, 4, 5, 6]
    assert len(buf) == 0


def test_mapped_flag_passed_through():
    seen = []
    buf = OutputReadBuffer(lambda read, mapped: seen.append(mapped))
    buf.add_read(MappedRead(0), True)
    buf.add_read(MappedRead(1), False)
    result = buf.drain()
    assert [m for _, m in result] == [True, False]
    assert seen == [True, False]


def test_pending_reads_counted():
    buf, written = make_buffer()
    buf.add_read(MappedRead(3), False)
    buf.add_read(MappedRead(2), False)
    assert buf.drain() == []
    assert len(buf) == 2
    assert written == []
    assert buf.next_read_id == 0


def test_buffer_full():
    buf, _ = make_buffer(max_size=2)
    buf.add_read(MappedRead(5), False)
    buf.add_read(MappedRead(6), False)
    with pytest.raises(BufferFullError):
        buf.add_read(MappedRead(7), False)
    assert len(buf) == 2