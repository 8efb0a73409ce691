import io
from datetime import datetime

import pytest

from lrmap.log import FatalLogError, Logger, add_timestamp


def _logger(**kwargs):
    stream = io.StringIO()
    return Logger(stream, **kwargs), stream


def test_message_formats():
    log, stream = _logger()
    log.message("Processed: %d reads", 5)
    assert stream.getvalue() == "Processed: 5 reads\n"


def test_message_without_args_keeps_percent():
    log, stream = _logger()
    log.message("100% done")
    assert stream.getvalue() == "100% done\n"


def test_filter_level_suppresses_lower_levels():
    log, stream = _logger()
    log.filter_level(1)
    log.message("hidden")
    log.warning("shown")
    assert stream.getvalue() == "shown\n"


def test_error_raises_and_terminates():
    log, stream = _logger()
    with pytest.raises(FatalLogError):
        log.error("File %s missing", "reads.fa")
    output = stream.getvalue()
    assert "File reads.fa missing" in output
    assert "Terminating" in output


def test_too_many_warnings():
    log, stream = _logger()
    for _ in range(100):
        log.warning("careful")
    with pytest.raises(FatalLogError):
        log.warning("careful")
    assert "Max number of warnings reached!" in stream.getvalue()


def test_progress_is_rewound():
    log, stream = _logger()
    log.progress("step %d", 1)
    log.message("done")
    assert stream.getvalue() == "step 1\n\033[A\033[2Kdone\n"


def test_color_wraps_output():
    log, stream = _logger()
    log.set_color(True)
    log.message("colored")
    output = stream.getvalue()
    assert output.startswith("\033[")
    assert "colored" in output
    assert output.endswith("\033[0m\n")


def test_debug_respects_mask():
    log, stream = _logger(level=8)
    log.debug(8, "hit %d", 3)
    log.debug(4, "ignored")
    assert log.history() == ["8\thit 3"]
    assert stream.getvalue() == ""


def test_history_is_a_copy():
    log, _ = _logger(level=1)
    log.debug(1, "a")
    log.history().clear()
    assert log.history() == ["1\ta"]


def test_add_timestamp():
    moment = datetime(2020, 1, 2, 3, 4, 5)
    assert add_timestamp("log_%s.txt", moment) == "log_2020-01-02_03-04-05.txt"


def test_add_timestamp_without_placeholder():
    assert add_timestamp("plain.log") == "plain.log"


def test_add_timestamp_replaces_first_only():
    result = add_timestamp("%s-%s", datetime(2021, 6, 7, 8, 9, 10))
    assert result.endswith("-%s")
    assert result.count("%s") == 1