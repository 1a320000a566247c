import logging

import pytest

from healthstream.core.accumulator import ChunkAccumulator


def test_multibyte_character_split_across_chunks():
    acc = ChunkAccumulator(max_size=100)
    acc.append(b"ab\xc3")
    assert acc.text == "ab"
    acc.append(b"\xa9cd")
    assert acc.text == "abécd"
    assert acc.bytes_in == 6
    assert acc.chunks_in == 2


def test_invalid_bytes_become_replacement_characters():
    acc = ChunkAccumulator(max_size=100)
    acc.append(b"ok\xff")
    acc.append(b"\xc3")
    acc.finish()
    assert acc.text == "ok\ufffd\ufffd"


def test_consume_moves_cursor_and_compacts_on_append():
    acc = ChunkAccumulator(max_size=100)
    acc.append(b"hello")
    acc.consume(2)
    assert len(acc) == 3
    assert acc.pos == 2
    acc.append(b"!")
    assert acc.pos == 0
    assert acc.text == "llo!"


def test_consume_out_of_range_raises():
    acc = ChunkAccumulator(max_size=100)
    acc.append(b"abc")
    with pytest.raises(ValueError):
        acc.consume(10)
    acc.consume(2)
    with pytest.raises(ValueError):
        acc.consume(1)


def test_invalid_max_size_rejected():
    with pytest.raises(ValueError):
        ChunkAccumulator(max_size=0)


def test_enforce_limit_keeps_text_after_last_end_marker():
    acc = ChunkAccumulator(max_size=10)
    acc.append(b"xxxxx</Record>yyyyyyyy")
    dropped = acc.enforce_limit("</Record>")
    assert dropped == 14
    assert len(acc) == 8
    assert acc.text[acc.pos:] == "yyyyyyyy"
    assert acc.discarded_chars == 14


def test_enforce_limit_clears_without_end_marker(caplog):
    caplog.set_level(logging.WARNING, logger="healthstream")
    acc = ChunkAccumulator(max_size=10)
    acc.append(b"<Record " + b"x" * 20)
    dropped = acc.enforce_limit("</Record>")
    assert dropped == 28
    assert len(acc) == 0
    assert acc.discarded_chars == 28
    assert any("no complete record" in r.getMessage() for r in caplog.records)


def test_enforce_limit_noop_under_limit():
    acc = ChunkAccumulator(max_size=10)
    acc.append(b"short")
    assert acc.enforce_limit("</Record>") == 0
    assert acc.text == "short"


def test_mark_scanned_survives_compaction():
    acc = ChunkAccumulator(max_size=100)
    acc.append(b"abcdefgh")
    acc.consume(4)
    acc.mark_scanned("</R>")
    assert acc.scan_from == 5
    acc.append(b"ij")
    # Compaction shifts offsets by the consumed prefix.
    assert acc.pos == 0
    assert acc.scan_from == 1
