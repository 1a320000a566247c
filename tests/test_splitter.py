from __future__ import annotations

from collections.abc import Sequence

import pytest

from healthstream.core.accumulator import ChunkAccumulator
from healthstream.core.config import MarkerConfig
from healthstream.core.splitter import RecordSplitter

WRAP_HEAD = '<?xml version="1.0" encoding="UTF-8"?><HealthData>'
WRAP_TAIL = "</HealthData>"


def _drain(splitter: RecordSplitter, acc: ChunkAccumulator, out: list[str]) -> None:
    while True:
        fragment = splitter.next_fragment(acc)
        if fragment is None:
            return
        out.append(fragment)


def split_chunks(chunks: Sequence[bytes], markers: MarkerConfig | None = None) -> tuple[list[str], RecordSplitter]:
    acc = ChunkAccumulator(max_size=1_000_000)
    splitter = RecordSplitter(markers)
    out: list[str] = []
    for chunk in chunks:
        acc.append(chunk)
        _drain(splitter, acc, out)
    acc.finish()
    _drain(splitter, acc, out)
    return out, splitter


def cut(data: bytes, offsets: Sequence[int]) -> list[bytes]:
    bounds = [0, *offsets, len(data)]
    return [data[a:b] for a, b in zip(bounds, bounds[1:])]


def wrapped(fragment: str) -> str:
    return WRAP_HEAD + fragment + WRAP_TAIL


def test_records_split_mid_marker_are_reassembled():
    data = b"<Record>A</Record><Record>B</Record>"
    fragments, _ = split_chunks(cut(data, [5, 15]))
    assert fragments == [wrapped("<Record>A</Record>"), wrapped("<Record>B</Record>")]


def test_fragment_sequence_is_independent_of_chunking():
    data = (
        b'<?xml version="1.0"?><HealthData><Me x="1"/>'
        b'<Record type="a" value="1"/>  <Record type="b"><MetadataEntry key="k" value="v"/></Record>'
        b"stray</Record>"
        b'<Record type="c">\xe2\x82\xac</Record></HealthData>'
    )
    expected, _ = split_chunks([data])
    assert len(expected) == 2
    for size in range(1, 12):
        chunks = [data[i : i + size] for i in range(0, len(data), size)]
        assert split_chunks(chunks)[0] == expected, f"chunk size {size}"
    for offset in range(1, len(data)):
        assert split_chunks(cut(data, [offset]))[0] == expected, f"split at {offset}"


def test_wrapped_fragment_format():
    fragments, _ = split_chunks([b'<Record type="x" value="2"></Record>'])
    assert fragments == [
        '<?xml version="1.0" encoding="UTF-8"?><HealthData><Record type="x" value="2"></Record></HealthData>'
    ]


def test_end_marker_without_start_skips_to_next_record():
    acc = ChunkAccumulator(max_size=1000)
    splitter = RecordSplitter()
    acc.append(b'garbage</Record><Record t="1"></Record>')
    out: list[str] = []
    _drain(splitter, acc, out)
    assert out == [wrapped('<Record t="1"></Record>')]
    assert splitter.corrupted_regions == 1
    assert acc.discarded_chars == len("garbage</Record>")


def test_orphan_end_marker_discarded_before_later_records_arrive():
    fragments, splitter = split_chunks([b"junk</Record>", b'<Record x="2"></Record>'])
    assert fragments == [wrapped('<Record x="2"></Record>')]
    assert splitter.corrupted_regions == 1


def test_nearest_start_marker_wins():
    fragments, _ = split_chunks([b"<Record a><Record b></Record>"])
    assert fragments == [wrapped("<Record b></Record>")]


def test_incomplete_record_stays_buffered():
    acc = ChunkAccumulator(max_size=1000)
    splitter = RecordSplitter()
    acc.append(b'<Record type="x"><MetadataEntry key="a" value="b"/>')
    assert splitter.next_fragment(acc) is None
    assert len(acc) > 0
    acc.append(b"</Record>")
    assert splitter.next_fragment(acc) is not None
    assert len(acc) == 0


def test_multibyte_value_split_byte_by_byte():
    data = '<Record value="café \U0001f3c3"></Record>'.encode("utf-8")
    fragments, _ = split_chunks([data[i : i + 1] for i in range(len(data))])
    assert fragments == [wrapped('<Record value="café \U0001f3c3"></Record>')]


@pytest.mark.parametrize("split", [3, 9, 20])
def test_custom_markers(split):
    markers = MarkerConfig(start="<Workout", end="</Workout>", root_tag="Export")
    data = b'<Record a/></Record><Workout kind="run"></Workout>'
    fragments, _ = split_chunks(cut(data, [split]), markers)
    assert fragments == ['<?xml version="1.0" encoding="UTF-8"?><Export><Workout kind="run"></Workout></Export>']
