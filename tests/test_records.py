from healthstream.core.config import MarkerConfig
from healthstream.core.records import parse_record, record_type, type_filter


def _wrap(fragment: str) -> str:
    return MarkerConfig().wrap(fragment)


def test_parse_record_attributes_and_metadata():
    doc = _wrap(
        '<Record type="HKQuantityTypeIdentifierHeartRate" sourceName="Watch" unit="count/min" '
        'startDate="2024-03-01 07:00:00 +0000" value="58">'
        '<MetadataEntry key="HKMetadataKeyHeartRateMotionContext" value="1"/>'
        "</Record>"
    )
    record = parse_record(doc)
    assert record == {
        "type": "HKQuantityTypeIdentifierHeartRate",
        "sourceName": "Watch",
        "unit": "count/min",
        "startDate": "2024-03-01 07:00:00 +0000",
        "value": "58",
        "metadata": {"HKMetadataKeyHeartRateMotionContext": "1"},
    }


def test_duplicate_metadata_keys_coalesce_into_lists():
    doc = _wrap(
        '<Record type="t"><MetadataEntry key="k" value="a"/><MetadataEntry key="k" value="b"/>'
        '<MetadataEntry key="k" value="c"/></Record>'
    )
    assert parse_record(doc)["metadata"] == {"k": ["a", "b", "c"]}


def test_nested_metadata_lists_are_collected():
    doc = _wrap(
        '<Record type="HKQuantityTypeIdentifierHeartRateVariabilitySDNN">'
        "<HeartRateVariabilityMetadataList>"
        '<InstantaneousBeatsPerMinute bpm="60" time="7:00:00"/>'
        "</HeartRateVariabilityMetadataList>"
        '<MetadataEntry key="HKAlgorithmVersion" value="2"/></Record>'
    )
    record = parse_record(doc)
    assert record["metadata"] == {"HKAlgorithmVersion": "2"}


def test_record_without_metadata_has_no_metadata_key():
    assert parse_record(_wrap('<Record type="t" value="1"/>')) == {"type": "t", "value": "1"}


def test_unparsable_and_recordless_documents_return_none():
    assert parse_record("<HealthData><Record type='x'>") is None
    assert parse_record(_wrap('<Workout type="run"></Workout>')) is None


def test_type_filter():
    keep_all = type_filter(None)
    assert keep_all({"type": "anything"})
    only_steps = type_filter(["steps", ""])
    assert only_steps({"type": "steps"})
    assert not only_steps({"type": "hr"})
    assert not only_steps({})
    assert record_type({"type": 5}) == "5"
