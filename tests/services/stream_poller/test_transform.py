from __future__ import annotations

from stream_poller.config import PollerConfig
from stream_poller.contracts import RawRecord
from stream_poller.transform import transform_record

from stream_fakes import T0


def _raw(data: bytes) -> RawRecord:
    return RawRecord(data=data, sequence_number="42", partition_key="pk-1", approximate_arrival_timestamp=T0)


def test_json_payload_is_parsed_by_default() -> None:
    record = transform_record(_raw(b'{"event_id": "evt-1", "amount": 10}'), PollerConfig(stream_name="x"), "s-0")
    assert record.to_item() == {"event_id": "evt-1", "amount": 10}
    assert record.metadata is None


def test_invalid_json_falls_back_to_text() -> None:
    record = transform_record(_raw(b"{not json"), PollerConfig(stream_name="x"), "s-0")
    assert record.to_item() == "{not json"


def test_parse_json_disabled_keeps_text() -> None:
    record = transform_record(_raw(b'{"a": 1}'), PollerConfig(stream_name="x", parse_json=False), "s-0")
    assert record.to_item() == '{"a": 1}'


def test_invalid_utf8_is_replaced_not_raised() -> None:
    record = transform_record(_raw(b"ok\xff"), PollerConfig(stream_name="x"), "s-0")
    assert record.to_item() == "ok\ufffd"


def test_metadata_envelope_only_when_requested() -> None:
    record = transform_record(_raw(b"plain"), PollerConfig(stream_name="x", include_metadata=True), "s-3")
    assert record.to_item() == {
        "data": "plain",
        "metadata": {
            "sequenceNumber": "42",
            "approximateArrivalTimestamp": T0.isoformat(),
            "partitionKey": "pk-1",
            "shardId": "s-3",
        },
    }
    bare = transform_record(_raw(b"plain"), PollerConfig(stream_name="x"), "s-3")
    assert bare.to_item() == "plain"
