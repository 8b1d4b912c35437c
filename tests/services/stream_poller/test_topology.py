from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from stream_poller.config import PollerConfig, StartPolicy
from stream_poller.contracts import PollState
from stream_poller.errors import PollerError
from stream_poller.observability import PollerRunMetrics
from stream_poller.topology import ShardDirectory, should_refresh

from stream_fakes import FakeStreamService, T0, client_error


def test_should_refresh_when_empty_or_stale() -> None:
    assert should_refresh(PollState(), T0)
    fresh = PollState(cursors={"s": "it-1"}, last_topology_refresh=T0)
    assert not should_refresh(fresh, T0 + timedelta(minutes=5))
    assert should_refresh(fresh, T0 + timedelta(minutes=5, seconds=1))
    assert should_refresh(PollState(cursors={"s": "it-1"}), T0)
    assert should_refresh(fresh, T0 + timedelta(seconds=31), interval=timedelta(seconds=30))


def test_refresh_if_needed_follows_config_interval() -> None:
    service = FakeStreamService(["shard-a"])
    directory = ShardDirectory(service)
    config = PollerConfig(stream_name="orders")
    state = directory.refresh_if_needed(PollState(), config, T0)
    assert service.list_calls == 1

    directory.refresh_if_needed(state, config, T0 + config.topology_refresh_interval)
    assert service.list_calls == 1

    directory.refresh_if_needed(state, config, T0 + config.topology_refresh_interval + timedelta(seconds=1))
    assert service.list_calls == 2


def test_refresh_is_idempotent_when_topology_unchanged() -> None:
    service = FakeStreamService(["shard-a", "shard-b"])
    directory = ShardDirectory(service)
    config = PollerConfig(stream_name="orders")
    state = PollState()

    directory.refresh(state, config, T0)
    cursors = dict(state.cursors)
    later = T0 + timedelta(minutes=6)
    directory.refresh_if_needed(state, config, later)

    assert state.cursors == cursors
    assert len(service.create_calls) == 2
    assert service.list_calls == 2
    assert state.last_topology_refresh == later


def test_refresh_keeps_unlisted_shards_and_adds_new_ones() -> None:
    service = FakeStreamService(["shard-b", "shard-c"])
    metrics = PollerRunMetrics(consumer_key="c1")
    directory = ShardDirectory(service, metrics=metrics)
    state = PollState(cursors={"shard-a": "it-old-a", "shard-b": "it-old-b"}, last_topology_refresh=T0)

    directory.refresh_if_needed(state, PollerConfig(stream_name="orders"), T0 + timedelta(minutes=10))

    assert state.cursors["shard-a"] == "it-old-a"
    assert state.cursors["shard-b"] == "it-old-b"
    assert "shard-c" in state.cursors
    assert [call["shard_id"] for call in service.create_calls] == ["shard-c"]
    assert metrics.counters["topology_refresh_total"] == 1
    assert metrics.counters["cursors_created_total"] == 1


def test_refresh_not_due_makes_no_calls() -> None:
    service = FakeStreamService(["shard-a"])
    state = PollState(cursors={"shard-a": "it-1"}, last_topology_refresh=T0)

    ShardDirectory(service).refresh_if_needed(state, PollerConfig(stream_name="orders"), T0 + timedelta(minutes=1))

    assert service.list_calls == 0
    assert state.last_topology_refresh == T0


def test_at_timestamp_is_passed_verbatim() -> None:
    service = FakeStreamService(["shard-a"])
    start = datetime(2026, 2, 28, 8, 30, tzinfo=timezone.utc)
    config = PollerConfig(stream_name="orders", start_policy=StartPolicy.AT_TIMESTAMP, start_timestamp=start)

    ShardDirectory(service).refresh(PollState(), config, T0)

    assert service.create_calls[0]["start_policy"] == StartPolicy.AT_TIMESTAMP
    assert service.create_calls[0]["timestamp"] is start


def test_start_timestamp_ignored_for_other_policies() -> None:
    service = FakeStreamService(["shard-a"])
    config = PollerConfig(stream_name="orders", start_timestamp=T0)

    ShardDirectory(service).refresh(PollState(), config, T0)

    assert service.create_calls[0]["timestamp"] is None


def test_shard_without_returned_cursor_is_left_out() -> None:
    service = FakeStreamService(["shard-a", "shard-b"])
    service.no_cursor_shards.add("shard-a")
    state = ShardDirectory(service).refresh(PollState(), PollerConfig(stream_name="orders"), T0)

    assert list(state.cursors) == ["shard-b"]


def test_list_failure_is_fatal() -> None:
    class _Failing(FakeStreamService):
        def list_shards(self, stream_name):  # type: ignore[no-untyped-def]
            raise client_error("ResourceNotFoundException", "stream orders not found")

    with pytest.raises(PollerError) as excinfo:
        ShardDirectory(_Failing()).refresh(PollState(), PollerConfig(stream_name="orders"), T0)
    assert excinfo.value.code == "TOPOLOGY_REFRESH_FAILED"
    assert "ResourceNotFoundException" in str(excinfo.value)


def test_cursor_creation_failure_is_fatal() -> None:
    service = FakeStreamService(["shard-a"])
    service.create_failures["shard-a"] = client_error("LimitExceededException", "rate exceeded")
    state = PollState()

    with pytest.raises(PollerError) as excinfo:
        ShardDirectory(service).refresh(state, PollerConfig(stream_name="orders"), T0)
    assert excinfo.value.code == "TOPOLOGY_REFRESH_FAILED"
    assert state.last_topology_refresh is None
