from __future__ import annotations

import json
from pathlib import Path

import yaml

from stream_poller.config import load_profile
from stream_poller.store import LocalObjectStore
from stream_poller.worker import PollerWorker

from stream_fakes import FakeStreamService


def _profile(tmp_path: Path, **wiring) -> Path:
    payload = {
        "profile_id": "local_test",
        "poller": {
            "stream_name": "orders",
            "iterator_type": "TRIM_HORIZON",
            "include_metadata": True,
        },
        "wiring": {
            "consumer_key": "orders-test",
            "state_root": str(tmp_path / "state"),
            "poll_sleep_seconds": 0.1,
            **wiring,
        },
    }
    path = tmp_path / "profile.yaml"
    path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
    return path


def test_worker_run_once_hands_batch_to_sink(tmp_path: Path) -> None:
    service = FakeStreamService(["shardId-000000000000"])
    service.put("shardId-000000000000", '{"event_id": "evt-1"}')
    emitted: list[list] = []
    worker = PollerWorker(load_profile(_profile(tmp_path)), service=service, sink=emitted.append)

    assert worker.run_once() == 1
    assert emitted[0][0]["data"] == {"event_id": "evt-1"}
    assert emitted[0][0]["metadata"]["shardId"] == "shardId-000000000000"

    assert worker.run_once() == 0
    assert len(emitted) == 1

    state_path = tmp_path / "state" / "stream-poller" / "cursors" / "consumer=orders-test.json"
    assert json.loads(state_path.read_text(encoding="utf-8"))["cursors"]

    metrics_path = tmp_path / "state" / "stream-poller" / "metrics" / "consumer=orders-test.json"
    metrics = json.loads(metrics_path.read_text(encoding="utf-8"))
    assert metrics["metrics"]["polls_total"] == 2
    assert metrics["metrics"]["records_total"] == 1
    assert metrics["metrics"]["no_data_total"] == 1


def test_worker_default_sink_appends_jsonl(tmp_path: Path) -> None:
    service = FakeStreamService(["shardId-000000000000"])
    service.put("shardId-000000000000", "first")
    service.put("shardId-000000000000", "second")
    profile = load_profile(_profile(tmp_path, output_path="out/batches.jsonl"))
    worker = PollerWorker(profile, service=service, object_store=LocalObjectStore(tmp_path / "state"))

    assert worker.run_once() == 2

    lines = (tmp_path / "state" / "out" / "batches.jsonl").read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["data"] for line in lines] == ["first", "second"]


def test_worker_resumes_from_persisted_cursor(tmp_path: Path) -> None:
    service = FakeStreamService(["shardId-000000000000"])
    service.put("shardId-000000000000", "a")
    profile = load_profile(_profile(tmp_path))
    emitted: list[list] = []

    PollerWorker(profile, service=service, sink=emitted.append).run_once()
    service.put("shardId-000000000000", "b")
    PollerWorker(profile, service=service, sink=emitted.append).run_once()

    assert [[item["data"] for item in batch] for batch in emitted] == [["a"], ["b"]]
