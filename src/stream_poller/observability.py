"""Stream poller run metrics."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .store import ObjectStore

_REQUIRED_COUNTERS = (
    "polls_total",
    "no_data_total",
    "records_total",
    "shards_polled_total",
    "shards_closed_total",
    "cursor_reset_total",
    "cursor_dropped_total",
    "fetch_error_total",
    "topology_refresh_total",
    "cursors_created_total",
)


@dataclass
class PollerRunMetrics:
    consumer_key: str
    counters: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not str(self.consumer_key or "").strip():
            raise ValueError("consumer_key is required")
        for key in _REQUIRED_COUNTERS:
            self.counters.setdefault(key, 0)

    def bump(self, key: str, delta: int = 1) -> None:
        if key not in self.counters:
            raise ValueError(f"unsupported metric counter: {key}")
        self.counters[key] = int(self.counters.get(key, 0)) + int(delta)

    def snapshot(self) -> dict[str, Any]:
        return {
            "generated_at_utc": datetime.now(tz=timezone.utc).isoformat(),
            "consumer_key": self.consumer_key,
            "metrics": dict(self.counters),
        }

    def export(self, store: ObjectStore, prefix: str = "stream-poller/metrics") -> str:
        return store.write_json(f"{prefix}/consumer={self.consumer_key}.json", self.snapshot())
