"""Poll orchestrator: one invocation from persisted state to a batch or no data."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Callable

from .config import PollerConfig
from .contracts import OutputRecord, PollBatch, ShardAction, ShardOutcome
from .fetcher import RecordFetcher, apply_outcome
from .kinesis import StreamService
from .observability import PollerRunMetrics
from .selection import select_shards
from .state_store import CursorStore
from .topology import ShardDirectory
from .transform import transform_record

logger = logging.getLogger("stream_poller.poller")

_OUTCOME_COUNTERS = {
    ShardAction.CLOSED: "shards_closed_total",
    ShardAction.CURSOR_RESET: "cursor_reset_total",
    ShardAction.CURSOR_DROPPED: "cursor_dropped_total",
    ShardAction.SKIPPED: "fetch_error_total",
}


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


class StreamPoller:
    """Polls one consumer's shards.

    Callers must not run poll() concurrently for the same consumer key; the
    persisted state has no locking.
    """

    def __init__(
        self,
        *,
        service: StreamService,
        store: CursorStore,
        consumer_key: str,
        metrics: PollerRunMetrics | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.store = store
        self.consumer_key = consumer_key
        self.metrics = metrics or PollerRunMetrics(consumer_key=consumer_key)
        self.clock = clock
        self.directory = ShardDirectory(service, metrics=self.metrics)
        self.fetcher = RecordFetcher(service)

    def poll(self, config: PollerConfig) -> PollBatch | None:
        """Run one invocation. Returns None when no shard produced records."""
        state = self.store.load(self.consumer_key)
        config.validate()
        now = self.clock()
        self.metrics.bump("polls_total")
        state = self.directory.refresh_if_needed(state, config, now)

        records: list[OutputRecord] = []
        outcomes: list[ShardOutcome] = []
        for shard_id in select_shards(state, config):
            cursor = state.cursors.get(shard_id)
            if not cursor:
                continue
            outcome = self.fetcher.fetch(shard_id, cursor, config)
            apply_outcome(state, outcome)
            outcomes.append(outcome)
            records.extend(transform_record(raw, config, shard_id) for raw in outcome.records)
            self._count(outcome)

        self.store.save(self.consumer_key, state)
        logger.info(
            "Stream poller cycle stream=%s consumer=%s shards=%s records=%s cursors=%s",
            config.stream_name,
            self.consumer_key,
            len(outcomes),
            len(records),
            len(state.cursors),
        )
        if not records:
            self.metrics.bump("no_data_total")
            return None
        return PollBatch(records=tuple(records), outcomes=tuple(outcomes), polled_at=now)

    def _count(self, outcome: ShardOutcome) -> None:
        self.metrics.bump("shards_polled_total")
        self.metrics.bump("records_total", len(outcome.records))
        counter = _OUTCOME_COUNTERS.get(outcome.action)
        if counter:
            self.metrics.bump(counter)
