"""Shard directory: periodic topology refresh and cursor creation for new shards."""

from __future__ import annotations

from datetime import datetime, timedelta
import logging

from .config import TOPOLOGY_REFRESH_INTERVAL, PollerConfig, StartPolicy
from .contracts import PollState, Shard
from .errors import PollerError, error_detail, reason_code
from .kinesis import StreamService
from .observability import PollerRunMetrics

logger = logging.getLogger("stream_poller.topology")


def should_refresh(state: PollState, now: datetime, interval: timedelta = TOPOLOGY_REFRESH_INTERVAL) -> bool:
    if not state.cursors or state.last_topology_refresh is None:
        return True
    return now - state.last_topology_refresh > interval


class ShardDirectory:
    def __init__(self, service: StreamService, metrics: PollerRunMetrics | None = None) -> None:
        self.service = service
        self.metrics = metrics

    def refresh_if_needed(self, state: PollState, config: PollerConfig, now: datetime) -> PollState:
        if not should_refresh(state, now, config.topology_refresh_interval):
            return state
        return self.refresh(state, config, now)

    def refresh(self, state: PollState, config: PollerConfig, now: datetime) -> PollState:
        shards = self._list_shards(config.stream_name)
        if not shards:
            raise PollerError("STREAM_HAS_NO_SHARDS", config.stream_name)
        created = 0
        for shard in shards:
            if state.cursors.get(shard.shard_id):
                continue
            cursor = self._create_cursor(config, shard)
            if not cursor:
                logger.warning(
                    "Stream poller got no cursor for new shard stream=%s shard=%s policy=%s",
                    config.stream_name,
                    shard.shard_id,
                    config.start_policy.value,
                )
                continue
            state.cursors[shard.shard_id] = cursor
            created += 1
        listed = {shard.shard_id for shard in shards}
        retained = sorted(set(state.cursors) - listed)
        state.last_topology_refresh = now
        if self.metrics:
            self.metrics.bump("topology_refresh_total")
            self.metrics.bump("cursors_created_total", created)
        logger.info(
            "Stream poller topology refreshed stream=%s shards=%s new_cursors=%s unlisted_retained=%s",
            config.stream_name,
            len(shards),
            created,
            ",".join(retained) or "-",
        )
        return state

    def _list_shards(self, stream_name: str) -> list[Shard]:
        try:
            return self.service.list_shards(stream_name)
        except PollerError:
            raise
        except Exception as exc:
            raise PollerError(
                "TOPOLOGY_REFRESH_FAILED",
                f"list_shards {reason_code(exc)} {error_detail(exc)}".strip(),
            ) from exc

    def _create_cursor(self, config: PollerConfig, shard: Shard) -> str | None:
        timestamp = config.start_timestamp if config.start_policy == StartPolicy.AT_TIMESTAMP else None
        try:
            return self.service.create_cursor(
                config.stream_name,
                shard.shard_id,
                config.start_policy,
                timestamp,
            )
        except Exception as exc:
            raise PollerError(
                "TOPOLOGY_REFRESH_FAILED",
                f"create_cursor shard={shard.shard_id} {reason_code(exc)} {error_detail(exc)}".strip(),
            ) from exc
