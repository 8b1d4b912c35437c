"""Shard selection strategies."""

from __future__ import annotations

from .config import PollerConfig, ShardIterationStrategy
from .contracts import PollState
from .errors import PollerError


def select_shards(state: PollState, config: PollerConfig) -> list[str]:
    """Pick the shards to poll this invocation; ROUND_ROBIN advances the index."""
    shard_ids = sorted(state.cursors)
    strategy = config.shard_iteration_strategy
    if strategy == ShardIterationStrategy.SPECIFIC_SHARD:
        if not config.shard_id:
            raise PollerError("SHARD_ID_MISSING", "shard_id is required for specific_shard strategy")
        if config.shard_id not in state.cursors:
            raise PollerError("SHARD_NOT_FOUND", config.shard_id)
        return [config.shard_id]
    if strategy == ShardIterationStrategy.ROUND_ROBIN:
        if not shard_ids:
            return []
        index = state.round_robin_index % len(shard_ids)
        state.round_robin_index = (index + 1) % len(shard_ids)
        return [shard_ids[index]]
    return shard_ids
