"""Per-shard record fetch with cursor advance, closure eviction and expiry recovery."""

from __future__ import annotations

import logging

from .config import PollerConfig, StartPolicy
from .contracts import PollState, ShardAction, ShardOutcome
from .errors import CursorExpiredError, error_detail, reason_code
from .kinesis import StreamService

logger = logging.getLogger("stream_poller.fetcher")


class RecordFetcher:
    """Turns one shard poll into a ShardOutcome; never raises for shard-level failures."""

    def __init__(self, service: StreamService) -> None:
        self.service = service

    def fetch(self, shard_id: str, cursor: str, config: PollerConfig) -> ShardOutcome:
        try:
            page = self.service.fetch_records(cursor, config.max_records_per_poll)
        except CursorExpiredError as exc:
            return self._recover(shard_id, config, exc)
        except Exception as exc:
            logger.warning(
                "Stream poller fetch failed stream=%s shard=%s code=%s detail=%s",
                config.stream_name,
                shard_id,
                reason_code(exc),
                error_detail(exc),
            )
            return ShardOutcome(shard_id=shard_id, action=ShardAction.SKIPPED, reason=reason_code(exc))
        if page.millis_behind_latest:
            logger.debug(
                "Stream poller shard lag stream=%s shard=%s millis_behind=%s",
                config.stream_name,
                shard_id,
                page.millis_behind_latest,
            )
        if page.next_cursor:
            return ShardOutcome(
                shard_id=shard_id,
                action=ShardAction.ADVANCED,
                records=page.records,
                next_cursor=page.next_cursor,
            )
        logger.info(
            "Stream poller shard closed stream=%s shard=%s final_records=%s",
            config.stream_name,
            shard_id,
            len(page.records),
        )
        return ShardOutcome(shard_id=shard_id, action=ShardAction.CLOSED, records=page.records)

    def _recover(self, shard_id: str, config: PollerConfig, expired: CursorExpiredError) -> ShardOutcome:
        # Recovery always resumes from LATEST; records written while the cursor was stale are skipped.
        try:
            cursor = self.service.create_cursor(config.stream_name, shard_id, StartPolicy.LATEST)
        except Exception as exc:
            logger.warning(
                "Stream poller cursor refresh failed stream=%s shard=%s code=%s detail=%s",
                config.stream_name,
                shard_id,
                reason_code(exc),
                error_detail(exc),
            )
            return ShardOutcome(shard_id=shard_id, action=ShardAction.CURSOR_DROPPED, reason=reason_code(exc))
        if not cursor:
            logger.warning(
                "Stream poller cursor refresh returned no cursor stream=%s shard=%s",
                config.stream_name,
                shard_id,
            )
            return ShardOutcome(shard_id=shard_id, action=ShardAction.CURSOR_DROPPED, reason="CURSOR_MISSING")
        logger.warning(
            "Stream poller cursor expired, reset to LATEST stream=%s shard=%s detail=%s",
            config.stream_name,
            shard_id,
            expired.detail or "",
        )
        return ShardOutcome(
            shard_id=shard_id,
            action=ShardAction.CURSOR_RESET,
            next_cursor=cursor,
            reason=reason_code(expired),
        )


def apply_outcome(state: PollState, outcome: ShardOutcome) -> PollState:
    if outcome.action in (ShardAction.ADVANCED, ShardAction.CURSOR_RESET):
        state.cursors[outcome.shard_id] = str(outcome.next_cursor)
    elif outcome.action in (ShardAction.CLOSED, ShardAction.CURSOR_DROPPED):
        state.cursors.pop(outcome.shard_id, None)
    return state
