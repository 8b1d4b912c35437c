"""Sharded stream poller: cursor tracking and batch polling for Kinesis-style streams."""

from .config import PollerConfig, PollerProfile, ShardIterationStrategy, StartPolicy, load_profile
from .contracts import OutputRecord, PollBatch, PollState, RawRecord, RecordPage, Shard, ShardAction, ShardOutcome
from .errors import CursorExpiredError, PollerConfigError, PollerError
from .poller import StreamPoller
from .state_store import CursorStore, InMemoryCursorStore, ObjectStoreCursorStore

__all__ = [
    "CursorExpiredError",
    "CursorStore",
    "InMemoryCursorStore",
    "ObjectStoreCursorStore",
    "OutputRecord",
    "PollBatch",
    "PollState",
    "PollerConfig",
    "PollerConfigError",
    "PollerError",
    "PollerProfile",
    "RawRecord",
    "RecordPage",
    "Shard",
    "ShardAction",
    "ShardIterationStrategy",
    "ShardOutcome",
    "StartPolicy",
    "StreamPoller",
    "load_profile",
]
