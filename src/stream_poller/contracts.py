"""Stream poller data contracts (shards, records, poll state, outcomes)."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import PollerError


@dataclass(frozen=True)
class HashKeyRange:
    starting_hash_key: str
    ending_hash_key: str


@dataclass(frozen=True)
class SequenceNumberRange:
    starting_sequence_number: str
    ending_sequence_number: str | None = None


@dataclass(frozen=True)
class Shard:
    shard_id: str
    parent_shard_id: str | None = None
    adjacent_parent_shard_id: str | None = None
    hash_key_range: HashKeyRange | None = None
    sequence_number_range: SequenceNumberRange | None = None

    @property
    def is_closed(self) -> bool:
        """A shard with an ending sequence number no longer accepts writes."""
        return bool(self.sequence_number_range and self.sequence_number_range.ending_sequence_number)

    @classmethod
    def from_service(cls, payload: Mapping[str, Any]) -> "Shard":
        hash_range = payload.get("HashKeyRange")
        seq_range = payload.get("SequenceNumberRange")
        return cls(
            shard_id=str(payload["ShardId"]),
            parent_shard_id=payload.get("ParentShardId"),
            adjacent_parent_shard_id=payload.get("AdjacentParentShardId"),
            hash_key_range=(
                HashKeyRange(
                    starting_hash_key=str(hash_range.get("StartingHashKey")),
                    ending_hash_key=str(hash_range.get("EndingHashKey")),
                )
                if isinstance(hash_range, Mapping)
                else None
            ),
            sequence_number_range=(
                SequenceNumberRange(
                    starting_sequence_number=str(seq_range.get("StartingSequenceNumber")),
                    ending_sequence_number=seq_range.get("EndingSequenceNumber"),
                )
                if isinstance(seq_range, Mapping)
                else None
            ),
        )


@dataclass(frozen=True)
class RawRecord:
    data: bytes
    sequence_number: str
    partition_key: str
    approximate_arrival_timestamp: datetime | None = None


@dataclass(frozen=True)
class RecordPage:
    records: tuple[RawRecord, ...]
    next_cursor: str | None
    millis_behind_latest: int | None = None


@dataclass(frozen=True)
class OutputRecord:
    """One decoded item; metadata is only present when requested."""

    payload: Any
    metadata: dict[str, Any] | None = None

    def to_item(self) -> Any:
        if self.metadata is None:
            return self.payload
        return {"data": self.payload, "metadata": dict(self.metadata)}


@dataclass
class PollState:
    """Persisted cursor state for one consumer; mutated in place by each poll."""

    cursors: dict[str, str] = field(default_factory=dict)
    last_topology_refresh: datetime | None = None
    round_robin_index: int = 0

    def copy(self) -> "PollState":
        return PollState(
            cursors=dict(self.cursors),
            last_topology_refresh=self.last_topology_refresh,
            round_robin_index=self.round_robin_index,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "cursors": dict(sorted(self.cursors.items())),
            "last_topology_refresh_utc": (
                self.last_topology_refresh.isoformat() if self.last_topology_refresh else None
            ),
            "round_robin_index": int(self.round_robin_index),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PollState":
        try:
            document = PollStateDocument.model_validate(dict(payload))
        except ValidationError as exc:
            raise PollerError("POLL_STATE_INVALID", str(exc).splitlines()[0]) from exc
        return cls(
            cursors=dict(document.cursors),
            last_topology_refresh=document.last_topology_refresh_utc,
            round_robin_index=document.round_robin_index,
        )


class PollStateDocument(BaseModel):
    cursors: dict[str, str] = Field(default_factory=dict)
    last_topology_refresh_utc: datetime | None = None
    round_robin_index: int = Field(default=0, ge=0)
    updated_at_utc: datetime | None = None

    @field_validator("last_topology_refresh_utc")
    @classmethod
    def _require_aware(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class ShardAction(str, Enum):
    ADVANCED = "ADVANCED"
    CLOSED = "CLOSED"
    CURSOR_RESET = "CURSOR_RESET"
    CURSOR_DROPPED = "CURSOR_DROPPED"
    SKIPPED = "SKIPPED"


@dataclass(frozen=True)
class ShardOutcome:
    """Result of polling one shard: records plus the cursor change to apply."""

    shard_id: str
    action: ShardAction
    records: tuple[RawRecord, ...] = ()
    next_cursor: str | None = None
    reason: str | None = None

    def __post_init__(self) -> None:
        if self.action in (ShardAction.ADVANCED, ShardAction.CURSOR_RESET) and not self.next_cursor:
            raise ValueError(f"{self.action.value} outcome requires next_cursor")


@dataclass(frozen=True)
class PollBatch:
    """Non-empty result of one poll invocation."""

    records: tuple[OutputRecord, ...]
    outcomes: tuple[ShardOutcome, ...]
    polled_at: datetime

    @property
    def items(self) -> list[Any]:
        return [record.to_item() for record in self.records]

    def __len__(self) -> int:
        return len(self.records)
