"""Cursor store: persisted poll state keyed by consumer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol

from .contracts import PollState
from .store import ObjectStore


class CursorStore(Protocol):
    def load(self, consumer_key: str) -> PollState:
        ...

    def save(self, consumer_key: str, state: PollState) -> None:
        ...


@dataclass
class InMemoryCursorStore:
    """Process-local store; keeps copies so callers cannot alias saved state."""

    states: dict[str, PollState] = field(default_factory=dict)

    def load(self, consumer_key: str) -> PollState:
        state = self.states.get(consumer_key)
        return state.copy() if state else PollState()

    def save(self, consumer_key: str, state: PollState) -> None:
        self.states[consumer_key] = state.copy()

    def clear(self, consumer_key: str) -> bool:
        return self.states.pop(consumer_key, None) is not None


@dataclass(frozen=True)
class ObjectStoreCursorStore:
    store: ObjectStore
    prefix: str = "stream-poller/cursors"

    def state_path(self, consumer_key: str) -> str:
        return f"{self.prefix}/consumer={consumer_key}.json"

    def load(self, consumer_key: str) -> PollState:
        path = self.state_path(consumer_key)
        if not self.store.exists(path):
            return PollState()
        return PollState.from_dict(self.store.read_json(path))

    def save(self, consumer_key: str, state: PollState) -> None:
        payload = state.as_dict()
        payload["consumer_key"] = consumer_key
        payload["updated_at_utc"] = datetime.now(tz=timezone.utc).isoformat()
        self.store.write_json(self.state_path(consumer_key), payload)

    def clear(self, consumer_key: str) -> bool:
        return self.store.delete(self.state_path(consumer_key))
