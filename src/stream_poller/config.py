"""Poller configuration and profile loader."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
import os
import re
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import PollerConfigError

TOPOLOGY_REFRESH_INTERVAL = timedelta(minutes=5)
MAX_RECORDS_LIMIT = 10000

_ENV_PATTERN = re.compile(r"^\$\{([^}:]+)(?::-([^}]*))?\}$")


class ShardIterationStrategy(str, Enum):
    ALL_SHARDS = "ALL_SHARDS"
    ROUND_ROBIN = "ROUND_ROBIN"
    SPECIFIC_SHARD = "SPECIFIC_SHARD"

    @classmethod
    def parse(cls, value: Any) -> "ShardIterationStrategy":
        if isinstance(value, cls):
            return value
        token = _normalize_token(value or cls.ALL_SHARDS.value)
        for member in cls:
            if member.value.replace("_", "") == token:
                return member
        raise PollerConfigError("SHARD_ITERATION_STRATEGY_INVALID", str(value))


class StartPolicy(str, Enum):
    LATEST = "LATEST"
    TRIM_HORIZON = "TRIM_HORIZON"
    AT_TIMESTAMP = "AT_TIMESTAMP"

    @classmethod
    def parse(cls, value: Any) -> "StartPolicy":
        if isinstance(value, cls):
            return value
        token = _normalize_token(value or cls.LATEST.value)
        for member in cls:
            if member.value.replace("_", "") == token:
                return member
        raise PollerConfigError("ITERATOR_TYPE_INVALID", str(value))


@dataclass(frozen=True)
class PollerConfig:
    stream_name: str
    shard_iteration_strategy: ShardIterationStrategy = ShardIterationStrategy.ALL_SHARDS
    shard_id: str | None = None
    start_policy: StartPolicy = StartPolicy.LATEST
    start_timestamp: datetime | None = None
    max_records_per_poll: int = 100
    parse_json: bool = True
    include_metadata: bool = False

    @property
    def topology_refresh_interval(self) -> timedelta:
        return TOPOLOGY_REFRESH_INTERVAL

    def validate(self) -> "PollerConfig":
        if not str(self.stream_name or "").strip():
            raise PollerConfigError("STREAM_NAME_MISSING")
        if self.shard_iteration_strategy == ShardIterationStrategy.SPECIFIC_SHARD and not self.shard_id:
            raise PollerConfigError("SHARD_ID_MISSING", "shard_id is required for specific_shard strategy")
        if self.start_policy == StartPolicy.AT_TIMESTAMP and self.start_timestamp is None:
            raise PollerConfigError("START_TIMESTAMP_MISSING", "timestamp is required for AT_TIMESTAMP")
        if not 1 <= int(self.max_records_per_poll) <= MAX_RECORDS_LIMIT:
            raise PollerConfigError("MAX_RECORDS_INVALID", str(self.max_records_per_poll))
        return self


@dataclass(frozen=True)
class PollerWiring:
    consumer_key: str
    state_root: str
    output_path: str | None
    poll_sleep_seconds: float
    region: str | None
    endpoint_url: str | None
    access_key_id: str | None
    secret_access_key: str | None
    connect_timeout_seconds: float
    read_timeout_seconds: float
    object_store_endpoint: str | None
    object_store_region: str | None
    object_store_path_style: bool


@dataclass(frozen=True)
class PollerProfile:
    profile_id: str
    poller: PollerConfig
    wiring: PollerWiring


def load_profile(path: Path) -> PollerProfile:
    if not path.exists():
        raise PollerConfigError("PROFILE_MISSING", str(path))
    payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(payload, Mapping):
        raise PollerConfigError("PROFILE_INVALID", "profile must be a mapping")
    profile_id = str(_env(payload.get("profile_id")) or "local").strip() or "local"
    poller = _mapping(payload.get("poller"), "poller")
    wiring = _mapping(payload.get("wiring"), "wiring")
    event_bus = _mapping(wiring.get("event_bus"), "wiring.event_bus")
    object_store = _mapping(wiring.get("object_store"), "wiring.object_store")

    stream_name = str(_env(poller.get("stream_name")) or "").strip()
    cloud_id = _none_if_blank(_env(poller.get("cloud_id")))
    database_id = _none_if_blank(_env(poller.get("database_id")))
    if stream_name:
        from .kinesis import format_stream_name

        stream_name = format_stream_name(stream_name, cloud_id=cloud_id, database_id=database_id)

    config = PollerConfig(
        stream_name=stream_name,
        shard_iteration_strategy=ShardIterationStrategy.parse(_env(poller.get("shard_iteration_strategy"))),
        shard_id=_none_if_blank(_env(poller.get("shard_id"))),
        start_policy=StartPolicy.parse(_env(poller.get("iterator_type"))),
        start_timestamp=parse_timestamp(_env(poller.get("timestamp"))),
        max_records_per_poll=_int(_env(poller.get("max_records_per_poll")), 100, "max_records_per_poll"),
        parse_json=_bool(_env(poller.get("parse_json")), True),
        include_metadata=_bool(_env(poller.get("include_metadata")), False),
    )

    consumer_key = str(_env(wiring.get("consumer_key")) or "").strip()
    if not consumer_key:
        consumer_key = f"{profile_id}.{_slug(stream_name) or 'stream'}"
    return PollerProfile(
        profile_id=profile_id,
        poller=config,
        wiring=PollerWiring(
            consumer_key=consumer_key,
            state_root=str(_env(wiring.get("state_root")) or os.getenv("STREAM_POLLER_STATE_ROOT") or "runs/stream-poller").strip(),
            output_path=_none_if_blank(_env(wiring.get("output_path"))),
            poll_sleep_seconds=max(0.05, _float(_env(wiring.get("poll_sleep_seconds")), 5.0, "poll_sleep_seconds")),
            region=_none_if_blank(_env(event_bus.get("region"))),
            endpoint_url=_none_if_blank(_env(event_bus.get("endpoint_url"))),
            access_key_id=_none_if_blank(_env(event_bus.get("access_key_id"))),
            secret_access_key=_none_if_blank(_env(event_bus.get("secret_access_key"))),
            connect_timeout_seconds=_float(_env(event_bus.get("connect_timeout_seconds")), 5.0, "connect_timeout_seconds"),
            read_timeout_seconds=_float(_env(event_bus.get("read_timeout_seconds")), 10.0, "read_timeout_seconds"),
            object_store_endpoint=_none_if_blank(_env(object_store.get("endpoint"))),
            object_store_region=_none_if_blank(_env(object_store.get("region"))),
            object_store_path_style=_bool(_env(object_store.get("path_style")), True),
        ),
    )


def parse_timestamp(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise PollerConfigError("TIMESTAMP_INVALID", str(value)) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _normalize_token(value: Any) -> str:
    return re.sub(r"[^A-Z]", "", str(value).strip().upper())


def _mapping(value: Any, name: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise PollerConfigError("PROFILE_INVALID", f"{name} must be a mapping")
    return value


def _int(value: Any, default: int, name: str) -> int:
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise PollerConfigError("PROFILE_INVALID", f"{name} must be an integer") from exc


def _float(value: Any, default: float, name: str) -> float:
    if value in (None, ""):
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise PollerConfigError("PROFILE_INVALID", f"{name} must be a number") from exc


def _bool(value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes"}


def _slug(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", value.strip("/")).strip("_")


def _env(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    token = value.strip()
    match = _ENV_PATTERN.fullmatch(token)
    if not match:
        return value
    return os.getenv(match.group(1), match.group(2) or "")


def _none_if_blank(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None
