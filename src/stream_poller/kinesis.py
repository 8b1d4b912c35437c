"""Kinesis-compatible stream service adapter (AWS Kinesis, Yandex Data Streams)."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import os
from typing import Any, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from .config import StartPolicy
from .contracts import RawRecord, RecordPage, Shard
from .errors import CursorExpiredError, PollerError, error_detail

logger = logging.getLogger("stream_poller.kinesis")

_EXPIRED_CURSOR_ERROR_CODES = {
    "ExpiredIteratorException",
    "InvalidArgumentException",
}
_YDS_REGION = "ru-central1"


class StreamService(Protocol):
    def list_shards(self, stream_name: str) -> list[Shard]:
        ...

    def create_cursor(
        self,
        stream_name: str,
        shard_id: str,
        start_policy: StartPolicy,
        timestamp: datetime | None = None,
    ) -> str | None:
        ...

    def fetch_records(self, cursor: str, max_records: int) -> RecordPage:
        ...


class KinesisStreamClient:
    def __init__(self, client: Any) -> None:
        self._client = client

    def list_streams(self) -> list[str]:
        names: list[str] = []
        kwargs: dict[str, Any] = {}
        while True:
            response = self._client.list_streams(**kwargs)
            names.extend(str(name) for name in response.get("StreamNames", []) if name)
            if not response.get("HasMoreStreams") or not names:
                break
            kwargs = {"ExclusiveStartStreamName": names[-1]}
        return names

    def list_shards(self, stream_name: str) -> list[Shard]:
        if not stream_name:
            raise PollerError("STREAM_NAME_MISSING")
        shards: list[Shard] = []
        kwargs: dict[str, Any] = {"StreamName": stream_name}
        while True:
            response = self._client.list_shards(**kwargs)
            for payload in response.get("Shards", []):
                if payload.get("ShardId"):
                    shards.append(Shard.from_service(payload))
            next_token = response.get("NextToken")
            if not next_token:
                break
            kwargs = {"NextToken": next_token}
        logger.debug("Kinesis list_shards stream=%s shards=%s", stream_name, len(shards))
        return shards

    def create_cursor(
        self,
        stream_name: str,
        shard_id: str,
        start_policy: StartPolicy,
        timestamp: datetime | None = None,
    ) -> str | None:
        args: dict[str, Any] = {
            "StreamName": stream_name,
            "ShardId": shard_id,
            "ShardIteratorType": StartPolicy.parse(start_policy).value,
        }
        if args["ShardIteratorType"] == StartPolicy.AT_TIMESTAMP.value and timestamp is not None:
            args["Timestamp"] = timestamp
        response = self._client.get_shard_iterator(**args)
        return response.get("ShardIterator") or None

    def fetch_records(self, cursor: str, max_records: int) -> RecordPage:
        try:
            response = self._client.get_records(ShardIterator=cursor, Limit=max(1, int(max_records)))
        except ClientError as exc:
            if _is_expired_cursor(exc):
                raise CursorExpiredError(cursor, error_detail(exc)) from exc
            raise
        records = tuple(_raw_record(item) for item in response.get("Records", []))
        millis_behind = response.get("MillisBehindLatest")
        return RecordPage(
            records=records,
            next_cursor=response.get("NextShardIterator") or None,
            millis_behind_latest=int(millis_behind) if millis_behind is not None else None,
        )


def build_kinesis_client(
    *,
    region: str | None = None,
    endpoint_url: str | None = None,
    access_key_id: str | None = None,
    secret_access_key: str | None = None,
    connect_timeout_seconds: float = 5.0,
    read_timeout_seconds: float = 10.0,
) -> KinesisStreamClient:
    region = region or os.getenv("AWS_DEFAULT_REGION") or os.getenv("AWS_REGION")
    endpoint = endpoint_url or os.getenv("AWS_ENDPOINT_URL") or os.getenv("KINESIS_ENDPOINT_URL")
    if endpoint and "yandexcloud" in endpoint and not region:
        region = _YDS_REGION
    kwargs: dict[str, Any] = {
        "region_name": region,
        "endpoint_url": endpoint,
        "config": Config(
            connect_timeout=connect_timeout_seconds,
            read_timeout=read_timeout_seconds,
            retries={"max_attempts": 2, "mode": "standard"},
        ),
    }
    if access_key_id and secret_access_key:
        kwargs["aws_access_key_id"] = access_key_id
        kwargs["aws_secret_access_key"] = secret_access_key
    return KinesisStreamClient(boto3.client("kinesis", **kwargs))


def format_stream_name(stream_name: str, cloud_id: str | None = None, database_id: str | None = None) -> str:
    """Expand a short stream name into the full Yandex Data Streams path."""
    if stream_name.startswith("/"):
        return stream_name
    if cloud_id and database_id:
        return f"/{_YDS_REGION}/{cloud_id}/{database_id}/{stream_name}"
    return stream_name


def _is_expired_cursor(exc: ClientError) -> bool:
    code = str(exc.response.get("Error", {}).get("Code") or "")
    if code in _EXPIRED_CURSOR_ERROR_CODES:
        return True
    return "expired" in error_detail(exc).lower()


def _raw_record(item: dict[str, Any]) -> RawRecord:
    data = item.get("Data")
    if isinstance(data, str):
        data = data.encode("utf-8")
    arrival = item.get("ApproximateArrivalTimestamp")
    if isinstance(arrival, datetime):
        arrival = arrival if arrival.tzinfo else arrival.replace(tzinfo=timezone.utc)
    elif isinstance(arrival, (int, float)):
        arrival = datetime.fromtimestamp(arrival, tz=timezone.utc)
    else:
        arrival = None
    return RawRecord(
        data=bytes(data or b""),
        sequence_number=str(item.get("SequenceNumber") or ""),
        partition_key=str(item.get("PartitionKey") or ""),
        approximate_arrival_timestamp=arrival,
    )
