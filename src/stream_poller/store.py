"""Storage backends for poll state, metrics snapshots and the JSONL batch sink.

Paths are relative to the store root. Each consumer key has exactly one
writer, so no backend coordinates concurrent writers.
"""

from __future__ import annotations

from datetime import datetime, timezone
import json
import os
from pathlib import Path
import posixpath
from typing import Any, Iterable, Protocol
from urllib.parse import urlparse
import uuid

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

_MISSING_KEY_CODES = {"404", "NoSuchKey", "NotFound"}


class ObjectStore(Protocol):
    def write_json(self, relative_path: str, payload: dict[str, Any]) -> str:
        ...

    def read_json(self, relative_path: str) -> dict[str, Any]:
        ...

    def append_jsonl(self, relative_path: str, records: Iterable[Any]) -> str:
        ...

    def exists(self, relative_path: str) -> bool:
        ...

    def delete(self, relative_path: str) -> bool:
        ...


def _state_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True, ensure_ascii=True, separators=(",", ":")) + "\n"


def _jsonl(records: Iterable[Any]) -> str:
    return "".join(
        json.dumps(record, sort_keys=True, ensure_ascii=False, separators=(",", ":"), default=str) + "\n"
        for record in records
    )


class LocalObjectStore:
    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _path(self, relative_path: str) -> Path:
        return self.root / relative_path

    def write_json(self, relative_path: str, payload: dict[str, Any]) -> str:
        path = self._path(relative_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        # Atomic replace; readers never see a partial state file.
        staging = path.with_name(path.name + ".tmp")
        staging.write_text(_state_json(payload), encoding="utf-8")
        os.replace(staging, path)
        return str(path)

    def read_json(self, relative_path: str) -> dict[str, Any]:
        return json.loads(self._path(relative_path).read_text(encoding="utf-8"))

    def append_jsonl(self, relative_path: str, records: Iterable[Any]) -> str:
        path = self._path(relative_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(_jsonl(records))
        return str(path)

    def exists(self, relative_path: str) -> bool:
        return self._path(relative_path).is_file()

    def delete(self, relative_path: str) -> bool:
        try:
            self._path(relative_path).unlink()
        except FileNotFoundError:
            return False
        return True


class S3ObjectStore:
    """S3-compatible backend (Yandex Object Storage, MinIO, AWS).

    S3 has no append, so append_jsonl writes each batch as its own part object
    under the sink path: ``out/batches.jsonl`` becomes
    ``out/batches/part-<utc>-<id>.jsonl``. Parts sort by write time.
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        *,
        endpoint_url: str | None = None,
        region_name: str | None = None,
        path_style: bool = False,
        client: Any | None = None,
    ) -> None:
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        if client is None:
            config = Config(s3={"addressing_style": "path"}) if path_style else None
            client = boto3.client("s3", endpoint_url=endpoint_url, region_name=region_name, config=config)
        self._client = client

    def _key(self, relative_path: str) -> str:
        relative = relative_path.lstrip("/")
        return f"{self.prefix}/{relative}" if self.prefix else relative

    def _uri(self, key: str) -> str:
        return f"s3://{self.bucket}/{key}"

    def write_json(self, relative_path: str, payload: dict[str, Any]) -> str:
        key = self._key(relative_path)
        self._client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=_state_json(payload).encode("utf-8"),
            ContentType="application/json",
        )
        return self._uri(key)

    def read_json(self, relative_path: str) -> dict[str, Any]:
        response = self._client.get_object(Bucket=self.bucket, Key=self._key(relative_path))
        return json.loads(response["Body"].read().decode("utf-8"))

    def append_jsonl(self, relative_path: str, records: Iterable[Any]) -> str:
        stem, suffix = posixpath.splitext(relative_path)
        stamp = datetime.now(tz=timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        key = self._key(f"{stem}/part-{stamp}-{uuid.uuid4().hex[:8]}{suffix or '.jsonl'}")
        self._client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=_jsonl(records).encode("utf-8"),
            ContentType="application/x-ndjson",
        )
        return self._uri(key)

    def exists(self, relative_path: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=self._key(relative_path))
        except ClientError as exc:
            if str(exc.response.get("Error", {}).get("Code")) in _MISSING_KEY_CODES:
                return False
            raise
        return True

    def delete(self, relative_path: str) -> bool:
        if not self.exists(relative_path):
            return False
        self._client.delete_object(Bucket=self.bucket, Key=self._key(relative_path))
        return True


def build_object_store(
    root: str,
    s3_endpoint_url: str | None = None,
    s3_region: str | None = None,
    s3_path_style: bool | None = None,
) -> ObjectStore:
    """Local directory for plain paths, S3 for ``s3://bucket/prefix`` roots."""
    if not root.startswith("s3://"):
        return LocalObjectStore(Path(root))
    parsed = urlparse(root)
    if not parsed.netloc:
        raise ValueError(f"state_root has no bucket: {root}")
    if s3_path_style is None:
        s3_path_style = os.getenv("STREAM_POLLER_S3_PATH_STYLE", "").lower() == "true"
    return S3ObjectStore(
        parsed.netloc,
        parsed.path,
        endpoint_url=s3_endpoint_url or os.getenv("STREAM_POLLER_S3_ENDPOINT_URL") or os.getenv("AWS_ENDPOINT_URL"),
        region_name=s3_region or os.getenv("STREAM_POLLER_S3_REGION") or os.getenv("AWS_DEFAULT_REGION"),
        path_style=s3_path_style,
    )
