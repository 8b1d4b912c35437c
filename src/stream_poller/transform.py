"""Raw record decoding into output items.

With include_metadata the item is ``{"data": payload, "metadata": {...}}`` where
metadata keys keep the stream trigger names: ``sequenceNumber``,
``approximateArrivalTimestamp`` (ISO-8601 or null), ``partitionKey`` and
``shardId``.
"""

from __future__ import annotations

import json
from typing import Any

from .config import PollerConfig
from .contracts import OutputRecord, RawRecord


def transform_record(raw: RawRecord, config: PollerConfig, shard_id: str) -> OutputRecord:
    payload: Any = raw.data.decode("utf-8", errors="replace")
    if config.parse_json:
        payload = _parse_json(payload)
    if not config.include_metadata:
        return OutputRecord(payload=payload)
    arrival = raw.approximate_arrival_timestamp
    return OutputRecord(
        payload=payload,
        metadata={
            "sequenceNumber": raw.sequence_number,
            "approximateArrivalTimestamp": arrival.isoformat() if arrival else None,
            "partitionKey": raw.partition_key,
            "shardId": shard_id,
        },
    )


def _parse_json(text: str) -> Any:
    # Non-JSON payloads pass through as text.
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        return text
