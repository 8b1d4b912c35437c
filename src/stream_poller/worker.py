"""Stream poller runtime worker (scheduler loop + output sink)."""

from __future__ import annotations

import argparse
from dataclasses import replace
import json
import logging
from pathlib import Path
import sys
import time
from typing import Any, Callable

from .config import PollerProfile, load_profile
from .kinesis import StreamService, build_kinesis_client
from .logging_utils import configure_logging
from .observability import PollerRunMetrics
from .poller import StreamPoller
from .state_store import CursorStore, ObjectStoreCursorStore
from .store import ObjectStore, build_object_store

logger = logging.getLogger("stream_poller.worker")

BatchSink = Callable[[list[Any]], None]


class PollerWorker:
    def __init__(
        self,
        profile: PollerProfile,
        *,
        service: StreamService | None = None,
        cursor_store: CursorStore | None = None,
        object_store: ObjectStore | None = None,
        sink: BatchSink | None = None,
    ) -> None:
        self.profile = profile
        wiring = profile.wiring
        self._store = object_store or build_object_store(
            root=wiring.state_root,
            s3_endpoint_url=wiring.object_store_endpoint,
            s3_region=wiring.object_store_region,
            s3_path_style=wiring.object_store_path_style,
        )
        self._service = service or build_kinesis_client(
            region=wiring.region,
            endpoint_url=wiring.endpoint_url,
            access_key_id=wiring.access_key_id,
            secret_access_key=wiring.secret_access_key,
            connect_timeout_seconds=wiring.connect_timeout_seconds,
            read_timeout_seconds=wiring.read_timeout_seconds,
        )
        self.metrics = PollerRunMetrics(consumer_key=wiring.consumer_key)
        self.poller = StreamPoller(
            service=self._service,
            store=cursor_store or ObjectStoreCursorStore(self._store),
            consumer_key=wiring.consumer_key,
            metrics=self.metrics,
        )
        self._sink = sink or self._default_sink

    def run_once(self) -> int:
        batch = self.poller.poll(self.profile.poller)
        self._export()
        if batch is None:
            return 0
        self._sink(batch.items)
        return len(batch)

    def run_forever(self) -> None:
        while True:
            emitted = self.run_once()
            if emitted == 0:
                time.sleep(self.profile.wiring.poll_sleep_seconds)

    def _default_sink(self, items: list[Any]) -> None:
        output_path = self.profile.wiring.output_path
        if output_path:
            location = self._store.append_jsonl(output_path, items)
            logger.info("Stream poller batch written items=%s location=%s", len(items), location)
            return
        for item in items:
            sys.stdout.write(json.dumps(item, ensure_ascii=False, default=str) + "\n")
        sys.stdout.flush()

    def _export(self) -> None:
        try:
            self.metrics.export(self._store)
        except Exception:
            logger.exception("Stream poller metrics export failed consumer=%s", self.profile.wiring.consumer_key)


def main() -> None:
    parser = argparse.ArgumentParser(description="Stream poller worker")
    parser.add_argument("--profile", required=True, help="Path to poller profile")
    parser.add_argument("--once", action="store_true", help="Run one poll invocation and exit")
    parser.add_argument("--poll-seconds", type=float, default=None, help="Override poll sleep seconds")
    parser.add_argument("--log-level", default=None, help="Override STREAM_POLLER_LOG_LEVEL")
    parser.add_argument("--log-file", action="append", default=None, help="Also log to this file (repeatable)")
    args = parser.parse_args()

    profile = load_profile(Path(args.profile))
    configure_logging(args.log_level, args.log_file, consumer_key=profile.wiring.consumer_key)
    if args.poll_seconds is not None and args.poll_seconds > 0:
        profile = replace(profile, wiring=replace(profile.wiring, poll_sleep_seconds=float(args.poll_seconds)))
    worker = PollerWorker(profile)
    if args.once:
        worker.run_once()
        return
    worker.run_forever()


if __name__ == "__main__":
    main()
