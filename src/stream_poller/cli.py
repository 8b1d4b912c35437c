"""Stream poller operator CLI (streams/shards/state/reset)."""

from __future__ import annotations

import argparse
from datetime import datetime, timezone
import json
from pathlib import Path

from .config import PollerProfile, load_profile
from .kinesis import KinesisStreamClient, build_kinesis_client
from .logging_utils import configure_logging
from .state_store import ObjectStoreCursorStore
from .store import build_object_store
from .topology import should_refresh


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Stream poller operator commands")
    parser.add_argument("--profile", required=True, help="Path to poller profile")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("streams", help="List stream names visible to the profile credentials")
    sub.add_parser("shards", help="List shards of the profile stream")
    sub.add_parser("state", help="Print the persisted poll state")
    sub.add_parser("reset", help="Delete the persisted poll state")
    return parser


def _client(profile: PollerProfile) -> KinesisStreamClient:
    wiring = profile.wiring
    return build_kinesis_client(
        region=wiring.region,
        endpoint_url=wiring.endpoint_url,
        access_key_id=wiring.access_key_id,
        secret_access_key=wiring.secret_access_key,
        connect_timeout_seconds=wiring.connect_timeout_seconds,
        read_timeout_seconds=wiring.read_timeout_seconds,
    )


def _cursor_store(profile: PollerProfile) -> ObjectStoreCursorStore:
    wiring = profile.wiring
    return ObjectStoreCursorStore(
        build_object_store(
            root=wiring.state_root,
            s3_endpoint_url=wiring.object_store_endpoint,
            s3_region=wiring.object_store_region,
            s3_path_style=wiring.object_store_path_style,
        )
    )


def _cmd_streams(profile: PollerProfile) -> int:
    for name in _client(profile).list_streams():
        print(json.dumps({"stream_name": name, "display_name": name.split("/")[-1] or name}, ensure_ascii=True))
    return 0


def _cmd_shards(profile: PollerProfile) -> int:
    if not profile.poller.stream_name:
        raise SystemExit("STREAM_NAME_MISSING")
    for shard in _client(profile).list_shards(profile.poller.stream_name):
        payload = {
            "shard_id": shard.shard_id,
            "parent_shard_id": shard.parent_shard_id,
            "adjacent_parent_shard_id": shard.adjacent_parent_shard_id,
            "closed": shard.is_closed,
        }
        print(json.dumps(payload, ensure_ascii=True))
    return 0


def _cmd_state(profile: PollerProfile) -> int:
    state = _cursor_store(profile).load(profile.wiring.consumer_key)
    payload = state.as_dict()
    payload["consumer_key"] = profile.wiring.consumer_key
    payload["refresh_due"] = should_refresh(state, datetime.now(tz=timezone.utc))
    print(json.dumps(payload, ensure_ascii=True, indent=2))
    return 0


def _cmd_reset(profile: PollerProfile) -> int:
    removed = _cursor_store(profile).clear(profile.wiring.consumer_key)
    print(json.dumps({"consumer_key": profile.wiring.consumer_key, "removed": removed}, ensure_ascii=True))
    return 0


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    profile = load_profile(Path(args.profile))
    configure_logging(consumer_key=profile.wiring.consumer_key)
    if args.command == "streams":
        return _cmd_streams(profile)
    if args.command == "shards":
        return _cmd_shards(profile)
    if args.command == "state":
        return _cmd_state(profile)
    if args.command == "reset":
        return _cmd_reset(profile)
    raise SystemExit("UNKNOWN_COMMAND")


if __name__ == "__main__":
    raise SystemExit(main())
