"""Run a one-off foreground sync for a user from a JSON payload file.

Useful for operators replaying a dead-lettered task or checking credentials
against the remote knowledge box without going through the HTTP front door.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from kb_sync.config import get_settings
from kb_sync.dead_letters import DeadLetterLog
from kb_sync.logging_config import configure_logging
from kb_sync.service import KbSyncService

LOGGER = logging.getLogger("kb_sync.manual")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sync one user's payload into the knowledge box.")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--payload", type=Path, help="Path to a JSON payload file.")
    source.add_argument(
        "--replay-dead-letters",
        action="store_true",
        help="Replay every task recorded in KB_SYNC_DEAD_LETTER_PATH.",
    )
    parser.add_argument("--user-id", help="User identifier (required with --payload).")
    parser.add_argument("--list", action="store_true", help="List the user's resources after syncing.")
    return parser.parse_args(argv)


def _load_payload(path: Path) -> Any:
    with path.open(encoding="utf-8") as handle:
        return json.load(handle)


async def _run(args: argparse.Namespace) -> int:
    settings = get_settings()
    service = KbSyncService.from_settings(settings)
    failures = 0
    try:
        if args.replay_dead_letters:
            if settings.dead_letter_path is None:
                LOGGER.error("KB_SYNC_DEAD_LETTER_PATH is not configured.")
                return 2
            entries = DeadLetterLog(settings.dead_letter_path).entries()
            LOGGER.info("Replaying %d dead-lettered tasks", len(entries))
            jobs = [(entry["task"]["user_id"], entry["task"].get("payload")) for entry in entries if "task" in entry]
        else:
            if not args.user_id:
                LOGGER.error("--user-id is required with --payload.")
                return 2
            jobs = [(args.user_id, _load_payload(args.payload))]

        for user_id, payload in jobs:
            try:
                result = await service.process_now(user_id, payload)
            except Exception as exc:  # noqa: BLE001
                failures += 1
                LOGGER.error("Sync failed for %s: %s", user_id, exc)
                continue
            print(json.dumps(result.as_payload(), indent=2, default=str))
            if args.list:
                listing = await service.resolve_kb_and_list(user_id)
                print(json.dumps(listing, indent=2, default=str))
    finally:
        await service.aclose()
    return 1 if failures else 0


def main(argv: Optional[list[str]] = None) -> int:
    configure_logging()
    args = parse_args(argv)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
