"""
Home Assistant Twin Ingest - Replay CLI.

Replays recorded Home Assistant state events through the batch processor,
either against Azure Digital Twins or in dry-run mode.

Usage:
    ha-twin-ingest replay events.jsonl --dry-run
    ha-twin-ingest replay events.jsonl --adt-url https://my-adt.api.neu.digitaltwins.azure.net
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from ha_twin_ingest.adt_helper import AdtTwinStore, DryRunTwinStore, create_adt_client
from ha_twin_ingest.config import get_settings
from ha_twin_ingest.logger import setup_logger
from ha_twin_ingest.processor import EventBatchProcessor, EventStatus, summarize


def read_events(path: Path) -> List[str]:
    """Read one raw event per non-blank line."""
    with open(path, encoding="utf-8") as f:
        return [line.strip() for line in f if line.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ha-twin-ingest",
        description="Apply Home Assistant state events to Azure Digital Twins"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    replay = subparsers.add_parser("replay", help="Replay a JSON lines file of state events")
    replay.add_argument("file", type=Path, help="File with one state event per line")
    replay.add_argument("--dry-run", action="store_true", help="Log twin operations without sending them")
    replay.add_argument("--adt-url", help="ADT instance URL (defaults to ADT_INSTANCE_URL)")
    replay.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def replay(args) -> int:
    settings = get_settings()
    logger = setup_logger(debug_mode=args.debug or settings.DEBUG)

    if args.dry_run:
        store = DryRunTwinStore()
    else:
        adt_url = args.adt_url or settings.require_adt_instance_url()
        store = AdtTwinStore(create_adt_client(adt_url))

    try:
        events = read_events(args.file)
    except OSError as e:
        logger.error(f"✗ Could not read {args.file}: {e}")
        return 1
    logger.info(f"Replaying {len(events)} events from {args.file}")

    outcomes = EventBatchProcessor(store).process_batch(events)
    for outcome in outcomes:
        if outcome.status is EventStatus.FAILED:
            logger.error(f"✗ Line {outcome.index + 1}: {outcome.detail}")

    counts = summarize(outcomes)
    print(json.dumps(counts))
    return 1 if counts[EventStatus.FAILED.value] else 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "replay":
        return replay(args)
    return 2


if __name__ == "__main__":
    sys.exit(main())
