#!/usr/bin/env python3
"""
Chatwork Knowledge Extraction

Fetches the latest messages of each configured room, classifies the ones
not analyzed yet and stores the results under the cache directory.

Usage:
    python scripts/extract_knowledge.py [--room 123456] [--mode realtime]
    python scripts/extract_knowledge.py --stats
    python scripts/extract_knowledge.py --room 123456 --extract-from 30 --save-config
"""

import sys
import asyncio
import argparse
import logging
from pathlib import Path

from dotenv import load_dotenv

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from extractor.cache import MessageStore
from extractor.common.config import CONFIG_PATH, ensure_directories, load_config, save_config
from extractor.common.errors import ConfigError, ExtractorError
from extractor.pipeline import ExtractionPipeline, RunSummary, category_summary

logger = logging.getLogger("extractor.cli")


def print_summary(summary: RunSummary) -> None:
    print(f"\n=== Room {summary.room_name or summary.room_id} ({summary.room_id}) ===")
    print(f"Fetched: {summary.fetched}, unanalyzed: {summary.unanalyzed}")

    if summary.filter_stats:
        stats = summary.filter_stats
        print(f"Filter: {stats.skipped} skipped, {stats.truncated} truncated of {stats.total}")
        for reason, count in sorted(stats.reasons.items()):
            print(f"  {reason}: {count}")

    if summary.outcome:
        outcome = summary.outcome
        print(
            f"Classified ({outcome.mode}): {len(outcome.records)} records, "
            f"{len(outcome.failures)} failed, {outcome.dropped} dropped"
        )

    print(f"Knowledge: {len(summary.knowledge)}")
    for category, count in category_summary(summary.knowledge).items():
        print(f"  {category}: {count}")
    for label, count in summary.knowledge_by_role.items():
        print(f"  by {label}: {count}")

    for warning in summary.warnings:
        print(f"WARNING: {warning}")


def print_stats(store: MessageStore, room_ids) -> None:
    for room_id in room_ids:
        stats = store.stats(room_id)
        if stats is None:
            print(f"Room {room_id}: no cache")
            continue
        print(
            f"Room {room_id}: {stats.message_count} messages, {stats.analyzed_count} analyzed, "
            f"last updated {stats.last_updated}"
        )


async def run(config, room_ids, mode) -> None:
    pipeline = ExtractionPipeline.from_config(config)
    if mode:
        pipeline.mode = mode
    try:
        for room_id in room_ids:
            summary = await pipeline.run(room_id)
            print_summary(summary)
    finally:
        await pipeline.aclose()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Extract reusable knowledge from Chatwork rooms")
    parser.add_argument("--room", action="append", default=None, help="Room id (repeatable; default CHATWORK_ROOM_ID)")
    parser.add_argument("--mode", choices=["batch", "realtime"], default=None, help="Classification mode")
    parser.add_argument("--extract-from", type=str, default=None, help="YYYY-MM-DD or number of days")
    parser.add_argument("--stats", action="store_true", help="Show cache statistics and exit")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--save-config", action="store_true", help="Write the effective configuration to the config file and exit")
    args = parser.parse_args(argv)

    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config()
        if config.debug:
            logging.getLogger().setLevel(logging.DEBUG)

        if args.extract_from is not None:
            config.extract_from = args.extract_from
        room_ids = args.room or config.chatwork.room_ids

        if not room_ids:
            raise ConfigError("No room given; pass --room or set CHATWORK_ROOM_ID")
        ensure_directories(config)

        if args.save_config:
            config.chatwork.room_ids = list(room_ids)
            if args.mode:
                config.analyzer.mode = args.mode
            save_config(config)
            print(f"Configuration saved to {CONFIG_PATH}")
            return

        if args.stats:
            print_stats(MessageStore(config.cache_dir), room_ids)
            return

        asyncio.run(run(config, room_ids, args.mode))
    except ExtractorError as e:
        logger.error("%s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
