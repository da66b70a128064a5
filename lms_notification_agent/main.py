"""Main entry point for the notification agent."""

import argparse
import logging
import os
import sys
import time
from typing import List

from .api_client import BackendClient
from .config import AppConfig, load_config
from .engine import NotificationEngine
from .feed import filter_feed
from .identity import resolve_identity
from .models import NotificationRecord
from .scheduler import PollScheduler
from .store import create_store

# Configure logging
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)


def build_engine(config: AppConfig) -> NotificationEngine:
    """Wire client, store and identity into an engine."""
    identity = resolve_identity(config.backend.auth_token, config.identity)
    store = create_store(config.store.backend, config.store.db_path, config.store.dynamodb_table)
    client = BackendClient(config.backend)
    return NotificationEngine(
        client=client,
        store=store,
        user_id=identity.user_id,
        role=identity.role,
        feed_cap=config.poll.feed_cap,
        max_workers=config.poll.max_workers,
        fetch_budget_seconds=config.poll.fetch_budget_seconds,
    )


def format_feed(records: List[NotificationRecord], read_ids) -> str:
    lines = []
    for record in records:
        marker = " " if record.id in read_ids else "*"
        lines.append(f"{marker} [{record.created_at or '-'}] {record.title}: {record.message}")
        lines.append(f"    id={record.id} href={record.href}")
    return "\n".join(lines)


def run_once(engine: NotificationEngine, args) -> None:
    """Run a single poll cycle and print the feed."""
    result = engine.run_cycle(trigger="cli")
    if result.failed_resources:
        logger.warning(f"Some resources could not be fetched: {', '.join(result.failed_resources)}")
    print_feed(engine, args)


def print_feed(engine: NotificationEngine, args) -> None:
    read_ids = engine.read_state.read_ids()
    records = filter_feed(engine.feed(), read_ids, status=args.filter, query=args.search or "")
    if not records:
        print("Belum ada notifikasi pada filter ini.")
        return
    print(format_feed(records, read_ids))
    print(f"\n{engine.unread_count()} unread")


def watch(engine: NotificationEngine, config: AppConfig) -> None:
    """Poll on an interval until interrupted."""
    interval = config.poll.interval_seconds or engine.client.get_poll_interval_seconds()
    scheduler = PollScheduler(
        engine,
        interval_seconds=interval,
        preference_check_seconds=config.poll.preference_check_seconds,
    )
    scheduler.start()
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
    finally:
        scheduler.stop()


def main(argv=None):
    """Main entry point with command-line argument parsing."""
    parser = argparse.ArgumentParser(
        description="Poll the LMS backend and maintain a deduplicated notification feed"
    )
    parser.add_argument(
        "--watch",
        action="store_true",
        help="Keep polling on the configured interval instead of running once"
    )
    parser.add_argument(
        "--reset-seen",
        action="store_true",
        help="Clear seen-state and the stored feed before polling (read-state is kept)"
    )
    parser.add_argument(
        "--mark-read",
        metavar="NOTIFICATION_ID",
        action="append",
        default=[],
        help="Mark a notification as read (may be repeated); does not poll"
    )
    parser.add_argument(
        "--mark-all-read",
        action="store_true",
        help="Mark every notification in the feed as read; does not poll"
    )
    parser.add_argument(
        "--ack-material",
        metavar="MATERIAL_ID=SIGNATURE",
        action="append",
        default=[],
        help="Record that a material was opened at the given update signature; does not poll"
    )
    parser.add_argument(
        "--set-preference",
        metavar="NAME=on|off",
        action="append",
        default=[],
        help="Toggle a notification category for this user's role; does not poll"
    )
    parser.add_argument(
        "--filter",
        choices=["all", "unread", "read"],
        default="all",
        help="Which notifications to print"
    )
    parser.add_argument(
        "--search",
        type=str,
        default=None,
        help="Only print notifications whose title or message contains this text"
    )

    args = parser.parse_args(argv)

    engine = None
    try:
        logger.info("Loading configuration...")
        config = load_config()
        engine = build_engine(config)

        if args.reset_seen:
            logger.info("Clearing seen-state and feed...")
            engine.reset_seen_state()

        actions_only = bool(args.mark_read or args.mark_all_read or args.ack_material or args.set_preference)
        for notification_id in args.mark_read:
            engine.mark_read(notification_id)
        if args.mark_all_read:
            count = engine.mark_all_read()
            logger.info(f"Marked {count} notification(s) as read")
        for item in args.ack_material:
            material_id, _, signature = item.partition("=")
            if not material_id or not signature:
                parser.error(f"--ack-material expects MATERIAL_ID=SIGNATURE, got '{item}'")
            engine.acknowledge_material(material_id, signature)
        for item in args.set_preference:
            name, _, value = item.partition("=")
            if value not in ("on", "off"):
                parser.error(f"--set-preference expects NAME=on|off, got '{item}'")
            engine.preferences.set(name, value == "on")

        if actions_only:
            print_feed(engine, args)
        elif args.watch:
            watch(engine, config)
        else:
            run_once(engine, args)

    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        if engine is not None:
            engine.store.close()


if __name__ == "__main__":
    main()
