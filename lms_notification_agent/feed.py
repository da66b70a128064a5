"""Feed assembly: merge, order, cap, and the read/unread views over it."""

import re
from datetime import datetime, timezone
from typing import Collection, Iterable, List, Tuple

from .models import NotificationRecord

DEFAULT_FEED_CAP = 40

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_FRACTION = re.compile(r"\.(\d+)")


def _normalize_fraction(match) -> str:
    return "." + match.group(1)[:6].ljust(6, "0")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO8601 timestamp; naive values are UTC, garbage sorts last."""
    if not value:
        return _EPOCH
    # fromisoformat before 3.11 only takes 3 or 6 fractional digits
    text = _FRACTION.sub(_normalize_fraction, value.replace("Z", "+00:00"), count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _sort_key(record: NotificationRecord):
    # Newest first; id breaks ties so repeated merges give the same order.
    return (-parse_timestamp(record.created_at).timestamp(), record.id)


def assemble(
    existing: Iterable[NotificationRecord],
    new_records: Iterable[NotificationRecord],
    cap: int = DEFAULT_FEED_CAP,
) -> Tuple[List[NotificationRecord], List[NotificationRecord]]:
    """
    Merge new records into the feed.

    Existing records win on id conflicts. The result is sorted by created_at
    descending and truncated to cap.

    Returns:
        (feed, added) where added holds the records that were not in the
        existing feed and survived the cap.
    """
    merged = {}
    for record in existing:
        merged.setdefault(record.id, record)
    existing_ids = set(merged)
    for record in new_records:
        merged.setdefault(record.id, record)

    feed = sorted(merged.values(), key=_sort_key)[:cap]
    added = [record for record in feed if record.id not in existing_ids]
    return feed, added


def unread_count(feed: Iterable[NotificationRecord], read_ids: Collection[str]) -> int:
    return sum(1 for record in feed if record.id not in read_ids)


def filter_feed(
    feed: Iterable[NotificationRecord],
    read_ids: Collection[str],
    status: str = "all",
    query: str = "",
) -> List[NotificationRecord]:
    """
    Filter the feed the way the notification page does.

    Args:
        feed: Assembled feed.
        read_ids: Ids the user has acknowledged.
        status: "all", "unread" or "read".
        query: Case-insensitive substring matched against title and message.
    """
    if status not in ("all", "unread", "read"):
        raise ValueError(f"Unknown status filter '{status}'")
    needle = query.strip().lower()
    result = []
    for record in feed:
        is_read = record.id in read_ids
        if status == "unread" and is_read:
            continue
        if status == "read" and not is_read:
            continue
        if needle and needle not in record.title.lower() and needle not in record.message.lower():
            continue
        result.append(record)
    return result
