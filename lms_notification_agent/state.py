"""Seen-state, read-state and feed persistence on top of a key/value Store."""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from .errors import ParseError
from .models import NotificationRecord
from .store import Store, namespaced_key

logger = logging.getLogger(__name__)


def encode_state(value: Any) -> str:
    """Serialize a state value; sets become sorted lists so writes are stable."""
    if isinstance(value, (set, frozenset)):
        value = sorted(value)
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def decode_state(key: str, raw: Optional[str]) -> Any:
    """
    Decode a raw stored value.

    Returns:
        The decoded value, or None if nothing is stored.

    Raises:
        ParseError: If the stored value is not valid JSON.
    """
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ParseError(key, str(e))


def as_string_set(value: Any) -> Set[str]:
    """Coerce a decoded set-form state to a set of strings; anything else is empty."""
    if not isinstance(value, list):
        return set()
    return {item for item in value if isinstance(item, str)}


def as_cursor_map(value: Any) -> Dict[str, Any]:
    """Coerce a decoded cursor-form state to a dict; anything else is empty."""
    if not isinstance(value, dict):
        return {}
    return {str(k): v for k, v in value.items() if isinstance(v, (int, float, str))}


class SeenStateStore:
    """
    Per-user, per-category record of what has already been synthesized.

    Only full replacement is exposed. Callers read, modify and write back the
    whole value within one poll cycle.
    """

    def __init__(self, store: Store, user_id: str):
        self.store = store
        self.user_id = user_id

    def key(self, category: str) -> str:
        return namespaced_key(self.user_id, "seen", category)

    def get(self, category: str) -> Any:
        """
        Load the decoded state for a category.

        Corrupt state is treated as "never recorded" and logged.
        """
        key = self.key(category)
        try:
            return decode_state(key, self.store.get(key))
        except ParseError as e:
            logger.warning(f"{e}; treating as empty")
            return None

    def set(self, category: str, value: Any) -> None:
        self.store.set(self.key(category), encode_state(value))

    def cursor(self, category: str) -> Dict[str, Any]:
        return as_cursor_map(self.get(category))

    def id_set(self, category: str) -> Set[str]:
        return as_string_set(self.get(category))

    def advance_cursor(self, category: str, entity_key: str, value: Any) -> None:
        """Set one entry of a cursor-form state (read-modify-write)."""
        cursor = self.cursor(category)
        cursor[entity_key] = value
        self.set(category, cursor)

    def reset(self, categories: Iterable[str]) -> None:
        """Explicitly forget seen-state, e.g. on logout."""
        for category in categories:
            self.store.delete(self.key(category))
        logger.info(f"Cleared seen-state for user {self.user_id}")


class ReadStateStore:
    """Per-user set of notification ids the user has acknowledged."""

    def __init__(self, store: Store, user_id: str):
        self.store = store
        self.user_id = user_id
        self.key = namespaced_key(user_id, "read")

    def read_ids(self) -> Set[str]:
        try:
            return as_string_set(decode_state(self.key, self.store.get(self.key)))
        except ParseError as e:
            logger.warning(f"{e}; treating as empty")
            return set()

    def is_read(self, notification_id: str) -> bool:
        return notification_id in self.read_ids()

    def mark_read(self, notification_id: str) -> None:
        ids = self.read_ids()
        if notification_id in ids:
            return
        ids.add(notification_id)
        self.store.set(self.key, encode_state(ids))

    def mark_all_read(self, notification_ids: Iterable[str]) -> int:
        """
        Mark every given id as read.

        Returns:
            Number of ids that were previously unread.
        """
        ids = self.read_ids()
        new_ids = set(notification_ids) - ids
        if new_ids:
            self.store.set(self.key, encode_state(ids | new_ids))
        return len(new_ids)

    def clear(self) -> None:
        self.store.delete(self.key)


class FeedStore:
    """Persisted notification feed for one user, so it survives restarts."""

    def __init__(self, store: Store, user_id: str):
        self.store = store
        self.user_id = user_id
        self.key = namespaced_key(user_id, "feed")

    def load(self) -> List[NotificationRecord]:
        try:
            value = decode_state(self.key, self.store.get(self.key))
        except ParseError as e:
            logger.warning(f"{e}; starting with an empty feed")
            return []
        if not isinstance(value, list):
            return []
        feed = []
        for item in value:
            if isinstance(item, dict) and item.get("id"):
                feed.append(NotificationRecord.from_dict(item))
        return feed

    @staticmethod
    def encode(feed: Iterable[NotificationRecord]) -> str:
        return json.dumps([record.to_dict() for record in feed], separators=(",", ":"))

    def clear(self) -> None:
        self.store.delete(self.key)
