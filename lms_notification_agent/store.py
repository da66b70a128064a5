"""Key/value persistence backends for seen-state, read-state, preferences and feeds."""

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional

logger = logging.getLogger(__name__)


def namespaced_key(user_id: str, kind: str, name: str = "") -> str:
    """
    Build a storage key scoped to one user.

    Args:
        user_id: Identifier of the user the state belongs to.
        kind: State family, e.g. "seen", "read", "preferences" or "feed".
        name: Optional sub-key, e.g. the category name.

    Returns:
        A key such as "user:42:seen:new_questions".
    """
    key = f"user:{user_id}:{kind}"
    if name:
        key = f"{key}:{name}"
    return key


class Store(ABC):
    """Abstract string key/value store."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the raw value stored at key, or None if absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Replace the value stored at key."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key if present."""

    def set_many(self, items: Mapping[str, str]) -> None:
        """Write several keys as one batch."""
        for key, value in items.items():
            self.set(key, value)

    def close(self) -> None:
        pass


class MemoryStore(Store):
    """In-process store, used for tests and one-off runs."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def set_many(self, items: Mapping[str, str]) -> None:
        with self._lock:
            self._data.update(items)

    def snapshot(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._data)


class SqliteStore(Store):
    """SQLite-backed store; the default for the CLI agent."""

    def __init__(self, db_path: str):
        """
        Open the database and create the state table if it doesn't exist.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        # The scheduler commits from its worker thread; access is serialized by _lock.
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self._lock = threading.Lock()
        with self._lock:
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            self.conn.commit()

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            cursor = self.conn.execute("SELECT value FROM kv_state WHERE key = ?", (key,))
            row = cursor.fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        self.set_many({key: value})

    def set_many(self, items: Mapping[str, str]) -> None:
        """Write all items in a single transaction."""
        if not items:
            return
        now = self._now()
        with self._lock:
            with self.conn:
                self.conn.executemany(
                    "INSERT OR REPLACE INTO kv_state (key, value, updated_at) VALUES (?, ?, ?)",
                    [(key, value, now) for key, value in items.items()],
                )

    def delete(self, key: str) -> None:
        with self._lock:
            with self.conn:
                self.conn.execute("DELETE FROM kv_state WHERE key = ?", (key,))

    def close(self) -> None:
        with self._lock:
            self.conn.close()


class DynamoDBStore(Store):
    """
    DynamoDB-backed store for the scheduled Lambda poller.

    The table uses a single string partition key named ``state_key``.
    """

    def __init__(self, table):
        """
        Args:
            table: A boto3 ``dynamodb.Table`` resource.
        """
        self.table = table

    @classmethod
    def from_table_name(cls, table_name: str) -> "DynamoDBStore":
        import boto3

        dynamodb = boto3.resource("dynamodb")
        return cls(dynamodb.Table(table_name))

    def get(self, key: str) -> Optional[str]:
        response = self.table.get_item(Key={"state_key": key})
        item = response.get("Item")
        if not item:
            return None
        return item.get("value")

    def set(self, key: str, value: str) -> None:
        self.table.put_item(
            Item={
                "state_key": key,
                "value": value,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            }
        )

    def set_many(self, items: Mapping[str, str]) -> None:
        if not items:
            return
        now = datetime.now(timezone.utc).isoformat()
        with self.table.batch_writer() as batch:
            for key, value in items.items():
                batch.put_item(Item={"state_key": key, "value": value, "updated_at": now})

    def delete(self, key: str) -> None:
        self.table.delete_item(Key={"state_key": key})


def create_store(backend: str, db_path: str = "", dynamodb_table: str = "") -> Store:
    """Create the store selected by configuration."""
    if backend == "memory":
        return MemoryStore()
    if backend == "dynamodb":
        logger.info(f"Using DynamoDB state table {dynamodb_table}")
        return DynamoDBStore.from_table_name(dynamodb_table)
    logger.info(f"Using SQLite state database at {db_path}")
    return SqliteStore(db_path)
