"""The notification engine: one poll cycle from fetch to commit."""

import concurrent.futures
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .api_client import BackendClient
from .categories import MATERIAL_UPDATES, Category, categories_for_role
from .errors import FetchError
from .feed import DEFAULT_FEED_CAP, assemble, unread_count
from .fetchers import RESOURCE_FETCHERS
from .models import NotificationEvent, NotificationRecord, PollState
from .preferences import PreferenceStore
from .state import FeedStore, ReadStateStore, SeenStateStore, encode_state
from .store import Store
from .synthesizer import synthesize

logger = logging.getLogger(__name__)

StageCallback = Callable[[PollState], None]
CancelCheck = Callable[[], bool]


@dataclass
class CycleResult:
    """Outcome of one poll cycle."""
    trigger: str
    feed: List[NotificationRecord] = field(default_factory=list)
    new_records: List[NotificationRecord] = field(default_factory=list)
    records: List[NotificationRecord] = field(default_factory=list)
    events: List[NotificationEvent] = field(default_factory=list)
    failed_resources: List[str] = field(default_factory=list)
    skipped_categories: List[str] = field(default_factory=list)
    committed: bool = False
    aborted: bool = False


class NotificationEngine:
    """
    Runs the fetch -> diff -> synthesize -> assemble -> commit pipeline for one
    user, driven by the category table of the user's role.
    """

    def __init__(
        self,
        client: BackendClient,
        store: Store,
        user_id: str,
        role: str,
        feed_cap: int = DEFAULT_FEED_CAP,
        max_workers: int = 4,
        fetch_budget_seconds: Optional[float] = 60.0,
        fetchers: Optional[Mapping[str, Callable[[Any], Any]]] = None,
        categories: Optional[Sequence[Category]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.client = client
        self.store = store
        self.user_id = user_id
        self.role = role
        self.feed_cap = feed_cap
        self.max_workers = max_workers
        self.fetch_budget_seconds = fetch_budget_seconds
        self.fetchers = fetchers if fetchers is not None else RESOURCE_FETCHERS
        self.categories = tuple(categories) if categories is not None else categories_for_role(role)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        self.seen = SeenStateStore(store, user_id)
        self.read_state = ReadStateStore(store, user_id)
        self.feed_store = FeedStore(store, user_id)
        self.preferences = PreferenceStore(store, user_id, role)

    # Poll cycle

    def run_cycle(
        self,
        trigger: str = "manual",
        on_stage: Optional[StageCallback] = None,
        is_cancelled: Optional[CancelCheck] = None,
    ) -> CycleResult:
        """
        Run one complete poll cycle.

        Nothing is written until the final commit step, and nothing at all is
        written if the cycle is cancelled before it.

        Args:
            trigger: What started the cycle (for logging).
            on_stage: Called on every stage transition.
            is_cancelled: Polled between stages; a True result abandons the cycle.

        Returns:
            The cycle result; result.aborted is True for an abandoned cycle.
        """
        stage = on_stage or (lambda state: None)
        cancelled = is_cancelled or (lambda: False)
        result = CycleResult(trigger=trigger)

        prefs = self.preferences.load()
        enabled = [c for c in self.categories if c.runs(prefs)]
        disabled = [c.name for c in self.categories if not c.enabled(prefs)]
        if disabled:
            logger.debug(f"Categories disabled by preference: {', '.join(disabled)}")

        # Fetch
        stage(PollState.FETCHING)
        resources = sorted({c.resource for c in enabled})
        logger.info(f"[{trigger}] Fetching {len(resources)} resource(s) for user {self.user_id} ({self.role})")
        snapshots, failed = self._fetch_all(resources, cancelled)
        result.failed_resources = failed
        if cancelled():
            return self._abort(result, "fetch")

        # Diff
        stage(PollState.DIFFING)
        now = self.clock().isoformat()
        writes: Dict[str, str] = {}
        for category in enabled:
            if category.resource not in snapshots:
                result.skipped_categories.append(category.name)
                continue
            events, state = self._diff_category(category, snapshots[category.resource], now, prefs)
            if events is None:
                result.skipped_categories.append(category.name)
                continue
            result.events.extend(events)
            if state is not None:
                writes[self.seen.key(category.name)] = encode_state(state)
        if cancelled():
            return self._abort(result, "diff")

        # Synthesize
        stage(PollState.SYNTHESIZING)
        result.records = synthesize(result.events)
        if cancelled():
            return self._abort(result, "synthesis")

        # Commit
        stage(PollState.COMMITTING)
        existing = self.feed_store.load()
        feed, added = assemble(existing, result.records, self.feed_cap)
        if feed != existing:
            writes[self.feed_store.key] = self.feed_store.encode(feed)
        if cancelled():
            return self._abort(result, "commit")
        self.store.set_many(writes)

        result.feed = feed
        result.new_records = added
        result.committed = True
        logger.info(
            f"[{trigger}] Cycle done: {len(result.events)} event(s), "
            f"{len(added)} new notification(s), feed size {len(feed)}"
            + (f", failed: {', '.join(failed)}" if failed else "")
        )
        return result

    def _fetch_all(self, resources: List[str], cancelled: CancelCheck) -> Tuple[Dict[str, Any], List[str]]:
        """Fetch all resources concurrently; a failure only affects its own resource."""
        snapshots: Dict[str, Any] = {}
        failed: List[str] = []
        if not resources:
            return snapshots, failed

        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max(1, min(self.max_workers, len(resources))),
            thread_name_prefix="notif-fetch",
        )
        futures = {executor.submit(self.fetchers[name], self.client): name for name in resources}
        try:
            for future in concurrent.futures.as_completed(futures, timeout=self.fetch_budget_seconds):
                name = futures[future]
                try:
                    snapshots[name] = future.result()
                except FetchError as e:
                    logger.warning(f"{e}; skipping dependent categories this cycle")
                    failed.append(name)
                except Exception as e:
                    logger.error(f"Error fetching {name}: {e}", exc_info=True)
                    failed.append(name)
                if cancelled():
                    break
        except concurrent.futures.TimeoutError:
            timed_out = [name for f, name in futures.items() if not f.done()]
            logger.warning(f"Fetch timed out for: {', '.join(sorted(timed_out))}")
            failed.extend(timed_out)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return snapshots, sorted(failed)

    def _diff_category(self, category: Category, snapshot: Any, now: str,
                       prefs: Mapping[str, bool]):
        seen = self.seen.get(category.name) if category.policy.stateful else None
        try:
            diff = category.policy.diff(category.name, snapshot, seen, now)
        except Exception as e:
            logger.error(f"Error diffing category {category.name}: {e}", exc_info=True)
            return None, None
        events = [event for event in diff.events if category.wants(event.kind, prefs)]
        if events:
            logger.debug(f"{category.name}: {len(events)} event(s)")
        return events, diff.state

    def _abort(self, result: CycleResult, stage_name: str) -> CycleResult:
        logger.info(f"[{result.trigger}] Cycle cancelled during {stage_name}; nothing committed")
        result.aborted = True
        result.committed = False
        return result

    # User actions

    def feed(self) -> List[NotificationRecord]:
        return self.feed_store.load()

    def acknowledge_material(self, material_id: str, signature: str) -> None:
        """Record that the user opened a material at the given version."""
        if not signature:
            return
        self.seen.advance_cursor(MATERIAL_UPDATES, material_id, signature)
        logger.info(f"Acknowledged material {material_id} at {signature}")

    def mark_read(self, notification_id: str) -> None:
        self.read_state.mark_read(notification_id)

    def mark_all_read(self) -> int:
        return self.read_state.mark_all_read(record.id for record in self.feed())

    def unread_count(self) -> int:
        return unread_count(self.feed(), self.read_state.read_ids())

    def reset_seen_state(self) -> None:
        """Forget seen-state and the feed (read-state is left alone)."""
        self.seen.reset(c.name for c in self.categories)
        self.feed_store.clear()
