"""
Diff policies: compare a fresh snapshot with seen-state and emit events.

Every policy has the same contract::

    policy.diff(category, snapshot, seen, now) -> DiffResult

``seen`` is the decoded seen-state for the category (None when nothing has
been recorded yet) and ``DiffResult.state`` is the replacement seen-state to
commit, or None when the policy has nothing to write.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Mapping, Optional, Union

from .models import NotificationEvent
from .state import as_cursor_map, as_string_set


@dataclass(frozen=True)
class Observation:
    """One entity as seen in a snapshot, reduced to what a policy compares."""
    key: str                          # dedup / cursor key
    value: Any = ""                   # count, signature or status
    occurred_at: Optional[str] = None
    payload: Mapping[str, Any] = field(default_factory=dict)
    entity_id: Optional[str] = None   # id used in the notification, defaults to key

    @property
    def notification_entity(self) -> str:
        return self.entity_id or self.key


@dataclass
class DiffResult:
    events: List[NotificationEvent]
    state: Any = None


Extractor = Callable[[Any], Iterable[Observation]]


def _event(category: str, kind: str, obs: Observation, state: str, now: str,
           **extra) -> NotificationEvent:
    payload = dict(obs.payload)
    payload.update(extra)
    return NotificationEvent(
        category=category,
        kind=kind,
        entity_id=obs.notification_entity,
        state=state,
        occurred_at=obs.occurred_at or now,
        payload=payload,
    )


class DiffPolicy(ABC):
    """Base class for per-category diff policies."""

    #: False for policies that never read or write seen-state.
    stateful = True

    @abstractmethod
    def diff(self, category: str, snapshot: Any, seen: Any, now: str) -> DiffResult:
        """Compare snapshot against seen and return events plus updated state."""


class TransitionDiff(DiffPolicy):
    """
    Classify newly visible memberships as approved-from-pending or invited.

    Seen-state is ``{"approved": [...], "pending": [...]}``; both sets only
    grow. Until the approved set has been recorded once, the cycle only
    records the baseline and emits nothing.
    """

    def __init__(self, approved: Extractor, pending: Callable[[Any], Iterable[str]],
                 approved_kind: str, invited_kind: str):
        self.approved = approved
        self.pending = pending
        self.approved_kind = approved_kind
        self.invited_kind = invited_kind

    def diff(self, category: str, snapshot: Any, seen: Any, now: str) -> DiffResult:
        cold_start = not isinstance(seen, dict) or "approved" not in seen
        seen_approved = set() if cold_start else as_string_set(seen.get("approved"))
        seen_pending = set() if cold_start else as_string_set(seen.get("pending"))

        current = list(self.approved(snapshot))
        events = []
        if not cold_start:
            for obs in current:
                if obs.key in seen_approved:
                    continue
                kind = self.approved_kind if obs.key in seen_pending else self.invited_kind
                events.append(_event(category, kind, obs, "", now))

        next_state = {
            "approved": sorted(seen_approved | {obs.key for obs in current}),
            "pending": sorted(seen_pending | set(self.pending(snapshot))),
        }
        if not cold_start and next_state == {
            "approved": sorted(seen_approved),
            "pending": sorted(seen_pending),
        }:
            return DiffResult(events)
        return DiffResult(events, next_state)


class SignatureDiff(DiffPolicy):
    """
    Fire while an item's version signature differs from the acknowledged one.

    This policy never advances the acknowledged signature. Only an explicit
    user action does (NotificationEngine.acknowledge_material), so the event
    repeats on every poll until then. The notification id includes the
    signature, so the feed itself does not grow.
    """

    def __init__(self, items: Extractor, kind: str):
        self.items = items
        self.kind = kind

    def diff(self, category: str, snapshot: Any, seen: Any, now: str) -> DiffResult:
        acknowledged = as_cursor_map(seen)
        events = []
        for obs in self.items(snapshot):
            signature = str(obs.value or "")
            if not signature or acknowledged.get(obs.key) == signature:
                continue
            events.append(_event(category, self.kind, obs, signature, now))
        return DiffResult(events)


class CountDeltaDiff(DiffPolicy):
    """Fire once when a child count grows past its cursor, then advance the cursor."""

    def __init__(self, items: Extractor, kind: str):
        self.items = items
        self.kind = kind

    def diff(self, category: str, snapshot: Any, seen: Any, now: str) -> DiffResult:
        cursors = as_cursor_map(seen)
        next_cursors = dict(cursors)
        events = []
        for obs in self.items(snapshot):
            count = int(obs.value or 0)
            previous = cursors.get(obs.key, 0)
            if not isinstance(previous, (int, float)):
                previous = 0
            previous = int(previous)
            if count > previous:
                events.append(_event(category, self.kind, obs, str(count), now,
                                     delta=count - previous))
            # Cursors never move backwards, even if children were removed.
            next_cursors[obs.key] = max(previous, count)
        if next_cursors == cursors:
            return DiffResult(events)
        return DiffResult(events, next_cursors)


class AtMostOnceDiff(DiffPolicy):
    """Fire the first time an entity reaches a state; never again for that entity."""

    def __init__(self, items: Extractor, kind: str):
        self.items = items
        self.kind = kind

    def diff(self, category: str, snapshot: Any, seen: Any, now: str) -> DiffResult:
        notified = as_string_set(seen)
        next_notified = set(notified)
        events = []
        for obs in self.items(snapshot):
            if obs.key in next_notified:
                continue
            events.append(_event(category, self.kind, obs, "", now))
            next_notified.add(obs.key)
        if next_notified == notified:
            return DiffResult(events)
        return DiffResult(events, sorted(next_notified))


class SnapshotDiff(DiffPolicy):
    """
    Re-derive events from the current backend state on every poll.

    Keeps no seen-state. The notification id carries the entity's status, so
    an unchanged snapshot reproduces the same ids and the feed merge absorbs
    them. Entities without a timestamp get an empty created_at rather than
    the poll time, so they sort last and a capped-out record stays out.
    """

    stateful = False

    def __init__(self, items: Extractor, kind: Union[str, Callable[[Observation], Optional[str]]]):
        self.items = items
        self.kind = kind

    def diff(self, category: str, snapshot: Any, seen: Any, now: str) -> DiffResult:
        events = []
        for obs in self.items(snapshot):
            kind = self.kind(obs) if callable(self.kind) else self.kind
            if not kind:
                continue
            events.append(_event(category, kind, obs, str(obs.value or ""), ""))
        return DiffResult(events)
