"""Per-role notification preferences."""

import json
import logging
import threading
from typing import Callable, Dict, List, Optional

from .errors import PreferenceLoadError
from .store import Store, namespaced_key

logger = logging.getLogger(__name__)

ROLE_PREFERENCES = {
    "student": (
        "profileApprovals",
        "classApproved",
        "classInvited",
        "newMaterials",
        "reviewedScores",
        "newQuestions",
    ),
    "teacher": (
        "classRequests",
        "assessmentUpdates",
        "systemAnnouncements",
    ),
    "superadmin": (
        "approvalRequests",
    ),
}

PreferenceSet = Dict[str, bool]
PreferenceListener = Callable[[PreferenceSet], None]


def default_preferences(role: str) -> PreferenceSet:
    """All categories enabled."""
    return {name: True for name in ROLE_PREFERENCES[role]}


class PreferenceStore:
    """
    Persisted boolean toggles for one (user, role).

    Writes made through this object notify subscribers immediately. Writes made
    by another process sharing the same store are picked up by poll_changes().
    """

    def __init__(self, store: Store, user_id: str, role: str):
        if role not in ROLE_PREFERENCES:
            raise ValueError(f"Unknown role '{role}'")
        self.store = store
        self.role = role
        self.key = namespaced_key(user_id, "preferences", role)
        self._listeners: List[PreferenceListener] = []
        self._lock = threading.Lock()
        self._last_raw = self.store.get(self.key)

    def _parse(self, raw: Optional[str]) -> PreferenceSet:
        prefs = default_preferences(self.role)
        if raw is None:
            return prefs
        try:
            parsed = json.loads(raw)
            if not isinstance(parsed, dict):
                raise ValueError("expected an object")
        except (TypeError, ValueError) as e:
            raise PreferenceLoadError(self.key, str(e))
        for name in prefs:
            value = parsed.get(name)
            if isinstance(value, bool):
                prefs[name] = value
        return prefs

    def load(self) -> PreferenceSet:
        """Load preferences; anything unreadable falls back to all-enabled."""
        try:
            return self._parse(self.store.get(self.key))
        except PreferenceLoadError as e:
            logger.warning(f"{e}; using default preferences")
            return default_preferences(self.role)

    def save(self, prefs: PreferenceSet) -> PreferenceSet:
        """Persist a full preference set (unknown names are dropped)."""
        merged = default_preferences(self.role)
        for name in merged:
            if name in prefs:
                merged[name] = bool(prefs[name])
        raw = json.dumps(merged, sort_keys=True)
        self.store.set(self.key, raw)
        with self._lock:
            self._last_raw = raw
        logger.info(f"Saved {self.role} notification preferences")
        self._notify(merged)
        return merged

    def set(self, name: str, enabled: bool) -> PreferenceSet:
        if name not in ROLE_PREFERENCES[self.role]:
            raise ValueError(f"Unknown {self.role} preference '{name}'")
        prefs = self.load()
        prefs[name] = enabled
        return self.save(prefs)

    def subscribe(self, listener: PreferenceListener) -> None:
        self._listeners.append(listener)

    def poll_changes(self) -> bool:
        """
        Detect a write made by another process.

        Returns:
            True if the persisted preferences changed since last observed.
        """
        raw = self.store.get(self.key)
        with self._lock:
            if raw == self._last_raw:
                return False
            self._last_raw = raw
        logger.info(f"{self.role} notification preferences changed externally")
        self._notify(self.load())
        return True

    def _notify(self, prefs: PreferenceSet) -> None:
        for listener in list(self._listeners):
            listener(prefs)
