"""HTTP client for the LMS REST backend."""

import logging
from typing import Any, Dict, List, Optional

import requests

from .config import BackendConfig, DEFAULT_POLL_INTERVAL_SECONDS, clamp_poll_interval
from .errors import FetchError

logger = logging.getLogger(__name__)

AUTH_COOKIE_NAME = "auth_token"


class BackendClient:
    """Thin role-scoped wrapper over the backend endpoints the notifier reads."""

    def __init__(self, config: BackendConfig, session: Optional[requests.Session] = None):
        """
        Initialize the client.

        Args:
            config: Backend configuration.
            session: Optional pre-built session (tests inject fakes here).
        """
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self.timeout = config.fetch_timeout_seconds
        self.session = session or requests.Session()
        self.session.cookies.set(AUTH_COOKIE_NAME, config.auth_token)

    def _get(self, resource: str, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchError(resource, str(e))
        if not 200 <= response.status_code < 300:
            raise FetchError(resource, f"GET {path}", status_code=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise FetchError(resource, f"invalid JSON from {path}: {e}")

    def _get_list(self, resource: str, path: str, params: Optional[Dict[str, str]] = None) -> List[dict]:
        data = self._get(resource, path, params)
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict)]

    # Student

    def list_profile_change_requests(self) -> List[dict]:
        return self._get_list("profile_change_requests", "/profile-change-requests")

    def list_my_classes(self) -> List[dict]:
        return self._get_list("my_classes", "/student/my-classes")

    def list_pending_classes(self) -> List[dict]:
        return self._get_list("pending_classes", "/student/pending-classes")

    def get_student_class(self, class_id: str) -> dict:
        data = self._get("student_class", f"/student/classes/{class_id}")
        if not isinstance(data, dict):
            raise FetchError("student_class", f"unexpected payload for class {class_id}")
        return data

    # Teacher

    def list_teacher_classes(self) -> List[dict]:
        return self._get_list("teacher_classes", "/classes")

    def list_join_requests(self, class_id: str) -> List[dict]:
        return self._get_list("join_requests", f"/classes/{class_id}/join-requests")

    def list_class_materials(self, class_id: str) -> List[dict]:
        return self._get_list("class_materials", f"/classes/{class_id}/materials")

    def list_material_questions(self, material_id: str) -> List[dict]:
        return self._get_list("material_questions", f"/materials/{material_id}/essay-questions")

    def list_question_submissions(self, question_id: str) -> List[dict]:
        return self._get_list("question_submissions", f"/essay-questions/{question_id}/submissions")

    # Shared

    def list_active_announcements(self) -> List[dict]:
        return self._get_list("announcements", "/announcements/active")

    def list_admin_profile_requests(self, status: str = "pending") -> List[dict]:
        return self._get_list("admin_profile_requests", "/admin/profile-requests", {"status": status})

    def get_poll_interval_seconds(self) -> int:
        """
        Read the notification poll interval configured by the superadmin.

        Falls back to the default when the setting can't be read.
        """
        try:
            body = self._get("notification_settings", "/settings/notifications")
        except FetchError as e:
            logger.warning(f"{e}; using default poll interval")
            return DEFAULT_POLL_INTERVAL_SECONDS
        if not isinstance(body, dict):
            return DEFAULT_POLL_INTERVAL_SECONDS
        return clamp_poll_interval(body.get("poll_interval_seconds", DEFAULT_POLL_INTERVAL_SECONDS))
