import pytest
import requests

from lms_notification_agent.api_client import BackendClient
from lms_notification_agent.config import BackendConfig
from lms_notification_agent.errors import FetchError


class FakeResponse:
    def __init__(self, status_code=200, body=None, invalid_json=False):
        self.status_code = status_code
        self._body = body
        self._invalid_json = invalid_json

    def json(self):
        if self._invalid_json:
            raise ValueError("Expecting value")
        return self._body


class FakeSession:
    """Records GETs and answers from a path -> response table."""

    def __init__(self, responses=None, error=None):
        self.responses = responses or {}
        self.error = error
        self.cookies = requests.cookies.RequestsCookieJar()
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params, timeout))
        if self.error:
            raise self.error
        return self.responses.get(url, FakeResponse(404))


BASE = "http://lms.test/api"


def _client(session):
    return BackendClient(BackendConfig(base_url=BASE + "/", auth_token="tok", fetch_timeout_seconds=3), session)


def test_sends_auth_cookie_and_timeout():
    session = FakeSession({f"{BASE}/student/my-classes": FakeResponse(body=[{"id": 1}])})
    client = _client(session)

    assert client.list_my_classes() == [{"id": 1}]
    assert session.cookies.get("auth_token") == "tok"
    assert session.requests == [(f"{BASE}/student/my-classes", None, 3)]


def test_non_list_payload_reads_as_empty():
    session = FakeSession({f"{BASE}/announcements/active": FakeResponse(body={"data": None})})

    assert _client(session).list_active_announcements() == []


def test_admin_requests_pass_status_filter():
    session = FakeSession({f"{BASE}/admin/profile-requests": FakeResponse(body=[])})

    _client(session).list_admin_profile_requests()

    assert session.requests[0][1] == {"status": "pending"}


def test_http_error_raises_fetch_error_with_status():
    session = FakeSession({f"{BASE}/classes": FakeResponse(status_code=500)})

    with pytest.raises(FetchError) as exc_info:
        _client(session).list_teacher_classes()

    assert exc_info.value.status_code == 500
    assert exc_info.value.resource == "teacher_classes"


def test_network_error_and_bad_json_raise_fetch_error():
    with pytest.raises(FetchError):
        _client(FakeSession(error=requests.ConnectionError("refused"))).list_pending_classes()

    session = FakeSession({f"{BASE}/profile-change-requests": FakeResponse(invalid_json=True)})
    with pytest.raises(FetchError):
        _client(session).list_profile_change_requests()


def test_class_detail_must_be_an_object():
    session = FakeSession({f"{BASE}/student/classes/7": FakeResponse(body=[])})

    with pytest.raises(FetchError):
        _client(session).get_student_class("7")


def test_poll_interval_is_clamped_and_falls_back():
    url = f"{BASE}/settings/notifications"

    assert _client(FakeSession({url: FakeResponse(body={"poll_interval_seconds": 2})})).get_poll_interval_seconds() == 5
    assert _client(FakeSession({url: FakeResponse(body={"poll_interval_seconds": 45})})).get_poll_interval_seconds() == 45
    assert _client(FakeSession({url: FakeResponse(status_code=403)})).get_poll_interval_seconds() == 30
