import importlib.util
import json
from pathlib import Path

import pytest

from .test_store import FakeTable

HANDLER_PATH = Path(__file__).resolve().parent.parent / "lambda-functions" / "poll-notifications" / "handler.py"


class FakeSubscriptionsTable:
    def __init__(self, items):
        self.items = items
        self.updates = []

    def scan(self, **kwargs):
        return {"Items": [item for item in self.items if item.get("status") == "active"]}

    def update_item(self, **kwargs):
        self.updates.append(kwargs)


@pytest.fixture
def handler(monkeypatch, backend):
    location = importlib.util.spec_from_file_location("poll_notifications_handler", HANDLER_PATH)
    module = importlib.util.module_from_spec(location)
    location.loader.exec_module(module)
    monkeypatch.setattr(module, "BackendClient", lambda config: backend)
    return module


def test_polls_every_active_subscription(handler, monkeypatch, backend):
    backend.teacher_classes = [{"id": "c1", "class_name": "Kimia"}]
    backend.join_requests = {"c1": [{"member_id": "mem1", "student_name": "Budi"}]}
    subscriptions = FakeSubscriptionsTable([
        {"user_id": "t1", "role": "teacher", "auth_token": "a", "status": "active"},
        {"user_id": "x1", "role": "parent", "auth_token": "b", "status": "active"},
        {"user_id": "s1", "role": "student", "auth_token": "c", "status": "paused"},
    ])
    state = FakeTable()
    monkeypatch.setattr(handler, "_tables", lambda: (subscriptions, state))

    response = handler.lambda_handler({}, None)

    body = json.loads(response["body"])
    assert response["statusCode"] == 200
    assert body["total_new_notifications"] == 1
    assert body["failed_users"] == ["x1"]
    assert "user:t1:feed" in state.items
    assert [u["Key"]["user_id"] for u in subscriptions.updates] == ["t1", "x1"]
    assert "ADD error_count" in subscriptions.updates[1]["UpdateExpression"]


def test_second_run_adds_nothing(handler, monkeypatch, backend):
    backend.announcements = [{"id": "a1", "title": "Info", "content": "isi"}]
    subscriptions = FakeSubscriptionsTable([
        {"user_id": "t1", "role": "teacher", "auth_token": "a", "status": "active"},
    ])
    state = FakeTable()
    monkeypatch.setattr(handler, "_tables", lambda: (subscriptions, state))

    first = json.loads(handler.lambda_handler({}, None)["body"])
    second = json.loads(handler.lambda_handler({}, None)["body"])

    assert first["total_new_notifications"] == 1
    assert second["total_new_notifications"] == 0


def test_infrastructure_failure_returns_500(handler, monkeypatch):
    def broken():
        raise RuntimeError("no credentials")

    monkeypatch.setattr(handler, "_tables", broken)

    assert handler.lambda_handler({}, None)["statusCode"] == 500
