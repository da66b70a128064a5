import copy
from datetime import datetime, timezone

import pytest

from lms_notification_agent.engine import NotificationEngine
from lms_notification_agent.errors import FetchError
from lms_notification_agent.store import MemoryStore


class FakeBackend:
    """Stands in for BackendClient; each list is what the endpoint returns."""

    def __init__(self):
        self.profile_requests = []
        self.my_classes = []
        self.pending_classes = []
        self.class_details = {}
        self.teacher_classes = []
        self.join_requests = {}
        self.materials = {}
        self.questions = {}
        self.submissions = {}
        self.announcements = []
        self.admin_requests = []
        self.failing = set()
        self.calls = []

    def _respond(self, name, value):
        self.calls.append(name)
        if name in self.failing:
            raise FetchError(name, "backend unavailable", status_code=503)
        return copy.deepcopy(value)

    def list_profile_change_requests(self):
        return self._respond("profile_change_requests", self.profile_requests)

    def list_my_classes(self):
        return self._respond("my_classes", self.my_classes)

    def list_pending_classes(self):
        return self._respond("pending_classes", self.pending_classes)

    def get_student_class(self, class_id):
        return self._respond("student_class", self.class_details[class_id])

    def list_teacher_classes(self):
        return self._respond("teacher_classes", self.teacher_classes)

    def list_join_requests(self, class_id):
        return self._respond("join_requests", self.join_requests.get(class_id, []))

    def list_class_materials(self, class_id):
        return self._respond("class_materials", self.materials.get(class_id, []))

    def list_material_questions(self, material_id):
        return self._respond("material_questions", self.questions.get(material_id, []))

    def list_question_submissions(self, question_id):
        return self._respond("question_submissions", self.submissions.get(question_id, []))

    def list_active_announcements(self):
        return self._respond("announcements", self.announcements)

    def list_admin_profile_requests(self, status="pending"):
        return self._respond("admin_profile_requests", self.admin_requests)

    def get_poll_interval_seconds(self):
        return 30

    # Helpers for building student class trees

    def add_student_class(self, class_id, class_name, materials=None, teacher_name=None):
        self.my_classes.append({"id": class_id, "class_name": class_name, "teacher_name": teacher_name})
        self.class_details[class_id] = {
            "id": class_id,
            "class_name": class_name,
            "materials": materials or [],
        }

    def material(self, class_id, material_id):
        for material in self.class_details[class_id]["materials"]:
            if material["id"] == material_id:
                return material
        raise KeyError(material_id)


FIXED_NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def make_engine(backend, store):
    def _make(role="student", user_id="u1", **kwargs):
        kwargs.setdefault("clock", lambda: FIXED_NOW)
        return NotificationEngine(backend, store, user_id=user_id, role=role, **kwargs)
    return _make


def material(material_id, title="Materi", updated_at="2024-04-01T08:00:00Z", questions=None):
    return {
        "id": material_id,
        "judul": title,
        "created_at": "2024-03-01T08:00:00Z",
        "updated_at": updated_at,
        "essay_questions": questions or [],
    }


def question(question_id, **fields):
    data = {"id": question_id}
    data.update(fields)
    return data
