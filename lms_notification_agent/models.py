"""Data models for backend records, diff events and notifications."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


def _str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text else None


def _list_of_dicts(value: Any) -> List[dict]:
    """Backend arrays are trusted only when they are actually lists of objects."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


@dataclass
class ProfileChangeRequest:
    """A profile change / teacher verification request."""
    id: str
    request_type: Optional[str]   # "profile_change" or "teacher_verification"
    status: Optional[str]         # "pending", "approved" or "rejected"
    reason: Optional[str] = None
    created_at: Optional[str] = None
    reviewed_at: Optional[str] = None
    user_name: Optional[str] = None   # superadmin listing only
    user_role: Optional[str] = None   # superadmin listing only

    @classmethod
    def from_dict(cls, data: dict) -> "ProfileChangeRequest":
        return cls(
            id=str(data["id"]),
            request_type=_str_or_none(data.get("request_type")),
            status=_str_or_none(data.get("status")),
            reason=_str_or_none(data.get("reason")),
            created_at=_str_or_none(data.get("created_at")),
            reviewed_at=_str_or_none(data.get("reviewed_at")),
            user_name=_str_or_none(data.get("user_name")),
            user_role=_str_or_none(data.get("user_role")),
        )


@dataclass
class ClassMembership:
    """A class the student belongs to, or is waiting to join."""
    class_id: str
    class_name: str
    teacher_name: Optional[str] = None

    @classmethod
    def from_approved(cls, data: dict) -> "ClassMembership":
        return cls(
            class_id=str(data["id"]),
            class_name=data.get("class_name") or "",
            teacher_name=_str_or_none(data.get("teacher_name")),
        )

    @classmethod
    def from_pending(cls, data: dict) -> "ClassMembership":
        return cls(
            class_id=str(data["class_id"]),
            class_name=data.get("class_name") or "",
            teacher_name=_str_or_none(data.get("teacher_name")),
        )


@dataclass
class EssayQuestion:
    """An essay question, with the viewer's submission fields when present."""
    id: str
    submission_id: Optional[str] = None
    ai_score: Optional[float] = None
    ai_feedback: Optional[str] = None
    revised_score: Optional[float] = None
    teacher_feedback: Optional[str] = None

    @property
    def has_ai_grade(self) -> bool:
        return self.ai_score is not None or bool((self.ai_feedback or "").strip())

    @property
    def has_teacher_review(self) -> bool:
        return self.revised_score is not None or bool((self.teacher_feedback or "").strip())

    @classmethod
    def from_dict(cls, data: dict) -> "EssayQuestion":
        return cls(
            id=str(data["id"]),
            submission_id=_str_or_none(data.get("submission_id")),
            ai_score=data.get("skor_ai"),
            ai_feedback=data.get("umpan_balik_ai"),
            revised_score=data.get("revised_score"),
            teacher_feedback=data.get("teacher_feedback"),
        )


@dataclass
class Material:
    """A learning material inside a class."""
    id: str
    title: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    questions: List[EssayQuestion] = field(default_factory=list)

    @property
    def update_signature(self) -> str:
        """Version signature used to detect content updates."""
        return self.updated_at or self.created_at or ""

    @classmethod
    def from_dict(cls, data: dict) -> "Material":
        return cls(
            id=str(data["id"]),
            title=_str_or_none(data.get("judul")),
            created_at=_str_or_none(data.get("created_at")),
            updated_at=_str_or_none(data.get("updated_at")),
            questions=[
                EssayQuestion.from_dict(q)
                for q in _list_of_dicts(data.get("essay_questions"))
                if q.get("id")
            ],
        )


@dataclass
class ClassDetail:
    """A class with its materials, as seen by a student."""
    id: str
    class_name: str
    materials: List[Material] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "ClassDetail":
        return cls(
            id=str(data["id"]),
            class_name=data.get("class_name") or "",
            materials=[
                Material.from_dict(m)
                for m in _list_of_dicts(data.get("materials"))
                if m.get("id")
            ],
        )


@dataclass
class JoinRequest:
    """A pending request from a student to join a teacher's class."""
    member_id: str
    class_id: str
    class_name: str
    student_name: Optional[str] = None
    requested_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict, class_id: str, class_name: str) -> "JoinRequest":
        return cls(
            member_id=str(data.get("member_id") or data["id"]),
            class_id=class_id,
            class_name=class_name,
            student_name=_str_or_none(data.get("student_name")),
            requested_at=_str_or_none(data.get("requested_at")),
        )


@dataclass
class Submission:
    """A student's essay submission, as listed for the teacher."""
    id: str
    class_id: str
    class_name: str
    material_title: Optional[str]
    student_name: Optional[str] = None
    submitted_at: Optional[str] = None
    revised_score: Optional[float] = None
    teacher_feedback: Optional[str] = None

    @property
    def is_reviewed(self) -> bool:
        return self.revised_score is not None or bool((self.teacher_feedback or "").strip())


@dataclass
class Announcement:
    """A system announcement currently active for the viewer's role."""
    id: str
    title: str
    content: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Announcement":
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            content=data.get("content") or "",
            created_at=_str_or_none(data.get("created_at")),
            updated_at=_str_or_none(data.get("updated_at")),
        )


@dataclass
class MembershipSnapshot:
    """Approved and pending class memberships observed in one fetch."""
    approved: List[ClassMembership]
    pending: List[ClassMembership]


@dataclass(frozen=True)
class NotificationEvent:
    """A new fact produced by a diff policy, not yet a user-visible record."""
    category: str
    kind: str            # selects the synthesizer template
    entity_id: str
    state: str           # state-defining attribute (status, signature, count, ...)
    occurred_at: str     # ISO8601
    payload: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class NotificationRecord:
    """A synthesized notification. Immutable once created."""
    id: str
    category: str
    title: str
    message: str
    created_at: str      # ISO8601
    href: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "NotificationRecord":
        return cls(
            id=str(data["id"]),
            category=str(data.get("category", "")),
            title=str(data.get("title", "")),
            message=str(data.get("message", "")),
            created_at=str(data.get("created_at", "")),
            href=str(data.get("href", "")),
        )


class PollState(str, Enum):
    """Stages of one poll cycle."""
    IDLE = "idle"
    FETCHING = "fetching"
    DIFFING = "diffing"
    SYNTHESIZING = "synthesizing"
    COMMITTING = "committing"
