"""Per-role category tables: which resource feeds which diff policy."""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Tuple

from .diff import (
    AtMostOnceDiff,
    CountDeltaDiff,
    DiffPolicy,
    Observation,
    SignatureDiff,
    SnapshotDiff,
    TransitionDiff,
)
from .models import (
    Announcement,
    ClassDetail,
    EssayQuestion,
    JoinRequest,
    Material,
    MembershipSnapshot,
    ProfileChangeRequest,
    Submission,
)

# Categories whose seen-state is advanced only by an explicit user action.
MATERIAL_UPDATES = "material_updates"


@dataclass(frozen=True)
class Category:
    """One independent notification source."""
    name: str
    resource: str
    policy: DiffPolicy
    kinds: Mapping[str, str]   # event kind -> preference that gates it
    # Keep seen-state current even with every preference off; events are
    # still dropped by wants().
    track_when_disabled: bool = False

    @property
    def preferences(self) -> Tuple[str, ...]:
        return tuple(sorted(set(self.kinds.values())))

    def enabled(self, prefs: Mapping[str, bool]) -> bool:
        """True if any of the category's event kinds is wanted."""
        return any(prefs.get(name, True) for name in self.preferences)

    def runs(self, prefs: Mapping[str, bool]) -> bool:
        return self.track_when_disabled or self.enabled(prefs)

    def wants(self, kind: str, prefs: Mapping[str, bool]) -> bool:
        return prefs.get(self.kinds.get(kind, ""), True)


def _materials(classes: List[ClassDetail]) -> Iterable[Tuple[ClassDetail, Material]]:
    for detail in classes:
        for material in detail.materials:
            yield detail, material


def _questions(classes: List[ClassDetail]) -> Iterable[Tuple[ClassDetail, Material, EssayQuestion]]:
    for detail, material in _materials(classes):
        for question in material.questions:
            yield detail, material, question


def _material_payload(detail: ClassDetail, material: Material) -> dict:
    return {
        "class_id": detail.id,
        "class_name": detail.class_name,
        "material_id": material.id,
        "material_title": material.title,
    }


# Student extractors

_APPROVAL_KINDS = {
    "pending": "approval_pending",
    "approved": "approval_approved",
    "rejected": "approval_rejected",
}


def profile_request_observations(requests_: List[ProfileChangeRequest]) -> Iterable[Observation]:
    for req in requests_:
        if req.status == "pending":
            occurred_at = req.created_at
        else:
            occurred_at = req.reviewed_at or req.created_at
        yield Observation(
            key=req.id,
            value=req.status or "",
            occurred_at=occurred_at,
            payload={"request_type": req.request_type, "reason": req.reason},
        )


def approved_class_observations(snapshot: MembershipSnapshot) -> Iterable[Observation]:
    for membership in snapshot.approved:
        yield Observation(
            key=membership.class_id,
            payload={
                "class_id": membership.class_id,
                "class_name": membership.class_name,
                "teacher_name": membership.teacher_name,
            },
        )


def pending_class_ids(snapshot: MembershipSnapshot) -> Iterable[str]:
    return [membership.class_id for membership in snapshot.pending]


def material_signature_observations(classes: List[ClassDetail]) -> Iterable[Observation]:
    for detail, material in _materials(classes):
        signature = material.update_signature
        yield Observation(
            key=material.id,
            value=signature,
            occurred_at=signature or None,
            payload=_material_payload(detail, material),
        )


def question_count_observations(classes: List[ClassDetail]) -> Iterable[Observation]:
    for detail, material in _materials(classes):
        yield Observation(
            key=f"{detail.id}:{material.id}",
            value=len(material.questions),
            occurred_at=material.update_signature or None,
            payload=_material_payload(detail, material),
            entity_id=material.id,
        )


def ai_graded_observations(classes: List[ClassDetail]) -> Iterable[Observation]:
    for detail, material, question in _questions(classes):
        if question.submission_id and question.has_ai_grade:
            yield Observation(
                key=question.submission_id,
                occurred_at=material.update_signature or None,
                payload=_material_payload(detail, material),
            )


def teacher_review_observations(classes: List[ClassDetail]) -> Iterable[Observation]:
    for detail, material, question in _questions(classes):
        if question.has_teacher_review:
            yield Observation(
                key=question.submission_id or question.id,
                occurred_at=material.update_signature or None,
                payload=_material_payload(detail, material),
            )


# Teacher extractors

def join_request_observations(join_requests: List[JoinRequest]) -> Iterable[Observation]:
    for req in join_requests:
        yield Observation(
            key=req.member_id,
            occurred_at=req.requested_at,
            payload={
                "class_id": req.class_id,
                "class_name": req.class_name,
                "student_name": req.student_name,
            },
        )


def unreviewed_submission_observations(submissions: List[Submission]) -> Iterable[Observation]:
    for submission in submissions:
        if submission.is_reviewed:
            continue
        yield Observation(
            key=submission.id,
            occurred_at=submission.submitted_at,
            payload={
                "class_id": submission.class_id,
                "class_name": submission.class_name,
                "material_title": submission.material_title,
                "student_name": submission.student_name,
            },
        )


def announcement_observations(announcements: List[Announcement]) -> Iterable[Observation]:
    for announcement in announcements:
        yield Observation(
            key=announcement.id,
            occurred_at=announcement.created_at,
            payload={"title": announcement.title, "content": announcement.content},
        )


# Superadmin extractors

def admin_request_observations(requests_: List[ProfileChangeRequest]) -> Iterable[Observation]:
    for req in requests_:
        yield Observation(
            key=req.id,
            value=req.status or "pending",
            occurred_at=req.created_at,
            payload={
                "user_name": req.user_name,
                "user_role": req.user_role,
                "request_type": req.request_type,
            },
        )


STUDENT_CATEGORIES = (
    Category(
        name="profile_approvals",
        resource="profile_requests",
        policy=SnapshotDiff(profile_request_observations, lambda obs: _APPROVAL_KINDS.get(obs.value)),
        kinds={kind: "profileApprovals" for kind in _APPROVAL_KINDS.values()},
    ),
    Category(
        name="class_membership",
        resource="memberships",
        policy=TransitionDiff(
            approved_class_observations,
            pending_class_ids,
            approved_kind="class_approved",
            invited_kind="class_invited",
        ),
        kinds={"class_approved": "classApproved", "class_invited": "classInvited"},
        # Approved vs invited depends on having recorded the pending set.
        track_when_disabled=True,
    ),
    Category(
        name=MATERIAL_UPDATES,
        resource="student_classes",
        policy=SignatureDiff(material_signature_observations, "material_updated"),
        kinds={"material_updated": "newMaterials"},
    ),
    Category(
        name="new_questions",
        resource="student_classes",
        policy=CountDeltaDiff(question_count_observations, "new_questions"),
        kinds={"new_questions": "newQuestions"},
    ),
    Category(
        name="ai_grading",
        resource="student_classes",
        policy=AtMostOnceDiff(ai_graded_observations, "ai_graded"),
        kinds={"ai_graded": "reviewedScores"},
    ),
    Category(
        name="teacher_reviews",
        resource="student_classes",
        policy=AtMostOnceDiff(teacher_review_observations, "teacher_reviewed"),
        kinds={"teacher_reviewed": "reviewedScores"},
    ),
)

TEACHER_CATEGORIES = (
    Category(
        name="join_requests",
        resource="join_requests",
        policy=SnapshotDiff(join_request_observations, "join_request"),
        kinds={"join_request": "classRequests"},
    ),
    Category(
        name="pending_submissions",
        resource="teacher_submissions",
        policy=SnapshotDiff(unreviewed_submission_observations, "submission_review"),
        kinds={"submission_review": "assessmentUpdates"},
    ),
    Category(
        name="announcements",
        resource="announcements",
        policy=AtMostOnceDiff(announcement_observations, "announcement"),
        kinds={"announcement": "systemAnnouncements"},
    ),
)

SUPERADMIN_CATEGORIES = (
    Category(
        name="admin_approvals",
        resource="admin_profile_requests",
        policy=SnapshotDiff(admin_request_observations, "admin_approval_pending"),
        kinds={"admin_approval_pending": "approvalRequests"},
    ),
)

ROLE_CATEGORIES: Dict[str, Tuple[Category, ...]] = {
    "student": STUDENT_CATEGORIES,
    "teacher": TEACHER_CATEGORIES,
    "superadmin": SUPERADMIN_CATEGORIES,
}


def categories_for_role(role: str) -> Tuple[Category, ...]:
    if role not in ROLE_CATEGORIES:
        raise ValueError(f"Unknown role '{role}'")
    return ROLE_CATEGORIES[role]
