"""Resource snapshot fetchers: fetch current backend state, no diffing."""

import logging
from typing import Callable, Dict, List

from .api_client import BackendClient
from .models import (
    Announcement,
    ClassDetail,
    ClassMembership,
    JoinRequest,
    MembershipSnapshot,
    ProfileChangeRequest,
    Submission,
)

logger = logging.getLogger(__name__)


def fetch_profile_requests(client: BackendClient) -> List[ProfileChangeRequest]:
    """The current user's own profile change / verification requests."""
    return [
        ProfileChangeRequest.from_dict(item)
        for item in client.list_profile_change_requests()
        if item.get("id")
    ]


def fetch_memberships(client: BackendClient) -> MembershipSnapshot:
    """Approved and pending class memberships of a student."""
    approved = [
        ClassMembership.from_approved(item)
        for item in client.list_my_classes()
        if item.get("id")
    ]
    pending = [
        ClassMembership.from_pending(item)
        for item in client.list_pending_classes()
        if item.get("class_id")
    ]
    return MembershipSnapshot(approved=approved, pending=pending)


def fetch_student_classes(client: BackendClient) -> List[ClassDetail]:
    """
    Class -> material -> question tree for every class the student is in.

    Any failing class detail fails the whole snapshot; a partial tree would
    make classes look as if they had lost their materials.
    """
    details = []
    for item in client.list_my_classes():
        class_id = item.get("id")
        if not class_id:
            continue
        details.append(ClassDetail.from_dict(client.get_student_class(str(class_id))))
    logger.debug(f"Fetched {len(details)} class trees")
    return details


def fetch_join_requests(client: BackendClient) -> List[JoinRequest]:
    """Pending join requests across all of a teacher's classes."""
    requests_ = []
    for cls in client.list_teacher_classes():
        class_id = cls.get("id")
        if not class_id:
            continue
        class_name = cls.get("class_name") or ""
        for item in client.list_join_requests(str(class_id)):
            if not (item.get("member_id") or item.get("id")):
                continue
            requests_.append(JoinRequest.from_dict(item, str(class_id), class_name))
    return requests_


def fetch_teacher_submissions(client: BackendClient) -> List[Submission]:
    """Every submission in every question of every material a teacher owns."""
    submissions = []
    for cls in client.list_teacher_classes():
        class_id = cls.get("id")
        if not class_id:
            continue
        class_name = cls.get("class_name") or ""
        for material in client.list_class_materials(str(class_id)):
            if not material.get("id"):
                continue
            for question in client.list_material_questions(str(material["id"])):
                if not question.get("id"):
                    continue
                for item in client.list_question_submissions(str(question["id"])):
                    if not item.get("id"):
                        continue
                    submissions.append(Submission(
                        id=str(item["id"]),
                        class_id=str(class_id),
                        class_name=class_name,
                        material_title=material.get("judul"),
                        student_name=item.get("student_name"),
                        submitted_at=item.get("submitted_at"),
                        revised_score=item.get("revised_score"),
                        teacher_feedback=item.get("teacher_feedback"),
                    ))
    return submissions


def fetch_announcements(client: BackendClient) -> List[Announcement]:
    return [
        Announcement.from_dict(item)
        for item in client.list_active_announcements()
        if item.get("id")
    ]


def fetch_admin_profile_requests(client: BackendClient) -> List[ProfileChangeRequest]:
    """Requests awaiting a superadmin decision."""
    return [
        ProfileChangeRequest.from_dict(item)
        for item in client.list_admin_profile_requests(status="pending")
        if item.get("id")
    ]


RESOURCE_FETCHERS: Dict[str, Callable[[BackendClient], object]] = {
    "profile_requests": fetch_profile_requests,
    "memberships": fetch_memberships,
    "student_classes": fetch_student_classes,
    "join_requests": fetch_join_requests,
    "teacher_submissions": fetch_teacher_submissions,
    "announcements": fetch_announcements,
    "admin_profile_requests": fetch_admin_profile_requests,
}
