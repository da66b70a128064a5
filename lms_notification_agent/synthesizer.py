"""Turn diff events into notification records (pure, no I/O)."""

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping

from .models import NotificationEvent, NotificationRecord


def student_request_label(request_type) -> str:
    if request_type == "teacher_verification":
        return "verifikasi akun guru"
    if request_type == "profile_change":
        return "perubahan profil"
    return "approval"


def admin_request_label(request_type) -> str:
    if not request_type or request_type == "profile_change":
        return "Profile Change"
    if request_type == "teacher_verification":
        return "Teacher Verification"
    return request_type


def _rejected_message(p: Mapping) -> str:
    label = student_request_label(p.get("request_type"))
    if p.get("reason"):
        return f"Permintaan {label} ditolak: {p['reason']}"
    return f"Permintaan {label} kamu ditolak."


def _invited_message(p: Mapping) -> str:
    by = f" oleh {p['teacher_name']}" if p.get("teacher_name") else ""
    return f"Kamu diundang masuk ke kelas {p.get('class_name') or '-'}{by}."


@dataclass(frozen=True)
class Template:
    id_prefix: str
    title: Callable[[Mapping], str]
    message: Callable[[Mapping], str]
    href: Callable[[Mapping], str]
    # Append the event's state to the id (signature, count, ...)
    with_state: bool = False


def _fixed(text: str) -> Callable[[Mapping], str]:
    return lambda p: text


TEMPLATES: Dict[str, Template] = {
    # student
    "approval_pending": Template(
        "student-approval-pending",
        _fixed("Approval Diproses"),
        lambda p: f"Permintaan {student_request_label(p.get('request_type'))} kamu sedang diproses admin.",
        _fixed("/dashboard/student/settings/profile"),
    ),
    "approval_approved": Template(
        "student-approval-approved",
        _fixed("Approval Disetujui"),
        lambda p: f"Permintaan {student_request_label(p.get('request_type'))} kamu sudah disetujui.",
        _fixed("/dashboard/student/settings/profile"),
    ),
    "approval_rejected": Template(
        "student-approval-rejected",
        _fixed("Approval Ditolak"),
        _rejected_message,
        _fixed("/dashboard/student/settings/profile"),
    ),
    "class_approved": Template(
        "student-class-approved",
        _fixed("ACC Masuk Kelas"),
        lambda p: f"Permintaan masuk kamu ke kelas {p.get('class_name') or '-'} sudah disetujui.",
        _fixed("/dashboard/student/my-classes"),
    ),
    "class_invited": Template(
        "student-class-invited",
        _fixed("Diundang ke Kelas"),
        _invited_message,
        _fixed("/dashboard/student/my-classes"),
    ),
    "material_updated": Template(
        "student-material",
        _fixed("Materi Baru / Diperbarui"),
        lambda p: f"{p.get('material_title') or 'materi'} di {p.get('class_name') or 'kelas'} memiliki update terbaru.",
        lambda p: f"/dashboard/student/classes/{p.get('class_id')}/materials/{p.get('material_id')}",
        with_state=True,
    ),
    "new_questions": Template(
        "student-question",
        _fixed("Soal Baru"),
        lambda p: (
            f"{p.get('delta')} soal baru tersedia di {p.get('material_title') or 'materi'} "
            f"({p.get('class_name') or 'kelas'})."
        ),
        _fixed("/dashboard/student/assignments"),
        with_state=True,
    ),
    "ai_graded": Template(
        "student-ai-graded",
        _fixed("Penilaian AI Selesai"),
        lambda p: (
            f"Jawabanmu di {p.get('material_title') or 'materi'} ({p.get('class_name') or 'kelas'}) "
            f"sudah selesai dinilai AI."
        ),
        _fixed("/dashboard/student/grades"),
    ),
    "teacher_reviewed": Template(
        "student-review",
        _fixed("Nilai Direview Guru"),
        lambda p: (
            f"Guru sudah mereview jawabanmu di {p.get('material_title') or 'materi'} "
            f"({p.get('class_name') or 'kelas'})."
        ),
        _fixed("/dashboard/student/grades"),
    ),
    # teacher
    "join_request": Template(
        "join",
        _fixed("Join Request Baru"),
        lambda p: (
            f"{p.get('student_name') or 'Siswa'} meminta bergabung ke "
            f"{p.get('class_name') or 'kelas Anda'}."
        ),
        lambda p: f"/dashboard/teacher/class/{p.get('class_id')}",
    ),
    "submission_review": Template(
        "assessment",
        _fixed("Submission Perlu Review"),
        lambda p: (
            f"{p.get('student_name') or 'Siswa'} mengirim jawaban di {p.get('material_title') or 'materi'} "
            f"({p.get('class_name') or 'kelas'})."
        ),
        _fixed("/dashboard/teacher/penilaian"),
    ),
    "announcement": Template(
        "announcement",
        lambda p: p.get("title") or "Pengumuman",
        lambda p: p.get("content") or "",
        _fixed("/dashboard/teacher"),
    ),
    # superadmin
    "admin_approval_pending": Template(
        "profile",
        _fixed("Approval Pending"),
        lambda p: (
            f"{p.get('user_name') or 'User'} ({p.get('user_role') or '-'}) menunggu approval "
            f"({admin_request_label(p.get('request_type'))})."
        ),
        _fixed("/dashboard/superadmin/profile-requests?status=pending"),
    ),
}


def notification_id(event: NotificationEvent) -> str:
    """
    Deterministic id for an event: prefix, entity id and, for kinds whose
    triggering fact is a version or count, the state attribute.
    """
    template = TEMPLATES[event.kind]
    parts = [template.id_prefix, event.entity_id]
    if template.with_state and event.state:
        parts.append(event.state)
    return "-".join(parts)


def synthesize_one(event: NotificationEvent) -> NotificationRecord:
    if event.kind not in TEMPLATES:
        raise ValueError(f"No notification template for event kind '{event.kind}'")
    template = TEMPLATES[event.kind]
    payload = event.payload
    return NotificationRecord(
        id=notification_id(event),
        category=event.category,
        title=template.title(payload),
        message=template.message(payload),
        created_at=event.occurred_at,
        href=template.href(payload),
    )


def synthesize(events: Iterable[NotificationEvent]) -> List[NotificationRecord]:
    """
    Map events to notification records.

    Events producing the same id collapse to the first one.
    """
    records = []
    seen_ids = set()
    for event in events:
        record = synthesize_one(event)
        if record.id in seen_ids:
            continue
        seen_ids.add(record.id)
        records.append(record)
    return records
