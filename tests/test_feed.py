from datetime import datetime, timezone

import pytest

from lms_notification_agent.feed import assemble, filter_feed, parse_timestamp, unread_count
from lms_notification_agent.models import NotificationRecord


def _record(record_id, created_at, title="Judul", message="Pesan"):
    return NotificationRecord(
        id=record_id,
        category="test",
        title=title,
        message=message,
        created_at=created_at,
        href="/",
    )


def test_assemble_orders_newest_first_and_reports_additions():
    existing = [_record("a", "2024-05-01T10:00:00Z")]
    new = [_record("b", "2024-05-01T11:00:00Z"), _record("c", "2024-05-01T09:00:00Z")]

    feed, added = assemble(existing, new, cap=10)

    assert [r.id for r in feed] == ["b", "a", "c"]
    assert [r.id for r in added] == ["b", "c"]


def test_assemble_keeps_existing_record_on_id_conflict():
    existing = [_record("a", "2024-05-01T10:00:00Z", title="lama")]
    new = [_record("a", "2024-05-02T10:00:00Z", title="baru")]

    feed, added = assemble(existing, new)

    assert feed == existing
    assert added == []


def test_assemble_truncates_to_cap_and_drops_overflowing_additions():
    existing = [_record(f"e{i}", f"2024-05-0{i + 1}T00:00:00Z") for i in range(3)]
    new = [_record("old", "2024-01-01T00:00:00Z")]

    feed, added = assemble(existing, new, cap=3)

    assert len(feed) == 3
    assert "old" not in [r.id for r in feed]
    assert added == []


def test_assemble_is_idempotent():
    new = [_record("a", "2024-05-01T10:00:00Z"), _record("b", "2024-05-01T10:00:00Z")]
    feed, _ = assemble([], new)

    again, added = assemble(feed, new)

    assert again == feed
    assert added == []
    # Equal timestamps fall back to id order.
    assert [r.id for r in feed] == ["a", "b"]


def test_parse_timestamp_handles_naive_and_garbage_values():
    assert parse_timestamp("2024-05-01T10:00:00").tzinfo == timezone.utc
    assert parse_timestamp("2024-05-01T10:00:00Z") == parse_timestamp("2024-05-01T10:00:00+00:00")
    assert parse_timestamp("not a date").year == 1970
    assert parse_timestamp("").year == 1970


def test_parse_timestamp_accepts_trimmed_and_nanosecond_fractions():
    assert parse_timestamp("2024-05-01T10:00:00.12345+07:00") == datetime(
        2024, 5, 1, 3, 0, 0, 123450, tzinfo=timezone.utc
    )
    assert parse_timestamp("2024-05-01T10:00:00.123456789Z").microsecond == 123456
    assert parse_timestamp("2024-05-01T10:00:00.5Z").microsecond == 500000


def test_trimmed_fraction_sorts_by_real_time():
    fresh = _record("fresh", "2024-05-01T10:00:00.12345+07:00")
    older = _record("older", "2024-04-30T10:00:00Z")

    feed, _ = assemble([older], [fresh], cap=1)

    assert [r.id for r in feed] == ["fresh"]


def test_filter_feed_by_status_and_query():
    feed = [
        _record("a", "2024-05-01T10:00:00Z", title="Soal Baru", message="3 soal baru"),
        _record("b", "2024-05-01T09:00:00Z", title="Approval Disetujui", message="Permintaan disetujui"),
    ]
    read_ids = {"b"}

    assert [r.id for r in filter_feed(feed, read_ids, "unread")] == ["a"]
    assert [r.id for r in filter_feed(feed, read_ids, "read")] == ["b"]
    assert [r.id for r in filter_feed(feed, read_ids, "all", query="  SOAL ")] == ["a"]
    assert filter_feed(feed, read_ids, "unread", query="disetujui") == []
    assert unread_count(feed, read_ids) == 1


def test_filter_feed_rejects_unknown_status():
    with pytest.raises(ValueError):
        filter_feed([], set(), "archived")
