import pytest

from lms_notification_agent.errors import ParseError
from lms_notification_agent.models import NotificationRecord
from lms_notification_agent.state import (
    FeedStore,
    ReadStateStore,
    SeenStateStore,
    decode_state,
    encode_state,
)
from lms_notification_agent.store import MemoryStore


def test_encode_state_sorts_sets_and_keys():
    assert encode_state({"b", "a"}) == '["a","b"]'
    assert encode_state({"z": 1, "a": 2}) == '{"a":2,"z":1}'


def test_decode_state_raises_on_garbage():
    assert decode_state("k", None) is None
    with pytest.raises(ParseError):
        decode_state("k", "{not json")


def test_seen_state_corrupt_value_reads_as_never_recorded():
    store = MemoryStore({"user:u1:seen:ai_grading": "{broken"})
    seen = SeenStateStore(store, "u1")

    assert seen.get("ai_grading") is None
    assert seen.id_set("ai_grading") == set()


def test_seen_state_is_scoped_per_user():
    store = MemoryStore()
    SeenStateStore(store, "u1").set("ai_grading", ["s1"])

    assert SeenStateStore(store, "u2").id_set("ai_grading") == set()
    assert SeenStateStore(store, "u1").id_set("ai_grading") == {"s1"}


def test_advance_cursor_and_reset():
    store = MemoryStore()
    seen = SeenStateStore(store, "u1")

    seen.advance_cursor("material_updates", "m1", "v1")
    seen.advance_cursor("material_updates", "m2", "v7")
    assert seen.cursor("material_updates") == {"m1": "v1", "m2": "v7"}

    seen.reset(["material_updates"])
    assert seen.cursor("material_updates") == {}


def test_read_state_mark_read_and_mark_all():
    store = MemoryStore()
    read = ReadStateStore(store, "u1")

    read.mark_read("a")
    read.mark_read("a")
    assert read.is_read("a")
    assert read.mark_all_read(["a", "b", "c"]) == 2
    assert read.read_ids() == {"a", "b", "c"}
    assert read.mark_all_read(["a"]) == 0

    read.clear()
    assert read.read_ids() == set()


def test_read_state_corrupt_value_reads_as_empty():
    store = MemoryStore({"user:u1:read": "nope"})

    assert ReadStateStore(store, "u1").read_ids() == set()


def test_feed_store_round_trips_and_ignores_corruption():
    store = MemoryStore()
    feed_store = FeedStore(store, "u1")
    record = NotificationRecord("n1", "cat", "T", "M", "2024-05-01T00:00:00Z", "/x")

    store.set(feed_store.key, FeedStore.encode([record]))
    assert feed_store.load() == [record]

    store.set(feed_store.key, '[{"title": "no id"}, 5]')
    assert feed_store.load() == []

    store.set(feed_store.key, "garbage")
    assert feed_store.load() == []
