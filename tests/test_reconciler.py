from markvault.client.reconciler import Reconciler
from markvault.client.records import BookmarkRecord, CategoryRecord


def _record(record_id: str, title: str = "", url: str = "https://example.com"):
    return BookmarkRecord(id=record_id, title=title or record_id, url=url)


def _reconciler(*records):
    return Reconciler(BookmarkRecord.from_dict, records)


def test_insert_prepends_new_records():
    state = _reconciler(_record("a"))

    assert state.insert(_record("b")) is True

    assert state.ids() == ["b", "a"]


def test_insert_for_known_id_leaves_state_unchanged():
    original = _record("a", title="Original")
    state = _reconciler(original)

    assert state.insert(_record("a", title="Echo")) is False

    assert state.ids() == ["a"]
    assert state.get("a").title == "Original"


def test_update_replaces_in_place_and_ignores_unknown_ids():
    state = _reconciler(_record("c"), _record("b"), _record("a"))

    assert state.update(_record("b", title="Renamed")) is True
    assert state.update(_record("zzz", title="Ghost")) is False

    assert state.ids() == ["c", "b", "a"]
    assert state.get("b").title == "Renamed"
    assert "zzz" not in state


def test_delete_is_a_noop_for_absent_ids():
    state = _reconciler(_record("a"))

    assert state.delete("missing") is False
    assert state.delete("a") is True
    assert state.delete("a") is False
    assert len(state) == 0


def test_local_and_feed_paths_produce_the_same_state():
    local = _reconciler()
    local.insert(_record("a", title="A"))
    local.insert(_record("b", title="B"))
    local.update(_record("a", title="A2"))
    local.delete("b")
    local.insert(_record("c", title="C"))

    remote = _reconciler()
    for event in [
        {"action": "insert", "payload": {"id": "a", "title": "A", "url": "https://example.com"}},
        {"action": "insert", "payload": {"id": "b", "title": "B", "url": "https://example.com"}},
        {"action": "update", "payload": {"id": "a", "title": "A2", "url": "https://example.com"}},
        {"action": "delete", "payload": {"id": "b"}},
        {"action": "insert", "payload": {"id": "c", "title": "C", "url": "https://example.com"}},
    ]:
        remote.apply_event(event)

    assert local.items == remote.items


def test_stale_insert_after_delete_reintroduces_record():
    state = _reconciler(_record("x"))

    state.delete("x")
    state.apply_event(
        {"action": "insert", "payload": {"id": "x", "title": "x", "url": "https://example.com"}}
    )

    assert state.ids() == ["x"]


def test_insert_update_delete_sequence_ends_empty():
    state = _reconciler()

    state.apply_event(
        {"action": "insert", "payload": {"id": "a", "title": "Example", "url": "https://example.com"}}
    )
    assert state.get("a").title == "Example"

    state.apply_event({"action": "update", "payload": {"id": "a", "title": "Example Updated"}})
    assert state.get("a").title == "Example Updated"

    state.apply_event({"action": "delete", "payload": {"id": "a"}})
    assert state.items == []


def test_delete_event_falls_back_to_record_id():
    state = _reconciler(_record("a"))

    assert state.apply_event({"action": "delete", "record_id": "a", "payload": {}}) is True
    assert state.items == []


def test_unknown_action_is_ignored():
    state = _reconciler(_record("a"))

    assert state.apply_event({"action": "truncate", "payload": {"id": "a"}}) is False
    assert state.ids() == ["a"]


def test_append_mode_keeps_ascending_order():
    state = Reconciler(CategoryRecord.from_dict, prepend=False)

    state.insert(CategoryRecord(id="1", name="Work"))
    state.insert(CategoryRecord(id="2", name="Reading"))

    assert [item.name for item in state.items] == ["Work", "Reading"]


def test_feed_payload_timestamps_are_parsed():
    state = _reconciler()

    state.apply_event(
        {
            "action": "insert",
            "payload": {
                "id": "a",
                "title": "A",
                "url": "https://example.com",
                "created_at": "2026-01-02T03:04:05+00:00",
            },
        }
    )

    assert state.get("a").created_at.year == 2026
