from markvault.client import (
    BookmarkDraft,
    BookmarkRecord,
    CategoryRecord,
    DashboardSession,
    GatewayError,
    ImageUpload,
    NoRowsAffectedError,
)
from markvault.client.notifications import Notifier
from markvault.models import FeedSubscription


def _open_tab(make_gateway, token) -> DashboardSession:
    return DashboardSession(make_gateway(token)).open()


def test_tabs_get_distinct_channels_and_converge(app, make_user, make_gateway):
    _, token = make_user("tabs@example.com")
    first = _open_tab(make_gateway, token)
    second = _open_tab(make_gateway, token)

    assert first.channel != second.channel

    assert first.save_bookmark(
        BookmarkDraft(url="https://example.com", title="Example", category=" ")
    )
    bookmark_id = first.bookmarks.ids()[0]

    first.pump()
    assert first.bookmarks.ids() == [bookmark_id]
    assert first.bookmarks.get(bookmark_id).category == "Uncategorized"

    second.pump()
    assert second.bookmarks.ids() == [bookmark_id]

    draft = second.new_draft(bookmark_id)
    assert draft.editing_id == bookmark_id
    draft.title = "Renamed"
    assert second.save_bookmark(draft)
    first.pump()
    assert first.bookmarks.get(bookmark_id).title == "Renamed"

    assert first.delete_bookmark(bookmark_id)
    second.pump()
    assert len(second.bookmarks) == 0

    first.close()
    second.close()
    with app.app_context():
        assert FeedSubscription.query.count() == 0


def test_session_context_manager_unsubscribes(app, make_user, make_gateway):
    _, token = make_user("ctx@example.com")

    with DashboardSession(make_gateway(token)) as session:
        assert session.channel
        with app.app_context():
            assert FeedSubscription.query.count() == 1

    assert session.channel is None
    with app.app_context():
        assert FeedSubscription.query.count() == 0


def test_changes_between_subscribe_and_load_are_not_duplicated(make_user, make_gateway):
    _, token = make_user("race@example.com")
    writer = make_gateway(token)
    gateway = make_gateway(token)
    session = DashboardSession(gateway)
    original_list = gateway.list_bookmarks

    def _list_after_concurrent_insert():
        writer.insert_bookmark({"title": "Racing", "url": "https://race.example"})
        return original_list()

    gateway.list_bookmarks = _list_after_concurrent_insert
    session.open()
    gateway.list_bookmarks = original_list

    assert session.pump() == 1
    assert [item.title for item in session.bookmarks.items] == ["Racing"]


def test_expired_channel_resubscribes_and_reloads(app, make_user, make_gateway):
    _, token = make_user("expired@example.com")
    session = _open_tab(make_gateway, token)
    old_channel = session.channel
    writer = make_gateway(token)
    writer.insert_bookmark({"title": "Missed", "url": "https://missed.example"})
    writer.unsubscribe(old_channel)

    session.pump()

    assert session.channel and session.channel != old_channel
    assert [item.title for item in session.bookmarks.items] == ["Missed"]


def test_update_of_foreign_row_reports_no_rows_updated(make_user, make_gateway):
    _, owner_token = make_user("owner@example.com")
    _, other_token = make_user("other@example.com")
    owner = _open_tab(make_gateway, owner_token)
    owner.save_bookmark(BookmarkDraft(url="https://owner.example", title="Mine"))
    bookmark = owner.bookmarks.items[0]

    other = _open_tab(make_gateway, other_token)
    other.bookmarks.insert(bookmark)
    draft = other.new_draft(bookmark.id)
    draft.title = "Stolen"

    assert not other.save_bookmark(draft)
    assert other.notifier.current.message == "No rows updated — check access policies"
    assert other.bookmarks.get(bookmark.id).title == "Mine"


def test_save_requires_url_and_title(make_user, make_gateway):
    _, token = make_user("validate@example.com")
    session = _open_tab(make_gateway, token)

    assert not session.save_bookmark(BookmarkDraft(url="https://example.com"))
    assert session.notifier.current.message == "Fill in URL and Title"
    assert len(session.bookmarks) == 0


def test_uploaded_image_wins_over_fetched_image(make_user, make_gateway):
    _, token = make_user("image@example.com")
    session = _open_tab(make_gateway, token)
    draft = BookmarkDraft(
        url="https://example.com",
        title="With image",
        og_image="https://cdn.example/og.png",
        upload=ImageUpload("shot.webp", b"RIFF", "image/webp"),
    )

    assert session.save_bookmark(draft)

    og_image = session.bookmarks.items[0].og_image
    assert og_image.startswith("http://testserver/api/v1/uploads/")
    assert og_image.endswith(".webp")


def test_failed_upload_keeps_fetched_image(make_user, make_gateway):
    _, token = make_user("image-bad@example.com")
    session = _open_tab(make_gateway, token)
    draft = BookmarkDraft(
        url="https://example.com",
        title="Bad upload",
        og_image="https://cdn.example/og.png",
        upload=ImageUpload("notes.txt", b"text", "text/plain"),
    )

    assert session.save_bookmark(draft)
    assert session.bookmarks.items[0].og_image == "https://cdn.example/og.png"


def test_category_filter_and_heading(make_user, make_gateway):
    _, token = make_user("filter@example.com")
    session = _open_tab(make_gateway, token)
    assert session.add_category("Work")
    assert not session.add_category("   ")
    assert session.notifier.current.message == "Enter a category name"
    session.save_bookmark(BookmarkDraft(url="https://jira.example", title="Tracker", category="Work"))
    session.save_bookmark(BookmarkDraft(url="https://news.example", title="News"))
    work = session.categories.items[0]

    session.active = work.id
    assert session.heading == "Work"
    assert [item.title for item in session.visible_bookmarks()] == ["Tracker"]

    session.active = "all"
    session.query = "NEWS"
    assert list(session.view()) == ["Uncategorized"]

    session.query = ""
    session.active = work.id
    session.delete_category(work.id)
    assert session.active == "all"
    assert session.heading == "All Bookmarks"
    assert len(session.bookmarks) == 2


class FlakyGateway:
    """Gateway double whose deletes and updates always fail."""

    def __init__(self, records=()):
        self.records = list(records)
        self.list_calls = 0
        self.inserts = []
        self.category_inserts = []
        self.on_insert = None

    def whoami(self):
        return {"id": 7, "email": "flaky@example.com"}

    def subscribe(self, relation, channel=None):
        return {"channel": channel, "relation": relation, "last_cursor": 0}

    def unsubscribe(self, channel):
        pass

    def list_bookmarks(self):
        self.list_calls += 1
        return list(self.records)

    def list_categories(self):
        return [CategoryRecord(id="c1", name="Work")]

    def delete_bookmark(self, bookmark_id):
        raise GatewayError("database error", status=500)

    def update_bookmark(self, bookmark_id, fields):
        raise NoRowsAffectedError("no rows affected", status=404)

    def insert_bookmark(self, fields):
        self.inserts.append(fields)
        if self.on_insert:
            self.on_insert()
        return BookmarkRecord(id=f"new-{len(self.inserts)}", **fields)

    def insert_category(self, fields):
        self.category_inserts.append(fields)
        return CategoryRecord(id="c2", **fields)


def test_failed_delete_restores_list_from_server():
    records = [
        BookmarkRecord(id="b2", title="Second", url="https://two.example"),
        BookmarkRecord(id="b1", title="First", url="https://one.example"),
    ]
    gateway = FlakyGateway(records)
    session = DashboardSession(gateway).open()

    assert not session.delete_bookmark("b1")

    assert session.bookmarks.ids() == ["b2", "b1"]
    assert gateway.list_calls == 2
    assert session.notifier.current.message == "Delete failed"


def test_notifications_expire_and_replace():
    now = [100.0]
    notifier = Notifier(ttl=3.0, clock=lambda: now[0])

    notifier.show("Bookmark deleted", "success")
    notifier.show("Bookmark updated", "success")
    assert notifier.current.message == "Bookmark updated"

    now[0] = 103.0
    assert notifier.current is None
    assert notifier.messages() == ["Bookmark deleted", "Bookmark updated"]


def test_failed_update_keeps_local_copy():
    records = [BookmarkRecord(id="b1", title="First", url="https://one.example")]
    session = DashboardSession(FlakyGateway(records)).open()
    draft = session.new_draft("b1")
    draft.title = "Changed"

    assert not session.save_bookmark(draft)

    assert session.bookmarks.get("b1").title == "First"
    assert session.notifier.current.message == "No rows updated — check access policies"
    assert session.saving is False


def test_save_in_progress_blocks_duplicate_submission():
    gateway = FlakyGateway()
    session = DashboardSession(gateway).open()
    nested = []
    gateway.on_insert = lambda: nested.append(
        session.save_bookmark(BookmarkDraft(url="https://again.example", title="Again"))
    )

    assert session.save_bookmark(BookmarkDraft(url="https://one.example", title="One"))

    assert nested == [False]
    assert [fields["title"] for fields in gateway.inserts] == ["One"]
    assert session.saving is False


def test_category_save_in_progress_blocks_duplicate_submission():
    gateway = FlakyGateway()
    session = DashboardSession(gateway).open()
    session.category_saving = True

    assert not session.add_category("Work")
    assert gateway.category_inserts == []

    session.category_saving = False
    assert session.add_category("Reading")
    assert [fields["name"] for fields in gateway.category_inserts] == ["Reading"]


def test_failed_load_drops_subscription(app, make_user, make_gateway):
    _, token = make_user("broken@example.com")
    gateway = make_gateway(token)

    def _broken_list():
        raise GatewayError("database error", status=500)

    gateway.list_bookmarks = _broken_list

    session = DashboardSession(gateway).open()

    assert session.loaded is False
    assert session.channel is None
    assert session.notifier.current.message == "database error"
    with app.app_context():
        assert FeedSubscription.query.count() == 0


def test_deleted_category_label_shows_as_uncategorized(make_user, make_gateway):
    _, token = make_user("dangling@example.com")
    session = _open_tab(make_gateway, token)
    session.add_category("Work")
    session.save_bookmark(
        BookmarkDraft(url="https://jira.example", title="Tracker", category="Work")
    )
    assert list(session.view()) == ["Work"]

    session.delete_category(session.categories.items[0].id)

    assert list(session.view()) == ["Uncategorized"]
    assert session.bookmarks.items[0].category == "Work"
