from __future__ import annotations

import logging
import secrets

from markvault.client.autofill import BookmarkDraft, ImageUpload, MetadataAutofill
from markvault.client.gateway import (
    GatewayClient,
    GatewayError,
    NoRowsAffectedError,
    SubscriptionGoneError,
)
from markvault.client.notifications import Notifier
from markvault.client.reconciler import Reconciler
from markvault.client.records import BookmarkRecord, CategoryRecord
from markvault.models import (
    DEFAULT_CATEGORY_COLOR,
    DEFAULT_CATEGORY_ICON,
    UNCATEGORIZED,
)
from markvault.services.grouping import (
    ALL_BOOKMARKS,
    active_heading,
    filter_bookmarks,
    group_by_category,
)

logger = logging.getLogger(__name__)

FEED_RELATION = "bookmarks"
MAX_PAGES_PER_PUMP = 10


def tab_channel_name(user_id) -> str:
    # Every tab needs its own channel; a shared name lets the feed merge tabs.
    return f"{FEED_RELATION}-{user_id}-{secrets.token_hex(4)}"


class DashboardSession:
    """State owned by one open dashboard.

    ``open()`` subscribes to the change feed before loading, so nothing that
    happens between the two is missed; replays are absorbed by the
    reconciler. A failed load drops the subscription again and leaves
    ``loaded`` False. ``close()`` drops the subscription.
    """

    def __init__(self, gateway: GatewayClient, notifier: Notifier | None = None):
        self.gateway = gateway
        self.notifier = notifier or Notifier()
        self.bookmarks = Reconciler(BookmarkRecord.from_dict)
        self.categories = Reconciler(CategoryRecord.from_dict, prepend=False)
        self.user: dict | None = None
        self.channel: str | None = None
        self.cursor = 0
        self.query = ""
        self.active = ALL_BOOKMARKS
        self.saving = False
        self.category_saving = False
        self.loaded = False

    def __enter__(self):
        return self.open()

    def __exit__(self, *exc_info):
        self.close()

    def open(self) -> DashboardSession:
        try:
            self.user = self.gateway.whoami()
            self._subscribe()
            self.bookmarks.reset(self.gateway.list_bookmarks())
            self.categories.reset(self.gateway.list_categories())
        except GatewayError as exc:
            logger.warning("Dashboard failed to load: %s", exc)
            self.close()
            self.loaded = False
            self.notify(exc.message, "error")
            return self
        self.loaded = True
        logger.info(
            "Dashboard opened on %s with %s bookmarks", self.channel, len(self.bookmarks)
        )
        return self

    def close(self) -> None:
        if not self.channel:
            return
        channel, self.channel = self.channel, None
        try:
            self.gateway.unsubscribe(channel)
        except GatewayError as exc:
            logger.warning("Failed to close feed channel %s: %s", channel, exc)

    def _subscribe(self) -> None:
        subscription = self.gateway.subscribe(
            FEED_RELATION, tab_channel_name(self.user["id"])
        )
        self.channel = subscription["channel"]
        self.cursor = int(subscription.get("last_cursor") or 0)

    def notify(self, message: str, kind: str = "info") -> None:
        self.notifier.show(message, kind)

    def resync(self) -> bool:
        try:
            records = self.gateway.list_bookmarks()
        except GatewayError as exc:
            logger.warning("Full bookmark reload failed: %s", exc)
            return False
        self.bookmarks.reset(records)
        return True

    def pump(self) -> int:
        """Apply pending feed events in arrival order; returns how many."""
        if not self.channel:
            return 0

        applied = 0
        for _ in range(MAX_PAGES_PER_PUMP):
            try:
                page = self.gateway.poll(self.channel, since=self.cursor)
            except SubscriptionGoneError:
                logger.info("Feed channel %s expired; resubscribing", self.channel)
                try:
                    self._subscribe()
                except GatewayError as exc:
                    logger.warning("Resubscribe failed: %s", exc)
                    self.channel = None
                    return applied
                self.resync()
                return applied
            except GatewayError as exc:
                logger.warning("Feed poll failed on %s: %s", self.channel, exc)
                return applied

            for event in page["events"]:
                self.bookmarks.apply_event(event)
                applied += 1
            self.cursor = page["cursor"]

            if page["events"]:
                try:
                    self.gateway.ack(self.channel, self.cursor)
                except GatewayError as exc:
                    logger.debug("Feed ack failed on %s: %s", self.channel, exc)
            if not page["has_more"]:
                break
        return applied

    def new_draft(self, bookmark_id: str | None = None) -> BookmarkDraft:
        if bookmark_id:
            bookmark = self.bookmarks.get(bookmark_id)
            if bookmark is not None:
                return BookmarkDraft.for_bookmark(bookmark)
        return BookmarkDraft()

    def autofill(self, draft: BookmarkDraft, **kwargs) -> MetadataAutofill:
        return MetadataAutofill(draft, self.gateway.fetch_metadata, **kwargs)

    def _upload(self, upload: ImageUpload) -> str | None:
        try:
            return self.gateway.upload_image(
                upload.filename, upload.content, upload.content_type
            )
        except GatewayError as exc:
            logger.info("Preview upload failed, keeping fetched image: %s", exc)
            return None

    def save_bookmark(self, draft: BookmarkDraft) -> bool:
        if self.saving:
            return False
        if not draft.url.strip() or not draft.title.strip():
            self.notify("Fill in URL and Title", "warning")
            return False

        self.saving = True
        try:
            og_image = draft.og_image or None
            if draft.upload is not None:
                og_image = self._upload(draft.upload) or og_image

            category = (draft.category or "").strip() or UNCATEGORIZED
            fields = {
                "title": draft.title.strip(),
                "url": draft.url.strip(),
                "description": draft.description.strip() or None,
                "category": category,
                "og_image": og_image,
            }
            if draft.editing_id:
                return self._update_bookmark(draft.editing_id, fields)
            return self._insert_bookmark(fields)
        finally:
            self.saving = False

    def _insert_bookmark(self, fields: dict) -> bool:
        try:
            record = self.gateway.insert_bookmark(fields)
        except GatewayError as exc:
            self.notify(exc.message, "error")
            return False
        self.bookmarks.insert(record)
        self.notify("Bookmark successfully added!", "success")
        return True

    def _update_bookmark(self, bookmark_id: str, fields: dict) -> bool:
        try:
            record = self.gateway.update_bookmark(bookmark_id, fields)
        except NoRowsAffectedError:
            self.notify("No rows updated — check access policies", "error")
            return False
        except GatewayError as exc:
            self.notify(exc.message, "error")
            return False
        self.bookmarks.update(record)
        self.notify("Bookmark updated", "success")
        return True

    def delete_bookmark(self, bookmark_id: str) -> bool:
        self.bookmarks.delete(bookmark_id)
        try:
            self.gateway.delete_bookmark(bookmark_id)
        except GatewayError as exc:
            logger.warning("Delete of %s failed, reloading: %s", bookmark_id, exc)
            self.notify("Delete failed", "error")
            self.resync()
            return False
        self.notify("Bookmark deleted", "success")
        return True

    def add_category(
        self,
        name: str,
        icon: str = DEFAULT_CATEGORY_ICON,
        color: str = DEFAULT_CATEGORY_COLOR,
    ) -> bool:
        if self.category_saving:
            return False
        if not (name or "").strip():
            self.notify("Enter a category name", "warning")
            return False

        self.category_saving = True
        try:
            record = self.gateway.insert_category(
                {"name": name.strip(), "icon": icon, "color": color}
            )
        except GatewayError as exc:
            self.notify(exc.message, "error")
            return False
        finally:
            self.category_saving = False
        self.categories.insert(record)
        self.notify(f'Category "{record.name}" created', "success")
        return True

    def delete_category(self, category_id: str) -> None:
        self.categories.delete(category_id)
        if self.active == category_id:
            self.active = ALL_BOOKMARKS
        try:
            self.gateway.delete_category(category_id)
        except GatewayError as exc:
            logger.warning("Category delete of %s failed: %s", category_id, exc)

    @property
    def heading(self) -> str:
        return active_heading(self.active, self.categories.items)

    def visible_bookmarks(self) -> list[BookmarkRecord]:
        return filter_bookmarks(
            self.bookmarks.items, self.query, self.active, self.categories.items
        )

    def view(self) -> dict[str, list[BookmarkRecord]]:
        return group_by_category(self.visible_bookmarks(), self.categories.items)
