from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable
from urllib.parse import urlparse

from markvault.client.gateway import GatewayError
from markvault.models import UNCATEGORIZED
from markvault.services.metadata import MetadataFetchError, PageMetadata

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.9
TITLE_LIMIT = 100
DESCRIPTION_LIMIT = 300


@dataclass
class ImageUpload:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass
class BookmarkDraft:
    url: str = ""
    title: str = ""
    description: str = ""
    category: str = UNCATEGORIZED
    og_image: str | None = None
    upload: ImageUpload | None = None
    editing_id: str | None = None

    @classmethod
    def for_bookmark(cls, bookmark) -> BookmarkDraft:
        return cls(
            url=bookmark.url,
            title=bookmark.title,
            description=bookmark.description or "",
            category=(bookmark.category or "").strip() or UNCATEGORIZED,
            og_image=bookmark.og_image,
            editing_id=bookmark.id,
        )


def is_well_formed_url(value: str) -> bool:
    try:
        parsed = urlparse((value or "").strip())
    except ValueError:
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def apply_metadata(draft: BookmarkDraft, metadata: PageMetadata) -> list[str]:
    """Fill only the draft fields the user has left empty."""
    filled = []
    if metadata.title and not draft.title:
        draft.title = metadata.title[:TITLE_LIMIT]
        filled.append("title")
    if metadata.description and not draft.description:
        draft.description = metadata.description[:DESCRIPTION_LIMIT]
        filled.append("description")
    if metadata.image and draft.upload is None:
        draft.og_image = metadata.image
        filled.append("og_image")
    return filled


class MetadataAutofill:
    """Debounced metadata lookup for a bookmark form.

    Each URL change cancels the pending lookup. A lookup that resolves after a
    newer change, or after ``close()``, is discarded. Editing an existing
    bookmark never triggers a lookup.
    """

    def __init__(
        self,
        draft: BookmarkDraft,
        fetch: Callable[[str], PageMetadata],
        delay: float = DEBOUNCE_SECONDS,
        timer_factory=threading.Timer,
    ):
        self.draft = draft
        self._fetch = fetch
        self._delay = delay
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._generation = 0
        self._timer = None
        self._closed = False
        self.fetching = False

    def url_changed(self, url: str) -> None:
        with self._lock:
            self.draft.url = url
            self._generation += 1
            self._cancel_timer()
            self.fetching = False
            if self._closed or not url or self.draft.editing_id:
                return
            generation = self._generation
            self._timer = self._timer_factory(
                self._delay, self._run, args=(generation, url)
            )
            self._timer.daemon = True
            self._timer.start()

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._generation += 1
            self._cancel_timer()
            self.fetching = False

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    def _run(self, generation: int, url: str) -> None:
        if not is_well_formed_url(url):
            return
        with self._lock:
            if not self._is_current(generation):
                return
            self.fetching = True

        try:
            metadata = self._fetch(url)
        except (GatewayError, MetadataFetchError) as exc:
            logger.debug("Metadata lookup failed for %s: %s", url, exc)
            metadata = None

        with self._lock:
            if not self._is_current(generation):
                return
            self.fetching = False
            if metadata is not None:
                apply_metadata(self.draft, metadata)
