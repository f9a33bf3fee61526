from __future__ import annotations

from markvault.models import UNCATEGORIZED

ALL_BOOKMARKS = "all"
ALL_BOOKMARKS_HEADING = "All Bookmarks"


def category_label(bookmark, known_names=None) -> str:
    """Display label for a bookmark.

    With ``known_names``, a label whose category was deleted (or never
    existed) shows as "Uncategorized"; the stored label is left alone.
    """
    label = (getattr(bookmark, "category", None) or "").strip()
    if not label or (known_names is not None and label not in known_names):
        return UNCATEGORIZED
    return label


def _find_category(active: str, categories):
    for category in categories:
        if category.id == active:
            return category
    return None


def filter_bookmarks(bookmarks, query: str = "", active: str = ALL_BOOKMARKS, categories=()):
    needle = (query or "").lower()
    selected = None
    if active != ALL_BOOKMARKS:
        selected = _find_category(active, categories)
    selected_name = selected.name if selected else ""

    results = []
    for bookmark in bookmarks:
        matches_query = (
            needle in (bookmark.title or "").lower()
            or needle in (bookmark.url or "").lower()
        )
        if not matches_query:
            continue
        if active != ALL_BOOKMARKS and category_label(bookmark) != selected_name:
            continue
        results.append(bookmark)
    return results


def group_by_category(bookmarks, categories=None) -> dict[str, list]:
    known_names = None
    if categories is not None:
        known_names = {category.name for category in categories}
    groups: dict[str, list] = {}
    for bookmark in bookmarks:
        label = category_label(bookmark, known_names)
        groups.setdefault(label, []).append(bookmark)
    return groups


def active_heading(active: str, categories=()) -> str:
    if active == ALL_BOOKMARKS:
        return ALL_BOOKMARKS_HEADING
    selected = _find_category(active, categories)
    return selected.name if selected else ALL_BOOKMARKS_HEADING
