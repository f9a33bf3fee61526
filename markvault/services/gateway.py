from __future__ import annotations

from markvault.extensions import db
from markvault.models import (
    DEFAULT_CATEGORY_COLOR,
    DEFAULT_CATEGORY_ICON,
    UNCATEGORIZED,
    Bookmark,
    Category,
)
from markvault.services.realtime import (
    ACTION_DELETE,
    ACTION_INSERT,
    ACTION_UPDATE,
    RELATION_BOOKMARKS,
    RELATION_CATEGORIES,
    publish_change,
)


class InvalidRecordError(ValueError):
    pass


def _clean_text(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_category(value) -> str:
    return _clean_text(value) or UNCATEGORIZED


def list_bookmarks(user_id: int) -> list[Bookmark]:
    return (
        Bookmark.query.filter_by(user_id=user_id)
        .order_by(Bookmark.created_at.desc())
        .all()
    )


def get_bookmark(user_id: int, bookmark_id: str) -> Bookmark | None:
    return Bookmark.query.filter_by(id=bookmark_id, user_id=user_id).first()


def insert_bookmark(user_id: int, data: dict) -> Bookmark:
    title = _clean_text(data.get("title"))
    url = _clean_text(data.get("url"))
    if not title or not url:
        raise InvalidRecordError("title and url are required")

    bookmark = Bookmark(
        user_id=user_id,
        title=title,
        url=url,
        description=_clean_text(data.get("description")),
        category=normalize_category(data.get("category")),
        og_image=_clean_text(data.get("og_image")),
    )
    db.session.add(bookmark)
    db.session.flush()
    publish_change(
        user_id, RELATION_BOOKMARKS, ACTION_INSERT, bookmark.id, bookmark.as_dict()
    )
    db.session.commit()
    return bookmark


def update_bookmark(user_id: int, bookmark_id: str, data: dict) -> Bookmark | None:
    bookmark = get_bookmark(user_id, bookmark_id)
    if not bookmark:
        return None

    for field in ("title", "url"):
        if field in data:
            value = _clean_text(data.get(field))
            if not value:
                raise InvalidRecordError(f"{field} must not be empty")
            setattr(bookmark, field, value)
    for field in ("description", "og_image"):
        if field in data:
            setattr(bookmark, field, _clean_text(data.get(field)))
    if "category" in data:
        bookmark.category = normalize_category(data.get("category"))

    publish_change(
        user_id, RELATION_BOOKMARKS, ACTION_UPDATE, bookmark.id, bookmark.as_dict()
    )
    db.session.commit()
    return bookmark


def delete_bookmark(user_id: int, bookmark_id: str) -> bool:
    bookmark = get_bookmark(user_id, bookmark_id)
    if not bookmark:
        return False
    publish_change(
        user_id, RELATION_BOOKMARKS, ACTION_DELETE, bookmark.id, {"id": bookmark.id}
    )
    db.session.delete(bookmark)
    db.session.commit()
    return True


def list_categories(user_id: int) -> list[Category]:
    return (
        Category.query.filter_by(user_id=user_id)
        .order_by(Category.created_at.asc())
        .all()
    )


def get_category(user_id: int, category_id: str) -> Category | None:
    return Category.query.filter_by(id=category_id, user_id=user_id).first()


def insert_category(user_id: int, data: dict) -> Category:
    name = _clean_text(data.get("name"))
    if not name:
        raise InvalidRecordError("category name is required")

    category = Category(
        user_id=user_id,
        name=name,
        icon=_clean_text(data.get("icon")) or DEFAULT_CATEGORY_ICON,
        color=_clean_text(data.get("color")) or DEFAULT_CATEGORY_COLOR,
    )
    db.session.add(category)
    db.session.flush()
    publish_change(
        user_id, RELATION_CATEGORIES, ACTION_INSERT, category.id, category.as_dict()
    )
    db.session.commit()
    return category


def update_category(user_id: int, category_id: str, data: dict) -> Category | None:
    category = get_category(user_id, category_id)
    if not category:
        return None

    if "name" in data:
        name = _clean_text(data.get("name"))
        if not name:
            raise InvalidRecordError("category name must not be empty")
        category.name = name
    if "icon" in data:
        category.icon = _clean_text(data.get("icon")) or DEFAULT_CATEGORY_ICON
    if "color" in data:
        category.color = _clean_text(data.get("color")) or DEFAULT_CATEGORY_COLOR

    publish_change(
        user_id, RELATION_CATEGORIES, ACTION_UPDATE, category.id, category.as_dict()
    )
    db.session.commit()
    return category


def delete_category(user_id: int, category_id: str) -> bool:
    category = get_category(user_id, category_id)
    if not category:
        return False
    publish_change(
        user_id, RELATION_CATEGORIES, ACTION_DELETE, category.id, {"id": category.id}
    )
    db.session.delete(category)
    db.session.commit()
    return True
