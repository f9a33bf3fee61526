from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from dateutil import parser as dt_parser


def _parse_time(value) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return dt_parser.isoparse(value)
    except (TypeError, ValueError):
        return None


@dataclass
class BookmarkRecord:
    id: str
    title: str = ""
    url: str = ""
    description: str | None = None
    category: str | None = None
    og_image: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict) -> BookmarkRecord:
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            url=data.get("url") or "",
            description=data.get("description"),
            category=data.get("category"),
            og_image=data.get("og_image"),
            created_at=_parse_time(data.get("created_at")),
        )


@dataclass
class CategoryRecord:
    id: str
    name: str = ""
    icon: str = ""
    color: str = ""
    created_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict) -> CategoryRecord:
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            icon=data.get("icon") or "",
            color=data.get("color") or "",
            created_at=_parse_time(data.get("created_at")),
        )
