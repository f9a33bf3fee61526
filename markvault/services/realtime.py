from __future__ import annotations

import secrets
from datetime import timedelta

from sqlalchemy import func, select

from markvault.extensions import db
from markvault.models import ChangeEvent, FeedSubscription, User, utcnow

RELATION_BOOKMARKS = "bookmarks"
RELATION_CATEGORIES = "categories"
RELATIONS = {RELATION_BOOKMARKS, RELATION_CATEGORIES}

ACTION_INSERT = "insert"
ACTION_UPDATE = "update"
ACTION_DELETE = "delete"
ACTIONS = {ACTION_INSERT, ACTION_UPDATE, ACTION_DELETE}


class DuplicateChannelError(Exception):
    pass


def random_channel_name(relation: str, user_id: int) -> str:
    return f"{relation}-{user_id}-{secrets.token_hex(4)}"


def owner_lock_statement(user_id: int):
    return select(User.id).where(User.id == user_id).with_for_update()


def publish_change(
    user_id: int, relation: str, action: str, record_id: str, payload: dict
) -> ChangeEvent:
    if relation not in RELATIONS:
        raise ValueError(f"unknown relation: {relation}")
    if action not in ACTIONS:
        raise ValueError(f"unknown action: {action}")
    # Held until commit, so one owner's cursors become visible in id order.
    db.session.execute(owner_lock_statement(user_id))
    event = ChangeEvent(
        user_id=user_id,
        relation=relation,
        action=action,
        record_id=record_id,
        payload=payload,
    )
    db.session.add(event)
    return event


def latest_cursor(user_id: int) -> int:
    value = (
        db.session.query(func.max(ChangeEvent.id))
        .filter(ChangeEvent.user_id == user_id)
        .scalar()
    )
    return int(value or 0)


def open_subscription(
    user_id: int, relation: str, channel: str | None = None
) -> FeedSubscription:
    if relation not in RELATIONS:
        raise ValueError(f"unknown relation: {relation}")
    channel = (channel or "").strip() or random_channel_name(relation, user_id)
    if FeedSubscription.query.filter_by(channel=channel).first():
        raise DuplicateChannelError(channel)

    subscription = FeedSubscription(
        user_id=user_id,
        channel=channel,
        relation=relation,
        last_cursor=latest_cursor(user_id),
    )
    db.session.add(subscription)
    db.session.commit()
    return subscription


def get_subscription(user_id: int, channel: str) -> FeedSubscription | None:
    return FeedSubscription.query.filter_by(user_id=user_id, channel=channel).first()


def poll_subscription(
    subscription: FeedSubscription, since: int | None, limit: int
) -> dict:
    if since is None:
        since = subscription.last_cursor
    limit = max(1, limit)
    events = (
        ChangeEvent.query.filter_by(
            user_id=subscription.user_id, relation=subscription.relation
        )
        .filter(ChangeEvent.id > since)
        .order_by(ChangeEvent.id.asc())
        .limit(limit)
        .all()
    )
    subscription.last_seen_at = utcnow()
    db.session.commit()

    cursor = events[-1].id if events else since
    return {
        "channel": subscription.channel,
        "events": [event.as_dict() for event in events],
        "cursor": cursor,
        "has_more": len(events) == limit,
    }


def acknowledge(subscription: FeedSubscription, cursor: int) -> FeedSubscription:
    subscription.last_cursor = max(subscription.last_cursor, int(cursor))
    subscription.last_seen_at = utcnow()
    db.session.commit()
    return subscription


def close_subscription(subscription: FeedSubscription) -> None:
    db.session.delete(subscription)
    db.session.commit()


def prune_stale_feed(retention_hours: int, idle_minutes: int) -> tuple[int, int]:
    now = utcnow()
    events = ChangeEvent.query.filter(
        ChangeEvent.created_at < now - timedelta(hours=retention_hours)
    ).delete(synchronize_session=False)
    subscriptions = FeedSubscription.query.filter(
        FeedSubscription.last_seen_at < now - timedelta(minutes=idle_minutes)
    ).delete(synchronize_session=False)
    db.session.commit()
    return events, subscriptions
