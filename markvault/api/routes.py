from __future__ import annotations

from flask import current_app, g, jsonify, request, send_from_directory, url_for
from sqlalchemy.exc import SQLAlchemyError

from markvault.api import api_bp
from markvault.extensions import db
from markvault.services import gateway
from markvault.services.metadata import MetadataFetchError, fetch_metadata
from markvault.services.realtime import (
    RELATION_BOOKMARKS,
    DuplicateChannelError,
    acknowledge,
    close_subscription,
    get_subscription,
    open_subscription,
    poll_subscription,
)
from markvault.services.security import api_auth_required
from markvault.services.storage import UnsupportedUploadError, save_preview_image

NO_ROWS_AFFECTED = {"error": "no rows affected"}


@api_bp.errorhandler(SQLAlchemyError)
def handle_database_error(exc):
    db.session.rollback()
    current_app.logger.warning("Database error on %s: %s", request.path, exc)
    return jsonify({"error": "database error"}), 500


@api_bp.route("/health")
def health():
    return jsonify({"status": "ok", "service": "MarkVault"})


@api_bp.route("/me")
@api_auth_required
def me():
    return jsonify(g.api_user.as_dict())


@api_bp.route("/og")
@api_auth_required
def og_metadata():
    url = (request.args.get("url") or "").strip()
    if not url:
        return jsonify({"error": "No URL"}), 400

    try:
        metadata = fetch_metadata(
            url,
            timeout=current_app.config["METADATA_FETCH_TIMEOUT"],
            max_bytes=current_app.config["METADATA_MAX_BYTES"],
        )
    except MetadataFetchError as exc:
        current_app.logger.info("Metadata fetch failed for %s: %s", url, exc)
        return jsonify({"error": "Failed to fetch"}), 500
    return jsonify(metadata.as_payload())


@api_bp.route("/bookmarks", methods=["GET"])
@api_auth_required
def bookmarks_list():
    items = gateway.list_bookmarks(g.api_user.id)
    return jsonify({"items": [item.as_dict() for item in items]})


@api_bp.route("/bookmarks", methods=["POST"])
@api_auth_required
def bookmarks_create():
    payload = request.get_json(silent=True) or {}
    try:
        bookmark = gateway.insert_bookmark(g.api_user.id, payload)
    except gateway.InvalidRecordError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(bookmark.as_dict()), 201


@api_bp.route("/bookmarks/<bookmark_id>", methods=["GET"])
@api_auth_required
def bookmarks_get(bookmark_id: str):
    bookmark = gateway.get_bookmark(g.api_user.id, bookmark_id)
    if not bookmark:
        return jsonify({"error": "bookmark not found"}), 404
    return jsonify(bookmark.as_dict())


@api_bp.route("/bookmarks/<bookmark_id>", methods=["PATCH"])
@api_auth_required
def bookmarks_update(bookmark_id: str):
    payload = request.get_json(silent=True) or {}
    try:
        bookmark = gateway.update_bookmark(g.api_user.id, bookmark_id, payload)
    except gateway.InvalidRecordError as exc:
        return jsonify({"error": str(exc)}), 400
    if not bookmark:
        return jsonify(NO_ROWS_AFFECTED), 404
    return jsonify(bookmark.as_dict())


@api_bp.route("/bookmarks/<bookmark_id>", methods=["DELETE"])
@api_auth_required
def bookmarks_delete(bookmark_id: str):
    if not gateway.delete_bookmark(g.api_user.id, bookmark_id):
        return jsonify(NO_ROWS_AFFECTED), 404
    return jsonify({"status": "deleted", "id": bookmark_id})


@api_bp.route("/categories", methods=["GET"])
@api_auth_required
def categories_list():
    items = gateway.list_categories(g.api_user.id)
    return jsonify({"items": [item.as_dict() for item in items]})


@api_bp.route("/categories", methods=["POST"])
@api_auth_required
def categories_create():
    payload = request.get_json(silent=True) or {}
    try:
        category = gateway.insert_category(g.api_user.id, payload)
    except gateway.InvalidRecordError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(category.as_dict()), 201


@api_bp.route("/categories/<category_id>", methods=["PATCH"])
@api_auth_required
def categories_update(category_id: str):
    payload = request.get_json(silent=True) or {}
    try:
        category = gateway.update_category(g.api_user.id, category_id, payload)
    except gateway.InvalidRecordError as exc:
        return jsonify({"error": str(exc)}), 400
    if not category:
        return jsonify(NO_ROWS_AFFECTED), 404
    return jsonify(category.as_dict())


@api_bp.route("/categories/<category_id>", methods=["DELETE"])
@api_auth_required
def categories_delete(category_id: str):
    if not gateway.delete_category(g.api_user.id, category_id):
        return jsonify(NO_ROWS_AFFECTED), 404
    return jsonify({"status": "deleted", "id": category_id})


@api_bp.route("/uploads", methods=["POST"])
@api_auth_required
def uploads_create():
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return jsonify({"error": "file is required"}), 400
    try:
        key = save_preview_image(
            current_app.config["UPLOAD_FOLDER"], g.api_user.id, upload
        )
    except UnsupportedUploadError as exc:
        return jsonify({"error": str(exc)}), 400
    except OSError as exc:
        current_app.logger.warning("Upload failed for user %s: %s", g.api_user.id, exc)
        return jsonify({"error": "upload failed"}), 500
    return (
        jsonify(
            {
                "path": key,
                "public_url": url_for("api.uploads_get", key=key, _external=True),
            }
        ),
        201,
    )


@api_bp.route("/uploads/<path:key>", methods=["GET"])
def uploads_get(key: str):
    return send_from_directory(current_app.config["UPLOAD_FOLDER"], key)


@api_bp.route("/realtime/subscriptions", methods=["POST"])
@api_auth_required
def realtime_subscribe():
    payload = request.get_json(silent=True) or {}
    relation = (payload.get("relation") or RELATION_BOOKMARKS).strip().lower()
    try:
        subscription = open_subscription(
            g.api_user.id, relation, channel=payload.get("channel")
        )
    except DuplicateChannelError:
        return jsonify({"error": "channel already subscribed"}), 409
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    current_app.logger.info(
        "Opened feed channel %s for user %s", subscription.channel, g.api_user.id
    )
    return jsonify(subscription.as_dict()), 201


@api_bp.route("/realtime/subscriptions/<channel>/events", methods=["GET"])
@api_auth_required
def realtime_poll(channel: str):
    subscription = get_subscription(g.api_user.id, channel)
    if not subscription:
        return jsonify({"error": "subscription not found"}), 404
    since = request.args.get("since", default=None, type=int)
    limit = request.args.get(
        "limit", default=current_app.config["FEED_PAGE_LIMIT"], type=int
    )
    limit = min(limit, current_app.config["FEED_PAGE_LIMIT"])
    return jsonify(poll_subscription(subscription, since, limit))


@api_bp.route("/realtime/subscriptions/<channel>/ack", methods=["POST"])
@api_auth_required
def realtime_ack(channel: str):
    subscription = get_subscription(g.api_user.id, channel)
    if not subscription:
        return jsonify({"error": "subscription not found"}), 404
    payload = request.get_json(silent=True) or {}
    cursor = payload.get("cursor")
    if cursor is None:
        return jsonify({"error": "cursor is required"}), 400
    try:
        subscription = acknowledge(subscription, int(cursor))
    except (TypeError, ValueError):
        return jsonify({"error": "cursor must be an integer"}), 400
    return jsonify({"status": "acknowledged", "cursor": subscription.last_cursor})


@api_bp.route("/realtime/subscriptions/<channel>", methods=["DELETE"])
@api_auth_required
def realtime_unsubscribe(channel: str):
    subscription = get_subscription(g.api_user.id, channel)
    if not subscription:
        return jsonify({"error": "subscription not found"}), 404
    close_subscription(subscription)
    current_app.logger.info("Closed feed channel %s", channel)
    return jsonify({"status": "closed", "channel": channel})
