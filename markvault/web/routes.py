from __future__ import annotations

from urllib.parse import urlparse

from flask import current_app, flash, redirect, render_template, request, url_for
from flask_login import current_user, login_required

from markvault.extensions import db
from markvault.models import ApiToken, utcnow
from markvault.services import gateway
from markvault.services.grouping import (
    ALL_BOOKMARKS,
    active_heading,
    filter_bookmarks,
    group_by_category,
)
from markvault.services.security import issue_api_token
from markvault.services.storage import UnsupportedUploadError, save_preview_image
from markvault.web import web_bp


def _safe_redirect_target(raw_next: str | None, fallback: str) -> str:
    candidate = (raw_next or "").strip()
    if candidate.startswith("/") and not candidate.startswith("//"):
        return candidate
    return fallback


def _back_to_dashboard():
    return redirect(
        _safe_redirect_target(request.form.get("next"), url_for("web.dashboard"))
    )


def _bookmark_form_payload() -> dict:
    payload = {
        "title": request.form.get("title"),
        "url": request.form.get("url"),
        "description": request.form.get("description"),
        "category": request.form.get("category"),
        "og_image": request.form.get("og_image"),
    }
    upload = request.files.get("og_file")
    if upload is not None and upload.filename:
        try:
            key = save_preview_image(
                current_app.config["UPLOAD_FOLDER"], current_user.id, upload
            )
            payload["og_image"] = url_for("api.uploads_get", key=key, _external=True)
        except (UnsupportedUploadError, OSError) as exc:
            current_app.logger.info("Ignoring preview upload: %s", exc)
    return payload


@web_bp.route("/")
def index():
    if current_user.is_authenticated:
        return redirect(url_for("web.dashboard"))
    return render_template("landing.html")


@web_bp.route("/dashboard")
@login_required
def dashboard():
    query = (request.args.get("q") or "").strip()
    active = (request.args.get("category") or ALL_BOOKMARKS).strip()

    bookmarks = gateway.list_bookmarks(current_user.id)
    categories = gateway.list_categories(current_user.id)
    filtered = filter_bookmarks(bookmarks, query, active, categories)
    return render_template(
        "dashboard.html",
        query=query,
        active=active,
        heading=active_heading(active, categories),
        categories=categories,
        total=len(bookmarks),
        filtered_count=len(filtered),
        groups=group_by_category(filtered, categories),
    )


@web_bp.route("/bookmarks/new", methods=["POST"])
@login_required
def bookmark_create():
    try:
        gateway.insert_bookmark(current_user.id, _bookmark_form_payload())
    except gateway.InvalidRecordError:
        flash("Fill in URL and Title", "error")
        return _back_to_dashboard()
    flash("Bookmark successfully added!", "success")
    return _back_to_dashboard()


@web_bp.route("/bookmarks/<bookmark_id>/edit", methods=["GET", "POST"])
@login_required
def bookmark_edit(bookmark_id: str):
    bookmark = gateway.get_bookmark(current_user.id, bookmark_id)
    if request.method == "GET":
        if not bookmark:
            flash("Bookmark not found.", "error")
            return redirect(url_for("web.dashboard"))
        categories = gateway.list_categories(current_user.id)
        return render_template(
            "bookmark_edit.html", bookmark=bookmark, categories=categories
        )

    try:
        updated = gateway.update_bookmark(
            current_user.id, bookmark_id, _bookmark_form_payload()
        )
    except gateway.InvalidRecordError:
        flash("Fill in URL and Title", "error")
        return _back_to_dashboard()
    if not updated:
        flash("No rows updated — check access policies", "error")
    else:
        flash("Bookmark updated", "success")
    return _back_to_dashboard()


@web_bp.route("/bookmarks/<bookmark_id>/delete", methods=["POST"])
@login_required
def bookmark_delete(bookmark_id: str):
    if gateway.delete_bookmark(current_user.id, bookmark_id):
        flash("Bookmark deleted", "success")
    else:
        flash("Delete failed", "error")
    return _back_to_dashboard()


@web_bp.route("/categories/new", methods=["POST"])
@login_required
def category_create():
    try:
        category = gateway.insert_category(
            current_user.id,
            {
                "name": request.form.get("name"),
                "icon": request.form.get("icon"),
                "color": request.form.get("color"),
            },
        )
    except gateway.InvalidRecordError:
        flash("Enter a category name", "error")
        return _back_to_dashboard()
    flash(f'Category "{category.name}" created', "success")
    return _back_to_dashboard()


@web_bp.route("/categories/<category_id>/delete", methods=["POST"])
@login_required
def category_delete(category_id: str):
    gateway.delete_category(current_user.id, category_id)
    return redirect(url_for("web.dashboard"))


@web_bp.route("/tokens", methods=["GET", "POST"])
@login_required
def tokens():
    new_token = None
    if request.method == "POST":
        name = (request.form.get("name") or "").strip() or "MarkVault API Token"
        new_token = issue_api_token(current_user.id, name)
        flash("Token created. Copy it now; it will not be shown again.", "success")

    rows = (
        ApiToken.query.filter_by(user_id=current_user.id)
        .order_by(ApiToken.created_at.desc())
        .all()
    )
    return render_template("tokens.html", tokens=rows, new_token=new_token)


@web_bp.route("/tokens/<int:token_id>/revoke", methods=["POST"])
@login_required
def token_revoke(token_id: int):
    row = ApiToken.query.filter_by(id=token_id, user_id=current_user.id).first()
    if row and row.revoked_at is None:
        row.revoked_at = utcnow()
        db.session.commit()
        flash("Token revoked.", "success")
    return redirect(url_for("web.tokens"))


@web_bp.app_template_filter("domain")
def domain_filter(url: str) -> str:
    hostname = urlparse(url or "").hostname
    if not hostname:
        return url
    return hostname.removeprefix("www.")
