from authlib.integrations.flask_client import OAuthError
from flask import current_app, flash, redirect, render_template, request, url_for
from flask_login import current_user, login_required, login_user, logout_user
from requests import RequestException

from markvault.auth import auth_bp
from markvault.extensions import db, oauth
from markvault.models import User


def exchange_code_for_profile() -> dict:
    token = oauth.google.authorize_access_token()
    profile = token.get("userinfo")
    if not profile:
        profile = oauth.google.userinfo(token=token)
    return dict(profile or {})


def upsert_google_user(profile: dict) -> User:
    email = (profile.get("email") or "").strip().lower()
    sub = profile.get("sub")
    user = None
    if sub:
        user = User.query.filter_by(google_sub=sub).first()
    if not user:
        user = User.query.filter_by(email=email).first()
    if not user:
        user = User(email=email)
        db.session.add(user)

    user.google_sub = sub or user.google_sub
    user.email = email
    user.name = profile.get("name") or user.name or ""
    user.picture = profile.get("picture") or user.picture or ""
    db.session.commit()
    return user


@auth_bp.route("/login")
def login():
    if current_user.is_authenticated:
        return redirect(url_for("web.dashboard"))
    return render_template("login.html")


@auth_bp.route("/auth/google")
def google_login():
    redirect_uri = url_for("auth.callback", _external=True)
    return oauth.google.authorize_redirect(redirect_uri)


@auth_bp.route("/auth/callback")
def callback():
    if not request.args.get("code"):
        return redirect(url_for("web.dashboard"))

    try:
        profile = exchange_code_for_profile()
    except (OAuthError, RequestException) as exc:
        current_app.logger.warning("Google code exchange failed: %s", exc)
        flash("Google sign-in failed. Please try again.", "error")
        return redirect(url_for("auth.login"))

    if not (profile.get("email") or "").strip():
        flash("Your Google account has no email address.", "error")
        return redirect(url_for("auth.login"))

    user = upsert_google_user(profile)
    login_user(user, remember=True)
    return redirect(url_for("web.dashboard"))


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return redirect(url_for("web.index"))
