from datetime import datetime, timedelta, timezone

from flask import current_app, jsonify, request, session
from flask_login import current_user, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from feedbackloop.extensions import db, limiter
from feedbackloop.models import User
from feedbackloop.observability import log_event
from feedbackloop.services import permissions, tokens
from feedbackloop.services.email import send_password_reset_email
from feedbackloop.services.policy import login_required_json
from feedbackloop.utils.helpers import error, json_body, validation_failed
from feedbackloop.utils.validators import clean_str, is_valid_email, is_valid_username, validate_password
from . import bp

RESET_TOKEN_KIND = "reset"
FORGOT_PASSWORD_MESSAGE = "If the email exists, a password reset link has been sent"


def _login_identity_scope():
    data = request.get_json(silent=True) or {}
    ident = (data.get("email") or data.get("username") or "") if isinstance(data, dict) else ""
    # Keep a stable scope even if the identity is blank
    return f"login-id:{str(ident).strip().lower() or 'missing'}"


def _find_by_identity(identity: str):
    identity = identity.strip().lower()
    return db.session.execute(
        db.select(User).where(or_(func.lower(User.email) == identity, func.lower(User.username) == identity))
    ).scalars().first()


@bp.get("/csrf-token")
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})


@bp.post("/register")
@limiter.limit("5 per minute; 20 per hour")
def register():
    data = json_body()
    email = (clean_str(data.get("email")) or "").lower()
    password = data.get("password") or ""
    if not email or not password:
        return error("Email and password are required", 400)

    details = []
    if not is_valid_email(email):
        details.append("email: Invalid email")
    details.extend(validate_password(password))
    username = clean_str(data.get("username"), 50)
    if username and not is_valid_username(username):
        details.append("username: 3-50 letters, numbers, dots, dashes or underscores")
    if details:
        return validation_failed(details)

    if db.session.query(User.id).filter(func.lower(User.email) == email).first():
        return error("Email already registered", 409)
    if username and db.session.query(User.id).filter(func.lower(User.username) == username.lower()).first():
        return error("Username already taken", 409)

    user = User(email=email, name=clean_str(data.get("name")), username=username)
    user.set_password(password)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error("Email or username already registered", 409)

    log_event(current_app, "user_registered", user_id=user.id)
    return jsonify({"message": "User registered successfully", "user": user.to_dict()}), 201


@bp.post("/login")
@limiter.limit("10 per minute; 100 per hour")              # per-IP (anon -> IP via _rate_limit_key)
@limiter.limit("5 per minute; 20 per hour", key_func=_login_identity_scope)  # per-account
def login():
    data = json_body()
    identity = clean_str(data.get("email") or data.get("username")) or ""
    password = data.get("password")
    if not identity or not isinstance(password, str) or not password:
        return error("Email and password are required", 400)

    user = _find_by_identity(identity)
    if not user or not user.is_active or not user.check_password(password):
        log_event(current_app, "login_failed", level="warning", user_id=getattr(user, "id", None))
        return error("Invalid credentials", 401)

    session.permanent = True
    login_user(user)
    log_event(current_app, "login_succeeded", user_id=user.id)
    return jsonify({"message": "Login successful", "user": user.to_dict()})


@bp.post("/logout")
def logout():
    if current_user.is_authenticated:
        logout_user()
    return jsonify({"message": "Logged out"})


@bp.get("/me")
@login_required_json
def me():
    return jsonify({
        "user": current_user.to_dict(with_roles=True),
        "permissions": permissions.get_user_permissions(current_user.id),
    })


@bp.post("/forgot-password")
@limiter.limit("10 per hour")
def forgot_password():
    data = json_body()
    email = (clean_str(data.get("email")) or "").lower()
    if not email:
        return error("Email is required", 400)

    user = db.session.execute(
        db.select(User).where(func.lower(User.email) == email)
    ).scalar_one_or_none()
    if user and user.is_active:
        ttl = int(current_app.config.get("PASSWORD_RESET_TTL_SECONDS", 3600))
        token = tokens.generate(RESET_TOKEN_KIND, user.email)
        user.reset_password_token = token
        user.reset_password_expires = datetime.now(timezone.utc) + timedelta(seconds=ttl)
        db.session.commit()
        send_password_reset_email(user, token)
        log_event(current_app, "password_reset_requested", user_id=user.id)

    # Always respond the same way
    return jsonify({"message": FORGOT_PASSWORD_MESSAGE})


@bp.post("/reset-password")
@limiter.limit("5 per 15 minutes")
def reset_password():
    data = json_body()
    token = (data.get("token") or "").strip() if isinstance(data.get("token"), str) else ""
    password = data.get("password") or ""
    if not token:
        return error("Invalid reset token", 400)
    if not password:
        return error("New password is required", 400)

    details = validate_password(password)
    if details:
        return validation_failed(details)

    user = db.session.execute(
        db.select(User).where(User.reset_password_token == token)
    ).scalar_one_or_none()
    if user is None:
        return error("Reset link is invalid or has expired. Please request a new one.", 400)

    ttl = int(current_app.config.get("PASSWORD_RESET_TTL_SECONDS", 3600))
    identity = tokens.verify(RESET_TOKEN_KIND, token, max_age_seconds=ttl)
    if identity != user.email or not user.reset_token_valid(token):
        user.clear_reset_token()
        db.session.commit()
        return error("Reset link has expired. Please request a new one.", 400)

    if user.check_password(password):
        return error("New password must be different from the old password", 400)

    user.set_password(password)
    user.clear_reset_token()
    db.session.commit()
    log_event(current_app, "password_reset_completed", user_id=user.id)
    return jsonify({"message": "Password has been reset. Please log in with your new password."})
