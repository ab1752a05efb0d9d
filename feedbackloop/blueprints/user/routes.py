from flask import current_app, jsonify
from flask_login import current_user
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from feedbackloop.extensions import db
from feedbackloop.models import User
from feedbackloop.observability import log_event
from feedbackloop.services.policy import login_required_json
from feedbackloop.utils.helpers import error, json_body, validation_failed
from feedbackloop.utils.validators import clean_str, is_valid_username, validate_password
from . import bp


@bp.get("/profile")
@login_required_json
def get_profile():
    return jsonify({"user": current_user.to_dict()})


@bp.put("/profile")
@login_required_json
def update_profile():
    data = json_body()
    user = current_user

    if "username" in data:
        username = clean_str(data.get("username"), 50)
        if username:
            if not is_valid_username(username):
                return validation_failed(["username: 3-50 letters, numbers, dots, dashes or underscores"])
            taken = db.session.query(User.id).filter(
                func.lower(User.username) == username.lower(), User.id != user.id
            ).first()
            if taken:
                return error("Username already taken", 409)
        user.username = username

    if "name" in data:
        user.name = clean_str(data.get("name"))
    if "image" in data:
        user.image = clean_str(data.get("image"), 2048)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error("Username already taken", 409)

    return jsonify({"message": "Profile updated successfully", "user": user.to_dict()})


@bp.post("/change-password")
@login_required_json
def change_password():
    data = json_body()
    current = data.get("current_password")
    new = data.get("new_password")
    if not isinstance(current, str) or not isinstance(new, str) or not current or not new:
        return error("Current password and new password are required", 400)

    details = validate_password(new, field="new_password")
    if details:
        return validation_failed(details)

    user = current_user
    if not user.check_password(current):
        return error("Current password is incorrect", 400)
    if user.check_password(new):
        return error("New password must be different from the current password", 400)

    user.set_password(new)
    db.session.commit()
    log_event(current_app, "password_changed", user_id=user.id)
    return jsonify({"message": "Password changed successfully"})
