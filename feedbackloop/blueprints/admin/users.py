from flask import current_app, jsonify, request
from flask_login import current_user
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from feedbackloop.extensions import db
from feedbackloop.models import Role, User, UserRole
from feedbackloop.observability import log_event
from feedbackloop.services import permissions
from feedbackloop.services.policy import permission_required
from feedbackloop.services.projects import delete_projects_of
from feedbackloop.utils.helpers import error, json_body, like_term, safe_int, validation_failed
from feedbackloop.utils.validators import clean_str, is_valid_email, is_valid_username, validate_password
from . import bp


def _email_taken(email: str, exclude_id=None) -> bool:
    q = db.session.query(User.id).filter(func.lower(User.email) == email.lower())
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    return q.first() is not None


def _username_taken(username: str, exclude_id=None) -> bool:
    q = db.session.query(User.id).filter(func.lower(User.username) == username.lower())
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    return q.first() is not None


@bp.get("/users")
@permission_required("users.read")
def list_users():
    q = User.query
    search = clean_str(request.args.get("search"))
    if search:
        term = like_term(search)
        q = q.filter(or_(
            User.name.ilike(term, escape="\\"),
            User.email.ilike(term, escape="\\"),
            User.username.ilike(term, escape="\\"),
        ))
    rows = q.order_by(User.created_at.asc(), User.id.asc()).all()
    return jsonify({"users": [u.to_dict(with_roles=True) for u in rows]})


@bp.post("/users")
@permission_required("users.create")
def create_user():
    data = json_body()
    email = (clean_str(data.get("email")) or "").lower()
    password = data.get("password") or ""
    if not email or not password:
        return error("Email and password are required", 400)
    name = clean_str(data.get("name"))
    if not name:
        return error("Name is required", 400)

    details = []
    if not is_valid_email(email):
        details.append("email: Invalid email")
    details.extend(validate_password(password))
    username = clean_str(data.get("username"), 50)
    if username and not is_valid_username(username):
        details.append("username: 3-50 letters, numbers, dots, dashes or underscores")
    if details:
        return validation_failed(details)

    if _email_taken(email):
        return error("User with this email already exists", 409)
    if username and _username_taken(username):
        return error("Username already taken", 409)

    user = User(
        email=email,
        name=name,
        username=username,
        image=clean_str(data.get("image"), 2048),
        is_active=bool(data.get("is_active", True)),
    )
    user.set_password(password)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error("User with this email or username already exists", 409)

    log_event(current_app, "admin_user_created", actor_id=current_user.id, user_id=user.id)
    return jsonify({"user": user.to_dict(with_roles=True)}), 201


@bp.get("/users/<int:user_id>")
@permission_required("users.read")
def get_user(user_id: int):
    user = db.session.get(User, user_id)
    if not user:
        return error("User not found", 404)
    return jsonify({"user": user.to_dict(with_roles=True)})


@bp.put("/users/<int:user_id>")
@permission_required("users.update")
def update_user(user_id: int):
    user = db.session.get(User, user_id)
    if not user:
        return error("User not found", 404)
    data = json_body()
    details = []

    if "email" in data:
        email = (clean_str(data.get("email")) or "").lower()
        if not is_valid_email(email):
            details.append("email: Invalid email")
        elif email != user.email and _email_taken(email, exclude_id=user.id):
            return error("Email already taken", 409)
        else:
            user.email = email

    if "username" in data:
        username = clean_str(data.get("username"), 50)
        if username and not is_valid_username(username):
            details.append("username: 3-50 letters, numbers, dots, dashes or underscores")
        elif username and _username_taken(username, exclude_id=user.id):
            return error("Username already taken", 409)
        else:
            user.username = username

    if "name" in data:
        user.name = clean_str(data.get("name"))
    if "image" in data:
        user.image = clean_str(data.get("image"), 2048)
    if "is_active" in data:
        user.is_active = bool(data.get("is_active"))

    # Optional password change
    if data.get("password"):
        pw_errors = validate_password(data["password"])
        if pw_errors:
            details.extend(pw_errors)
        else:
            user.set_password(data["password"])

    if details:
        db.session.rollback()
        return validation_failed(details)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error("Email or username already taken", 409)
    return jsonify({"user": user.to_dict(with_roles=True)})


@bp.delete("/users/<int:user_id>")
@permission_required("users.delete")
def delete_user(user_id: int):
    user = db.session.get(User, user_id)
    if not user:
        return error("User not found", 404)
    if user.id == current_user.id:
        return error("Cannot delete your own account", 403)

    delete_projects_of(user.id)
    db.session.flush()
    db.session.delete(user)
    db.session.commit()
    log_event(current_app, "admin_user_deleted", actor_id=current_user.id, user_id=user_id)
    return jsonify({"message": "User deleted successfully"})


# ---- user <-> role assignments ----

@bp.get("/users/<int:user_id>/roles")
@permission_required("users.read")
def list_user_roles(user_id: int):
    if not db.session.get(User, user_id):
        return error("User not found", 404)
    roles = permissions.get_user_roles(user_id)
    return jsonify({"roles": [r.to_dict() for r in roles]})


@bp.post("/users/<int:user_id>/roles")
@permission_required("users.update")
def assign_role(user_id: int):
    role_id = safe_int(json_body().get("role_id"))
    if role_id is None:
        return error("Role ID is required", 400)
    if not db.session.get(User, user_id):
        return error("User not found", 404)
    if not db.session.get(Role, role_id):
        return error("Role not found", 404)

    exists = db.session.query(UserRole.id).filter_by(user_id=user_id, role_id=role_id).first()
    if exists:
        return error("User already has this role", 409)

    db.session.add(UserRole(user_id=user_id, role_id=role_id))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error("User already has this role", 409)

    log_event(current_app, "admin_role_assigned", actor_id=current_user.id, user_id=user_id, role_id=role_id)
    return jsonify({"message": "Role assigned successfully"}), 201


@bp.delete("/users/<int:user_id>/roles/<int:role_id>")
@permission_required("users.update")
def revoke_role(user_id: int, role_id: int):
    link = db.session.query(UserRole).filter_by(user_id=user_id, role_id=role_id).one_or_none()
    if link is None:
        return error("User does not have this role", 404)
    db.session.delete(link)
    db.session.commit()
    log_event(current_app, "admin_role_revoked", actor_id=current_user.id, user_id=user_id, role_id=role_id)
    return jsonify({"message": "Role removed successfully"})
