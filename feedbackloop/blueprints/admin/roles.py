from flask import current_app, jsonify, request
from flask_login import current_user
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from feedbackloop.extensions import db
from feedbackloop.models import Permission, Role
from feedbackloop.observability import log_event
from feedbackloop.services.policy import permission_required
from feedbackloop.utils.helpers import error, json_body, like_term, safe_int, validation_failed
from feedbackloop.utils.validators import clean_str
from . import bp


def _resolve_permissions(raw):
    """Permission ids from the request body -> (permissions, errors). Unknown ids are an error."""
    if not isinstance(raw, list):
        return [], ["permissions: must be an array of permission ids"]
    ids = []
    for value in raw:
        pid = safe_int(value)
        if pid is None or isinstance(value, bool):
            return [], ["permissions: must be an array of permission ids"]
        if pid not in ids:
            ids.append(pid)
    if not ids:
        return [], []
    found = Permission.query.filter(Permission.id.in_(ids)).all()
    missing = sorted(set(ids) - {p.id for p in found})
    if missing:
        return [], ["permissions: unknown ids " + ", ".join(str(m) for m in missing)]
    return found, []


def _name_taken(name: str, exclude_id=None) -> bool:
    q = db.session.query(Role.id).filter(func.lower(Role.name) == name.lower())
    if exclude_id is not None:
        q = q.filter(Role.id != exclude_id)
    return q.first() is not None


@bp.get("/roles")
@permission_required("roles.read")
def list_roles():
    q = Role.query
    search = clean_str(request.args.get("search"))
    if search:
        term = like_term(search)
        q = q.filter(or_(Role.name.ilike(term, escape="\\"), Role.description.ilike(term, escape="\\")))
    rows = q.order_by(Role.created_at.asc(), Role.id.asc()).all()
    return jsonify({"roles": [r.to_dict() for r in rows]})


@bp.post("/roles")
@permission_required("roles.create")
def create_role():
    data = json_body()
    name = clean_str(data.get("name"), 100)
    if not name:
        return error("Name is required", 400)
    if _name_taken(name):
        return error("Role already exists", 409)

    perms, details = _resolve_permissions(data.get("permissions", []))
    if details:
        return validation_failed(details)

    role = Role(name=name, description=clean_str(data.get("description"), 2000), is_system=False)
    role.permissions = perms
    db.session.add(role)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error("Role already exists", 409)

    log_event(current_app, "admin_role_created", actor_id=current_user.id, role_id=role.id)
    return jsonify({"role": role.to_dict(with_permissions=True)}), 201


@bp.get("/roles/<int:role_id>")
@permission_required("roles.read")
def get_role(role_id: int):
    role = db.session.get(Role, role_id)
    if not role:
        return error("Role not found", 404)
    return jsonify({"role": role.to_dict(with_permissions=True)})


@bp.put("/roles/<int:role_id>")
@permission_required("roles.update")
def update_role(role_id: int):
    role = db.session.get(Role, role_id)
    if not role:
        return error("Role not found", 404)
    if role.is_system:
        return error("Cannot modify system roles", 403)

    data = json_body()
    if "name" in data:
        name = clean_str(data.get("name"), 100)
        if not name:
            return validation_failed(["name: required"])
        if _name_taken(name, exclude_id=role.id):
            return error("Role name already taken", 409)
        role.name = name
    if "description" in data:
        role.description = clean_str(data.get("description"), 2000)

    # Given permissions replace the current set
    if "permissions" in data:
        perms, details = _resolve_permissions(data.get("permissions"))
        if details:
            db.session.rollback()
            return validation_failed(details)
        role.permissions = perms

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error("Role name already taken", 409)
    return jsonify({"role": role.to_dict(with_permissions=True)})


@bp.delete("/roles/<int:role_id>")
@permission_required("roles.delete")
def delete_role(role_id: int):
    role = db.session.get(Role, role_id)
    if not role:
        return error("Role not found", 404)
    if role.is_system:
        return error("Cannot delete system roles", 403)
    db.session.delete(role)
    db.session.commit()
    log_event(current_app, "admin_role_deleted", actor_id=current_user.id, role_id=role_id)
    return jsonify({"message": "Role deleted successfully"})
