from flask import jsonify, request
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from feedbackloop.extensions import db
from feedbackloop.models import Permission
from feedbackloop.services.policy import permission_required
from feedbackloop.utils.helpers import error, json_body, like_term
from feedbackloop.utils.validators import clean_str
from . import bp

_FIELDS = ("name", "slug", "resource", "action")


def _slug_taken(slug: str, exclude_id=None) -> bool:
    q = db.session.query(Permission.id).filter(Permission.slug == slug)
    if exclude_id is not None:
        q = q.filter(Permission.id != exclude_id)
    return q.first() is not None


@bp.get("/permissions")
@permission_required("permissions.read")
def list_permissions():
    q = Permission.query
    search = clean_str(request.args.get("search"))
    if search:
        term = like_term(search)
        q = q.filter(or_(
            Permission.name.ilike(term, escape="\\"),
            Permission.slug.ilike(term, escape="\\"),
            Permission.resource.ilike(term, escape="\\"),
        ))
    rows = q.order_by(Permission.resource.asc(), Permission.action.asc()).all()
    return jsonify({"permissions": [p.to_dict() for p in rows]})


@bp.post("/permissions")
@permission_required("permissions.create")
def create_permission():
    data = json_body()
    values = {k: clean_str(data.get(k), 100) for k in _FIELDS}
    if not all(values.values()):
        return error("Name, slug, resource, and action are required", 400)
    if _slug_taken(values["slug"]):
        return error("Permission already exists", 409)

    perm = Permission(description=clean_str(data.get("description"), 2000), **values)
    db.session.add(perm)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error("Permission already exists", 409)
    return jsonify({"permission": perm.to_dict()}), 201


@bp.get("/permissions/<int:permission_id>")
@permission_required("permissions.read")
def get_permission(permission_id: int):
    perm = db.session.get(Permission, permission_id)
    if not perm:
        return error("Permission not found", 404)
    return jsonify({"permission": perm.to_dict()})


@bp.put("/permissions/<int:permission_id>")
@permission_required("permissions.update")
def update_permission(permission_id: int):
    perm = db.session.get(Permission, permission_id)
    if not perm:
        return error("Permission not found", 404)
    data = json_body()

    for key in _FIELDS:
        if key not in data:
            continue
        value = clean_str(data.get(key), 100)
        if not value:
            return error(f"{key.capitalize()} cannot be empty", 400)
        if key == "slug" and _slug_taken(value, exclude_id=perm.id):
            return error("Permission slug already taken", 409)
        setattr(perm, key, value)
    if "description" in data:
        perm.description = clean_str(data.get("description"), 2000)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error("Permission name or slug already taken", 409)
    return jsonify({"permission": perm.to_dict()})


@bp.delete("/permissions/<int:permission_id>")
@permission_required("permissions.delete")
def delete_permission(permission_id: int):
    perm = db.session.get(Permission, permission_id)
    if not perm:
        return error("Permission not found", 404)
    db.session.delete(perm)
    db.session.commit()
    return jsonify({"message": "Permission deleted successfully"})
