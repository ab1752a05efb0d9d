from functools import wraps
from uuid import UUID

from flask import abort, jsonify, g
from flask_login import current_user

from feedbackloop.extensions import db
from feedbackloop.models import Project
from feedbackloop.services import permissions

_ERRORS = {401: "Unauthorized", 403: "Forbidden", 404: "Not found"}


def deny_json(code: int, **extra):
    payload = {"error": _ERRORS[code]}
    payload.update(extra)
    return jsonify(payload), code


def login_required_json(fn):
    @wraps(fn)
    def _wrap(*args, **kwargs):
        if not current_user.is_authenticated:
            return deny_json(401)
        return fn(*args, **kwargs)
    return _wrap


def permission_required(*slugs):
    """Every slug must be held (or the wildcard). Resolved permissions are cached on ``g`` per request."""
    def deco(fn):
        @wraps(fn)
        def _wrap(*args, **kwargs):
            if not current_user.is_authenticated:
                return deny_json(401)
            held = getattr(g, "_permissions", None)
            if held is None:
                held = g._permissions = permissions.get_user_permissions(current_user.id)
            for slug in slugs:
                if not permissions.grants(held, slug):
                    return deny_json(403, missing=slug)
            return fn(*args, **kwargs)
        return _wrap
    return deco


def owned_project_or_404(project_id) -> Project:
    """Tenant scoping: a project exists for the caller only if they own it (anti-enumeration)."""
    if not isinstance(project_id, UUID):
        try:
            project_id = UUID(str(project_id))
        except ValueError:
            abort(404, description="Project not found")
    project = db.session.query(Project).filter_by(id=project_id, owner_id=current_user.id).one_or_none()
    if project is None:
        abort(404, description="Project not found")
    return project
