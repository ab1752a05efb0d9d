import math

from flask import current_app, jsonify, request
from flask_login import current_user
from sqlalchemy import text, type_coerce
from sqlalchemy.dialects.postgresql import JSONB

from feedbackloop.extensions import db
from feedbackloop.models import Feedback, Project, STATUS_CHOICES
from feedbackloop.observability import log_event
from feedbackloop.services.policy import owned_project_or_404
from feedbackloop.utils.helpers import clamp, error, json_body, like_term, safe_int, validation_failed
from feedbackloop.utils.validators import parse_uuid, validate_bulk_status, validate_status
from . import bp

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def _tag_condition(tag: str):
    """answers.tags contains ``tag``: JSONB @> on PostgreSQL, json_each elsewhere (SQLite)."""
    if db.session.get_bind().dialect.name == "postgresql":
        return type_coerce(Feedback.answers, JSONB)["tags"].contains([tag])
    return text(
        "EXISTS (SELECT 1 FROM json_each(feedbacks.answers, '$.tags') AS t WHERE t.value = :tag)"
    ).bindparams(tag=tag)


def _filters(project_id, args) -> list:
    conds = [Feedback.project_id == project_id]

    min_rating = safe_int(args.get("min_rating"))
    if min_rating is not None:
        conds.append(Feedback.rating >= min_rating)
    max_rating = safe_int(args.get("max_rating"))
    if max_rating is not None:
        conds.append(Feedback.rating <= max_rating)

    # Unknown status values are ignored rather than rejected
    status = args.get("status")
    if status in STATUS_CHOICES:
        conds.append(Feedback.status == status)

    tag = (args.get("tag") or "").strip()
    if tag:
        conds.append(_tag_condition(tag))

    search = (args.get("search") or "").strip()
    if search:
        conds.append(Feedback.answers["comment"].as_string().ilike(like_term(search), escape="\\"))
    return conds


@bp.get("/projects/<project_id>/feedbacks")
def list_feedbacks(project_id):
    project = owned_project_or_404(project_id)

    page = max(1, safe_int(request.args.get("page"), 1))
    limit = clamp(safe_int(request.args.get("limit"), DEFAULT_PAGE_SIZE), 1, MAX_PAGE_SIZE)

    q = Feedback.query.filter(*_filters(project.id, request.args))
    total_items = q.count()
    total_pages = math.ceil(total_items / limit)
    rows = (
        q.order_by(Feedback.created_at.desc(), Feedback.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
        .all()
    )

    return jsonify({
        "data": [f.to_dict() for f in rows],
        "pagination": {
            "current_page": page,
            "total_pages": total_pages,
            "total_items": total_items,
            "items_per_page": limit,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    })


@bp.patch("/projects/<project_id>/feedbacks")
def bulk_update_feedbacks(project_id):
    project = owned_project_or_404(project_id)
    data = json_body()
    details = validate_bulk_status(data)
    if details:
        return validation_failed(details)

    ids = [parse_uuid(i) for i in data["feedback_ids"]]
    # Ids outside this project are silently skipped
    rows = Feedback.query.filter(Feedback.project_id == project.id, Feedback.id.in_(ids)).all()
    for row in rows:
        row.status = data["status"]
    db.session.commit()

    log_event(
        current_app, "feedback_bulk_status",
        project_id=str(project.id), status=data["status"], updated_count=len(rows),
    )
    return jsonify({
        "success": True,
        "updated_count": len(rows),
        "data": [r.to_dict() for r in rows],
    })


def _owned_feedback(feedback_id):
    """(feedback, None) or (None, error response). Missing -> 404, someone else's -> 403."""
    fid = parse_uuid(feedback_id)
    feedback = db.session.get(Feedback, fid) if fid else None
    if feedback is None:
        return None, error("Feedback not found", 404)
    owner_id = db.session.query(Project.owner_id).filter(Project.id == feedback.project_id).scalar()
    if owner_id != current_user.id:
        return None, error("Forbidden", 403)
    return feedback, None


@bp.patch("/feedbacks/<feedback_id>")
def update_feedback(feedback_id):
    feedback, denied = _owned_feedback(feedback_id)
    if denied:
        return denied
    data = json_body()
    details = validate_status(data.get("status"))
    if details:
        return validation_failed(details)

    feedback.status = data["status"]
    db.session.commit()
    return jsonify({"success": True, "data": feedback.to_dict()})


@bp.delete("/feedbacks/<feedback_id>")
def delete_feedback(feedback_id):
    feedback, denied = _owned_feedback(feedback_id)
    if denied:
        return denied
    db.session.delete(feedback)
    db.session.commit()
    return jsonify({"success": True, "message": "Feedback deleted"})
