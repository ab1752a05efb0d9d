from flask import current_app, jsonify, request

from feedbackloop.extensions import db, limiter
from feedbackloop.models import Project
from feedbackloop.observability import log_event
from feedbackloop.services.ingest import store_feedback
from feedbackloop.services.widget import is_origin_allowed, resolve_widget_config
from feedbackloop.utils.helpers import error, json_body, validation_failed
from feedbackloop.utils.validators import as_rating, parse_uuid, validate_feedback_submission
from . import bp

CONFIG_CACHE_CONTROL = "public, s-maxage=300, stale-while-revalidate=600"


def _request_origin():
    return request.headers.get("Origin") or request.headers.get("Referer")


def _origin_rejected(project: Project) -> bool:
    origin = _request_origin()
    if is_origin_allowed(project.domain_whitelist, origin):
        return False
    log_event(current_app, "widget_origin_rejected", level="warning", project_id=str(project.id))
    return True


@bp.get("/config")
@limiter.limit("120 per minute")
def widget_config():
    raw = request.args.get("project_id")
    if not raw:
        return error("Missing project_id parameter", 400)
    project_id = parse_uuid(raw)
    if project_id is None:
        return error("Invalid project_id parameter", 400)

    project = db.session.get(Project, project_id)
    if project is None:
        return error("Project not found", 404)
    if _origin_rejected(project):
        return error("Domain not whitelisted", 403)

    resp = jsonify(resolve_widget_config(project))
    resp.headers["Cache-Control"] = CONFIG_CACHE_CONTROL
    return resp


@bp.post("/feedback")
@limiter.limit("30 per minute")
def submit_feedback():
    data = json_body()
    details = validate_feedback_submission(data)
    if details:
        return validation_failed(details)

    project = db.session.get(Project, parse_uuid(data["project_id"]))
    if project is None:
        return error("Project not found", 404)
    if _origin_rejected(project):
        return error("Domain not whitelisted", 403)

    store_feedback(project, as_rating(data["rating"]), data.get("answers"), data.get("meta"), channel="widget")
    return jsonify({"success": True, "message": "Feedback received"}), 201
