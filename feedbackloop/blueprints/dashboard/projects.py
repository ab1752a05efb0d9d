from urllib.parse import urlencode

from flask import current_app, jsonify, request
from flask_login import current_user
from sqlalchemy.exc import IntegrityError

from feedbackloop.extensions import db, limiter
from feedbackloop.models import Project
from feedbackloop.models.project import DEFAULT_SETTINGS, generate_api_key
from feedbackloop.observability import log_event
from feedbackloop.services import analytics
from feedbackloop.services.policy import owned_project_or_404
from feedbackloop.services.projects import delete_project
from feedbackloop.services.widget import logic_warnings
from feedbackloop.utils.helpers import error, json_body, validation_failed
from feedbackloop.utils.validators import normalize_whitelist, validate_project_payload
from . import bp


def _warnings_for(widget_config) -> list:
    return logic_warnings((widget_config or {}).get("logic"))


@bp.get("/projects")
def list_projects():
    rows = (
        Project.query.filter_by(owner_id=current_user.id)
        .order_by(Project.created_at.desc(), Project.name.asc())
        .all()
    )
    overview = analytics.project_overview([p.id for p in rows])
    data = []
    for p in rows:
        stats = overview.get(p.id, {"feedback_count": 0, "avg_rating": None})
        data.append({
            "id": str(p.id),
            "name": p.name,
            "slug": p.slug,
            "tier": p.tier,
            "widget_config": p.widget_config or {},
            "created_at": p.created_at.isoformat() if p.created_at else None,
            "updated_at": p.updated_at.isoformat() if p.updated_at else None,
            **stats,
        })
    return jsonify({"data": data})


@bp.post("/projects")
@limiter.limit("30 per minute")
def create_project():
    data = json_body()
    details = validate_project_payload(data)
    if details:
        return validation_failed(details)

    slug = data["slug"]
    if db.session.query(Project.id).filter_by(slug=slug).first():
        return error("Slug already exists", 409)

    widget_config = data.get("widget_config") or {}
    project = Project(
        owner_id=current_user.id,
        name=data["name"].strip(),
        slug=slug,
        domain_whitelist=normalize_whitelist(data["domain_whitelist"])[0],
        api_key=generate_api_key(),
        widget_config=widget_config,
        tier="basic",
        settings=dict(DEFAULT_SETTINGS),
    )
    db.session.add(project)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error("Slug already exists", 409)

    log_event(current_app, "project_created", project_id=str(project.id), owner_id=current_user.id)
    return jsonify({"data": project.to_dict(), "warnings": _warnings_for(widget_config)}), 201


@bp.get("/projects/<project_id>")
def get_project(project_id):
    project = owned_project_or_404(project_id)
    return jsonify({"data": project.to_dict()})


@bp.patch("/projects/<project_id>")
def update_project(project_id):
    project = owned_project_or_404(project_id)
    data = json_body()
    details = validate_project_payload(data, partial=True)
    if details:
        return validation_failed(details)

    if "name" in data:
        project.name = data["name"].strip()
    if "domain_whitelist" in data:
        project.domain_whitelist = normalize_whitelist(data["domain_whitelist"])[0]
    if "widget_config" in data and data["widget_config"] is not None:
        project.widget_config = data["widget_config"]
    if "settings" in data:
        # Partial settings merge over what is stored
        project.settings = {**DEFAULT_SETTINGS, **(project.settings or {}), **data["settings"]}

    db.session.commit()
    return jsonify({"data": project.to_dict(), "warnings": _warnings_for(project.widget_config)})


@bp.delete("/projects/<project_id>")
def remove_project(project_id):
    project = owned_project_or_404(project_id)
    pid = str(project.id)
    delete_project(project)
    db.session.commit()
    log_event(current_app, "project_deleted", project_id=pid, owner_id=current_user.id)
    return jsonify({"success": True, "message": "Project deleted"})


@bp.get("/projects/<project_id>/stats")
def project_stats(project_id):
    project = owned_project_or_404(project_id)
    return jsonify(analytics.project_stats(project.id, request.args.get("range")))


@bp.get("/projects/<project_id>/install")
def install_assets(project_id):
    project = owned_project_or_404(project_id)
    cfg = current_app.config
    base = cfg["APP_BASE_URL"].rstrip("/")
    script_url = cfg.get("WIDGET_SCRIPT_URL") or f"{base}/widget.js"
    public_link = f"{base}/s/{project.slug}"
    qr_code_url = cfg["QR_CODE_ENDPOINT"] + "?" + urlencode({"size": "300x300", "data": public_link})
    return jsonify({
        "data": {
            "script_snippet": f'<script src="{script_url}" data-project-id="{project.id}"></script>',
            "public_link": public_link,
            "qr_code_url": qr_code_url,
            "project_id": str(project.id),
            "project_name": project.name,
        }
    })
