from flask import current_app, jsonify
from flask_login import current_user

from feedbackloop.extensions import db
from feedbackloop.models import Project, Webhook
from feedbackloop.observability import log_event
from feedbackloop.services.policy import owned_project_or_404
from feedbackloop.utils.helpers import error, json_body, validation_failed
from feedbackloop.utils.validators import parse_uuid, validate_webhook_payload
from . import bp


@bp.get("/projects/<project_id>/webhooks")
def list_webhooks(project_id):
    project = owned_project_or_404(project_id)
    hooks = Webhook.query.filter_by(project_id=project.id).order_by(Webhook.created_at.asc()).all()
    return jsonify({"data": [h.to_dict() for h in hooks]})


@bp.post("/projects/<project_id>/webhooks")
def create_webhook(project_id):
    project = owned_project_or_404(project_id)
    data = json_body()
    details = validate_webhook_payload(data)
    if details:
        return validation_failed(details)

    hook = Webhook(
        project_id=project.id,
        url=data["url"].strip(),
        events=list(dict.fromkeys(data["events"])),
        is_active=bool(data.get("is_active", True)),
        secret_key=data.get("secret_key") or None,
    )
    db.session.add(hook)
    db.session.commit()
    log_event(current_app, "webhook_created", project_id=str(project.id), webhook_id=str(hook.id))
    return jsonify({"data": hook.to_dict()}), 201


@bp.delete("/webhooks/<webhook_id>")
def delete_webhook(webhook_id):
    wid = parse_uuid(webhook_id)
    hook = db.session.get(Webhook, wid) if wid else None
    if hook is None:
        return error("Webhook not found", 404)
    owner_id = db.session.query(Project.owner_id).filter(Project.id == hook.project_id).scalar()
    if owner_id != current_user.id:
        # Same answer as a missing row
        return error("Webhook not found", 404)
    db.session.delete(hook)
    db.session.commit()
    return jsonify({"success": True, "message": "Webhook deleted"})
