"""
Shared feedback page for the public link and QR code.

Branching happens server side: ``GET /s/<slug>?rating=4`` renders the logic
step that claims rating 4, so the page works without JavaScript.
"""
from flask import abort, redirect, render_template, request, url_for

from feedbackloop.extensions import db, limiter
from feedbackloop.models import Project
from feedbackloop.services.ingest import store_feedback
from feedbackloop.services.widget import resolve_widget_config, select_logic_step
from feedbackloop.utils.helpers import safe_int
from feedbackloop.utils.validators import clean_str, validate_feedback_submission
from . import bp

RATINGS = (1, 2, 3, 4, 5)


def _project_by_slug(slug: str) -> Project:
    project = db.session.execute(db.select(Project).where(Project.slug == slug)).scalar_one_or_none()
    if project is None:
        abort(404)
    return project


def _render(project, rating=None, errors=None, form=None, status=200):
    config = resolve_widget_config(project)
    step = select_logic_step(config["logic"], rating) if rating in RATINGS else None
    return render_template(
        "public/feedback.html",
        project=project,
        config=config,
        ratings=RATINGS,
        rating=rating,
        step=step,
        errors=errors or [],
        form=form or {},
        selected_tags=form.getlist("tags") if form is not None else [],
    ), status


@bp.get("/s/<slug>")
def feedback_page(slug):
    project = _project_by_slug(slug)
    return _render(project, rating=safe_int(request.args.get("rating")))


@bp.post("/s/<slug>")
@limiter.limit("30 per minute")
def submit_feedback_page(slug):
    project = _project_by_slug(slug)
    rating = safe_int(request.form.get("rating"))

    answers = {}
    tags = [t for t in request.form.getlist("tags") if t]
    if tags:
        answers["tags"] = tags
    comment = (request.form.get("comment") or "").strip()
    if comment:
        answers["comment"] = comment[:5000]
    email = clean_str(request.form.get("email"))
    if email:
        answers["email"] = email

    payload = {
        "project_id": str(project.id),
        "rating": rating,
        "answers": answers,
        "meta": {"url": request.url, "user_agent": request.headers.get("User-Agent", "")},
    }
    errors = validate_feedback_submission(payload)
    if errors:
        return _render(project, rating=rating, errors=errors, form=request.form, status=400)

    # The page is served from our own origin, so the embed whitelist does not apply here
    store_feedback(project, rating, answers, payload["meta"], channel="public_page")

    step = select_logic_step(resolve_widget_config(project)["logic"], rating)
    if step.get("cta_redirect"):
        return redirect(step["cta_redirect"])
    return redirect(url_for("public.thanks", slug=project.slug))


@bp.get("/s/<slug>/thanks")
def thanks(slug):
    project = _project_by_slug(slug)
    return render_template("public/thanks.html", project=project, config=resolve_widget_config(project))
