from typing import Optional

from flask import current_app

from feedbackloop.extensions import db
from feedbackloop.models import Feedback, Project
from feedbackloop.observability import log_event
from feedbackloop.services import webhooks


def _clean_answers(answers: Optional[dict]) -> dict:
    answers = answers or {}
    out = {}
    if answers.get("tags"):
        out["tags"] = list(dict.fromkeys(answers["tags"]))
    if answers.get("comment"):
        out["comment"] = answers["comment"]
    if answers.get("email"):
        out["email"] = answers["email"].strip().lower()
    return out


def _clean_meta(meta: Optional[dict]) -> dict:
    return {k: v for k, v in (meta or {}).items() if isinstance(v, str) and v}


def store_feedback(project: Project, rating: int, answers: Optional[dict] = None,
                   meta: Optional[dict] = None, channel: str = "widget") -> Feedback:
    """Insert one submission, then fan out webhooks. Input is already validated."""
    feedback = Feedback(
        project_id=project.id,
        rating=rating,
        answers=_clean_answers(answers),
        meta=_clean_meta(meta),
    )
    db.session.add(feedback)
    db.session.commit()

    # No comment or email in the log line
    log_event(
        current_app, "feedback_submitted",
        project_id=str(project.id), feedback_id=str(feedback.id),
        rating=rating, channel=channel, tag_count=len(feedback.tags),
    )
    webhooks.notify_feedback(project, feedback)
    return feedback
