"""
Outbound project webhooks.

Each delivery is a JSON POST signed with the webhook's secret::

    X-Feedbackloop-Event: feedback.created
    X-Timestamp: 1700000000
    X-Signature: sha256=<hex HMAC-SHA256(secret, "<timestamp>." + body)>

Deliveries run inline after the feedback row is committed. A failing receiver
is logged and skipped; it never turns a submission into an error.
"""
import hashlib
import hmac
import json
import time
from typing import Any, Dict

import requests
from flask import current_app

from feedbackloop.models import Webhook
from feedbackloop.models.webhook import EVENT_FEEDBACK_ALERT, EVENT_FEEDBACK_CREATED
from feedbackloop.observability import log_event

ALERT_MAX_RATING = 2


def sign(secret: str, timestamp: int, body: bytes) -> str:
    message = f"{timestamp}.".encode("utf-8") + body
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def subscribed(webhook: Webhook, event: str) -> bool:
    return bool(webhook.is_active) and event in (webhook.events or [])


def dispatch(project, event: str, payload: Dict[str, Any]) -> int:
    """POST ``payload`` to every active hook of ``project`` listening for ``event``. Returns deliveries that got a 2xx."""
    if not current_app.config.get("WEBHOOKS_ENABLED", True):
        return 0

    hooks = [w for w in project.webhooks if subscribed(w, event)]
    if not hooks:
        return 0

    body = json.dumps(
        {"event": event, "project_id": str(project.id), "data": payload},
        separators=(",", ":"),
        default=str,
    ).encode("utf-8")
    timeout = float(current_app.config.get("WEBHOOK_TIMEOUT_SECONDS", 5))

    delivered = 0
    for hook in hooks:
        ts = int(time.time())
        headers = {
            "Content-Type": "application/json",
            "X-Feedbackloop-Event": event,
            "X-Timestamp": str(ts),
        }
        if hook.secret_key:
            headers["X-Signature"] = sign(hook.secret_key, ts, body)

        start = time.perf_counter()
        try:
            response = requests.post(hook.url, data=body, headers=headers, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            log_event(
                current_app, "webhook_dispatch", level="warning",
                webhook_id=str(hook.id), project_id=str(project.id), event_name=event,
                outcome="failed", error=exc.__class__.__name__,
                latency_ms=int((time.perf_counter() - start) * 1000),
            )
            continue

        delivered += 1
        log_event(
            current_app, "webhook_dispatch",
            webhook_id=str(hook.id), project_id=str(project.id), event_name=event,
            outcome="delivered", status_code=response.status_code,
            latency_ms=int((time.perf_counter() - start) * 1000),
        )
    return delivered


def notify_feedback(project, feedback) -> int:
    """Fan out a stored submission: always ``feedback.created``, plus ``feedback.alert`` for low ratings."""
    data = feedback.to_dict()
    delivered = dispatch(project, EVENT_FEEDBACK_CREATED, data)
    if feedback.rating <= ALERT_MAX_RATING:
        delivered += dispatch(project, EVENT_FEEDBACK_ALERT, data)
    return delivered
