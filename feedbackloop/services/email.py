from typing import Optional, Dict, Any
from urllib.parse import urljoin, urlencode
import time

from flask import current_app, render_template
from flask_mail import Message

from feedbackloop.extensions import mail
from feedbackloop.observability import log_event


def absolute_url(path: str) -> str:
    base = current_app.config["APP_BASE_URL"].rstrip("/") + "/"
    path = path.lstrip("/")
    return urljoin(base, path)


def send_email(to_email: str, subject: str, template: str, context: Optional[Dict[str, Any]] = None) -> bool:
    """
    template: basename under templates/email/ without extension (e.g. 'reset_password').
    Renders both HTML and plaintext. Returns True when the SMTP hand-off succeeded.
    """
    context = context or {}
    msg = Message(recipients=[to_email], subject=subject)
    msg.body = render_template(f"email/{template}.txt", **context)
    msg.html = render_template(f"email/{template}.html", **context)

    start = time.perf_counter()
    try:
        mail.send(msg)
    except Exception as ex:
        # SMTP trouble must not change the endpoint's answer (no account enumeration)
        log_event(
            current_app, "mail_send", level="warning",
            template=template, outcome="smtp_error",
            latency_ms=int((time.perf_counter() - start) * 1000),
            smtp_error=str(ex),
        )
        return False

    log_event(
        current_app, "mail_send",
        template=template, outcome="sent",
        latency_ms=int((time.perf_counter() - start) * 1000),
    )
    return True


def send_password_reset_email(user, token: str) -> bool:
    ttl_minutes = int(current_app.config.get("PASSWORD_RESET_TTL_SECONDS", 3600)) // 60
    url = absolute_url("reset-password?" + urlencode({"token": token}))
    ctx = {
        "product_name": current_app.config.get("SITE_NAME", "Feedbackloop"),
        "action_url": url,
        "user_name": user.name or user.email,
        "token_ttl_minutes": ttl_minutes,
    }
    return send_email(
        to_email=user.email,
        subject="Reset your password",
        template="reset_password",
        context=ctx,
    )
