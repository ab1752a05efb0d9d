from types import SimpleNamespace

from feedbackloop.extensions import mail
from feedbackloop.services import tokens
from feedbackloop.services.email import absolute_url, send_password_reset_email


def test_email_templates_render_include_action_url(app):
    with app.app_context():
        ctx = dict(
            action_url="http://example.test/reset-password?token=xyz",
            user_name="Ada",
            product_name="Feedbackloop",
            token_ttl_minutes=60,
        )
        html = app.jinja_env.get_template("email/reset_password.html").render(**ctx)
        txt = app.jinja_env.get_template("email/reset_password.txt").render(**ctx)
        assert "http://example.test/reset-password?token=xyz" in html
        assert "http://example.test/reset-password?token=xyz" in txt
        assert "Ada" in txt


def test_absolute_url_joins_base(app):
    with app.test_request_context("/"):
        assert absolute_url("/reset-password?token=a") == "http://example.test/reset-password?token=a"


def test_send_password_reset_email_records_message(app):
    user = SimpleNamespace(email="ada@example.com", name=None)
    with app.test_request_context("/"):
        with mail.record_messages() as outbox:
            assert send_password_reset_email(user, "tok123") is True
        assert len(outbox) == 1
        msg = outbox[0]
        assert msg.recipients == ["ada@example.com"]
        assert msg.subject == "Reset your password"
        assert "http://example.test/reset-password?token=tok123" in msg.body
        # Falls back to the email when the user has no name
        assert "ada@example.com" in msg.body


def test_token_round_trip_and_kind(app):
    with app.app_context():
        t = tokens.generate("reset", "user@example.com")
        assert tokens.verify("reset", t, max_age_seconds=60) == "user@example.com"
        # A token minted for one purpose is useless for another
        assert tokens.verify("verify", t, max_age_seconds=60) is None
        assert tokens.verify("reset", t + "x", max_age_seconds=60) is None


def test_token_ttl_expiry(app):
    with app.app_context():
        t = tokens.generate("reset", "user@example.com")
        # Negative max_age: already past its lifetime
        assert tokens.verify("reset", t, max_age_seconds=-1) is None
