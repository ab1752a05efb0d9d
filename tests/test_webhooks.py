import json

import pytest
import requests

from feedbackloop.extensions import db
from feedbackloop.models import Project, Webhook
from feedbackloop.services import webhooks


class FakeResponse:
    def __init__(self, status_code=200): self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


@pytest.fixture()
def outbox(app, monkeypatch):
    """Captured outbound POSTs; delivery switched on for the test."""
    sent = []
    state = {"status": 200, "raise": None}

    def fake_post(url, data=None, headers=None, timeout=None):
        if state["raise"]:
            raise state["raise"]
        sent.append({"url": url, "body": data, "headers": headers, "timeout": timeout})
        return FakeResponse(state["status"])

    monkeypatch.setattr(webhooks.requests, "post", fake_post)
    monkeypatch.setitem(app.config, "WEBHOOKS_ENABLED", True)
    return sent, state


def _hook(app, project, events, secret="shh", url="https://hooks.example.com/in", is_active=True):
    with app.app_context():
        hook = Webhook(project_id=project.id, url=url, events=events, secret_key=secret, is_active=is_active)
        db.session.add(hook)
        db.session.commit()
        return hook.id


def _submit(client, project, rating):
    return client.post("/api/v1/widget/feedback", json={"project_id": str(project.id), "rating": rating})


def test_sign_matches_hmac():
    import hashlib
    import hmac
    expected = hmac.new(b"key", b"1700000000.{}", hashlib.sha256).hexdigest()
    assert webhooks.sign("key", 1700000000, b"{}") == f"sha256={expected}"


def test_created_event_is_signed(app, client, make_user, make_project, outbox):
    sent, _ = outbox
    project = make_project(make_user())
    _hook(app, project, ["feedback.created"])

    assert _submit(client, project, 5).status_code == 201
    assert len(sent) == 1
    call = sent[0]
    assert call["url"] == "https://hooks.example.com/in"
    assert call["timeout"] == app.config["WEBHOOK_TIMEOUT_SECONDS"]
    headers = call["headers"]
    assert headers["X-Feedbackloop-Event"] == "feedback.created"
    assert headers["X-Signature"] == webhooks.sign("shh", int(headers["X-Timestamp"]), call["body"])

    payload = json.loads(call["body"])
    assert payload["event"] == "feedback.created"
    assert payload["project_id"] == str(project.id)
    assert payload["data"]["rating"] == 5


def test_low_rating_also_fires_alert(app, client, make_user, make_project, outbox):
    sent, _ = outbox
    project = make_project(make_user())
    _hook(app, project, ["feedback.created", "feedback.alert"])
    _hook(app, project, ["feedback.alert"], secret=None, url="https://pager.example.com")

    _submit(client, project, 2)
    events = sorted((c["url"], c["headers"]["X-Feedbackloop-Event"]) for c in sent)
    assert events == [
        ("https://hooks.example.com/in", "feedback.alert"),
        ("https://hooks.example.com/in", "feedback.created"),
        ("https://pager.example.com", "feedback.alert"),
    ]
    unsigned = [c for c in sent if c["url"] == "https://pager.example.com"][0]
    assert "X-Signature" not in unsigned["headers"]


def test_inactive_and_unsubscribed_hooks_are_skipped(app, client, make_user, make_project, outbox):
    sent, _ = outbox
    project = make_project(make_user())
    _hook(app, project, ["feedback.created"], is_active=False)
    _hook(app, project, ["feedback.alert"])
    _submit(client, project, 4)
    assert sent == []


def test_receiver_failure_does_not_fail_submission(app, client, make_user, make_project, outbox):
    sent, state = outbox
    project = make_project(make_user())
    _hook(app, project, ["feedback.created"])

    state["raise"] = requests.ConnectionError("refused")
    assert _submit(client, project, 5).status_code == 201

    state["raise"] = None
    state["status"] = 500
    assert _submit(client, project, 5).status_code == 201
    assert len(sent) == 1


def test_dispatch_counts_deliveries(app, make_user, make_project, outbox):
    _, state = outbox
    project = make_project(make_user())
    _hook(app, project, ["feedback.created"])
    _hook(app, project, ["feedback.created"], url="https://second.example.com")
    with app.app_context():
        p = db.session.get(Project, project.id)
        assert webhooks.dispatch(p, "feedback.created", {"x": 1}) == 2
        state["status"] = 410
        assert webhooks.dispatch(p, "feedback.created", {"x": 1}) == 0
        assert webhooks.dispatch(p, "feedback.alert", {"x": 1}) == 0


def test_disabled_delivery_sends_nothing(app, client, make_user, make_project, outbox):
    sent, _ = outbox
    app.config["WEBHOOKS_ENABLED"] = False
    project = make_project(make_user())
    _hook(app, project, ["feedback.created"])
    assert _submit(client, project, 5).status_code == 201
    assert sent == []
