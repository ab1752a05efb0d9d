from datetime import datetime, timedelta, timezone

from feedbackloop.extensions import db, mail
from feedbackloop.models import User


def _register(client, **overrides):
    body = {"email": "Ada@Example.com", "password": "secret123", "name": "Ada", "username": "ada"}
    body.update(overrides)
    return client.post("/api/auth/register", json=body)


def test_csrf_token_endpoint(client):
    r = client.get("/api/auth/csrf-token")
    assert r.status_code == 200
    assert r.get_json()["csrf_token"]


def test_register_creates_user(app, client):
    r = _register(client)
    assert r.status_code == 201
    body = r.get_json()
    assert body["message"] == "User registered successfully"
    assert body["user"]["email"] == "ada@example.com"
    assert "password_hash" not in body["user"]
    with app.app_context():
        user = User.query.filter_by(email="ada@example.com").one()
        assert user.check_password("secret123")


def test_register_missing_fields(client):
    r = client.post("/api/auth/register", json={"email": "a@b.co"})
    assert r.status_code == 400
    assert r.get_json() == {"error": "Email and password are required"}


def test_register_validation_details(client):
    r = _register(client, email="bad", password="short", username="x")
    assert r.status_code == 400
    body = r.get_json()
    assert body["error"] == "Validation failed"
    assert "email: Invalid email" in body["details"]
    assert "password: must be at least 8 characters" in body["details"]
    assert any(d.startswith("username:") for d in body["details"])


def test_register_conflicts(client):
    assert _register(client).status_code == 201
    r = _register(client, email="ADA@example.com", username="other")
    assert r.status_code == 409
    assert r.get_json()["error"] == "Email already registered"
    r = _register(client, email="new@example.com", username="ADA")
    assert r.status_code == 409
    assert r.get_json()["error"] == "Username already taken"


def test_login_with_email_or_username_then_me(client, make_user, grant):
    user = make_user(email="ada@example.com", username="ada")
    grant(user, "projects.read")

    r = client.post("/api/auth/login", json={"email": "ADA@example.com", "password": "secret123"})
    assert r.status_code == 200
    assert r.get_json()["message"] == "Login successful"

    me = client.get("/api/auth/me")
    assert me.status_code == 200
    body = me.get_json()
    assert body["user"]["id"] == user.id
    assert body["permissions"] == ["projects.read"]
    assert len(body["user"]["roles"]) == 1

    client.post("/api/auth/logout")
    assert client.get("/api/auth/me").status_code == 401

    r = client.post("/api/auth/login", json={"username": "ada", "password": "secret123"})
    assert r.status_code == 200


def test_login_rejects_bad_credentials_and_inactive(client, make_user):
    make_user(email="ada@example.com")
    make_user(email="gone@example.com", is_active=False)
    r = client.post("/api/auth/login", json={"email": "ada@example.com", "password": "wrong-pass1"})
    assert r.status_code == 401
    assert r.get_json() == {"error": "Invalid credentials"}
    r = client.post("/api/auth/login", json={"email": "gone@example.com", "password": "secret123"})
    assert r.status_code == 401
    r = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "secret123"})
    assert r.status_code == 401


def test_login_rate_limited_per_account(client, make_user):
    make_user(email="ada@example.com")
    for _ in range(5):
        client.post("/api/auth/login", json={"email": "ada@example.com", "password": "wrong-pass1"})
    r = client.post("/api/auth/login", json={"email": "ada@example.com", "password": "secret123"})
    assert r.status_code == 429
    assert r.get_json()["error"] == "Too many requests"


def test_me_requires_login(client):
    r = client.get("/api/auth/me")
    assert r.status_code == 401
    assert r.get_json() == {"error": "Unauthorized"}


def test_forgot_password_same_answer_for_unknown_email(app, client, make_user):
    make_user(email="ada@example.com")
    with mail.record_messages() as outbox:
        known = client.post("/api/auth/forgot-password", json={"email": "ada@example.com"})
        unknown = client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.get_json() == unknown.get_json()
    assert len(outbox) == 1
    assert outbox[0].recipients == ["ada@example.com"]
    with app.app_context():
        user = User.query.filter_by(email="ada@example.com").one()
        assert user.reset_password_token
        assert user.reset_password_token in outbox[0].body


def test_forgot_password_requires_email(client):
    r = client.post("/api/auth/forgot-password", json={})
    assert r.status_code == 400


def _reset_token(app, client, email="ada@example.com"):
    client.post("/api/auth/forgot-password", json={"email": email})
    with app.app_context():
        return User.query.filter_by(email=email).one().reset_password_token


def test_reset_password_flow(app, client, make_user):
    make_user(email="ada@example.com")
    token = _reset_token(app, client)

    r = client.post("/api/auth/reset-password", json={"token": token, "password": "newpass456"})
    assert r.status_code == 200

    with app.app_context():
        user = User.query.filter_by(email="ada@example.com").one()
        assert user.check_password("newpass456")
        assert user.reset_password_token is None
        assert user.reset_password_expires is None

    # Single use
    r = client.post("/api/auth/reset-password", json={"token": token, "password": "another789"})
    assert r.status_code == 400

    r = client.post("/api/auth/login", json={"email": "ada@example.com", "password": "newpass456"})
    assert r.status_code == 200


def test_reset_password_rejects_reuse_of_old_password(app, client, make_user):
    make_user(email="ada@example.com")
    token = _reset_token(app, client)
    r = client.post("/api/auth/reset-password", json={"token": token, "password": "secret123"})
    assert r.status_code == 400
    assert r.get_json()["error"] == "New password must be different from the old password"


def test_reset_password_expired_token_is_cleared(app, client, make_user):
    make_user(email="ada@example.com")
    token = _reset_token(app, client)
    with app.app_context():
        user = User.query.filter_by(email="ada@example.com").one()
        user.reset_password_expires = datetime.now(timezone.utc) - timedelta(minutes=1)
        db.session.commit()

    r = client.post("/api/auth/reset-password", json={"token": token, "password": "newpass456"})
    assert r.status_code == 400
    with app.app_context():
        user = User.query.filter_by(email="ada@example.com").one()
        assert user.reset_password_token is None
        assert user.check_password("secret123")


def test_reset_password_input_errors(client):
    assert client.post("/api/auth/reset-password", json={"password": "newpass456"}).get_json() == {
        "error": "Invalid reset token"
    }
    assert client.post("/api/auth/reset-password", json={"token": "abc"}).get_json() == {
        "error": "New password is required"
    }
    r = client.post("/api/auth/reset-password", json={"token": "abc", "password": "weak"})
    assert r.get_json()["error"] == "Validation failed"
    r = client.post("/api/auth/reset-password", json={"token": "abc", "password": "newpass456"})
    assert r.status_code == 400


def test_login_rejects_non_string_password(client, make_user):
    make_user(email="ada@example.com")
    r = client.post("/api/auth/login", json={"email": "ada@example.com", "password": 12345678})
    assert r.status_code == 400
    assert r.get_json() == {"error": "Email and password are required"}
