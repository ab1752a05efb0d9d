import os
# Ensure the app factory picks the Testing config & SQLite memory DB
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite:///:memory:")

import pytest
from feedbackloop import create_app
from feedbackloop.extensions import db, limiter
from feedbackloop.models import Feedback, Permission, Project, Role, User, UserRole
from feedbackloop.models.project import DEFAULT_SETTINGS


@pytest.fixture(scope="session")
def app():
    app = create_app()
    app.config.update(
        TESTING=True,
        SQLALCHEMY_DATABASE_URI="sqlite:///:memory:",
        MAIL_SUPPRESS_SEND=True,
        APP_BASE_URL="http://example.test",
        WTF_CSRF_ENABLED=False,
        WEBHOOKS_ENABLED=False,
        APP_ENV="testing",
    )
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


def _wipe():
    db.session.rollback()
    for tbl in reversed(db.metadata.sorted_tables):
        db.session.execute(tbl.delete())
    db.session.commit()


@pytest.fixture(autouse=True)
def _db_clean(app):
    # Clean BEFORE each test
    with app.app_context():
        _wipe()
        limiter.reset()
    yield
    # And AFTER each test (keeps state hermetic even if a test fails mid-transaction)
    with app.app_context():
        _wipe()


def _detach(obj):
    db.session.refresh(obj)
    db.session.expunge(obj)
    return obj


@pytest.fixture()
def make_user(app):
    def _make(email="owner@example.com", password="secret123", name="Owner", username=None, is_active=True):
        with app.app_context():
            user = User(email=email, name=name, username=username, is_active=is_active)
            user.set_password(password)
            db.session.add(user)
            db.session.commit()
            return _detach(user)
    return _make


@pytest.fixture()
def make_project(app):
    def _make(owner, slug="acme-app", name="Acme App", domain_whitelist=None, widget_config=None, settings=None):
        with app.app_context():
            project = Project(
                owner_id=owner.id,
                name=name,
                slug=slug,
                domain_whitelist=["acme.com"] if domain_whitelist is None else domain_whitelist,
                widget_config=widget_config or {},
                settings=settings or dict(DEFAULT_SETTINGS),
            )
            db.session.add(project)
            db.session.commit()
            return _detach(project)
    return _make


@pytest.fixture()
def make_feedback(app):
    def _make(project, rating=5, status="new", answers=None, meta=None, created_at=None):
        with app.app_context():
            fb = Feedback(
                project_id=project.id,
                rating=rating,
                status=status,
                answers=answers or {},
                meta=meta or {},
            )
            if created_at is not None:
                fb.created_at = created_at
            db.session.add(fb)
            db.session.commit()
            return _detach(fb)
    return _make


@pytest.fixture()
def grant(app):
    """Give ``user`` a fresh role holding exactly ``slugs`` (permissions are created on demand)."""
    def _grant(user, *slugs, role_name=None):
        with app.app_context():
            perms = []
            for slug in slugs:
                perm = Permission.query.filter_by(slug=slug).one_or_none()
                if perm is None:
                    resource, _, action = slug.partition(".")
                    perm = Permission(name=f"perm {slug}", slug=slug, resource=resource, action=action or slug)
                    db.session.add(perm)
                perms.append(perm)
            role = Role(name=role_name or f"role-{user.id}-{len(slugs)}-{'-'.join(slugs)}")
            role.permissions = perms
            db.session.add(role)
            db.session.flush()
            db.session.add(UserRole(user_id=user.id, role_id=role.id))
            db.session.commit()
            return role.id
    return _grant


def _login(client, user):
    with client.session_transaction() as sess:
        sess["_user_id"] = str(user.id)
        sess["_fresh"] = True


@pytest.fixture()
def login():
    return _login


@pytest.fixture()
def auth_client(client, make_user):
    """Client logged in as a fresh owner account; the user is available as ``auth_client.user``."""
    user = make_user()
    _login(client, user)
    client.user = user
    return client
