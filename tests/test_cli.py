from datetime import datetime, timedelta, timezone

from feedbackloop.cli import ADMINISTRATOR, SUPER_ADMIN, USER, VIEWER, purge_expired_feedback
from feedbackloop.models import Feedback, Permission, Resource, Role, User
from feedbackloop.services import permissions


def test_rbac_seed_is_idempotent(app):
    runner = app.test_cli_runner()
    first = runner.invoke(args=["rbac", "seed"])
    assert first.exit_code == 0, first.output
    assert "RBAC seeded: 24 permissions, 7 resources, 4 roles created" in first.output

    again = runner.invoke(args=["rbac", "seed"])
    assert "RBAC seeded: 0 permissions, 0 resources, 0 roles created" in again.output

    with app.app_context():
        assert Permission.query.count() == 24
        assert Resource.query.count() == 7
        roles = {r.name: r for r in Role.query.all()}
        assert all(r.is_system for r in roles.values())
        assert [p.slug for p in roles[SUPER_ADMIN].permissions] == ["*"]
        admin_slugs = {p.slug for p in roles[ADMINISTRATOR].permissions}
        assert "users.create" in admin_slugs
        assert not any(s.endswith(".delete") for s in admin_slugs)
        assert "*" not in admin_slugs
        assert {p.slug for p in roles[USER].permissions} == {
            "dashboard.view", "projects.read", "projects.create", "projects.update", "settings.manage",
        }
        viewer = {p.slug for p in roles[VIEWER].permissions}
        assert "dashboard.view" in viewer and "users.read" in viewer
        assert all(s == "dashboard.view" or s.endswith(".read") for s in viewer)


def test_create_admin(app):
    runner = app.test_cli_runner()
    r = runner.invoke(args=["users", "create-admin", "--email", "Root@Example.com", "--password", "secret123"])
    assert r.exit_code == 0, r.output
    assert "Admin created" in r.output

    with app.app_context():
        user = User.query.filter_by(email="root@example.com").one()
        assert user.check_password("secret123")
        assert permissions.check_permission(user.id, "roles.delete")

    dup = runner.invoke(args=["users", "create-admin", "--email", "root@example.com", "--password", "x"])
    assert dup.exit_code != 0
    assert "User already exists" in dup.output


def test_assign_role(app, make_user):
    make_user(email="ada@example.com")
    runner = app.test_cli_runner()
    runner.invoke(args=["rbac", "seed"])

    r = runner.invoke(args=["users", "assign-role", "--email", "ADA@example.com", "--role", VIEWER])
    assert r.exit_code == 0, r.output
    assert "Assigned role Viewer to ada@example.com" in r.output

    again = runner.invoke(args=["users", "assign-role", "--email", "ada@example.com", "--role", VIEWER])
    assert "already has role" in again.output

    missing_role = runner.invoke(args=["users", "assign-role", "--email", "ada@example.com", "--role", "Nope"])
    assert missing_role.exit_code != 0
    assert "Role not found" in missing_role.output

    missing_user = runner.invoke(args=["users", "assign-role", "--email", "who@example.com", "--role", VIEWER])
    assert "User not found" in missing_user.output


def test_feedback_purge_respects_retention(app, make_user, make_project, make_feedback):
    owner = make_user()
    short = make_project(owner, slug="short")
    long = make_project(owner, slug="long", settings={"remove_branding": False, "retention_days": 90})
    old = datetime.now(timezone.utc) - timedelta(days=40)
    make_feedback(short, created_at=old)
    make_feedback(short)
    make_feedback(long, created_at=old)

    r = app.test_cli_runner().invoke(args=["feedback", "purge"])
    assert r.exit_code == 0, r.output
    assert "Purged 1 feedback rows past retention" in r.output
    with app.app_context():
        assert Feedback.query.count() == 2
        assert purge_expired_feedback() == 0
