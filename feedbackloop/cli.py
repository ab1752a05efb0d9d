from datetime import datetime, timedelta, timezone

import click
from flask.cli import with_appcontext
from sqlalchemy import func

from feedbackloop.extensions import db
from feedbackloop.models import Feedback, Permission, Project, Resource, Role, User, UserRole, WILDCARD

SUPER_ADMIN = "Super Admin"
ADMINISTRATOR = "Administrator"
USER = "User"
VIEWER = "Viewer"

CRUD = ("read", "create", "update", "delete")

DEFAULT_RESOURCES = [
    ("Dashboard", "dashboard", "Dashboard overview"),
    ("Users", "users", "User accounts"),
    ("Roles", "roles", "Role definitions"),
    ("Permissions", "permissions", "Permission catalog"),
    ("Resources", "resources", "Resource catalog"),
    ("Projects", "projects", "Feedback projects"),
    ("Settings", "settings", "Application settings"),
]


def default_permissions():
    """(name, slug, resource, action) for every permission `rbac seed` creates."""
    perms = [("View Dashboard", "dashboard.view", "dashboard", "view")]
    for resource in ("users", "roles", "permissions", "resources", "projects"):
        label = resource.capitalize()
        verbs = {"read": "View", "create": "Create", "update": "Update", "delete": "Delete"}
        perms.extend((f"{verbs[a]} {label}", f"{resource}.{a}", resource, a) for a in CRUD)
    perms.append(("Manage Settings", "settings.manage", "settings", "manage"))
    perms.append(("Manage Security", "settings.security", "settings", "security"))
    perms.append(("All Permissions", WILDCARD, WILDCARD, WILDCARD))
    return perms


SYSTEM_ROLES = {
    SUPER_ADMIN: (
        "Full system access with all permissions",
        lambda p: p.slug == WILDCARD,
    ),
    ADMINISTRATOR: (
        "Administrative access without delete rights",
        lambda p: p.action != "delete" and p.slug != WILDCARD,
    ),
    USER: (
        "Standard access to own projects and settings",
        lambda p: p.slug in {"dashboard.view", "projects.read", "projects.create", "projects.update", "settings.manage"},
    ),
    VIEWER: (
        "Read-only access to view content",
        lambda p: p.action == "read" or p.slug == "dashboard.view",
    ),
}


def seed_rbac() -> dict:
    """Idempotent: existing rows are kept, missing ones added; system roles get their permission sets."""
    created = {"permissions": 0, "resources": 0, "roles": 0}

    for name, slug, resource, action in default_permissions():
        if not db.session.query(Permission.id).filter_by(slug=slug).first():
            db.session.add(Permission(name=name, slug=slug, resource=resource, action=action))
            created["permissions"] += 1

    for name, identifier, description in DEFAULT_RESOURCES:
        if not db.session.query(Resource.id).filter_by(identifier=identifier).first():
            db.session.add(Resource(name=name, identifier=identifier, description=description))
            created["resources"] += 1
    db.session.flush()

    all_perms = Permission.query.all()
    for role_name, (description, pick) in SYSTEM_ROLES.items():
        role = Role.query.filter_by(name=role_name).one_or_none()
        if role is None:
            role = Role(name=role_name, description=description, is_system=True)
            db.session.add(role)
            created["roles"] += 1
        role.is_system = True
        role.permissions = [p for p in all_perms if pick(p)]

    db.session.commit()
    return created


def _user_by_email(email: str) -> User:
    user = db.session.query(User).filter(func.lower(User.email) == email.strip().lower()).one_or_none()
    if not user:
        raise click.ClickException(f"User not found: {email}")
    return user


def _grant(user: User, role: Role) -> bool:
    if db.session.query(UserRole.id).filter_by(user_id=user.id, role_id=role.id).first():
        return False
    db.session.add(UserRole(user_id=user.id, role_id=role.id))
    return True


def purge_expired_feedback(now=None) -> int:
    """Delete feedback older than each project's settings.retention_days. Returns rows removed."""
    now = now or datetime.now(timezone.utc)
    removed = 0
    for project in Project.query.all():
        cutoff = now - timedelta(days=project.retention_days)
        removed += (
            db.session.query(Feedback)
            .filter(Feedback.project_id == project.id, Feedback.created_at < cutoff)
            .delete(synchronize_session=False)
        )
    db.session.commit()
    return removed


@click.group()
def rbac():
    """Role-based access control."""


@rbac.command("seed")
@with_appcontext
def rbac_seed():
    created = seed_rbac()
    click.echo(
        "RBAC seeded: {permissions} permissions, {resources} resources, {roles} roles created".format(**created)
    )


@click.group()
def users():
    """User management."""


@users.command("create-admin")
@click.option("--email", required=True)
@click.option("--password", required=True)
@click.option("--name", default=None)
@with_appcontext
def users_create_admin(email, password, name):
    email = email.strip().lower()
    # fail fast if user exists
    if db.session.query(User).filter(func.lower(User.email) == email).count():
        raise click.ClickException("User already exists")

    role = Role.query.filter_by(name=SUPER_ADMIN).one_or_none()
    if role is None:
        seed_rbac()
        role = Role.query.filter_by(name=SUPER_ADMIN).one()

    user = User(email=email, name=name, is_active=True)
    user.set_password(password)
    db.session.add(user)
    db.session.flush()
    _grant(user, role)
    db.session.commit()

    click.echo(f"Admin created id={user.id} email={user.email} role={SUPER_ADMIN}")


@users.command("assign-role")
@click.option("--email", required=True)
@click.option("--role", "role_name", required=True)
@with_appcontext
def users_assign_role(email, role_name):
    user = _user_by_email(email)
    role = Role.query.filter_by(name=role_name).one_or_none()
    if role is None:
        raise click.ClickException(f"Role not found: {role_name}")
    if not _grant(user, role):
        click.echo(f"{user.email} already has role {role.name}")
        return
    db.session.commit()
    click.echo(f"Assigned role {role.name} to {user.email}")


@click.group()
def feedback():
    """Feedback maintenance."""


@feedback.command("purge")
@with_appcontext
def feedback_purge():
    removed = purge_expired_feedback()
    click.echo(f"Purged {removed} feedback rows past retention")


def register_cli(app):
    app.cli.add_command(rbac)
    app.cli.add_command(users)
    app.cli.add_command(feedback)
