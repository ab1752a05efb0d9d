"""
RBAC evaluation.

Permissions reach a user through UserRole -> RolePermission -> Permission.
Holding the wildcard slug ``*`` grants every permission.
"""
from typing import Iterable, List

from feedbackloop.extensions import db
from feedbackloop.models import Permission, Role, RolePermission, UserRole, WILDCARD


def get_user_permissions(user_id: int) -> List[str]:
    rows = (
        db.session.query(Permission.slug)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .join(UserRole, UserRole.role_id == RolePermission.role_id)
        .filter(UserRole.user_id == user_id)
        .distinct()
        .all()
    )
    return sorted(r[0] for r in rows)


def get_user_roles(user_id: int) -> List[Role]:
    return (
        Role.query.join(UserRole, UserRole.role_id == Role.id)
        .filter(UserRole.user_id == user_id)
        .order_by(Role.name.asc())
        .all()
    )


def grants(held: Iterable[str], slug: str) -> bool:
    held = set(held)
    return WILDCARD in held or slug in held


def check_permission(user_id: int, slug: str) -> bool:
    return grants(get_user_permissions(user_id), slug)


def check_any_permission(user_id: int, slugs: Iterable[str]) -> bool:
    held = set(get_user_permissions(user_id))
    if WILDCARD in held:
        return True
    return any(s in held for s in slugs)


def check_all_permissions(user_id: int, slugs: Iterable[str]) -> bool:
    held = set(get_user_permissions(user_id))
    if WILDCARD in held:
        return True
    return all(s in held for s in slugs)
