from .user import User
from .role import Role, RolePermission, UserRole
from .permission import Permission, WILDCARD
from .resource import Resource
from .project import Project
from .feedback import Feedback, STATUS_CHOICES
from .webhook import Webhook

__all__ = [
    "User",
    "Role",
    "RolePermission",
    "UserRole",
    "Permission",
    "WILDCARD",
    "Resource",
    "Project",
    "Feedback",
    "STATUS_CHOICES",
    "Webhook",
]
