"""SQLAlchemy ORM models."""

from app.models.associations import UserPost, UserRole
from app.models.base import Base
from app.models.department import Department
from app.models.post import Post
from app.models.role import Role, RoleDepartment, RolePermission
from app.models.user import User

__all__ = [
    "Base",
    "Department",
    "Post",
    "Role",
    "RoleDepartment",
    "RolePermission",
    "User",
    "UserPost",
    "UserRole",
]
