"""ORM models for roles, their permissions and their custom data-scope departments."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String

from app.models.base import Base

# Data-scope policies a role can grant.
DATA_SCOPE_ALL = "all"
DATA_SCOPE_CUSTOM = "custom"
DATA_SCOPE_DEPT = "dept"
DATA_SCOPE_DEPT_AND_CHILD = "dept_and_child"
DATA_SCOPE_SELF = "self"

ROLE_STATUS_ACTIVE = "active"
ROLE_STATUS_DISABLED = "disabled"


class Role(Base):
    """
    Role with a data-scope policy.

    is_admin marks the superuser role; it is hidden from and never assignable
    by non-superuser principals.
    """

    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), nullable=False)
    role_key = Column(String(64), nullable=False, unique=True)
    data_scope = Column(String(16), nullable=False, default=DATA_SCOPE_ALL)
    is_admin = Column(Boolean, nullable=False, default=False)
    status = Column(String(16), nullable=False, default=ROLE_STATUS_ACTIVE)


class RolePermission(Base):
    """Permission string (e.g. 'system:user:edit') held by a role."""

    __tablename__ = "role_permissions"

    role_id = Column(Integer, ForeignKey("roles.id"), primary_key=True)
    permission = Column(String(128), primary_key=True)


class RoleDepartment(Base):
    """Department granted to a role whose data_scope is 'custom'."""

    __tablename__ = "role_departments"

    role_id = Column(Integer, ForeignKey("roles.id"), primary_key=True)
    dept_id = Column(Integer, ForeignKey("departments.id"), primary_key=True)
