"""Build the explicit acting-principal value from a user's active roles."""

from sqlalchemy.orm import Session

from app.core.permissions import ALL_PERMISSION
from app.models import Role, RolePermission, User, UserRole
from app.models.role import ROLE_STATUS_ACTIVE
from app.models.user import USER_STATUS_ACTIVE
from app.schemas.auth import Principal, ScopeGrant
from app.services.data_scope import is_superuser_id


def build_principal(db: Session, user: User) -> Principal:
    """
    Principal for user: one scope grant per active role plus the union of
    those roles' permissions. The superuser also holds the wildcard permission.
    """
    roles = (
        db.query(Role)
        .join(UserRole, UserRole.role_id == Role.id)
        .filter(UserRole.user_id == user.id, Role.status == ROLE_STATUS_ACTIVE)
        .order_by(Role.id)
        .all()
    )
    permissions: set[str] = set()
    if roles:
        rows = (
            db.query(RolePermission.permission)
            .filter(RolePermission.role_id.in_([r.id for r in roles]))
            .all()
        )
        permissions.update(p for (p,) in rows)

    superuser = is_superuser_id(user.id)
    if superuser:
        permissions.add(ALL_PERMISSION)

    return Principal(
        id=user.id,
        username=user.username,
        dept_id=user.dept_id,
        is_superuser=superuser,
        scopes=tuple(ScopeGrant(role_id=r.id, data_scope=r.data_scope) for r in roles),
        permissions=frozenset(permissions),
    )


def load_principal(db: Session, user_id: int) -> Principal | None:
    """Principal for a live, active user id, or None if it cannot act."""
    user = (
        db.query(User)
        .filter(
            User.id == user_id,
            User.is_deleted.is_(False),
            User.status == USER_STATUS_ACTIVE,
        )
        .one_or_none()
    )
    if user is None:
        return None
    return build_principal(db, user)
