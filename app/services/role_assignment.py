"""
User <-> role and user <-> post associations with replace-all semantics.

A new assignment fully supersedes the previous one. The delete and the
inserts run in one transaction after the user's row is locked, so concurrent
assignments for the same user are serialized and never interleave, while
other users are not blocked.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import transaction
from app.core.exceptions import (
    ACCESS_DENIED_MESSAGE,
    InternalError,
    NotFoundError,
    PermissionDeniedError,
)
from app.core.permissions import ensure_permission
from app.models import Post, Role, User, UserPost, UserRole
from app.schemas.auth import Principal
from app.schemas.users import AssignableRole, UserOut, UserRolesResponse
from app.services.data_scope import check_user_access

logger = logging.getLogger(__name__)


def _distinct(ids: list[int]) -> list[int]:
    """Drop duplicate ids, keeping first-seen order."""
    return list(dict.fromkeys(ids))


def lock_user_row(db: Session, user_id: int) -> User:
    """
    SELECT ... FOR UPDATE on the live user row; held until the transaction ends.

    A user soft-deleted since the caller's scope check is reported as missing,
    so no write lands on a deleted account.
    """
    user = (
        db.query(User)
        .filter(User.id == user_id, User.is_deleted.is_(False))
        .with_for_update()
        .one_or_none()
    )
    if user is None:
        raise NotFoundError(f"User {user_id} does not exist")
    return user


def user_role_ids(db: Session, user_id: int) -> list[int]:
    rows = db.query(UserRole.role_id).filter(UserRole.user_id == user_id).order_by(UserRole.role_id)
    return [role_id for (role_id,) in rows]


def user_post_ids(db: Session, user_id: int) -> list[int]:
    rows = db.query(UserPost.post_id).filter(UserPost.user_id == user_id).order_by(UserPost.post_id)
    return [post_id for (post_id,) in rows]


def visible_role_ids(db: Session, principal: Principal, user_id: int) -> list[int]:
    """Role ids of user_id, with the superuser role hidden from non-superusers."""
    query = (
        db.query(UserRole.role_id)
        .join(Role, Role.id == UserRole.role_id)
        .filter(UserRole.user_id == user_id)
    )
    if not principal.is_superuser:
        query = query.filter(Role.is_admin.is_(False))
    return [role_id for (role_id,) in query.order_by(UserRole.role_id)]


def list_assignable_roles(db: Session, principal: Principal) -> list[Role]:
    """All roles, minus the superuser role unless the caller is the superuser."""
    query = db.query(Role).order_by(Role.id)
    if not principal.is_superuser:
        query = query.filter(Role.is_admin.is_(False))
    return query.all()


def resolve_role_ids(db: Session, principal: Principal, role_ids: list[int]) -> list[int]:
    """
    Validate a requested role set: every id must exist, and only the superuser
    may grant the superuser role. Returns the distinct ids.
    """
    wanted = _distinct(role_ids)
    if not wanted:
        return []
    roles = db.query(Role).filter(Role.id.in_(wanted)).all()
    found = {role.id for role in roles}
    missing = [role_id for role_id in wanted if role_id not in found]
    if missing:
        raise NotFoundError(f"Role does not exist: {', '.join(str(r) for r in missing)}")
    if not principal.is_superuser and any(role.is_admin for role in roles):
        raise PermissionDeniedError(ACCESS_DENIED_MESSAGE)
    return wanted


def replace_roles(db: Session, user_id: int, role_ids: list[int]) -> None:
    """Delete every user-role row for user_id and insert one per distinct id. Caller owns the transaction."""
    db.query(UserRole).filter(UserRole.user_id == user_id).delete(synchronize_session=False)
    db.add_all([UserRole(user_id=user_id, role_id=role_id) for role_id in _distinct(role_ids)])
    db.flush()


def replace_posts(db: Session, user_id: int, post_ids: list[int]) -> None:
    """Same replace-all discipline for posts; unknown post ids raise NotFoundError."""
    wanted = _distinct(post_ids)
    if wanted:
        found = {post_id for (post_id,) in db.query(Post.id).filter(Post.id.in_(wanted))}
        missing = [post_id for post_id in wanted if post_id not in found]
        if missing:
            raise NotFoundError(f"Post does not exist: {', '.join(str(p) for p in missing)}")
    db.query(UserPost).filter(UserPost.user_id == user_id).delete(synchronize_session=False)
    db.add_all([UserPost(user_id=user_id, post_id=post_id) for post_id in wanted])
    db.flush()


def assign_roles(
    db: Session,
    principal: Principal,
    user_id: int,
    role_ids: list[int],
) -> list[int]:
    """
    Replace the roles of user_id with role_ids and return the stored role ids.

    An empty role_ids leaves the user with no roles. On any failure the
    user's previous roles are left intact.
    """
    ensure_permission(principal, "assign_roles")
    check_user_access(db, principal, user_id)
    wanted = resolve_role_ids(db, principal, role_ids)

    try:
        with transaction(db):
            lock_user_row(db, user_id)
            replace_roles(db, user_id, wanted)
    except SQLAlchemyError as e:
        logger.exception(
            "Role assignment failed",
            extra={"principal_id": principal.id, "target_user_id": user_id},
        )
        raise InternalError("Failed to assign roles; no changes were saved") from e

    logger.info(
        "Roles assigned",
        extra={
            "principal_id": principal.id,
            "target_user_id": user_id,
            "role_count": len(wanted),
        },
    )
    return user_role_ids(db, user_id)


def get_user_roles(db: Session, principal: Principal, user_id: int) -> UserRolesResponse:
    """Authorization view: the user and every role the caller may assign, flagged when held."""
    ensure_permission(principal, "query")
    user = check_user_access(db, principal, user_id)
    held = set(user_role_ids(db, user_id))
    roles = [
        AssignableRole.model_validate(role).model_copy(update={"assigned": role.id in held})
        for role in list_assignable_roles(db, principal)
    ]
    return UserRolesResponse(user=UserOut.model_validate(user), roles=roles)
