"""
User record manager: list, read, create, update, delete, reset password, change status.

Every operation takes the acting principal explicitly, checks its permission
first, then runs the data-scope guard before touching a target user. Writes
run inside one transaction; unique-index races surface as ConflictError and
other persistence failures as InternalError, both after a full rollback.
"""

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import transaction
from app.core.exceptions import InternalError, OperationRejectedError
from app.core.permissions import ensure_permission
from app.core.security import hash_password
from app.models import Post, User, UserPost, UserRole
from app.models.user import USER_STATUS_ACTIVE
from app.schemas.auth import Principal
from app.schemas.users import (
    PostOut,
    RoleOut,
    UserCreate,
    UserDetailResponse,
    UserFilter,
    UserOption,
    UserOut,
    UserUpdate,
)
from app.services.data_scope import (
    check_dept_data_scope,
    check_user_access,
    check_user_allowed,
    check_user_data_scope,
    department_subtree_ids,
    visible_users_query,
)
from app.services.role_assignment import (
    list_assignable_roles,
    lock_user_row,
    replace_posts,
    replace_roles,
    resolve_role_ids,
    user_post_ids,
    visible_role_ids,
)
from app.services.uniqueness import IDENTITY_FIELDS, conflict_from_integrity_error, ensure_unique

logger = logging.getLogger(__name__)

# Non-nullable columns; an explicit null in an update leaves them unchanged.
REQUIRED_PROFILE_FIELDS = ("username", "nickname", "status")


def _identity_values(payload: UserCreate) -> dict[str, str | None]:
    return {"username": payload.username, "phone": payload.phone, "email": payload.email}


def _write_failed(
    exc: SQLAlchemyError,
    values: dict[str, str | None],
    action: str,
) -> Exception:
    """Translate a failed write into ConflictError (unique index) or InternalError."""
    if isinstance(exc, IntegrityError):
        conflict = conflict_from_integrity_error(exc, values, action)
        if conflict is not None:
            return conflict
    logger.error(
        "User write failed",
        extra={"action": action, "username": values.get("username"), "reason": str(exc)[:500]},
    )
    return InternalError(f"Failed to {action} user '{values.get('username')}'")


def list_users(db: Session, principal: Principal, filters: UserFilter | None = None) -> list[User]:
    """Users visible to the principal, narrowed by filters (substring match on username/phone)."""
    ensure_permission(principal, "list")
    filters = filters or UserFilter()
    query = visible_users_query(db, principal)
    if filters.username:
        query = query.filter(User.username.contains(filters.username, autoescape=True))
    if filters.phone:
        query = query.filter(User.phone.contains(filters.phone, autoescape=True))
    if filters.status:
        query = query.filter(User.status == filters.status)
    if filters.dept_id is not None:
        query = query.filter(User.dept_id.in_(department_subtree_ids(filters.dept_id)))
    return query.order_by(User.id).all()


def list_user_options(db: Session, principal: Principal) -> list[UserOption]:
    """Id/username/nickname of every active user the principal can see, for select boxes."""
    ensure_permission(principal, "list")
    users = (
        visible_users_query(db, principal)
        .filter(User.status == USER_STATUS_ACTIVE)
        .order_by(User.id)
        .all()
    )
    return [UserOption.model_validate(u) for u in users]


def get_user(
    db: Session,
    principal: Principal,
    user_id: int | None,
    *,
    include_associations: bool = False,
) -> UserDetailResponse:
    """
    Detail of one user with its role and post ids.

    include_associations adds the roles the caller may assign and all posts,
    which is what an edit form needs. user_id=None returns only those lists
    (blank new-user form).
    """
    ensure_permission(principal, "query")
    detail = UserDetailResponse()
    if user_id is not None:
        user = check_user_access(db, principal, user_id)
        detail.user = UserOut.model_validate(user)
        detail.role_ids = visible_role_ids(db, principal, user_id)
        detail.post_ids = user_post_ids(db, user_id)
    if include_associations:
        detail.roles = [RoleOut.model_validate(r) for r in list_assignable_roles(db, principal)]
        detail.posts = [
            PostOut.model_validate(p)
            for p in db.query(Post).order_by(Post.order_num, Post.id).all()
        ]
    return detail


def create_user(db: Session, principal: Principal, payload: UserCreate) -> User:
    """
    Create a user with its initial roles and posts.

    The plaintext password is hashed here and never stored or logged.
    """
    ensure_permission(principal, "add")
    values = _identity_values(payload)
    check_dept_data_scope(db, principal, payload.dept_id)
    ensure_unique(db, **values, user_id=None, action="add")
    role_ids = resolve_role_ids(db, principal, payload.role_ids)

    user = User(
        username=payload.username,
        nickname=payload.nickname,
        phone=payload.phone,
        email=payload.email,
        password_hash=hash_password(payload.password),
        status=payload.status,
        dept_id=payload.dept_id,
        created_by=principal.username,
        updated_by="",
        is_deleted=False,
    )
    try:
        with transaction(db):
            db.add(user)
            db.flush()
            replace_roles(db, user.id, role_ids)
            replace_posts(db, user.id, payload.post_ids)
    except SQLAlchemyError as e:
        raise _write_failed(e, values, "add") from e

    logger.info(
        "User created",
        extra={"user_id": user.id, "username": user.username, "created_by": principal.username},
    )
    return user


def update_user(db: Session, principal: Principal, user_id: int, payload: UserUpdate) -> int:
    """
    Update the profile fields present in payload; fields left out keep their
    stored values. Roles are untouched and posts are replaced only when
    post_ids is given. Returns rows affected.

    phone, email and dept_id may be cleared with an explicit null; clearing
    dept_id needs whole-system scope.
    """
    ensure_permission(principal, "edit")
    user = check_user_access(db, principal, user_id)
    changes = payload.model_dump(exclude_unset=True, exclude={"post_ids"})
    for field in REQUIRED_PROFILE_FIELDS:
        if changes.get(field, "") is None:
            del changes[field]
    if "dept_id" in changes:
        check_dept_data_scope(db, principal, changes["dept_id"])

    values = {field: changes.get(field, getattr(user, field)) for field in IDENTITY_FIELDS}
    ensure_unique(db, **values, user_id=user_id, action="update")

    try:
        with transaction(db):
            user = lock_user_row(db, user_id)
            for field, value in changes.items():
                setattr(user, field, value)
            user.updated_by = principal.username
            if payload.post_ids is not None:
                replace_posts(db, user_id, payload.post_ids)
            db.flush()
    except SQLAlchemyError as e:
        raise _write_failed(e, values, "update") from e

    logger.info(
        "User updated",
        extra={"user_id": user_id, "fields": sorted(changes), "updated_by": principal.username},
    )
    return 1


def delete_users(db: Session, principal: Principal, user_ids: list[int]) -> int:
    """
    Soft-delete user_ids and drop their role/post rows; returns how many were removed.

    Deleting one's own account is always rejected. Unknown or already deleted
    ids are ignored, so repeating a delete is harmless. The target rows are
    locked before their join rows go, so a concurrent role or post assignment
    for the same user either finishes first or sees the user as deleted.
    """
    ensure_permission(principal, "remove")
    ids = list(dict.fromkeys(user_ids))
    if principal.id in ids:
        raise OperationRejectedError("The current user cannot be deleted")
    for user_id in ids:
        check_user_allowed(principal, user_id)

    try:
        with transaction(db):
            locked = (
                db.query(User.id)
                .filter(User.id.in_(ids), User.is_deleted.is_(False))
                .order_by(User.id)
                .with_for_update()
                .all()
            )
            target_ids = [user_id for (user_id,) in locked]
            for user_id in target_ids:
                check_user_data_scope(db, principal, user_id)
            if not target_ids:
                return 0
            db.query(UserRole).filter(UserRole.user_id.in_(target_ids)).delete(
                synchronize_session=False
            )
            db.query(UserPost).filter(UserPost.user_id.in_(target_ids)).delete(
                synchronize_session=False
            )
            removed = (
                db.query(User)
                .filter(User.id.in_(target_ids))
                .update(
                    {User.is_deleted: True, User.updated_by: principal.username},
                    synchronize_session=False,
                )
            )
    except SQLAlchemyError as e:
        logger.exception("User delete failed", extra={"user_ids": ids})
        raise InternalError("Failed to delete users; no changes were saved") from e

    logger.info(
        "Users deleted",
        extra={"user_ids": target_ids, "removed": removed, "deleted_by": principal.username},
    )
    return removed


def reset_password(db: Session, principal: Principal, user_id: int, password: str) -> int:
    """Store a fresh hash of password for user_id; no other field changes."""
    ensure_permission(principal, "reset_password")
    check_user_access(db, principal, user_id)
    password_hash = hash_password(password)
    try:
        with transaction(db):
            user = lock_user_row(db, user_id)
            user.password_hash = password_hash
            user.updated_by = principal.username
    except SQLAlchemyError as e:
        logger.exception("Password reset failed", extra={"user_id": user_id})
        raise InternalError("Failed to reset password") from e

    logger.info("Password reset", extra={"user_id": user_id, "updated_by": principal.username})
    return 1


def change_status(db: Session, principal: Principal, user_id: int, status: str) -> int:
    """Set status ('active' or 'disabled') for user_id; only status and updated_by change."""
    ensure_permission(principal, "change_status")
    check_user_access(db, principal, user_id)
    try:
        with transaction(db):
            user = lock_user_row(db, user_id)
            user.status = status
            user.updated_by = principal.username
    except SQLAlchemyError as e:
        logger.exception("Status change failed", extra={"user_id": user_id})
        raise InternalError("Failed to change user status") from e

    logger.info(
        "User status changed",
        extra={"user_id": user_id, "status": status, "updated_by": principal.username},
    )
    return 1
