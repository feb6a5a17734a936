"""
Data-scope guard: decides which users and departments a principal may see and modify.

A principal's scope is the union of the data-scope policies of its active
roles, evaluated against the department tree. The superuser sees everything,
and nobody else may touch the superuser account.
"""

import logging

from sqlalchemy import Select, false, or_, select, true
from sqlalchemy.orm import Query, Session, aliased
from sqlalchemy.sql.elements import ColumnElement

from app.core.config import settings
from app.core.exceptions import ACCESS_DENIED_MESSAGE, NotFoundError, PermissionDeniedError
from app.models import Department, RoleDepartment, User
from app.models.role import (
    DATA_SCOPE_ALL,
    DATA_SCOPE_CUSTOM,
    DATA_SCOPE_DEPT,
    DATA_SCOPE_DEPT_AND_CHILD,
    DATA_SCOPE_SELF,
)
from app.schemas.auth import Principal

logger = logging.getLogger(__name__)


def is_superuser_id(user_id: int | None) -> bool:
    """True if user_id is the built-in superuser account."""
    return user_id is not None and user_id == settings.SUPERUSER_ID


def has_full_scope(principal: Principal) -> bool:
    """True for the superuser and for principals holding a whole-system grant."""
    return principal.is_superuser or any(
        grant.data_scope == DATA_SCOPE_ALL for grant in principal.scopes
    )


def department_subtree_ids(dept_id: int) -> Select:
    """SELECT of dept_id and the ids of all its descendants (recursive CTE over parent_id)."""
    tree = select(Department.id).where(Department.id == dept_id).cte(recursive=True)
    parent = tree.alias()
    child = aliased(Department)
    tree = tree.union_all(select(child.id).where(child.parent_id == parent.c.id))
    return select(tree.c.id)


def scope_condition(
    principal: Principal,
    dept_column: ColumnElement,
    user_column: ColumnElement | None = None,
) -> ColumnElement[bool]:
    """
    SQL filter restricting rows to the principal's data scope.

    dept_column is the department id of the row; user_column (optional) is the
    owning user id, needed for the 'self' policy. Without any usable grant the
    condition matches nothing.
    """
    if principal.is_superuser:
        return true()

    clauses: list[ColumnElement[bool]] = []
    for grant in principal.scopes:
        scope = grant.data_scope
        if scope == DATA_SCOPE_ALL:
            return true()
        if scope == DATA_SCOPE_CUSTOM:
            clauses.append(
                dept_column.in_(
                    select(RoleDepartment.dept_id).where(RoleDepartment.role_id == grant.role_id)
                )
            )
        elif scope == DATA_SCOPE_DEPT:
            if principal.dept_id is not None:
                clauses.append(dept_column == principal.dept_id)
        elif scope == DATA_SCOPE_DEPT_AND_CHILD:
            if principal.dept_id is not None:
                clauses.append(dept_column.in_(department_subtree_ids(principal.dept_id)))
        elif scope == DATA_SCOPE_SELF:
            if user_column is not None:
                clauses.append(user_column == principal.id)

    if not clauses:
        return false()
    return or_(*clauses)


def visible_users_query(db: Session, principal: Principal) -> Query:
    """Non-deleted users inside the principal's scope; the superuser account only for itself."""
    query = db.query(User).filter(
        User.is_deleted.is_(False),
        scope_condition(principal, User.dept_id, User.id),
    )
    if not principal.is_superuser:
        query = query.filter(User.id != settings.SUPERUSER_ID)
    return query


def check_user_allowed(principal: Principal, user_id: int | None) -> None:
    """Reject any non-superuser attempt to act on the superuser account."""
    if is_superuser_id(user_id) and not principal.is_superuser:
        logger.warning(
            "Superuser account access denied",
            extra={"principal_id": principal.id, "target_user_id": user_id},
        )
        raise PermissionDeniedError(ACCESS_DENIED_MESSAGE)


def check_user_data_scope(db: Session, principal: Principal, user_id: int) -> User:
    """
    Return the live user if it lies inside the principal's scope.

    A principal that sees every department gets NotFoundError for a missing
    or deleted user. Any other principal gets PermissionDeniedError whether
    the user is missing or merely out of scope.
    """
    user = (
        db.query(User)
        .filter(
            User.id == user_id,
            User.is_deleted.is_(False),
            scope_condition(principal, User.dept_id, User.id),
        )
        .one_or_none()
    )
    if user is not None:
        return user
    if has_full_scope(principal):
        raise NotFoundError(f"User {user_id} does not exist")
    logger.warning(
        "User data scope denied",
        extra={"principal_id": principal.id, "target_user_id": user_id},
    )
    raise PermissionDeniedError(ACCESS_DENIED_MESSAGE)


def check_user_access(db: Session, principal: Principal, user_id: int) -> User:
    """Superuser protection followed by the data-scope check; returns the target user."""
    check_user_allowed(principal, user_id)
    return check_user_data_scope(db, principal, user_id)


def check_dept_data_scope(db: Session, principal: Principal, dept_id: int | None) -> None:
    """
    Ensure a user may be placed in dept_id.

    dept_id=None leaves the user outside every department, which only a
    principal seeing the whole system may do. Otherwise the department must
    exist and lie inside the principal's scope; as for users, only
    whole-system principals learn that a department does not exist.
    """
    if has_full_scope(principal):
        if dept_id is not None:
            exists = db.query(Department.id).filter(Department.id == dept_id).first()
            if exists is None:
                raise NotFoundError(f"Department {dept_id} does not exist")
        return

    visible = None
    if dept_id is not None:
        visible = (
            db.query(Department.id)
            .filter(Department.id == dept_id, scope_condition(principal, Department.id))
            .first()
        )
    if visible is None:
        logger.warning(
            "Department data scope denied",
            extra={"principal_id": principal.id, "dept_id": dept_id},
        )
        raise PermissionDeniedError(ACCESS_DENIED_MESSAGE)
