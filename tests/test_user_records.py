"""Tests for app.services.user_records against a seeded in-memory database."""

from unittest.mock import patch

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query

from app.core.exceptions import (
    ConflictError,
    InternalError,
    NotFoundError,
    OperationRejectedError,
    PermissionDeniedError,
)
from app.core.security import verify_password
from app.models import User, UserPost, UserRole
from app.schemas.users import UserCreate, UserFilter, UserUpdate
from app.services.role_assignment import user_post_ids, user_role_ids
from app.services.user_records import (
    change_status,
    create_user,
    delete_users,
    get_user,
    list_user_options,
    list_users,
    reset_password,
    update_user,
)
from tests.helpers import (
    ADMIN,
    ADMIN_ROLE,
    BACKEND,
    BACKEND_DEV,
    BACKEND_LEAD,
    ENG_MANAGER,
    ENGINEER_POST,
    ENGINEERING,
    FRONTEND_DEV,
    OPERATOR,
    SALES,
    SALES_AUDITOR,
    SALES_POST,
    SALES_REP,
    STAFF_ROLE,
    DatabaseTestCase,
)


def _update_payload(user: User, **changes) -> UserUpdate:
    """Full update payload carrying the user's current values plus changes."""
    fields = {
        "username": user.username,
        "nickname": user.nickname,
        "phone": user.phone,
        "email": user.email,
        "status": user.status,
        "dept_id": user.dept_id,
    }
    fields.update(changes)
    return UserUpdate(**fields)


class TestListUsers(DatabaseTestCase):
    def _ids(self, principal_id: int, filters: UserFilter | None = None) -> list[int]:
        return [u.id for u in list_users(self.db, self.principal(principal_id), filters)]

    def test_whole_system_scope_hides_superuser(self) -> None:
        self.assertEqual(self._ids(OPERATOR), [2, 3, 4, 5, 6, 7, 8])

    def test_superuser_sees_itself(self) -> None:
        self.assertEqual(self._ids(ADMIN), [1, 2, 3, 4, 5, 6, 7, 8])

    def test_dept_and_child_scope(self) -> None:
        self.assertEqual(self._ids(ENG_MANAGER), [ENG_MANAGER, BACKEND_LEAD, BACKEND_DEV, FRONTEND_DEV])

    def test_self_scope(self) -> None:
        self.assertEqual(self._ids(BACKEND_DEV), [BACKEND_DEV])

    def test_without_list_permission(self) -> None:
        with self.assertRaises(PermissionDeniedError):
            list_users(self.db, self.principal(SALES_REP))

    def test_username_substring_filter_is_literal(self) -> None:
        self.assertEqual(self._ids(OPERATOR, UserFilter(username="dev")), [BACKEND_DEV, FRONTEND_DEV])
        self.assertEqual(self._ids(OPERATOR, UserFilter(username="%")), [])

    def test_dept_filter_includes_descendants(self) -> None:
        self.assertEqual(
            self._ids(OPERATOR, UserFilter(dept_id=ENGINEERING)),
            [ENG_MANAGER, BACKEND_LEAD, BACKEND_DEV, FRONTEND_DEV],
        )

    def test_status_and_phone_filters(self) -> None:
        self.db.get(User, FRONTEND_DEV).status = "disabled"
        self.db.commit()
        self.assertEqual(self._ids(OPERATOR, UserFilter(status="disabled")), [FRONTEND_DEV])
        self.assertEqual(self._ids(OPERATOR, UserFilter(phone="0006")), [SALES_REP])

    def test_deleted_users_are_hidden(self) -> None:
        self.db.get(User, SALES_REP).is_deleted = True
        self.db.commit()
        self.assertNotIn(SALES_REP, self._ids(OPERATOR))

    def test_options_only_active_users(self) -> None:
        self.db.get(User, FRONTEND_DEV).status = "disabled"
        self.db.commit()
        options = list_user_options(self.db, self.principal(ENG_MANAGER))
        self.assertEqual([o.id for o in options], [ENG_MANAGER, BACKEND_LEAD, BACKEND_DEV])
        self.assertEqual(options[0].username, "eng_manager")


class TestGetUser(DatabaseTestCase):
    def test_detail_with_associations(self) -> None:
        detail = get_user(self.db, self.principal(OPERATOR), BACKEND_DEV, include_associations=True)
        self.assertEqual(detail.user.username, "backend_dev")
        self.assertEqual(detail.role_ids, [STAFF_ROLE])
        self.assertEqual(detail.post_ids, [ENGINEER_POST])
        self.assertNotIn(ADMIN_ROLE, [r.id for r in detail.roles])
        self.assertEqual(len(detail.posts), 3)

    def test_detail_without_associations(self) -> None:
        detail = get_user(self.db, self.principal(OPERATOR), BACKEND_DEV)
        self.assertIsNone(detail.roles)
        self.assertIsNone(detail.posts)

    def test_blank_form(self) -> None:
        detail = get_user(self.db, self.principal(ADMIN), None, include_associations=True)
        self.assertIsNone(detail.user)
        self.assertEqual(detail.role_ids, [])
        self.assertIn(ADMIN_ROLE, [r.id for r in detail.roles])

    def test_superuser_detail_hidden_from_others(self) -> None:
        with self.assertRaises(PermissionDeniedError):
            get_user(self.db, self.principal(OPERATOR), ADMIN)

    def test_missing_user(self) -> None:
        with self.assertRaises(NotFoundError):
            get_user(self.db, self.principal(OPERATOR), 4040)


class TestCreateUser(DatabaseTestCase):
    def _payload(self, **changes) -> UserCreate:
        fields = {
            "username": "alice",
            "password": "s3cret-pw",
            "nickname": "Alice",
            "phone": "13811112222",
            "email": "alice@example.com",
            "dept_id": BACKEND,
            "role_ids": [STAFF_ROLE],
            "post_ids": [ENGINEER_POST],
        }
        fields.update(changes)
        return UserCreate(**fields)

    def test_creates_user_with_roles_and_posts(self) -> None:
        user = create_user(self.db, self.principal(OPERATOR), self._payload())
        stored = self.reload_user(user.id)
        self.assertEqual(stored.username, "alice")
        self.assertEqual(stored.created_by, "operator")
        self.assertTrue(verify_password("s3cret-pw", stored.password_hash))
        self.assertNotEqual(stored.password_hash, "s3cret-pw")
        self.assertEqual(user_role_ids(self.db, user.id), [STAFF_ROLE])
        self.assertEqual(user_post_ids(self.db, user.id), [ENGINEER_POST])

    def test_duplicate_username_is_a_conflict(self) -> None:
        create_user(self.db, self.principal(OPERATOR), self._payload())
        with self.assertRaises(ConflictError) as ctx:
            create_user(
                self.db,
                self.principal(OPERATOR),
                self._payload(phone=None, email=None),
            )
        self.assertEqual(ctx.exception.field, "username")
        self.assertEqual(ctx.exception.message, "Failed to add user 'alice': username already exists")
        self.assertEqual(self.db.query(User).filter(User.username == "alice").count(), 1)

    def test_blank_phone_and_email_do_not_collide(self) -> None:
        create_user(self.db, self.principal(OPERATOR), self._payload(username="u1", phone="", email=" "))
        user = create_user(
            self.db, self.principal(OPERATOR), self._payload(username="u2", phone=None, email=None)
        )
        self.assertIsNone(self.reload_user(user.id).phone)

    def test_unique_index_race_is_a_conflict(self) -> None:
        with patch("app.services.user_records.ensure_unique"):
            with self.assertRaises(ConflictError) as ctx:
                create_user(self.db, self.principal(OPERATOR), self._payload(username="eng_manager"))
        self.assertEqual(ctx.exception.field, "username")
        self.assertEqual(self.db.query(User).filter(User.username == "eng_manager").count(), 1)

    def test_unknown_post_rolls_back_everything(self) -> None:
        with self.assertRaises(NotFoundError):
            create_user(self.db, self.principal(OPERATOR), self._payload(post_ids=[999]))
        self.assertEqual(self.db.query(User).filter(User.username == "alice").count(), 0)

    def test_only_superuser_grants_admin_role(self) -> None:
        with self.assertRaises(PermissionDeniedError):
            create_user(self.db, self.principal(OPERATOR), self._payload(role_ids=[ADMIN_ROLE]))
        user = create_user(self.db, self.principal(ADMIN), self._payload(role_ids=[ADMIN_ROLE]))
        self.assertEqual(user_role_ids(self.db, user.id), [ADMIN_ROLE])

    def test_department_outside_scope(self) -> None:
        with self.assertRaises(PermissionDeniedError):
            create_user(self.db, self.principal(ENG_MANAGER), self._payload(dept_id=SALES))

    def test_without_add_permission(self) -> None:
        with self.assertRaises(PermissionDeniedError):
            create_user(self.db, self.principal(BACKEND_DEV), self._payload())


class TestUpdateUser(DatabaseTestCase):
    def test_keeping_own_username_is_fine(self) -> None:
        user = self.db.get(User, BACKEND_DEV)
        affected = update_user(
            self.db, self.principal(OPERATOR), BACKEND_DEV, _update_payload(user, nickname="Dev")
        )
        self.assertEqual(affected, 1)
        stored = self.reload_user(BACKEND_DEV)
        self.assertEqual(stored.nickname, "Dev")
        self.assertEqual(stored.username, "backend_dev")
        self.assertEqual(stored.updated_by, "operator")

    def test_taken_email_is_a_conflict(self) -> None:
        user = self.db.get(User, BACKEND_DEV)
        with self.assertRaises(ConflictError) as ctx:
            update_user(
                self.db,
                self.principal(OPERATOR),
                BACKEND_DEV,
                _update_payload(user, email="manager@example.com"),
            )
        self.assertEqual(
            ctx.exception.message,
            "Failed to update user 'backend_dev': email address already exists",
        )
        self.assertEqual(self.reload_user(BACKEND_DEV).email, "dev@example.com")

    def test_roles_untouched_and_posts_only_when_given(self) -> None:
        principal = self.principal(OPERATOR)
        user = self.db.get(User, BACKEND_DEV)
        update_user(self.db, principal, BACKEND_DEV, _update_payload(user, nickname="x"))
        self.assertEqual(user_post_ids(self.db, BACKEND_DEV), [ENGINEER_POST])
        user = self.db.get(User, BACKEND_DEV)
        update_user(self.db, principal, BACKEND_DEV, _update_payload(user, post_ids=[SALES_POST]))
        self.assertEqual(user_post_ids(self.db, BACKEND_DEV), [SALES_POST])
        self.assertEqual(user_role_ids(self.db, BACKEND_DEV), [STAFF_ROLE])

    def test_moving_user_outside_scope(self) -> None:
        user = self.db.get(User, BACKEND_DEV)
        with self.assertRaises(PermissionDeniedError):
            update_user(
                self.db, self.principal(ENG_MANAGER), BACKEND_DEV, _update_payload(user, dept_id=SALES)
            )
        self.assertEqual(self.reload_user(BACKEND_DEV).dept_id, BACKEND)

    def test_superuser_is_protected(self) -> None:
        user = self.db.get(User, ADMIN)
        with self.assertRaises(PermissionDeniedError):
            update_user(self.db, self.principal(OPERATOR), ADMIN, _update_payload(user, nickname="x"))

    def test_persistence_failure_is_internal(self) -> None:
        user = self.db.get(User, BACKEND_DEV)
        payload = _update_payload(user, nickname="changed", post_ids=[])
        with patch.object(self.db, "add_all", side_effect=SQLAlchemyError("boom")):
            with self.assertRaises(InternalError):
                update_user(self.db, self.principal(OPERATOR), BACKEND_DEV, payload)
        stored = self.reload_user(BACKEND_DEV)
        self.assertEqual(stored.nickname, "Backend Dev")
        self.assertEqual(user_post_ids(self.db, BACKEND_DEV), [ENGINEER_POST])

    def test_unsent_fields_keep_their_values(self) -> None:
        self.db.get(User, BACKEND_DEV).status = "disabled"
        self.db.commit()
        update_user(
            self.db,
            self.principal(OPERATOR),
            BACKEND_DEV,
            UserUpdate(username="backend_dev", nickname="Dev"),
        )
        stored = self.reload_user(BACKEND_DEV)
        self.assertEqual(stored.nickname, "Dev")
        self.assertEqual(stored.status, "disabled")
        self.assertEqual(stored.email, "dev@example.com")
        self.assertEqual(stored.dept_id, BACKEND)

    def test_explicit_null_clears_only_nullable_fields(self) -> None:
        update_user(
            self.db,
            self.principal(OPERATOR),
            BACKEND_DEV,
            UserUpdate(email=None, status=None, nickname=None),
        )
        stored = self.reload_user(BACKEND_DEV)
        self.assertIsNone(stored.email)
        self.assertEqual(stored.status, "active")
        self.assertEqual(stored.nickname, "Backend Dev")

    def test_partial_identity_change_checks_against_stored_username(self) -> None:
        with self.assertRaises(ConflictError) as ctx:
            update_user(
                self.db, self.principal(OPERATOR), BACKEND_DEV, UserUpdate(phone="13800000002")
            )
        self.assertEqual(ctx.exception.field, "phone")
        self.assertEqual(
            ctx.exception.message,
            "Failed to update user 'backend_dev': phone number already exists",
        )

    def test_clearing_department_needs_whole_system_scope(self) -> None:
        with self.assertRaises(PermissionDeniedError):
            update_user(self.db, self.principal(ENG_MANAGER), BACKEND_DEV, UserUpdate(dept_id=None))
        self.assertEqual(self.reload_user(BACKEND_DEV).dept_id, BACKEND)
        update_user(self.db, self.principal(OPERATOR), BACKEND_DEV, UserUpdate(dept_id=None))
        self.assertIsNone(self.reload_user(BACKEND_DEV).dept_id)

    def test_resending_own_department_is_scope_checked(self) -> None:
        update_user(
            self.db, self.principal(ENG_MANAGER), BACKEND_DEV, UserUpdate(dept_id=BACKEND, nickname="B")
        )
        self.assertEqual(self.reload_user(BACKEND_DEV).nickname, "B")

    def test_user_deleted_after_scope_check_is_not_written(self) -> None:
        target = self.db.get(User, BACKEND_DEV)
        target.is_deleted = True
        self.db.commit()
        with patch("app.services.user_records.check_user_access", return_value=target):
            with self.assertRaises(NotFoundError):
                update_user(self.db, self.principal(OPERATOR), BACKEND_DEV, UserUpdate(nickname="late"))
        self.assertEqual(self.reload_user(BACKEND_DEV).nickname, "Backend Dev")


class TestDeleteUsers(DatabaseTestCase):
    def test_own_account_is_rejected(self) -> None:
        with self.assertRaises(OperationRejectedError) as ctx:
            delete_users(self.db, self.principal(OPERATOR), [SALES_REP, OPERATOR])
        self.assertEqual(ctx.exception.message, "The current user cannot be deleted")
        self.assertFalse(self.reload_user(SALES_REP).is_deleted)

    def test_superuser_cannot_be_deleted_by_others(self) -> None:
        with self.assertRaises(PermissionDeniedError):
            delete_users(self.db, self.principal(OPERATOR), [ADMIN])
        self.assertFalse(self.reload_user(ADMIN).is_deleted)

    def test_delete_removes_join_rows_and_is_idempotent(self) -> None:
        principal = self.principal(ENG_MANAGER)
        self.assertEqual(delete_users(self.db, principal, [BACKEND_DEV, FRONTEND_DEV]), 2)
        self.assertTrue(self.reload_user(BACKEND_DEV).is_deleted)
        self.assertEqual(self.db.query(UserRole).filter(UserRole.user_id == BACKEND_DEV).count(), 0)
        self.assertEqual(self.db.query(UserPost).filter(UserPost.user_id == BACKEND_DEV).count(), 0)
        self.assertEqual(delete_users(self.db, principal, [BACKEND_DEV, FRONTEND_DEV]), 0)

    def test_unknown_ids_are_ignored(self) -> None:
        self.assertEqual(delete_users(self.db, self.principal(OPERATOR), [4040, SALES_REP]), 1)

    def test_one_target_out_of_scope_deletes_nothing(self) -> None:
        with self.assertRaises(PermissionDeniedError):
            delete_users(self.db, self.principal(BACKEND_LEAD), [BACKEND_DEV, FRONTEND_DEV])
        self.assertFalse(self.reload_user(BACKEND_DEV).is_deleted)

    def test_deleted_username_can_be_reused(self) -> None:
        delete_users(self.db, self.principal(OPERATOR), [SALES_REP])
        user = create_user(
            self.db,
            self.principal(OPERATOR),
            UserCreate(username="sales_rep", password="another-pw", phone="13800000006"),
        )
        self.assertNotEqual(user.id, SALES_REP)

    def test_targets_are_locked_before_join_rows_go(self) -> None:
        with patch.object(Query, "with_for_update", autospec=True, side_effect=Query.with_for_update) as lock:
            delete_users(self.db, self.principal(OPERATOR), [SALES_REP])
        lock.assert_called()
        self.assertTrue(self.reload_user(SALES_REP).is_deleted)


class TestPasswordAndStatus(DatabaseTestCase):
    def test_reset_password_changes_only_the_hash(self) -> None:
        before = self.reload_user(BACKEND_DEV)
        nickname, email, status = before.nickname, before.email, before.status
        self.assertEqual(reset_password(self.db, self.principal(OPERATOR), BACKEND_DEV, "fresh-pw"), 1)
        stored = self.reload_user(BACKEND_DEV)
        self.assertTrue(verify_password("fresh-pw", stored.password_hash))
        self.assertEqual((stored.nickname, stored.email, stored.status), (nickname, email, status))
        self.assertEqual(user_role_ids(self.db, BACKEND_DEV), [STAFF_ROLE])

    def test_reset_password_of_superuser_by_others(self) -> None:
        with self.assertRaises(PermissionDeniedError):
            reset_password(self.db, self.principal(OPERATOR), ADMIN, "fresh-pw")

    def test_change_status(self) -> None:
        self.assertEqual(change_status(self.db, self.principal(ENG_MANAGER), FRONTEND_DEV, "disabled"), 1)
        self.assertEqual(self.reload_user(FRONTEND_DEV).status, "disabled")

    def test_change_status_outside_scope_leaves_status(self) -> None:
        with self.assertRaises(PermissionDeniedError):
            change_status(self.db, self.principal(BACKEND_LEAD), FRONTEND_DEV, "disabled")
        self.assertEqual(self.reload_user(FRONTEND_DEV).status, "active")

    def test_change_status_custom_scope(self) -> None:
        change_status(self.db, self.principal(SALES_AUDITOR), SALES_REP, "disabled")
        self.assertEqual(self.reload_user(SALES_REP).status, "disabled")
        with self.assertRaises(PermissionDeniedError):
            change_status(self.db, self.principal(SALES_AUDITOR), BACKEND_DEV, "disabled")

    def test_status_change_on_user_deleted_after_scope_check(self) -> None:
        target = self.db.get(User, FRONTEND_DEV)
        target.is_deleted = True
        self.db.commit()
        with patch("app.services.user_records.check_user_access", return_value=target):
            with self.assertRaises(NotFoundError):
                change_status(self.db, self.principal(OPERATOR), FRONTEND_DEV, "disabled")
            with self.assertRaises(NotFoundError):
                reset_password(self.db, self.principal(OPERATOR), FRONTEND_DEV, "fresh-pw")
        self.assertEqual(self.reload_user(FRONTEND_DEV).status, "active")
