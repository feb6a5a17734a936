"""Seed the root department and the superuser role.

The superuser account itself is created with app.scripts.create_user so its
password never lives in a migration.

Revision ID: 20251020100000
Revises: 20251020000000
Create Date: 2025-10-20

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "20251020100000"
down_revision: Union[str, None] = "20251020000000"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ROOT_DEPT_ID = 100
ADMIN_ROLE_ID = 1


def upgrade() -> None:
    departments = sa.table(
        "departments",
        sa.column("id", sa.Integer),
        sa.column("parent_id", sa.Integer),
        sa.column("name", sa.String),
        sa.column("order_num", sa.Integer),
        sa.column("status", sa.String),
    )
    roles = sa.table(
        "roles",
        sa.column("id", sa.Integer),
        sa.column("name", sa.String),
        sa.column("role_key", sa.String),
        sa.column("data_scope", sa.String),
        sa.column("is_admin", sa.Boolean),
        sa.column("status", sa.String),
    )
    op.bulk_insert(
        departments,
        [{"id": ROOT_DEPT_ID, "parent_id": None, "name": "Head Office", "order_num": 0, "status": "active"}],
    )
    op.bulk_insert(
        roles,
        [
            {
                "id": ADMIN_ROLE_ID,
                "name": "Super Administrator",
                "role_key": "admin",
                "data_scope": "all",
                "is_admin": True,
                "status": "active",
            }
        ],
    )
    # Explicit ids above do not advance the identity sequences.
    op.execute("SELECT setval(pg_get_serial_sequence('departments', 'id'), (SELECT MAX(id) FROM departments))")
    op.execute("SELECT setval(pg_get_serial_sequence('roles', 'id'), (SELECT MAX(id) FROM roles))")


def downgrade() -> None:
    op.execute(f"DELETE FROM roles WHERE id = {ADMIN_ROLE_ID}")
    op.execute(f"DELETE FROM departments WHERE id = {ROOT_DEPT_ID}")
