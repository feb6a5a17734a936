"""Shared fixtures: in-memory SQLite database seeded with a small organisation."""

import unittest
from unittest.mock import patch

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.permissions import USER_PERMISSIONS
from app.models import (
    Base,
    Department,
    Post,
    Role,
    RoleDepartment,
    RolePermission,
    User,
    UserPost,
    UserRole,
)
from app.schemas.auth import Principal
from app.services.principal import build_principal

# Department tree:
#   100 Head Office
#   ├── 101 Engineering
#   │   ├── 103 Backend
#   │   └── 104 Frontend
#   └── 102 Sales
HEAD_OFFICE, ENGINEERING, SALES, BACKEND, FRONTEND = 100, 101, 102, 103, 104

ADMIN_ROLE, MANAGER_ROLE, LEAD_ROLE, STAFF_ROLE, AUDITOR_ROLE, OPERATOR_ROLE = 1, 2, 3, 4, 5, 6

ADMIN, ENG_MANAGER, BACKEND_LEAD, BACKEND_DEV, FRONTEND_DEV, SALES_REP, SALES_AUDITOR, OPERATOR = (
    1, 2, 3, 4, 5, 6, 7, 8,
)

CEO_POST, ENGINEER_POST, SALES_POST = 1, 2, 3

FAKE_HASH = "$2b$04$notarealhashnotarealhashnotarealhashnotarealhashnota"

ALL_USER_PERMISSIONS = sorted(set(USER_PERMISSIONS.values()))


def make_session_factory() -> sessionmaker:
    """Fresh in-memory database with the schema created; one shared connection."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def seed(db: Session) -> None:
    db.add_all(
        [
            Department(id=HEAD_OFFICE, parent_id=None, name="Head Office", order_num=0),
            Department(id=ENGINEERING, parent_id=HEAD_OFFICE, name="Engineering", order_num=1),
            Department(id=SALES, parent_id=HEAD_OFFICE, name="Sales", order_num=2),
            Department(id=BACKEND, parent_id=ENGINEERING, name="Backend", order_num=1),
            Department(id=FRONTEND, parent_id=ENGINEERING, name="Frontend", order_num=2),
        ]
    )
    db.add_all(
        [
            Role(id=ADMIN_ROLE, name="Super Administrator", role_key="admin", data_scope="all", is_admin=True),
            Role(id=MANAGER_ROLE, name="Engineering Manager", role_key="manager", data_scope="dept_and_child"),
            Role(id=LEAD_ROLE, name="Team Lead", role_key="lead", data_scope="dept"),
            Role(id=STAFF_ROLE, name="Staff", role_key="staff", data_scope="self"),
            Role(id=AUDITOR_ROLE, name="Sales Auditor", role_key="auditor", data_scope="custom"),
            Role(id=OPERATOR_ROLE, name="Operator", role_key="operator", data_scope="all"),
        ]
    )
    db.add(RoleDepartment(role_id=AUDITOR_ROLE, dept_id=SALES))
    for role_id in (MANAGER_ROLE, LEAD_ROLE, AUDITOR_ROLE, OPERATOR_ROLE):
        db.add_all([RolePermission(role_id=role_id, permission=p) for p in ALL_USER_PERMISSIONS])
    db.add_all(
        [
            RolePermission(role_id=STAFF_ROLE, permission="system:user:list"),
            RolePermission(role_id=STAFF_ROLE, permission="system:user:query"),
        ]
    )
    db.add_all(
        [
            Post(id=CEO_POST, post_code="ceo", post_name="Chief Executive", order_num=1),
            Post(id=ENGINEER_POST, post_code="eng", post_name="Engineer", order_num=2),
            Post(id=SALES_POST, post_code="sales", post_name="Sales Representative", order_num=3),
        ]
    )
    users = [
        (ADMIN, "admin", HEAD_OFFICE, "13800000001", "admin@example.com", [ADMIN_ROLE]),
        (ENG_MANAGER, "eng_manager", ENGINEERING, "13800000002", "manager@example.com", [MANAGER_ROLE]),
        (BACKEND_LEAD, "backend_lead", BACKEND, "13800000003", None, [LEAD_ROLE]),
        (BACKEND_DEV, "backend_dev", BACKEND, None, "dev@example.com", [STAFF_ROLE]),
        (FRONTEND_DEV, "frontend_dev", FRONTEND, None, None, [STAFF_ROLE]),
        (SALES_REP, "sales_rep", SALES, "13800000006", None, []),
        (SALES_AUDITOR, "sales_auditor", SALES, None, None, [AUDITOR_ROLE]),
        (OPERATOR, "operator", HEAD_OFFICE, None, None, [OPERATOR_ROLE]),
    ]
    for user_id, username, dept_id, phone, email, role_ids in users:
        db.add(
            User(
                id=user_id,
                username=username,
                nickname=username.replace("_", " ").title(),
                phone=phone,
                email=email,
                password_hash=FAKE_HASH,
                status="active",
                dept_id=dept_id,
                created_by="seed",
                is_deleted=False,
            )
        )
        db.add_all([UserRole(user_id=user_id, role_id=r) for r in role_ids])
    db.add(UserPost(user_id=BACKEND_DEV, post_id=ENGINEER_POST))
    db.commit()


def principal_for(db: Session, user_id: int) -> Principal:
    """Principal for a seeded user, built the same way the API builds it."""
    return build_principal(db, db.get(User, user_id))


class DatabaseTestCase(unittest.TestCase):
    """Seeded in-memory database per test; bcrypt runs at minimum cost."""

    def setUp(self) -> None:
        rounds = patch("app.core.security.BCRYPT_ROUNDS", 4)
        rounds.start()
        self.addCleanup(rounds.stop)
        self.session_factory = make_session_factory()
        seeding = self.session_factory()
        try:
            seed(seeding)
        finally:
            seeding.close()
        self.db = self.session_factory()
        self.addCleanup(self.db.close)

    def principal(self, user_id: int) -> Principal:
        return principal_for(self.db, user_id)

    def reload_user(self, user_id: int) -> User:
        """Read the row back from the database rather than the identity map."""
        self.db.expire_all()
        return self.db.get(User, user_id)
