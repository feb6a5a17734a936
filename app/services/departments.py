"""Department tree limited to the principal's data scope (read-only)."""

from sqlalchemy.orm import Session

from app.core.permissions import ensure_permission
from app.models import Department
from app.schemas.auth import Principal
from app.schemas.users import DepartmentNode
from app.services.data_scope import scope_condition


def build_department_tree(departments: list[Department]) -> list[DepartmentNode]:
    """
    Nest departments by parent_id, keeping input order among siblings.
    A department whose parent is not in the list becomes a root.
    """
    nodes = {
        d.id: DepartmentNode(id=d.id, parent_id=d.parent_id, name=d.name)
        for d in departments
    }
    roots: list[DepartmentNode] = []
    for d in departments:
        node = nodes[d.id]
        parent = nodes.get(d.parent_id) if d.parent_id is not None else None
        if parent is None:
            roots.append(node)
        else:
            parent.children.append(node)
    return roots


def department_tree(db: Session, principal: Principal) -> list[DepartmentNode]:
    """Active departments inside the principal's scope, as a tree."""
    ensure_permission(principal, "list")
    departments = (
        db.query(Department)
        .filter(Department.status == "active", scope_condition(principal, Department.id))
        .order_by(Department.order_num, Department.id)
        .all()
    )
    return build_department_tree(departments)
