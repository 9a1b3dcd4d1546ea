"""User and organisation lookups backing the approval workflow."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional

from expenseflow.models import User, UserRole, db
from expenseflow.services.errors import InvalidConfig

logger = logging.getLogger(__name__)


def get_user(user_id: Optional[int]) -> Optional[User]:
    if user_id is None:
        return None
    return db.session.get(User, user_id)


def manager_of(employee: User) -> Optional[int]:
    """Return the employee's manager id if that manager may approve."""
    manager_id = employee.manager_id
    if manager_id is None:
        return None
    manager = get_user(manager_id)
    if manager is None or manager.company_id != employee.company_id or not manager.is_active:
        logger.warning(
            "Ignoring manager %s for user %s: not an active member of company %s",
            manager_id,
            employee.id,
            employee.company_id,
        )
        return None
    if manager.role is UserRole.EMPLOYEE:
        logger.warning(
            "Ignoring manager %s for user %s: role %s cannot approve",
            manager_id,
            employee.id,
            manager.role.value,
        )
        return None
    return manager.id


def company_members(company_id: int, user_ids: Iterable[int]) -> Dict[int, User]:
    ids = set(user_ids)
    if not ids:
        return {}
    users = User.query.filter(User.id.in_(ids), User.company_id == company_id).all()
    return {user.id: user for user in users if user.is_active}


def ensure_approvers(company_id: int, user_ids: Iterable[int], field: str) -> None:
    """Raise ``InvalidConfig`` unless every id is an active manager or admin of the company."""
    ids = list(user_ids)
    members = {
        user_id: user
        for user_id, user in company_members(company_id, ids).items()
        if user.role is not UserRole.EMPLOYEE
    }
    missing = sorted(set(ids) - members.keys())
    if missing:
        raise InvalidConfig(
            f"Users {missing} are not active managers or admins of this company.",
            field=field,
            user_ids=missing,
        )
