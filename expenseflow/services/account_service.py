"""Account helpers: temporary passwords and user creation."""
from __future__ import annotations

import logging
import secrets
import string
from typing import Optional

from flask import current_app

from expenseflow.models import ApprovalFlow, EmployeeProfile, User, UserRole, db
from expenseflow.services.email_service import email_service

logger = logging.getLogger(__name__)

_ALPHABET = string.ascii_letters + string.digits


def generate_temporary_password(length: Optional[int] = None) -> str:
    length = length or current_app.config.get("TEMP_PASSWORD_LENGTH", 12)
    return "".join(secrets.choice(_ALPHABET) for _ in range(max(length, 8)))


def issue_temporary_password(user: User) -> bool:
    """Reset ``user`` to a new temporary password and email it.

    The change is flushed but not committed; the caller owns the transaction.
    Returns whether the email went out.
    """
    password = generate_temporary_password()
    user.set_password(password)
    user.reset_required = True
    db.session.flush()
    sent = email_service.send_temporary_password(user.email, password, user_name=user.name)
    logger.info("Issued temporary password for user %s (email sent: %s)", user.id, sent)
    return sent


def set_manager(user: User, manager_id: Optional[int]) -> None:
    """Point ``user`` at ``manager_id``, creating the profile row if needed."""
    if user.employee_profile is None:
        user.employee_profile = EmployeeProfile(manager_id=manager_id)
    else:
        user.employee_profile.manager_id = manager_id


def validate_manager(company_id: int, manager_id: Optional[int], user_id: Optional[int] = None) -> Optional[str]:
    """Return an error message if ``manager_id`` cannot manage in this company."""
    if manager_id is None:
        return None
    if user_id is not None and manager_id == user_id:
        return "A user cannot be their own manager."
    manager = db.session.get(User, manager_id)
    if manager is None or manager.company_id != company_id or not manager.is_active:
        return "Manager must be an active user of the same company."
    if manager.role is UserRole.EMPLOYEE:
        return "Manager must have the manager or admin role."
    return None


def validate_role_change(user: User, role: UserRole) -> Optional[str]:
    """Return an error message if ``user`` may not move to ``role``.

    Demoting to employee is refused while the user still approves something.
    """
    if role is not UserRole.EMPLOYEE or user.role is UserRole.EMPLOYEE:
        return None
    if EmployeeProfile.query.filter_by(manager_id=user.id).first() is not None:
        return "Reassign this user's direct reports before changing their role."
    flow = ApprovalFlow.query.filter_by(company_id=user.company_id, is_default=True).first()
    if flow is not None:
        approver_ids = {entry["user_id"] for entry in flow.approvers or []}
        if user.id in approver_ids or flow.specific_approver_id == user.id:
            return "Remove this user from the approval flow before changing their role."
    return None


def validate_password(password: Optional[str]) -> Optional[str]:
    if not password or len(password) < 8:
        return "Password must be at least 8 characters."
    return None
