"""Administrative routes."""
from __future__ import annotations

import re
from typing import Any

from flask_login import current_user, login_required

from expenseflow.models import User, UserRole, db
from expenseflow.services import account_service, approval_service
from expenseflow.utils.helpers import get_payload, json_response, role_required

from . import admin_bp

EMAIL_PATTERN = re.compile(r"\S+@\S+\.\S+")
ASSIGNABLE_ROLES = {UserRole.MANAGER, UserRole.EMPLOYEE}


def _parse_manager_id(value: Any):
    if value in (None, ""):
        return None, None
    try:
        return int(value), None
    except (TypeError, ValueError):
        return None, "Invalid managerId."


def _company_user_or_404(user_id: int) -> User | None:
    user = db.session.get(User, user_id)
    if user is None or user.company_id != current_user.company_id:
        return None
    return user


@admin_bp.route("/users", methods=["GET"])
@login_required
@role_required(UserRole.ADMIN)
def users() -> Any:
    """List all users in the admin's company."""
    rows = User.query.filter_by(company_id=current_user.company_id).order_by(User.id.asc()).all()
    return json_response([user.to_dict() for user in rows])


@admin_bp.route("/users", methods=["POST"])
@login_required
@role_required(UserRole.ADMIN)
def create_user() -> Any:
    """Create a manager or employee and email a temporary password."""
    payload = get_payload()

    email = str(payload.get("email", "")).strip().lower()
    if not EMAIL_PATTERN.fullmatch(email):
        return json_response({"error": "A valid email is required."}, status=400)
    if User.query.filter_by(email=email).first():
        return json_response({"error": "Email already exists."}, status=409)

    try:
        role = UserRole(str(payload.get("role", "")).lower())
    except ValueError:
        return json_response({"error": "Unsupported role."}, status=400)
    if role not in ASSIGNABLE_ROLES:
        return json_response({"error": "Only managers and employees can be created."}, status=400)

    manager_id, error = _parse_manager_id(payload.get("managerId"))
    error = error or account_service.validate_manager(current_user.company_id, manager_id)
    if error:
        return json_response({"error": error}, status=400)

    new_user = User(
        name=str(payload.get("name") or email.split("@")[0]),
        email=email,
        role=role,
        company_id=current_user.company_id,
    )
    account_service.set_manager(new_user, manager_id)
    db.session.add(new_user)
    email_sent = account_service.issue_temporary_password(new_user)
    db.session.commit()

    return json_response({"id": new_user.id, "emailSent": email_sent, "user": new_user.to_dict()}, status=201)


@admin_bp.route("/users/<int:user_id>", methods=["PATCH"])
@login_required
@role_required(UserRole.ADMIN)
def update_user(user_id: int) -> Any:
    """Update a user's name, role or manager."""
    user = _company_user_or_404(user_id)
    if user is None:
        return json_response({"error": "User not found."}, status=404)

    payload = get_payload()
    if "name" in payload:
        name = str(payload.get("name") or "").strip()
        if not name:
            return json_response({"error": "Name cannot be empty."}, status=400)
        user.name = name

    if "role" in payload:
        try:
            role = UserRole(str(payload["role"]).lower())
        except ValueError:
            return json_response({"error": "Unsupported role."}, status=400)
        if user.role is UserRole.ADMIN or role not in ASSIGNABLE_ROLES:
            return json_response({"error": "Admin roles cannot be changed here."}, status=400)
        if error := account_service.validate_role_change(user, role):
            db.session.rollback()
            return json_response({"error": error}, status=409)
        user.role = role

    if "managerId" in payload:
        manager_id, error = _parse_manager_id(payload.get("managerId"))
        error = error or account_service.validate_manager(current_user.company_id, manager_id, user_id=user.id)
        if error:
            db.session.rollback()
            return json_response({"error": error}, status=400)
        account_service.set_manager(user, manager_id)

    db.session.commit()
    return json_response(user.to_dict())


@admin_bp.route("/users/<int:user_id>/send-password", methods=["POST"])
@login_required
@role_required(UserRole.ADMIN)
def send_password(user_id: int) -> Any:
    """Issue and email a new temporary password."""
    user = _company_user_or_404(user_id)
    if user is None:
        return json_response({"error": "User not found."}, status=404)

    email_sent = account_service.issue_temporary_password(user)
    db.session.commit()
    return json_response({"emailSent": email_sent})


@admin_bp.route("/flows/default", methods=["GET"])
@login_required
@role_required(UserRole.ADMIN)
def get_default_flow() -> Any:
    """Return the company's default approval flow."""
    flow = approval_service.default_flow(current_user.company_id)
    return json_response(flow.to_dict())


@admin_bp.route("/flows/default", methods=["PUT"])
@login_required
@role_required(UserRole.ADMIN)
def save_default_flow() -> Any:
    """Validate and save the company's default approval flow."""
    flow = approval_service.save_flow(current_user.company_id, get_payload())
    return json_response(flow.to_dict())
