"""Authentication routes."""
from __future__ import annotations

import logging
from typing import Any

from flask import current_app
from flask_login import current_user, login_required, login_user, logout_user

from expenseflow.models import Company, User, UserRole, db
from expenseflow.services import account_service
from expenseflow.utils.helpers import get_payload, json_response

from . import auth_bp

logger = logging.getLogger(__name__)


def _session_payload(user: User) -> dict:
    return {
        "user": user.to_dict(),
        "company": user.company.to_dict(),
        "resetRequired": user.reset_required,
    }


@auth_bp.route("/signup", methods=["POST"])
def signup() -> Any:
    """Register a company together with its first admin."""
    payload = get_payload()

    required_fields = {"name", "companyName", "email", "password"}
    if missing := sorted(field for field in required_fields if not payload.get(field)):
        return json_response({"error": f"Missing required fields: {', '.join(missing)}"}, status=400)

    email = str(payload["email"]).strip().lower()
    if User.query.filter_by(email=email).first():
        return json_response({"error": "Email already in use."}, status=409)

    company_name = str(payload["companyName"]).strip()
    if Company.query.filter_by(name=company_name).first():
        return json_response({"error": "Company already exists."}, status=409)

    if error := account_service.validate_password(payload.get("password")):
        return json_response({"error": error}, status=400)

    currency_code = str(payload.get("currency") or current_app.config.get("DEFAULT_CURRENCY", "USD")).upper()
    company = Company(name=company_name, country=payload.get("country"), currency_code=currency_code)
    user = User(
        name=str(payload["name"]).strip(),
        email=email,
        role=UserRole.ADMIN,
        company=company,
    )
    user.set_password(payload["password"])

    db.session.add_all([company, user])
    db.session.commit()
    logger.info("Company %s created with admin %s", company.id, user.id)

    return json_response({"ok": True, "companyId": company.id, "userId": user.id}, status=201)


@auth_bp.route("/login", methods=["POST"])
def login() -> Any:
    """Authenticate a user using email/password."""
    payload = get_payload()
    email = str(payload.get("email", "")).strip().lower()
    password = payload.get("password")

    if not email or not password:
        return json_response({"error": "Email and password are required."}, status=400)

    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(password):
        return json_response({"error": "Invalid credentials."}, status=401)

    if not user.is_active:
        return json_response({"error": "User account is inactive."}, status=403)

    login_user(user, remember=bool(payload.get("remember", False)))
    return json_response(_session_payload(user))


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout() -> Any:
    """Terminate the user session."""
    logout_user()
    return json_response({"message": "Logged out."})


@auth_bp.route("/me", methods=["GET"])
@login_required
def me() -> Any:
    return json_response(_session_payload(current_user))


@auth_bp.route("/forgot-password", methods=["POST"])
def forgot_password() -> Any:
    """Email a temporary password without revealing whether the account exists."""
    payload = get_payload()
    email = str(payload.get("email", "")).strip().lower()
    if not email:
        return json_response({"error": "Email address is required."}, status=400)

    user = User.query.filter_by(email=email, is_active=True).first()
    if user:
        account_service.issue_temporary_password(user)
        db.session.commit()

    return json_response(
        {"message": "If an account with that email exists, a temporary password has been sent."}
    )


@auth_bp.route("/change-password", methods=["POST"])
@login_required
def change_password() -> Any:
    payload = get_payload()
    current_password = payload.get("currentPassword")
    new_password = payload.get("newPassword")

    if not current_password or not current_user.check_password(current_password):
        return json_response({"error": "Current password is incorrect."}, status=400)
    if error := account_service.validate_password(new_password):
        return json_response({"error": error}, status=400)

    current_user.set_password(new_password)
    current_user.reset_required = False
    db.session.commit()
    return json_response({"message": "Password updated."})
