"""Employee-facing expense routes."""
from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from flask_login import current_user, login_required

from expenseflow.models import Expense, ExpenseStatus, UserRole, db
from expenseflow.services import approval_service, currency_service
from expenseflow.utils.helpers import get_payload, json_response, role_required

from . import employee_bp


def _can_view(expense: Expense) -> bool:
    if expense.company_id != current_user.company_id:
        return False
    if expense.submitter_user_id == current_user.id or current_user.role is UserRole.ADMIN:
        return True
    state = expense.approval_state
    return state is not None and state.decision_for(current_user.id) is not None


@employee_bp.route("", methods=["POST"])
@login_required
@role_required(UserRole.EMPLOYEE)
def create_expense() -> Any:
    """Create an expense and submit it for approval unless ``draft`` is set."""
    payload = get_payload()

    required_fields = {"amount", "currency", "spendDate"}
    if missing := sorted(field for field in required_fields if payload.get(field) in (None, "")):
        return json_response({"error": f"Missing fields: {', '.join(missing)}"}, status=400)

    try:
        amount = Decimal(str(payload["amount"]))
    except (InvalidOperation, TypeError):
        return json_response({"error": "Invalid amount."}, status=400)
    if not amount.is_finite() or amount <= 0:
        return json_response({"error": "Amount must be greater than zero."}, status=400)

    try:
        spend_date = date.fromisoformat(str(payload["spendDate"])[:10])
    except ValueError:
        return json_response({"error": "Invalid 'spendDate' format. Use YYYY-MM-DD."}, status=400)

    company = current_user.company
    currency = str(payload["currency"]).strip().upper()
    conversion = currency_service.convert_for_submission(amount, currency, company.currency_code)

    expense = Expense(
        company_id=company.id,
        submitter_user_id=current_user.id,
        amount_original=currency_service.round_money(amount),
        currency_original=currency,
        amount_in_company_currency=conversion.amount,
        conversion_rate=conversion.rate,
        conversion_low_confidence=conversion.low_confidence,
        category=payload.get("category") or "Other",
        description=payload.get("description"),
        spend_date=spend_date,
        paid_by=payload.get("paidBy"),
        remarks=payload.get("remarks"),
        status=ExpenseStatus.DRAFT,
    )
    db.session.add(expense)

    if payload.get("draft"):
        db.session.commit()
    else:
        approval_service.submit_expense(current_user, expense)

    return json_response(expense.to_dict(), status=201)


@employee_bp.route("/<int:expense_id>/submit", methods=["POST"])
@login_required
@role_required(UserRole.EMPLOYEE)
def submit_draft(expense_id: int) -> Any:
    """Submit a saved draft for approval."""
    expense = db.session.get(Expense, expense_id)
    if expense is None or expense.submitter_user_id != current_user.id:
        return json_response({"error": "Expense not found."}, status=404)

    approval_service.submit_expense(current_user, expense)
    return json_response(expense.to_dict())


@employee_bp.route("/mine", methods=["GET"])
@login_required
@role_required(UserRole.EMPLOYEE)
def my_expenses() -> Any:
    """List expenses submitted by the current employee."""
    expenses = (
        Expense.query.filter_by(submitter_user_id=current_user.id)
        .order_by(Expense.created_at.desc(), Expense.id.desc())
        .all()
    )
    return json_response([expense.to_dict() for expense in expenses])


@employee_bp.route("/<int:expense_id>", methods=["GET"])
@login_required
def expense_detail(expense_id: int) -> Any:
    """Expense with its timeline and approval progress."""
    expense = db.session.get(Expense, expense_id)
    if expense is None or not _can_view(expense):
        return json_response({"error": "Expense not found."}, status=404)
    return json_response(approval_service.expense_detail(expense))
