"""Approval queue routes."""
from __future__ import annotations

from typing import Any

from flask_login import current_user, login_required

from expenseflow.models import Expense, UserRole, db
from expenseflow.services import approval_service
from expenseflow.utils.helpers import get_payload, json_response, role_required

from . import manager_bp

APPROVER_ROLES = (UserRole.MANAGER, UserRole.ADMIN)


@manager_bp.route("/queue", methods=["GET"])
@login_required
@role_required(*APPROVER_ROLES)
def queue() -> Any:
    """Return approvals the current user can act on now."""
    return json_response(approval_service.approval_queue(current_user))


@manager_bp.route("/<int:task_id>", methods=["POST"])
@login_required
@role_required(*APPROVER_ROLES)
def decide(task_id: int) -> Any:
    """Approve or reject the expense behind an approval task."""
    payload = get_payload()
    decision = payload.get("decision")
    if decision not in ("approved", "rejected"):
        return json_response({"error": "'decision' must be 'approved' or 'rejected'."}, status=400)

    state = approval_service.decide_task(task_id, current_user, decision, payload.get("comment") or None)
    return json_response(
        {
            "ok": True,
            "expense": state.expense.to_dict(),
            "approval": state.to_dict(),
        }
    )


@manager_bp.route("/expenses/<int:expense_id>/eligible", methods=["GET"])
@login_required
@role_required(*APPROVER_ROLES)
def eligible(expense_id: int) -> Any:
    """Users who may decide on the expense right now."""
    expense = db.session.get(Expense, expense_id)
    if expense is None or expense.company_id != current_user.company_id:
        return json_response({"error": "Expense not found."}, status=404)
    return json_response({"expenseId": expense_id, "eligible": sorted(approval_service.get_eligible_approvers(expense_id))})
