"""Approval-related models."""
from __future__ import annotations

import enum

from expenseflow import db


class ApprovalDecisionStatus(enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalState(enum.Enum):
    WAITING = "waiting"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not ApprovalState.WAITING


class ApprovalFlow(db.Model):
    """Company-wide approval configuration edited by admins."""

    __tablename__ = "approval_flows"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False, default="Default")
    description = db.Column(db.Text, nullable=True)
    is_manager_first = db.Column(db.Boolean, default=True, nullable=False)
    sequence_enabled = db.Column(db.Boolean, default=False, nullable=False)
    # Ordered list of {"user_id": int, "required": bool}.
    approvers = db.Column(db.JSON, nullable=False, default=list)
    percent_threshold = db.Column(db.Integer, nullable=True)
    specific_approver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    is_default = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, server_default=db.func.now(), nullable=False)
    updated_at = db.Column(db.DateTime, server_default=db.func.now(), onupdate=db.func.now(), nullable=False)

    company = db.relationship("Company", back_populates="approval_flows", lazy="joined")
    specific_approver = db.relationship("User", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "isManagerFirst": self.is_manager_first,
            "sequenceEnabled": self.sequence_enabled,
            "approvers": [
                {"userId": entry["user_id"], "required": entry.get("required", True)}
                for entry in (self.approvers or [])
            ],
            "percentThreshold": self.percent_threshold,
            "specificApproverId": self.specific_approver_id,
        }

    def __repr__(self) -> str:
        return f"<ApprovalFlow {self.name} company_id={self.company_id}>"


class ExpenseApprovalState(db.Model):
    """Per-expense approval progress, evaluated against a frozen flow snapshot."""

    __tablename__ = "expense_approval_states"

    id = db.Column(db.Integer, primary_key=True)
    expense_id = db.Column(db.Integer, db.ForeignKey("expenses.id"), nullable=False, unique=True)
    flow_snapshot = db.Column(db.JSON, nullable=False)
    manager_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    step_index = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(
        db.Enum(ApprovalState, name="approval_state"),
        nullable=False,
        default=ApprovalState.WAITING,
    )
    version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, server_default=db.func.now(), nullable=False)
    updated_at = db.Column(db.DateTime, nullable=True)
    resolved_at = db.Column(db.DateTime, nullable=True)

    expense = db.relationship("Expense", back_populates="approval_state", lazy="joined")
    decisions = db.relationship(
        "ExpenseApproval",
        back_populates="state",
        lazy="selectin",
        order_by="ExpenseApproval.step_number",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    def decision_for(self, approver_id: int):
        return next((row for row in self.decisions if row.approver_user_id == approver_id), None)

    def to_dict(self) -> dict:
        return {
            "expenseId": self.expense_id,
            "stepIndex": self.step_index,
            "status": self.status.value if self.status else None,
            "managerId": self.manager_id,
            "flow": self.flow_snapshot,
            "decisions": [row.to_dict() for row in self.decisions],
            "resolvedAt": self.resolved_at.isoformat() if self.resolved_at else None,
        }

    def __repr__(self) -> str:
        return (
            f"<ExpenseApprovalState expense_id={self.expense_id} "
            f"status={self.status.value if self.status else None} step={self.step_index}>"
        )


class ExpenseApproval(db.Model):
    """One approver's decision slot for one expense."""

    __tablename__ = "expense_approvals"
    __table_args__ = (
        db.UniqueConstraint("state_id", "approver_user_id", name="uq_expense_approvals_state_approver"),
    )

    id = db.Column(db.Integer, primary_key=True)
    state_id = db.Column(db.Integer, db.ForeignKey("expense_approval_states.id"), nullable=False, index=True)
    expense_id = db.Column(db.Integer, db.ForeignKey("expenses.id"), nullable=False, index=True)
    approver_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    step_number = db.Column(db.Integer, nullable=False, default=1)
    required = db.Column(db.Boolean, nullable=False, default=True)
    status = db.Column(
        db.Enum(ApprovalDecisionStatus, name="approval_decision_status"),
        nullable=False,
        default=ApprovalDecisionStatus.PENDING,
    )
    comment = db.Column(db.Text, nullable=True)
    acted_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now(), nullable=False)

    state = db.relationship("ExpenseApprovalState", back_populates="decisions")
    expense = db.relationship("Expense", lazy="joined")
    approver = db.relationship("User", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "expenseId": self.expense_id,
            "approverId": self.approver_user_id,
            "stepOrder": self.step_number,
            "required": self.required,
            "decision": self.status.value if self.status else None,
            "comment": self.comment,
            "actedAt": self.acted_at.isoformat() if self.acted_at else None,
        }

    def __repr__(self) -> str:
        return (
            f"<ExpenseApproval expense_id={self.expense_id} approver={self.approver_user_id} "
            f"status={self.status.value if self.status else None}>"
        )
