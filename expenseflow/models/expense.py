"""Expense model definitions."""
from __future__ import annotations

import enum

from expenseflow import db


class ExpenseStatus(enum.Enum):
    DRAFT = "draft"
    WAITING = "waiting"
    APPROVED = "approved"
    REJECTED = "rejected"


class Expense(db.Model):
    __tablename__ = "expenses"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    submitter_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    amount_original = db.Column(db.Numeric(12, 2), nullable=False)
    currency_original = db.Column(db.String(10), nullable=False)
    # Frozen at submission; never recomputed from later rates.
    amount_in_company_currency = db.Column(db.Numeric(12, 2), nullable=True)
    conversion_rate = db.Column(db.Numeric(18, 8), nullable=True)
    conversion_low_confidence = db.Column(db.Boolean, default=False, nullable=False)
    category = db.Column(db.String(120), nullable=False, default="Other")
    description = db.Column(db.Text, nullable=True)
    spend_date = db.Column(db.Date, nullable=False)
    paid_by = db.Column(db.String(120), nullable=True)
    remarks = db.Column(db.Text, nullable=True)
    status = db.Column(db.Enum(ExpenseStatus, name="expense_status"), nullable=False, default=ExpenseStatus.DRAFT)
    submitted_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now(), nullable=False)

    company = db.relationship("Company", back_populates="expenses", lazy="joined")
    submitter = db.relationship("User", back_populates="submitted_expenses", lazy="joined")
    approval_state = db.relationship(
        "ExpenseApprovalState",
        back_populates="expense",
        uselist=False,
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employeeId": self.submitter_user_id,
            "description": self.description,
            "category": self.category,
            "spendDate": self.spend_date.isoformat() if self.spend_date else None,
            "paidBy": self.paid_by,
            "remarks": self.remarks,
            "amount": float(self.amount_original) if self.amount_original is not None else None,
            "currency": self.currency_original,
            "amountCompanyCcy": float(self.amount_in_company_currency)
            if self.amount_in_company_currency is not None
            else None,
            "conversionLowConfidence": self.conversion_low_confidence,
            "status": self.status.value if self.status else None,
            "submittedAt": self.submitted_at.isoformat() if self.submitted_at else None,
        }

    def __repr__(self) -> str:
        return f"<Expense id={self.id} status={self.status.value if self.status else None}>"
