"""Application data models exposed for easy imports."""
from expenseflow import db  # noqa: F401
from .company import Company  # noqa: F401
from .user import User, UserRole, EmployeeProfile  # noqa: F401
from .expense import Expense, ExpenseStatus  # noqa: F401
from .approval import (
    ApprovalDecisionStatus,
    ApprovalFlow,
    ApprovalState,
    ExpenseApproval,
    ExpenseApprovalState,
)  # noqa: F401
from .audit import AuditLog  # noqa: F401

__all__ = [
    "db",
    "Company",
    "User",
    "UserRole",
    "EmployeeProfile",
    "Expense",
    "ExpenseStatus",
    "ExpenseApproval",
    "ExpenseApprovalState",
    "ApprovalDecisionStatus",
    "ApprovalFlow",
    "ApprovalState",
    "AuditLog",
]
