"""User-related models."""
from __future__ import annotations

import enum
from typing import Optional

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from expenseflow import db


class UserRole(enum.Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.Enum(UserRole, name="user_role"), nullable=False, default=UserRole.EMPLOYEE)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    reset_required = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, server_default=db.func.now(), nullable=False)

    company = db.relationship("Company", back_populates="users", lazy="joined")
    employee_profile = db.relationship(
        "EmployeeProfile",
        foreign_keys="EmployeeProfile.user_id",
        back_populates="user",
        uselist=False,
        lazy="joined",
        cascade="all, delete-orphan",
    )
    submitted_expenses = db.relationship(
        "Expense",
        foreign_keys="Expense.submitter_user_id",
        back_populates="submitter",
        lazy="selectin",
    )

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def get_id(self) -> str:
        return str(self.id)

    @property
    def manager_id(self) -> Optional[int]:
        return self.employee_profile.manager_id if self.employee_profile else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "companyId": self.company_id,
            "managerId": self.manager_id,
            "isActive": self.is_active,
        }

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class EmployeeProfile(db.Model):
    __tablename__ = "employee_profiles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True)
    manager_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    user = db.relationship(
        "User",
        foreign_keys=[user_id],
        back_populates="employee_profile",
        lazy="joined",
    )
    manager = db.relationship(
        "User",
        foreign_keys=[manager_id],
        lazy="joined",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "manager_id": self.manager_id,
        }

    def __repr__(self) -> str:
        return f"<EmployeeProfile user_id={self.user_id} manager_id={self.manager_id}>"
