"""Shared pytest fixtures."""
from __future__ import annotations

from types import SimpleNamespace

import pytest

from expenseflow import create_app, db
from expenseflow.models import Company, User, UserRole
from expenseflow.services import account_service

PASSWORD = "password123"


@pytest.fixture()
def app():
    app = create_app("testing")
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def app_ctx(app):
    with app.app_context():
        yield app
        db.session.remove()


@pytest.fixture()
def client(app):
    return app.test_client()


def make_user(company_id: int, name: str, role: UserRole, manager_id: int | None = None) -> User:
    user = User(name=name, email=f"{name.lower()}@hack.co", role=role, company_id=company_id)
    user.set_password(PASSWORD)
    if manager_id is not None:
        account_service.set_manager(user, manager_id)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture()
def people(app):
    """Seed one company with an admin, three approvers and an employee; returns ids."""
    with app.app_context():
        company = Company(name="Hack Co", country="IN", currency_code="INR")
        db.session.add(company)
        db.session.commit()

        admin = make_user(company.id, "Admin", UserRole.ADMIN)
        manager = make_user(company.id, "Manager", UserRole.MANAGER)
        cfo = make_user(company.id, "Cfo", UserRole.MANAGER)
        director = make_user(company.id, "Director", UserRole.MANAGER)
        employee = make_user(company.id, "Employee", UserRole.EMPLOYEE, manager_id=manager.id)

        return SimpleNamespace(
            company_id=company.id,
            admin=admin.id,
            manager=manager.id,
            cfo=cfo.id,
            director=director.id,
            employee=employee.id,
        )


def login(client, email: str, password: str = PASSWORD):
    response = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.get_json()
    return response.get_json()
