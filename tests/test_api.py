"""End-to-end tests through the JSON API."""
from __future__ import annotations

from expenseflow import mail
from expenseflow.models import ExpenseApproval

from .conftest import login

API = "/api/v1"


def configure_flow(client, people, **payload):
    login(client, "admin@hack.co")
    response = client.put(f"{API}/flows/default", json=payload)
    client.post(f"{API}/auth/logout")
    return response


def submit_expense(client, **overrides):
    payload = {
        "amount": "100",
        "currency": "USD",
        "spendDate": "2026-10-02",
        "category": "Travel",
        "description": "Taxi to airport",
    }
    payload.update(overrides)
    login(client, "employee@hack.co")
    response = client.post(f"{API}/expenses", json=payload)
    client.post(f"{API}/auth/logout")
    return response


# -- auth ---------------------------------------------------------------------


def test_signup_then_login_returns_company(client, app) -> None:
    response = client.post(
        f"{API}/auth/signup",
        json={
            "name": "Asha",
            "companyName": "Acme",
            "email": "Asha@Acme.io",
            "password": "correct-horse",
            "country": "India",
            "currency": "inr",
        },
    )
    assert response.status_code == 201

    session = login(client, "asha@acme.io", "correct-horse")

    assert session["user"]["role"] == "admin"
    assert session["company"]["currency"] == "INR"
    assert session["resetRequired"] is False
    assert client.get(f"{API}/auth/me").get_json()["user"]["email"] == "asha@acme.io"


def test_signup_refuses_duplicate_email(client, people) -> None:
    response = client.post(
        f"{API}/auth/signup",
        json={"name": "Other", "companyName": "Other Co", "email": "admin@hack.co", "password": "password123"},
    )

    assert response.status_code == 409


def test_login_with_wrong_password_is_unauthorized(client, people) -> None:
    response = client.post(f"{API}/auth/login", json={"email": "admin@hack.co", "password": "nope-nope"})

    assert response.status_code == 401


def test_anonymous_requests_get_json_401(client, people) -> None:
    response = client.get(f"{API}/approvals/queue")

    assert response.status_code == 401
    assert "error" in response.get_json()


def test_forgot_password_does_not_reveal_accounts(client, people) -> None:
    with mail.record_messages() as outbox:
        known = client.post(f"{API}/auth/forgot-password", json={"email": "employee@hack.co"})
        unknown = client.post(f"{API}/auth/forgot-password", json={"email": "ghost@hack.co"})

    assert known.status_code == unknown.status_code == 200
    assert known.get_json() == unknown.get_json()
    assert [message.recipients for message in outbox] == [["employee@hack.co"]]


# -- users --------------------------------------------------------------------


def test_admin_creates_user_with_emailed_temporary_password(client, people) -> None:
    login(client, "admin@hack.co")

    with mail.record_messages() as outbox:
        response = client.post(
            f"{API}/users",
            json={"name": "Ravi", "email": "ravi@hack.co", "role": "employee", "managerId": people.manager},
        )

    assert response.status_code == 201
    body = response.get_json()
    assert body["emailSent"] is True
    assert body["user"]["managerId"] == people.manager
    [message] = outbox
    temporary = message.body.split("Temporary password: ")[1].split()[0]

    client.post(f"{API}/auth/logout")
    assert login(client, "ravi@hack.co", temporary)["resetRequired"] is True

    changed = client.post(
        f"{API}/auth/change-password",
        json={"currentPassword": temporary, "newPassword": "brand-new-pass"},
    )
    assert changed.status_code == 200
    assert client.get(f"{API}/auth/me").get_json()["resetRequired"] is False


def test_admin_cannot_create_admins_or_use_foreign_managers(client, people) -> None:
    login(client, "admin@hack.co")

    admin = client.post(f"{API}/users", json={"email": "boss@hack.co", "role": "admin"})
    bad_manager = client.post(
        f"{API}/users",
        json={"email": "new@hack.co", "role": "employee", "managerId": people.employee},
    )

    assert admin.status_code == 400
    assert bad_manager.status_code == 400


def test_admin_updates_manager(client, people) -> None:
    login(client, "admin@hack.co")

    response = client.patch(f"{API}/users/{people.employee}", json={"managerId": people.cfo})

    assert response.status_code == 200
    assert response.get_json()["managerId"] == people.cfo


def test_admin_cannot_demote_an_active_approver(client, people) -> None:
    configure_flow(
        client,
        people,
        isManagerFirst=True,
        approvers=[{"userId": people.cfo}],
        specificApproverId=people.director,
    )
    login(client, "admin@hack.co")

    for user_id in (people.manager, people.cfo, people.director):
        response = client.patch(f"{API}/users/{user_id}", json={"role": "employee"})
        assert response.status_code == 409
        assert "error" in response.get_json()

    client.patch(f"{API}/users/{people.employee}", json={"managerId": None})
    demoted = client.patch(f"{API}/users/{people.manager}", json={"role": "employee"})
    assert demoted.status_code == 200
    assert demoted.get_json()["role"] == "employee"
    client.post(f"{API}/auth/logout")

    expense_id = submit_expense(client).get_json()["id"]

    login(client, "cfo@hack.co")
    assert [task["expenseId"] for task in client.get(f"{API}/approvals/queue").get_json()] == [expense_id]


def test_employees_cannot_manage_users(client, people) -> None:
    login(client, "employee@hack.co")

    assert client.get(f"{API}/users").status_code == 403
    assert client.put(f"{API}/flows/default", json={}).status_code == 403


# -- flows --------------------------------------------------------------------


def test_flow_validation_errors_are_422(client, people) -> None:
    response = configure_flow(client, people, approvers=[{"userId": people.cfo}], percentThreshold=150)

    assert response.status_code == 422
    body = response.get_json()
    assert body["code"] == "invalid_config"
    assert body["details"]["field"] == "percentThreshold"


def test_flow_round_trips_through_api(client, people) -> None:
    saved = configure_flow(
        client,
        people,
        isManagerFirst=True,
        sequenceEnabled=True,
        approvers=[{"userId": people.cfo}, {"userId": people.director, "required": False}],
        specificApproverId=people.cfo,
    )
    assert saved.status_code == 200

    login(client, "admin@hack.co")
    flow = client.get(f"{API}/flows/default").get_json()

    assert flow["isManagerFirst"] is True
    assert flow["sequenceEnabled"] is True
    assert flow["approvers"] == [
        {"userId": people.cfo, "required": True},
        {"userId": people.director, "required": False},
    ]
    assert flow["specificApproverId"] == people.cfo


# -- expenses and approvals ----------------------------------------------------


def test_expense_travels_manager_then_cfo(client, people) -> None:
    configure_flow(client, people, isManagerFirst=True, sequenceEnabled=True, approvers=[{"userId": people.cfo}])

    created = submit_expense(client)
    assert created.status_code == 201
    expense = created.get_json()
    assert expense["status"] == "waiting"
    assert expense["amountCompanyCcy"] == 8500.0
    assert expense["conversionLowConfidence"] is False

    login(client, "cfo@hack.co")
    assert client.get(f"{API}/approvals/queue").get_json() == []
    client.post(f"{API}/auth/logout")

    login(client, "manager@hack.co")
    [task] = client.get(f"{API}/approvals/queue").get_json()
    assert task["expenseId"] == expense["id"]
    assert task["companyCurrency"] == "INR"
    decided = client.post(f"{API}/approvals/{task['id']}", json={"decision": "approved", "comment": "fine"})
    assert decided.status_code == 200
    assert decided.get_json()["expense"]["status"] == "waiting"
    client.post(f"{API}/auth/logout")

    login(client, "cfo@hack.co")
    [task] = client.get(f"{API}/approvals/queue").get_json()
    final = client.post(f"{API}/approvals/{task['id']}", json={"decision": "approved"})
    assert final.get_json()["expense"]["status"] == "approved"
    client.post(f"{API}/auth/logout")

    login(client, "employee@hack.co")
    detail = client.get(f"{API}/expenses/{expense['id']}").get_json()
    assert [event["decision"] for event in detail["timeline"]] == ["submitted", "approved", "approved"]
    assert detail["timeline"][1]["comment"] == "fine"
    assert detail["approval"]["status"] == "approved"


def test_deciding_out_of_turn_is_forbidden(client, app, people) -> None:
    configure_flow(client, people, isManagerFirst=True, sequenceEnabled=True, approvers=[{"userId": people.cfo}])
    expense_id = submit_expense(client).get_json()["id"]

    with app.app_context():
        task_id = ExpenseApproval.query.filter_by(expense_id=expense_id, approver_user_id=people.cfo).one().id

    login(client, "cfo@hack.co")
    response = client.post(f"{API}/approvals/{task_id}", json={"decision": "approved"})

    assert response.status_code == 403
    assert response.get_json()["code"] == "not_eligible"

    eligible = client.get(f"{API}/approvals/expenses/{expense_id}/eligible").get_json()
    assert eligible["eligible"] == [people.manager]


def test_deciding_twice_is_a_conflict(client, people) -> None:
    configure_flow(client, people, isManagerFirst=True, approvers=[{"userId": people.cfo}])
    submit_expense(client)

    login(client, "manager@hack.co")
    [task] = client.get(f"{API}/approvals/queue").get_json()
    client.post(f"{API}/approvals/{task['id']}", json={"decision": "approved"})
    again = client.post(f"{API}/approvals/{task['id']}", json={"decision": "rejected"})

    assert again.status_code == 409
    assert again.get_json()["code"] == "already_decided"


def test_invalid_decision_is_bad_request(client, people) -> None:
    submit_expense(client)

    login(client, "manager@hack.co")
    [task] = client.get(f"{API}/approvals/queue").get_json()
    response = client.post(f"{API}/approvals/{task['id']}", json={"decision": "maybe"})

    assert response.status_code == 400


def test_draft_is_saved_then_submitted(client, people) -> None:
    draft = submit_expense(client, draft=True).get_json()
    assert draft["status"] == "draft"

    login(client, "employee@hack.co")
    submitted = client.post(f"{API}/expenses/{draft['id']}/submit")
    again = client.post(f"{API}/expenses/{draft['id']}/submit")
    mine = client.get(f"{API}/expenses/mine").get_json()

    assert submitted.get_json()["status"] == "waiting"
    assert again.status_code == 409
    assert [entry["id"] for entry in mine] == [draft["id"]]


def test_unknown_currency_is_flagged_low_confidence(client, people) -> None:
    created = submit_expense(client, currency="ZZZ", amount="12.345")

    body = created.get_json()
    assert created.status_code == 201
    assert body["amountCompanyCcy"] == 12.35
    assert body["conversionLowConfidence"] is True


def test_expense_validation(client, people) -> None:
    assert submit_expense(client, amount="-5").status_code == 400
    assert submit_expense(client, spendDate="yesterday").status_code == 400
    assert submit_expense(client, currency="").status_code == 400


def test_only_employees_submit_expenses(client, people) -> None:
    login(client, "manager@hack.co")

    response = client.post(f"{API}/expenses", json={"amount": "1", "currency": "INR", "spendDate": "2026-10-01"})

    assert response.status_code == 403


def test_other_users_cannot_see_an_expense(client, people) -> None:
    configure_flow(client, people, isManagerFirst=True, approvers=[])
    expense_id = submit_expense(client).get_json()["id"]

    login(client, "director@hack.co")
    assert client.get(f"{API}/expenses/{expense_id}").status_code == 404
    client.post(f"{API}/auth/logout")

    login(client, "manager@hack.co")
    assert client.get(f"{API}/expenses/{expense_id}").status_code == 200


def test_health(client) -> None:
    assert client.get(f"{API}/health").get_json()["status"] == "ok"
