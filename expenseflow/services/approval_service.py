"""Persistence and concurrency around the approval resolver.

Each expense's :class:`ExpenseApprovalState` row carries a version column;
two decisions racing on the same expense cannot both commit. The loser gets
``StaleDataError`` at flush, is rolled back and re-evaluated against the
winner's committed state, which usually ends in ``AlreadyResolved`` or a
clean second decision.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from flask import current_app
from sqlalchemy.orm.exc import StaleDataError

from expenseflow.models import (
    ApprovalDecisionStatus,
    ApprovalFlow,
    ApprovalState,
    AuditLog,
    Expense,
    ExpenseApproval,
    ExpenseApprovalState,
    ExpenseStatus,
    User,
    db,
)
from expenseflow.services import directory
from expenseflow.services.approval_engine import (
    ApprovalResolver,
    ApprovalSnapshot,
    ApproverSpec,
    DecisionRecord,
    FlowSnapshot,
    approval_chain,
    validate_flow,
)
from expenseflow.services.email_service import email_service
from expenseflow.services.errors import (
    AlreadySubmitted,
    ApprovalError,
    ConcurrentUpdate,
    InvalidConfig,
    NotFound,
)

logger = logging.getLogger(__name__)

_EXPENSE_STATUS = {
    ApprovalState.WAITING: ExpenseStatus.WAITING,
    ApprovalState.APPROVED: ExpenseStatus.APPROVED,
    ApprovalState.REJECTED: ExpenseStatus.REJECTED,
}


def get_resolver() -> ApprovalResolver:
    return ApprovalResolver(current_app.config.get("APPROVAL_REJECTION_POLICY"))


# -- flow configuration -----------------------------------------------------


def default_flow(company_id: int) -> ApprovalFlow:
    """Return the company's default flow, creating an empty one on first use."""
    flow = ApprovalFlow.query.filter_by(company_id=company_id, is_default=True).first()
    if flow is None:
        flow = ApprovalFlow(
            company_id=company_id,
            name="Default",
            description="Manager approves first",
            is_manager_first=True,
            sequence_enabled=False,
            approvers=[],
            is_default=True,
        )
        db.session.add(flow)
        db.session.commit()
        logger.info("Created default approval flow for company %s", company_id)
    return flow


def current_flow_snapshot(company_id: int) -> FlowSnapshot:
    """Snapshot of the default flow without creating it; manager-first when none is saved."""
    flow = ApprovalFlow.query.filter_by(company_id=company_id, is_default=True).first()
    if flow is None:
        return FlowSnapshot(is_manager_first=True)
    return FlowSnapshot.from_model(flow)


def _as_bool(payload: Mapping[str, Any], key: str, default: bool) -> bool:
    value = payload.get(key, default)
    if not isinstance(value, bool):
        raise InvalidConfig(f"'{key}' must be true or false.", field=key)
    return value


def _as_optional_int(payload: Mapping[str, Any], key: str) -> Optional[int]:
    value = payload.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise InvalidConfig(f"'{key}' must be an integer.", field=key)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    raise InvalidConfig(f"'{key}' must be an integer.", field=key)


def parse_flow_payload(payload: Mapping[str, Any], current: Optional[FlowSnapshot] = None) -> FlowSnapshot:
    """Build a flow snapshot from the camelCase API payload.

    Keys missing from ``payload`` keep their value from ``current``.
    """
    base = current or FlowSnapshot()
    approvers = base.approvers
    if "approvers" in payload:
        raw = payload.get("approvers") or []
        if not isinstance(raw, list):
            raise InvalidConfig("'approvers' must be a list.", field="approvers")
        specs = []
        for entry in raw:
            if not isinstance(entry, Mapping):
                raise InvalidConfig("Each approver needs a 'userId'.", field="approvers")
            user_id = _as_optional_int(entry, "userId")
            if user_id is None:
                raise InvalidConfig("Each approver needs a 'userId'.", field="approvers")
            specs.append(ApproverSpec(user_id=user_id, required=_as_bool(entry, "required", True)))
        approvers = tuple(specs)

    return FlowSnapshot(
        is_manager_first=_as_bool(payload, "isManagerFirst", base.is_manager_first),
        sequence_enabled=_as_bool(payload, "sequenceEnabled", base.sequence_enabled),
        approvers=approvers,
        percent_threshold=_as_optional_int(payload, "percentThreshold")
        if "percentThreshold" in payload
        else base.percent_threshold,
        specific_approver_id=_as_optional_int(payload, "specificApproverId")
        if "specificApproverId" in payload
        else base.specific_approver_id,
    )


def save_flow(company_id: int, payload: Mapping[str, Any]) -> ApprovalFlow:
    """Validate and persist the company's default flow.

    Expenses already submitted keep evaluating against their own snapshot.
    """
    flow = default_flow(company_id)
    snapshot = validate_flow(parse_flow_payload(payload, FlowSnapshot.from_model(flow)))
    directory.ensure_approvers(company_id, snapshot.approver_ids, "approvers")
    if snapshot.specific_approver_id is not None:
        directory.ensure_approvers(company_id, [snapshot.specific_approver_id], "specificApproverId")

    if payload.get("name"):
        flow.name = str(payload["name"])
    if "description" in payload:
        flow.description = payload.get("description")
    flow.is_manager_first = snapshot.is_manager_first
    flow.sequence_enabled = snapshot.sequence_enabled
    flow.approvers = [spec.to_dict() for spec in snapshot.approvers]
    flow.percent_threshold = snapshot.percent_threshold
    flow.specific_approver_id = snapshot.specific_approver_id
    db.session.commit()

    logger.info("Saved approval flow %s for company %s", flow.id, company_id)
    return flow


# -- snapshots --------------------------------------------------------------


def snapshot_of(state: ExpenseApprovalState) -> Tuple[FlowSnapshot, ApprovalSnapshot]:
    flow = FlowSnapshot.from_dict(state.flow_snapshot)
    decisions = {
        row.approver_user_id: DecisionRecord(decision=row.status, at=row.acted_at, comment=row.comment)
        for row in state.decisions
    }
    snapshot = ApprovalSnapshot(
        expense_id=state.expense_id,
        chain=approval_chain(flow, state.manager_id),
        manager_id=state.manager_id,
        step_index=state.step_index,
        decisions=decisions,
        status=state.status,
    )
    return flow, snapshot


def _load_state(expense_id: int) -> ExpenseApprovalState:
    state = ExpenseApprovalState.query.filter_by(expense_id=expense_id).one_or_none()
    if state is None:
        raise NotFound(f"Expense {expense_id} has not been submitted for approval.", expense_id=expense_id)
    return state


# -- submission -------------------------------------------------------------


def submit_expense(
    employee: User,
    expense: Expense,
    flow: Optional[FlowSnapshot] = None,
) -> ExpenseApprovalState:
    """Freeze the flow for ``expense`` and open its approval state.

    Nothing is committed if the flow yields no approvers for this employee.
    """
    if expense.approval_state is not None or expense.status not in (None, ExpenseStatus.DRAFT):
        raise AlreadySubmitted(f"Expense {expense.id} has already been submitted.", expense_id=expense.id)

    resolver = get_resolver()
    try:
        if flow is None:
            flow = current_flow_snapshot(employee.company_id)
        if expense.id is None:
            db.session.add(expense)
            db.session.flush()

        manager_id = directory.manager_of(employee) if flow.is_manager_first else None
        snapshot = resolver.start(flow, expense_id=expense.id, manager_id=manager_id)

        now = datetime.utcnow()
        state = ExpenseApprovalState(
            expense_id=expense.id,
            flow_snapshot=flow.to_dict(),
            manager_id=snapshot.manager_id,
            step_index=snapshot.step_index,
            status=ApprovalState.WAITING,
            updated_at=now,
        )
        for position, spec in enumerate(snapshot.chain, start=1):
            state.decisions.append(
                ExpenseApproval(
                    expense_id=expense.id,
                    approver_user_id=spec.user_id,
                    step_number=position,
                    required=spec.required,
                )
            )
        expense.approval_state = state
        expense.status = ExpenseStatus.WAITING
        expense.submitted_at = now
        db.session.add(state)
        AuditLog.record("expense", expense.id, "submitted", user_id=employee.id, at=now, comment=expense.remarks or "")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Expense %s submitted by user %s with approver chain %s",
        expense.id,
        employee.id,
        [spec.user_id for spec in snapshot.chain],
    )
    _notify_approvers(expense, resolver.eligible_approvers(flow, snapshot))
    return state


# -- decisions --------------------------------------------------------------


def record_decision(
    expense_id: int,
    approver_id: int,
    decision: Any,
    comment: Optional[str] = None,
) -> ExpenseApprovalState:
    """Apply one approver decision atomically.

    Raises the resolver's typed errors; on those nothing is written.
    """
    resolver = get_resolver()
    attempts = max(1, int(current_app.config.get("APPROVAL_COMMIT_RETRIES", 3)))

    for attempt in range(1, attempts + 1):
        try:
            state = _load_state(expense_id)
            flow, before = snapshot_of(state)
            after = resolver.record_decision(flow, before, approver_id, decision, comment)
        except ApprovalError:
            db.session.rollback()
            raise

        try:
            _apply_decision(state, after, approver_id)
            db.session.commit()
        except StaleDataError:
            db.session.rollback()
            logger.info(
                "Expense %s changed while deciding (attempt %s/%s); re-evaluating",
                expense_id,
                attempt,
                attempts,
            )
            continue
        except Exception:
            db.session.rollback()
            logger.exception("Could not store decision by user %s on expense %s", approver_id, expense_id)
            raise

        logger.info(
            "User %s %s expense %s; status=%s step=%s",
            approver_id,
            after.decisions[approver_id].decision.value,
            expense_id,
            after.status.value,
            after.step_index,
        )
        _notify_after_decision(state, flow, before, after, resolver, approver_id)
        return state

    raise ConcurrentUpdate(
        f"Expense {expense_id} kept changing; please retry.",
        expense_id=expense_id,
    )


def _apply_decision(state: ExpenseApprovalState, after: ApprovalSnapshot, approver_id: int) -> None:
    record = after.decisions[approver_id]
    row = state.decision_for(approver_id)
    row.status = record.decision
    row.comment = record.comment
    row.acted_at = record.at

    now = datetime.utcnow()
    # Always dirty the state row so the version check covers every decision.
    state.updated_at = now
    state.step_index = after.step_index
    state.status = after.status
    state.expense.status = _EXPENSE_STATUS[after.status]

    AuditLog.record(
        "expense",
        state.expense_id,
        record.decision.value,
        user_id=approver_id,
        at=record.at,
        comment=record.comment or "",
    )
    if after.is_terminal:
        state.resolved_at = now
        AuditLog.record(
            "approval_state",
            state.id,
            "resolved",
            user_id=approver_id,
            at=now,
            expense_id=state.expense_id,
            status=after.status.value,
        )


def decide_task(task_id: int, user: User, decision: Any, comment: Optional[str] = None) -> ExpenseApprovalState:
    """Record ``user``'s decision on the queue task ``task_id``."""
    task = db.session.get(ExpenseApproval, task_id)
    if task is None or task.approver_user_id != user.id:
        raise NotFound(f"Approval task {task_id} not found.", task_id=task_id)
    return record_decision(task.expense_id, user.id, decision, comment)


# -- reads ------------------------------------------------------------------


def get_eligible_approvers(expense_id: int) -> FrozenSet[int]:
    flow, snapshot = snapshot_of(_load_state(expense_id))
    return get_resolver().eligible_approvers(flow, snapshot)


def approval_queue(user: User) -> List[Dict[str, Any]]:
    """Pending tasks ``user`` may act on right now."""
    resolver = get_resolver()
    rows = (
        ExpenseApproval.query.join(ExpenseApprovalState, ExpenseApproval.state_id == ExpenseApprovalState.id)
        .filter(
            ExpenseApproval.approver_user_id == user.id,
            ExpenseApproval.status == ApprovalDecisionStatus.PENDING,
            ExpenseApprovalState.status == ApprovalState.WAITING,
        )
        .order_by(ExpenseApproval.created_at.asc(), ExpenseApproval.id.asc())
        .all()
    )

    tasks = []
    for row in rows:
        flow, snapshot = snapshot_of(row.state)
        if user.id not in resolver.eligible_approvers(flow, snapshot):
            continue
        expense = row.expense
        tasks.append(
            {
                "id": row.id,
                "expenseId": expense.id,
                "stepOrder": row.step_number,
                "decision": row.status.value,
                "comment": row.comment or "",
                "createdAt": row.created_at.isoformat() if row.created_at else None,
                "amountCompanyCcy": float(expense.amount_in_company_currency)
                if expense.amount_in_company_currency is not None
                else None,
                "companyCurrency": expense.company.currency_code,
                "submittedCurrency": expense.currency_original,
                "ownerName": expense.submitter.name,
                "category": expense.category,
                "description": expense.description,
            }
        )
    return tasks


def expense_detail(expense: Expense) -> Dict[str, Any]:
    events = (
        AuditLog.query.filter_by(entity_type="expense", entity_id=expense.id)
        .order_by(AuditLog.timestamp.asc(), AuditLog.id.asc())
        .all()
    )
    payload = expense.to_dict()
    payload["timeline"] = [event.to_timeline_event() for event in events]
    payload["approval"] = None
    if expense.approval_state is not None:
        flow, snapshot = snapshot_of(expense.approval_state)
        payload["approval"] = get_resolver().progress(flow, snapshot)
    return payload


# -- notifications ----------------------------------------------------------


def _notify_approvers(expense: Expense, approver_ids) -> None:
    if not approver_ids:
        return
    try:
        recipients = directory.company_members(expense.company_id, approver_ids)
        email_service.send_approval_request(
            [user.email for user in recipients.values()],
            expense_id=expense.id,
            owner_name=expense.submitter.name,
            amount=f"{expense.amount_in_company_currency} {expense.company.currency_code}",
        )
    except Exception:
        logger.exception("Approval request notification failed for expense %s", expense.id)


def _notify_after_decision(
    state: ExpenseApprovalState,
    flow: FlowSnapshot,
    before: ApprovalSnapshot,
    after: ApprovalSnapshot,
    resolver: ApprovalResolver,
    approver_id: int,
) -> None:
    expense = state.expense
    if after.is_terminal:
        try:
            record = after.decisions[approver_id]
            email_service.send_resolution(
                expense.submitter.email,
                expense_id=expense.id,
                status=after.status.value,
                comment=record.comment,
            )
        except Exception:
            logger.exception("Resolution notification failed for expense %s", expense.id)
        return

    newly_eligible = resolver.eligible_approvers(flow, after) - resolver.eligible_approvers(flow, before)
    _notify_approvers(expense, newly_eligible)
