"""Approval-flow resolution engine.

Everything in this module works on immutable snapshots and never touches the
database session. :mod:`expenseflow.services.approval_service` loads rows,
hands snapshots to :class:`ApprovalResolver` and persists what comes back, so a
failed decision leaves nothing half-written.

Resolution order for every incoming decision:

1. a rejection from a *required* approver rejects the expense;
2. an approval from the flow's specific approver approves it;
3. with a percent threshold, approvals / approvers * 100 >= threshold approves it;
4. with sequencing, an approval advances the step (past the last step the
   expense is approved) and any rejection halts the sequence as rejected;
5. otherwise every approver must approve, and a rejection rejects.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Union

from expenseflow.models.approval import ApprovalDecisionStatus, ApprovalState
from expenseflow.services.errors import (
    AlreadyDecided,
    AlreadyResolved,
    InvalidConfig,
    InvalidDecision,
    NoApprovers,
    NotEligible,
    UnknownApprover,
)

DecisionInput = Union[ApprovalDecisionStatus, str]


class RejectionPolicy(enum.Enum):
    """How a non-required approver's rejection counts outside sequencing.

    ``VETO`` rejects the expense outright (or, with a percent threshold, keeps
    the rejector in the denominator). ``EXCLUDE`` drops the rejector from the
    denominator and from the all-approved check.
    """

    VETO = "veto"
    EXCLUDE = "exclude"

    @classmethod
    def coerce(cls, value: Union["RejectionPolicy", str, None]) -> "RejectionPolicy":
        if value is None:
            return cls.VETO
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidConfig(
                f"Unknown rejection policy '{value}'.", field="APPROVAL_REJECTION_POLICY"
            ) from None


@dataclass(frozen=True)
class ApproverSpec:
    user_id: int
    required: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"user_id": self.user_id, "required": self.required}


@dataclass(frozen=True)
class FlowSnapshot:
    """Immutable copy of an approval flow as it stood at submission time."""

    is_manager_first: bool = False
    sequence_enabled: bool = False
    approvers: Tuple[ApproverSpec, ...] = ()
    percent_threshold: Optional[int] = None
    specific_approver_id: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FlowSnapshot":
        approvers = tuple(
            ApproverSpec(user_id=int(entry["user_id"]), required=bool(entry.get("required", True)))
            for entry in data.get("approvers") or ()
        )
        threshold = data.get("percent_threshold")
        specific = data.get("specific_approver_id")
        return cls(
            is_manager_first=bool(data.get("is_manager_first", False)),
            sequence_enabled=bool(data.get("sequence_enabled", False)),
            approvers=approvers,
            percent_threshold=int(threshold) if threshold is not None else None,
            specific_approver_id=int(specific) if specific is not None else None,
        )

    @classmethod
    def from_model(cls, flow: Any) -> "FlowSnapshot":
        return cls.from_dict(
            {
                "is_manager_first": flow.is_manager_first,
                "sequence_enabled": flow.sequence_enabled,
                "approvers": flow.approvers,
                "percent_threshold": flow.percent_threshold,
                "specific_approver_id": flow.specific_approver_id,
            }
        )

    @property
    def approver_ids(self) -> List[int]:
        return [spec.user_id for spec in self.approvers]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_manager_first": self.is_manager_first,
            "sequence_enabled": self.sequence_enabled,
            "approvers": [spec.to_dict() for spec in self.approvers],
            "percent_threshold": self.percent_threshold,
            "specific_approver_id": self.specific_approver_id,
        }


@dataclass(frozen=True)
class DecisionRecord:
    decision: ApprovalDecisionStatus = ApprovalDecisionStatus.PENDING
    at: Optional[datetime] = None
    comment: Optional[str] = None


@dataclass(frozen=True)
class ApprovalSnapshot:
    """Approval progress of one expense.

    ``chain`` is the resolved approver order (manager first when the flow asks
    for it). ``decisions`` only holds approvers that have acted or were seeded
    as pending; a missing entry means pending.
    """

    expense_id: Optional[int]
    chain: Tuple[ApproverSpec, ...]
    manager_id: Optional[int] = None
    step_index: int = 0
    decisions: Mapping[int, DecisionRecord] = field(default_factory=dict)
    status: ApprovalState = ApprovalState.WAITING

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def approver(self, user_id: int) -> Optional[ApproverSpec]:
        return next((spec for spec in self.chain if spec.user_id == user_id), None)

    def decision_of(self, user_id: int) -> ApprovalDecisionStatus:
        record = self.decisions.get(user_id)
        return record.decision if record else ApprovalDecisionStatus.PENDING

    def has_decided(self, user_id: int) -> bool:
        return self.decision_of(user_id) is not ApprovalDecisionStatus.PENDING

    def count(self, decision: ApprovalDecisionStatus, among: Optional[Iterable[ApproverSpec]] = None) -> int:
        specs = self.chain if among is None else among
        return sum(1 for spec in specs if self.decision_of(spec.user_id) is decision)


def approval_chain(flow: FlowSnapshot, manager_id: Optional[int]) -> Tuple[ApproverSpec, ...]:
    """Return the ordered approvers for an employee with the given manager."""
    chain: List[ApproverSpec] = []
    if flow.is_manager_first and manager_id is not None:
        chain.append(ApproverSpec(user_id=manager_id, required=True))
    seen = {spec.user_id for spec in chain}
    for spec in flow.approvers:
        if spec.user_id in seen:
            continue
        seen.add(spec.user_id)
        chain.append(spec)
    return tuple(chain)


def validate_flow(flow: FlowSnapshot) -> FlowSnapshot:
    """Check the shape of a flow before it is saved."""
    threshold = flow.percent_threshold
    if threshold is not None and (isinstance(threshold, bool) or not 1 <= threshold <= 100):
        raise InvalidConfig("percentThreshold must be an integer between 1 and 100.", field="percentThreshold")

    ids = flow.approver_ids
    if any(user_id <= 0 for user_id in ids):
        raise InvalidConfig("Approver ids must be positive integers.", field="approvers")
    if len(set(ids)) != len(ids):
        raise InvalidConfig("Each approver may appear only once.", field="approvers")

    if flow.sequence_enabled and not ids:
        raise InvalidConfig("A sequenced flow needs at least one approver.", field="approvers")
    if not ids and not flow.is_manager_first:
        raise InvalidConfig("The flow has no approvers.", field="approvers")
    if threshold is not None and not ids and not flow.is_manager_first:
        raise InvalidConfig("percentThreshold needs at least one approver.", field="percentThreshold")

    specific = flow.specific_approver_id
    if specific is not None and specific not in ids and not flow.is_manager_first:
        raise InvalidConfig(
            "specificApproverId must be one of the approvers or the manager.",
            field="specificApproverId",
        )
    return flow


class ApprovalResolver:
    """Evaluates decisions against a flow snapshot."""

    def __init__(self, policy: Union[RejectionPolicy, str, None] = RejectionPolicy.VETO) -> None:
        self.policy = RejectionPolicy.coerce(policy)

    def start(
        self,
        flow: FlowSnapshot,
        expense_id: Optional[int] = None,
        manager_id: Optional[int] = None,
    ) -> ApprovalSnapshot:
        chain = approval_chain(flow, manager_id)
        if not chain:
            raise NoApprovers(
                "No approvers are configured for this employee.",
                expense_id=expense_id,
                manager_id=manager_id,
            )
        return ApprovalSnapshot(
            expense_id=expense_id,
            chain=chain,
            manager_id=manager_id if flow.is_manager_first else None,
            decisions={spec.user_id: DecisionRecord() for spec in chain},
        )

    # -- eligibility ---------------------------------------------------------

    def eligible_approvers(self, flow: FlowSnapshot, state: ApprovalSnapshot) -> FrozenSet[int]:
        if state.is_terminal:
            return frozenset()

        eligible = set()
        if flow.sequence_enabled:
            gate = self._manager_gate(flow, state)
            if gate is not None:
                eligible.add(gate)
            elif state.step_index < len(state.chain):
                current = state.chain[state.step_index]
                if not state.has_decided(current.user_id):
                    eligible.add(current.user_id)
        else:
            eligible.update(spec.user_id for spec in state.chain if not state.has_decided(spec.user_id))

        specific = flow.specific_approver_id
        if specific is not None and state.approver(specific) and not state.has_decided(specific):
            eligible.add(specific)
        return frozenset(eligible)

    @staticmethod
    def _manager_gate(flow: FlowSnapshot, state: ApprovalSnapshot) -> Optional[int]:
        manager_id = state.manager_id
        if not flow.is_manager_first or manager_id is None or not state.chain:
            return None
        if state.chain[0].user_id != manager_id or state.has_decided(manager_id):
            return None
        return manager_id

    # -- decisions -----------------------------------------------------------

    def record_decision(
        self,
        flow: FlowSnapshot,
        state: ApprovalSnapshot,
        approver_id: int,
        decision: DecisionInput,
        comment: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> ApprovalSnapshot:
        """Apply one decision and return the re-evaluated state.

        ``state`` itself is left untouched; callers persist the returned
        snapshot only if no error was raised.
        """
        if state.is_terminal:
            raise AlreadyResolved(
                f"Expense is already {state.status.value}.",
                expense_id=state.expense_id,
                status=state.status.value,
            )
        decision = self._coerce_decision(decision)
        spec = state.approver(approver_id)
        if spec is None:
            raise UnknownApprover(
                f"User {approver_id} is not an approver for this expense.",
                expense_id=state.expense_id,
                approver_id=approver_id,
            )
        if state.has_decided(approver_id):
            raise AlreadyDecided(
                f"User {approver_id} already recorded a decision.",
                expense_id=state.expense_id,
                approver_id=approver_id,
            )
        if approver_id not in self.eligible_approvers(flow, state):
            raise NotEligible(
                f"User {approver_id} cannot decide on this expense yet.",
                expense_id=state.expense_id,
                approver_id=approver_id,
                step_index=state.step_index,
            )

        decisions = dict(state.decisions)
        decisions[approver_id] = DecisionRecord(decision=decision, at=at or datetime.utcnow(), comment=comment)
        decided = replace(state, decisions=decisions)

        status, step_index = self._evaluate(flow, decided, spec, decision)
        return replace(decided, status=status, step_index=step_index)

    def _evaluate(
        self,
        flow: FlowSnapshot,
        state: ApprovalSnapshot,
        spec: ApproverSpec,
        decision: ApprovalDecisionStatus,
    ) -> Tuple[ApprovalState, int]:
        step_index = state.step_index

        if decision is ApprovalDecisionStatus.REJECTED and spec.required:
            return ApprovalState.REJECTED, step_index

        if decision is ApprovalDecisionStatus.APPROVED and spec.user_id == flow.specific_approver_id:
            return ApprovalState.APPROVED, step_index

        if flow.percent_threshold is not None and self._threshold_met(flow, state):
            return ApprovalState.APPROVED, step_index

        if flow.sequence_enabled:
            if decision is ApprovalDecisionStatus.REJECTED:
                return ApprovalState.REJECTED, step_index
            step_index = self._next_step(state)
            if step_index >= len(state.chain):
                return ApprovalState.APPROVED, step_index
            return ApprovalState.WAITING, step_index

        if flow.percent_threshold is not None:
            if not self._threshold_reachable(flow, state):
                return ApprovalState.REJECTED, step_index
            return ApprovalState.WAITING, step_index

        return self._all_approved(state), step_index

    @staticmethod
    def _next_step(state: ApprovalSnapshot) -> int:
        index = state.step_index
        while index < len(state.chain) and state.has_decided(state.chain[index].user_id):
            index += 1
        return index

    def _counted(self, state: ApprovalSnapshot) -> List[ApproverSpec]:
        if self.policy is RejectionPolicy.VETO:
            return list(state.chain)
        return [
            spec
            for spec in state.chain
            if spec.required or state.decision_of(spec.user_id) is not ApprovalDecisionStatus.REJECTED
        ]

    def _threshold_met(self, flow: FlowSnapshot, state: ApprovalSnapshot) -> bool:
        counted = self._counted(state)
        if not counted:
            return False
        approved = state.count(ApprovalDecisionStatus.APPROVED, counted)
        return approved * 100 >= flow.percent_threshold * len(counted)

    def _threshold_reachable(self, flow: FlowSnapshot, state: ApprovalSnapshot) -> bool:
        counted = self._counted(state)
        if not counted:
            return False
        best_case = state.count(ApprovalDecisionStatus.APPROVED, counted) + state.count(
            ApprovalDecisionStatus.PENDING, counted
        )
        return best_case * 100 >= flow.percent_threshold * len(counted)

    def _all_approved(self, state: ApprovalSnapshot) -> ApprovalState:
        counted = self._counted(state)
        if state.count(ApprovalDecisionStatus.REJECTED, counted):
            return ApprovalState.REJECTED
        if not counted:
            return ApprovalState.REJECTED
        if state.count(ApprovalDecisionStatus.APPROVED, counted) == len(counted):
            return ApprovalState.APPROVED
        return ApprovalState.WAITING

    @staticmethod
    def _coerce_decision(decision: DecisionInput) -> ApprovalDecisionStatus:
        if isinstance(decision, ApprovalDecisionStatus):
            value = decision
        else:
            try:
                value = ApprovalDecisionStatus(str(decision).strip().lower())
            except ValueError:
                raise InvalidDecision(f"Unknown decision '{decision}'.") from None
        if value is ApprovalDecisionStatus.PENDING:
            raise InvalidDecision("A decision must be 'approved' or 'rejected'.")
        return value

    # -- reporting -----------------------------------------------------------

    def progress(self, flow: FlowSnapshot, state: ApprovalSnapshot) -> Dict[str, Any]:
        """Summary used by the expense detail view."""
        counted = self._counted(state)
        approved = state.count(ApprovalDecisionStatus.APPROVED, counted)
        percent = round(approved * 100 / len(counted), 2) if counted else 0.0
        return {
            "status": state.status.value,
            "stepIndex": state.step_index,
            "approvedCount": approved,
            "rejectedCount": state.count(ApprovalDecisionStatus.REJECTED),
            "totalApprovers": len(counted),
            "approvedPercent": percent,
            "eligibleApprovers": sorted(self.eligible_approvers(flow, state)),
            "chain": [spec.to_dict() for spec in state.chain],
        }
