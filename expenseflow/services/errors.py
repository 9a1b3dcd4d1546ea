"""Typed errors raised by the approval and expense services."""
from __future__ import annotations

from typing import Any, Dict, Optional


class ApprovalError(Exception):
    """Base class for recoverable approval workflow errors."""

    code = "approval_error"
    status_code = 400

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class NotEligible(ApprovalError):
    """The approver is part of the chain but may not decide yet."""

    code = "not_eligible"
    status_code = 403


class AlreadyDecided(ApprovalError):
    code = "already_decided"
    status_code = 409


class AlreadyResolved(ApprovalError):
    """The expense reached approved/rejected before this decision committed."""

    code = "already_resolved"
    status_code = 409


class UnknownApprover(ApprovalError):
    code = "unknown_approver"
    status_code = 403


class InvalidDecision(ApprovalError):
    code = "invalid_decision"
    status_code = 400


class InvalidConfig(ApprovalError):
    """Approval flow rejected at save time."""

    code = "invalid_config"
    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None, **details: Any) -> None:
        if field:
            details["field"] = field
        super().__init__(message, **details)
        self.field = field


class NoApprovers(ApprovalError):
    """The flow resolves to an empty approver chain for this employee."""

    code = "no_approvers"
    status_code = 422


class ConcurrentUpdate(ApprovalError):
    code = "concurrent_update"
    status_code = 409


class AlreadySubmitted(ApprovalError):
    code = "already_submitted"
    status_code = 409


class NotFound(ApprovalError):
    code = "not_found"
    status_code = 404
