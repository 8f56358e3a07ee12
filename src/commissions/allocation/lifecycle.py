"""Commission lifecycle — enforces valid status transitions.

Commission lifecycle:
    DRAFT → PENDING → APPROVED → PAID
    Any non-terminal state → CANCELLED

State semantics:
- DRAFT: created with no assignments yet.
- PENDING: allocated, awaiting approval.
- APPROVED: signed off by an approver; every assignment is approved.
- PAID: terminal — every assignment has been paid out.
- CANCELLED: terminal — the commission was withdrawn.

Approval is refused for a commission with no assignments or whose
totals no longer match its assignments. Approve, pay and cancel carry
the new status down to every role assignment.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from commissions.models.commission import (
    STATUS_TRANSITIONS,
    CommissionStatus,
    TransactionCommission,
)

_TERMINAL = frozenset({CommissionStatus.PAID, CommissionStatus.CANCELLED})


class CommissionLifecycle:
    """Validates and applies commission status transitions.

    Methods return a list of errors (empty = OK). Side effects beyond
    the commission itself (event logging, persistence) belong to the
    service layer.
    """

    @staticmethod
    def validate_transition(
        commission: TransactionCommission,
        target: CommissionStatus,
    ) -> list[str]:
        """Check if a transition is valid. Returns errors (empty = OK)."""
        current = commission.status
        allowed = STATUS_TRANSITIONS.get(current, frozenset())
        if target not in allowed:
            allowed_str = ", ".join(sorted(s.value for s in allowed))
            return [
                f"Invalid commission transition: {current.value} → {target.value}. "
                f"Allowed from {current.value}: [{allowed_str}]"
            ]
        return []

    @staticmethod
    def submit(commission: TransactionCommission) -> list[str]:
        """Move a DRAFT commission to PENDING."""
        errors = CommissionLifecycle.validate_transition(commission, CommissionStatus.PENDING)
        if not errors and not commission.role_assignments:
            errors.append("Cannot submit a commission with no role assignments")
        if errors:
            return errors
        commission.transition_to(CommissionStatus.PENDING)
        return []

    @staticmethod
    def approve(
        commission: TransactionCommission,
        approved_by: str,
        now: Optional[datetime] = None,
    ) -> list[str]:
        errors = CommissionLifecycle.validate_transition(commission, CommissionStatus.APPROVED)
        if errors:
            return errors
        if not approved_by:
            errors.append("Approval requires an approver id")
        if not commission.role_assignments:
            errors.append("Cannot approve a commission with no role assignments")
        if not commission.totals_consistent():
            errors.append(
                "Commission totals do not match its role assignments; "
                "recompute before approval"
            )
        if errors:
            return errors

        commission.transition_to(CommissionStatus.APPROVED)
        commission.approved_by = approved_by
        commission.approved_utc = now or datetime.now(timezone.utc)
        for assignment in commission.role_assignments:
            assignment.status = CommissionStatus.APPROVED
        return []

    @staticmethod
    def mark_paid(
        commission: TransactionCommission,
        now: Optional[datetime] = None,
    ) -> list[str]:
        errors = CommissionLifecycle.validate_transition(commission, CommissionStatus.PAID)
        if errors:
            return errors
        commission.transition_to(CommissionStatus.PAID)
        commission.paid_utc = now or datetime.now(timezone.utc)
        for assignment in commission.role_assignments:
            assignment.status = CommissionStatus.PAID
        return []

    @staticmethod
    def cancel(
        commission: TransactionCommission,
        now: Optional[datetime] = None,
    ) -> list[str]:
        errors = CommissionLifecycle.validate_transition(commission, CommissionStatus.CANCELLED)
        if errors:
            return errors
        commission.transition_to(CommissionStatus.CANCELLED)
        commission.cancelled_utc = now or datetime.now(timezone.utc)
        for assignment in commission.role_assignments:
            assignment.status = CommissionStatus.CANCELLED
        return []

    @staticmethod
    def is_terminal(status: CommissionStatus) -> bool:
        """Check if a status is terminal (no further transitions)."""
        return status in _TERMINAL

    @staticmethod
    def valid_transitions(status: CommissionStatus) -> set[CommissionStatus]:
        """Return the set of valid target statuses from the given status."""
        return set(STATUS_TRANSITIONS.get(status, frozenset()))
