"""Split allocator — divides a commissionable total among role participants.

    percentage action: amount = total × percentage / 100
    flat action:       amount = flat_amount (must fit in what is left)

Invariants checked before a result is returned:
- Σ percentage over percentage actions <= 100            (OVER_ALLOCATED)
- require_exact: Σ percentage == 100 exactly             (SPLIT_MISMATCH)
- running allocated amount never exceeds the total        (OVER_ALLOCATED)
- total_commission_percentage == Σ assignment.percentage  (by construction)
- total_commission_amount == Σ assignment.commission_amount (by construction)

No normalisation: a mis-specified split fails instead of being silently
redistributed. Amounts are rounded once per action; when an action is
shared among several consultants every share but the last is rounded
down and the last one receives the (non-negative) remainder.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Optional

from commissions.calculation.strategy import coerce_amount
from commissions.models.commission import (
    CommissionRole,
    CommissionRoleAssignment,
    CommissionRuleAction,
    CommissionStatus,
    TransactionAttributes,
    TransactionCommission,
)
from commissions.models.results import (
    CommissionError,
    EngineResult,
    ErrorKind,
)
from commissions.policy.config import HUNDRED, EngineConfig

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


@dataclass(frozen=True)
class SplitParticipant:
    """A named consultant's share of a fixed total."""
    consultant_id: str
    split_percentage: Decimal
    role_type: str = "split"
    role_id: Optional[str] = None


def _share(amount: Decimal, parts: int, config: EngineConfig) -> list[Decimal]:
    """Split a rounded amount into parts; the last part takes the remainder."""
    if parts == 1:
        return [amount]
    each = config.round_money_down(amount / parts)
    return [each] * (parts - 1) + [amount - each * (parts - 1)]


class SplitAllocator:
    """Builds a verified TransactionCommission from role actions.

    Usage:
        allocator = SplitAllocator(config)
        result = allocator.allocate(
            Decimal("8100"), actions, roles,
            consultants=[("sales-agent", "c1"), ("account-manager", "c2")],
        )
        if result.ok:
            commission = result.value
    """

    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        self._config = config or EngineConfig()

    def allocate(
        self,
        total_amount: Any,
        actions: Iterable[CommissionRuleAction],
        roles: Iterable[CommissionRole],
        consultants: Iterable[tuple[str, str]],
        require_exact: bool = False,
        transaction: Optional[TransactionAttributes] = None,
    ) -> EngineResult[TransactionCommission]:
        """Allocate total_amount across the participating roles.

        Args:
            total_amount: The commissionable total to divide.
            actions: Role actions, in the order they were matched.
            roles: Reference roles; the first active role of each type is used.
            consultants: (role_type, consultant_id) pairs.
            require_exact: Demand that percentage actions sum to exactly 100.
            transaction: Optional source transaction for identifying fields.

        Returns:
            EngineResult with the TransactionCommission, or an
            INVALID_AMOUNT / OVER_ALLOCATED / SPLIT_MISMATCH error.
        """
        total = coerce_amount(total_amount)
        if total is None:
            return EngineResult.failure(
                ErrorKind.INVALID_AMOUNT,
                f"Total amount must be a finite, non-negative number, got {total_amount!r}",
            )

        active_roles: dict[str, CommissionRole] = {}
        for role in roles:
            if role.is_active and role.role_type not in active_roles:
                active_roles[role.role_type] = role

        recipients_by_role: dict[str, list[str]] = {}
        for role_type, consultant_id in consultants:
            ids = recipients_by_role.setdefault(role_type, [])
            if consultant_id not in ids:
                ids.append(consultant_id)

        warnings: list[CommissionError] = []
        applicable: list[CommissionRuleAction] = []
        for action in actions:
            if action.role_type not in active_roles:
                logger.warning("Skipping action for role '%s': no active role", action.role_type)
                warnings.append(CommissionError(
                    kind=ErrorKind.INACTIVE_ROLE,
                    message=f"No active role of type '{action.role_type}'; action skipped",
                ))
                continue
            value = action.flat_amount if action.is_flat else action.percentage
            if coerce_amount(value) is None:
                return EngineResult.failure(
                    ErrorKind.INVALID_AMOUNT,
                    f"Action for role '{action.role_type}' has an invalid amount: {value!r}",
                    warnings=warnings,
                )
            applicable.append(action)

        pct_sum = sum(
            (a.percentage for a in applicable if not a.is_flat), _ZERO
        )
        if require_exact and pct_sum != HUNDRED:
            return EngineResult.failure(
                ErrorKind.SPLIT_MISMATCH,
                f"Split percentages must sum to exactly 100, got {pct_sum}",
                actual=pct_sum,
                warnings=warnings,
            )
        if pct_sum > HUNDRED:
            return EngineResult.failure(
                ErrorKind.OVER_ALLOCATED,
                f"Percentage actions sum to {pct_sum}, exceeding 100",
                actual=pct_sum,
                warnings=warnings,
            )

        assignments: list[CommissionRoleAssignment] = []
        allocated = _ZERO
        paid_out = _ZERO
        cap = self._config.round_money(total)
        for action in applicable:
            if action.is_flat:
                raw = action.flat_amount
                percentage = _ZERO if total == _ZERO else raw / total * HUNDRED
            else:
                raw = total * action.percentage / HUNDRED
                percentage = action.percentage

            if allocated + raw > total:
                return EngineResult.failure(
                    ErrorKind.OVER_ALLOCATED,
                    f"Action for role '{action.role_type}' needs {raw} but only "
                    f"{total - allocated} of {total} remains",
                    actual=allocated + raw,
                    warnings=warnings,
                )
            allocated += raw

            recipients: list[Optional[str]] = list(recipients_by_role.get(action.role_type, []))
            if not recipients:
                recipients = [None]
            elif not action.apply_to_all:
                recipients = recipients[:1]

            role = active_roles[action.role_type]
            # Per-action rounding must not push the payout past the total
            rounded = min(self._config.round_money(raw), cap - paid_out)
            paid_out += rounded
            amounts = _share(rounded, len(recipients), self._config)
            share_pct = self._config.round_percentage(percentage / len(recipients))
            for consultant_id, amount in zip(recipients, amounts):
                assignments.append(CommissionRoleAssignment(
                    role_id=role.role_id,
                    role_type=action.role_type,
                    consultant_id=consultant_id,
                    percentage=share_pct,
                    commission_amount=amount,
                    status=CommissionStatus.PENDING,
                ))

        commission = self._build(total, assignments, transaction)
        return EngineResult.success(commission, warnings=warnings)

    def split_commission(
        self,
        total_amount: Any,
        participants: Iterable[SplitParticipant],
        transaction: Optional[TransactionAttributes] = None,
    ) -> EngineResult[TransactionCommission]:
        """Split a fixed total among named consultants.

        The split percentages must sum to exactly 100. The last
        participant receives the rounding remainder so the amounts
        always add up to the total.
        """
        total = coerce_amount(total_amount)
        if total is None:
            return EngineResult.failure(
                ErrorKind.INVALID_AMOUNT,
                f"Total amount must be a finite, non-negative number, got {total_amount!r}",
            )

        members = list(participants)
        for member in members:
            if coerce_amount(member.split_percentage) is None:
                return EngineResult.failure(
                    ErrorKind.INVALID_AMOUNT,
                    f"Split for {member.consultant_id} is invalid: {member.split_percentage!r}",
                )

        pct_sum = sum((m.split_percentage for m in members), _ZERO)
        if pct_sum != HUNDRED:
            return EngineResult.failure(
                ErrorKind.SPLIT_MISMATCH,
                f"Split percentages must sum to exactly 100, got {pct_sum}",
                actual=pct_sum,
            )

        rounded_total = self._config.round_money(total)
        assignments: list[CommissionRoleAssignment] = []
        allocated = _ZERO
        for index, member in enumerate(members):
            if index == len(members) - 1:
                amount = rounded_total - allocated
            else:
                amount = self._config.round_money_down(total * member.split_percentage / HUNDRED)
                allocated += amount
            assignments.append(CommissionRoleAssignment(
                role_id=member.role_id or member.role_type,
                role_type=member.role_type,
                consultant_id=member.consultant_id,
                percentage=member.split_percentage,
                commission_amount=amount,
                status=CommissionStatus.PENDING,
            ))

        return EngineResult.success(self._build(total, assignments, transaction))

    def _build(
        self,
        total: Decimal,
        assignments: list[CommissionRoleAssignment],
        transaction: Optional[TransactionAttributes],
    ) -> TransactionCommission:
        commission = TransactionCommission(
            transaction_id=transaction.transaction_id if transaction else "",
            base_amount=transaction.base_amount if transaction else total,
            total_commissionable_amount=total,
            role_assignments=assignments,
            status=CommissionStatus.PENDING if assignments else CommissionStatus.DRAFT,
            transaction_type=transaction.transaction_type if transaction else None,
            transaction_date=transaction.transaction_date if transaction else None,
            employer_id=transaction.employer_id if transaction else None,
        )
        commission.recompute_totals()
        return commission


def allocate(
    total_amount: Any,
    actions: Iterable[CommissionRuleAction],
    roles: Iterable[CommissionRole],
    consultants: Iterable[tuple[str, str]],
    require_exact: bool = False,
    config: Optional[EngineConfig] = None,
) -> EngineResult[TransactionCommission]:
    """Module-level shortcut for SplitAllocator(config).allocate."""
    return SplitAllocator(config).allocate(
        total_amount, actions, roles, consultants, require_exact=require_exact,
    )


def split_commission(
    total_amount: Any,
    participants: Iterable[SplitParticipant],
    config: Optional[EngineConfig] = None,
) -> EngineResult[TransactionCommission]:
    """Module-level shortcut for SplitAllocator(config).split_commission."""
    return SplitAllocator(config).split_commission(total_amount, participants)
