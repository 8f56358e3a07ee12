"""Per-consultant commission statistics.

Aggregates the role assignments a consultant holds across a set of
transaction commissions. Cancelled assignments are counted but never
contribute to total_earned.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from commissions.models.commission import CommissionStatus, TransactionCommission


@dataclass
class GroupTotal:
    count: int = 0
    total: Decimal = Decimal("0")

    def add(self, amount: Decimal) -> None:
        self.count += 1
        self.total += amount


@dataclass
class ConsultantCommissionStats:
    consultant_id: str
    total_assignments: int = 0
    total_earned: Decimal = Decimal("0")
    total_pending: Decimal = Decimal("0")
    total_approved: Decimal = Decimal("0")
    total_paid: Decimal = Decimal("0")
    by_role: dict[str, GroupTotal] = field(default_factory=dict)
    by_status: dict[str, GroupTotal] = field(default_factory=dict)
    by_transaction_type: dict[str, GroupTotal] = field(default_factory=dict)

    def to_dict(self) -> dict:
        def _groups(groups: dict[str, GroupTotal]) -> dict:
            return {k: {"count": g.count, "total": str(g.total)} for k, g in groups.items()}

        return {
            "consultant_id": self.consultant_id,
            "total_assignments": self.total_assignments,
            "total_earned": str(self.total_earned),
            "total_pending": str(self.total_pending),
            "total_approved": str(self.total_approved),
            "total_paid": str(self.total_paid),
            "by_role": _groups(self.by_role),
            "by_status": _groups(self.by_status),
            "by_transaction_type": _groups(self.by_transaction_type),
        }


def consultant_commission_stats(
    consultant_id: str,
    commissions: Iterable[TransactionCommission],
) -> ConsultantCommissionStats:
    stats = ConsultantCommissionStats(consultant_id=consultant_id)
    for commission in commissions:
        tx_type = commission.transaction_type or "unknown"
        for assignment in commission.role_assignments:
            if assignment.consultant_id != consultant_id:
                continue
            amount = assignment.commission_amount
            stats.total_assignments += 1
            stats.by_role.setdefault(assignment.role_type, GroupTotal()).add(amount)
            stats.by_status.setdefault(assignment.status.value, GroupTotal()).add(amount)
            stats.by_transaction_type.setdefault(tx_type, GroupTotal()).add(amount)

            if assignment.status == CommissionStatus.CANCELLED:
                continue
            stats.total_earned += amount
            if assignment.status == CommissionStatus.PENDING:
                stats.total_pending += amount
            elif assignment.status == CommissionStatus.APPROVED:
                stats.total_approved += amount
            elif assignment.status == CommissionStatus.PAID:
                stats.total_paid += amount
    return stats
