"""Tests for per-consultant commission statistics."""

from decimal import Decimal

from commissions.models.commission import (
    CommissionRoleAssignment,
    CommissionStatus,
    TransactionCommission,
)
from commissions.reporting.stats import consultant_commission_stats


def _make_commission(
    transaction_id: str,
    transaction_type: str,
    assignments: list[tuple[str, str, str, CommissionStatus]],
) -> TransactionCommission:
    commission = TransactionCommission(
        transaction_id=transaction_id,
        base_amount=Decimal("10000"),
        total_commissionable_amount=Decimal("10000"),
        role_assignments=[
            CommissionRoleAssignment(
                role_id=f"role_{role_type}",
                role_type=role_type,
                consultant_id=consultant_id,
                percentage=Decimal("10"),
                commission_amount=Decimal(amount),
                status=status,
            )
            for role_type, consultant_id, amount, status in assignments
        ],
        transaction_type=transaction_type,
    )
    commission.recompute_totals()
    return commission


def _history() -> list[TransactionCommission]:
    return [
        _make_commission("T-1", "ats-subscription", [
            ("sales-agent", "c-1", "2430", CommissionStatus.PAID),
            ("account-manager", "c-2", "810", CommissionStatus.PAID),
        ]),
        _make_commission("T-2", "recruitment-service", [
            ("recruiter", "c-1", "5000", CommissionStatus.APPROVED),
        ]),
        _make_commission("T-3", "ats-subscription", [
            ("sales-agent", "c-1", "300", CommissionStatus.PENDING),
        ]),
        _make_commission("T-4", "addon", [
            ("sales-agent", "c-1", "150", CommissionStatus.CANCELLED),
        ]),
    ]


class TestConsultantStats:
    def test_totals_by_status(self) -> None:
        stats = consultant_commission_stats("c-1", _history())
        assert stats.total_assignments == 4
        assert stats.total_paid == Decimal("2430")
        assert stats.total_approved == Decimal("5000")
        assert stats.total_pending == Decimal("300")
        assert stats.total_earned == Decimal("7730")

    def test_groupings(self) -> None:
        stats = consultant_commission_stats("c-1", _history())
        assert stats.by_role["sales-agent"].count == 3
        assert stats.by_role["sales-agent"].total == Decimal("2880")
        assert stats.by_status["cancelled"].total == Decimal("150")
        assert stats.by_transaction_type["ats-subscription"].count == 2
        assert stats.by_transaction_type["recruitment-service"].total == Decimal("5000")

    def test_unknown_consultant(self) -> None:
        stats = consultant_commission_stats("c-9", _history())
        assert stats.total_assignments == 0
        assert stats.total_earned == Decimal("0")
        assert stats.by_role == {}

    def test_to_dict(self) -> None:
        data = consultant_commission_stats("c-2", _history()).to_dict()
        assert data["total_paid"] == "810"
        assert data["by_role"] == {"account-manager": {"count": 1, "total": "810"}}
