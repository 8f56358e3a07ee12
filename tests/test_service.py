"""Tests for the commission service — end-to-end evaluation, lifecycle and audit trail."""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any

from commissions.allocation.allocator import SplitParticipant
from commissions.calculation.strategy import StrategyRegistry
from commissions.models.commission import (
    CommissionRule,
    CommissionRuleAction,
    CommissionStatus,
    CommissionStructure,
    CommissionTier,
    TransactionAttributes,
)
from commissions.persistence.event_log import EventKind, EventLog
from commissions.persistence.repository import InMemoryRuleRepository
from commissions.policy.resolver import PolicyResolver
from commissions.service import CommissionService


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"
NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


@pytest.fixture
def service(resolver: PolicyResolver) -> CommissionService:
    return CommissionService(resolver)


def _make_transaction(
    transaction_id: str = "T-001",
    transaction_type: str = "ats-subscription",
    base_amount: str = "8100",
    **kwargs: Any,
) -> TransactionAttributes:
    return TransactionAttributes(
        transaction_id=transaction_id,
        transaction_type=transaction_type,
        base_amount=Decimal(base_amount),
        transaction_date=date(2026, 3, 1),
        **kwargs,
    )


CONSULTANTS = [("sales-agent", "c-1"), ("account-manager", "c-2")]


class TestEvaluate:
    def test_ats_subscription_end_to_end(self, service: CommissionService) -> None:
        result = service.evaluate_transaction(_make_transaction(), consultants=CONSULTANTS, now=NOW)
        assert result.success, result.errors
        assert result.data["total_commission_amount"] == "3240.00"
        assert result.data["total_commission_percentage"] == "40.0000"
        assert [a["commission_amount"] for a in result.data["role_assignments"]] == ["2430.00", "810.00"]
        assert result.data["status"] == "pending"

        stored = service.get_commission("T-001")
        assert stored is not None
        assert stored.total_commission_amount == Decimal("3240")

    def test_tiered_structure_feeds_allocation(self, service: CommissionService) -> None:
        structure = CommissionStructure.tiered([
            CommissionTier(lower=Decimal("0"), upper=Decimal("50000"), rate=Decimal("5")),
            CommissionTier(lower=Decimal("50000"), upper=None, rate=Decimal("8")),
        ])
        result = service.evaluate_transaction(
            _make_transaction(base_amount="120000"),
            structure=structure,
            consultants=CONSULTANTS + [("team-lead", "c-3")],
            now=NOW,
        )
        assert result.success, result.errors
        commission = service.get_commission("T-001")
        assert commission.total_commissionable_amount == Decimal("8100")
        assert commission.base_amount == Decimal("120000")
        # 30% + 10% + large-deal 5% of 8100
        assert commission.total_commission_amount == Decimal("3645")

    def test_audit_trail(self, service: CommissionService) -> None:
        service.evaluate_transaction(_make_transaction(), consultants=CONSULTANTS, now=NOW)
        kinds = [e.event_kind for e in service.event_log.events_for("T-001")]
        assert kinds == [
            EventKind.COMMISSION_CALCULATED,
            EventKind.RULES_MATCHED,
            EventKind.COMMISSION_ALLOCATED,
        ]
        matched = service.event_log.events(EventKind.RULES_MATCHED)[0]
        assert matched.payload["rule_ids"] == ["rule_ats_subscription"]

    def test_duplicate_transaction_rejected(self, service: CommissionService) -> None:
        assert service.evaluate_transaction(_make_transaction(), consultants=CONSULTANTS).success
        result = service.evaluate_transaction(_make_transaction(), consultants=CONSULTANTS)
        assert not result.success
        assert "already exists" in result.errors[0]

    def test_invalid_amount_is_recorded(self, service: CommissionService) -> None:
        result = service.evaluate_transaction(_make_transaction(base_amount="-10"), now=NOW)
        assert not result.success
        assert "invalid_amount" in result.errors[0]
        assert service.get_commission("T-001") is None
        failed = service.event_log.events(EventKind.EVALUATION_FAILED)
        assert len(failed) == 1
        assert failed[0].payload["stage"] == "calculate"
        assert failed[0].payload["error_kinds"] == ["invalid_amount"]

    def test_duplicate_role_action_fails(self, resolver: PolicyResolver) -> None:
        rules = resolver.default_rules(date(2026, 1, 1)) + [
            CommissionRule(
                rule_id="rule_extra_sales",
                priority=1,
                conditions=(),
                actions=(CommissionRuleAction(role_type="sales-agent", percentage=Decimal("5")),),
                effective_from=date(2026, 1, 1),
            ),
        ]
        service = CommissionService(resolver, rule_repository=InMemoryRuleRepository(rules))
        result = service.evaluate_transaction(_make_transaction(), consultants=CONSULTANTS)
        assert not result.success
        assert "duplicate_role_action" in result.errors[0]

    def test_missing_custom_strategy_warns(self, service: CommissionService) -> None:
        result = service.evaluate_transaction(
            _make_transaction(),
            structure=CommissionStructure.custom("retainer"),
            consultants=CONSULTANTS,
        )
        assert result.success
        assert result.data["total_commission_amount"] == "0.00"
        assert any("missing_custom_strategy" in w for w in result.data["warnings"])

    def test_registered_custom_strategy(self, resolver: PolicyResolver) -> None:
        registry = StrategyRegistry()
        registry.register("retainer", lambda base: base / 2)
        service = CommissionService(resolver, registry=registry)
        result = service.evaluate_transaction(
            _make_transaction(),
            structure=CommissionStructure.custom("retainer"),
            consultants=CONSULTANTS,
        )
        assert result.data["total_commissionable_amount"] == "4050.00"


class TestSplit:
    def test_split_fixed_total(self, service: CommissionService) -> None:
        tx = _make_transaction(transaction_type="split", base_amount="1000")
        result = service.split_fixed_total(tx, Decimal("1000"), [
            SplitParticipant("c-1", Decimal("60")),
            SplitParticipant("c-2", Decimal("40")),
        ])
        assert result.success
        assert service.event_log.events(EventKind.SPLIT_RECORDED)

    def test_split_mismatch(self, service: CommissionService) -> None:
        tx = _make_transaction(transaction_type="split", base_amount="1000")
        result = service.split_fixed_total(tx, Decimal("1000"), [
            SplitParticipant("c-1", Decimal("60")),
            SplitParticipant("c-2", Decimal("30")),
        ])
        assert not result.success
        assert "split_mismatch" in result.errors[0]
        assert service.get_commission(tx.transaction_id) is None


class TestLifecycle:
    def test_approve_then_pay(self, service: CommissionService) -> None:
        service.evaluate_transaction(_make_transaction(), consultants=CONSULTANTS, now=NOW)
        approved = service.approve("T-001", approved_by="finance-01", now=NOW)
        assert approved.success
        assert approved.data["status"] == "approved"
        paid = service.mark_paid("T-001", now=NOW)
        assert paid.success

        commission = service.get_commission("T-001")
        assert commission.status == CommissionStatus.PAID
        assert all(a.status == CommissionStatus.PAID for a in commission.role_assignments)

        changes = service.event_log.events(EventKind.COMMISSION_STATUS_CHANGED)
        assert [(e.payload["from"], e.payload["to"]) for e in changes] == [
            ("pending", "approved"),
            ("approved", "paid"),
        ]
        assert changes[0].actor_id == "finance-01"

    def test_invalid_transition(self, service: CommissionService) -> None:
        service.evaluate_transaction(_make_transaction(), consultants=CONSULTANTS)
        result = service.mark_paid("T-001")
        assert not result.success
        assert "Invalid commission transition" in result.errors[0]

    def test_unknown_commission(self, service: CommissionService) -> None:
        result = service.approve("T-404", approved_by="finance-01")
        assert not result.success
        assert "not found" in result.errors[0]

    def test_cancel(self, service: CommissionService) -> None:
        service.evaluate_transaction(_make_transaction(), consultants=CONSULTANTS)
        assert service.cancel("T-001", cancelled_by="finance-01").success
        assert service.commissions(CommissionStatus.CANCELLED)[0].transaction_id == "T-001"

    def test_failed_audit_write_rolls_back(self, resolver: PolicyResolver, tmp_path: Path) -> None:
        log_dir = tmp_path / "logs"
        log_dir.mkdir()
        service = CommissionService(resolver, event_log=EventLog(storage_path=log_dir / "events.jsonl"))
        service.evaluate_transaction(_make_transaction(), consultants=CONSULTANTS)
        # Make the storage path unwritable by replacing the file with a directory
        (log_dir / "events.jsonl").unlink()
        (log_dir / "events.jsonl").mkdir()

        result = service.approve("T-001", approved_by="finance-01")
        assert not result.success
        assert "Event log failure" in result.errors[0]
        commission = service.get_commission("T-001")
        assert commission.status == CommissionStatus.PENDING
        assert commission.approved_by is None
        assert all(a.status == CommissionStatus.PENDING for a in commission.role_assignments)


class TestStats:
    def test_consultant_stats(self, service: CommissionService) -> None:
        service.evaluate_transaction(_make_transaction("T-1"), consultants=CONSULTANTS)
        service.evaluate_transaction(_make_transaction("T-2", base_amount="1000"), consultants=CONSULTANTS)
        service.approve("T-1", approved_by="finance-01")

        stats = service.consultant_stats("c-1")
        assert stats.total_assignments == 2
        assert stats.total_approved == Decimal("2430")
        assert stats.total_pending == Decimal("300")
        assert stats.by_transaction_type["ats-subscription"].count == 2


class TestQueries:
    def test_commissions_for_consultant(self, service: CommissionService) -> None:
        service.evaluate_transaction(_make_transaction("T-1"), consultants=CONSULTANTS)
        service.evaluate_transaction(
            _make_transaction("T-2"), consultants=[("sales-agent", "c-9")],
        )
        assert [c.transaction_id for c in service.commissions_for_consultant("c-1")] == ["T-1"]
        assert [c.transaction_id for c in service.commissions_for_consultant("c-9")] == ["T-2"]
        assert service.commissions_for_consultant("c-404") == []

    def test_commissions_for_employer(self, service: CommissionService) -> None:
        service.evaluate_transaction(_make_transaction("T-1", employer_id="E-1"), consultants=CONSULTANTS)
        service.evaluate_transaction(_make_transaction("T-2", employer_id="E-2"), consultants=CONSULTANTS)
        service.evaluate_transaction(_make_transaction("T-3", employer_id="E-1"), consultants=CONSULTANTS)
        assert [c.transaction_id for c in service.commissions_for_employer("E-1")] == ["T-1", "T-3"]
        assert service.commissions_for_employer("E-404") == []

    def test_rules_and_roles_include_inactive(self, resolver: PolicyResolver) -> None:
        repo = InMemoryRuleRepository.from_resolver(resolver, effective_from=date(2026, 1, 1))
        repo.save(CommissionRule(
            rule_id="rule_retired",
            priority=1,
            conditions=(),
            actions=(CommissionRuleAction(role_type="recruiter", percentage=Decimal("5")),),
            effective_from=date(2026, 1, 1),
            is_active=False,
        ))
        service = CommissionService(resolver, rule_repository=repo)
        assert "rule_retired" in [r.rule_id for r in service.rules()]
        assert len(service.rules()) == 6
        assert len(service.roles()) == 5
