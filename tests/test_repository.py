"""Tests for the in-memory rule and role repositories."""

import pytest
from datetime import date
from decimal import Decimal
from pathlib import Path

from commissions.models.commission import (
    CommissionRole,
    CommissionRule,
    CommissionRuleAction,
    TransactionAttributes,
)
from commissions.persistence.repository import (
    InMemoryRoleRepository,
    InMemoryRuleRepository,
    RuleRepository,
)
from commissions.policy.resolver import PolicyResolver
from commissions.service import CommissionService


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


def _make_rule(rule_id: str, priority: int, **kwargs) -> CommissionRule:
    return CommissionRule(
        rule_id=rule_id,
        priority=priority,
        conditions=(),
        actions=(CommissionRuleAction(role_type="recruiter", percentage=Decimal("10")),),
        effective_from=kwargs.pop("effective_from", date(2026, 1, 1)),
        **kwargs,
    )


class TestRuleRepository:
    def test_seeded_from_policy(self, resolver: PolicyResolver) -> None:
        repo = InMemoryRuleRepository.from_resolver(resolver, effective_from=date(2026, 1, 1))
        assert len(repo.active_rules(date(2026, 3, 1))) == 5
        assert repo.active_rules(date(2025, 12, 31)) == ()

    def test_snapshot_is_immutable_and_ordered(self) -> None:
        repo = InMemoryRuleRepository([_make_rule("r-b", 10), _make_rule("r-a", 10), _make_rule("r-c", 50)])
        snapshot = repo.active_rules(date(2026, 3, 1))
        assert isinstance(snapshot, tuple)
        assert [r.rule_id for r in snapshot] == ["r-c", "r-a", "r-b"]

    def test_snapshot_unaffected_by_later_saves(self) -> None:
        repo = InMemoryRuleRepository([_make_rule("r-1", 10)])
        snapshot = repo.active_rules(date(2026, 3, 1))
        repo.save(_make_rule("r-2", 20))
        assert len(snapshot) == 1
        assert len(repo.active_rules(date(2026, 3, 1))) == 2

    def test_save_replaces_by_id(self) -> None:
        repo = InMemoryRuleRepository([_make_rule("r-1", 10)])
        repo.save(_make_rule("r-1", 10, is_active=False))
        assert repo.active_rules(date(2026, 3, 1)) == ()
        assert repo.get("r-1").is_active is False
        assert len(repo.all_rules()) == 1

    def test_get_missing(self) -> None:
        assert InMemoryRuleRepository().get("nope") is None


class TestRoleRepository:
    def test_seeded_from_policy(self, resolver: PolicyResolver) -> None:
        repo = InMemoryRoleRepository.from_resolver(resolver)
        assert len(repo.active_roles()) == 5
        assert repo.get("role_sales").role_type == "sales-agent"

    def test_inactive_roles_hidden(self, resolver: PolicyResolver) -> None:
        repo = InMemoryRoleRepository.from_resolver(resolver)
        repo.save(CommissionRole(
            role_id="role_sales", role_type="sales-agent",
            default_rate=Decimal("30"), is_active=False,
        ))
        assert "role_sales" not in [r.role_id for r in repo.active_roles()]
        assert len(repo.all_roles()) == 5


class TestReadOnlyRepository:
    def test_reader_without_save_can_back_the_service(self, resolver: PolicyResolver) -> None:
        class FrozenRules(RuleRepository):
            def __init__(self, rules):
                self._rules = tuple(rules)

            def active_rules(self, as_of):
                return tuple(r for r in self._rules if r.is_effective(as_of))

            def all_rules(self):
                return self._rules

            def get(self, rule_id):
                return next((r for r in self._rules if r.rule_id == rule_id), None)

        repo = FrozenRules(resolver.default_rules(effective_from=date(2026, 1, 1)))
        service = CommissionService(resolver, rule_repository=repo)
        assert not hasattr(repo, "save")
        assert len(service.rules()) == 5
        result = service.evaluate_transaction(
            TransactionAttributes(
                transaction_id="T-1",
                transaction_type="ats-subscription",
                base_amount=Decimal("8100"),
                transaction_date=date(2026, 3, 1),
            ),
            consultants=[("sales-agent", "c-1")],
        )
        assert result.success
