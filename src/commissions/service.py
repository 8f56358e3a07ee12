"""Commission service — unified facade over the commission engines.

Orchestrates, for one transaction:
- Calculation (base amount + structure → commissionable total)
- Rule matching (transaction attributes + rule snapshot → role actions)
- Allocation (total + actions + roles → per-consultant assignments)
- Lifecycle (submit, approve, mark paid, cancel)
- Reporting (per-consultant statistics)

All operations produce a ServiceResult. Every evaluation, failure and
status change is appended to the event log; if the audit record cannot
be written the operation fails closed and nothing is stored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional

from commissions.allocation.allocator import SplitAllocator, SplitParticipant
from commissions.allocation.lifecycle import CommissionLifecycle
from commissions.calculation.strategy import CalculationStrategy, StrategyRegistry
from commissions.models.commission import (
    CommissionResult,
    CommissionRole,
    CommissionRule,
    CommissionStatus,
    CommissionStructure,
    TransactionAttributes,
    TransactionCommission,
)
from commissions.models.results import CommissionError, EngineResult
from commissions.persistence.event_log import EventKind, EventLog, to_payload
from commissions.persistence.repository import (
    InMemoryRoleRepository,
    InMemoryRuleRepository,
    RoleRepository,
    RuleRepository,
)
from commissions.policy.resolver import PolicyResolver
from commissions.reporting.stats import (
    ConsultantCommissionStats,
    consultant_commission_stats,
)
from commissions.rules.matcher import RuleMatcher

logger = logging.getLogger(__name__)


@dataclass
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


def result_to_dict(result: CommissionResult) -> dict[str, Any]:
    return to_payload({
        "base_amount": result.base_amount,
        "commission_rate": result.commission_rate,
        "commission_amount": result.commission_amount,
        "structure_kind": result.structure_kind,
        "uncovered_amount": result.uncovered_amount,
        "breakdown": [
            {
                "tier": entry.tier_label,
                "amount_in_tier": entry.amount_in_tier,
                "rate": entry.rate,
                "flat_bonus": entry.flat_bonus,
                "tier_commission": entry.tier_commission,
            }
            for entry in (result.breakdown or [])
        ],
    })


def commission_to_dict(commission: TransactionCommission) -> dict[str, Any]:
    return to_payload({
        "transaction_id": commission.transaction_id,
        "transaction_type": commission.transaction_type,
        "base_amount": commission.base_amount,
        "total_commissionable_amount": commission.total_commissionable_amount,
        "total_commission_percentage": commission.total_commission_percentage,
        "total_commission_amount": commission.total_commission_amount,
        "status": commission.status,
        "role_assignments": [
            {
                "role_id": a.role_id,
                "role_type": a.role_type,
                "consultant_id": a.consultant_id,
                "percentage": a.percentage,
                "commission_amount": a.commission_amount,
                "status": a.status,
            }
            for a in commission.role_assignments
        ],
    })


def _messages(errors: Iterable[CommissionError]) -> list[str]:
    return [str(e) for e in errors]


class CommissionService:
    """Commission engine facade.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = CommissionService(resolver)

        result = service.evaluate_transaction(
            transaction,
            consultants=[("sales-agent", "c-001")],
        )
        service.approve(transaction.transaction_id, approved_by="finance-01")
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        rule_repository: Optional[RuleRepository] = None,
        role_repository: Optional[RoleRepository] = None,
        registry: Optional[StrategyRegistry] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._resolver = resolver
        config = resolver.engine_config()
        self._rules = rule_repository or InMemoryRuleRepository.from_resolver(
            resolver, effective_from=date.min,
        )
        self._roles = role_repository or InMemoryRoleRepository.from_resolver(resolver)
        self._calculator = CalculationStrategy(config, registry)
        self._matcher = RuleMatcher()
        self._allocator = SplitAllocator(config)
        self._event_log = event_log if event_log is not None else EventLog()
        self._commissions: dict[str, TransactionCommission] = {}

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    # ------------------------------------------------------------------
    # Calculation and evaluation
    # ------------------------------------------------------------------

    def calculate(
        self,
        base_amount: Any,
        structure: CommissionStructure,
    ) -> ServiceResult:
        """Calculate a commission without matching or storing anything."""
        result = self._calculator.calculate(base_amount, structure)
        if not result.ok:
            return ServiceResult(success=False, errors=_messages(result.errors))
        data = result_to_dict(result.value)
        if result.warnings:
            data["warnings"] = _messages(result.warnings)
        return ServiceResult(success=True, data=data)

    def evaluate_transaction(
        self,
        transaction: TransactionAttributes,
        structure: Optional[CommissionStructure] = None,
        consultants: Iterable[tuple[str, str]] = (),
        as_of: Optional[date] = None,
        require_exact: bool = False,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Compute and store the commission owed on one transaction.

        Without a structure the whole base amount is commissionable.
        Rules are matched against the snapshot in effect on as_of
        (defaults to the transaction date).
        """
        tx_id = transaction.transaction_id
        if tx_id in self._commissions:
            return ServiceResult(
                success=False,
                errors=[f"Commission already exists for transaction: {tx_id}"],
            )

        warnings: list[CommissionError] = []
        effective = as_of or transaction.transaction_date or date.today()

        calc = self._calculator.calculate(
            transaction.base_amount,
            structure or CommissionStructure.percentage(Decimal("100")),
        )
        if not calc.ok:
            return self._fail(tx_id, "calculate", calc, now)
        warnings.extend(calc.warnings)
        err = self._record(EventKind.COMMISSION_CALCULATED, tx_id, result_to_dict(calc.value), now)
        if err:
            return ServiceResult(success=False, errors=[err])

        rules = self._rules.active_rules(effective)
        matched = self._matcher.match(transaction, rules, effective)
        if not matched.ok:
            return self._fail(tx_id, "match", matched, now)
        err = self._record(EventKind.RULES_MATCHED, tx_id, {
            "as_of": effective,
            "rule_ids": [r.rule_id for r in self._matcher.matching_rules(transaction, rules, effective)],
            "role_types": [a.role_type for a in matched.value],
        }, now)
        if err:
            return ServiceResult(success=False, errors=[err])

        allocation = self._allocator.allocate(
            calc.value.commission_amount,
            matched.value,
            self._roles.active_roles(),
            consultants,
            require_exact=require_exact,
            transaction=transaction,
        )
        if not allocation.ok:
            return self._fail(tx_id, "allocate", allocation, now)
        warnings.extend(allocation.warnings)

        commission = allocation.value
        return self._store(commission, EventKind.COMMISSION_ALLOCATED, warnings, now)

    def split_fixed_total(
        self,
        transaction: TransactionAttributes,
        total_amount: Any,
        participants: Iterable[SplitParticipant],
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Split a fixed commission total among named consultants."""
        tx_id = transaction.transaction_id
        if tx_id in self._commissions:
            return ServiceResult(
                success=False,
                errors=[f"Commission already exists for transaction: {tx_id}"],
            )
        split = self._allocator.split_commission(total_amount, participants, transaction)
        if not split.ok:
            return self._fail(tx_id, "split", split, now)
        return self._store(split.value, EventKind.SPLIT_RECORDED, [], now)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def submit(self, transaction_id: str, now: Optional[datetime] = None) -> ServiceResult:
        """Transition a commission from DRAFT → PENDING."""
        return self._transition(transaction_id, "system", CommissionLifecycle.submit, now)

    def approve(
        self,
        transaction_id: str,
        approved_by: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Transition a commission from PENDING → APPROVED."""
        return self._transition(
            transaction_id, approved_by,
            lambda c: CommissionLifecycle.approve(c, approved_by, now), now,
        )

    def mark_paid(self, transaction_id: str, now: Optional[datetime] = None) -> ServiceResult:
        """Transition a commission from APPROVED → PAID."""
        return self._transition(
            transaction_id, "system",
            lambda c: CommissionLifecycle.mark_paid(c, now), now,
        )

    def cancel(
        self,
        transaction_id: str,
        cancelled_by: str = "system",
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Cancel a commission from any non-terminal status."""
        return self._transition(
            transaction_id, cancelled_by,
            lambda c: CommissionLifecycle.cancel(c, now), now,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_commission(self, transaction_id: str) -> Optional[TransactionCommission]:
        return self._commissions.get(transaction_id)

    def commissions(
        self, status: Optional[CommissionStatus] = None,
    ) -> list[TransactionCommission]:
        if status is None:
            return list(self._commissions.values())
        return [c for c in self._commissions.values() if c.status == status]

    def commissions_for_consultant(self, consultant_id: str) -> list[TransactionCommission]:
        """Commissions with at least one assignment to consultant_id."""
        return [
            c for c in self._commissions.values()
            if any(a.consultant_id == consultant_id for a in c.role_assignments)
        ]

    def commissions_for_employer(self, employer_id: str) -> list[TransactionCommission]:
        return [c for c in self._commissions.values() if c.employer_id == employer_id]

    def rules(self) -> tuple[CommissionRule, ...]:
        """Every stored rule, including inactive and expired ones."""
        return self._rules.all_rules()

    def roles(self) -> tuple[CommissionRole, ...]:
        return self._roles.all_roles()

    def consultant_stats(self, consultant_id: str) -> ConsultantCommissionStats:
        return consultant_commission_stats(consultant_id, self._commissions.values())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _store(
        self,
        commission: TransactionCommission,
        kind: EventKind,
        warnings: list[CommissionError],
        now: Optional[datetime],
    ) -> ServiceResult:
        data = commission_to_dict(commission)
        err = self._record(kind, commission.transaction_id, data, now)
        if err:
            return ServiceResult(success=False, errors=[err])

        self._commissions[commission.transaction_id] = commission
        logger.info(
            "Commission for %s: %s across %d assignment(s)",
            commission.transaction_id,
            commission.total_commission_amount,
            len(commission.role_assignments),
        )
        if warnings:
            data["warnings"] = _messages(warnings)
        return ServiceResult(success=True, data=data)

    def _fail(
        self,
        transaction_id: str,
        stage: str,
        result: EngineResult,
        now: Optional[datetime],
    ) -> ServiceResult:
        errors = _messages(result.errors)
        logger.warning("Evaluation of %s failed at %s: %s", transaction_id, stage, errors)
        err = self._record(EventKind.EVALUATION_FAILED, transaction_id, {
            "stage": stage,
            "error_kinds": result.error_kinds(),
            "errors": errors,
        }, now)
        if err:
            errors.append(err)
        return ServiceResult(success=False, errors=errors)

    def _transition(
        self,
        transaction_id: str,
        actor_id: str,
        apply: Callable[[TransactionCommission], list[str]],
        now: Optional[datetime],
    ) -> ServiceResult:
        commission = self._commissions.get(transaction_id)
        if commission is None:
            return ServiceResult(
                success=False,
                errors=[f"Commission not found: {transaction_id}"],
            )

        previous = commission.status
        snapshot = (
            commission.approved_by, commission.approved_utc,
            commission.paid_utc, commission.cancelled_utc,
            [a.status for a in commission.role_assignments],
        )
        errors = apply(commission)
        if errors:
            return ServiceResult(success=False, errors=errors)

        err = self._record(EventKind.COMMISSION_STATUS_CHANGED, transaction_id, {
            "from": previous,
            "to": commission.status,
        }, now, actor_id=actor_id)
        if err:
            commission.status = previous
            (
                commission.approved_by, commission.approved_utc,
                commission.paid_utc, commission.cancelled_utc, statuses,
            ) = snapshot
            for assignment, status in zip(commission.role_assignments, statuses):
                assignment.status = status
            return ServiceResult(success=False, errors=[err])

        return ServiceResult(success=True, data={
            "transaction_id": transaction_id,
            "status": commission.status.value,
        })

    def _record(
        self,
        kind: EventKind,
        subject_id: str,
        payload: dict[str, Any],
        now: Optional[datetime],
        actor_id: str = "system",
    ) -> Optional[str]:
        """Append an audit event. Returns error string or None."""
        try:
            self._event_log.record(
                kind, subject_id, payload, actor_id=actor_id, timestamp_utc=now,
            )
        except (ValueError, OSError) as e:
            return f"Event log failure: {e}"
        return None
