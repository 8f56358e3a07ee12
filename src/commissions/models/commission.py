"""Commission models — structures, rules, roles, and transaction commissions.

All monetary values and percentages use Decimal. No floats in finance.
Percentages are expressed on a 0–100 scale (15 means 15%).

Invariants enforced by these models:
- A rule action carries exactly one of percentage / flat_amount
- total_commission_percentage == Σ assignment.percentage
- total_commission_amount == Σ assignment.commission_amount
- Status lifecycle is a strict state machine (no skipped states)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional, Tuple


class StructureKind(str, enum.Enum):
    """Algorithm variant used to derive a commission amount."""
    PERCENTAGE = "percentage"
    FLAT = "flat"
    TIERED = "tiered"
    CUSTOM = "custom"


class ConditionOperator(str, enum.Enum):
    """Comparison applied by a rule condition."""
    EQUALS = "equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IN = "in"
    NOT_IN = "not_in"


class CommissionStatus(str, enum.Enum):
    """Lifecycle state of a transaction commission and its assignments.

    State machine:
        DRAFT → PENDING → APPROVED → PAID
        DRAFT / PENDING / APPROVED → CANCELLED
    """
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    CANCELLED = "cancelled"


# Valid status transitions
STATUS_TRANSITIONS: Dict[CommissionStatus, frozenset] = {
    CommissionStatus.DRAFT: frozenset({
        CommissionStatus.PENDING,
        CommissionStatus.CANCELLED,
    }),
    CommissionStatus.PENDING: frozenset({
        CommissionStatus.APPROVED,
        CommissionStatus.CANCELLED,
    }),
    CommissionStatus.APPROVED: frozenset({
        CommissionStatus.PAID,
        CommissionStatus.CANCELLED,
    }),
    CommissionStatus.PAID: frozenset(),
    CommissionStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class CommissionTier:
    """A contiguous amount band with its own rate and optional flat bonus.

    The band covers [lower, upper). upper=None means open-ended.
    """
    lower: Decimal
    upper: Optional[Decimal]
    rate: Decimal
    flat_bonus: Decimal = Decimal("0")

    @property
    def label(self) -> str:
        if self.upper is None:
            return f"{self.lower}+"
        return f"{self.lower}-{self.upper}"


@dataclass(frozen=True)
class CommissionStructure:
    """Tagged variant describing how a commission amount is derived.

    Use the named constructors rather than building one by hand:

        CommissionStructure.percentage(Decimal("15"))
        CommissionStructure.flat(Decimal("1990"))
        CommissionStructure.tiered([tier_a, tier_b])
        CommissionStructure.custom("rpo_retainer")
    """
    kind: StructureKind
    rate: Optional[Decimal] = None
    amount: Optional[Decimal] = None
    tiers: Tuple[CommissionTier, ...] = ()
    strategy_id: Optional[str] = None

    @staticmethod
    def percentage(rate: Decimal) -> CommissionStructure:
        return CommissionStructure(kind=StructureKind.PERCENTAGE, rate=rate)

    @staticmethod
    def flat(amount: Decimal) -> CommissionStructure:
        return CommissionStructure(kind=StructureKind.FLAT, amount=amount)

    @staticmethod
    def tiered(tiers: Iterable[CommissionTier]) -> CommissionStructure:
        return CommissionStructure(kind=StructureKind.TIERED, tiers=tuple(tiers))

    @staticmethod
    def custom(strategy_id: str) -> CommissionStructure:
        return CommissionStructure(kind=StructureKind.CUSTOM, strategy_id=strategy_id)


@dataclass(frozen=True)
class TierBreakdownEntry:
    """One band of a tiered calculation, published with the result."""
    tier_label: str
    amount_in_tier: Decimal
    rate: Decimal
    flat_bonus: Decimal
    tier_commission: Decimal


@dataclass(frozen=True)
class CommissionResult:
    """Outcome of a single calculation.

    commission_rate is a display figure: the input rate for percentage
    structures, derived (commission / base × 100) for everything else.
    uncovered_amount is the part of the base that no tier reached.
    """
    base_amount: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    structure_kind: StructureKind
    breakdown: Optional[Tuple[TierBreakdownEntry, ...]] = None
    uncovered_amount: Decimal = Decimal("0")


@dataclass(frozen=True)
class TransactionAttributes:
    """The facts about a transaction that rules are evaluated against.

    Condition fields resolve against these attributes first, then
    against metadata.
    """
    transaction_id: str
    transaction_type: str
    base_amount: Decimal
    employer_id: Optional[str] = None
    subscription_tier: Optional[str] = None
    service_type: Optional[str] = None
    transaction_date: Optional[date] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CommissionRuleCondition:
    """A single predicate on a transaction field."""
    field: str
    operator: ConditionOperator
    value: Any


@dataclass(frozen=True)
class CommissionRuleAction:
    """Grants a role a share of the commission.

    Exactly one of percentage / flat_amount is set.
    """
    role_type: str
    percentage: Optional[Decimal] = None
    flat_amount: Optional[Decimal] = None
    apply_to_all: bool = False

    def __post_init__(self) -> None:
        if (self.percentage is None) == (self.flat_amount is None):
            raise ValueError(
                f"Action for role '{self.role_type}' must set exactly one of "
                f"percentage or flat_amount"
            )

    @property
    def is_flat(self) -> bool:
        return self.flat_amount is not None


@dataclass(frozen=True)
class CommissionRule:
    """A conditionally-scoped policy granting role actions.

    Created and edited by an administrator; read-only during evaluation.
    The effective window is [effective_from, effective_to).
    """
    rule_id: str
    priority: int
    conditions: Tuple[CommissionRuleCondition, ...]
    actions: Tuple[CommissionRuleAction, ...]
    effective_from: date
    effective_to: Optional[date] = None
    is_active: bool = True
    name: str = ""
    description: str = ""

    def is_effective(self, as_of: date) -> bool:
        if not self.is_active:
            return False
        if as_of < self.effective_from:
            return False
        return self.effective_to is None or as_of < self.effective_to


@dataclass(frozen=True)
class CommissionRole:
    """A participant category eligible for a share of a commission."""
    role_id: str
    role_type: str
    default_rate: Decimal
    is_active: bool = True
    name: str = ""
    description: str = ""


@dataclass
class CommissionRoleAssignment:
    """One participant's share of a transaction commission.

    Mutable — status follows the parent TransactionCommission.
    """
    role_id: str
    role_type: str
    consultant_id: Optional[str]
    percentage: Decimal
    commission_amount: Decimal
    status: CommissionStatus = CommissionStatus.PENDING


@dataclass
class TransactionCommission:
    """Aggregate root — the commission owed on one transaction.

    Totals are always recomputed from the assignments; never set them
    independently. Status transitions are validated against
    STATUS_TRANSITIONS.
    """
    transaction_id: str
    base_amount: Decimal
    total_commissionable_amount: Decimal
    role_assignments: list[CommissionRoleAssignment] = field(default_factory=list)
    total_commission_percentage: Decimal = Decimal("0")
    total_commission_amount: Decimal = Decimal("0")
    status: CommissionStatus = CommissionStatus.DRAFT
    transaction_type: Optional[str] = None
    transaction_date: Optional[date] = None
    employer_id: Optional[str] = None
    approved_by: Optional[str] = None
    approved_utc: Optional[datetime] = None
    paid_utc: Optional[datetime] = None
    cancelled_utc: Optional[datetime] = None

    def recompute_totals(self) -> None:
        self.total_commission_percentage = sum(
            (a.percentage for a in self.role_assignments), Decimal("0")
        )
        self.total_commission_amount = sum(
            (a.commission_amount for a in self.role_assignments), Decimal("0")
        )

    def totals_consistent(self) -> bool:
        """Check the aggregate invariant against the current assignments."""
        pct = sum((a.percentage for a in self.role_assignments), Decimal("0"))
        amt = sum((a.commission_amount for a in self.role_assignments), Decimal("0"))
        return (
            pct == self.total_commission_percentage
            and amt == self.total_commission_amount
        )

    def transition_to(self, new_state: CommissionStatus) -> None:
        """Transition to a new state, validating the transition is legal."""
        allowed = STATUS_TRANSITIONS.get(self.status, frozenset())
        if new_state not in allowed:
            raise ValueError(
                f"Invalid commission transition: {self.status.value} → {new_state.value}. "
                f"Allowed: {', '.join(sorted(s.value for s in allowed))}"
            )
        self.status = new_state
