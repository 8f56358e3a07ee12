"""Rule matcher — selects the role actions that apply to a transaction.

Pure computation. No side effects.

A rule applies when:
    rule.is_active
    and rule.effective_from <= as_of < rule.effective_to (None = open-ended)
    and every condition holds against the transaction

Ordering: priority descending, then rule_id ascending. The order is a
function of the rule set alone, never of the input list order, so the
same snapshot always produces the same payout.

Every applicable rule contributes its actions. A role type may be claimed
only once: a later (lower-priority) action for an already-claimed role
is a DUPLICATE_ROLE_ACTION error, never a silent overwrite.
"""

from __future__ import annotations

import decimal
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional

from commissions.models.commission import (
    CommissionRule,
    CommissionRuleAction,
    CommissionRuleCondition,
    ConditionOperator,
    TransactionAttributes,
)
from commissions.models.results import EngineResult, ErrorKind

logger = logging.getLogger(__name__)

_MISSING = object()


def _numeric(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (decimal.InvalidOperation, TypeError, ValueError):
        return None
    return number if number.is_finite() else None


def _equals(actual: Any, expected: Any) -> bool:
    if actual == expected:
        return True
    # "10000" in a rule should equal Decimal("10000.00") on a transaction
    if isinstance(actual, (Decimal, int, float)) and not isinstance(actual, bool):
        left, right = _numeric(actual), _numeric(expected)
        return left is not None and right is not None and left == right
    return False


def resolve_field(transaction: TransactionAttributes, name: str) -> Any:
    """Look up a condition field on the transaction, then in its metadata."""
    if name != "metadata" and hasattr(transaction, name):
        value = getattr(transaction, name)
        return _MISSING if value is None else value
    return transaction.metadata.get(name, _MISSING)


def evaluate_condition(
    condition: CommissionRuleCondition,
    transaction: TransactionAttributes,
) -> bool:
    """Evaluate one condition. A field the transaction lacks never matches."""
    actual = resolve_field(transaction, condition.field)
    if actual is _MISSING:
        return False

    op = condition.operator
    if op == ConditionOperator.EQUALS:
        return _equals(actual, condition.value)
    if op in (ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN):
        left, right = _numeric(actual), _numeric(condition.value)
        if left is None or right is None:
            return False
        return left > right if op == ConditionOperator.GREATER_THAN else left < right

    members = condition.value if isinstance(condition.value, (list, tuple, set, frozenset)) else ()
    contained = any(_equals(actual, member) for member in members)
    return contained if op == ConditionOperator.IN else not contained


class RuleMatcher:
    """Evaluates an ordered rule snapshot against a transaction.

    Usage:
        matcher = RuleMatcher()
        result = matcher.match(transaction, rules, as_of=date(2026, 3, 1))
        if result.ok:
            for action in result.value:
                ...
    """

    def rule_applies(
        self,
        rule: CommissionRule,
        transaction: TransactionAttributes,
        as_of: date,
    ) -> bool:
        if not rule.is_effective(as_of):
            return False
        return all(evaluate_condition(c, transaction) for c in rule.conditions)

    def matching_rules(
        self,
        transaction: TransactionAttributes,
        rules: Iterable[CommissionRule],
        as_of: date,
    ) -> list[CommissionRule]:
        """Return applicable rules, priority descending then id ascending."""
        matched = [r for r in rules if self.rule_applies(r, transaction, as_of)]
        matched.sort(key=lambda r: (-r.priority, r.rule_id))
        return matched

    def match(
        self,
        transaction: TransactionAttributes,
        rules: Iterable[CommissionRule],
        as_of: date,
    ) -> EngineResult[list[CommissionRuleAction]]:
        """Collect the actions of every applicable rule.

        Returns:
            EngineResult with the ordered action list (empty when nothing
            applies), or DUPLICATE_ROLE_ACTION when two actions claim the
            same role type.
        """
        matched = self.matching_rules(transaction, rules, as_of)
        logger.debug(
            "Transaction %s matched rules: %s",
            transaction.transaction_id, [r.rule_id for r in matched],
        )

        actions: list[CommissionRuleAction] = []
        claimed: dict[str, str] = {}  # role_type -> rule_id
        for rule in matched:
            for action in rule.actions:
                owner = claimed.get(action.role_type)
                if owner is not None:
                    return EngineResult.failure(
                        ErrorKind.DUPLICATE_ROLE_ACTION,
                        f"Role '{action.role_type}' is already assigned by rule "
                        f"{owner}; rule {rule.rule_id} cannot assign it again",
                    )
                claimed[action.role_type] = rule.rule_id
                actions.append(action)

        return EngineResult.success(actions)


def match(
    transaction: TransactionAttributes,
    rules: Iterable[CommissionRule],
    as_of: date,
) -> EngineResult[list[CommissionRuleAction]]:
    """Module-level shortcut for RuleMatcher().match."""
    return RuleMatcher().match(transaction, rules, as_of)
