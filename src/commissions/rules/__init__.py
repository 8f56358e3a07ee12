"""Commission rules — conditional role actions and the matcher that selects them."""

from commissions.rules.matcher import RuleMatcher, evaluate_condition, match

__all__ = ["RuleMatcher", "evaluate_condition", "match"]
