"""Core data models for the commission engine."""

from commissions.models.commission import (
    CommissionResult,
    CommissionRole,
    CommissionRoleAssignment,
    CommissionRule,
    CommissionRuleAction,
    CommissionRuleCondition,
    CommissionStatus,
    CommissionStructure,
    CommissionTier,
    ConditionOperator,
    StructureKind,
    TierBreakdownEntry,
    TransactionAttributes,
    TransactionCommission,
)
from commissions.models.results import (
    CommissionError,
    EngineResult,
    ErrorFamily,
    ErrorKind,
)

__all__ = [
    "CommissionResult",
    "CommissionRole",
    "CommissionRoleAssignment",
    "CommissionRule",
    "CommissionRuleAction",
    "CommissionRuleCondition",
    "CommissionStatus",
    "CommissionStructure",
    "CommissionTier",
    "ConditionOperator",
    "StructureKind",
    "TierBreakdownEntry",
    "TransactionAttributes",
    "TransactionCommission",
    "CommissionError",
    "EngineResult",
    "ErrorFamily",
    "ErrorKind",
]
