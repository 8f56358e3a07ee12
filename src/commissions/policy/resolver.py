"""Policy resolver — loads commission policy from the config directory.

The policy file (commission_policy.json) holds three sections:
- rounding: currency / rate / percentage quanta and the rounding mode
- default_roles: reference CommissionRole data
- rule_templates: named rule bodies instantiated as default rules

Usage:
    resolver = PolicyResolver.from_config_dir(Path("config"))
    config = resolver.engine_config()
    roles = resolver.default_roles()
    rules = resolver.default_rules(effective_from=date(2026, 1, 1))
"""

from __future__ import annotations

import decimal
import json
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from commissions.models.commission import (
    CommissionRole,
    CommissionRule,
    CommissionRuleAction,
    CommissionRuleCondition,
    CommissionStructure,
    CommissionTier,
    ConditionOperator,
    StructureKind,
)
from commissions.policy.config import EngineConfig, EngineConfigBuilder


class PolicyResolver:
    """Resolves engine configuration and reference data from policy JSON."""

    POLICY_FILENAME = "commission_policy.json"

    def __init__(self, policy: dict[str, Any]) -> None:
        self._policy = policy
        self._validate()
        self._engine_config = EngineConfigBuilder().apply(
            policy.get("rounding")
        ).build()

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        """Load the policy from the canonical config directory.

        Raises:
            FileNotFoundError: If commission_policy.json does not exist.
            ValueError: If the policy is structurally invalid.
        """
        path = config_dir / cls.POLICY_FILENAME
        if not path.exists():
            raise FileNotFoundError(f"Commission policy not found: {path}")
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return cls(data)

    @property
    def version(self) -> str:
        return str(self._policy.get("version", ""))

    def engine_config(self) -> EngineConfig:
        return self._engine_config

    def default_roles(self) -> list[CommissionRole]:
        """Return the reference roles declared in the policy."""
        return [parse_role(entry) for entry in self._policy.get("default_roles", [])]

    def rule_templates(self) -> dict[str, dict[str, Any]]:
        return dict(self._policy.get("rule_templates", {}))

    def default_rules(self, effective_from: date) -> list[CommissionRule]:
        """Instantiate every rule template as an active rule.

        Templates are prioritised in declaration order: the first gets
        priority 100, each following one 10 lower.
        """
        rules: list[CommissionRule] = []
        for index, (key, template) in enumerate(self.rule_templates().items()):
            name = template.get("name", key)
            rules.append(CommissionRule(
                rule_id=f"rule_{key}",
                priority=100 - index * 10,
                conditions=tuple(parse_condition(c) for c in template.get("conditions", [])),
                actions=tuple(parse_action(a) for a in template.get("actions", [])),
                effective_from=effective_from,
                is_active=True,
                name=name,
                description=f"Default {name.lower()}",
            ))
        return rules

    def _validate(self) -> None:
        if "version" not in self._policy:
            raise ValueError("Commission policy missing 'version' field")
        roles = self._policy.get("default_roles", [])
        if not isinstance(roles, list):
            raise ValueError("Commission policy 'default_roles' must be a list")
        templates = self._policy.get("rule_templates", {})
        if not isinstance(templates, dict):
            raise ValueError("Commission policy 'rule_templates' must be a dict")
        seen: set[str] = set()
        for entry in roles:
            role = parse_role(entry)
            if role.role_id in seen:
                raise ValueError(f"Duplicate role id in policy: {role.role_id}")
            seen.add(role.role_id)
        for key, template in templates.items():
            if not template.get("actions"):
                raise ValueError(f"Rule template '{key}' must define at least one action")
            for action in template["actions"]:
                parse_action(action)
            for condition in template.get("conditions", []):
                parse_condition(condition)


# ------------------------------------------------------------------
# Parsing helpers — shared with the CLI
# ------------------------------------------------------------------

def to_decimal(value: Any, name: str) -> Decimal:
    """Convert a JSON scalar to Decimal via its string form."""
    try:
        return Decimal(str(value))
    except (decimal.InvalidOperation, TypeError, ValueError) as exc:
        raise ValueError(f"Invalid decimal for {name}: {value!r}") from exc


def _optional_decimal(value: Any, name: str) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return to_decimal(value, name)


def parse_role(data: dict[str, Any]) -> CommissionRole:
    return CommissionRole(
        role_id=data["id"],
        role_type=data["type"],
        default_rate=to_decimal(data.get("default_rate", "0"), "default_rate"),
        is_active=bool(data.get("is_active", True)),
        name=data.get("name", ""),
        description=data.get("description", ""),
    )


def parse_condition(data: dict[str, Any]) -> CommissionRuleCondition:
    try:
        operator = ConditionOperator(data["operator"])
    except ValueError as exc:
        raise ValueError(f"Unknown condition operator: {data.get('operator')!r}") from exc
    value = data.get("value")
    if operator in (ConditionOperator.IN, ConditionOperator.NOT_IN):
        if not isinstance(value, list):
            raise ValueError(
                f"Condition on '{data['field']}' with operator {operator.value} "
                f"requires a list value"
            )
        value = tuple(value)
    return CommissionRuleCondition(field=data["field"], operator=operator, value=value)


def parse_action(data: dict[str, Any]) -> CommissionRuleAction:
    return CommissionRuleAction(
        role_type=data["role_type"],
        percentage=_optional_decimal(data.get("percentage"), "percentage"),
        flat_amount=_optional_decimal(data.get("flat_amount"), "flat_amount"),
        apply_to_all=bool(data.get("apply_to_all", False)),
    )


def parse_rule(data: dict[str, Any]) -> CommissionRule:
    """Parse a fully specified rule (as stored by an administrator)."""
    effective_to = data.get("effective_to")
    return CommissionRule(
        rule_id=data["id"],
        priority=int(data.get("priority", 0)),
        conditions=tuple(parse_condition(c) for c in data.get("conditions", [])),
        actions=tuple(parse_action(a) for a in data.get("actions", [])),
        effective_from=date.fromisoformat(data["effective_from"]),
        effective_to=date.fromisoformat(effective_to) if effective_to else None,
        is_active=bool(data.get("is_active", True)),
        name=data.get("name", ""),
        description=data.get("description", ""),
    )


def parse_tier(data: dict[str, Any]) -> CommissionTier:
    return CommissionTier(
        lower=to_decimal(data.get("from", "0"), "from"),
        upper=_optional_decimal(data.get("to"), "to"),
        rate=to_decimal(data["rate"], "rate"),
        flat_bonus=to_decimal(data.get("flat_bonus", "0"), "flat_bonus"),
    )


def parse_structure(data: dict[str, Any]) -> CommissionStructure:
    """Parse a structure like {"kind": "tiered", "tiers": [...]}."""
    try:
        kind = StructureKind(data["kind"])
    except (KeyError, ValueError) as exc:
        raise ValueError(f"Unknown structure kind: {data.get('kind')!r}") from exc
    if kind == StructureKind.PERCENTAGE:
        return CommissionStructure.percentage(to_decimal(data["rate"], "rate"))
    if kind == StructureKind.FLAT:
        return CommissionStructure.flat(to_decimal(data["amount"], "amount"))
    if kind == StructureKind.TIERED:
        return CommissionStructure.tiered(parse_tier(t) for t in data.get("tiers", []))
    return CommissionStructure.custom(str(data["strategy_id"]))
