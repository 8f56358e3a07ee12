#!/usr/bin/env python3
"""Commission invariant checks against the policy file."""

import decimal
import json
import sys
from decimal import Decimal
from pathlib import Path
from typing import Optional


ROOT = Path(__file__).resolve().parents[1]
CONFIG_DIR = ROOT / "config"
POLICY_FILENAME = "commission_policy.json"

ROUNDING_MODES = {
    "ROUND_HALF_UP", "ROUND_HALF_EVEN", "ROUND_HALF_DOWN",
    "ROUND_UP", "ROUND_DOWN", "ROUND_CEILING", "ROUND_FLOOR",
}
OPERATORS = {"equals", "greater_than", "less_than", "in", "not_in"}


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def as_decimal(value, label: str, errors: list[str]) -> Optional[Decimal]:
    try:
        number = Decimal(str(value))
    except (decimal.InvalidOperation, ValueError):
        errors.append(f"{label} is not a number: {value!r}")
        return None
    if not number.is_finite():
        errors.append(f"{label} must be finite, got {value!r}")
        return None
    return number


def check_rate(value, label: str, errors: list[str]) -> Optional[Decimal]:
    """Validate a percentage lies in [0, 100]."""
    rate = as_decimal(value, label, errors)
    if rate is not None and not (Decimal("0") <= rate <= Decimal("100")):
        errors.append(f"{label} must be in [0, 100], got {rate}")
    return rate


def check_template(key: str, template: dict, errors: list[str]) -> None:
    label = f"rule template '{key}'"
    actions = template.get("actions") or []
    if not actions:
        errors.append(f"{label} must define at least one action")

    pct_sum = Decimal("0")
    role_types: set[str] = set()
    for index, action in enumerate(actions):
        where = f"{label} action {index}"
        role_type = action.get("role_type")
        if not role_type:
            errors.append(f"{where} missing role_type")
        elif role_type in role_types:
            errors.append(f"{where} assigns role '{role_type}' twice")
        else:
            role_types.add(role_type)

        has_pct = action.get("percentage") is not None
        has_flat = action.get("flat_amount") is not None
        if has_pct == has_flat:
            errors.append(f"{where} must set exactly one of percentage / flat_amount")
        elif has_pct:
            rate = check_rate(action["percentage"], f"{where} percentage", errors)
            if rate is not None:
                pct_sum += rate
        else:
            flat = as_decimal(action["flat_amount"], f"{where} flat_amount", errors)
            if flat is not None and flat < 0:
                errors.append(f"{where} flat_amount must be >= 0, got {flat}")

    if pct_sum > Decimal("100"):
        errors.append(f"{label} percentages sum to {pct_sum}, exceeding 100")

    for index, condition in enumerate(template.get("conditions", [])):
        where = f"{label} condition {index}"
        operator = condition.get("operator")
        if operator not in OPERATORS:
            errors.append(f"{where} has unknown operator {operator!r}")
        if not condition.get("field"):
            errors.append(f"{where} missing field")
        if operator in ("in", "not_in") and not isinstance(condition.get("value"), list):
            errors.append(f"{where} operator {operator} requires a list value")


def check(config_dir: Optional[Path] = None) -> int:
    policy = load_json((config_dir or CONFIG_DIR) / POLICY_FILENAME)
    errors: list[str] = []

    if not policy.get("version"):
        errors.append("policy version must be set")

    # --- Rounding invariants ---
    rounding = policy.get("rounding", {})
    for key in ("currency_quantum", "rate_quantum", "percentage_quantum"):
        if key in rounding:
            quantum = as_decimal(rounding[key], f"rounding.{key}", errors)
            if quantum is not None and quantum <= 0:
                errors.append(f"rounding.{key} must be > 0, got {quantum}")
    mode = rounding.get("mode", "ROUND_HALF_UP")
    if mode not in ROUNDING_MODES:
        errors.append(f"rounding.mode must be a decimal rounding mode, got {mode!r}")

    # --- Role invariants ---
    role_ids: set[str] = set()
    active_types: set[str] = set()
    for role in policy.get("default_roles", []):
        role_id = role.get("id")
        if not role_id:
            errors.append(f"role missing id: {role}")
            continue
        if role_id in role_ids:
            errors.append(f"duplicate role id: {role_id}")
        role_ids.add(role_id)
        if not role.get("type"):
            errors.append(f"role {role_id} missing type")
        check_rate(role.get("default_rate", "0"), f"role {role_id} default_rate", errors)
        if role.get("is_active", True):
            active_types.add(role.get("type"))

    # --- Rule template invariants ---
    for key, template in policy.get("rule_templates", {}).items():
        check_template(key, template, errors)
        for action in template.get("actions", []):
            role_type = action.get("role_type")
            if role_type and role_type not in active_types:
                errors.append(
                    f"rule template '{key}' targets role '{role_type}' with no active role"
                )

    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"- {err}")
        return 1

    print("Invariant check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(check(Path(sys.argv[1]) if len(sys.argv) > 1 else None))
