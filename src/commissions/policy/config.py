"""Engine configuration — a complete, validated value built once at the boundary.

Every engine receives an EngineConfig. There is no partial merging of
overrides downstream: the builder applies named defaults, validates, and
freezes the result.

Usage:
    config = (
        EngineConfigBuilder()
        .currency_quantum("0.01")
        .rounding_mode("ROUND_HALF_UP")
        .build()
    )
"""

from __future__ import annotations

import decimal
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

DEFAULT_CURRENCY_QUANTUM = Decimal("0.01")
DEFAULT_RATE_QUANTUM = Decimal("0.01")
DEFAULT_PERCENTAGE_QUANTUM = Decimal("0.0001")
DEFAULT_ROUNDING_MODE = decimal.ROUND_HALF_UP

_ROUNDING_MODES = frozenset({
    decimal.ROUND_HALF_UP,
    decimal.ROUND_HALF_EVEN,
    decimal.ROUND_HALF_DOWN,
    decimal.ROUND_UP,
    decimal.ROUND_DOWN,
    decimal.ROUND_CEILING,
    decimal.ROUND_FLOOR,
})

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class EngineConfig:
    """Rounding policy applied by every engine.

    currency_quantum: smallest currency unit money is rounded to.
    rate_quantum: precision of derived display rates.
    percentage_quantum: precision of split percentages.
    rounding_mode: a decimal module rounding constant.
    """
    currency_quantum: Decimal = DEFAULT_CURRENCY_QUANTUM
    rate_quantum: Decimal = DEFAULT_RATE_QUANTUM
    percentage_quantum: Decimal = DEFAULT_PERCENTAGE_QUANTUM
    rounding_mode: str = DEFAULT_ROUNDING_MODE

    def round_money(self, value: Decimal) -> Decimal:
        return value.quantize(self.currency_quantum, rounding=self.rounding_mode)

    def round_money_down(self, value: Decimal) -> Decimal:
        # Non-final shares of a split: the remainder left for the last must stay >= 0.
        return value.quantize(self.currency_quantum, rounding=decimal.ROUND_DOWN)

    def round_rate(self, value: Decimal) -> Decimal:
        return value.quantize(self.rate_quantum, rounding=self.rounding_mode)

    def round_percentage(self, value: Decimal) -> Decimal:
        # Never round a share upward: Σ percentage must stay within 100.
        return value.quantize(self.percentage_quantum, rounding=decimal.ROUND_DOWN)


class EngineConfigBuilder:
    """Fluent builder for EngineConfig with named defaults."""

    def __init__(self) -> None:
        self._currency_quantum = DEFAULT_CURRENCY_QUANTUM
        self._rate_quantum = DEFAULT_RATE_QUANTUM
        self._percentage_quantum = DEFAULT_PERCENTAGE_QUANTUM
        self._rounding_mode = DEFAULT_ROUNDING_MODE

    def currency_quantum(self, value: Any) -> EngineConfigBuilder:
        self._currency_quantum = _quantum(value, "currency_quantum")
        return self

    def rate_quantum(self, value: Any) -> EngineConfigBuilder:
        self._rate_quantum = _quantum(value, "rate_quantum")
        return self

    def percentage_quantum(self, value: Any) -> EngineConfigBuilder:
        self._percentage_quantum = _quantum(value, "percentage_quantum")
        return self

    def rounding_mode(self, mode: str) -> EngineConfigBuilder:
        if mode not in _ROUNDING_MODES:
            raise ValueError(
                f"Unknown rounding mode: {mode!r}. "
                f"Expected one of: {', '.join(sorted(_ROUNDING_MODES))}"
            )
        self._rounding_mode = mode
        return self

    def apply(self, rounding: Optional[dict[str, Any]]) -> EngineConfigBuilder:
        """Apply a 'rounding' section from the policy file."""
        if not rounding:
            return self
        if "currency_quantum" in rounding:
            self.currency_quantum(rounding["currency_quantum"])
        if "rate_quantum" in rounding:
            self.rate_quantum(rounding["rate_quantum"])
        if "percentage_quantum" in rounding:
            self.percentage_quantum(rounding["percentage_quantum"])
        if "mode" in rounding:
            self.rounding_mode(rounding["mode"])
        return self

    def build(self) -> EngineConfig:
        return EngineConfig(
            currency_quantum=self._currency_quantum,
            rate_quantum=self._rate_quantum,
            percentage_quantum=self._percentage_quantum,
            rounding_mode=self._rounding_mode,
        )


def _quantum(value: Any, name: str) -> Decimal:
    try:
        q = Decimal(str(value))
    except decimal.InvalidOperation as exc:
        raise ValueError(f"{name} must be a decimal, got {value!r}") from exc
    if not q.is_finite() or q <= 0:
        raise ValueError(f"{name} must be a positive finite decimal, got {value!r}")
    return q
