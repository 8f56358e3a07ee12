"""Calculation strategy — turns a base amount and a structure into a commission.

    Percentage: commission = base × rate / 100
    Flat:       commission = amount            (rate derived for display)
    Tiered:     Σ over bands of amount_in_tier × rate / 100 + flat_bonus
    Custom:     registry[strategy_id](base)    (falls back to 0% if unresolved)

Tiered walk:
    tiers sorted ascending by lower bound
    for each tier: amount_in_tier = min(remaining, upper − lower)
    stop when remaining ≤ 0 or tiers are exhausted

Invariants:
- Pure: identical inputs always produce identical results
- Rounding happens once, at the end (round-half-up to the currency unit)
- Σ breakdown.tier_commission == commission_amount
- A boundary amount lands entirely in the lower band ([lower, upper))
- Amount above the highest bounded tier is not commissioned; it is
  reported as uncovered_amount
"""

from __future__ import annotations

import decimal
import logging
from decimal import Decimal
from typing import Any, Callable, Optional

from commissions.models.commission import (
    CommissionResult,
    CommissionStructure,
    CommissionTier,
    StructureKind,
    TierBreakdownEntry,
)
from commissions.models.results import (
    CommissionError,
    EngineResult,
    ErrorKind,
)
from commissions.policy.config import HUNDRED, EngineConfig

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")

CustomStrategy = Callable[[Decimal], Any]


class StrategyRegistry:
    """Named custom strategies, injected by the caller.

    Structures refer to a strategy by id only, so they stay plain data.

    Usage:
        registry = StrategyRegistry()
        registry.register("rpo_retainer", lambda base: base * Decimal("0.12"))
    """

    def __init__(self) -> None:
        self._strategies: dict[str, CustomStrategy] = {}

    def register(self, strategy_id: str, strategy: CustomStrategy) -> None:
        if strategy_id in self._strategies:
            raise ValueError(f"Strategy already registered: {strategy_id}")
        self._strategies[strategy_id] = strategy

    def resolve(self, strategy_id: str) -> Optional[CustomStrategy]:
        return self._strategies.get(strategy_id)

    def __contains__(self, strategy_id: object) -> bool:
        return strategy_id in self._strategies

    def ids(self) -> list[str]:
        return sorted(self._strategies)


def coerce_amount(value: Any) -> Optional[Decimal]:
    """Return value as a finite, non-negative Decimal, or None."""
    if isinstance(value, bool):
        return None
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (decimal.InvalidOperation, TypeError, ValueError):
        return None
    if not amount.is_finite() or amount < _ZERO:
        return None
    return amount


class CalculationStrategy:
    """Computes commission amounts for every structure variant.

    Usage:
        strategy = CalculationStrategy(config, registry)
        result = strategy.calculate(Decimal("10000"), CommissionStructure.percentage(Decimal("15")))
        if result.ok:
            result.value.commission_amount  # Decimal("1500.00")
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        registry: Optional[StrategyRegistry] = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._registry = registry

    def calculate(
        self,
        base_amount: Any,
        structure: CommissionStructure,
    ) -> EngineResult[CommissionResult]:
        """Compute the commission for base_amount under structure.

        Returns:
            EngineResult with a CommissionResult, or an INVALID_AMOUNT
            error when the base (or a structure amount) is negative,
            non-finite, or not a number.
        """
        base = coerce_amount(base_amount)
        if base is None:
            return EngineResult.failure(
                ErrorKind.INVALID_AMOUNT,
                f"Base amount must be a finite, non-negative number, got {base_amount!r}",
            )

        if structure.kind == StructureKind.PERCENTAGE:
            return self._percentage(base, structure.rate)
        if structure.kind == StructureKind.FLAT:
            return self._flat(base, structure.amount)
        if structure.kind == StructureKind.TIERED:
            return self._tiered(base, structure.tiers)
        return self._custom(base, structure.strategy_id)

    def _percentage(
        self,
        base: Decimal,
        rate_value: Any,
        kind: StructureKind = StructureKind.PERCENTAGE,
    ) -> EngineResult[CommissionResult]:
        rate = coerce_amount(rate_value)
        if rate is None:
            return EngineResult.failure(
                ErrorKind.INVALID_AMOUNT,
                f"Commission rate must be a finite, non-negative number, got {rate_value!r}",
            )
        commission = self._config.round_money(base * rate / HUNDRED)
        return EngineResult.success(CommissionResult(
            base_amount=base,
            commission_rate=rate,
            commission_amount=commission,
            structure_kind=kind,
        ))

    def _flat(self, base: Decimal, amount_value: Any) -> EngineResult[CommissionResult]:
        amount = coerce_amount(amount_value)
        if amount is None:
            return EngineResult.failure(
                ErrorKind.INVALID_AMOUNT,
                f"Flat amount must be a finite, non-negative number, got {amount_value!r}",
            )
        commission = self._config.round_money(amount)
        return EngineResult.success(CommissionResult(
            base_amount=base,
            commission_rate=self._derived_rate(commission, base),
            commission_amount=commission,
            structure_kind=StructureKind.FLAT,
        ))

    def _tiered(
        self,
        base: Decimal,
        tiers: tuple[CommissionTier, ...],
    ) -> EngineResult[CommissionResult]:
        for tier in tiers:
            for label, value in (
                ("lower", tier.lower),
                ("rate", tier.rate),
                ("flat_bonus", tier.flat_bonus),
            ):
                if coerce_amount(value) is None:
                    return EngineResult.failure(
                        ErrorKind.INVALID_AMOUNT,
                        f"Tier {tier.label} has invalid {label}: {value!r}",
                    )
            if tier.upper is not None:
                upper = coerce_amount(tier.upper)
                if upper is None or upper < tier.lower:
                    return EngineResult.failure(
                        ErrorKind.INVALID_AMOUNT,
                        f"Tier {tier.label} has invalid upper: {tier.upper!r}",
                    )

        remaining = base
        bands: list[tuple[CommissionTier, Decimal, Decimal]] = []
        for tier in sorted(tiers, key=lambda t: t.lower):
            if remaining <= _ZERO:
                break
            if tier.upper is None:
                amount_in_tier = remaining
            else:
                width = tier.upper - tier.lower
                if width <= _ZERO:
                    logger.debug("Skipping empty tier band %s", tier.label)
                    continue
                amount_in_tier = min(remaining, width)
            raw = amount_in_tier * tier.rate / HUNDRED + tier.flat_bonus
            bands.append((tier, amount_in_tier, raw))
            remaining -= amount_in_tier

        uncovered = max(remaining, _ZERO)
        if uncovered > _ZERO:
            logger.warning(
                "Tiered calculation left %s of %s uncommissioned: no open-ended tier",
                uncovered, base,
            )

        commission = self._config.round_money(sum((raw for _, _, raw in bands), _ZERO))
        breakdown = self._breakdown(bands, commission)

        return EngineResult.success(CommissionResult(
            base_amount=base,
            commission_rate=self._derived_rate(commission, base),
            commission_amount=commission,
            structure_kind=StructureKind.TIERED,
            breakdown=breakdown,
            uncovered_amount=uncovered,
        ))

    def _breakdown(
        self,
        bands: list[tuple[CommissionTier, Decimal, Decimal]],
        commission: Decimal,
    ) -> tuple[TierBreakdownEntry, ...]:
        """Round each band down for display; the last band absorbs the remainder."""
        entries: list[TierBreakdownEntry] = []
        allocated = _ZERO
        for index, (tier, amount_in_tier, raw) in enumerate(bands):
            if index == len(bands) - 1:
                tier_commission = commission - allocated
            else:
                tier_commission = self._config.round_money_down(raw)
                allocated += tier_commission
            entries.append(TierBreakdownEntry(
                tier_label=tier.label,
                amount_in_tier=amount_in_tier,
                rate=tier.rate,
                flat_bonus=tier.flat_bonus,
                tier_commission=tier_commission,
            ))
        return tuple(entries)

    def _custom(
        self,
        base: Decimal,
        strategy_id: Optional[str],
    ) -> EngineResult[CommissionResult]:
        strategy = None
        if self._registry is not None and strategy_id is not None:
            strategy = self._registry.resolve(strategy_id)

        if strategy is None:
            logger.warning(
                "No custom strategy resolved for %r; falling back to a 0%% rate",
                strategy_id,
            )
            fallback = self._percentage(base, _ZERO, kind=StructureKind.CUSTOM)
            return EngineResult(
                value=fallback.value,
                warnings=[CommissionError(
                    kind=ErrorKind.MISSING_CUSTOM_STRATEGY,
                    message=f"Custom strategy {strategy_id!r} is not registered",
                )],
            )

        try:
            raw_value = strategy(base)
        except (ArithmeticError, TypeError, ValueError) as e:
            logger.warning("Custom strategy %r raised: %s", strategy_id, e)
            return EngineResult.failure(
                ErrorKind.INVALID_AMOUNT,
                f"Custom strategy {strategy_id!r} failed: {e}",
            )
        amount = coerce_amount(raw_value)
        if amount is None:
            return EngineResult.failure(
                ErrorKind.INVALID_AMOUNT,
                f"Custom strategy {strategy_id!r} returned an invalid amount: {raw_value!r}",
            )
        commission = self._config.round_money(amount)
        return EngineResult.success(CommissionResult(
            base_amount=base,
            commission_rate=self._derived_rate(commission, base),
            commission_amount=commission,
            structure_kind=StructureKind.CUSTOM,
        ))

    def _derived_rate(self, commission: Decimal, base: Decimal) -> Decimal:
        if base == _ZERO:
            return _ZERO
        return self._config.round_rate(commission / base * HUNDRED)


def calculate(
    base_amount: Any,
    structure: CommissionStructure,
    registry: Optional[StrategyRegistry] = None,
    config: Optional[EngineConfig] = None,
) -> EngineResult[CommissionResult]:
    """Module-level shortcut for CalculationStrategy(config, registry).calculate."""
    return CalculationStrategy(config, registry).calculate(base_amount, structure)
