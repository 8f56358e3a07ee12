"""Commission calculation — percentage, flat, tiered, and custom structures."""

from commissions.calculation.strategy import (
    CalculationStrategy,
    StrategyRegistry,
    calculate,
)

__all__ = ["CalculationStrategy", "StrategyRegistry", "calculate"]
