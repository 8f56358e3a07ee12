"""Typed results and the error taxonomy shared by every engine.

Engines never raise for business failures. Each returns an EngineResult
carrying either a value or a list of CommissionError records, plus
non-fatal warnings (fallbacks the caller should know about).

Taxonomy:
- CalcError:   INVALID_AMOUNT, DUPLICATE_ROLE_ACTION
- AllocError:  OVER_ALLOCATED, SPLIT_MISMATCH
- ConfigError: MISSING_CUSTOM_STRATEGY, INACTIVE_ROLE (warnings only — the
  calculation falls back, the action is skipped)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorFamily(str, enum.Enum):
    CALC = "calc"
    ALLOC = "alloc"
    CONFIG = "config"


class ErrorKind(str, enum.Enum):
    """Every failure this core can report."""
    INVALID_AMOUNT = "invalid_amount"
    DUPLICATE_ROLE_ACTION = "duplicate_role_action"
    OVER_ALLOCATED = "over_allocated"
    SPLIT_MISMATCH = "split_mismatch"
    MISSING_CUSTOM_STRATEGY = "missing_custom_strategy"
    INACTIVE_ROLE = "inactive_role"

    @property
    def family(self) -> ErrorFamily:
        return _FAMILIES[self]


_FAMILIES: dict[ErrorKind, ErrorFamily] = {
    ErrorKind.INVALID_AMOUNT: ErrorFamily.CALC,
    ErrorKind.DUPLICATE_ROLE_ACTION: ErrorFamily.CALC,
    ErrorKind.OVER_ALLOCATED: ErrorFamily.ALLOC,
    ErrorKind.SPLIT_MISMATCH: ErrorFamily.ALLOC,
    ErrorKind.MISSING_CUSTOM_STRATEGY: ErrorFamily.CONFIG,
    ErrorKind.INACTIVE_ROLE: ErrorFamily.CONFIG,
}


@dataclass(frozen=True)
class CommissionError:
    """A single typed failure.

    actual carries the offending sum for SPLIT_MISMATCH and
    OVER_ALLOCATED; it is None for the other kinds.
    """
    kind: ErrorKind
    message: str
    actual: Optional[Decimal] = None

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


@dataclass(frozen=True)
class EngineResult(Generic[T]):
    """Outcome of a pure engine call."""
    value: Optional[T] = None
    errors: list[CommissionError] = field(default_factory=list)
    warnings: list[CommissionError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @staticmethod
    def success(value: Any, warnings: Optional[list[CommissionError]] = None) -> EngineResult:
        return EngineResult(value=value, warnings=list(warnings or []))

    @staticmethod
    def failure(
        kind: ErrorKind,
        message: str,
        actual: Optional[Decimal] = None,
        warnings: Optional[list[CommissionError]] = None,
    ) -> EngineResult:
        return EngineResult(
            errors=[CommissionError(kind=kind, message=message, actual=actual)],
            warnings=list(warnings or []),
        )

    def error_kinds(self) -> list[ErrorKind]:
        return [e.kind for e in self.errors]
