"""Rule and role repositories — storage boundary for reference data.

Engines never read storage. The service asks a repository for a
snapshot (an immutable tuple) and hands that snapshot to the engines,
so a calculation always sees one consistent rule set.
"""

from __future__ import annotations

import abc
from datetime import date
from typing import Iterable, Optional

from commissions.models.commission import CommissionRole, CommissionRule
from commissions.policy.resolver import PolicyResolver


class RuleRepository(abc.ABC):
    """Read side of rule storage; writes belong to the concrete store."""

    @abc.abstractmethod
    def active_rules(self, as_of: date) -> tuple[CommissionRule, ...]:
        """Snapshot of the rules in effect on as_of."""

    @abc.abstractmethod
    def all_rules(self) -> tuple[CommissionRule, ...]:
        ...

    @abc.abstractmethod
    def get(self, rule_id: str) -> Optional[CommissionRule]:
        ...


class RoleRepository(abc.ABC):

    @abc.abstractmethod
    def active_roles(self) -> tuple[CommissionRole, ...]:
        ...

    @abc.abstractmethod
    def all_roles(self) -> tuple[CommissionRole, ...]:
        ...

    @abc.abstractmethod
    def get(self, role_id: str) -> Optional[CommissionRole]:
        ...


class InMemoryRuleRepository(RuleRepository):
    """Dict-backed rule store. Saving an existing id replaces it."""

    def __init__(self, rules: Iterable[CommissionRule] = ()) -> None:
        self._rules: dict[str, CommissionRule] = {}
        for rule in rules:
            self.save(rule)

    @classmethod
    def from_resolver(
        cls, resolver: PolicyResolver, effective_from: date,
    ) -> InMemoryRuleRepository:
        return cls(resolver.default_rules(effective_from))

    def active_rules(self, as_of: date) -> tuple[CommissionRule, ...]:
        return tuple(
            sorted(
                (r for r in self._rules.values() if r.is_effective(as_of)),
                key=lambda r: (-r.priority, r.rule_id),
            )
        )

    def all_rules(self) -> tuple[CommissionRule, ...]:
        return tuple(self._rules.values())

    def get(self, rule_id: str) -> Optional[CommissionRule]:
        return self._rules.get(rule_id)

    def save(self, rule: CommissionRule) -> None:
        self._rules[rule.rule_id] = rule


class InMemoryRoleRepository(RoleRepository):
    """Dict-backed role store, kept in insertion order."""

    def __init__(self, roles: Iterable[CommissionRole] = ()) -> None:
        self._roles: dict[str, CommissionRole] = {}
        for role in roles:
            self.save(role)

    @classmethod
    def from_resolver(cls, resolver: PolicyResolver) -> InMemoryRoleRepository:
        return cls(resolver.default_roles())

    def active_roles(self) -> tuple[CommissionRole, ...]:
        return tuple(r for r in self._roles.values() if r.is_active)

    def all_roles(self) -> tuple[CommissionRole, ...]:
        return tuple(self._roles.values())

    def get(self, role_id: str) -> Optional[CommissionRole]:
        return self._roles.get(role_id)

    def save(self, role: CommissionRole) -> None:
        self._roles[role.role_id] = role
