"""Persistence — reference-data repositories and the audit event log."""

from commissions.persistence.event_log import EventKind, EventLog, EventRecord
from commissions.persistence.repository import (
    InMemoryRoleRepository,
    InMemoryRuleRepository,
    RoleRepository,
    RuleRepository,
)

__all__ = [
    "EventKind",
    "EventLog",
    "EventRecord",
    "InMemoryRoleRepository",
    "InMemoryRuleRepository",
    "RoleRepository",
    "RuleRepository",
]
