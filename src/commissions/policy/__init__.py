"""Commission policy — configuration loading and the engine config builder."""

from commissions.policy.config import EngineConfig, EngineConfigBuilder
from commissions.policy.resolver import PolicyResolver

__all__ = ["EngineConfig", "EngineConfigBuilder", "PolicyResolver"]
