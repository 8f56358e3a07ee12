"""Reporting over computed commissions."""

from commissions.reporting.stats import (
    ConsultantCommissionStats,
    GroupTotal,
    consultant_commission_stats,
)

__all__ = ["ConsultantCommissionStats", "GroupTotal", "consultant_commission_stats"]
