"""Commission allocation — splitting a total across roles and managing its lifecycle."""

from commissions.allocation.allocator import (
    SplitAllocator,
    SplitParticipant,
    allocate,
    split_commission,
)
from commissions.allocation.lifecycle import CommissionLifecycle

__all__ = [
    "CommissionLifecycle",
    "SplitAllocator",
    "SplitParticipant",
    "allocate",
    "split_commission",
]
