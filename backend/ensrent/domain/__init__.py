"""Domain types for rental contract events and read-time status."""

from .events import (
    EVENT_TYPES,
    DomainEvent,
    DomainListed,
    DomainReclaimed,
    DomainRented,
    EventRecord,
)
from .status import (
    Clock,
    RentalStatus,
    fixed_clock,
    has_active_rental,
    most_recent_rental,
    resolve_status,
    same_address,
    system_clock,
)

__all__ = [
    "EVENT_TYPES",
    "DomainEvent",
    "DomainListed",
    "DomainReclaimed",
    "DomainRented",
    "EventRecord",
    "Clock",
    "RentalStatus",
    "fixed_clock",
    "has_active_rental",
    "most_recent_rental",
    "resolve_status",
    "same_address",
    "system_clock",
]
