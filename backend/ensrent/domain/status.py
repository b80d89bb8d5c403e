"""Read-time rental status derivation.

Status depends on the wall clock, so it is computed on every read and never
stored alongside the projection.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from enum import Enum
from typing import Protocol

Clock = Callable[[], int]


class RentalStatus(str, Enum):
    AVAILABLE = "available"
    LISTED = "listed"
    RENTED_OUT = "rentedOut"
    RENTED_IN = "rentedIn"
    EXPIRED = "expired"


class ListingLike(Protocol):
    lender: str


class RentalLike(Protocol):
    borrower: str
    start_time: int
    end_time: int


def system_clock() -> int:
    """Current wall-clock time in whole seconds since the epoch."""

    return int(time.time())


def fixed_clock(now: int) -> Clock:
    return lambda: now


def same_address(left: str | None, right: str | None) -> bool:
    if not left or not right:
        return False
    return left.lower() == right.lower()


def most_recent_rental(rentals: Iterable[RentalLike]) -> RentalLike | None:
    """Rental with the latest end time; ties go to the latest start time."""

    latest: RentalLike | None = None
    for rental in rentals:
        if latest is None or (rental.end_time, rental.start_time) > (
            latest.end_time,
            latest.start_time,
        ):
            latest = rental
    return latest


def has_active_rental(rentals: Iterable[RentalLike], now: int) -> bool:
    latest = most_recent_rental(rentals)
    return latest is not None and latest.end_time > now


def resolve_status(
    listing: ListingLike | None,
    rentals: Iterable[RentalLike],
    *,
    viewer: str | None,
    now: int,
) -> RentalStatus:
    latest = most_recent_rental(rentals)

    if latest is not None:
        if latest.end_time <= now:
            return RentalStatus.EXPIRED
        if listing is not None and same_address(listing.lender, viewer):
            return RentalStatus.RENTED_OUT
        if same_address(latest.borrower, viewer):
            return RentalStatus.RENTED_IN
        return RentalStatus.LISTED

    if listing is not None:
        return RentalStatus.LISTED
    return RentalStatus.AVAILABLE


__all__ = [
    "Clock",
    "RentalStatus",
    "fixed_clock",
    "has_active_rental",
    "most_recent_rental",
    "resolve_status",
    "same_address",
    "system_clock",
]
