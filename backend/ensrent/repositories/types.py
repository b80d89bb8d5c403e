"""Shared repository filter types."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class ListingFilter:
    token_id: int | None = None
    name_contains: str | None = None
    lender: str | None = None
    lender_not: str | None = None
    max_rental_time_gt: int | None = None
    max_rental_time_lt: int | None = None


@dataclass(slots=True)
class RentalFilter:
    token_id: int | None = None
    borrower: str | None = None
    listing_id: str | None = None
    name_contains: str | None = None
    end_time_gt: int | None = None


__all__ = ["ListingFilter", "RentalFilter"]
