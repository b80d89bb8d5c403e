"""Repository abstractions for database interactions."""

from .checkpoint_repository import CheckpointRepository
from .listing_repository import LISTING_SORTS, RENTAL_SORTS, ListingRepository
from .pagination import Page, PageInfo, PageRequest
from .types import ListingFilter, RentalFilter

__all__ = [
    "CheckpointRepository",
    "ListingRepository",
    "LISTING_SORTS",
    "RENTAL_SORTS",
    "ListingFilter",
    "RentalFilter",
    "Page",
    "PageInfo",
    "PageRequest",
]
