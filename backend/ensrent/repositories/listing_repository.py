"""Listing and rental persistence for the projection store."""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from ensrent.models import Listing, Rental

from .pagination import Page, PageRequest, paginate, resolve_sort
from .types import ListingFilter, RentalFilter

LISTING_SORTS = {
    "price": Listing.price_per_second,
    "maxRentalTime": Listing.max_rental_time,
    "createdAt": Listing.created_at,
}

RENTAL_SORTS = {
    "startTime": Rental.start_time,
    "endTime": Rental.end_time,
    "price": Rental.price_per_second,
    "createdAt": Rental.created_at,
}

_LISTING_KEY_ATTRS = {
    "price": "price_per_second",
    "maxRentalTime": "max_rental_time",
    "createdAt": "created_at",
}

_RENTAL_KEY_ATTRS = {
    "startTime": "start_time",
    "endTime": "end_time",
    "price": "price_per_second",
    "createdAt": "created_at",
}

# Every sort column is an integer; tie-breakers are (id, token_id).
_KEY_CONVERTERS = (int, str, int)


def _live():
    return Listing.superseded_at.is_(None)


class ListingRepository:
    """Encapsulate listing and rental persistence concerns."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def add_listing(self, listing: Listing) -> bool:
        """Insert ``listing`` unless a row with the same (id, token_id) exists."""

        if self._session.get(Listing, (listing.id, listing.token_id)) is not None:
            return False
        self._session.add(listing)
        self._session.flush()
        return True

    def next_listing_sequence(self) -> int:
        highest = self._session.execute(select(func.max(Listing.sequence))).scalar_one_or_none()
        return (highest or 0) + 1

    def supersede_listings(self, token_id: int, *, at: int, keep_id: str) -> int:
        query = select(Listing).where(Listing.token_id == token_id, Listing.id != keep_id, _live())
        superseded = self._session.execute(query).scalars().all()
        for listing in superseded:
            listing.superseded_at = at
        self._session.flush()
        return len(superseded)

    def delete_listings(self, token_id: int) -> int:
        listings = self._session.execute(select(Listing).where(Listing.token_id == token_id)).scalars().all()
        for listing in listings:
            self._session.delete(listing)
        self._session.flush()
        return len(listings)

    def add_rental(self, rental: Rental) -> bool:
        if self._session.get(Rental, (rental.id, rental.token_id)) is not None:
            return False
        self._session.add(rental)
        self._session.flush()
        return True

    def rental_exists(self, rental_id: str, token_id: int) -> bool:
        return self._session.get(Rental, (rental_id, token_id)) is not None

    # ------------------------------------------------------------------
    # Queries

    def current_listing(self, token_id: int) -> Listing | None:
        """Most recently created live listing for ``token_id``."""

        query = (
            select(Listing)
            .where(Listing.token_id == token_id, _live())
            .order_by(Listing.created_at.desc(), Listing.sequence.desc())
            .limit(1)
        )
        return self._session.execute(query).scalars().first()

    def get_listing(self, token_id: int) -> Listing | None:
        query = (
            select(Listing)
            .options(selectinload(Listing.rentals))
            .where(Listing.token_id == token_id, _live())
            .order_by(Listing.created_at.desc(), Listing.sequence.desc())
            .limit(1)
        )
        return self._session.execute(query).scalars().first()

    def list_listings(
        self,
        filters: ListingFilter,
        *,
        order_by: str = "createdAt",
        order_direction: str = "desc",
        page: PageRequest,
    ) -> Page[Listing]:
        conditions: list[Any] = [_live()]
        if filters.token_id is not None:
            conditions.append(Listing.token_id == filters.token_id)
        if filters.name_contains:
            conditions.append(Listing.name.contains(filters.name_contains, autoescape=True))
        if filters.lender:
            conditions.append(Listing.lender == filters.lender.lower())
        if filters.lender_not:
            conditions.append(Listing.lender != filters.lender_not.lower())
        if filters.max_rental_time_gt is not None:
            conditions.append(Listing.max_rental_time > filters.max_rental_time_gt)
        if filters.max_rental_time_lt is not None:
            conditions.append(Listing.max_rental_time < filters.max_rental_time_lt)

        spec = resolve_sort(LISTING_SORTS, order_by, order_direction, (Listing.id, Listing.token_id))
        attr = _LISTING_KEY_ATTRS[spec.key]
        stmt = select(Listing).options(selectinload(Listing.rentals)).where(*conditions)
        return paginate(
            self._session,
            stmt,
            spec,
            page,
            key_of=lambda row: (getattr(row, attr), row.id, row.token_id),
            converters=_KEY_CONVERTERS,
        )

    def listings_for_lender(self, lender: str) -> list[Listing]:
        query = (
            select(Listing)
            .options(selectinload(Listing.rentals))
            .where(Listing.lender == lender.lower(), _live())
            .order_by(Listing.created_at.desc(), Listing.sequence.desc())
        )
        return list(self._session.execute(query).scalars().all())

    def list_rentals(
        self,
        filters: RentalFilter,
        *,
        order_by: str = "startTime",
        order_direction: str = "desc",
        page: PageRequest,
    ) -> Page[Rental]:
        conditions: list[Any] = []
        if filters.token_id is not None:
            conditions.append(Rental.token_id == filters.token_id)
        if filters.borrower:
            conditions.append(Rental.borrower == filters.borrower.lower())
        if filters.listing_id:
            conditions.append(Rental.listing_id == filters.listing_id)
        if filters.end_time_gt is not None:
            conditions.append(Rental.end_time > filters.end_time_gt)
        if filters.name_contains:
            names = select(Listing.id).where(
                Listing.name.contains(filters.name_contains, autoescape=True)
            )
            conditions.append(Rental.listing_id.in_(names))

        spec = resolve_sort(RENTAL_SORTS, order_by, order_direction, (Rental.id, Rental.token_id))
        attr = _RENTAL_KEY_ATTRS[spec.key]
        stmt = select(Rental).options(selectinload(Rental.listing)).where(*conditions)
        return paginate(
            self._session,
            stmt,
            spec,
            page,
            key_of=lambda row: (getattr(row, attr), row.id, row.token_id),
            converters=_KEY_CONVERTERS,
        )

    def active_rentals_for_borrower(self, borrower: str, *, now: int) -> list[Rental]:
        query = (
            select(Rental)
            .options(selectinload(Rental.listing))
            .where(Rental.borrower == borrower.lower(), Rental.end_time > now)
            .order_by(Rental.end_time.desc(), Rental.start_time.desc())
        )
        return list(self._session.execute(query).scalars().all())
