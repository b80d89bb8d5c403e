"""Read-only facade over the listing/rental projection used by the API."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from sqlalchemy.orm import Session

from ensrent import schemas
from ensrent.core.config import settings
from ensrent.domain import Clock, has_active_rental, resolve_status, system_clock
from ensrent.errors import QueryError
from ensrent.models import Listing, Rental
from ensrent.repositories import (
    CheckpointRepository,
    ListingFilter,
    ListingRepository,
    Page,
    PageRequest,
    RentalFilter,
)

# Browse-view presets: sort name -> (orderBy, orderDirection).
AVAILABLE_SORT_PRESETS: dict[str, tuple[str, str]] = {
    "default": ("createdAt", "desc"),
    "price": ("price", "asc"),
    "time": ("maxRentalTime", "desc"),
}

RENTAL_SORT_PRESETS: dict[str, tuple[str, str]] = {
    "default": ("startTime", "desc"),
    "price": ("price", "desc"),
    "time": ("startTime", "desc"),
}


def parse_token_id(value: str | int) -> int:
    """Accept decimal or 0x-prefixed hex token identifiers."""

    if isinstance(value, int):
        number = value
    else:
        text = value.strip()
        try:
            number = int(text, 16) if text.lower().startswith("0x") else int(text)
        except ValueError as exc:
            raise QueryError(f"tokenId must be an integer, got {value!r}") from exc
    if number < 0 or number >= 2**256:
        raise QueryError("tokenId must be an unsigned 256-bit integer")
    return number


@dataclass(slots=True)
class ListingQuery:
    token_id: int | None = None
    name_contains: str | None = None
    lender: str | None = None
    lender_not: str | None = None
    max_rental_time_gt: int | None = None
    max_rental_time_lt: int | None = None
    order_by: str = "createdAt"
    order_direction: str = "desc"
    limit: int | None = None
    after: str | None = None
    before: str | None = None
    viewer: str | None = None

    def to_filter(self) -> ListingFilter:
        return ListingFilter(
            token_id=self.token_id,
            name_contains=self.name_contains,
            lender=self.lender,
            lender_not=self.lender_not,
            max_rental_time_gt=self.max_rental_time_gt,
            max_rental_time_lt=self.max_rental_time_lt,
        )


@dataclass(slots=True)
class AvailableQuery:
    viewer: str | None = None
    name: str | None = None
    sort: str = "default"
    limit: int | None = None
    after: str | None = None
    before: str | None = None


@dataclass(slots=True)
class RentalQuery:
    token_id: int | None = None
    borrower: str | None = None
    listing_id: str | None = None
    name_contains: str | None = None
    end_time_gt: int | None = None
    order_by: str = "startTime"
    order_direction: str = "desc"
    limit: int | None = None
    after: str | None = None
    before: str | None = None

    def to_filter(self) -> RentalFilter:
        return RentalFilter(
            token_id=self.token_id,
            borrower=self.borrower,
            listing_id=self.listing_id,
            name_contains=self.name_contains,
            end_time_gt=self.end_time_gt,
        )


class ListingService:
    """Serve listings and rentals with read-time status derivation."""

    def __init__(
        self,
        session: Session,
        *,
        clock: Clock = system_clock,
        name_suffix: str | None = None,
        page_size: int | None = None,
        max_page_size: int | None = None,
    ) -> None:
        self._session = session
        self._repo = ListingRepository(session)
        self._clock = clock
        self._name_suffix = settings.name_suffix if name_suffix is None else name_suffix
        self._page_size = page_size or settings.page_size
        self._max_page_size = max_page_size or settings.max_page_size

    # ------------------------------------------------------------------
    # Lookups

    def get_listing(self, token_id: int, *, viewer: str | None = None) -> schemas.Listing | None:
        """Return the live listing for ``token_id`` or ``None`` when there is none."""

        record = self._repo.get_listing(token_id)
        if record is None:
            return None
        return self._listing_payload(record, viewer=viewer, now=self._clock())

    def checkpoint(self, name: str | None = None) -> schemas.Checkpoint:
        resolved = name or settings.checkpoint_name
        record = CheckpointRepository(self._session).get(resolved)
        if record is None:
            return schemas.Checkpoint(name=resolved, last_offset=0)
        return schemas.Checkpoint(
            name=record.name, last_offset=record.last_offset, updated_at=record.updated_at
        )

    # ------------------------------------------------------------------
    # Paginated views

    def list_listings(self, query: ListingQuery) -> schemas.ListingPage:
        page = self._repo.list_listings(
            query.to_filter(),
            order_by=query.order_by,
            order_direction=query.order_direction,
            page=self._page_request(query.limit, query.after, query.before),
        )
        now = self._clock()
        return schemas.ListingPage(
            items=[self._listing_payload(record, viewer=query.viewer, now=now) for record in page.items],
            page_info=self._page_info(page),
        )

    def list_available(self, query: AvailableQuery) -> schemas.ListingPage:
        """Browse view: unexpired listings not owned by the viewer and not currently rented."""

        preset = AVAILABLE_SORT_PRESETS.get(query.sort or "default")
        if preset is None:
            raise QueryError(
                f"Unsupported sort '{query.sort}'. Allowed values: {', '.join(sorted(AVAILABLE_SORT_PRESETS))}"
            )
        now = self._clock()
        order_by, order_direction = preset
        page = self._repo.list_listings(
            ListingFilter(
                name_contains=query.name or None,
                lender_not=query.viewer or None,
                max_rental_time_gt=now,
            ),
            order_by=order_by,
            order_direction=order_direction,
            page=self._page_request(query.limit, query.after, query.before),
        )
        # Occupied listings stay in the store; they are only hidden from this view.
        items = [
            self._listing_payload(record, viewer=query.viewer, now=now)
            for record in page.items
            if not has_active_rental(record.rentals, now)
        ]
        return schemas.ListingPage(items=items, page_info=self._page_info(page))

    def list_rentals(self, query: RentalQuery) -> schemas.RentalPage:
        page = self._repo.list_rentals(
            query.to_filter(),
            order_by=query.order_by,
            order_direction=query.order_direction,
            page=self._page_request(query.limit, query.after, query.before),
        )
        return schemas.RentalPage(
            items=[self._rental_payload(record) for record in page.items],
            page_info=self._page_info(page),
        )

    def portfolio(self, address: str) -> schemas.Portfolio:
        """Group an account's listings and rentals the way the management page shows them."""

        now = self._clock()
        result = schemas.Portfolio(address=address.lower())
        for record in self._repo.listings_for_lender(address):
            payload = self._listing_payload(record, viewer=address, now=now)
            if payload.has_active_rental:
                result.rented_out.append(payload)
            elif record.max_rental_time > now:
                result.listed.append(payload)
            else:
                result.lapsed.append(payload)
        result.rented_in = [
            self._rental_payload(record)
            for record in self._repo.active_rentals_for_borrower(address, now=now)
        ]
        return result

    # ------------------------------------------------------------------
    # Helpers

    def _page_request(self, limit: int | None, after: str | None, before: str | None) -> PageRequest:
        resolved = self._page_size if limit is None else limit
        if resolved < 1 or resolved > self._max_page_size:
            raise QueryError(f"limit must be between 1 and {self._max_page_size}")
        if after and before:
            raise QueryError("Pass either 'after' or 'before', not both")
        return PageRequest(limit=resolved, after=after or None, before=before or None)

    @staticmethod
    def _page_info(page: Page) -> schemas.PageInfo:
        info = page.page_info
        return schemas.PageInfo(
            start_cursor=info.start_cursor,
            end_cursor=info.end_cursor,
            has_next_page=info.has_next_page,
            has_previous_page=info.has_previous_page,
        )

    def _display_name(self, name: str) -> str:
        if not self._name_suffix or name.endswith(self._name_suffix):
            return name
        return f"{name}{self._name_suffix}"

    def _listing_base(self, record: Listing) -> schemas.ListingBase:
        return schemas.ListingBase(
            id=record.id,
            token_id=record.token_id,
            name=record.name,
            display_name=self._display_name(record.name),
            lender=record.lender,
            price=record.price_per_second,
            node=record.node,
            max_rental_time=record.max_rental_time,
            created_at=record.created_at,
        )

    @staticmethod
    def _rental_base(record: Rental) -> schemas.RentalBase:
        return schemas.RentalBase(
            id=record.id,
            token_id=record.token_id,
            borrower=record.borrower,
            start_time=record.start_time,
            end_time=record.end_time,
            price=record.price_per_second,
            listing_id=record.listing_id,
            created_at=record.created_at,
        )

    def _listing_payload(self, record: Listing, *, viewer: str | None, now: int) -> schemas.Listing:
        rentals: Sequence[Rental] = sorted(
            record.rentals, key=lambda rental: (rental.end_time, rental.start_time), reverse=True
        )
        base = self._listing_base(record)
        return schemas.Listing(
            **base.model_dump(),
            rentals=[self._rental_base(rental) for rental in rentals],
            status=resolve_status(record, rentals, viewer=viewer, now=now),
            has_active_rental=has_active_rental(rentals, now),
        )

    def _rental_payload(self, record: Rental) -> schemas.Rental:
        base = self._rental_base(record)
        listing = self._listing_base(record.listing) if record.listing is not None else None
        return schemas.Rental(**base.model_dump(), listing=listing)
