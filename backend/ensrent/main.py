from __future__ import annotations

from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.exc import OperationalError

from . import schemas
from .core.config import settings
from .db import get_db, init_db
from .domain import Clock, system_clock
from .errors import ErrorCode, QueryError, TransientStorageError
from .services.listing_service import (
    AvailableQuery,
    ListingQuery,
    ListingService,
    RentalQuery,
    parse_token_id,
)

app = FastAPI(title="ENS Rent Indexer API", version="0.1.0", debug=settings.debug)


@app.on_event("startup")
def on_startup() -> None:
    """Create projection tables when the API boots."""

    init_db()


@app.exception_handler(QueryError)
def _query_error_handler(request: Request, exc: QueryError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"detail": schemas.ErrorDetail(code=exc.code.value, message=exc.message).model_dump()},
    )


@app.exception_handler(TransientStorageError)
def _storage_error_handler(request: Request, exc: TransientStorageError) -> JSONResponse:
    logger.warning("Storage unavailable while serving {}: {}", request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": schemas.ErrorDetail(code=exc.code.value, message=exc.message).model_dump()},
    )


@app.exception_handler(OperationalError)
def _database_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.warning("Database error while serving {}: {}", request.url.path, exc.orig)
    return JSONResponse(
        status_code=503,
        content={
            "detail": schemas.ErrorDetail(
                code=ErrorCode.TRANSIENT_STORAGE.value, message="Projection store unavailable"
            ).model_dump()
        },
    )


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness probe consumed by infrastructure monitors."""

    return {"status": "ok"}


def _clock() -> Clock:
    return system_clock


def _listing_service(db=Depends(get_db), clock: Clock = Depends(_clock)) -> ListingService:
    """Provide the listing service wired with a SQLAlchemy session."""

    return ListingService(db, clock=clock)


def _token_id(value: str | None) -> int | None:
    return None if value in (None, "") else parse_token_id(value)


def _listing_query(
    *,
    name_contains: Annotated[str | None, Query(description="Substring of the ENS label")] = None,
    lender: Annotated[str | None, Query(description="Only listings created by this address")] = None,
    lender_not: Annotated[str | None, Query(description="Exclude listings created by this address")] = None,
    token_id: Annotated[str | None, Query(description="Domain token id (decimal or 0x hex)")] = None,
    max_rental_time_gt: Annotated[int | None, Query(ge=0)] = None,
    max_rental_time_lt: Annotated[int | None, Query(ge=0)] = None,
    order_by: Annotated[str, Query(description="price | maxRentalTime | createdAt")] = "createdAt",
    order_direction: Annotated[str, Query(description="asc | desc")] = "desc",
    limit: Annotated[int | None, Query(description="Page size")] = None,
    after: Annotated[str | None, Query(description="Cursor from pageInfo.endCursor")] = None,
    before: Annotated[str | None, Query(description="Cursor from pageInfo.startCursor")] = None,
    viewer: Annotated[str | None, Query(description="Address used for status derivation")] = None,
) -> ListingQuery:
    """Normalize listing query parameters."""

    return ListingQuery(
        token_id=_token_id(token_id),
        name_contains=name_contains,
        lender=lender,
        lender_not=lender_not,
        max_rental_time_gt=max_rental_time_gt,
        max_rental_time_lt=max_rental_time_lt,
        order_by=order_by,
        order_direction=order_direction,
        limit=limit,
        after=after,
        before=before,
        viewer=viewer,
    )


def _rental_query(
    *,
    token_id: Annotated[str | None, Query(description="Domain token id (decimal or 0x hex)")] = None,
    borrower: Annotated[str | None, Query(description="Renter address")] = None,
    listing_id: Annotated[str | None, Query(description="Listing transaction hash")] = None,
    name_contains: Annotated[str | None, Query(description="Substring of the listed ENS label")] = None,
    end_time_gt: Annotated[int | None, Query(ge=0, description="Only rentals ending after this time")] = None,
    order_by: Annotated[str, Query(description="startTime | endTime | price | createdAt")] = "startTime",
    order_direction: Annotated[str, Query(description="asc | desc")] = "desc",
    limit: Annotated[int | None, Query(description="Page size")] = None,
    after: Annotated[str | None, Query()] = None,
    before: Annotated[str | None, Query()] = None,
) -> RentalQuery:
    return RentalQuery(
        token_id=_token_id(token_id),
        borrower=borrower,
        listing_id=listing_id,
        name_contains=name_contains,
        end_time_gt=end_time_gt,
        order_by=order_by,
        order_direction=order_direction,
        limit=limit,
        after=after,
        before=before,
    )


@app.get("/listings", response_model=schemas.ListingPage, tags=["listings"])
def list_listings(
    *,
    query: ListingQuery = Depends(_listing_query),
    service: ListingService = Depends(_listing_service),
):
    """List live listings with filtering and cursor pagination."""

    return service.list_listings(query)


@app.get("/listings/available", response_model=schemas.ListingPage, tags=["listings"])
def list_available(
    *,
    viewer: Annotated[str | None, Query(description="Connected wallet; its own listings are hidden")] = None,
    name: Annotated[str | None, Query(description="Substring of the ENS label")] = None,
    sort: Annotated[str, Query(description="default | price | time")] = "default",
    limit: Annotated[int | None, Query()] = None,
    after: Annotated[str | None, Query()] = None,
    before: Annotated[str | None, Query()] = None,
    service: ListingService = Depends(_listing_service),
):
    """Listings that can be rented right now."""

    return service.list_available(
        AvailableQuery(viewer=viewer, name=name, sort=sort, limit=limit, after=after, before=before)
    )


@app.get("/listings/{token_id}", response_model=schemas.Listing, tags=["listings"])
def get_listing(
    token_id: str,
    viewer: Annotated[str | None, Query(description="Address used for status derivation")] = None,
    service: ListingService = Depends(_listing_service),
):
    """Retrieve the live listing for a domain together with its rental history."""

    listing = service.get_listing(parse_token_id(token_id), viewer=viewer)
    if listing is None:
        raise HTTPException(status_code=404, detail="Listing not found")
    return listing


@app.get("/rentals", response_model=schemas.RentalPage, tags=["rentals"])
def list_rentals(
    *,
    query: RentalQuery = Depends(_rental_query),
    service: ListingService = Depends(_listing_service),
):
    """List rentals, including those whose listing has since been reclaimed."""

    return service.list_rentals(query)


@app.get("/accounts/{address}/portfolio", response_model=schemas.Portfolio, tags=["accounts"])
def get_portfolio(address: str, service: ListingService = Depends(_listing_service)):
    """Listings and rentals belonging to an account, grouped by their current state."""

    return service.portfolio(address)


@app.get("/indexer/checkpoint", response_model=schemas.Checkpoint, tags=["system"])
def get_checkpoint(service: ListingService = Depends(_listing_service)):
    """Offset of the last event applied to the projection."""

    return service.checkpoint()
