from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

from .domain import RentalStatus


class WireModel(BaseModel):
    """camelCase on the wire; snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RentalBase(WireModel):
    id: str
    token_id: int
    borrower: str
    start_time: int
    end_time: int
    price: int
    listing_id: str
    created_at: int

    @field_serializer("token_id", "start_time", "end_time", "price", "created_at", when_used="json")
    def _as_decimal_string(self, value: int) -> str:
        return str(value)


class ListingBase(WireModel):
    id: str
    token_id: int
    name: str
    display_name: str
    lender: str
    price: int
    node: str
    max_rental_time: int
    created_at: int

    @field_serializer("token_id", "price", "max_rental_time", "created_at", when_used="json")
    def _as_decimal_string(self, value: int) -> str:
        return str(value)


class Listing(ListingBase):
    rentals: list[RentalBase] = Field(default_factory=list)
    status: RentalStatus
    has_active_rental: bool = False


class Rental(RentalBase):
    listing: ListingBase | None = None


class PageInfo(WireModel):
    start_cursor: str | None = None
    end_cursor: str | None = None
    has_next_page: bool = False
    has_previous_page: bool = False


class ListingPage(WireModel):
    items: list[Listing]
    page_info: PageInfo


class RentalPage(WireModel):
    items: list[Rental]
    page_info: PageInfo


class Portfolio(WireModel):
    address: str
    listed: list[Listing] = Field(default_factory=list)
    lapsed: list[Listing] = Field(default_factory=list)
    rented_out: list[Listing] = Field(default_factory=list)
    rented_in: list[Rental] = Field(default_factory=list)


class Checkpoint(WireModel):
    name: str
    last_offset: int
    updated_at: datetime | None = None


class ErrorDetail(WireModel):
    code: str
    message: str
