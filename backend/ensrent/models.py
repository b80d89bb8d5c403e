from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, Index, String, and_
from sqlalchemy.orm import Mapped, foreign, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from .db import Base

UINT256_DIGITS = 78


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Uint256(TypeDecorator):
    """Unsigned 256-bit integer stored as a zero-padded decimal string.

    Padding keeps lexical order equal to numeric order, so ``ORDER BY`` and
    range comparisons stay exact on SQLite as well as PostgreSQL.
    """

    impl = String(UINT256_DIGITS)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        number = int(value)
        if number < 0 or number >= 2**256:
            raise ValueError(f"{value!r} is not a uint256")
        return f"{number:0{UINT256_DIGITS}d}"

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


class Listing(Base):
    __tablename__ = "listing"

    id: Mapped[str] = mapped_column(String(66), primary_key=True)
    token_id: Mapped[int] = mapped_column(Uint256, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    lender: Mapped[str] = mapped_column(String(42), nullable=False)
    price_per_second: Mapped[int] = mapped_column(Uint256, nullable=False)
    node: Mapped[str] = mapped_column(String(66), nullable=False)
    max_rental_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    # Position of the DomainListed event in the contract log; breaks same-block ties.
    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)
    superseded_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    rentals: Mapped[list["Rental"]] = relationship(
        "Rental",
        primaryjoin=lambda: and_(
            foreign(Rental.listing_id) == Listing.id,
            foreign(Rental.token_id) == Listing.token_id,
        ),
        viewonly=True,
        order_by=lambda: (Rental.end_time.desc(), Rental.start_time.desc()),
    )

    __table_args__ = (
        Index("ix_listing_id", "id"),
        Index("ix_listing_token_id", "token_id"),
        Index("ix_listing_lender", "lender"),
    )


class Rental(Base):
    __tablename__ = "rental"

    id: Mapped[str] = mapped_column(String(66), primary_key=True)
    token_id: Mapped[int] = mapped_column(Uint256, primary_key=True)
    borrower: Mapped[str] = mapped_column(String(42), nullable=False)
    start_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    end_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    price_per_second: Mapped[int] = mapped_column(Uint256, nullable=False)
    # No FK constraint: rentals outlive the listing they were taken against.
    listing_id: Mapped[str] = mapped_column(String(66), nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    listing: Mapped[Listing | None] = relationship(
        "Listing",
        primaryjoin=lambda: and_(
            foreign(Rental.listing_id) == Listing.id,
            foreign(Rental.token_id) == Listing.token_id,
        ),
        viewonly=True,
        uselist=False,
    )

    __table_args__ = (
        Index("ix_rental_id", "id"),
        Index("ix_rental_token_id", "token_id"),
        Index("ix_rental_borrower", "borrower"),
        Index("ix_rental_listing_id", "listing_id"),
    )


class IndexerCheckpoint(Base):
    __tablename__ = "indexer_checkpoint"

    name: Mapped[str] = mapped_column(String, primary_key=True)
    last_offset: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
