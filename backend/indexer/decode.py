from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser

from ensrent.domain import (
    EVENT_TYPES,
    DomainEvent,
    DomainListed,
    DomainReclaimed,
    DomainRented,
    EventRecord,
)
from ensrent.errors import EventDecodeError


def _first(mapping: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = mapping.get(key)
        if value is not None:
            return value
    return None


def _as_int(value: Any, field: str) -> int:
    """Accept ints, decimal strings and 0x-prefixed hex strings."""

    if isinstance(value, bool):
        raise EventDecodeError(f"{field} must be an integer, got a boolean")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            number = int(text, 16) if text.lower().startswith("0x") else int(text)
        except ValueError as exc:
            raise EventDecodeError(f"{field} is not an integer: {value!r}") from exc
    else:
        raise EventDecodeError(f"{field} is missing or not an integer")
    if number < 0:
        raise EventDecodeError(f"{field} must not be negative")
    return number


def _as_timestamp(value: Any, field: str) -> int:
    if isinstance(value, datetime):
        moment = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return int(moment.timestamp())
    if isinstance(value, str) and not value.strip().lstrip("-").isdigit() and not value.lower().startswith("0x"):
        try:
            parsed = date_parser.isoparse(value)
        except ValueError as exc:
            raise EventDecodeError(f"{field} is not a timestamp: {value!r}") from exc
        return _as_timestamp(parsed, field)
    return _as_int(value, field)


def _as_address(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise EventDecodeError(f"{field} is missing")
    return value.strip().lower()


def _as_text(value: Any, field: str) -> str:
    if not isinstance(value, str):
        raise EventDecodeError(f"{field} is missing")
    return value


def _event_name(raw: dict[str, Any]) -> str:
    name = _first(raw, "event", "eventName", "type")
    if not isinstance(name, str):
        raise EventDecodeError("Event payload has no event name", payload=raw)
    # Accept fully qualified names such as "ENSRent:DomainListed".
    return name.rsplit(":", 1)[-1]


def _envelope(raw: dict[str, Any]) -> tuple[str, int]:
    transaction = raw.get("transaction") if isinstance(raw.get("transaction"), dict) else {}
    block = raw.get("block") if isinstance(raw.get("block"), dict) else {}

    tx_hash = _first(raw, "txHash", "transactionHash")
    if tx_hash is None:
        tx_hash = transaction.get("hash")
    timestamp = _first(raw, "blockTimestamp")
    if timestamp is None:
        timestamp = block.get("timestamp")
    return _as_text(tx_hash, "txHash").lower(), _as_timestamp(timestamp, "blockTimestamp")


def decode_event(raw: dict[str, Any]) -> DomainEvent:
    """Turn one inbound event payload into its typed domain event."""

    if not isinstance(raw, dict):
        raise EventDecodeError("Event payload must be an object", payload=raw)

    name = _event_name(raw)
    if name not in EVENT_TYPES:
        raise EventDecodeError(f"Unknown event type '{name}'", payload=raw)

    args = raw.get("args") if isinstance(raw.get("args"), dict) else raw
    try:
        tx_hash, block_timestamp = _envelope(raw)
        token_id = _as_int(args.get("tokenId"), "tokenId")

        if name == "DomainListed":
            return DomainListed(
                token_id=token_id,
                name=_as_text(args.get("name"), "name"),
                lender=_as_address(args.get("lender"), "lender"),
                price_per_second=_as_int(
                    _first(args, "minPricePerSecond", "pricePerSecond"), "minPricePerSecond"
                ),
                node=_as_text(_first(args, "nameNode", "node"), "nameNode").lower(),
                max_rental_time=_as_timestamp(
                    _first(args, "maxEndTimestamp", "maxRentalTime"), "maxEndTimestamp"
                ),
                tx_hash=tx_hash,
                block_timestamp=block_timestamp,
            )
        if name == "DomainRented":
            return DomainRented(
                token_id=token_id,
                borrower=_as_address(args.get("borrower"), "borrower"),
                rental_end=_as_timestamp(args.get("rentalEnd"), "rentalEnd"),
                price_per_second=_as_int(args.get("pricePerSecond"), "pricePerSecond"),
                tx_hash=tx_hash,
                block_timestamp=block_timestamp,
            )
        return DomainReclaimed(
            token_id=token_id,
            tx_hash=tx_hash,
            block_timestamp=block_timestamp,
        )
    except EventDecodeError as exc:
        if exc.payload is None:
            exc.payload = raw
        raise


def decode_record(raw: dict[str, Any], *, default_offset: int) -> EventRecord:
    offset = raw.get("offset") if isinstance(raw, dict) else None
    resolved = default_offset if offset is None else _as_int(offset, "offset")
    return EventRecord(offset=resolved, event=decode_event(raw))
