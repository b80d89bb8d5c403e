from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path
from typing import Protocol

from loguru import logger

from ensrent.domain import EventRecord
from ensrent.errors import EventDecodeError

from .decode import decode_record


class EventSource(Protocol):
    """Ordered, possibly redelivering stream of contract events."""

    def iter_records(self, *, after: int = 0) -> Iterator[EventRecord]: ...


class JsonlEventSource:
    """Read events from a JSON-lines export of the contract log.

    Records without an explicit ``offset`` are numbered by their 1-based line.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def iter_records(self, *, after: int = 0) -> Iterator[EventRecord]:
        with self.path.open("r", encoding="utf-8") as handle:
            for line_number, line in enumerate(handle, start=1):
                stripped = line.strip()
                if not stripped:
                    continue
                try:
                    raw = json.loads(stripped)
                except json.JSONDecodeError as exc:
                    raise EventDecodeError(
                        f"{self.path}:{line_number} is not valid JSON", payload=stripped
                    ) from exc
                record = decode_record(raw, default_offset=line_number)
                if record.offset <= after:
                    continue
                yield record
        logger.debug("Finished reading {}", self.path)


class ListEventSource:
    """In-memory source over already decoded records."""

    def __init__(self, records: list[EventRecord]) -> None:
        self.records = list(records)

    def iter_records(self, *, after: int = 0) -> Iterator[EventRecord]:
        for record in self.records:
            if record.offset > after:
                yield record
