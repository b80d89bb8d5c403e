from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import httpx
from loguru import logger

from ensrent.core.config import settings
from ensrent.domain import EventRecord
from ensrent.errors import EventDecodeError

from .decode import decode_record


class EventFeedClient:
    """Thin wrapper around the upstream contract event feed.

    The feed is polled with ``after=<offset>&limit=<n>`` and answers with the
    next events in log order, either as a bare list or under ``events``.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        events_path: str | None = None,
        page_size: int | None = None,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        resolved_base = base_url or settings.event_feed_url
        if not resolved_base:
            raise ValueError("EVENT_FEED_URL must be set to read from the event feed")
        self.base_url = str(resolved_base)
        self.events_path = events_path or settings.event_feed_path
        self.page_size = page_size or settings.event_feed_page_size
        self.timeout = timeout
        self.client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def fetch_page(self, *, after: int) -> list[dict[str, Any]]:
        params = {"after": after, "limit": self.page_size}
        logger.debug("Event feed GET {} params={}", self.events_path, params)
        response = self.client.get(self.events_path, params=params)
        response.raise_for_status()
        payload = response.json()

        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict):
            candidates = (payload.get("events"), payload.get("items"), payload.get("data"))
            return next((value for value in candidates if isinstance(value, list)), [])
        raise EventDecodeError("Event feed returned an unexpected payload", payload=payload)

    def iter_records(self, *, after: int = 0) -> Iterator[EventRecord]:
        """Yield every event past ``after`` until the feed runs dry."""

        cursor = after
        while True:
            raw_events = self.fetch_page(after=cursor)
            if not raw_events:
                break

            base = cursor
            advanced = False
            for position, raw in enumerate(raw_events, start=1):
                record = decode_record(raw, default_offset=base + position)
                if record.offset <= cursor:
                    continue
                cursor = record.offset
                advanced = True
                yield record

            if not advanced:
                logger.warning("Event feed returned no events past offset {}; stopping", cursor)
                break
            if len(raw_events) < self.page_size:
                break

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "EventFeedClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
