import argparse
import json
import sys

from loguru import logger

from ensrent.core.config import get_settings
from ensrent.db import init_db
from ensrent.errors import EnsRentError
from indexer.client import EventFeedClient
from indexer.service import IndexerService
from indexer.sources import JsonlEventSource


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Apply rental contract events to the listing projection")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--file", default=None, help="JSON-lines file of contract events")
    source.add_argument("--feed-url", default=None, help="Override EVENT_FEED_URL")
    parser.add_argument("--page-size", type=int, default=None, help="Events fetched per feed request")
    parser.add_argument("--limit", type=int, default=None, help="Apply at most N events")
    parser.add_argument(
        "--follow",
        action="store_true",
        help="Keep polling the source for new events instead of exiting when it runs dry",
    )
    parser.add_argument("--poll-interval", type=float, default=None, help="Seconds between polls in --follow mode")
    parser.add_argument(
        "--reset-checkpoint",
        type=int,
        default=None,
        metavar="OFFSET",
        help="Rewind the checkpoint to OFFSET before indexing (already applied events are no-ops)",
    )
    args = parser.parse_args(argv)
    if args.file and args.page_size is not None:
        parser.error("--page-size only applies to the event feed, not --file")
    if args.follow and args.limit is not None:
        parser.error("--limit cannot be combined with --follow")
    return args


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    init_db()

    service = IndexerService()
    if args.reset_checkpoint is not None:
        service.reset_checkpoint(args.reset_checkpoint)

    if args.file:
        source = JsonlEventSource(args.file)
    else:
        feed_url = args.feed_url or settings.event_feed_url
        if not feed_url:
            logger.error("Provide --file or --feed-url (or set EVENT_FEED_URL)")
            return 2
        source = EventFeedClient(base_url=str(feed_url), page_size=args.page_size)

    try:
        if args.follow:
            stats = service.follow(source, poll_interval=args.poll_interval)
        else:
            stats = service.run(source, limit=args.limit)
    except KeyboardInterrupt:
        logger.info("Interrupted; checkpoint is at offset {}", service.last_offset())
        return 130
    except EnsRentError as exc:
        logger.error("Indexer stopped: {}", exc)
        return 1
    finally:
        if isinstance(source, EventFeedClient):
            source.close()

    print(json.dumps(stats.to_dict()))
    return 0


if __name__ == "__main__":
    sys.exit(main())
