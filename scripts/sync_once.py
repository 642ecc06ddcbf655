"""Fetch every event kind once, in dependency order, and store it."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

from beartype import beartype

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from polymarket_sync.database.repository import EventStore
from polymarket_sync.parser.bitquery_client import AsyncBitqueryClient
from polymarket_sync.parser.ingestion import EventIngestor, IngestionStats
from polymarket_sync.scheduler.polling import SYNC_ORDER, PollingService
from polymarket_sync.utils.config import DB_PATH
from polymarket_sync.utils.errors import AuthenticationError
from polymarket_sync.utils.logger import get_logger

logger = get_logger(__name__)


async def sync_once(
    db_path: Path, kinds: list[str]
) -> tuple[dict[str, IngestionStats], list[tuple[str, Exception]]]:
    """
    Queue one job per event kind and wait for the queue to drain.

    Returns:
        Stats per completed event kind, and the jobs rejected without retry
    """
    store = EventStore(db_path)
    async with AsyncBitqueryClient() as client:
        service = PollingService(EventIngestor(client, store), store)
        for kind in kinds:
            service.enqueue_kind(kind, reason="Manual")
        await service.queue.join()
        return service.last_results, service.queue.rejected


@beartype
def main(db_path: Path = DB_PATH, kinds: list[str] | None = None) -> None:
    """
    Run a single sync pass.

    Args:
        db_path: SQLite database file
        kinds: Event kinds to fetch (all, in dependency order, if None)
    """
    selected = [kind for kind in SYNC_ORDER if kinds is None or kind in kinds]
    print("Polymarket event sync (single pass)")
    print(f"Database: {db_path}")
    print(f"Events: {', '.join(selected)}")
    print("-" * 50)

    results, rejected = asyncio.run(sync_once(db_path, selected))
    auth_errors = [error for _, error in rejected if isinstance(error, AuthenticationError)]
    if auth_errors:
        print(f"\nERROR: {auth_errors[0]}")
        sys.exit(1)

    for kind in selected:
        stats = results.get(kind)
        if stats is None:
            print(f"{kind:<22} failed (see logs/polymarket_sync.log)")
        else:
            print(f"{kind:<22} {stats.stored:>6} new {stats.skipped:>6} skipped {stats.total:>6} fetched")

    counts = EventStore(db_path, initialize=False).table_counts()
    print("\nTable counts:")
    for table, count in counts.items():
        print(f"  {table:<32} {count}")
    logger.log_summary()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Fetch Polymarket events from Bitquery once")
    parser.add_argument(
        "--db-path",
        type=Path,
        default=DB_PATH,
        help="SQLite database file (default from DATABASE_PATH / DB_PATH)",
    )
    parser.add_argument(
        "--kind",
        action="append",
        choices=list(SYNC_ORDER),
        help="Event kind to fetch (repeatable; default: all)",
    )

    args = parser.parse_args()
    main(db_path=args.db_path, kinds=args.kind)
