"""Run the polling service: initial sync if needed, then periodic Bitquery polling."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

from beartype import beartype

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from polymarket_sync.database.repository import EventStore
from polymarket_sync.parser.bitquery_client import AsyncBitqueryClient
from polymarket_sync.parser.ingestion import EventIngestor
from polymarket_sync.scheduler.polling import PollingService
from polymarket_sync.utils.config import DB_PATH, get_bitquery_token
from polymarket_sync.utils.logger import get_logger

logger = get_logger(__name__)


async def run(db_path: Path, status_interval: float) -> None:
    """Start polling and log the queue state until interrupted."""
    store = EventStore(db_path)
    async with AsyncBitqueryClient() as client:
        service = PollingService(EventIngestor(client, store), store)
        service.start()
        try:
            while True:
                await asyncio.sleep(status_interval)
                status = service.sync_status()
                logger.info(
                    f"Queue pending={service.queue.pending} completed={service.queue.completed} "
                    f"dropped={service.queue.dropped} | sync in_progress={status['in_progress']} "
                    f"tables_empty={status['tables_empty']}"
                )
        finally:
            service.stop()
            logger.log_summary()


@beartype
def main(db_path: Path = DB_PATH, status_interval: float = 60.0) -> None:
    """
    Run the sync service until Ctrl+C.

    Args:
        db_path: SQLite database file
        status_interval: Seconds between status log lines
    """
    if not get_bitquery_token():
        print("ERROR: Bitquery OAuth token not configured!")
        print("Set BITQUERY_OAUTH_TOKEN (or BITQUERY_API_KEY) in .env.local")
        sys.exit(1)

    print("Polymarket event sync")
    print("=" * 50)
    print(f"Database: {db_path}")
    print("Press Ctrl+C to stop")
    print("-" * 50)

    try:
        asyncio.run(run(db_path, status_interval))
    except KeyboardInterrupt:
        print("\nStopped.")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Continuously sync Polymarket events from Bitquery")
    parser.add_argument(
        "--db-path",
        type=Path,
        default=DB_PATH,
        help="SQLite database file (default from DATABASE_PATH / DB_PATH)",
    )
    parser.add_argument(
        "--status-interval",
        type=float,
        default=60.0,
        help="Seconds between status log lines",
    )

    args = parser.parse_args()
    main(db_path=args.db_path, status_interval=args.status_interval)
