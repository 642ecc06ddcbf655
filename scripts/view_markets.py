"""Simple script to view markets and prices from the database."""

from __future__ import annotations

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from polymarket_sync.database.repository import EventStore
from polymarket_sync.markets.market_service import MarketService
from polymarket_sync.utils.config import DB_PATH


def _price(prices: dict, side: str) -> str:
    info = prices.get(side)
    return info["formatted_cents"] if info else "-"


def view_markets(limit: int = 20, db_path: Path = DB_PATH) -> None:
    """Print the newest markets, those with trades first."""
    service = MarketService(EventStore(db_path))
    result = service.list_markets(limit=limit)
    if not result["success"]:
        print(f"Error: {result['error']}")
        sys.exit(1)

    markets = result["data"]
    print("=" * 110)
    print(f"Markets: {result['count']} ({result['with_trades']} with trades)")
    print("=" * 110)

    if not markets:
        print("No markets found. Run scripts/sync_once.py first.")
        return

    print(f"{'Title':<70} {'Trades':>7} {'YES':>8} {'NO':>8}")
    print("-" * 110)
    for market in markets:
        title = market["ancillary_data_decoded"].get("title") or market["question_id"]
        if len(title) > 68:
            title = title[:65] + "..."
        prices = market["prices"]
        print(f"{title:<70} {market['trade_count']:>7} {_price(prices, 'yes'):>8} {_price(prices, 'no'):>8}")


def view_market(question_id: str, limit: int = 20, db_path: Path = DB_PATH) -> None:
    """Print one market and its latest trades."""
    service = MarketService(EventStore(db_path))
    result = service.get_market(question_id)
    if not result["success"]:
        print(f"Error: {result['error']}")
        sys.exit(1)

    data = result["data"]
    market = data["market"]
    print("=" * 110)
    print(f"Title: {market['ancillary_data_decoded'].get('title', '')}")
    print(f"Condition: {market.get('condition_id')}")
    print(f"YES: {_price(data['prices'], 'yes')}  NO: {_price(data['prices'], 'no')}")
    print("=" * 110)

    trades = data["trades"][:limit]
    if not trades:
        print("No trades found.")
        return

    print(f"{'Time':<22} {'Maker asset':<24} {'Taker asset':<24} {'Maker amt':>14} {'Taker amt':>14}")
    print("-" * 110)
    for trade in trades:
        maker_asset = str(trade["maker_asset_id"])[:22]
        taker_asset = str(trade["taker_asset_id"])[:22]
        print(
            f"{str(trade['block_time'])[:20]:<22} {maker_asset:<24} {taker_asset:<24} "
            f"{trade['maker_amount_filled']:>14} {trade['taker_amount_filled']:>14}"
        )


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] in ("-h", "--help"):
        print("Usage: python scripts/view_markets.py [question_id] [limit]")
        print("Example: python scripts/view_markets.py 0x1234... 50")
        sys.exit(0)

    if len(sys.argv) > 1 and not sys.argv[1].isdigit():
        limit = int(sys.argv[2]) if len(sys.argv) > 2 else 20
        view_market(sys.argv[1], limit)
    else:
        limit = int(sys.argv[1]) if len(sys.argv) > 1 else 20
        view_markets(limit)
