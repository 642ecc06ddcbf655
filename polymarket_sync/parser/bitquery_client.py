"""Bitquery GraphQL client for Polymarket contract events on Polygon."""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Sequence

from beartype import beartype
from httpx import AsyncBaseTransport, AsyncClient, HTTPError

from polymarket_sync.markets.trade_matcher import is_quote_currency
from polymarket_sync.utils.config import (
    API_RATE_LIMIT,
    API_TIMEOUT,
    BITQUERY_DATASET,
    BITQUERY_ENDPOINT,
    BITQUERY_NETWORK,
    EVENT_WINDOW_HOURS,
    ON_DEMAND_WINDOW_DAYS,
    get_bitquery_token,
)
from polymarket_sync.utils.errors import AuthenticationError, EventSourceError
from polymarket_sync.utils.logger import get_logger

logger = get_logger(__name__)

EVENT_FIELDS = """
            Block {
              Time
              Number
              Hash
            }
            Transaction {
              Hash
              From
              To
            }
            Arguments {
              Name
              Value {
                ... on EVM_ABI_Integer_Value_Arg {
                  integer
                }
                ... on EVM_ABI_Address_Value_Arg {
                  address
                }
                ... on EVM_ABI_String_Value_Arg {
                  string
                }
                ... on EVM_ABI_BigInt_Value_Arg {
                  bigInteger
                }
                ... on EVM_ABI_Bytes_Value_Arg {
                  hex
                }
                ... on EVM_ABI_Boolean_Value_Arg {
                  bool
                }
              }
            }
"""

ARGUMENT_VALUE_TYPES = ("Bytes", "BigInteger", "Address", "String")


def _literal(value: str) -> str:
    """Quote a string for inline use in a GraphQL query."""
    return json.dumps(value)


def _literal_list(values: Sequence[str]) -> str:
    return "[" + ", ".join(_literal(value) for value in values) + "]"


@beartype
def build_events_query(event_name: str, address: str, hours_ago: int, limit: int) -> str:
    """Build an Events query for one event signature emitted by one contract."""
    return f"""
    {{
      EVM(dataset: {BITQUERY_DATASET}, network: {BITQUERY_NETWORK}) {{
        Events(
          where: {{
            Block: {{Time: {{since_relative: {{hours_ago: {hours_ago}}}}}}},
            Log: {{Signature: {{Name: {{in: [{_literal(event_name)}]}}}}}},
            LogHeader: {{Address: {{is: {_literal(address)}}}}}
          }}
          limit: {{count: {limit}}}
        ) {{{EVENT_FIELDS}        }}
      }}
    }}
    """


@beartype
def build_events_by_argument_query(
    event_name: str,
    address: str,
    argument_names: Sequence[str],
    values: Sequence[str],
    value_type: str,
    days_ago: int,
    limit: int,
) -> str:
    """
    Build an Events query restricted to events whose arguments carry given values.

    A single argument name is matched with "is", several with "in". A single
    Bytes value is matched with "is"; everything else uses "in".
    """
    if value_type not in ARGUMENT_VALUE_TYPES:
        raise ValueError(f"Unsupported argument value type: {value_type}")

    if len(argument_names) == 1:
        name_filter = f"{{is: {_literal(argument_names[0])}}}"
    else:
        name_filter = f"{{in: {_literal_list(argument_names)}}}"

    if value_type == "Bytes" and len(values) == 1:
        value_filter = f"{{{value_type}: {{is: {_literal(values[0])}}}}}"
    else:
        value_filter = f"{{{value_type}: {{in: {_literal_list(values)}}}}}"

    return f"""
    {{
      EVM(dataset: {BITQUERY_DATASET}, network: {BITQUERY_NETWORK}) {{
        Events(
          orderBy: {{descending: Block_Time}}
          where: {{
            Block: {{Time: {{since_relative: {{days_ago: {days_ago}}}}}}},
            Arguments: {{
              includes: {{
                Name: {name_filter},
                Value: {value_filter}
              }}
            }},
            Log: {{Signature: {{Name: {{in: [{_literal(event_name)}]}}}}}},
            LogHeader: {{Address: {{is: {_literal(address)}}}}}
          }}
          limit: {{count: {limit}}}
        ) {{{EVENT_FIELDS}        }}
      }}
    }}
    """


@beartype
def build_balance_updates_query(ids: Sequence[str], days_ago: int) -> str:
    """Build a BalanceUpdates query summing positive balance changes per holder of the given token ids."""
    return f"""
    {{
      EVM(dataset: {BITQUERY_DATASET}, network: {BITQUERY_NETWORK}) {{
        BalanceUpdates(
          where: {{
            Block: {{Time: {{since_relative: {{days_ago: {days_ago}}}}}}},
            BalanceUpdate: {{
              Id: {{
                in: {_literal_list(ids)}
              }}
            }}
          }}
          orderBy: {{descendingByField: "balance"}}
        ) {{
          Currency {{
            Name
            SmartContract
            Symbol
          }}
          balance: sum(of: BalanceUpdate_Amount, selectWhere: {{gt: "0"}})
          BalanceUpdate {{
            Id
            Address
          }}
        }}
      }}
    }}
    """


class AsyncBitqueryClient:
    """Async client for the Bitquery streaming GraphQL API."""

    def __init__(
        self,
        endpoint: str = BITQUERY_ENDPOINT,
        token: str | None = None,
        rate_limit: float = API_RATE_LIMIT,
        timeout: float = API_TIMEOUT,
        transport: AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the async Bitquery client.

        Args:
            endpoint: GraphQL endpoint URL
            token: OAuth token (read from the environment on each request if None)
            rate_limit: Maximum requests per second
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.endpoint = endpoint
        self.token = token
        self.rate_limit = rate_limit
        self.last_request_time = 0.0
        self.client = AsyncClient(timeout=timeout, transport=transport)
        self._rate_limit_lock = asyncio.Lock()

    async def _wait_for_rate_limit(self) -> None:
        """Wait if necessary to respect rate limits."""
        async with self._rate_limit_lock:
            current_time = time.time()
            time_since_last = current_time - self.last_request_time
            min_interval = 1.0 / self.rate_limit

            if time_since_last < min_interval:
                sleep_time = min_interval - time_since_last
                await asyncio.sleep(sleep_time)

            self.last_request_time = time.time()

    def _auth_headers(self) -> dict[str, str]:
        token = self.token if self.token is not None else get_bitquery_token()
        token = token.strip().strip("\"'").strip()
        if not token:
            raise AuthenticationError(
                "Bitquery OAuth token is required. Set BITQUERY_OAUTH_TOKEN "
                "(or BITQUERY_API_KEY) in .env.local or the environment."
            )
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    @beartype
    async def execute(self, query: str, label: str = "query") -> dict[str, object]:
        """
        Run a GraphQL query and return the EVM object of the response.

        Args:
            query: GraphQL query text
            label: Short description used in log messages

        Returns:
            The "EVM" object from the response data

        Raises:
            AuthenticationError: If the token is missing or rejected
            EventSourceError: On network errors, HTTP errors, GraphQL errors or malformed payloads
        """
        headers = self._auth_headers()
        await self._wait_for_rate_limit()

        start_time = time.time()
        try:
            response = await self.client.post(self.endpoint, json={"query": query}, headers=headers)
        except HTTPError as e:
            logger.error(f"Bitquery request failed ({label}): {e}")
            raise EventSourceError(f"Bitquery request failed ({label}): {e}") from e

        if response.status_code in (401, 403):
            logger.error(f"Bitquery rejected the OAuth token ({label}): HTTP {response.status_code}")
            raise AuthenticationError(f"Bitquery rejected the OAuth token: HTTP {response.status_code}")

        try:
            response.raise_for_status()
            payload = response.json()
        except HTTPError as e:
            logger.error(f"Bitquery returned an error ({label}): {e}")
            raise EventSourceError(f"Bitquery returned an error ({label}): {e}") from e
        except ValueError as e:
            raise EventSourceError(f"Bitquery returned invalid JSON ({label})") from e

        if not isinstance(payload, dict):
            raise EventSourceError(f"Unexpected Bitquery response ({label}): {type(payload).__name__}")

        errors = payload.get("errors")
        if errors:
            error_msg = "; ".join(
                str(error.get("message", error)) if isinstance(error, dict) else str(error)
                for error in errors
            )
            logger.error(f"Bitquery GraphQL errors ({label}): {error_msg}")
            raise EventSourceError(f"Bitquery GraphQL errors ({label}): {error_msg}")

        data = payload.get("data") or {}
        evm = data.get("EVM") if isinstance(data, dict) else None
        if not isinstance(evm, dict):
            raise EventSourceError(f"Bitquery response has no EVM data ({label})")

        duration = time.time() - start_time
        if duration > 5.0:
            logger.info(f"Bitquery {label} took {duration:.1f}s")
        return evm

    @staticmethod
    def _rows(evm: dict[str, object], key: str, label: str) -> list[dict[str, object]]:
        rows = evm.get(key) or []
        if not isinstance(rows, list):
            raise EventSourceError(f"Bitquery {key} is not a list ({label})")
        return rows

    @beartype
    async def fetch_events(
        self,
        event_name: str,
        address: str,
        hours_ago: int = EVENT_WINDOW_HOURS,
        limit: int = 10000,
    ) -> list[dict[str, object]]:
        """
        Fetch recent events of one kind from one contract.

        Args:
            event_name: Event signature name (e.g. "OrderFilled")
            address: Emitting contract address
            hours_ago: Trailing time window
            limit: Maximum number of events

        Returns:
            Raw events with Block, Transaction and Arguments
        """
        query = build_events_query(event_name, address, hours_ago, limit)
        events = self._rows(await self.execute(query, label=event_name), "Events", event_name)
        if events:
            logger.info(f"Fetched {len(events)} {event_name} events")
        return events

    @beartype
    async def fetch_events_by_argument(
        self,
        event_name: str,
        address: str,
        argument_names: Sequence[str],
        values: Sequence[str],
        value_type: str = "Bytes",
        days_ago: int = ON_DEMAND_WINDOW_DAYS,
        limit: int = 100,
    ) -> list[dict[str, object]]:
        """
        Fetch events whose named argument(s) match specific values, newest first.

        Args:
            event_name: Event signature name
            address: Emitting contract address
            argument_names: Argument name(s) to match (e.g. ["conditionId"])
            values: Accepted values
            value_type: Bitquery value type of the argument ("Bytes", "BigInteger", ...)
            days_ago: Trailing time window in days
            limit: Maximum number of events

        Returns:
            Raw events (empty if no values are given)
        """
        if not values or not argument_names:
            return []
        query = build_events_by_argument_query(
            event_name, address, argument_names, values, value_type, days_ago, limit
        )
        label = f"{event_name} by {','.join(argument_names)}"
        return self._rows(await self.execute(query, label=label), "Events", label)

    @beartype
    async def fetch_balances_by_ids(
        self,
        ids: Sequence[str],
        days_ago: int = ON_DEMAND_WINDOW_DAYS,
    ) -> list[dict[str, object]]:
        """
        Fetch holder balances for token ids.

        USDC ids ("0", "0x0", zero address) are never sent; if nothing is
        left no request is made.

        Args:
            ids: Token ids
            days_ago: Trailing time window in days

        Returns:
            Raw BalanceUpdates rows (Currency, balance, BalanceUpdate{Id, Address})
        """
        token_ids = [token_id for token_id in ids if token_id and not is_quote_currency(token_id)]
        if not token_ids:
            logger.warning("Only USDC ids given, skipping BalanceUpdates query")
            return []
        query = build_balance_updates_query(token_ids, days_ago)
        return self._rows(await self.execute(query, label="BalanceUpdates"), "BalanceUpdates", "BalanceUpdates")

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> AsyncBitqueryClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        """Async context manager exit."""
        await self.close()
