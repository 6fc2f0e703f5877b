"""Subgraph client that pulls swaps newer than a checkpoint."""

from typing import Optional

import httpx
import structlog
from pydantic import ValidationError

from .config import config
from .models import GraphResponse, SwapEvent

logger = structlog.get_logger()

SWAPS_QUERY = """
{
  swaps(first: %d, orderBy: blockNumber, orderDirection: desc, where: {blockNumber_gt: %d}) {
    id
    sender
    recipient
    amount0
    amount1
    sqrtPriceX96
    liquidity
    tick
    blockNumber
    blockTimestamp
    transactionHash
    btcPrice
  }
}"""


class SwapFetchError(Exception):
    """Raised when a page of swaps could not be retrieved or decoded."""


class SwapFetcher:
    """Fetches swap events from the pool subgraph."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        page_size: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the fetcher."""
        self.api_url = api_url or config.graph_api_url
        self.page_size = page_size or config.page_size
        self.client = client or httpx.AsyncClient(
            timeout=config.request_timeout,
            headers={"Content-Type": "application/json"},
        )

    async def fetch_new_swaps(self, since_block: int) -> list[SwapEvent]:
        """
        Collect every swap with a block number above `since_block`.

        Results come back newest first. After each page the cursor moves to
        the block of the page's last (oldest) swap, and paging stops at the
        first empty or short page. Any failure aborts the whole fetch.

        Args:
            since_block: Exclusive lower bound on block number

        Returns:
            All fetched swaps in the order the subgraph returned them
        """
        cursor = since_block
        all_swaps: list[SwapEvent] = []

        while True:
            page = await self._fetch_page(cursor)
            if not page:
                break

            all_swaps.extend(page)
            cursor = int(page[-1].block_number)

            if len(page) < self.page_size:
                break

        logger.debug("Fetched swaps", since_block=since_block, count=len(all_swaps))
        return all_swaps

    async def _fetch_page(self, cursor: int) -> list[SwapEvent]:
        """Run a single swaps query."""
        query = SWAPS_QUERY % (self.page_size, cursor)
        try:
            response = await self.client.post(self.api_url, json={"query": query})
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            logger.error("Swap query failed", cursor=cursor, error=str(e))
            raise SwapFetchError(f"request failed: {e}") from e
        except ValueError as e:
            # Covers JSONDecodeError and bodies that are not valid UTF-8
            logger.error("Swap response is not JSON", cursor=cursor, error=str(e))
            raise SwapFetchError(f"malformed response body: {e}") from e

        try:
            graph_response = GraphResponse.model_validate(payload)
        except ValidationError as e:
            logger.error("Swap response failed validation", cursor=cursor, error=str(e))
            raise SwapFetchError(f"unexpected response shape: {e}") from e

        if graph_response.errors:
            messages = [err.get("message", str(err)) for err in graph_response.errors]
            logger.error("Subgraph returned errors", cursor=cursor, errors=messages)
            raise SwapFetchError(f"subgraph errors: {'; '.join(messages)}")

        if graph_response.data is None:
            raise SwapFetchError("response carries no data")

        return graph_response.data.swaps

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()
