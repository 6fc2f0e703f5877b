"""
Data structures for swap detection and checkpointing.

Swap records mirror the subgraph schema one to one. Numeric fields stay as
decimal strings because uint256 amounts and sqrtPriceX96 overflow anything
narrower, and the formatter parses them into Decimal only when it needs to.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


class SwapEvent(BaseModel):
    """A single pool swap as returned by the subgraph."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(description="Subgraph entity id (tx hash + log index)")
    sender: str = Field(description="Address that initiated the swap")
    recipient: str = Field(description="Address that received the output")
    amount0: str = Field(description="Signed token0 delta in base units")
    amount1: str = Field(description="Signed token1 delta in base units")
    sqrt_price_x96: str = Field(alias="sqrtPriceX96", description="Pool price after the swap")
    liquidity: str = Field(description="In-range liquidity after the swap")
    tick: int = Field(description="Pool tick after the swap")
    block_number: str = Field(alias="blockNumber", description="Block the swap landed in")
    block_timestamp: str = Field(alias="blockTimestamp", description="Unix seconds of the block")
    transaction_hash: str = Field(alias="transactionHash", description="Hash of the enclosing transaction")
    btc_price: Optional[str] = Field(
        None, alias="btcPrice", description="USD BTC price recorded by the subgraph"
    )

    @field_validator("tick")
    @classmethod
    def validate_tick(cls, v: int) -> int:
        if not INT32_MIN <= v <= INT32_MAX:
            raise ValueError("tick is outside the int32 range")
        return v

    @field_validator("block_number")
    @classmethod
    def validate_block_number(cls, v: str) -> str:
        if not v.isdigit():
            raise ValueError("blockNumber must be a numeric string")
        return v


class SwapsPage(BaseModel):
    """The `data` object of a swaps query."""

    swaps: list[SwapEvent] = Field(default_factory=list)


class GraphResponse(BaseModel):
    """Envelope of a GraphQL response."""

    data: Optional[SwapsPage] = None
    errors: Optional[list[dict[str, Any]]] = None


class PersistedState(BaseModel):
    """
    Everything the bot keeps on disk between runs.

    Older files used `barkAPIURLs` and `currentTxHashes`; both are still
    accepted. Keys this version does not know about are carried through
    untouched so a newer file survives a round trip through an older bot.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    notification_targets: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("notificationTargets", "barkAPIURLs"),
        serialization_alias="notificationTargets",
    )
    last_block_number: str = Field(
        validation_alias=AliasChoices("lastBlockNumber", "last_block_number"),
        serialization_alias="lastBlockNumber",
    )
    recent_tx_hashes: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("recentTxHashes", "currentTxHashes"),
        serialization_alias="recentTxHashes",
    )

    @field_validator("last_block_number", mode="before")
    @classmethod
    def coerce_block_number(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            v = str(v)
        if not isinstance(v, str) or not v.isdigit():
            raise ValueError("lastBlockNumber must be a non-negative integer")
        return v

    @field_validator("recent_tx_hashes")
    @classmethod
    def dedupe_hashes(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))


class PassStatus(str, Enum):
    """How a reconciliation pass ended."""

    SKIPPED = "skipped"  # Another pass was still running
    FETCH_FAILED = "fetch_failed"  # Remote fetch raised, state untouched
    EMPTY = "empty"  # Nothing new upstream, no checkpoint written
    COMPLETED = "completed"  # Swaps fetched and checkpoint saved


class PassResult(BaseModel):
    """Summary of one reconciliation pass."""

    status: PassStatus
    fetched: int = 0
    candidates: int = 0
    notified: int = 0
    skipped_unformattable: int = 0
    last_block_number: Optional[str] = None
    finished_at: datetime
