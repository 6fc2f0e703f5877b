"""Turn raw swap records into one-line push messages."""

from datetime import datetime, timedelta, timezone
from decimal import (
    ROUND_HALF_EVEN,
    Decimal,
    DecimalException,
    InvalidOperation,
    localcontext,
)
from typing import Optional, Union

import structlog

from .config import config
from .models import SwapEvent

logger = structlog.get_logger()

# Both pool tokens use 8 decimals
TOKEN_SCALE = Decimal(10) ** 8
AMOUNT_QUANTUM = Decimal("0.00001")
VOLUME_QUANTUM = Decimal("0.01")
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# uint256 amounts times a price need far more than the default 28 digits
_PRECISION = 120


def _parse_decimal(raw: Optional[str]) -> Optional[Decimal]:
    if raw is None:
        return None
    try:
        value = Decimal(raw.strip())
    except (InvalidOperation, AttributeError):
        return None
    if not value.is_finite():
        return None
    return value


def _render(value: Decimal, quantum: Decimal) -> str:
    text = format(value.quantize(quantum, rounding=ROUND_HALF_EVEN), "f")
    # Go-style rendering never shows a negative zero
    if text.startswith("-") and Decimal(text) == 0:
        text = text[1:]
    return text


def resolve_price(swap: SwapEvent, fallback_price: Union[Decimal, str, None] = None) -> Decimal:
    """USD price of BTC for this swap, or the configured fallback."""
    price = _parse_decimal(swap.btc_price)
    if price is not None:
        return price
    if swap.btc_price:
        logger.warning("Failed to parse btcPrice", tx_hash=swap.transaction_hash, btc_price=swap.btc_price)
    if fallback_price is None:
        fallback_price = config.fallback_btc_price
    return Decimal(fallback_price)


def format_block_time(raw_timestamp: str, utc_offset_hours: int) -> Optional[str]:
    """Render unix seconds in a fixed offset zone, or None if unparseable."""
    try:
        seconds = int(raw_timestamp.strip())
    except (ValueError, AttributeError):
        return None
    zone = timezone(timedelta(hours=utc_offset_hours))
    try:
        return datetime.fromtimestamp(seconds, tz=zone).strftime(TIME_FORMAT)
    except (OverflowError, OSError, ValueError):
        return None


def format_swap(
    swap: SwapEvent,
    fallback_price: Union[Decimal, str, None] = None,
    utc_offset_hours: Optional[int] = None,
) -> str:
    """
    Build the push message for a swap.

    A negative amount0 means the pool paid out uniBTC, so the trader sold
    WBTC; otherwise the trader sold uniBTC. Volume is the input amount times
    the BTC price. An empty string means the swap cannot be rendered.

    Args:
        swap: The swap to describe
        fallback_price: Price used when the swap has no usable btcPrice
        utc_offset_hours: Offset of the display timezone

    Returns:
        "<time>  <in> <TOKEN> -> <out> <TOKEN> Vol: $<usd>" or ""
    """
    if utc_offset_hours is None:
        utc_offset_hours = config.display_utc_offset_hours

    amount0 = _parse_decimal(swap.amount0)
    amount1 = _parse_decimal(swap.amount1)
    if amount0 is None or amount1 is None:
        logger.error(
            "Unparseable swap amounts",
            tx_hash=swap.transaction_hash,
            amount0=swap.amount0,
            amount1=swap.amount1,
        )
        return ""

    readable_time = format_block_time(swap.block_timestamp, utc_offset_hours)
    if readable_time is None:
        logger.error(
            "Unparseable block timestamp",
            tx_hash=swap.transaction_hash,
            block_timestamp=swap.block_timestamp,
        )
        return ""

    if amount0 < 0:
        token_in, token_out = "WBTC", "UNIBTC"
    else:
        token_in, token_out = "UNIBTC", "WBTC"

    price = resolve_price(swap, fallback_price)

    try:
        with localcontext() as ctx:
            ctx.prec = _PRECISION
            if amount0 < 0:
                amount_in, amount_out = amount1, -amount0
            else:
                amount_in, amount_out = amount0, -amount1
            volume = amount_in * price
            amount_in_str = _render(amount_in / TOKEN_SCALE, AMOUNT_QUANTUM)
            amount_out_str = _render(amount_out / TOKEN_SCALE, AMOUNT_QUANTUM)
            volume_str = _render(volume / TOKEN_SCALE, VOLUME_QUANTUM)
    except DecimalException:
        # Magnitude beyond what fits the display precision
        logger.error(
            "Swap values out of range",
            tx_hash=swap.transaction_hash,
            amount0=swap.amount0,
            amount1=swap.amount1,
            btc_price=str(price),
        )
        return ""

    return (
        f"{readable_time}  {amount_in_str} {token_in} -> "
        f"{amount_out_str} {token_out} Vol: ${volume_str}"
    )
