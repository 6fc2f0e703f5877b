"""
One fetch → filter → notify → checkpoint cycle.

The reconciler is the only writer of the checkpoint. A pass either leaves the
state untouched (fetch failed, nothing new, or another pass was busy) or ends
by moving lastBlockNumber to the newest fetched block and replacing the dedup
window with the hashes handled in this pass.
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

import structlog

from .config import config
from .formatter import format_swap
from .models import PassResult, PassStatus, SwapEvent
from .notifiers import Notifier
from .state_store import StateStore
from .swap_fetcher import SwapFetcher, SwapFetchError

logger = structlog.get_logger()


class ReconcilerPhase(str, Enum):
    """Where the reconciler currently is within a pass."""

    IDLE = "idle"
    FETCHING = "fetching"
    FILTERING = "filtering"
    NOTIFYING = "notifying"
    CHECKPOINTING = "checkpointing"


class DeliveryOutcome(str, Enum):
    """What happened to a single candidate swap."""

    SENT = "sent"  # At least one target accepted the message
    UNFORMATTABLE = "unformattable"  # Consumed without sending
    FAILED = "failed"  # Not delivered, hash stays unprocessed


class SwapReconciler:
    """Detects unseen swaps, notifies about them and advances the checkpoint."""

    def __init__(
        self,
        store: StateStore,
        fetcher: SwapFetcher,
        notifier: Notifier,
        error_backoff: Optional[float] = None,
        fallback_price: Optional[Decimal] = None,
        utc_offset_hours: Optional[int] = None,
    ):
        """
        Wire up the pass dependencies.

        Args:
            store: Owner of targets and checkpoint
            fetcher: Subgraph client
            notifier: Delivery channel for formatted messages
            error_backoff: Seconds to pause after a failed fetch
            fallback_price: BTC price used when a swap carries none
            utc_offset_hours: Display timezone for swap timestamps
        """
        self.store = store
        self.fetcher = fetcher
        self.notifier = notifier
        self.error_backoff = (
            config.fetch_error_backoff if error_backoff is None else error_backoff
        )
        self.fallback_price = fallback_price
        self.utc_offset_hours = utc_offset_hours
        self.phase = ReconcilerPhase.IDLE
        self._pass_lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._pass_lock.locked()

    async def run_once(self) -> PassResult:
        """Run a single pass unless one is already in flight."""
        if self._pass_lock.locked():
            logger.warning("Previous pass still running, skipping")
            return self._result(PassStatus.SKIPPED)

        async with self._pass_lock:
            try:
                return await self._run_pass()
            finally:
                self.phase = ReconcilerPhase.IDLE

    async def _run_pass(self) -> PassResult:
        self.phase = ReconcilerPhase.FETCHING
        since_block = int(self.store.get_last_block_number())
        try:
            swaps = await self.fetcher.fetch_new_swaps(since_block)
        except SwapFetchError as e:
            logger.error("Error fetching swaps", since_block=since_block, error=str(e))
            await asyncio.sleep(self.error_backoff)
            return self._result(PassStatus.FETCH_FAILED)

        if not swaps:
            logger.info("No new swaps found", since_block=since_block)
            return self._result(PassStatus.EMPTY)

        self.phase = ReconcilerPhase.FILTERING
        candidates = self._filter_unseen(swaps)

        self.phase = ReconcilerPhase.NOTIFYING
        processed: list[str] = []
        notified = 0
        unformattable = 0
        for swap in candidates:
            outcome = await self._deliver(swap)
            if outcome is DeliveryOutcome.SENT:
                notified += 1
            elif outcome is DeliveryOutcome.UNFORMATTABLE:
                unformattable += 1
            else:
                continue
            processed.append(swap.transaction_hash)

        self.phase = ReconcilerPhase.CHECKPOINTING
        newest_block = swaps[0].block_number
        if int(newest_block) < since_block:
            # Checkpoint never moves backwards
            newest_block = str(since_block)
        self.store.set_last_block_number(newest_block)
        self.store.set_recent_tx_hashes(processed)
        self.store.save()

        logger.info(
            "Pass completed",
            fetched=len(swaps),
            candidates=len(candidates),
            notified=notified,
            skipped_unformattable=unformattable,
            last_block_number=newest_block,
        )
        return self._result(
            PassStatus.COMPLETED,
            fetched=len(swaps),
            candidates=len(candidates),
            notified=notified,
            skipped_unformattable=unformattable,
            last_block_number=newest_block,
        )

    def _filter_unseen(self, swaps: list[SwapEvent]) -> list[SwapEvent]:
        """Drop swaps already notified, plus repeats from overlapping pages."""
        known_hashes = self.store.get_recent_tx_hashes()
        seen_ids: set[str] = set()
        candidates = []
        for swap in swaps:
            if swap.id in seen_ids:
                continue
            seen_ids.add(swap.id)
            if swap.transaction_hash in known_hashes:
                continue
            candidates.append(swap)
        return candidates

    async def _deliver(self, swap: SwapEvent) -> DeliveryOutcome:
        """Format and notify about one swap."""
        logger.info(
            "New swap detected",
            block_number=swap.block_number,
            tx_hash=swap.transaction_hash,
            btc_price=swap.btc_price,
        )
        try:
            message = format_swap(swap, self.fallback_price, self.utc_offset_hours)
            if not message:
                # Unrenderable records are consumed, never retried
                return DeliveryOutcome.UNFORMATTABLE
            delivered = await self.notifier.notify(message)
        except Exception as e:
            logger.error("Error sending notification", tx_hash=swap.transaction_hash, error=str(e))
            return DeliveryOutcome.FAILED
        return DeliveryOutcome.SENT if delivered else DeliveryOutcome.FAILED

    def _result(self, status: PassStatus, **kwargs) -> PassResult:
        return PassResult(status=status, finished_at=datetime.now(timezone.utc), **kwargs)
