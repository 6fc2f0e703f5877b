"""
Main coordination logic for the swap push bot.

Ties together the state store, the reconciler and the optional health
server. Passes are triggered on a fixed cadence; if a pass is still running
when the next tick comes due, that tick is skipped instead of stacking a
second pass on top of the first.
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional

import structlog

from .config import config
from .health import HealthServer
from .models import PassResult, PassStatus
from .reconciler import SwapReconciler
from .state_store import StateStore

logger = structlog.get_logger()


class SwapOrchestrator:
    """
    Central coordinator for the polling loop.

    Owns the background tasks and their shutdown, and keeps a few counters
    that the health server exposes.
    """

    def __init__(
        self,
        reconciler: SwapReconciler,
        store: StateStore,
        poll_interval: Optional[float] = None,
        watch_state_file: Optional[bool] = None,
        health_server: Optional[HealthServer] = None,
    ):
        """
        Wire up all the moving parts.

        Args:
            reconciler: Runs one fetch/notify/checkpoint pass per tick
            store: State store, watched for external edits when enabled
            poll_interval: Seconds between tick starts
            watch_state_file: Whether to hot-reload the state file
            health_server: Optional HTTP status endpoint
        """
        self.reconciler = reconciler
        self.store = store
        self.poll_interval = poll_interval or config.poll_interval
        self.watch_state_file = (
            config.watch_state_file if watch_state_file is None else watch_state_file
        )
        self.health_server = health_server
        self.is_running = False
        self.background_tasks: list[asyncio.Task] = []
        self._current_pass: Optional[asyncio.Task] = None

        # Track stats for the status endpoint
        self.passes_run = 0
        self.ticks_skipped = 0
        self.swaps_notified = 0
        self.swaps_skipped = 0
        self.last_result: Optional[PassResult] = None

    async def start(self):
        """Start the poll loop and helpers, and run until stopped."""
        self.is_running = True
        logger.info("Starting swap push bot", poll_interval=self.poll_interval)

        if self.health_server:
            self.health_server.mark_started()
            await self.health_server.start()
            self.health_server.update_status(
                started_at=datetime.now(timezone.utc).isoformat(),
                passes=0,
                swaps_notified=0,
                swaps_skipped=0,
                last_block_number=self.store.get_last_block_number(),
            )

        self.background_tasks = [
            asyncio.create_task(self._poll_loop(), name="swap-poller"),
        ]
        if self.watch_state_file:
            self.background_tasks.append(
                asyncio.create_task(self.store.watch(), name="state-watcher")
            )

        try:
            await asyncio.gather(*self.background_tasks)
        except asyncio.CancelledError:
            logger.info("Background tasks cancelled")
        except Exception as e:
            logger.error(
                "Background task crashed",
                error=str(e),
                task_count=len(self.background_tasks),
            )
            raise

    async def stop(self):
        """Gracefully shut down all services."""
        self.is_running = False
        logger.info("Shutting down swap orchestrator")

        tasks = list(self.background_tasks)
        if self._current_pass is not None:
            tasks.append(self._current_pass)
        for task in tasks:
            if not task.done():
                task.cancel()

        try:
            await asyncio.wait_for(
                asyncio.gather(*tasks, return_exceptions=True),
                timeout=30.0,
            )
        except asyncio.TimeoutError:
            logger.warning("Shutdown timeout - some tasks may still be running")

        await self.reconciler.fetcher.close()
        await self.reconciler.notifier.close()

        if self.health_server:
            await self.health_server.stop()

        logger.info("Swap orchestrator stopped cleanly")

    def tick(self) -> bool:
        """Start a pass unless the previous one is still running."""
        if self._current_pass is not None and not self._current_pass.done():
            self.ticks_skipped += 1
            logger.debug("Pass still running, skipping tick", skipped=self.ticks_skipped)
            return False
        self._current_pass = asyncio.create_task(self._run_pass(), name="reconcile-pass")
        return True

    async def _poll_loop(self):
        """Fire a tick every poll_interval, measured from tick start."""
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while self.is_running:
            self.tick()
            next_tick += self.poll_interval
            delay = next_tick - loop.time()
            if delay < 0:
                # Fell behind; realign instead of bursting to catch up
                next_tick = loop.time()
                delay = 0
            await asyncio.sleep(delay)

    async def _run_pass(self):
        try:
            result = await self.reconciler.run_once()
        except Exception as e:
            logger.error("Reconciliation pass crashed", error=str(e), exc_info=True)
            return

        if result.status is not PassStatus.SKIPPED:
            self.passes_run += 1
        self.swaps_notified += result.notified
        self.swaps_skipped += result.skipped_unformattable
        self.last_result = result

        if self.health_server:
            self.health_server.record_pass(result)
            self.health_server.update_status(
                passes=self.passes_run,
                swaps_notified=self.swaps_notified,
                swaps_skipped=self.swaps_skipped,
                ticks_skipped=self.ticks_skipped,
                last_pass=result.model_dump(mode="json"),
                last_block_number=self.store.get_last_block_number(),
            )
