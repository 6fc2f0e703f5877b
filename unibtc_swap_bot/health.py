"""
HTTP liveness and status endpoints for the poller.

`/health` answers 503 once the bot stops making progress: either no pass has
finished within `stale_after` seconds (counted from startup until the first
pass lands), or the subgraph fetch has failed `max_fetch_failures` times in a
row. `/status` always answers 200 with the orchestrator counters.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import structlog
from aiohttp import web

from .config import config
from .models import PassResult, PassStatus

logger = structlog.get_logger()

SERVICE_NAME = "unibtc-swap-bot"


class HealthServer:
    """Reports whether reconciliation passes are still finishing."""

    def __init__(
        self,
        port: Optional[int] = None,
        stale_after: Optional[float] = None,
        max_fetch_failures: Optional[int] = None,
    ):
        """
        Initialize health server.

        Args:
            port: TCP port to listen on
            stale_after: Seconds without a finished pass before reporting unhealthy
            max_fetch_failures: Consecutive failed fetches before reporting unhealthy
        """
        self.port = port or config.health_port
        self.stale_after = stale_after or config.health_stale_after
        self.max_fetch_failures = max_fetch_failures or config.health_max_fetch_failures
        self.app = web.Application()
        self.app.router.add_get("/health", self.health_handler)
        self.app.router.add_get("/status", self.status_handler)
        self.runner = None
        self.site = None
        self._status_data: Dict[str, Any] = {}

        self.started_at = datetime.now(timezone.utc)
        self.last_pass_at: Optional[datetime] = None
        self.consecutive_fetch_failures = 0

    def mark_started(self, when: Optional[datetime] = None):
        """Reset the staleness clock, e.g. when the poll loop begins."""
        self.started_at = when or datetime.now(timezone.utc)

    def record_pass(self, result: PassResult):
        """Feed the outcome of a reconciliation pass into the health verdict."""
        if result.status is PassStatus.SKIPPED:
            return
        self.last_pass_at = result.finished_at
        if result.status is PassStatus.FETCH_FAILED:
            self.consecutive_fetch_failures += 1
            if self.consecutive_fetch_failures == self.max_fetch_failures:
                logger.warning(
                    "Swap fetch keeps failing",
                    consecutive_failures=self.consecutive_fetch_failures,
                )
        else:
            self.consecutive_fetch_failures = 0

    def evaluate(self, now: Optional[datetime] = None) -> Tuple[bool, List[str]]:
        """Return (healthy, reasons) for the current moment."""
        now = now or datetime.now(timezone.utc)
        reasons = []

        reference = self.last_pass_at or self.started_at
        idle = (now - reference).total_seconds()
        if idle > self.stale_after:
            if self.last_pass_at is None:
                reasons.append(f"no pass finished within {idle:.0f}s of startup")
            else:
                reasons.append(f"last pass finished {idle:.0f}s ago")

        if self.consecutive_fetch_failures >= self.max_fetch_failures:
            reasons.append(
                f"{self.consecutive_fetch_failures} consecutive swap fetches failed"
            )

        return not reasons, reasons

    async def health_handler(self, request):
        """Handle health check requests."""
        healthy, reasons = self.evaluate()
        body = {
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "last_pass_at": self.last_pass_at.isoformat() if self.last_pass_at else None,
            "consecutive_fetch_failures": self.consecutive_fetch_failures,
        }
        if not healthy:
            body["reasons"] = reasons
        return web.json_response(body, status=200 if healthy else 503)

    async def status_handler(self, request):
        """Handle detailed status requests."""
        return web.json_response({
            "status": "running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "consecutive_fetch_failures": self.consecutive_fetch_failures,
            **self._status_data,
        })

    def update_status(self, **kwargs):
        """Update status data."""
        self._status_data.update(kwargs)

    async def start(self):
        """Start the health server."""
        try:
            self.runner = web.AppRunner(self.app)
            await self.runner.setup()
            self.site = web.TCPSite(self.runner, "0.0.0.0", self.port)
            await self.site.start()
            logger.info("Health server started", port=self.port)
        except OSError as e:
            logger.error("Failed to start health server", port=self.port, error=str(e))

    async def stop(self):
        """Stop the health server."""
        if self.site:
            await self.site.stop()
        if self.runner:
            await self.runner.cleanup()
        logger.info("Health server stopped")
