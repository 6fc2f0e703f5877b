"""Notification delivery for formatted swap messages."""

from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import quote

import httpx
import structlog

from .config import config
from .state_store import StateStore

logger = structlog.get_logger()


class Notifier(ABC):
    """Base class for swap notifiers."""

    @abstractmethod
    async def notify(self, message: str) -> bool:
        """Deliver a message; True when it reached at least one recipient."""
        pass

    async def close(self):
        """Release any held resources."""


class BarkNotifier(Notifier):
    """
    Pushes messages to Bark devices.

    Each target is a base URL such as `https://api.day.app/<key>/<title>/`.
    The message is appended as a percent-encoded path segment and `?call=1`
    makes the device ring. Targets are read from the state store on every
    call so edits to the state file take effect without a restart.
    """

    def __init__(self, store: StateStore, client: Optional[httpx.AsyncClient] = None):
        """Initialize the Bark client."""
        self.store = store
        self.client = client or httpx.AsyncClient(timeout=config.request_timeout)

    @staticmethod
    def build_url(target: str, message: str) -> str:
        return target + quote(message, safe="") + "?call=1"

    async def notify(self, message: str) -> bool:
        """Send the message to every target, tolerating individual failures."""
        targets = self.store.get_notification_targets()
        if not targets:
            logger.warning("No notification targets configured")
            return False

        delivered = 0
        for target in targets:
            if await self._send(target, message):
                delivered += 1

        logger.info(
            "Sent notifications",
            success_count=delivered,
            total_count=len(targets),
        )
        return delivered > 0

    async def _send(self, target: str, message: str) -> bool:
        url = self.build_url(target, message)
        try:
            response = await self.client.get(url)
        except httpx.HTTPError as e:
            logger.error("Failed to send notification to device", target=target, error=str(e))
            return False

        if not response.is_success:
            logger.error("Notification failed", target=target, status=response.status_code)
            return False

        logger.debug("Notification sent successfully", target=target)
        return True

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()


class ConsoleNotifier(Notifier):
    """Simple console output notifier for dry runs."""

    async def notify(self, message: str) -> bool:
        """Print notification to console."""
        print(message)
        return True
