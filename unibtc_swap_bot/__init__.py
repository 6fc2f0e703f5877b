"""uniBTC Swap Bot - Push alerts for uniBTC/WBTC pool swaps."""

__version__ = "1.0.0"

from .formatter import format_swap
from .notifiers import BarkNotifier, ConsoleNotifier
from .reconciler import SwapReconciler
from .state_store import StateStore
from .swap_fetcher import SwapFetcher, SwapFetchError

__all__ = [
    "BarkNotifier",
    "ConsoleNotifier",
    "StateStore",
    "SwapFetchError",
    "SwapFetcher",
    "SwapReconciler",
    "format_swap",
]
