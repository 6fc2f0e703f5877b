"""Shared fixtures for the swap bot tests."""

import itertools

import pytest

from unibtc_swap_bot.models import PersistedState, SwapEvent
from unibtc_swap_bot.state_store import StateStore

_ids = itertools.count(1)


def swap_payload(block_number="100", tx_hash=None, **overrides):
    """Raw subgraph record as it appears on the wire."""
    n = next(_ids)
    payload = {
        "id": f"{tx_hash or f'0x{n:064x}'}-{n}",
        "sender": "0x1111111111111111111111111111111111111111",
        "recipient": "0x2222222222222222222222222222222222222222",
        "amount0": "-100000000",
        "amount1": "200000000",
        "sqrtPriceX96": "79228162514264337593543950336",
        "liquidity": "123456789",
        "tick": -12,
        "blockNumber": str(block_number),
        "blockTimestamp": "1700000000",
        "transactionHash": tx_hash or f"0x{n:064x}",
        "btcPrice": "100000",
    }
    payload.update(overrides)
    return payload


def make_swap(block_number="100", tx_hash=None, **overrides) -> SwapEvent:
    return SwapEvent.model_validate(swap_payload(block_number, tx_hash, **overrides))


@pytest.fixture
def default_state():
    return PersistedState(
        notification_targets=["https://push.example/key/Swap/"],
        last_block_number="1000",
        recent_tx_hashes=["0xseed"],
    )


@pytest.fixture
def state_path(tmp_path):
    return tmp_path / "app_config.json"


@pytest.fixture
def store(state_path, default_state):
    """A loaded store backed by a fresh file in tmp_path."""
    s = StateStore(str(state_path), default_state=default_state)
    s.load()
    return s


@pytest.fixture
def swap_factory():
    return make_swap


@pytest.fixture
def payload_factory():
    return swap_payload
