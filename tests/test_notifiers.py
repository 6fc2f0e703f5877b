"""Tests for notification system."""

import httpx
import pytest
import pytest_asyncio

from unibtc_swap_bot.models import PersistedState
from unibtc_swap_bot.notifiers import BarkNotifier, ConsoleNotifier
from unibtc_swap_bot.state_store import StateStore

MESSAGE = "2023-11-15 06:13:20  2.00000 WBTC -> 1.00000 UNIBTC Vol: $200000.00"


@pytest_asyncio.fixture
async def make_notifier(tmp_path):
    created = []

    def build(handler, targets):
        store = StateStore(
            str(tmp_path / f"state_{len(created)}.json"),
            default_state=PersistedState(
                notification_targets=list(targets), last_block_number="1"
            ),
        )
        store.load()
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        notifier = BarkNotifier(store, client=client)
        created.append(notifier)
        return notifier

    yield build
    for notifier in created:
        await notifier.close()


class TestBarkNotifier:
    """Test Bark delivery."""

    def test_url_encodes_message(self):
        url = BarkNotifier.build_url("https://api.day.app/key/Alert/", "a b/$c")

        assert url == "https://api.day.app/key/Alert/a%20b%2F%24c?call=1"

    @pytest.mark.asyncio
    async def test_sends_get_to_every_target(self, make_notifier):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"code": 200})

        notifier = make_notifier(
            handler, ["https://a.example/k1/", "https://b.example/k2/"]
        )

        assert await notifier.notify(MESSAGE) is True

        assert [r.url.host for r in seen] == ["a.example", "b.example"]
        assert all(r.method == "GET" for r in seen)
        assert all(r.url.params.get("call") == "1" for r in seen)
        assert seen[0].url.raw_path.startswith(b"/k1/2023-11-15%2006%3A13%3A20")

    @pytest.mark.asyncio
    async def test_partial_failure_still_delivers(self, make_notifier):
        seen = []

        def handler(request):
            seen.append(request.url.host)
            if request.url.host == "down.example":
                raise httpx.ConnectError("unreachable", request=request)
            if request.url.host == "broken.example":
                return httpx.Response(500)
            return httpx.Response(200)

        notifier = make_notifier(
            handler,
            [
                "https://down.example/k/",
                "https://broken.example/k/",
                "https://up.example/k/",
            ],
        )

        assert await notifier.notify(MESSAGE) is True
        assert seen == ["down.example", "broken.example", "up.example"]

    @pytest.mark.asyncio
    async def test_all_targets_failing_returns_false(self, make_notifier):
        notifier = make_notifier(
            lambda request: httpx.Response(404),
            ["https://a.example/k/", "https://b.example/k/"],
        )

        assert await notifier.notify(MESSAGE) is False

    @pytest.mark.asyncio
    async def test_no_targets_returns_false(self, make_notifier):
        notifier = make_notifier(lambda request: httpx.Response(200), [])

        assert await notifier.notify(MESSAGE) is False


class TestConsoleNotifier:
    """Test console notification functionality."""

    @pytest.mark.asyncio
    async def test_console_output(self, capsys):
        notifier = ConsoleNotifier()

        result = await notifier.notify(MESSAGE)

        assert result is True
        captured = capsys.readouterr()
        assert MESSAGE in captured.out
