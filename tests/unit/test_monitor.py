import asyncio

import pytest

from src.futures_monitor.classifier import Direction, PriceTickClassifier
from src.futures_monitor.config import Config
from src.futures_monitor.metrics import TOP_FUTURES_UNIVERSE
from src.futures_monitor.models import PriceQuote, TickerSnapshot
from src.futures_monitor.monitor import BASKET_KEY, MonitorService, price_key
from src.futures_monitor.provider import TransportError
from src.futures_monitor.scheduler import PollingScheduler
from src.futures_monitor.state import MonitorState


def _config(**overrides) -> Config:
    values = dict(
        binance_futures_api="https://fapi.example.test/fapi/v1",
        monitor_symbol="BTCUSDT",
        price_refresh_ms=60_000,
        ticker_refresh_ms=60_000,
        basket_refresh_ms=60_000,
        revalidate_on_focus=True,
        focus_revalidate_threshold_seconds=0.0,
        price_flash_ms=500,
        basket_symbols=TOP_FUTURES_UNIVERSE,
        basket_limit=20,
        http_timeout_seconds=1.0,
        monitor_api_port=8080,
    )
    values.update(overrides)
    return Config(**values)


def _ticker(symbol: str, quote_volume: str) -> TickerSnapshot:
    return TickerSnapshot.from_payload(
        {
            "symbol": symbol,
            "weightedAvgPrice": "10",
            "lastPrice": "10",
            "volume": "100",
            "quoteVolume": quote_volume,
        }
    )


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeProvider:
    def __init__(self) -> None:
        self.prices: list[object] = []
        self.baskets: list[object] = []
        self.closed = False

    async def fetch_price(self, symbol: str) -> PriceQuote:
        return self._next(self.prices)

    async def fetch_ticker_24h(self, symbol: str) -> TickerSnapshot:
        return _ticker(symbol, "1000")

    async def fetch_all_tickers(self) -> list[TickerSnapshot]:
        return self._next(self.baskets)

    async def aclose(self) -> None:
        self.closed = True

    def _next(self, queue: list[object]):
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


async def _drain(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def test_monitor_ranks_basket_and_keeps_it_on_failure() -> None:
    async def _run() -> None:
        provider = FakeProvider()
        provider.prices = [PriceQuote("BTCUSDT", 100.0, 1)]
        provider.baskets = [
            [_ticker("ETHUSDT", "300"), _ticker("PEPEUSDT", "9999"), _ticker("BTCUSDT", "700")],
            TransportError("market data request failed: HTTP 502"),
        ]
        state = MonitorState()
        clock = FakeClock()
        scheduler = PollingScheduler(clock=clock, focus_threshold_seconds=5.0)
        service = MonitorService(_config(), state, provider=provider, scheduler=scheduler)

        service.start()
        await _drain()

        basket = state.basket_snapshot()
        assert [row["symbol"] for row in basket["items"]] == ["BTCUSDT", "ETHUSDT"]
        assert [row["market_weight"] for row in basket["items"]] == pytest.approx([70.0, 30.0])
        assert basket["error"] is None

        clock.now += 10.0
        assert service.revalidate() == [price_key("BTCUSDT"), "ticker24h:BTCUSDT", BASKET_KEY]
        provider.prices.append(PriceQuote("BTCUSDT", 100.0, 2))
        await _drain()

        basket = state.basket_snapshot()
        assert [row["symbol"] for row in basket["items"]] == ["BTCUSDT", "ETHUSDT"]
        assert basket["error"] == "market data request failed: HTTP 502"
        failures = [event for event in state.snapshot()["events"] if event["message"] == "poll_failed"]
        assert [event["key"] for event in failures] == [BASKET_KEY]
        assert failures[0]["data"] == {"error": "market data request failed: HTTP 502"}

        await service.stop()
        assert provider.closed is True

    asyncio.run(_run())


def test_monitor_feeds_price_updates_into_classifier() -> None:
    async def _run() -> None:
        provider = FakeProvider()
        provider.prices = [PriceQuote("BTCUSDT", 100.0, 1), PriceQuote("BTCUSDT", 101.0, 2)]
        provider.baskets = [[], []]
        state = MonitorState()
        clock = FakeClock()
        scheduler = PollingScheduler(clock=clock, focus_threshold_seconds=5.0)
        classifier = PriceTickClassifier(flash_seconds=5.0)
        service = MonitorService(
            _config(),
            state,
            provider=provider,
            scheduler=scheduler,
            classifier=classifier,
        )

        service.start()
        await _drain()
        assert state.price_snapshot()["flash"] == "neutral"

        clock.now += 10.0
        service.revalidate()
        await _drain()

        price = state.price_snapshot()
        assert price["value"]["price"] == 101.0
        assert price["flash"] == "up"
        assert classifier.direction("BTCUSDT") is Direction.UP

        await service.stop()

    asyncio.run(_run())
