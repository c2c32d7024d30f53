import asyncio
import math

import pytest

from src.futures_monitor.classifier import Direction, PriceTickClassifier
from src.futures_monitor.models import PriceSample


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _sample(price: float, symbol: str = "BTCUSDT", at: float = 0.0) -> PriceSample:
    return PriceSample(symbol=symbol, price=price, observed_at=at)


def test_first_sample_records_reference_without_signal() -> None:
    classifier = PriceTickClassifier(clock=FakeClock())

    assert classifier.state("BTCUSDT") is None
    assert classifier.observe(_sample(100.0)) is Direction.NEUTRAL

    state = classifier.state("BTCUSDT")
    assert state is not None
    assert state.last_price == 100.0
    assert state.direction is Direction.NEUTRAL
    assert state.decay_deadline is None


def test_up_tick_decays_after_flash_window() -> None:
    clock = FakeClock(10.0)
    classifier = PriceTickClassifier(flash_seconds=0.5, clock=clock)

    classifier.observe(_sample(100.0))
    assert classifier.observe(_sample(101.0)) is Direction.UP

    assert classifier.direction("BTCUSDT", now=10.0) is Direction.UP
    assert classifier.direction("BTCUSDT", now=10.25) is Direction.UP
    assert classifier.direction("BTCUSDT", now=10.499) is Direction.UP
    assert classifier.direction("BTCUSDT", now=10.5) is Direction.NEUTRAL
    assert classifier.direction("BTCUSDT", now=11.0) is Direction.NEUTRAL


def test_equal_price_keeps_state_and_advances_reference() -> None:
    clock = FakeClock()
    classifier = PriceTickClassifier(clock=clock)

    classifier.observe(_sample(100.0))
    assert classifier.observe(_sample(100.0)) is Direction.NEUTRAL
    assert classifier.state("BTCUSDT").last_price == 100.0

    assert classifier.observe(_sample(99.0)) is Direction.DOWN
    assert classifier.state("BTCUSDT").last_price == 99.0


def test_equal_price_does_not_extend_pending_flash() -> None:
    clock = FakeClock(0.0)
    classifier = PriceTickClassifier(clock=clock)

    classifier.observe(_sample(100.0))
    classifier.observe(_sample(101.0))
    clock.now = 0.3
    assert classifier.observe(_sample(101.0)) is Direction.UP

    assert classifier.state("BTCUSDT").decay_deadline == 0.5
    assert classifier.direction("BTCUSDT", now=0.6) is Direction.NEUTRAL


def test_new_directional_tick_replaces_deadline() -> None:
    clock = FakeClock(0.0)
    classifier = PriceTickClassifier(clock=clock)

    classifier.observe(_sample(100.0))
    classifier.observe(_sample(101.0))
    clock.now = 0.4
    assert classifier.observe(_sample(100.5)) is Direction.DOWN

    assert classifier.direction("BTCUSDT", now=0.6) is Direction.DOWN
    assert classifier.direction("BTCUSDT", now=1.0) is Direction.NEUTRAL


def test_unparsable_price_is_ignored() -> None:
    classifier = PriceTickClassifier(clock=FakeClock())

    classifier.observe(_sample(100.0))
    assert classifier.observe(_sample(math.nan)) is Direction.NEUTRAL
    assert classifier.state("BTCUSDT").last_price == 100.0

    assert classifier.observe(_sample(101.0)) is Direction.UP


def test_symbols_are_tracked_independently() -> None:
    classifier = PriceTickClassifier(clock=FakeClock())

    classifier.observe(_sample(100.0, symbol="BTCUSDT"))
    classifier.observe(_sample(50.0, symbol="ETHUSDT"))
    classifier.observe(_sample(101.0, symbol="BTCUSDT"))

    assert classifier.direction("BTCUSDT", now=0.1) is Direction.UP
    assert classifier.direction("ETHUSDT", now=0.1) is Direction.NEUTRAL
    assert classifier.direction("SOLUSDT") is Direction.NEUTRAL
    assert sorted(classifier.symbols()) == ["BTCUSDT", "ETHUSDT"]


def test_decay_timer_notifies_listeners() -> None:
    async def _run() -> list[tuple[str, Direction]]:
        classifier = PriceTickClassifier(flash_seconds=0.05)
        seen: list[tuple[str, Direction]] = []
        classifier.add_listener(lambda symbol, direction: seen.append((symbol, direction)))

        classifier.observe(_sample(100.0))
        classifier.observe(_sample(99.0))
        assert classifier.direction("BTCUSDT") is Direction.DOWN

        await asyncio.sleep(0.1)
        assert classifier.state("BTCUSDT").direction is Direction.NEUTRAL
        assert classifier.direction("BTCUSDT") is Direction.NEUTRAL
        classifier.close()
        return seen

    seen = asyncio.run(_run())

    assert seen == [("BTCUSDT", Direction.DOWN), ("BTCUSDT", Direction.NEUTRAL)]


def test_close_cancels_pending_decay() -> None:
    async def _run() -> list[tuple[str, Direction]]:
        classifier = PriceTickClassifier(flash_seconds=0.05)
        seen: list[tuple[str, Direction]] = []
        classifier.add_listener(lambda symbol, direction: seen.append((symbol, direction)))

        classifier.observe(_sample(100.0))
        classifier.observe(_sample(101.0))
        classifier.close()
        await asyncio.sleep(0.1)

        assert classifier.observe(_sample(102.0)) is Direction.NEUTRAL
        return seen

    seen = asyncio.run(_run())

    assert seen == [("BTCUSDT", Direction.UP)]


def test_flash_seconds_must_be_positive() -> None:
    with pytest.raises(ValueError, match="flash_seconds"):
        PriceTickClassifier(flash_seconds=0)


def test_state_copy_reports_neutral_after_deadline() -> None:
    clock = FakeClock(0.0)
    classifier = PriceTickClassifier(clock=clock)

    classifier.observe(_sample(100.0))
    classifier.observe(_sample(101.0))
    assert classifier.state("BTCUSDT").direction is Direction.UP

    clock.now = 0.5
    state = classifier.state("BTCUSDT")

    assert state.direction is Direction.NEUTRAL
    assert state.decay_deadline is None
    assert state.last_price == 101.0
