from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable

from .models import PriceSample

logger = logging.getLogger(__name__)

DEFAULT_FLASH_SECONDS = 0.5


class Direction(str, Enum):
    UP = "up"
    DOWN = "down"
    NEUTRAL = "neutral"


@dataclass
class PriceTickState:
    last_price: float | None = None
    direction: Direction = Direction.NEUTRAL
    decay_deadline: float | None = None


DirectionListener = Callable[[str, Direction], None]


class PriceTickClassifier:
    """Turns consecutive price samples into a short-lived up/down flash.

    A rise or fall against the previous sample flashes ``up``/``down`` for
    ``flash_seconds``; a newer directional tick replaces the pending decay.
    Equal prices leave the flash alone but still advance the reference price.
    Samples whose price is not a finite number are ignored entirely.
    """

    def __init__(
        self,
        flash_seconds: float = DEFAULT_FLASH_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if flash_seconds <= 0:
            raise ValueError("flash_seconds must be > 0")
        self.flash_seconds = flash_seconds
        self._clock = clock
        self._states: dict[str, PriceTickState] = {}
        self._decay_handles: dict[str, asyncio.TimerHandle] = {}
        self._listeners: list[DirectionListener] = []
        self._closed = False

    def add_listener(self, listener: DirectionListener) -> None:
        self._listeners.append(listener)

    def observe(self, sample: PriceSample) -> Direction:
        if self._closed:
            return Direction.NEUTRAL

        price = sample.price
        if not math.isfinite(price):
            logger.debug("[Flash] Ignoring unparsable price for %s", sample.symbol)
            return self.direction(sample.symbol)

        state = self._states.setdefault(sample.symbol, PriceTickState())
        previous = state.last_price
        state.last_price = price

        if previous is None or price == previous:
            return self.direction(sample.symbol)

        now_ts = self._clock()
        state.direction = Direction.UP if price > previous else Direction.DOWN
        state.decay_deadline = now_ts + self.flash_seconds
        self._schedule_decay(sample.symbol)
        self._notify(sample.symbol, state.direction)
        return state.direction

    def direction(self, symbol: str, now: float | None = None) -> Direction:
        state = self._states.get(symbol)
        if state is None or state.decay_deadline is None:
            return Direction.NEUTRAL

        now_ts = now if now is not None else self._clock()
        if now_ts < state.decay_deadline:
            return state.direction
        return Direction.NEUTRAL

    def state(self, symbol: str) -> PriceTickState | None:
        state = self._states.get(symbol)
        if state is None:
            return None

        direction = self.direction(symbol)
        if direction is Direction.NEUTRAL:
            return replace(state, direction=direction, decay_deadline=None)
        return replace(state)

    def symbols(self) -> list[str]:
        return list(self._states)

    def close(self) -> None:
        self._closed = True
        for handle in self._decay_handles.values():
            handle.cancel()
        self._decay_handles.clear()
        self._listeners.clear()

    def _schedule_decay(self, symbol: str) -> None:
        pending = self._decay_handles.pop(symbol, None)
        if pending is not None:
            pending.cancel()

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Without a loop the deadline is still enforced by direction().
            return

        self._decay_handles[symbol] = loop.call_later(self.flash_seconds, self._decay, symbol)

    def _decay(self, symbol: str) -> None:
        self._decay_handles.pop(symbol, None)
        if self._closed:
            return

        state = self._states.get(symbol)
        if state is None or state.direction is Direction.NEUTRAL:
            return

        state.direction = Direction.NEUTRAL
        state.decay_deadline = None
        self._notify(symbol, Direction.NEUTRAL)

    def _notify(self, symbol: str, direction: Direction) -> None:
        for listener in list(self._listeners):
            try:
                listener(symbol, direction)
            except Exception as exc:  # noqa: BLE001
                logger.warning("[Flash] Listener for %s failed: %s", symbol, exc)
