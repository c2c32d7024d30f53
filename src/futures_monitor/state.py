from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque

from .classifier import Direction
from .metrics import change_from_open_percent, range_position_percent, total_quote_volume
from .models import DerivedTicker, PriceQuote, TickerSnapshot
from .scheduler import SubscriptionView


@dataclass
class MonitorEvent:
    ts: float
    level: str
    message: str
    key: str | None = None
    data: dict = field(default_factory=dict)


def _serialize(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, list):
        return [_serialize(item) for item in value]
    return value


def view_to_dict(view: SubscriptionView | None, include_value: bool = True) -> dict:
    if view is None:
        return {
            "value": None,
            "error": None,
            "is_loading": False,
            "is_validating": False,
            "no_data_yet": True,
            "last_fetched_at": None,
        }
    return {
        "value": _serialize(view.value) if include_value else None,
        "error": view.error_message,
        "is_loading": view.is_loading,
        "is_validating": view.is_validating,
        "no_data_yet": view.no_data_yet,
        "last_fetched_at": view.last_fetched_at,
    }


class MonitorState:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started_ts = time.time()
        self._symbol: str | None = None
        self._price_view: SubscriptionView | None = None
        self._ticker_view: SubscriptionView | None = None
        self._basket_view: SubscriptionView | None = None
        self._basket: list[DerivedTicker] = []
        self._flash: Direction = Direction.NEUTRAL
        self._events: Deque[MonitorEvent] = deque(maxlen=200)

    def set_symbol(self, symbol: str) -> None:
        with self._lock:
            self._symbol = symbol

    def set_price_view(self, view: SubscriptionView) -> None:
        with self._lock:
            self._price_view = view

    def set_ticker_view(self, view: SubscriptionView) -> None:
        with self._lock:
            self._ticker_view = view

    def set_basket(self, view: SubscriptionView, basket: list[DerivedTicker]) -> None:
        with self._lock:
            self._basket_view = view
            self._basket = list(basket)

    def set_flash(self, direction: Direction) -> None:
        with self._lock:
            self._flash = direction

    def get_basket(self) -> list[DerivedTicker]:
        with self._lock:
            return list(self._basket)

    def add_event(
        self,
        level: str,
        message: str,
        data: dict | None = None,
        *,
        key: str | None = None,
    ) -> None:
        with self._lock:
            self._events.append(
                MonitorEvent(
                    ts=time.time(),
                    level=level,
                    message=message,
                    key=key,
                    data=data or {},
                )
            )

    def price_snapshot(self) -> dict:
        with self._lock:
            body = view_to_dict(self._price_view)
            body["symbol"] = self._symbol
            body["flash"] = self._flash.value
            body.update(self._price_stats())
            return body

    def ticker_snapshot(self) -> dict:
        with self._lock:
            body = view_to_dict(self._ticker_view)
            body["symbol"] = self._symbol
            body.update(self._price_stats())
            return body

    def basket_snapshot(self) -> dict:
        with self._lock:
            body = view_to_dict(self._basket_view, include_value=False)
            body["items"] = [row.to_dict() for row in self._basket]
            body["total_quote_volume"] = total_quote_volume(self._basket)
            return body

    def _price_stats(self) -> dict:
        # Caller holds the lock.
        ticker = self._ticker_view.value if self._ticker_view is not None else None
        if not isinstance(ticker, TickerSnapshot):
            return {"change_from_open_percent": None, "range_position_percent": None}

        quote = self._price_view.value if self._price_view is not None else None
        price = quote.price if isinstance(quote, PriceQuote) else ticker.last_price
        return {
            "change_from_open_percent": change_from_open_percent(price, ticker.open_price),
            "range_position_percent": range_position_percent(
                price,
                ticker.low_price,
                ticker.high_price,
            ),
        }

    def snapshot(self) -> dict:
        price = self.price_snapshot()
        ticker = self.ticker_snapshot()
        basket = self.basket_snapshot()
        with self._lock:
            return {
                "started_ts": self._started_ts,
                "symbol": self._symbol,
                "price": price,
                "ticker_24h": ticker,
                "basket": basket,
                "events": [
                    {
                        "ts": e.ts,
                        "level": e.level,
                        "message": e.message,
                        "key": e.key,
                        "data": e.data,
                    }
                    for e in list(self._events)
                ],
            }


monitor_state = MonitorState()
