from __future__ import annotations

import asyncio
import logging

from .classifier import Direction, PriceTickClassifier
from .config import Config
from .metrics import compute_basket_metrics
from .models import PriceQuote, PriceSample
from .provider import MarketDataProvider
from .scheduler import PollingScheduler, SubscriptionHandle, SubscriptionView
from .state import MonitorState

logger = logging.getLogger(__name__)

BASKET_KEY = "basket:top"


def price_key(symbol: str) -> str:
    return f"price:{symbol}"


def ticker_key(symbol: str) -> str:
    return f"ticker24h:{symbol}"


class MonitorService:
    def __init__(
        self,
        config: Config,
        state: MonitorState,
        provider: MarketDataProvider | None = None,
        scheduler: PollingScheduler | None = None,
        classifier: PriceTickClassifier | None = None,
    ) -> None:
        self.config = config
        self.state = state
        self.provider = provider or MarketDataProvider(
            base_url=config.binance_futures_api,
            timeout_seconds=config.http_timeout_seconds,
        )
        self.scheduler = scheduler or PollingScheduler(
            focus_threshold_seconds=config.focus_revalidate_threshold_seconds,
        )
        self.classifier = classifier or PriceTickClassifier(
            flash_seconds=config.price_flash_ms / 1000.0,
        )
        self._handles: list[SubscriptionHandle] = []
        self._last_errors: dict[str, str | None] = {}
        self._last_price_generation = 0

    @property
    def started(self) -> bool:
        return bool(self._handles)

    def start(self) -> None:
        if self._handles:
            return

        symbol = self.config.monitor_symbol
        revalidate = self.config.revalidate_on_focus
        self.state.set_symbol(symbol)
        self.classifier.add_listener(self._on_flash)

        price = self.scheduler.subscribe(
            price_key(symbol),
            lambda: self.provider.fetch_price(symbol),
            self.config.price_refresh_ms,
            revalidate_on_focus=revalidate,
        )
        price.add_listener(self._on_price)

        ticker = self.scheduler.subscribe(
            ticker_key(symbol),
            lambda: self.provider.fetch_ticker_24h(symbol),
            self.config.ticker_refresh_ms,
            revalidate_on_focus=revalidate,
        )
        ticker.add_listener(self._on_ticker)

        basket = self.scheduler.subscribe(
            BASKET_KEY,
            self.provider.fetch_all_tickers,
            self.config.basket_refresh_ms,
            revalidate_on_focus=revalidate,
        )
        basket.add_listener(self._on_basket)

        self._handles = [price, ticker, basket]
        self.state.add_event("info", "monitor_started", {"symbol": symbol})
        logger.info(
            "[Monitor] Polling %s (price %sms, 24h %sms) and %s basket symbols every %sms",
            symbol,
            self.config.price_refresh_ms,
            self.config.ticker_refresh_ms,
            len(self.config.basket_symbols),
            self.config.basket_refresh_ms,
        )

    def revalidate(self) -> list[str]:
        return self.scheduler.notify_focus()

    async def stop(self) -> None:
        self._handles = []
        self.classifier.close()
        await self.scheduler.aclose()
        await self.provider.aclose()
        self.state.add_event("info", "monitor_stopped", {})
        logger.info("[Monitor] Stopped")

    async def run(self) -> None:
        self.start()
        try:
            await asyncio.Event().wait()
        finally:
            await self.stop()

    def _on_price(self, view: SubscriptionView) -> None:
        self.state.set_price_view(view)
        self._track_error(view)

        quote = view.value
        if not isinstance(quote, PriceQuote) or view.is_validating:
            return
        # Only a freshly applied result is a new sample.
        if view.generation == self._last_price_generation or view.error is not None:
            return
        self._last_price_generation = view.generation

        self.classifier.observe(
            PriceSample(
                symbol=quote.symbol or self.config.monitor_symbol,
                price=quote.price,
                observed_at=view.last_fetched_at or 0.0,
            )
        )

    def _on_ticker(self, view: SubscriptionView) -> None:
        self.state.set_ticker_view(view)
        self._track_error(view)

    def _on_basket(self, view: SubscriptionView) -> None:
        if view.is_validating or view.error is not None or view.value is None:
            self.state.set_basket(view, self.state.get_basket())
            self._track_error(view)
            return

        basket = compute_basket_metrics(
            view.value,
            self.config.basket_symbols,
            limit=self.config.basket_limit,
        )
        self.state.set_basket(view, basket)
        self._track_error(view)

    def _on_flash(self, symbol: str, direction: Direction) -> None:
        if symbol == self.config.monitor_symbol:
            self.state.set_flash(direction)

    def _track_error(self, view: SubscriptionView) -> None:
        message = view.error_message
        if view.is_validating or self._last_errors.get(view.key) == message:
            return

        self._last_errors[view.key] = message
        if message is not None:
            self.state.add_event("warning", "poll_failed", {"error": message}, key=view.key)
        else:
            self.state.add_event("info", "poll_recovered", key=view.key)
