from __future__ import annotations

from typing import Any

import httpx

from .models import PriceQuote, TickerSnapshot

BINANCE_FUTURES_API = "https://fapi.binance.com/fapi/v1"


class TransportError(Exception):
    """A provider request failed or returned a non-success status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MarketDataProvider:
    def __init__(
        self,
        base_url: str = BINANCE_FUTURES_API,
        timeout_seconds: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> MarketDataProvider:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch_price(self, symbol: str) -> PriceQuote:
        payload = await self._get_json(
            "/ticker/price",
            {"symbol": symbol},
            what="price request",
        )
        if not isinstance(payload, dict):
            raise TransportError("price request failed: unexpected payload")
        return PriceQuote.from_payload(payload)

    async def fetch_ticker_24h(self, symbol: str) -> TickerSnapshot:
        payload = await self._get_json(
            "/ticker/24hr",
            {"symbol": symbol},
            what="24h ticker request",
        )
        if not isinstance(payload, dict):
            raise TransportError("24h ticker request failed: unexpected payload")
        return TickerSnapshot.from_payload(payload)

    async def fetch_all_tickers(self) -> list[TickerSnapshot]:
        payload = await self._get_json("/ticker/24hr", None, what="market data request")
        if not isinstance(payload, list):
            raise TransportError("market data request failed: unexpected payload")
        return [TickerSnapshot.from_payload(item) for item in payload if isinstance(item, dict)]

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._client

    async def _get_json(self, path: str, params: dict[str, str] | None, *, what: str) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = await self._get_client().get(url, params=params)
        except httpx.HTTPError as exc:
            reason = str(exc) or type(exc).__name__
            raise TransportError(f"{what} failed: {reason}") from exc

        if not response.is_success:
            raise TransportError(
                f"{what} failed: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"{what} failed: invalid JSON") from exc
