from __future__ import annotations

import math
from dataclasses import asdict, dataclass

QUOTE_ASSET = "USDT"


def base_asset(symbol: str, quote_asset: str = QUOTE_ASSET) -> str:
    if symbol.endswith(quote_asset) and len(symbol) > len(quote_asset):
        return symbol[: -len(quote_asset)]
    return symbol


def parse_decimal(value: object) -> float:
    """Parse a decimal transported as text. Unparsable input becomes NaN."""
    if isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return math.nan
    return math.nan


def parse_int(value: object, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    try:
        return int(float(value))  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return default


@dataclass(frozen=True)
class TickerSnapshot:
    symbol: str
    price_change: float
    price_change_percent: float
    weighted_avg_price: float
    last_price: float
    open_price: float
    high_price: float
    low_price: float
    volume: float
    quote_volume: float
    open_time: int
    close_time: int
    count: int
    last_qty: float = math.nan
    first_trade_id: int = 0
    last_trade_id: int = 0

    @classmethod
    def from_payload(cls, payload: dict) -> TickerSnapshot:
        return cls(
            symbol=str(payload.get("symbol", "")).strip().upper(),
            price_change=parse_decimal(payload.get("priceChange")),
            price_change_percent=parse_decimal(payload.get("priceChangePercent")),
            weighted_avg_price=parse_decimal(payload.get("weightedAvgPrice")),
            last_price=parse_decimal(payload.get("lastPrice")),
            open_price=parse_decimal(payload.get("openPrice")),
            high_price=parse_decimal(payload.get("highPrice")),
            low_price=parse_decimal(payload.get("lowPrice")),
            volume=parse_decimal(payload.get("volume")),
            quote_volume=parse_decimal(payload.get("quoteVolume")),
            open_time=parse_int(payload.get("openTime")),
            close_time=parse_int(payload.get("closeTime")),
            count=parse_int(payload.get("count")),
            last_qty=parse_decimal(payload.get("lastQty")),
            first_trade_id=parse_int(payload.get("firstId")),
            last_trade_id=parse_int(payload.get("lastId")),
        )

    def to_dict(self) -> dict:
        # NaN is not valid JSON; malformed fields are reported as null.
        return {
            key: (None if isinstance(value, float) and not math.isfinite(value) else value)
            for key, value in asdict(self).items()
        }


@dataclass(frozen=True)
class DerivedTicker:
    ticker: TickerSnapshot
    rank: int
    market_weight: float
    turnover_rate: float

    @property
    def symbol(self) -> str:
        return self.ticker.symbol

    def to_dict(self) -> dict:
        row = self.ticker.to_dict()
        row["base_asset"] = base_asset(self.symbol)
        row["rank"] = self.rank
        row["market_weight"] = self.market_weight
        row["turnover_rate"] = self.turnover_rate
        return row


@dataclass(frozen=True)
class PriceQuote:
    symbol: str
    price: float
    server_time: int

    @classmethod
    def from_payload(cls, payload: dict) -> PriceQuote:
        return cls(
            symbol=str(payload.get("symbol", "")).strip().upper(),
            price=parse_decimal(payload.get("price")),
            server_time=parse_int(payload.get("time")),
        )

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "price": self.price if math.isfinite(self.price) else None,
            "server_time": self.server_time,
        }


@dataclass(frozen=True)
class PriceSample:
    symbol: str
    price: float
    observed_at: float
