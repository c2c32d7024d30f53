from __future__ import annotations

import math
from typing import Collection, Iterable

from .models import DerivedTicker, TickerSnapshot

# Top 20 USDT-margined perpetuals, ordered by market cap.
TOP_FUTURES_UNIVERSE: tuple[str, ...] = (
    "BTCUSDT", "ETHUSDT", "BNBUSDT", "SOLUSDT", "XRPUSDT",
    "DOGEUSDT", "ADAUSDT", "AVAXUSDT", "SHIBUSDT", "DOTUSDT",
    "MATICUSDT", "LINKUSDT", "TRXUSDT", "BCHUSDT", "UNIUSDT",
    "ATOMUSDT", "ETCUSDT", "LTCUSDT", "NEARUSDT", "APTUSDT",
)

TURNOVER_RATE_CEILING = 1000.0


def _finite_or_zero(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def _ranking_volume(ticker: TickerSnapshot) -> float:
    volume = _finite_or_zero(ticker.quote_volume)
    return volume if volume > 0 else 0.0


def _market_weight(quote_volume: float, total: float) -> float:
    if total <= 0:
        return 0.0
    return _finite_or_zero(quote_volume / total * 100.0)


def _turnover_rate(ticker: TickerSnapshot) -> float:
    quote_volume = ticker.quote_volume
    volume = ticker.volume
    weighted_price = ticker.weighted_avg_price
    last_price = ticker.last_price

    # Comparisons against NaN are False, so malformed fields fall through to 0.
    if not (weighted_price > 0 and volume > 0):
        return 0.0

    rate = quote_volume / (weighted_price * volume) * 100.0
    if not math.isfinite(rate) or rate < 0 or rate > TURNOVER_RATE_CEILING:
        rate = quote_volume / (last_price * volume) * 100.0 if last_price > 0 else 0.0

    if math.isfinite(rate) and rate >= 0:
        return rate
    return 0.0


def change_from_open_percent(price: float, open_price: float) -> float:
    """Signed percentage move of ``price`` against the 24h open."""
    if not open_price > 0:
        return 0.0
    return _finite_or_zero((price - open_price) / open_price * 100.0)


def range_position_percent(price: float, low_price: float, high_price: float) -> float:
    """Where ``price`` sits inside the 24h low/high range, clamped to [0, 100]."""
    span = high_price - low_price
    if not span > 0:
        return 0.0
    position = _finite_or_zero((price - low_price) / span * 100.0)
    return max(0.0, min(100.0, position))


def total_quote_volume(rows: Iterable[DerivedTicker]) -> float:
    return sum(_ranking_volume(row.ticker) for row in rows)


def compute_basket_metrics(
    raw_tickers: Iterable[TickerSnapshot],
    universe: Collection[str],
    limit: int | None = None,
) -> list[DerivedTicker]:
    """Rank a basket of tickers by quote volume and annotate each row.

    Tickers outside ``universe`` are dropped, the rest are sorted by quote
    volume (descending, stable) and truncated to ``limit`` entries, which
    defaults to the universe size. Each row gets a market weight (its share of
    the basket's quote volume, in percent) and a turnover rate. Malformed
    numbers never raise; they degrade to 0.
    """
    members = set(universe)
    cap = len(members) if limit is None else max(0, limit)

    filtered = [ticker for ticker in raw_tickers if ticker.symbol in members]
    ranked = sorted(
        filtered,
        key=_ranking_volume,
        reverse=True,
    )[:cap]

    total = sum(_ranking_volume(ticker) for ticker in ranked)

    return [
        DerivedTicker(
            ticker=ticker,
            rank=index + 1,
            market_weight=_market_weight(_ranking_volume(ticker), total),
            turnover_rate=_turnover_rate(ticker),
        )
        for index, ticker in enumerate(ranked)
    ]
