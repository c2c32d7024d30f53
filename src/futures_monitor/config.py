from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .metrics import TOP_FUTURES_UNIVERSE


@dataclass(frozen=True)
class Config:
    binance_futures_api: str
    monitor_symbol: str
    price_refresh_ms: int
    ticker_refresh_ms: int
    basket_refresh_ms: int
    revalidate_on_focus: bool
    focus_revalidate_threshold_seconds: float
    price_flash_ms: int
    basket_symbols: tuple[str, ...]
    basket_limit: int
    http_timeout_seconds: float
    monitor_api_port: int



def _bool_from_env(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: str) -> int:
    raw = os.getenv(name, default).strip()
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be > 0")
    return value


def _symbols_from_env(value: str | None) -> tuple[str, ...]:
    if value is None or not value.strip():
        return TOP_FUTURES_UNIVERSE

    symbols: list[str] = []
    for part in value.split(","):
        symbol = part.strip().upper()
        if symbol and symbol not in symbols:
            symbols.append(symbol)
    return tuple(symbols)



def load_config() -> Config:
    load_dotenv()

    basket_symbols = _symbols_from_env(os.getenv("BASKET_SYMBOLS"))
    if not basket_symbols:
        raise ValueError("BASKET_SYMBOLS must name at least one symbol")

    basket_limit = _positive_int("BASKET_LIMIT", str(len(basket_symbols)))

    focus_threshold = float(os.getenv("FOCUS_REVALIDATE_THRESHOLD_SECONDS", "5.0"))
    if focus_threshold < 0:
        raise ValueError("FOCUS_REVALIDATE_THRESHOLD_SECONDS must be >= 0")

    return Config(
        binance_futures_api=os.getenv(
            "BINANCE_FUTURES_API",
            "https://fapi.binance.com/fapi/v1",
        ).strip().rstrip("/"),
        monitor_symbol=os.getenv("MONITOR_SYMBOL", "BTCUSDT").strip().upper(),
        price_refresh_ms=_positive_int("PRICE_REFRESH_MS", "1000"),
        ticker_refresh_ms=_positive_int("TICKER_REFRESH_MS", "2000"),
        basket_refresh_ms=_positive_int("BASKET_REFRESH_MS", "3000"),
        revalidate_on_focus=_bool_from_env(os.getenv("REVALIDATE_ON_FOCUS"), True),
        focus_revalidate_threshold_seconds=focus_threshold,
        price_flash_ms=_positive_int("PRICE_FLASH_MS", "500"),
        basket_symbols=basket_symbols,
        basket_limit=basket_limit,
        http_timeout_seconds=float(os.getenv("HTTP_TIMEOUT_SECONDS", "5.0")),
        monitor_api_port=int(os.getenv("MONITOR_API_PORT", "8080")),
    )
