from .classifier import Direction, PriceTickClassifier, PriceTickState
from .metrics import TOP_FUTURES_UNIVERSE, compute_basket_metrics
from .models import DerivedTicker, PriceQuote, PriceSample, TickerSnapshot
from .provider import MarketDataProvider, TransportError
from .scheduler import PollingScheduler, SubscriptionHandle, SubscriptionView

__all__ = [
    "Direction",
    "PriceTickClassifier",
    "PriceTickState",
    "TOP_FUTURES_UNIVERSE",
    "compute_basket_metrics",
    "DerivedTicker",
    "PriceQuote",
    "PriceSample",
    "TickerSnapshot",
    "MarketDataProvider",
    "TransportError",
    "PollingScheduler",
    "SubscriptionHandle",
    "SubscriptionView",
]
