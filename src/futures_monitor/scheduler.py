from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

FetchOperation = Callable[[], Awaitable[Any]]
Listener = Callable[["SubscriptionView"], None]


@dataclass(frozen=True)
class SubscriptionView:
    key: str
    value: Any = None
    error: Exception | None = None
    is_validating: bool = False
    last_fetched_at: float | None = None
    generation: int = 0

    @property
    def is_loading(self) -> bool:
        return self.is_validating and self.last_fetched_at is None

    @property
    def no_data_yet(self) -> bool:
        return self.last_fetched_at is None and self.error is None

    @property
    def error_message(self) -> str | None:
        if self.error is None:
            return None
        return str(self.error) or type(self.error).__name__


@dataclass
class _Subscription:
    key: str
    fetch: FetchOperation
    interval_seconds: float
    revalidate_on_focus: bool
    view: SubscriptionView
    generation: int = 0
    closed: bool = False
    listeners: list[Listener] = field(default_factory=list)
    loop_task: asyncio.Task | None = None
    inflight: set[asyncio.Task] = field(default_factory=set)


class SubscriptionHandle:
    def __init__(self, subscription: _Subscription) -> None:
        self._subscription = subscription

    @property
    def key(self) -> str:
        return self._subscription.key

    @property
    def view(self) -> SubscriptionView:
        return self._subscription.view

    @property
    def closed(self) -> bool:
        return self._subscription.closed

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        listeners = self._subscription.listeners
        listeners.append(listener)

        def remove() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return remove


class PollingScheduler:
    """Runs one refresh loop per subscription key.

    Each loop fetches immediately, then again ``interval_ms`` after the previous
    fetch settled. Every fetch is tagged with a generation number and its result
    is applied only while that generation is still the newest one issued for the
    key, so late or superseded responses are dropped. Failed fetches keep the
    last good value and only set ``error``.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        focus_threshold_seconds: float = 5.0,
    ) -> None:
        self._clock = clock
        self.focus_threshold_seconds = focus_threshold_seconds
        self._subscriptions: dict[str, _Subscription] = {}

    def subscribe(
        self,
        key: str,
        fetch: FetchOperation,
        interval_ms: int,
        *,
        revalidate_on_focus: bool = True,
    ) -> SubscriptionHandle:
        if interval_ms <= 0:
            raise ValueError("interval_ms must be > 0")
        if key in self._subscriptions:
            raise ValueError(f"subscription already exists: {key}")

        loop = asyncio.get_running_loop()
        subscription = _Subscription(
            key=key,
            fetch=fetch,
            interval_seconds=interval_ms / 1000.0,
            revalidate_on_focus=revalidate_on_focus,
            view=SubscriptionView(key=key),
        )
        self._subscriptions[key] = subscription

        first = self._issue(subscription)
        subscription.loop_task = loop.create_task(
            self._run_loop(subscription, first),
            name=f"poll:{key}",
        )
        logger.info("[Scheduler] Subscribed %s every %sms", key, interval_ms)
        return SubscriptionHandle(subscription)

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        subscription = handle._subscription  # noqa: SLF001
        if subscription.closed:
            return

        subscription.closed = True
        subscription.listeners.clear()
        if subscription.loop_task is not None:
            subscription.loop_task.cancel()
        if self._subscriptions.get(subscription.key) is subscription:
            del self._subscriptions[subscription.key]
        logger.info("[Scheduler] Unsubscribed %s", subscription.key)

    def revalidate(self, handle: SubscriptionHandle) -> bool:
        subscription = handle._subscription  # noqa: SLF001
        if subscription.closed:
            return False
        self._issue(subscription)
        return True

    def notify_focus(self) -> list[str]:
        """Revalidate every subscription whose data is older than the focus threshold."""
        now_ts = self._clock()
        revalidated: list[str] = []
        for subscription in list(self._subscriptions.values()):
            if subscription.closed or not subscription.revalidate_on_focus:
                continue

            last_fetched_at = subscription.view.last_fetched_at
            if last_fetched_at is None:
                if subscription.view.is_validating:
                    continue
            elif now_ts - last_fetched_at <= self.focus_threshold_seconds:
                continue

            self._issue(subscription)
            revalidated.append(subscription.key)

        if revalidated:
            logger.info("[Scheduler] Focus revalidation: %s", ", ".join(revalidated))
        return revalidated

    def get(self, key: str) -> SubscriptionView | None:
        subscription = self._subscriptions.get(key)
        return subscription.view if subscription is not None else None

    def keys(self) -> list[str]:
        return list(self._subscriptions)

    async def aclose(self) -> None:
        subscriptions = list(self._subscriptions.values())
        pending: list[asyncio.Task] = []
        for subscription in subscriptions:
            self.unsubscribe(SubscriptionHandle(subscription))
            if subscription.loop_task is not None:
                pending.append(subscription.loop_task)
            for task in list(subscription.inflight):
                task.cancel()
                pending.append(task)

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _run_loop(self, subscription: _Subscription, first: asyncio.Task) -> None:
        task = first
        while True:
            # An in-flight fetch outlives cancellation of this loop.
            await asyncio.wait({task})
            if subscription.closed:
                return

            await asyncio.sleep(subscription.interval_seconds)
            if subscription.closed:
                return

            task = self._issue(subscription)

    def _issue(self, subscription: _Subscription) -> asyncio.Task:
        subscription.generation += 1
        generation = subscription.generation
        self._publish(
            subscription,
            replace(subscription.view, is_validating=True, generation=generation),
        )

        task = asyncio.get_running_loop().create_task(
            self._run_fetch(subscription, generation),
            name=f"fetch:{subscription.key}:{generation}",
        )
        subscription.inflight.add(task)
        task.add_done_callback(subscription.inflight.discard)
        return task

    async def _run_fetch(self, subscription: _Subscription, generation: int) -> None:
        try:
            value = await subscription.fetch()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            if not self._is_current(subscription, generation):
                logger.debug(
                    "[Scheduler] Discarding stale failure for %s (gen %s)",
                    subscription.key,
                    generation,
                )
                return
            logger.warning("[Scheduler] %s fetch failed: %s", subscription.key, exc)
            self._publish(
                subscription,
                replace(subscription.view, error=exc, is_validating=False),
            )
            return

        if not self._is_current(subscription, generation):
            logger.debug(
                "[Scheduler] Discarding stale result for %s (gen %s)",
                subscription.key,
                generation,
            )
            return

        self._publish(
            subscription,
            replace(
                subscription.view,
                value=value,
                error=None,
                is_validating=False,
                last_fetched_at=self._clock(),
            ),
        )

    def _is_current(self, subscription: _Subscription, generation: int) -> bool:
        return not subscription.closed and generation == subscription.generation

    def _publish(self, subscription: _Subscription, view: SubscriptionView) -> None:
        if subscription.closed:
            return

        subscription.view = view
        for listener in list(subscription.listeners):
            try:
                listener(view)
            except Exception as exc:  # noqa: BLE001
                logger.warning("[Scheduler] Listener for %s failed: %s", subscription.key, exc)
