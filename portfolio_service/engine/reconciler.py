"""Reconciliation controller: keeps one owner scope's snapshot current.

A controller holds the latest trade set, quote set and baseline for one
owner and re-runs the valuation engine whenever any of them changes:

    IDLE --start()--> LOADING --all sources loaded--> READY --change--> READY

Rules:
- Each change event re-fetches only the source that changed.
- At most one fetch per source is in flight. An event that arrives while
  that source is being fetched marks it for one more fetch right after.
- A snapshot is computed and published only when no fetch is running or
  pending for any source, so a burst of events across sources produces
  one snapshot that reflects all of them.
- A failed fetch keeps the last good data for that source; the next view
  is published with ``stale=True`` and the error text.
- After ``close()`` nothing is fetched, computed or published.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable

from portfolio_service.engine.sources import (
    BaselineSource,
    PriceSource,
    ReconciliationError,
    SnapshotComputeError,
    Source,
    SourceFetchError,
    TradeSource,
)
from portfolio_service.engine.valuation import TradeRecord, ValuationSnapshot, compute_snapshot
from portfolio_service.utils.money import ZERO

logger = logging.getLogger(__name__)


class ControllerState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    CLOSED = "closed"


@dataclass(frozen=True)
class ReconciledView:
    """What listeners receive: a complete snapshot plus its freshness."""

    owner_id: str
    snapshot: ValuationSnapshot
    version: int
    stale: bool = False
    error: str | None = None
    computed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Listener = Callable[[ReconciledView], None]


class ListenerSubscription:
    def __init__(self, controller: "ReconciliationController", listener_id: int):
        self._controller = controller
        self._listener_id = listener_id

    def unsubscribe(self) -> None:
        self._controller._listeners.pop(self._listener_id, None)


class ReconciliationController:
    def __init__(
        self,
        owner_id: str,
        trades: TradeSource,
        prices: PriceSource,
        baselines: BaselineSource,
    ):
        self.owner_id = owner_id
        self.state = ControllerState.IDLE
        self._trade_source = trades
        self._price_source = prices
        self._baseline_source = baselines

        # Last good copy of each source
        self._trades: tuple[TradeRecord, ...] = ()
        self._quotes: dict[str, Decimal] = {}
        self._baseline: Decimal = ZERO
        self._loaded: set[Source] = set()
        self._errors: dict[Source, SourceFetchError] = {}
        self._compute_error: SnapshotComputeError | None = None

        self._tasks: dict[Source, asyncio.Task] = {}
        self._pending: set[Source] = set()
        self._subscriptions = []
        self._listeners: dict[int, Listener] = {}
        self._listener_ids = itertools.count(1)

        self._view: ReconciledView | None = None
        self._version = 0
        self._loop: asyncio.AbstractEventLoop | None = None
        self._settled = asyncio.Event()
        self._closed = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def view(self) -> ReconciledView | None:
        return self._view

    @property
    def snapshot(self) -> ValuationSnapshot | None:
        return self._view.snapshot if self._view else None

    @property
    def error(self) -> ReconciliationError | None:
        """First outstanding fetch error, else the last compute error, if any."""
        for source in Source:
            if source in self._errors:
                return self._errors[source]
        return self._compute_error

    @property
    def is_stale(self) -> bool:
        return bool(self._errors) or self._compute_error is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: Listener) -> ListenerSubscription:
        """Register a listener for every published view."""
        listener_id = next(self._listener_ids)
        self._listeners[listener_id] = listener
        return ListenerSubscription(self, listener_id)

    async def start(self) -> ReconciledView:
        """Subscribe to all sources and perform the initial full load.

        Raises ReconciliationError if the initial load failed. The controller
        stays subscribed and will finish loading on the next change event
        or ``refresh()``.
        """
        if self.state != ControllerState.IDLE:
            raise RuntimeError(f"controller for {self.owner_id} already started")

        self._loop = asyncio.get_running_loop()
        self.state = ControllerState.LOADING
        logger.info(f"[{self.owner_id}] Starting reconciliation")

        # Subscribe before fetching so no change between fetch and subscribe is lost
        self._subscriptions = [
            self._trade_source.on_trade_change(
                self.owner_id, lambda: self.notify_change(Source.TRADES)
            ),
            self._price_source.on_price_change(lambda: self.notify_change(Source.QUOTES)),
            self._baseline_source.on_baseline_change(
                self.owner_id, lambda: self.notify_change(Source.BASELINE)
            ),
        ]
        self._request(*Source)

        await self.wait_until_settled()
        if self._view is None:
            raise self.error or RuntimeError(f"[{self.owner_id}] controller closed during load")
        return self._view

    async def refresh(self) -> ReconciledView | None:
        """Re-fetch every source and wait for the resulting view.

        Raises ReconciliationError if any source failed or the snapshot
        could not be computed; the last good view is still available
        on ``view``.
        """
        if self._closed:
            return None
        self._request(*Source)
        await self.wait_until_settled()
        error = self.error
        if error is not None:
            raise error
        return self._view

    async def wait_until_settled(self) -> None:
        """Wait until no fetch is running or pending."""
        await self._settled.wait()

    def notify_change(self, source: Source) -> None:
        """Change-event entry point. Safe to call from any thread."""
        loop = self._loop
        if loop is None or self._closed:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._request(source)
            return
        try:
            loop.call_soon_threadsafe(self._request, source)
        except RuntimeError:
            # Loop already closed; the scope is gone
            logger.debug(f"[{self.owner_id}] Dropped {source.value} change after loop shutdown")

    async def close(self) -> None:
        """Unsubscribe, cancel in-flight fetches and stop publishing."""
        if self._closed:
            return
        self._closed = True
        self.state = ControllerState.CLOSED

        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

        tasks = list(self._tasks.values())
        self._tasks.clear()
        self._pending.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._listeners.clear()
        self._settled.set()
        logger.info(f"[{self.owner_id}] Reconciliation stopped")

    # ------------------------------------------------------------------
    # Fetch scheduling
    # ------------------------------------------------------------------

    def _request(self, *sources: Source) -> None:
        if self._closed:
            return
        self._settled.clear()

        for source in Source:
            if source in self._tasks:
                if source in sources:
                    self._pending.add(source)
            elif source in sources or (self._view is None and source not in self._loaded):
                # Until the first snapshot exists, any request also retries
                # sources whose initial load failed.
                self._tasks[source] = self._loop.create_task(self._fetch(source))

    async def _fetch(self, source: Source) -> None:
        task = asyncio.current_task()
        try:
            while True:
                self._pending.discard(source)
                try:
                    data = await self._load(source)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    if self._closed:
                        return
                    error = SourceFetchError(source, self.owner_id, e)
                    self._errors[source] = error
                    logger.warning(str(error))
                else:
                    if self._closed:
                        return
                    self._store(source, data)

                if source not in self._pending:
                    break
                logger.debug(f"[{self.owner_id}] Refetching {source.value} queued during fetch")
        finally:
            if self._tasks.get(source) is task:
                del self._tasks[source]

        if not self._closed:
            self._maybe_publish()

    async def _load(self, source: Source):
        if source == Source.TRADES:
            return await self._trade_source.list_trades(self.owner_id)
        if source == Source.QUOTES:
            return await self._price_source.list_quotes()
        return await self._baseline_source.get_baseline(self.owner_id)

    def _store(self, source: Source, data) -> None:
        if source == Source.TRADES:
            self._trades = tuple(data)
        elif source == Source.QUOTES:
            # Whole quote set is replaced, never merged with the previous one
            self._quotes = dict(data)
        else:
            self._baseline = data
        self._loaded.add(source)
        self._errors.pop(source, None)

    # ------------------------------------------------------------------
    # Recompute & publish
    # ------------------------------------------------------------------

    def _maybe_publish(self) -> None:
        if self._tasks or self._pending:
            return

        if len(self._loaded) < len(Source):
            # Initial load incomplete; nothing consistent to show yet
            logger.warning(
                f"[{self.owner_id}] Initial load incomplete, missing "
                f"{sorted(s.value for s in Source if s not in self._loaded)}"
            )
            self._settled.set()
            return

        try:
            snapshot = compute_snapshot(self._trades, self._quotes, self._baseline)
        except Exception as e:
            self._compute_error = SnapshotComputeError(self.owner_id, e)
            logger.error(str(self._compute_error), exc_info=True)
            if self._view is None:
                self._settled.set()
                return
            # Republish the last good snapshot, flagged stale
            snapshot = self._view.snapshot
        else:
            self._compute_error = None

        self._version += 1
        error = self.error
        view = ReconciledView(
            owner_id=self.owner_id,
            snapshot=snapshot,
            version=self._version,
            stale=error is not None,
            error=str(error) if error else None,
        )
        self._view = view
        self.state = ControllerState.READY

        logger.info(
            f"[{self.owner_id}] Snapshot v{view.version}: equity={snapshot.current_equity} "
            f"open={snapshot.open_count} closed={snapshot.closed_count}"
            + (f" STALE ({view.error})" if view.stale else "")
        )
        if snapshot.malformed_count:
            logger.warning(f"[{self.owner_id}] {snapshot.malformed_count} malformed trades excluded")

        for listener in list(self._listeners.values()):
            try:
                listener(view)
            except Exception as e:
                logger.error(f"[{self.owner_id}] Snapshot listener failed: {e}", exc_info=True)

        # A listener may have requested another fetch
        if not (self._tasks or self._pending):
            self._settled.set()
