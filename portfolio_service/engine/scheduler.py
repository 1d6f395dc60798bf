"""APScheduler integration: price cache watcher.

The price ingestion job is an external collaborator that writes straight
into the ``price_quote`` table, bypassing the ledger and its change feed.
An interval job fingerprints the table and publishes a price change event
whenever the fingerprint moves, so controllers pick up external writes.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from portfolio_service.models.price_quote import PriceQuote
from portfolio_service.services.change_feed import PRICES_TOPIC, ChangeFeed, change_feed

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()

PRICE_WATCH_JOB_ID = "price_watch"


class PriceCacheWatcher:
    def __init__(self, db_engine: Engine, feed: ChangeFeed = change_feed):
        self._engine = db_engine
        self._feed = feed
        self._fingerprint: int | None = None

    def fingerprint(self) -> int:
        with Session(self._engine) as session:
            rows = session.exec(select(PriceQuote.symbol, PriceQuote.price)).all()
        return hash(tuple(sorted((symbol, price) for symbol, price in rows)))

    def check(self) -> bool:
        """Compare against the last fingerprint. Returns True if a change was published.

        The first call only records the current state.
        """
        try:
            current = self.fingerprint()
        except Exception as e:
            logger.error(f"Price watcher: failed to read price cache: {e}")
            return False

        previous = self._fingerprint
        self._fingerprint = current
        if previous is None or previous == current:
            return False

        notified = self._feed.publish(PRICES_TOPIC)
        logger.info(f"Price watcher: price cache changed, notified {notified} subscribers")
        return True


def start_scheduler(db_engine: Engine, poll_seconds: int):
    """Start the scheduler with the price watcher job. No-op when polling is disabled."""
    if poll_seconds <= 0:
        logger.info("Price watcher disabled")
        return

    watcher = PriceCacheWatcher(db_engine)
    watcher.check()
    scheduler.add_job(
        watcher.check,
        trigger=IntervalTrigger(seconds=poll_seconds),
        id=PRICE_WATCH_JOB_ID,
        name="Price cache watcher",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=poll_seconds,
    )
    scheduler.start()
    logger.info(f"Scheduler started, polling price cache every {poll_seconds}s")


def stop_scheduler():
    """Shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


def get_scheduler_status() -> dict:
    """Return current scheduler state for the API."""
    jobs = scheduler.get_jobs()
    return {
        "running": scheduler.running,
        "job_count": len(jobs),
        "jobs": [
            {
                "id": j.id,
                "name": j.name,
                "next_run": str(j.next_run_time) if getattr(j, "next_run_time", None) else None,
                "trigger": str(j.trigger),
            }
            for j in jobs
        ],
    }
