"""Serialized background refresh of the calendar feed."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

from meetwatch.calendar.exceptions import ICSFetchError
from meetwatch.calendar.ics_reader import read_components
from meetwatch.core.http_client import ICSFetcher
from meetwatch.core.timezone_utils import now_utc
from meetwatch.domain.notifications import EventNotification, UpcomingEventNotifier
from meetwatch.domain.pipeline import ResolutionEngine
from meetwatch.domain.snapshot import CalendarSnapshot, SnapshotStore

logger = logging.getLogger(__name__)

# How often pending notifications are checked between refreshes
NOTIFICATION_TICK_SECONDS = 5.0

FeedLoader = Callable[[], Awaitable[str]]


def url_loader(fetcher: ICSFetcher, url: str) -> FeedLoader:
    """Feed loader downloading ``url`` with ``fetcher``."""

    async def load() -> str:
        return await fetcher.fetch_ics(url)

    return load


def file_loader(path: Path) -> FeedLoader:
    """Feed loader reading a local .ics file."""

    async def load() -> str:
        return await asyncio.to_thread(path.read_text, encoding="utf-8")

    return load


class CalendarPoller:
    """Runs fetch -> read -> resolve -> publish, one refresh at a time.

    A failed refresh leaves the previous snapshot in place and marks the
    store degraded until the next success.
    """

    def __init__(
        self,
        settings: Any,
        engine: ResolutionEngine,
        store: SnapshotStore,
        loader: FeedLoader,
        source: str = "",
        notifier: Optional[UpcomingEventNotifier] = None,
        time_provider: Callable[[], datetime] = now_utc,
    ):
        self.settings = settings
        self.engine = engine
        self.store = store
        self.loader = loader
        self.source = source
        self.notifier = notifier
        self.time_provider = time_provider
        self.poll_interval = float(getattr(settings, "poll_interval_seconds", 120))
        self._refresh_lock = asyncio.Lock()

    async def refresh_once(self) -> bool:
        """Perform a single refresh.

        Returns:
            True if a new snapshot was published
        """
        async with self._refresh_lock:
            now = self.time_provider()
            try:
                text = await self.loader()
            except (ICSFetchError, OSError, UnicodeDecodeError) as e:
                await self.store.mark_failed(str(e), now)
                return False

            try:
                read = read_components(text)
                window = self.engine.window_for(now.astimezone(self.engine.local_tz).date())
                result = self.engine.resolve(read.components, window, timezones=read.timezones)
            except Exception as e:
                logger.exception("Resolving feed %s failed", self.source or "<unnamed>")
                await self.store.mark_failed(f"resolution failed: {e}", now)
                return False

            await self.store.publish(
                CalendarSnapshot(
                    result=result,
                    fetched_at=now,
                    source=self.source,
                    calendar_name=read.calendar_name,
                )
            )
            logger.info(
                "Refresh complete: %d occurrences, %d diagnostics",
                sum(len(items) for items in result.days.values()),
                len(result.diagnostics),
            )
            return True

    def check_notifications(self) -> Optional[EventNotification]:
        """Announce the next meeting if it is about to start."""
        snapshot = self.store.current
        if self.notifier is None or snapshot is None:
            return None
        return self.notifier.check(snapshot.result.occurrences(), self.time_provider())

    async def run(self, stop_event: asyncio.Event) -> None:
        """Refresh immediately, then every ``poll_interval`` seconds until stopped."""
        logger.debug("Poller starting with interval %.0f seconds", self.poll_interval)
        loop = asyncio.get_running_loop()
        next_refresh = loop.time()

        while not stop_event.is_set():
            try:
                if loop.time() >= next_refresh:
                    next_refresh = loop.time() + self.poll_interval
                    await self.refresh_once()

                self.check_notifications()
            except Exception:
                logger.exception("Poller loop unexpected error")

            timeout = max(0.0, min(NOTIFICATION_TICK_SECONDS, next_refresh - loop.time()))
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                continue

        logger.debug("Poller stopped")
