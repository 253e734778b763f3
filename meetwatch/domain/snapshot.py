"""Published calendar snapshots.

One writer (the poller) replaces the snapshot wholesale; readers take the
current reference and never observe a partially built result.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from meetwatch.calendar.models import ResolutionResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalendarSnapshot:
    """Immutable result of one successful refresh."""

    result: ResolutionResult
    fetched_at: datetime
    source: str = ""
    calendar_name: Optional[str] = None

    @property
    def occurrence_count(self) -> int:
        return sum(len(items) for items in self.result.days.values())


class SnapshotStore:
    """Holds the latest snapshot and the outcome of the latest refresh."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._snapshot: Optional[CalendarSnapshot] = None
        self._last_error: Optional[str] = None
        self._last_error_at: Optional[datetime] = None

    @property
    def current(self) -> Optional[CalendarSnapshot]:
        return self._snapshot

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def last_error_at(self) -> Optional[datetime]:
        return self._last_error_at

    @property
    def is_degraded(self) -> bool:
        """True when the latest refresh failed and an older snapshot is served."""
        return self._last_error is not None

    async def publish(self, snapshot: CalendarSnapshot) -> None:
        async with self._lock:
            self._snapshot = snapshot
            self._last_error = None
            self._last_error_at = None
        logger.debug(
            "Published snapshot with %d occurrences (fetched %s)",
            snapshot.occurrence_count,
            snapshot.fetched_at.isoformat(),
        )

    async def mark_failed(self, error: str, when: datetime) -> None:
        """Record a failed refresh; the previous snapshot stays current."""
        async with self._lock:
            self._last_error = error
            self._last_error_at = when
        logger.warning("Refresh failed, keeping previous snapshot: %s", error)
