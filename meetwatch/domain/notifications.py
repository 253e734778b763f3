"""Upcoming-meeting notification selection.

Decides which occurrence to announce and when; presenting the notification
is left to a ``NotificationSink``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

from meetwatch.calendar.meeting_url import to_native_meeting_url
from meetwatch.calendar.models import ResolvedOccurrence
from meetwatch.core.timezone_utils import to_utc

logger = logging.getLogger(__name__)

DEFAULT_EVENT_WARNING_SECONDS = 60


@dataclass(frozen=True)
class EventNotification:
    """A notification about to be shown for one occurrence."""

    occurrence: ResolvedOccurrence
    title: str
    body: str
    open_url: Optional[str] = None


class NotificationSink(Protocol):
    """Receives notifications selected by the notifier."""

    def notify(self, notification: EventNotification) -> None:
        ...


class LoggingNotificationSink:
    """Sink that writes notifications to the log."""

    def notify(self, notification: EventNotification) -> None:
        logger.warning("Upcoming meeting: %s (%s)", notification.title, notification.body)


def build_notification(occurrence: ResolvedOccurrence) -> EventNotification:
    """Build the notification text for an occurrence."""
    title = f"{occurrence.start.strftime('%H:%M')} - {occurrence.summary}"
    if occurrence.meeting_url:
        return EventNotification(
            occurrence=occurrence,
            title=title,
            body=occurrence.meeting_url,
            open_url=to_native_meeting_url(occurrence.meeting_url),
        )
    return EventNotification(occurrence=occurrence, title=title, body="No meeting link")


class UpcomingEventNotifier:
    """Announces the next meeting shortly before it starts.

    The first occurrence starting within ``warning_seconds`` of now is
    announced once per start instant, however often ``check`` runs.
    """

    def __init__(
        self,
        warning_seconds: int = DEFAULT_EVENT_WARNING_SECONDS,
        enabled: bool = True,
        sink: Optional[NotificationSink] = None,
    ):
        self.warning_seconds = warning_seconds
        self.enabled = enabled
        self.sink = sink or LoggingNotificationSink()
        self._last_notified_start: Optional[datetime] = None

    def next_due(
        self, occurrences: Iterable[ResolvedOccurrence], now: datetime
    ) -> Optional[ResolvedOccurrence]:
        """First occurrence starting in (now, now + warning_seconds]."""
        for occurrence in occurrences:
            seconds = (to_utc(occurrence.start) - to_utc(now)).total_seconds()
            if 0 < seconds <= self.warning_seconds:
                return occurrence
        return None

    def check(
        self, occurrences: Iterable[ResolvedOccurrence], now: datetime
    ) -> Optional[EventNotification]:
        """Send a notification if a meeting is about to start.

        Returns:
            The notification sent, or None
        """
        if not self.enabled:
            return None

        occurrence = self.next_due(occurrences, now)
        if occurrence is None or to_utc(occurrence.start) == self._last_notified_start:
            return None

        notification = build_notification(occurrence)
        self._last_notified_start = to_utc(occurrence.start)
        self.sink.notify(notification)
        return notification
