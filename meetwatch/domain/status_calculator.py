"""Status calculation for occurrences in the agenda.

Single source of truth for the past / in progress / upcoming marker and the
short status message shown next to a meeting.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from meetwatch.calendar.models import ResolvedOccurrence
from meetwatch.core.timezone_utils import to_utc


class OccurrencePhase(str, Enum):
    """Where an occurrence stands relative to now."""

    PAST = "past"
    IN_PROGRESS = "in_progress"
    UPCOMING = "upcoming"


PHASE_MARKERS = {
    OccurrencePhase.PAST: "✓",
    OccurrencePhase.IN_PROGRESS: "•",
    OccurrencePhase.UPCOMING: "◦",
}


@dataclass
class StatusInfo:
    """Status information for one occurrence."""

    phase: OccurrencePhase
    message: str
    is_urgent: bool

    @property
    def marker(self) -> str:
        return PHASE_MARKERS[self.phase]


def calculate_status(seconds_until_start: int, duration_seconds: int) -> StatusInfo:
    """Calculate status based on time until the meeting starts.

    Args:
        seconds_until_start: Seconds until meeting starts (negative if started)
        duration_seconds: Meeting duration in seconds

    Returns:
        StatusInfo with phase, message and urgency flag
    """
    if seconds_until_start <= 0:
        if abs(seconds_until_start) < duration_seconds:
            return StatusInfo(OccurrencePhase.IN_PROGRESS, "Meeting in progress", is_urgent=True)
        return StatusInfo(OccurrencePhase.PAST, "Meeting ended", is_urgent=False)

    minutes_until = seconds_until_start // 60
    if minutes_until <= 2:
        return StatusInfo(OccurrencePhase.UPCOMING, "Starting very soon", is_urgent=True)
    if minutes_until <= 15:
        return StatusInfo(OccurrencePhase.UPCOMING, "Starting soon", is_urgent=True)
    if minutes_until <= 60:
        return StatusInfo(OccurrencePhase.UPCOMING, "Starting within the hour", is_urgent=False)
    return StatusInfo(OccurrencePhase.UPCOMING, "Plenty of time", is_urgent=False)


def status_for(occurrence: ResolvedOccurrence, now: datetime) -> StatusInfo:
    """Status of an occurrence at ``now`` (timezone-aware)."""
    seconds_until_start = int((to_utc(occurrence.start) - to_utc(now)).total_seconds())
    return calculate_status(seconds_until_start, int(occurrence.duration.total_seconds()))
