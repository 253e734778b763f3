"""Occurrence deduplication - meetwatch."""

import logging
from datetime import datetime

from ..core.timezone_utils import round_to_minute
from .models import ResolvedOccurrence

logger = logging.getLogger(__name__)

Fingerprint = tuple[str, datetime, datetime, str]


def fingerprint(occurrence: ResolvedOccurrence) -> Fingerprint:
    """UID, start and end rounded to the minute in UTC, and summary."""
    return (
        occurrence.uid,
        round_to_minute(occurrence.start),
        round_to_minute(occurrence.end),
        occurrence.summary,
    )


def dedupe(occurrences: list[ResolvedOccurrence]) -> list[ResolvedOccurrence]:
    """Collapse occurrences that describe the same logical event.

    The survivor takes the position of the first member of its group. An
    occurrence whose start carried an explicit timezone is preferred over one
    that was defaulted to UTC; otherwise the first one seen is kept.
    """
    slots: dict[Fingerprint, int] = {}
    result: list[ResolvedOccurrence] = []

    for occurrence in occurrences:
        key = fingerprint(occurrence)
        index = slots.get(key)
        if index is None:
            slots[key] = len(result)
            result.append(occurrence)
        elif occurrence.tz_explicit and not result[index].tz_explicit:
            result[index] = occurrence

    removed = len(occurrences) - len(result)
    if removed:
        logger.debug("Removed %d duplicate occurrences", removed)
    return result
