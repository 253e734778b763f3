"""Window filtering, ordering and per-day grouping - meetwatch."""

import logging
from collections.abc import Iterable, Mapping
from datetime import date, tzinfo
from types import MappingProxyType

from ..core.timezone_utils import to_utc
from .models import QueryWindow, ResolvedOccurrence

logger = logging.getLogger(__name__)


def sort_key(occurrence: ResolvedOccurrence) -> tuple:
    return (to_utc(occurrence.start), occurrence.uid)


def assemble(
    occurrences: Iterable[ResolvedOccurrence],
    window: QueryWindow,
    local_tz: tzinfo,
) -> Mapping[date, tuple[ResolvedOccurrence, ...]]:
    """Group the occurrences that overlap the window by local start date.

    An occurrence overlaps when ``start <= window.end`` and
    ``end >= window.start``. Each day lists its occurrences ordered by start
    then UID; days without occurrences are omitted.

    Args:
        occurrences: Resolved, deduplicated occurrences
        window: Query window
        local_tz: Timezone the calendar dates are taken in

    Returns:
        Read-only mapping of date to occurrence tuple, in date order
    """
    kept = sorted(
        (o for o in occurrences if window.overlaps(o.start, o.end)),
        key=sort_key,
    )

    grouped: dict[date, list[ResolvedOccurrence]] = {}
    for occurrence in kept:
        day = occurrence.start.astimezone(local_tz).date()
        grouped.setdefault(day, []).append(occurrence)

    logger.debug("Assembled %d occurrences over %d days", len(kept), len(grouped))
    return MappingProxyType({day: tuple(items) for day, items in grouped.items()})
