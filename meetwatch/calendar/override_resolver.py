"""RECURRENCE-ID override handling - meetwatch.

Overrides replace or cancel the expanded occurrence they point at. Matching is
by UID plus the RECURRENCE-ID instant rounded to the minute in UTC, so a
master written in Europe/Berlin and an override written in UTC still meet.
"""

import logging
from datetime import datetime, tzinfo
from typing import Optional

from .diagnostics import DiagnosticsCollector
from .event_parser import EventTemplate
from .models import (
    DiagnosticKind,
    OccurrenceStatus,
    RecurrenceIdentity,
    ResolvedOccurrence,
)

logger = logging.getLogger(__name__)

OverrideKey = tuple[str, Optional[datetime]]


class OverrideResolver:
    """Applies recurrence overrides to expanded occurrences."""

    def __init__(self, local_tz: tzinfo, diagnostics: Optional[DiagnosticsCollector] = None):
        self.local_tz = local_tz
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticsCollector()

    def apply(
        self,
        occurrences: list[ResolvedOccurrence],
        overrides: list[EventTemplate],
    ) -> list[ResolvedOccurrence]:
        """Substitute or remove the occurrences targeted by overrides.

        - matched and cancelled: the occurrence is removed
        - matched and not cancelled: times and text come from the override,
          the UID is kept and the status is confirmed
        - unmatched occurrences pass through unchanged
        - unmatched overrides that are not cancelled are added as standalone
          occurrences; cancelled ones are only reported

        Args:
            occurrences: Expanded and plain occurrences
            overrides: Decoded RECURRENCE-ID components

        Returns:
            New list; input order is kept, standalone overrides go last
        """
        by_key = self._index_overrides(overrides)
        matched: set[OverrideKey] = set()

        result: list[ResolvedOccurrence] = []
        for occurrence in occurrences:
            key = RecurrenceIdentity(uid=occurrence.uid, recurrence_id=occurrence.start).key()
            override = by_key.get(key)
            if override is None:
                result.append(occurrence)
                continue

            matched.add(key)
            if override.is_cancelled:
                logger.debug("Cancelled occurrence %s at %s", occurrence.uid, occurrence.start)
                continue
            result.append(self._substitute(occurrence, override))

        for key, override in by_key.items():
            if key in matched:
                continue
            self.diagnostics.add(
                DiagnosticKind.OVERRIDE_WITHOUT_MATCH,
                f"No occurrence matches RECURRENCE-ID {override.recurrence_id}",
                uid=override.uid,
            )
            if not override.is_cancelled:
                result.append(override.to_occurrence(self.local_tz))

        if matched:
            logger.debug("Applied %d recurrence overrides", len(matched))
        return result

    @staticmethod
    def _index_overrides(overrides: list[EventTemplate]) -> dict[OverrideKey, EventTemplate]:
        """Map override keys to the override with the highest SEQUENCE.

        On equal SEQUENCE the later component in feed order wins.
        """
        by_key: dict[OverrideKey, EventTemplate] = {}
        for override in overrides:
            key = RecurrenceIdentity(uid=override.uid, recurrence_id=override.recurrence_id).key()
            current = by_key.get(key)
            if current is None or override.sequence >= current.sequence:
                by_key[key] = override
        return by_key

    def _substitute(
        self, occurrence: ResolvedOccurrence, override: EventTemplate
    ) -> ResolvedOccurrence:
        return occurrence.model_copy(
            update={
                "sequence": override.sequence,
                "start": override.start.astimezone(self.local_tz),
                "end": override.end.astimezone(self.local_tz),
                "summary": override.summary,
                "description": override.description,
                "location": override.location,
                "status": OccurrenceStatus.CONFIRMED,
                "meeting_url": None,
                "is_all_day": override.is_all_day,
                "tz_explicit": override.tz_explicit,
                "recurrence_id": override.recurrence_id,
                "attendee_count": override.attendee_count,
            }
        )
