"""Unit tests for meetwatch.calendar.override_resolver."""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from meetwatch.calendar.diagnostics import DiagnosticsCollector
from meetwatch.calendar.event_parser import EventTemplate
from meetwatch.calendar.models import (
    ComponentKind,
    DiagnosticKind,
    OccurrenceStatus,
    ResolvedOccurrence,
)
from meetwatch.calendar.override_resolver import OverrideResolver

pytestmark = pytest.mark.unit

BERLIN = ZoneInfo("Europe/Berlin")


class TestOverrideResolver:
    """Tests for OverrideResolver.apply()."""

    def setup_method(self):
        self.diagnostics = DiagnosticsCollector()
        self.resolver = OverrideResolver(BERLIN, self.diagnostics)
        self.occurrences = [
            ResolvedOccurrence(
                uid="series-1",
                start=datetime(2025, 3, day, 9, 0, tzinfo=BERLIN),
                end=datetime(2025, 3, day, 9, 15, tzinfo=BERLIN),
                summary="Standup",
                description="Daily sync https://meet.google.com/abc-defg-hij",
                meeting_url="https://meet.google.com/abc-defg-hij",
                is_expanded_instance=True,
            )
            for day in (3, 10, 17)
        ]

    def create_override(
        self,
        recurrence_id: datetime,
        start: datetime,
        summary: str = "Moved",
        sequence: int = 0,
        cancelled: bool = False,
        uid: str = "series-1",
    ) -> EventTemplate:
        """Create a decoded override component."""
        return EventTemplate(
            uid=uid,
            kind=ComponentKind.RECURRENCE_OVERRIDE,
            start=start,
            end=start + timedelta(minutes=30),
            sequence=sequence,
            summary=summary,
            status=OccurrenceStatus.CANCELLED if cancelled else OccurrenceStatus.CONFIRMED,
            recurrence_id=recurrence_id,
            tz_explicit=True,
        )

    def test_no_overrides_passes_through(self):
        assert self.resolver.apply(self.occurrences, []) == self.occurrences
        assert len(self.diagnostics) == 0

    def test_matched_override_replaces_fields(self):
        override = self.create_override(
            datetime(2025, 3, 10, 9, 0, tzinfo=BERLIN), datetime(2025, 3, 10, 11, 0, tzinfo=BERLIN)
        )

        result = self.resolver.apply(self.occurrences, [override])

        assert len(result) == 3
        moved = result[1]
        assert moved.uid == "series-1"
        assert moved.summary == "Moved"
        assert moved.description == ""
        assert moved.meeting_url is None
        assert moved.start == datetime(2025, 3, 10, 11, 0, tzinfo=BERLIN)
        assert moved.end == datetime(2025, 3, 10, 11, 30, tzinfo=BERLIN)
        assert moved.status == OccurrenceStatus.CONFIRMED
        assert result[0] == self.occurrences[0]
        assert result[2] == self.occurrences[2]

    def test_matching_tolerates_seconds_and_timezone(self):
        override = self.create_override(
            datetime(2025, 3, 10, 8, 0, 10, tzinfo=timezone.utc),
            datetime(2025, 3, 10, 12, 0, tzinfo=BERLIN),
        )

        result = self.resolver.apply(self.occurrences, [override])

        assert result[1].summary == "Moved"

    def test_cancelled_override_removes_occurrence(self):
        override = self.create_override(
            datetime(2025, 3, 10, 9, 0, tzinfo=BERLIN),
            datetime(2025, 3, 10, 9, 0, tzinfo=BERLIN),
            cancelled=True,
        )

        result = self.resolver.apply(self.occurrences, [override])

        assert [o.start.day for o in result] == [3, 17]

    def test_highest_sequence_wins(self):
        rid = datetime(2025, 3, 17, 9, 0, tzinfo=BERLIN)
        newer = self.create_override(rid, rid + timedelta(hours=1), "Newer", sequence=2)
        older = self.create_override(rid, rid + timedelta(hours=2), "Older", sequence=1)

        assert self.resolver.apply(self.occurrences, [newer, older])[2].summary == "Newer"
        assert self.resolver.apply(self.occurrences, [older, newer])[2].summary == "Newer"

    def test_cancellation_with_higher_sequence_beats_modification(self):
        rid = datetime(2025, 3, 17, 9, 0, tzinfo=BERLIN)
        modified = self.create_override(rid, rid + timedelta(hours=1), sequence=1)
        cancelled = self.create_override(rid, rid, sequence=2, cancelled=True)

        result = self.resolver.apply(self.occurrences, [modified, cancelled])

        assert [o.start.day for o in result] == [3, 10]

    def test_unmatched_override_inserted_standalone(self):
        override = self.create_override(
            datetime(2025, 3, 12, 9, 0, tzinfo=BERLIN), datetime(2025, 3, 12, 9, 0, tzinfo=BERLIN)
        )

        result = self.resolver.apply(self.occurrences, [override])

        assert len(result) == 4
        assert result[-1].summary == "Moved"
        assert result[-1].recurrence_id == datetime(2025, 3, 12, 9, 0, tzinfo=BERLIN)
        (diagnostic,) = self.diagnostics.snapshot()
        assert diagnostic.kind == DiagnosticKind.OVERRIDE_WITHOUT_MATCH

    def test_unmatched_cancelled_override_only_reported(self):
        override = self.create_override(
            datetime(2025, 3, 12, 9, 0, tzinfo=BERLIN),
            datetime(2025, 3, 12, 9, 0, tzinfo=BERLIN),
            cancelled=True,
        )

        result = self.resolver.apply(self.occurrences, [override])

        assert result == self.occurrences
        assert [d.kind for d in self.diagnostics.snapshot()] == [
            DiagnosticKind.OVERRIDE_WITHOUT_MATCH
        ]

    def test_override_for_other_uid_does_not_match(self):
        override = self.create_override(
            datetime(2025, 3, 10, 9, 0, tzinfo=BERLIN),
            datetime(2025, 3, 10, 11, 0, tzinfo=BERLIN),
            uid="other",
        )

        result = self.resolver.apply(self.occurrences, [override])

        assert result[:3] == self.occurrences
        assert result[3].uid == "other"
