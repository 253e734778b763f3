"""Unit tests for meetwatch.calendar.models and diagnostics."""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from meetwatch.calendar.diagnostics import DiagnosticsCollector
from meetwatch.calendar.exceptions import InvalidWindowError, MalformedEventError
from meetwatch.calendar.models import (
    CalendarComponentRaw,
    Diagnostic,
    DiagnosticKind,
    QueryWindow,
    RawProperty,
    RecurrenceIdentity,
    ResolutionResult,
    ResolvedOccurrence,
)

pytestmark = pytest.mark.unit

BERLIN = ZoneInfo("Europe/Berlin")


def _occurrence(uid: str, start: datetime, minutes: int = 30) -> ResolvedOccurrence:
    return ResolvedOccurrence(uid=uid, start=start, end=start + timedelta(minutes=minutes))


class TestCalendarComponentRaw:
    """Tests for the raw component accessors."""

    def setup_method(self):
        self.component = CalendarComponentRaw.from_pairs(
            [
                ("uid", RawProperty(value="evt-1")),
                ("DTSTART", RawProperty(value="20250303T090000Z")),
                ("EXDATE", RawProperty(value="20250310T090000Z")),
                ("EXDATE", RawProperty(value="20250317T090000Z")),
                ("SUMMARY", RawProperty(value="")),
            ]
        )

    def test_get_required_present(self):
        assert self.component.get_required("dtstart").value == "20250303T090000Z"

    def test_get_required_missing_raises_with_uid(self):
        with pytest.raises(MalformedEventError) as exc_info:
            self.component.get_required("DTEND")
        assert exc_info.value.uid == "evt-1"

    def test_get_required_empty_value_raises(self):
        with pytest.raises(MalformedEventError):
            self.component.get_required("SUMMARY")

    def test_get_optional_and_get_all(self):
        assert self.component.get_optional("LOCATION") is None
        assert len(self.component.get_all("EXDATE")) == 2

    def test_component_is_immutable(self):
        with pytest.raises(ValidationError):
            self.component.properties = {}  # type: ignore[misc]


class TestRecurrenceIdentity:
    """Tests for RecurrenceIdentity matching."""

    def test_matches_same_instant_in_other_timezone(self):
        berlin = RecurrenceIdentity(uid="a", recurrence_id=datetime(2025, 3, 3, 9, 0, tzinfo=BERLIN))
        utc = RecurrenceIdentity(
            uid="a", recurrence_id=datetime(2025, 3, 3, 8, 0, 20, tzinfo=timezone.utc)
        )

        assert berlin.matches(utc)
        assert berlin.key() == utc.key()

    def test_different_uid_never_matches(self):
        instant = datetime(2025, 3, 3, 9, 0, tzinfo=BERLIN)
        assert not RecurrenceIdentity(uid="a", recurrence_id=instant).matches(
            RecurrenceIdentity(uid="b", recurrence_id=instant)
        )

    def test_different_minute_does_not_match(self):
        a = RecurrenceIdentity(uid="a", recurrence_id=datetime(2025, 3, 3, 9, 0, tzinfo=BERLIN))
        b = RecurrenceIdentity(uid="a", recurrence_id=datetime(2025, 3, 3, 9, 1, tzinfo=BERLIN))
        assert not a.matches(b)

    def test_missing_recurrence_id_matches_by_uid(self):
        a = RecurrenceIdentity(uid="a")
        b = RecurrenceIdentity(uid="a", recurrence_id=datetime(2025, 3, 3, 9, 0, tzinfo=BERLIN))
        assert a.matches(b)


class TestResolvedOccurrence:
    """Tests for ResolvedOccurrence validation."""

    def test_end_before_start_rejected(self):
        start = datetime(2025, 3, 3, 9, 0, tzinfo=BERLIN)
        with pytest.raises(ValidationError):
            ResolvedOccurrence(uid="a", start=start, end=start - timedelta(minutes=1))

    def test_duration_and_serialization(self):
        occurrence = _occurrence("a", datetime(2025, 3, 3, 9, 0, tzinfo=BERLIN), minutes=45)

        assert occurrence.duration == timedelta(minutes=45)
        dumped = occurrence.model_dump()
        assert dumped["start"] == "2025-03-03T09:00:00+01:00"
        assert dumped["status"] == "confirmed"

    def test_end_in_repeated_hour_compared_as_instant(self):
        # 02:45 CEST (00:45Z) until 02:30 CET (01:30Z)
        start = datetime(2025, 10, 26, 0, 45, tzinfo=timezone.utc).astimezone(BERLIN)
        end = datetime(2025, 10, 26, 1, 30, tzinfo=timezone.utc).astimezone(BERLIN)

        occurrence = ResolvedOccurrence(uid="night", start=start, end=end)

        assert end.replace(fold=0) < start
        assert occurrence.duration == timedelta(minutes=45)


class TestQueryWindow:
    """Tests for QueryWindow construction."""

    def test_for_days_bounds(self):
        window = QueryWindow.for_days(date(2025, 3, 3), 1, BERLIN)

        assert window.start == datetime(2025, 3, 3, 0, 0, tzinfo=BERLIN)
        assert window.end == datetime(2025, 3, 4, 23, 59, 59, tzinfo=BERLIN)

    def test_zero_days_is_today_only(self):
        window = QueryWindow.for_days(date(2025, 3, 3), 0, BERLIN)
        assert window.end.date() == date(2025, 3, 3)

    def test_inverted_window_rejected(self):
        with pytest.raises(InvalidWindowError):
            QueryWindow(
                start=datetime(2025, 3, 4, tzinfo=BERLIN), end=datetime(2025, 3, 3, tzinfo=BERLIN)
            )

    def test_negative_days_rejected(self):
        with pytest.raises(InvalidWindowError):
            QueryWindow.for_days(date(2025, 3, 3), -1, BERLIN)

    def test_naive_bounds_rejected(self):
        with pytest.raises(InvalidWindowError):
            QueryWindow(start=datetime(2025, 3, 3), end=datetime(2025, 3, 4))

    def test_overlaps_is_closed_interval(self):
        window = QueryWindow.for_days(date(2025, 3, 3), 0, BERLIN)

        assert window.overlaps(window.start - timedelta(hours=1), window.start)
        assert window.overlaps(window.end, window.end + timedelta(hours=1))
        assert not window.overlaps(
            window.start - timedelta(hours=2), window.start - timedelta(seconds=1)
        )

    def test_overlaps_in_repeated_hour_uses_instants(self):
        # 02:30 CET, the second 02:30 of the night
        window = QueryWindow(
            start=datetime(2025, 10, 26, 2, 30, fold=1, tzinfo=BERLIN),
            end=datetime(2025, 10, 26, 4, 0, tzinfo=BERLIN),
        )
        first_pass_start = datetime(2025, 10, 26, 2, 45, tzinfo=BERLIN)

        assert not window.overlaps(first_pass_start, first_pass_start + timedelta(minutes=5))
        assert window.overlaps(
            datetime(2025, 10, 26, 2, 45, fold=1, tzinfo=BERLIN),
            datetime(2025, 10, 26, 3, 0, tzinfo=BERLIN),
        )


class TestDiagnostics:
    """Tests for DiagnosticsCollector and ResolutionResult."""

    def test_identical_entries_recorded_once(self):
        collector = DiagnosticsCollector()
        collector.add(DiagnosticKind.TIMEZONE_FALLBACK, "Unknown TZID", uid="a")
        collector.add(DiagnosticKind.TIMEZONE_FALLBACK, "Unknown TZID", uid="a")
        collector.add(DiagnosticKind.TIMEZONE_FALLBACK, "Unknown TZID", uid="b")

        assert len(collector) == 2
        assert [d.uid for d in collector.of_kind(DiagnosticKind.TIMEZONE_FALLBACK)] == ["a", "b"]

    def test_override_without_match_is_not_degradation(self):
        result = ResolutionResult(
            diagnostics=(Diagnostic(kind=DiagnosticKind.OVERRIDE_WITHOUT_MATCH, message="x"),)
        )
        assert not result.is_degraded

    def test_occurrences_flatten_in_day_order(self):
        first = _occurrence("a", datetime(2025, 3, 3, 9, 0, tzinfo=BERLIN))
        second = _occurrence("b", datetime(2025, 3, 4, 9, 0, tzinfo=BERLIN))
        result = ResolutionResult(days={date(2025, 3, 4): (second,), date(2025, 3, 3): (first,)})

        assert list(result.occurrences()) == [first, second]
