"""Unit tests for meetwatch.calendar.classifier."""

import pytest

from meetwatch.calendar.classifier import classify
from meetwatch.calendar.exceptions import MalformedEventError
from meetwatch.calendar.models import ComponentKind

pytestmark = pytest.mark.unit


class TestClassify:
    """Tests for classify()."""

    def test_plain(self, make_component):
        component = make_component("UID:a", "DTSTART:20250303T090000Z")
        assert classify(component) == ComponentKind.PLAIN

    def test_recurring_master(self, make_component):
        component = make_component("UID:a", "DTSTART:20250303T090000Z", "RRULE:FREQ=DAILY")
        assert classify(component) == ComponentKind.RECURRING_MASTER

    def test_override(self, make_component):
        component = make_component(
            "UID:a", "DTSTART:20250303T100000Z", "RECURRENCE-ID:20250303T090000Z"
        )
        assert classify(component) == ComponentKind.RECURRENCE_OVERRIDE

    def test_recurrence_id_wins_over_rrule(self, make_component):
        component = make_component(
            "UID:a",
            "DTSTART:20250303T100000Z",
            "RRULE:FREQ=DAILY",
            "RECURRENCE-ID:20250303T090000Z",
        )
        assert classify(component) == ComponentKind.RECURRENCE_OVERRIDE

    def test_missing_uid(self, make_component):
        with pytest.raises(MalformedEventError):
            classify(make_component("DTSTART:20250303T090000Z", "SUMMARY:x"))

    def test_missing_dtstart_carries_uid(self, make_component):
        with pytest.raises(MalformedEventError) as exc_info:
            classify(make_component("UID:a", "SUMMARY:x"))
        assert exc_info.value.uid == "a"
