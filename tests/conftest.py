from collections.abc import Generator
from datetime import date
from types import SimpleNamespace
from typing import Any, Callable
from zoneinfo import ZoneInfo

import pytest

from meetwatch.calendar.ics_reader import read_components
from meetwatch.calendar.models import CalendarComponentRaw, QueryWindow
from meetwatch.domain.pipeline import ResolutionEngine


def pytest_configure(config: Any) -> None:
    """Register test markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: End-to-end resolution tests")


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Clear MEETWATCH_* variables that change clock or config behaviour."""
    for name in ("MEETWATCH_TEST_TIME", "MEETWATCH_DEBUG", "MEETWATCH_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def berlin() -> ZoneInfo:
    """The default local timezone."""
    return ZoneInfo("Europe/Berlin")


@pytest.fixture
def simple_settings() -> SimpleNamespace:
    """Lightweight settings object used across tests.

    Fields:
      - local_timezone: output timezone
      - window_days: days after today in the default window
      - max_occurrences_per_rule: RRULE expansion cap
      - request_timeout / max_retries / retry_backoff_factor: HTTP fetcher
      - poll_interval_seconds: poller interval
    """
    return SimpleNamespace(
        local_timezone="Europe/Berlin",
        window_days=1,
        max_occurrences_per_rule=250,
        request_timeout=5,
        max_retries=1,
        retry_backoff_factor=0.01,
        poll_interval_seconds=120,
    )


@pytest.fixture
def engine(simple_settings: SimpleNamespace) -> ResolutionEngine:
    return ResolutionEngine(simple_settings)


@pytest.fixture
def march_window(berlin: ZoneInfo) -> QueryWindow:
    """Monday 2025-03-03 through Monday 2025-03-24, Europe/Berlin."""
    return QueryWindow.for_days(date(2025, 3, 3), 21, berlin)


@pytest.fixture
def build_ics() -> Callable[..., str]:
    """Return a builder wrapping VEVENT line lists into a VCALENDAR document."""

    def _build(*events: list[str], extra: tuple[str, ...] = ()) -> str:
        lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//meetwatch//tests//EN", *extra]
        for event in events:
            lines.append("BEGIN:VEVENT")
            lines.extend(event)
            lines.append("END:VEVENT")
        lines.append("END:VCALENDAR")
        return "\r\n".join(lines) + "\r\n"

    return _build


@pytest.fixture
def make_component(build_ics: Callable[..., str]) -> Callable[..., CalendarComponentRaw]:
    """Return a builder turning VEVENT content lines into a raw component."""

    def _make(*lines: str) -> CalendarComponentRaw:
        result = read_components(build_ics(list(lines)))
        assert len(result.components) == 1
        return result.components[0]

    return _make


STANDUP_MASTER = [
    "UID:standup-1",
    "DTSTAMP:20250301T000000Z",
    "DTSTART;TZID=Europe/Berlin:20250303T090000",
    "DTEND;TZID=Europe/Berlin:20250303T091500",
    "RRULE:FREQ=WEEKLY;COUNT=4",
    "SUMMARY:Standup",
]


@pytest.fixture
def standup_master() -> list[str]:
    """Weekly 09:00 Europe/Berlin standup, four occurrences from 2025-03-03."""
    return list(STANDUP_MASTER)
