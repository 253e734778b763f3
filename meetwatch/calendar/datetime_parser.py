"""DateTime parsing for iCalendar property values - meetwatch.

Turns raw DATE / DATE-TIME payloads plus their TZID parameter into
timezone-aware datetimes, recording a diagnostic whenever a TZID had to be
replaced by the configured fallback.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Optional

from ..core.timezone_utils import UTC, TimezoneResolver
from .diagnostics import DiagnosticsCollector
from .models import DiagnosticKind, RawProperty

logger = logging.getLogger(__name__)

_DATETIME_FORMATS = ("%Y%m%dT%H%M%S", "%Y%m%dT%H%M")
_DATE_FORMAT = "%Y%m%d"


@dataclass(frozen=True)
class ParsedInstant:
    """A decoded DATE or DATE-TIME value."""

    value: datetime
    is_date: bool
    tz_explicit: bool

    @property
    def day(self) -> date:
        return self.value.date()


class DateTimeParser:
    """Parses DTSTART/DTEND/EXDATE/RDATE/RECURRENCE-ID values.

    Date-time values are returned in the timezone they were written in (the
    resolved TZID, UTC for a trailing 'Z', or the fallback for floating
    times). DATE values become midnight in the fallback timezone.
    """

    def __init__(
        self,
        resolver: TimezoneResolver,
        fallback: tzinfo,
        diagnostics: Optional[DiagnosticsCollector] = None,
    ):
        self.resolver = resolver
        self.fallback = fallback
        self.diagnostics = diagnostics

    def parse(self, prop: RawProperty, uid: Optional[str] = None) -> ParsedInstant:
        """Parse a single-valued property.

        Raises:
            ValueError: If the payload is not a recognizable DATE or DATE-TIME
        """
        values = self.parse_all(prop, uid)
        if not values:
            raise ValueError(f"Empty date-time value: {prop.value!r}")
        return values[0]

    def parse_all(self, prop: RawProperty, uid: Optional[str] = None) -> list[ParsedInstant]:
        """Parse a possibly comma-separated list of values (EXDATE, RDATE)."""
        results = []
        for part in prop.value.split(","):
            text = part.strip()
            if not text:
                continue
            results.append(self._parse_one(text, prop, uid))
        return results

    def _parse_one(self, text: str, prop: RawProperty, uid: Optional[str]) -> ParsedInstant:
        is_date = prop.params.get("VALUE", "").upper() == "DATE" or (
            len(text) == 8 and text.isdigit()
        )
        if is_date:
            day = datetime.strptime(text[:8], _DATE_FORMAT)
            return ParsedInstant(
                value=day.replace(tzinfo=self.fallback), is_date=True, tz_explicit=False
            )

        is_utc = text.upper().endswith("Z")
        naive = self._parse_naive(text.rstrip("Zz"))

        if is_utc:
            # A 'Z' suffix wins over any TZID parameter
            return ParsedInstant(value=naive.replace(tzinfo=UTC), is_date=False, tz_explicit=False)

        resolution = self.resolver.resolve_detailed(prop.tzid, self.fallback)
        if resolution.used_fallback and self.diagnostics is not None:
            self.diagnostics.add(
                DiagnosticKind.TIMEZONE_FALLBACK,
                f"Unrecognized TZID {prop.tzid!r}, using {self.fallback}",
                uid=uid,
            )

        tz = resolution.tz
        tz_explicit = (
            bool(prop.tzid) and not resolution.used_fallback and not _is_utc_zone(tz, naive)
        )
        return ParsedInstant(value=naive.replace(tzinfo=tz), is_date=False, tz_explicit=tz_explicit)

    @staticmethod
    def _parse_naive(text: str) -> datetime:
        for fmt in _DATETIME_FORMATS:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
        raise ValueError(f"Unrecognized date-time value: {text!r}")


def _is_utc_zone(tz: tzinfo, reference: datetime) -> bool:
    if tz is UTC:
        return True
    offset = reference.replace(tzinfo=tz).utcoffset()
    name = reference.replace(tzinfo=tz).tzname() or ""
    return offset is not None and offset.total_seconds() == 0 and name.upper() in ("UTC", "Z")
