"""Lexical reading of iCalendar feeds into raw components - meetwatch.

Splitting the feed into typed content lines is delegated to the icalendar
library's content-line parser; values are kept as written so that the
resolution stages decide how to interpret dates, timezones and rules.
"""

import io
import logging
from dataclasses import dataclass, field
from datetime import tzinfo
from typing import Optional

from dateutil.tz import tzical
from icalendar.parser import Contentline, Contentlines

from .models import CalendarComponentRaw, RawProperty

logger = logging.getLogger(__name__)

# Properties dateutil's tzical understands; anything else (X-LIC-LOCATION...)
# makes it reject the whole VTIMEZONE.
_TZICAL_PROPERTIES = frozenset(
    {
        "BEGIN",
        "END",
        "TZID",
        "TZURL",
        "LAST-MODIFIED",
        "DTSTART",
        "RRULE",
        "RDATE",
        "TZOFFSETFROM",
        "TZOFFSETTO",
        "TZNAME",
        "COMMENT",
    }
)


@dataclass
class ICSReadResult:
    """Components and calendar-level data read from one feed."""

    components: list[CalendarComponentRaw] = field(default_factory=list)
    timezones: dict[str, tzinfo] = field(default_factory=dict)
    calendar_name: Optional[str] = None
    skipped_lines: int = 0


def _param_text(value: object) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def _split_line(line: Contentline) -> Optional[tuple[str, RawProperty]]:
    try:
        name, params, value = line.parts()
    except ValueError as e:
        logger.debug("Skipping unparseable content line %r: %s", str(line)[:80], e)
        return None
    raw = RawProperty(
        value=str(value),
        params={str(k).upper(): _param_text(v) for k, v in params.items()},
    )
    return str(name).upper(), raw


def _build_timezone(tzid: str, lines: list[str]) -> Optional[tzinfo]:
    """Build a tzinfo from one VTIMEZONE block using dateutil's tzical."""
    text = "\r\n".join(lines) + "\r\n"
    try:
        return tzical(io.StringIO(text)).get()
    except (ValueError, IndexError, KeyError, TypeError) as e:
        logger.warning("Could not build timezone from VTIMEZONE %r: %s", tzid, e)
        return None


def read_components(ics_text: str) -> ICSReadResult:
    """Read VEVENT components and VTIMEZONE definitions from feed text.

    Properties of components nested inside a VEVENT (VALARM) are ignored.

    Args:
        ics_text: Complete iCalendar document

    Returns:
        ICSReadResult with raw components in feed order
    """
    result = ICSReadResult()
    lines = Contentlines.from_ical(ics_text)

    stack: list[str] = []
    event_pairs: Optional[list[tuple[str, RawProperty]]] = None
    tz_lines: Optional[list[str]] = None
    tz_id: Optional[str] = None

    for line in lines:
        if not line:
            continue
        split = _split_line(line)
        if split is None:
            result.skipped_lines += 1
            continue
        name, prop = split

        if name == "BEGIN":
            block = prop.value.strip().upper()
            stack.append(block)
            if block == "VEVENT" and len(stack) <= 2:
                event_pairs = []
            elif block == "VTIMEZONE":
                tz_lines = []
                tz_id = None
            if tz_lines is not None:
                tz_lines.append(f"BEGIN:{block}")
            continue

        if name == "END":
            block = prop.value.strip().upper()
            if tz_lines is not None:
                tz_lines.append(f"END:{block}")
            if block == "VEVENT" and event_pairs is not None and stack and stack[-1] == "VEVENT":
                result.components.append(CalendarComponentRaw.from_pairs(event_pairs))
                event_pairs = None
            elif block == "VTIMEZONE" and tz_lines is not None:
                if tz_id:
                    zone = _build_timezone(tz_id, tz_lines)
                    if zone is not None:
                        result.timezones[tz_id] = zone
                tz_lines = None
            if stack:
                stack.pop()
            continue

        if tz_lines is not None:
            if name == "TZID":
                tz_id = prop.value.strip()
            if name in _TZICAL_PROPERTIES:
                tz_lines.append(str(line))
        elif event_pairs is not None and stack and stack[-1] == "VEVENT":
            event_pairs.append((name, prop))
        elif name == "X-WR-CALNAME" and stack == ["VCALENDAR"]:
            result.calendar_name = prop.value.strip()

    logger.debug(
        "Read %d components and %d timezone definitions (%d lines skipped)",
        len(result.components),
        len(result.timezones),
        result.skipped_lines,
    )
    return result
