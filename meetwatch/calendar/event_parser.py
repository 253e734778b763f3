"""Event component decoding - meetwatch.

Turns a classified ``CalendarComponentRaw`` into an ``EventTemplate``: typed
start/end instants in the event's own timezone, unescaped text fields and the
raw recurrence data the expander needs.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from typing import Optional

from icalendar.prop import vDuration

from ..core.timezone_utils import to_utc
from .classifier import classify
from .datetime_parser import DateTimeParser, ParsedInstant
from .exceptions import MalformedEventError
from .models import (
    CalendarComponentRaw,
    ComponentKind,
    OccurrenceStatus,
    RawProperty,
    ResolvedOccurrence,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventTemplate:
    """Decoded VEVENT, still in the timezone it was written in."""

    uid: str
    kind: ComponentKind
    start: datetime
    end: datetime
    sequence: int = 0
    summary: str = ""
    description: str = ""
    location: str = ""
    status: OccurrenceStatus = OccurrenceStatus.CONFIRMED
    is_all_day: bool = False
    tz_explicit: bool = False
    rrules: tuple[str, ...] = ()
    exdates: tuple[datetime, ...] = ()
    exdate_days: tuple[date, ...] = ()
    rdates: tuple[datetime, ...] = ()
    recurrence_id: Optional[datetime] = None
    attendee_count: int = 0

    @property
    def duration(self) -> timedelta:
        return to_utc(self.end) - to_utc(self.start)

    @property
    def tz(self) -> Optional[tzinfo]:
        return self.start.tzinfo

    @property
    def is_cancelled(self) -> bool:
        return self.status == OccurrenceStatus.CANCELLED

    def to_occurrence(
        self,
        local_tz: tzinfo,
        start: Optional[datetime] = None,
        is_expanded_instance: bool = False,
    ) -> ResolvedOccurrence:
        """Build a local-time occurrence, optionally at another start instant.

        The template's exact duration is kept when ``start`` is given; all-day
        events keep their nominal length in days instead.
        """
        occurrence_start = start if start is not None else self.start
        if self.is_all_day:
            occurrence_end = occurrence_start + (self.end - self.start)
        else:
            occurrence_end = to_utc(occurrence_start) + self.duration
        return ResolvedOccurrence(
            uid=self.uid,
            sequence=self.sequence,
            start=occurrence_start.astimezone(local_tz),
            end=occurrence_end.astimezone(local_tz),
            summary=self.summary,
            description=self.description,
            location=self.location,
            status=self.status,
            is_all_day=self.is_all_day,
            tz_explicit=self.tz_explicit,
            recurrence_id=self.recurrence_id,
            is_expanded_instance=is_expanded_instance,
            attendee_count=self.attendee_count,
        )


class EventComponentParser:
    """Decodes raw VEVENT components into ``EventTemplate`` objects."""

    def __init__(self, datetime_parser: DateTimeParser):
        """Initialize event component parser.

        Args:
            datetime_parser: Parser for DATE / DATE-TIME properties
        """
        self.datetime_parser = datetime_parser

    def parse(self, component: CalendarComponentRaw) -> EventTemplate:
        """Decode one component.

        Raises:
            MalformedEventError: If UID or DTSTART is missing or DTSTART
                cannot be decoded
        """
        kind = classify(component)
        uid = component.get_required("UID").value.strip()

        start = self._parse_instant(component.get_required("DTSTART"), uid, "DTSTART")
        end = self._parse_end(component, start, uid)

        recurrence_id = None
        if kind == ComponentKind.RECURRENCE_OVERRIDE:
            recurrence_id = self._parse_instant(
                component.get_required("RECURRENCE-ID"), uid, "RECURRENCE-ID"
            ).value

        exdates, exdate_days = self._collect_exdates(component, uid)

        return EventTemplate(
            uid=uid,
            kind=kind,
            start=start.value,
            end=end,
            sequence=self._parse_sequence(component.get_optional("SEQUENCE"), uid),
            summary=component.get_text("SUMMARY"),
            description=component.get_text("DESCRIPTION"),
            location=component.get_text("LOCATION"),
            status=self._parse_status(component.get_optional("STATUS")),
            is_all_day=start.is_date,
            tz_explicit=start.tz_explicit,
            rrules=tuple(p.value.strip() for p in component.get_all("RRULE") if p.value.strip()),
            exdates=exdates,
            exdate_days=exdate_days,
            rdates=self._collect_rdates(component, uid),
            recurrence_id=recurrence_id,
            attendee_count=len(component.get_all("ATTENDEE")),
        )

    def _parse_instant(self, prop: RawProperty, uid: str, name: str) -> ParsedInstant:
        try:
            return self.datetime_parser.parse(prop, uid)
        except ValueError as e:
            raise MalformedEventError(f"Invalid {name} value {prop.value!r}: {e}", uid=uid) from e

    def _parse_end(self, component: CalendarComponentRaw, start: ParsedInstant, uid: str) -> datetime:
        """Resolve the end instant from DTEND, DURATION or the RFC 5545 default.

        An end before the start is clamped to the start.
        """
        end: Optional[datetime] = None

        dtend = component.get_optional("DTEND")
        if dtend is not None and dtend.value.strip():
            try:
                end = self.datetime_parser.parse(dtend, uid).value
            except ValueError as e:
                logger.warning("Ignoring invalid DTEND %r on %s: %s", dtend.value, uid, e)

        if end is None:
            duration = component.get_optional("DURATION")
            if duration is not None and duration.value.strip():
                try:
                    end = start.value + vDuration.from_ical(duration.value.strip())
                except ValueError as e:
                    logger.warning(
                        "Ignoring invalid DURATION %r on %s: %s", duration.value, uid, e
                    )

        if end is None:
            end = start.value + (timedelta(days=1) if start.is_date else timedelta(0))

        if to_utc(end) < to_utc(start.value):
            logger.debug("Clamping end of %s to its start (%s < %s)", uid, end, start.value)
            end = start.value
        return end

    def _collect_exdates(
        self, component: CalendarComponentRaw, uid: str
    ) -> tuple[tuple[datetime, ...], tuple[date, ...]]:
        instants: list[datetime] = []
        days: list[date] = []
        for prop in component.get_all("EXDATE"):
            try:
                parsed = self.datetime_parser.parse_all(prop, uid)
            except ValueError as e:
                logger.warning("Ignoring invalid EXDATE %r on %s: %s", prop.value, uid, e)
                continue
            for item in parsed:
                if item.is_date:
                    days.append(item.day)
                else:
                    instants.append(item.value)
        return tuple(instants), tuple(days)

    def _collect_rdates(self, component: CalendarComponentRaw, uid: str) -> tuple[datetime, ...]:
        rdates: list[datetime] = []
        for prop in component.get_all("RDATE"):
            if prop.params.get("VALUE", "").upper() == "PERIOD" or "/" in prop.value:
                # PERIOD values: only the start instant is used
                prop = RawProperty(
                    value=",".join(part.split("/")[0] for part in prop.value.split(",")),
                    params={k: v for k, v in prop.params.items() if k != "VALUE"},
                )
            try:
                rdates.extend(item.value for item in self.datetime_parser.parse_all(prop, uid))
            except ValueError as e:
                logger.warning("Ignoring invalid RDATE %r on %s: %s", prop.value, uid, e)
        return tuple(rdates)

    @staticmethod
    def _parse_sequence(prop: Optional[RawProperty], uid: str) -> int:
        if prop is None:
            return 0
        try:
            return int(prop.value.strip())
        except ValueError:
            logger.debug("Invalid SEQUENCE %r on %s, using 0", prop.value, uid)
            return 0

    @staticmethod
    def _parse_status(prop: Optional[RawProperty]) -> OccurrenceStatus:
        if prop is not None and prop.value.strip().upper() == "CANCELLED":
            return OccurrenceStatus.CANCELLED
        return OccurrenceStatus.CONFIRMED
