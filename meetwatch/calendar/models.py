"""Data models for calendar event resolution - meetwatch."""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from enum import Enum
from typing import Optional

from icalendar.prop import vText
from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

from ..core.timezone_utils import round_to_minute, to_utc
from .exceptions import InvalidWindowError, MalformedEventError


class RawProperty(BaseModel):
    """One property value of a calendar component, as written in the feed."""

    value: str = Field(default="", description="Raw (still escaped) property payload")
    params: dict[str, str] = Field(default_factory=dict, description="Property parameters")

    model_config = ConfigDict(frozen=True)

    @property
    def tzid(self) -> Optional[str]:
        """TZID parameter, if present."""
        return self.params.get("TZID")

    @property
    def is_date_value(self) -> bool:
        """True for VALUE=DATE properties or bare YYYYMMDD payloads."""
        if self.params.get("VALUE", "").upper() == "DATE":
            return True
        return len(self.value.strip()) == 8 and self.value.strip().isdigit()


class CalendarComponentRaw(BaseModel):
    """Parsed-but-unresolved VEVENT block.

    Property names are stored upper-case. A name maps to every occurrence of
    that property in the block (EXDATE and RDATE commonly repeat).
    """

    properties: dict[str, tuple[RawProperty, ...]] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    def has(self, name: str) -> bool:
        return bool(self.properties.get(name.upper()))

    def get_all(self, name: str) -> tuple[RawProperty, ...]:
        return self.properties.get(name.upper(), ())

    def get_optional(self, name: str) -> Optional[RawProperty]:
        values = self.get_all(name)
        return values[0] if values else None

    def get_required(self, name: str) -> RawProperty:
        """Return the first value of a mandatory property.

        Raises:
            MalformedEventError: If the property is absent or empty
        """
        prop = self.get_optional(name)
        if prop is None or not prop.value.strip():
            raise MalformedEventError(
                f"Component missing required property {name.upper()}",
                uid=self.uid,
            )
        return prop

    def get_text(self, name: str, default: str = "") -> str:
        """Return an unescaped TEXT property value."""
        prop = self.get_optional(name)
        if prop is None:
            return default
        return str(vText.from_ical(prop.value))

    @property
    def uid(self) -> Optional[str]:
        prop = self.get_optional("UID")
        return prop.value.strip() if prop and prop.value.strip() else None

    @classmethod
    def from_pairs(cls, pairs: list[tuple[str, RawProperty]]) -> "CalendarComponentRaw":
        """Build a component from (name, property) pairs in feed order."""
        grouped: dict[str, list[RawProperty]] = {}
        for name, prop in pairs:
            grouped.setdefault(name.upper(), []).append(prop)
        return cls(properties={name: tuple(values) for name, values in grouped.items()})


class ComponentKind(str, Enum):
    """Classification of a calendar component."""

    PLAIN = "plain"
    RECURRING_MASTER = "recurring_master"
    RECURRENCE_OVERRIDE = "recurrence_override"


class OccurrenceStatus(str, Enum):
    """Status of a resolved occurrence."""

    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class RecurrenceIdentity(BaseModel):
    """Identity of one logical occurrence: UID plus optional RECURRENCE-ID."""

    uid: str
    recurrence_id: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)

    def key(self) -> tuple[str, Optional[datetime]]:
        """Lookup key with the instant rounded to the minute in UTC."""
        if self.recurrence_id is None:
            return (self.uid, None)
        return (self.uid, round_to_minute(self.recurrence_id))

    def matches(self, other: "RecurrenceIdentity") -> bool:
        if self.uid != other.uid:
            return False
        if self.recurrence_id is None or other.recurrence_id is None:
            return True
        return self.key() == other.key()


class ResolvedOccurrence(BaseModel):
    """One concrete, dated instance of a meeting in the local timezone."""

    uid: str = Field(..., description="UID shared with the recurring series")
    sequence: int = Field(default=0, description="SEQUENCE revision number")
    start: datetime = Field(..., description="Start instant, local timezone")
    end: datetime = Field(..., description="End instant, local timezone")
    summary: str = Field(default="", description="Event title")
    description: str = Field(default="", description="Event description")
    location: str = Field(default="", description="Event location")
    status: OccurrenceStatus = Field(default=OccurrenceStatus.CONFIRMED)
    meeting_url: Optional[str] = Field(default=None, description="Extracted conferencing link")

    is_all_day: bool = Field(default=False, description="All-day event flag")
    tz_explicit: bool = Field(
        default=False, description="Start carried an explicit non-UTC timezone"
    )
    recurrence_id: Optional[datetime] = Field(
        default=None, description="RECURRENCE-ID for override instances"
    )
    is_expanded_instance: bool = Field(
        default=False, description="True if generated from RRULE expansion"
    )
    attendee_count: int = Field(default=0, description="Number of ATTENDEE entries")

    @model_validator(mode="after")
    def _end_not_before_start(self) -> "ResolvedOccurrence":
        if to_utc(self.end) < to_utc(self.start):
            raise ValueError(f"Occurrence {self.uid} ends before it starts")
        return self

    @property
    def identity(self) -> RecurrenceIdentity:
        return RecurrenceIdentity(uid=self.uid, recurrence_id=self.start)

    @property
    def duration(self) -> timedelta:
        return to_utc(self.end) - to_utc(self.start)

    @property
    def is_cancelled(self) -> bool:
        return self.status == OccurrenceStatus.CANCELLED

    @field_serializer("start", "end")
    def serialize_datetime(self, dt: datetime) -> str:
        return dt.isoformat()


class QueryWindow(BaseModel):
    """Closed time range [start, end] the engine resolves occurrences for."""

    start: datetime
    end: datetime

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_order(self) -> "QueryWindow":
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise InvalidWindowError("Query window bounds must be timezone-aware")
        if to_utc(self.start) > to_utc(self.end):
            raise InvalidWindowError(
                f"Query window start {self.start.isoformat()} is after end {self.end.isoformat()}"
            )
        return self

    @classmethod
    def for_days(cls, today: date, days: int, tz: tzinfo) -> "QueryWindow":
        """Window from today 00:00 to (today + days) 23:59:59 in ``tz``."""
        if days < 0:
            raise InvalidWindowError(f"Window size must not be negative, got {days}")
        last_day = today + timedelta(days=days)
        return cls(
            start=datetime(today.year, today.month, today.day, tzinfo=tz),
            end=datetime(last_day.year, last_day.month, last_day.day, 23, 59, 59, tzinfo=tz),
        )

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return to_utc(start) <= to_utc(self.end) and to_utc(end) >= to_utc(self.start)


class DiagnosticKind(str, Enum):
    """Non-fatal conditions reported alongside a resolution result."""

    MALFORMED_EVENT = "malformed_event"
    RECURRENCE_PARSE_DEGRADED = "recurrence_parse_degraded"
    TIMEZONE_FALLBACK = "timezone_fallback"
    OVERRIDE_WITHOUT_MATCH = "override_without_match"
    EXPANSION_TRUNCATED = "expansion_truncated"


class Diagnostic(BaseModel):
    """A non-fatal condition encountered while resolving a feed."""

    kind: DiagnosticKind
    message: str
    uid: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_degradation(self) -> bool:
        """Informational conditions do not indicate a degraded result."""
        return self.kind != DiagnosticKind.OVERRIDE_WITHOUT_MATCH


@dataclass(frozen=True)
class ResolutionResult:
    """Final per-day occurrence lists plus diagnostics for one resolution run."""

    days: Mapping[date, tuple[ResolvedOccurrence, ...]] = field(default_factory=dict)
    diagnostics: tuple[Diagnostic, ...] = ()

    def occurrences(self) -> Iterator[ResolvedOccurrence]:
        """All occurrences in output order."""
        for day in sorted(self.days):
            yield from self.days[day]

    @property
    def is_degraded(self) -> bool:
        return any(d.is_degradation for d in self.diagnostics)
