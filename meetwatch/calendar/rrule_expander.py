"""RRULE expansion for recurring masters - meetwatch.

Rules are evaluated in the timezone the master's DTSTART was written in, so a
09:00 Europe/Berlin standup stays at 09:00 across daylight-saving changes, and
the resulting instants are converted to the local timezone afterwards.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Any, Optional

from dateutil.rrule import rrule, rruleset, rrulestr

from ..core.timezone_utils import UTC, to_utc
from .diagnostics import DiagnosticsCollector
from .event_parser import EventTemplate
from .exceptions import RecurrenceParseError
from .models import DiagnosticKind, QueryWindow, ResolvedOccurrence

logger = logging.getLogger(__name__)

_UNTIL_RE = re.compile(r"UNTIL=([0-9]{8}(?:T[0-9]{4,6}Z?)?)", re.IGNORECASE)
_FREQ_RE = re.compile(r"FREQ=([A-Z]+)", re.IGNORECASE)
_INTERVAL_RE = re.compile(r"INTERVAL=([0-9]+)", re.IGNORECASE)

# Upper bound of one FREQ unit; months and years use their longest length
_FREQ_PERIODS = {
    "SECONDLY": timedelta(seconds=1),
    "MINUTELY": timedelta(minutes=1),
    "HOURLY": timedelta(hours=1),
    "DAILY": timedelta(days=1),
    "WEEKLY": timedelta(weeks=1),
    "MONTHLY": timedelta(days=31),
    "YEARLY": timedelta(days=366),
}


@dataclass
class RRuleExpanderConfig:
    """Configuration for RRULE expansion."""

    max_occurrences_per_rule: int = 250

    @classmethod
    def from_settings(cls, settings: Any) -> "RRuleExpanderConfig":
        """Extract RRULE configuration from a settings object.

        Args:
            settings: Configuration object, may be None

        Returns:
            RRuleExpanderConfig with values from settings or defaults
        """
        return cls(
            max_occurrences_per_rule=getattr(settings, "max_occurrences_per_rule", 250),
        )


def normalize_until(rule: str, event_tz: Optional[tzinfo]) -> str:
    """Rewrite a naive or date-only UNTIL as a UTC date-time.

    dateutil refuses a floating UNTIL once DTSTART is timezone-aware. A naive
    UNTIL is read in the event timezone; a date-only UNTIL covers the whole
    day in the event timezone.

    Raises:
        RecurrenceParseError: If the UNTIL value is not a valid date
    """
    match = _UNTIL_RE.search(rule)
    if match is None:
        return rule

    value = match.group(1).upper()
    if value.endswith("Z"):
        return rule

    tz = event_tz or UTC
    try:
        if len(value) == 8:
            until = datetime.strptime(value, "%Y%m%d").replace(hour=23, minute=59, second=59)
        elif len(value) == 13:
            until = datetime.strptime(value, "%Y%m%dT%H%M")
        else:
            until = datetime.strptime(value, "%Y%m%dT%H%M%S")
    except ValueError as e:
        raise RecurrenceParseError(f"Invalid UNTIL value {value!r}") from e

    until_utc = until.replace(tzinfo=tz).astimezone(UTC)
    return rule[: match.start(1)] + until_utc.strftime("%Y%m%dT%H%M%SZ") + rule[match.end(1) :]


def recurrence_period(rule: str) -> timedelta:
    """Length of one recurrence step (FREQ unit times INTERVAL)."""
    freq = _FREQ_RE.search(rule)
    unit = _FREQ_PERIODS.get(freq.group(1).upper(), timedelta(days=1)) if freq else timedelta(days=1)
    interval = _INTERVAL_RE.search(rule)
    steps = max(int(interval.group(1)), 1) if interval else 1
    return unit * steps


class RecurrenceExpander:
    """Expands recurring masters into concrete occurrences inside a window."""

    def __init__(
        self,
        local_tz: tzinfo,
        config: Optional[RRuleExpanderConfig] = None,
        diagnostics: Optional[DiagnosticsCollector] = None,
    ):
        self.local_tz = local_tz
        self.config = config or RRuleExpanderConfig()
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticsCollector()

    def expand(self, master: EventTemplate, window: QueryWindow) -> list[ResolvedOccurrence]:
        """Expand a master into occurrences in the local timezone.

        Each occurrence carries the master's duration, text fields, UID and
        sequence. An unparseable rule yields the single DTSTART occurrence.
        """
        instants = self._expand_in_event_tz(master, window)
        occurrences = [
            master.to_occurrence(self.local_tz, start=instant, is_expanded_instance=True)
            for instant in instants
        ]
        logger.debug("Expanded %s into %d occurrences", master.uid, len(occurrences))
        return occurrences

    def expand_instants(self, master: EventTemplate, window: QueryWindow) -> list[datetime]:
        """Occurrence start instants of a master, converted to the local timezone.

        Instants run from ``window.start - max(period, duration)`` to
        ``window.end``. Widening by the duration as well as the period keeps
        events longer than their repeat interval, which started before the
        window and are still running in it.
        """
        return [i.astimezone(self.local_tz) for i in self._expand_in_event_tz(master, window)]

    def _expand_in_event_tz(self, master: EventTemplate, window: QueryWindow) -> list[datetime]:
        try:
            rule_set, period = self._build_ruleset(master)
            return self._collect(master, rule_set, period, window)
        except RecurrenceParseError as e:
            self.diagnostics.add(
                DiagnosticKind.RECURRENCE_PARSE_DEGRADED,
                f"Could not expand recurrence ({e}); keeping only DTSTART",
                uid=master.uid,
            )
            return [master.start]

    def _build_ruleset(self, master: EventTemplate) -> tuple[rruleset, timedelta]:
        """Build an rruleset from the master's RRULE, RDATE and EXDATE values.

        Raises:
            RecurrenceParseError: If no rule can be parsed
        """
        if not master.rrules:
            raise RecurrenceParseError("empty RRULE")

        rule_set = rruleset()
        period = timedelta(0)
        for raw_rule in master.rrules:
            rule_text = raw_rule.strip()
            if rule_text.upper().startswith("RRULE:"):
                rule_text = rule_text[len("RRULE:") :]
            rule_text = normalize_until(rule_text, master.tz)
            try:
                parsed = rrulestr(rule_text, dtstart=master.start)
            except (ValueError, TypeError, KeyError, IndexError) as e:
                raise RecurrenceParseError(f"invalid RRULE {raw_rule!r}: {e}") from e

            if isinstance(parsed, rruleset):
                rule_set = parsed
            elif isinstance(parsed, rrule):
                rule_set.rrule(parsed)
            period = max(period, recurrence_period(rule_text))

        for rdate in master.rdates:
            rule_set.rdate(rdate)
        for exdate in master.exdates:
            rule_set.exdate(exdate)

        return rule_set, period

    def _collect(
        self,
        master: EventTemplate,
        rule_set: rruleset,
        period: timedelta,
        window: QueryWindow,
    ) -> list[datetime]:
        lower = window.start - max(period, master.duration)
        upper = window.end
        cap = self.config.max_occurrences_per_rule
        excluded_days = set(master.exdate_days)

        instants: list[datetime] = []
        try:
            for instant in rule_set.xafter(lower, inc=True):
                if to_utc(instant) > to_utc(upper):
                    break
                if excluded_days and instant.astimezone(self.local_tz).date() in excluded_days:
                    continue
                if len(instants) >= cap:
                    self.diagnostics.add(
                        DiagnosticKind.EXPANSION_TRUNCATED,
                        f"Expansion stopped after {cap} occurrences",
                        uid=master.uid,
                    )
                    break
                instants.append(instant)
        except (ValueError, TypeError, OverflowError) as e:
            raise RecurrenceParseError(f"rule evaluation failed: {e}") from e
        return instants
