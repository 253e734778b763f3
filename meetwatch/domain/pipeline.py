"""Calendar event resolution pipeline for meetwatch.

Raw components flow through the stages leaf-first:

    classify/decode -> expand masters -> apply overrides -> drop cancelled
    -> dedupe -> extract meeting links -> window/sort/group

Every stage reports non-fatal problems into one DiagnosticsCollector; only an
invalid query window escapes as an exception.

Usage:
    engine = ResolutionEngine(settings)
    window = engine.window_for(date.today())
    result = engine.resolve_ics(ics_text, window)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date, datetime, tzinfo
from typing import Any, Optional

from meetwatch.calendar.assembler import assemble
from meetwatch.calendar.datetime_parser import DateTimeParser
from meetwatch.calendar.deduplicator import dedupe
from meetwatch.calendar.diagnostics import DiagnosticsCollector
from meetwatch.calendar.event_parser import EventComponentParser, EventTemplate
from meetwatch.calendar.exceptions import MalformedEventError
from meetwatch.calendar.ics_reader import read_components
from meetwatch.calendar.meeting_url import populate
from meetwatch.calendar.models import (
    CalendarComponentRaw,
    ComponentKind,
    DiagnosticKind,
    QueryWindow,
    ResolutionResult,
    ResolvedOccurrence,
)
from meetwatch.calendar.override_resolver import OverrideResolver
from meetwatch.calendar.rrule_expander import RecurrenceExpander, RRuleExpanderConfig
from meetwatch.core.timezone_utils import TimezoneResolver, get_local_timezone

logger = logging.getLogger(__name__)


class ResolutionEngine:
    """Turns raw calendar components into per-day occurrence lists.

    The engine holds no state between calls; each ``resolve`` run builds its
    own diagnostics collector, so one engine may serve concurrent callers.
    """

    def __init__(self, settings: Any = None, local_tz: Optional[tzinfo] = None):
        """Initialize the engine.

        Args:
            settings: Object with ``local_timezone``, ``window_days`` and
                ``max_occurrences_per_rule`` attributes (all optional)
            local_tz: Output timezone, overrides ``settings.local_timezone``
        """
        self.settings = settings
        self.local_tz = local_tz or get_local_timezone(getattr(settings, "local_timezone", None))
        self.window_days = getattr(settings, "window_days", 1)
        self.expander_config = RRuleExpanderConfig.from_settings(settings)

    def window_for(self, today: date) -> QueryWindow:
        """Default query window: today through ``window_days`` days ahead."""
        return QueryWindow.for_days(today, self.window_days, self.local_tz)

    def resolve_ics(self, ics_text: str, window: QueryWindow) -> ResolutionResult:
        """Read an iCalendar document and resolve it for ``window``."""
        read = read_components(ics_text)
        return self.resolve(read.components, window, timezones=read.timezones)

    def resolve(
        self,
        components: list[CalendarComponentRaw],
        window: QueryWindow,
        timezones: Optional[Mapping[str, tzinfo]] = None,
    ) -> ResolutionResult:
        """Resolve raw components into ordered occurrences inside ``window``.

        Args:
            components: Raw VEVENT components in feed order
            window: Query window (validated on construction)
            timezones: VTIMEZONE definitions supplied by the feed, by TZID

        Returns:
            ResolutionResult with per-day occurrences and diagnostics
        """
        started = datetime.now()
        diagnostics = DiagnosticsCollector()
        resolver = TimezoneResolver(custom_zones=timezones)
        parser = EventComponentParser(DateTimeParser(resolver, self.local_tz, diagnostics))
        expander = RecurrenceExpander(self.local_tz, self.expander_config, diagnostics)

        occurrences: list[ResolvedOccurrence] = []
        overrides: list[EventTemplate] = []
        for component in components:
            template = self._decode(parser, component, diagnostics)
            if template is None:
                continue
            if template.kind == ComponentKind.RECURRENCE_OVERRIDE:
                overrides.append(template)
            elif template.kind == ComponentKind.RECURRING_MASTER:
                occurrences.extend(expander.expand(template, window))
            else:
                occurrences.append(template.to_occurrence(self.local_tz))

        occurrences = OverrideResolver(self.local_tz, diagnostics).apply(occurrences, overrides)
        occurrences = [o for o in occurrences if not o.is_cancelled]
        occurrences = dedupe(occurrences)
        occurrences = [populate(o) for o in occurrences]
        days = assemble(occurrences, window, self.local_tz)

        result = ResolutionResult(days=days, diagnostics=diagnostics.snapshot())
        elapsed_ms = (datetime.now() - started).total_seconds() * 1000
        logger.info(
            "Resolved %d components into %d occurrences over %d days (%d diagnostics, %.1fms)",
            len(components),
            sum(len(items) for items in days.values()),
            len(days),
            len(result.diagnostics),
            elapsed_ms,
        )
        return result

    @staticmethod
    def _decode(
        parser: EventComponentParser,
        component: CalendarComponentRaw,
        diagnostics: DiagnosticsCollector,
    ) -> Optional[EventTemplate]:
        try:
            return parser.parse(component)
        except MalformedEventError as e:
            diagnostics.add(DiagnosticKind.MALFORMED_EVENT, str(e), uid=e.uid)
            return None
