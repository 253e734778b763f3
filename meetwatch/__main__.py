"""Command-line entry for meetwatch.

One-shot mode prints the resolved agenda; watch mode keeps polling the feed
and announces meetings shortly before they start.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Optional

from . import _init_logging
from .calendar.exceptions import ICSFetchError, InvalidWindowError
from .calendar.models import ResolutionResult
from .core.config_manager import ConfigManager, MeetwatchSettings
from .core.http_client import ICSFetcher
from .core.logging_config import configure_logging
from .core.timezone_utils import now_utc
from .domain.notifications import UpcomingEventNotifier
from .domain.pipeline import ResolutionEngine
from .domain.poller import CalendarPoller, FeedLoader, file_loader, url_loader
from .domain.snapshot import SnapshotStore
from .domain.status_calculator import status_for

logger = logging.getLogger(__name__)


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the meetwatch CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="meetwatch",
        description="meetwatch - resolve a calendar feed into concrete meetings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  meetwatch --ics-file work.ics                 # Print today's and tomorrow's meetings
  meetwatch --url https://example.com/cal.ics --days 7
  meetwatch --watch                              # Poll MEETWATCH_ICAL_URL and notify
        """,
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--ics-file", type=Path, metavar="PATH", help="Read the feed from a file")
    source.add_argument("--url", metavar="URL", help="Feed URL (default: MEETWATCH_ICAL_URL)")
    parser.add_argument(
        "--days", type=int, metavar="N", help="Days after today to include (default: 1)"
    )
    parser.add_argument(
        "--timezone", metavar="TZ", help="Output timezone (default: Europe/Berlin)"
    )
    parser.add_argument(
        "--today",
        type=date.fromisoformat,
        metavar="YYYY-MM-DD",
        help="Resolve as if today were this date",
    )
    parser.add_argument("--watch", action="store_true", help="Keep polling and notify")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def format_agenda(result: ResolutionResult, now: datetime) -> str:
    """Render resolved occurrences as a plain-text agenda."""
    lines: list[str] = []
    for day in sorted(result.days):
        lines.append(day.strftime("%A %Y-%m-%d"))
        for occurrence in result.days[day]:
            status = status_for(occurrence, now)
            when = (
                "all day"
                if occurrence.is_all_day
                else f"{occurrence.start:%H:%M}-{occurrence.end:%H:%M}"
            )
            line = f"  {status.marker} {when}  {occurrence.summary or '(no title)'}"
            if occurrence.attendee_count:
                line += f" ({occurrence.attendee_count} participants)"
            if occurrence.meeting_url:
                line += f"  {occurrence.meeting_url}"
            lines.append(line)
    if not lines:
        lines.append("No meetings in the selected window.")

    if result.diagnostics:
        lines.append("")
        lines.append("Diagnostics:")
        for diagnostic in result.diagnostics:
            uid = f" [{diagnostic.uid}]" if diagnostic.uid else ""
            lines.append(f"  {diagnostic.kind.value}{uid}: {diagnostic.message}")
    return "\n".join(lines)


def _load_settings(args: argparse.Namespace) -> MeetwatchSettings:
    return ConfigManager().load_settings(
        ics_url=args.url,
        local_timezone=args.timezone,
        window_days=args.days,
    )


async def _fetch_text(settings: MeetwatchSettings, url: str) -> str:
    async with ICSFetcher(settings) as fetcher:
        return await fetcher.fetch_ics(url)


def _run_once(args: argparse.Namespace, settings: MeetwatchSettings) -> int:
    engine = ResolutionEngine(settings)
    if args.ics_file is not None:
        text = args.ics_file.read_text(encoding="utf-8")
    else:
        text = asyncio.run(_fetch_text(settings, settings.ics_url or ""))

    now = now_utc().astimezone(engine.local_tz)
    today = args.today or now.date()
    result = engine.resolve_ics(text, engine.window_for(today))
    print(format_agenda(result, now))
    return 0


async def _watch(settings: MeetwatchSettings, loader: FeedLoader, source: str) -> None:
    engine = ResolutionEngine(settings)
    notifier = UpcomingEventNotifier(
        warning_seconds=settings.event_warning_seconds,
        enabled=settings.show_notifications,
    )
    poller = CalendarPoller(
        settings, engine, SnapshotStore(), loader, source=source, notifier=notifier
    )
    await poller.run(asyncio.Event())


def _run_watch(args: argparse.Namespace, settings: MeetwatchSettings) -> int:
    if args.ics_file is not None:
        asyncio.run(_watch(settings, file_loader(args.ics_file), str(args.ics_file)))
        return 0

    async def watch_url() -> None:
        async with ICSFetcher(settings) as fetcher:
            url = settings.ics_url or ""
            await _watch(settings, url_loader(fetcher, url), url)

    asyncio.run(watch_url())
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Run the meetwatch CLI.

    Returns:
        Process exit code
    """
    parser = _create_parser()
    args = parser.parse_args(argv)

    _init_logging("DEBUG" if args.debug else "INFO")
    configure_logging(debug_mode=args.debug)

    settings = _load_settings(args)
    if args.ics_file is None and not settings.ics_url:
        parser.error("no calendar source: pass --ics-file or --url, or set MEETWATCH_ICAL_URL")

    try:
        if args.watch:
            return _run_watch(args, settings)
        return _run_once(args, settings)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    except (ICSFetchError, OSError, UnicodeDecodeError) as e:
        logger.error("Could not load calendar: %s", e)
        return 1
    except InvalidWindowError as e:
        logger.error("%s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
