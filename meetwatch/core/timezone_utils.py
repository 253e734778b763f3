"""Timezone resolution and clock utilities for meetwatch.

Calendar feeds identify timezones in many ways: IANA names, Windows names
written by Outlook/Exchange ("W. Europe Standard Time"), Outlook display names
("(UTC+01:00) Amsterdam, Berlin, Bern, Rome, Stockholm, Vienna"), vendor
prefixed ids ("/mozilla.org/20050126_1/Europe/Berlin") or VTIMEZONE blocks
defined inside the feed. TimezoneResolver maps all of them onto a usable
tzinfo and degrades to a configured fallback instead of failing.
"""

from __future__ import annotations

import datetime
import logging
import os
from collections.abc import Mapping
from types import MappingProxyType
from typing import NamedTuple, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

UTC = datetime.timezone.utc

# Default local timezone when nothing else is configured
DEFAULT_LOCAL_TIMEZONE = "Europe/Berlin"

# Windows timezone names to IANA identifiers (subset of CLDR windowsZones.xml,
# territory "001" entries)
WINDOWS_TZ_MAP: Mapping[str, str] = MappingProxyType(
    {
        "Dateline Standard Time": "Etc/GMT+12",
        "UTC-11": "Etc/GMT+11",
        "Hawaiian Standard Time": "Pacific/Honolulu",
        "Alaskan Standard Time": "America/Anchorage",
        "Pacific Standard Time": "America/Los_Angeles",
        "Pacific Standard Time (Mexico)": "America/Tijuana",
        "US Mountain Standard Time": "America/Phoenix",
        "Mountain Standard Time": "America/Denver",
        "Arizona Standard Time": "America/Phoenix",
        "Central America Standard Time": "America/Guatemala",
        "Central Standard Time": "America/Chicago",
        "Central Standard Time (Mexico)": "America/Mexico_City",
        "Canada Central Standard Time": "America/Regina",
        "SA Pacific Standard Time": "America/Bogota",
        "Eastern Standard Time": "America/New_York",
        "US Eastern Standard Time": "America/Indianapolis",
        "Atlantic Standard Time": "America/Halifax",
        "SA Western Standard Time": "America/La_Paz",
        "Pacific SA Standard Time": "America/Santiago",
        "Newfoundland Standard Time": "America/St_Johns",
        "E. South America Standard Time": "America/Sao_Paulo",
        "Argentina Standard Time": "America/Buenos_Aires",
        "Greenland Standard Time": "America/Godthab",
        "UTC": "Etc/UTC",
        "Coordinated Universal Time": "Etc/UTC",
        "GMT Standard Time": "Europe/London",
        "Greenwich Standard Time": "Atlantic/Reykjavik",
        "W. Europe Standard Time": "Europe/Berlin",
        "Central Europe Standard Time": "Europe/Budapest",
        "Romance Standard Time": "Europe/Paris",
        "Central European Standard Time": "Europe/Warsaw",
        "W. Central Africa Standard Time": "Africa/Lagos",
        "GTB Standard Time": "Europe/Bucharest",
        "E. Europe Standard Time": "Europe/Chisinau",
        "FLE Standard Time": "Europe/Kiev",
        "Israel Standard Time": "Asia/Jerusalem",
        "Egypt Standard Time": "Africa/Cairo",
        "South Africa Standard Time": "Africa/Johannesburg",
        "Turkey Standard Time": "Europe/Istanbul",
        "Russian Standard Time": "Europe/Moscow",
        "Arab Standard Time": "Asia/Riyadh",
        "Arabian Standard Time": "Asia/Dubai",
        "Iran Standard Time": "Asia/Tehran",
        "Pakistan Standard Time": "Asia/Karachi",
        "India Standard Time": "Asia/Calcutta",
        "Nepal Standard Time": "Asia/Katmandu",
        "Bangladesh Standard Time": "Asia/Dhaka",
        "SE Asia Standard Time": "Asia/Bangkok",
        "China Standard Time": "Asia/Shanghai",
        "Singapore Standard Time": "Asia/Singapore",
        "Taipei Standard Time": "Asia/Taipei",
        "Tokyo Standard Time": "Asia/Tokyo",
        "Korea Standard Time": "Asia/Seoul",
        "AUS Central Standard Time": "Australia/Darwin",
        "AUS Eastern Standard Time": "Australia/Sydney",
        "E. Australia Standard Time": "Australia/Brisbane",
        "Tasmania Standard Time": "Australia/Hobart",
        "W. Australia Standard Time": "Australia/Perth",
        "New Zealand Standard Time": "Pacific/Auckland",
    }
)

# Outlook display names, as they appear in TZID parameters of some Exchange feeds
COMPOSITE_TZ_MAP: Mapping[str, str] = MappingProxyType(
    {
        "(UTC-10:00) Hawaii": "Pacific/Honolulu",
        "(UTC-09:00) Alaska": "America/Anchorage",
        "(UTC-08:00) Pacific Time (US & Canada)": "America/Los_Angeles",
        "(UTC-07:00) Arizona": "America/Phoenix",
        "(UTC-07:00) Mountain Time (US & Canada)": "America/Denver",
        "(UTC-06:00) Central Time (US & Canada)": "America/Chicago",
        "(UTC-05:00) Eastern Time (US & Canada)": "America/New_York",
        "(UTC-04:00) Atlantic Time (Canada)": "America/Halifax",
        "(UTC-04:00) Georgetown, La Paz, Manaus, San Juan": "America/La_Paz",
        "(UTC-03:00) Brasilia": "America/Sao_Paulo",
        "(UTC) Coordinated Universal Time": "Etc/UTC",
        "(UTC+00:00) Dublin, Edinburgh, Lisbon, London": "Europe/London",
        "(UTC) Dublin, Edinburgh, Lisbon, London": "Europe/London",
        "(UTC+00:00) Monrovia, Reykjavik": "Atlantic/Reykjavik",
        "(UTC+01:00) Amsterdam, Berlin, Bern, Rome, Stockholm, Vienna": "Europe/Berlin",
        "(UTC+01:00) Belgrade, Bratislava, Budapest, Ljubljana, Prague": "Europe/Budapest",
        "(UTC+01:00) Brussels, Copenhagen, Madrid, Paris": "Europe/Paris",
        "(UTC+01:00) Sarajevo, Skopje, Warsaw, Zagreb": "Europe/Warsaw",
        "(UTC+02:00) Athens, Bucharest": "Europe/Bucharest",
        "(UTC+02:00) Helsinki, Kyiv, Riga, Sofia, Tallinn, Vilnius": "Europe/Kiev",
        "(UTC+02:00) Jerusalem": "Asia/Jerusalem",
        "(UTC+03:00) Istanbul": "Europe/Istanbul",
        "(UTC+03:00) Moscow, St. Petersburg": "Europe/Moscow",
        "(UTC+04:00) Abu Dhabi, Muscat": "Asia/Dubai",
        "(UTC+05:30) Chennai, Kolkata, Mumbai, New Delhi": "Asia/Calcutta",
        "(UTC+08:00) Beijing, Chongqing, Hong Kong, Urumqi": "Asia/Shanghai",
        "(UTC+08:00) Kuala Lumpur, Singapore": "Asia/Singapore",
        "(UTC+09:00) Osaka, Sapporo, Tokyo": "Asia/Tokyo",
        "(UTC+10:00) Canberra, Melbourne, Sydney": "Australia/Sydney",
        "(UTC+12:00) Auckland, Wellington": "Pacific/Auckland",
    }
)

# Abbreviations occasionally used as TZID values
TZ_ABBREV_MAP: Mapping[str, str] = MappingProxyType(
    {
        "GMT": "Etc/UTC",
        "Z": "Etc/UTC",
        "CET": "Europe/Berlin",
        "CEST": "Europe/Berlin",
        "WET": "Europe/Lisbon",
        "EET": "Europe/Helsinki",
        "PST": "America/Los_Angeles",
        "PDT": "America/Los_Angeles",
        "MST": "America/Denver",
        "MDT": "America/Denver",
        "CST": "America/Chicago",
        "CDT": "America/Chicago",
        "EST": "America/New_York",
        "EDT": "America/New_York",
    }
)


def _normalize_tzid(tzid: str) -> str:
    """Strip quoting and iCalendar escaping from a TZID value."""
    cleaned = tzid.strip().strip('"').replace("\\,", ",").replace("\\", "")
    return " ".join(cleaned.split())


def _load_zone(name: str) -> Optional[datetime.tzinfo]:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return None


def windows_tz_to_iana(windows_tz: str) -> Optional[str]:
    """Convert a Windows timezone name to an IANA identifier.

    Args:
        windows_tz: Windows timezone name (e.g., "W. Europe Standard Time")

    Returns:
        IANA timezone identifier or None if not found
    """
    return WINDOWS_TZ_MAP.get(_normalize_tzid(windows_tz))


def alias_to_iana(tzid: str) -> Optional[str]:
    """Look a non-IANA TZID up in the static alias tables."""
    name = _normalize_tzid(tzid)
    return (
        WINDOWS_TZ_MAP.get(name)
        or COMPOSITE_TZ_MAP.get(name)
        or TZ_ABBREV_MAP.get(name.upper())
    )


class TimezoneResolution(NamedTuple):
    """Outcome of a TZID lookup."""

    tz: datetime.tzinfo
    used_fallback: bool


class TimezoneResolver:
    """Maps TZID strings found on date-time properties to tzinfo objects.

    Lookup order: IANA name, static alias tables, vendor-prefixed IANA name,
    VTIMEZONE definitions supplied by the feed, then the fallback.
    """

    def __init__(self, custom_zones: Optional[Mapping[str, datetime.tzinfo]] = None):
        self.custom_zones: Mapping[str, datetime.tzinfo] = MappingProxyType(
            {_normalize_tzid(k): v for k, v in (custom_zones or {}).items()}
        )

    def lookup(self, tzid: str) -> Optional[datetime.tzinfo]:
        """Return the timezone for ``tzid`` or None when it is unrecognized."""
        name = _normalize_tzid(tzid)
        if not name:
            return None
        if name.upper() in ("UTC", "ETC/UTC"):
            return UTC

        zone = _load_zone(name)
        if zone is not None:
            return zone

        alias = alias_to_iana(name)
        if alias is not None:
            return _load_zone(alias)

        # Vendor prefixes: "/mozilla.org/20050126_1/Europe/Berlin"
        parts = [p for p in name.split("/") if p]
        for i in range(1, len(parts) - 1):
            zone = _load_zone("/".join(parts[i:]))
            if zone is not None:
                return zone

        return self.custom_zones.get(name)

    def resolve_detailed(
        self,
        tzid: Optional[str],
        fallback: datetime.tzinfo,
        is_utc: bool = False,
    ) -> TimezoneResolution:
        """Resolve a TZID and report whether the fallback was substituted."""
        if not tzid or not tzid.strip():
            return TimezoneResolution(UTC if is_utc else fallback, False)

        zone = self.lookup(tzid)
        if zone is None:
            logger.warning("Unrecognized TZID %r, falling back to %s", tzid, fallback)
            return TimezoneResolution(fallback, True)
        return TimezoneResolution(zone, False)

    def resolve(
        self,
        tzid: Optional[str],
        fallback: datetime.tzinfo,
        is_utc: bool = False,
    ) -> datetime.tzinfo:
        """Resolve a TZID to a usable timezone.

        Args:
            tzid: TZID parameter value, possibly absent or non-IANA
            fallback: Timezone used when tzid is absent or unrecognized
            is_utc: The date-time value carried a trailing 'Z'

        Returns:
            tzinfo for the property value
        """
        return self.resolve_detailed(tzid, fallback, is_utc).tz


def get_local_timezone(name: Optional[str] = None) -> datetime.tzinfo:
    """Return the configured local timezone, defaulting to Europe/Berlin."""
    zone = _load_zone(name) if name else None
    if zone is not None:
        return zone
    if name:
        logger.warning("Invalid local timezone %r, using %s", name, DEFAULT_LOCAL_TIMEZONE)
    return ZoneInfo(DEFAULT_LOCAL_TIMEZONE)


def to_utc(dt: datetime.datetime) -> datetime.datetime:
    """Express an instant in UTC; naive datetimes are taken to be UTC.

    Aware datetimes sharing one tzinfo compare and subtract by wall clock,
    ignoring ``fold``. Converting first keeps the repeated hour of a DST
    fall-back in instant order.
    """
    return dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt.astimezone(UTC)


def round_to_minute(dt: datetime.datetime) -> datetime.datetime:
    """Round an instant to the nearest minute, expressed in UTC.

    Naive datetimes are taken to be UTC.
    """
    return (to_utc(dt) + datetime.timedelta(seconds=30)).replace(second=0, microsecond=0)


def now_utc() -> datetime.datetime:
    """Return current UTC time with tzinfo.

    Can be overridden for testing via the MEETWATCH_TEST_TIME environment
    variable (ISO 8601, e.g. "2025-03-03T08:59:30+01:00"). Naive values are
    taken to be UTC.
    """
    test_time = os.environ.get("MEETWATCH_TEST_TIME")
    if test_time:
        try:
            from dateutil import parser as date_parser

            dt = date_parser.isoparse(test_time)
            if dt.tzinfo is not None:
                return dt.astimezone(UTC)
            return dt.replace(tzinfo=UTC)
        except (ValueError, OverflowError) as e:
            logger.warning("Failed to parse MEETWATCH_TEST_TIME=%r: %s", test_time, e)

    return datetime.datetime.now(UTC)
