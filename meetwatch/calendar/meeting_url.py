"""Meeting link extraction - meetwatch.

Finds the conferencing link of an occurrence in its location, description or
summary, in that order.
"""

import logging
import re
from typing import Optional

from .models import ResolvedOccurrence

logger = logging.getLogger(__name__)

_URL_RE = re.compile(r"https?://[^\s<>\"'{}|\\^`\[\]]+", re.IGNORECASE)

_TRAILING_PUNCTUATION = ".,;:!?)>'\""

# Provider link shapes, matched against the start of a candidate URL
MEETING_URL_PATTERNS: dict[str, re.Pattern[str]] = {
    "zoom": re.compile(r"https?://([\w-]+\.)*zoom\.us/(j|my|w|s|wc/join)/", re.IGNORECASE),
    "teams": re.compile(
        r"https?://(teams\.microsoft\.com/l/meetup-join/|teams\.live\.com/meet/)", re.IGNORECASE
    ),
    "google_meet": re.compile(r"https?://meet\.google\.com/[a-z]", re.IGNORECASE),
    "webex": re.compile(r"https?://([\w-]+\.)*webex\.com/", re.IGNORECASE),
    "gotomeeting": re.compile(
        r"https?://((global\.)?gotomeeting\.com/join/|meet\.goto\.com/)", re.IGNORECASE
    ),
    "jitsi": re.compile(r"https?://meet\.jit\.si/\w", re.IGNORECASE),
    "whereby": re.compile(r"https?://whereby\.com/\w", re.IGNORECASE),
    "bluejeans": re.compile(r"https?://([\w-]+\.)*bluejeans\.com/\w", re.IGNORECASE),
    "skype": re.compile(r"https?://join\.skype\.com/\w", re.IGNORECASE),
}

_ZOOM_NATIVE_RE = re.compile(r"https?://[^\s]*zoom\.us/j/([0-9]+)(\?.*pwd=([A-Za-z0-9.]+))?")


def _trim(url: str) -> str:
    while url and url[-1] in _TRAILING_PUNCTUATION:
        if url[-1] == ")" and url.count("(") >= url.count(")"):
            break
        url = url[:-1]
    return url


def provider_of(url: str) -> Optional[str]:
    """Name of the conferencing provider a URL belongs to, if known."""
    for provider, pattern in MEETING_URL_PATTERNS.items():
        if pattern.match(url):
            return provider
    return None


def find_meeting_url(text: str) -> Optional[str]:
    """First conferencing link in a piece of free text."""
    if not text:
        return None
    for match in _URL_RE.finditer(text):
        url = _trim(match.group(0))
        if provider_of(url) is not None:
            return url
    return None


def extract(occurrence: ResolvedOccurrence) -> Optional[str]:
    """Scan location, description and summary for a meeting link."""
    for text in (occurrence.location, occurrence.description, occurrence.summary):
        url = find_meeting_url(text)
        if url:
            return url
    return None


def populate(occurrence: ResolvedOccurrence) -> ResolvedOccurrence:
    """Return the occurrence with only ``meeting_url`` filled in."""
    url = extract(occurrence)
    if url is None:
        return occurrence
    return occurrence.model_copy(update={"meeting_url": url})


def to_native_meeting_url(url: str) -> str:
    """Rewrite a Zoom meeting link to the desktop client's zoommtg:// form.

    Other links are returned unchanged.

    Example:
        https://company.zoom.us/j/123?pwd=abc -> zoommtg://zoom.us/join?confno=123&pwd=abc
    """
    match = _ZOOM_NATIVE_RE.match(url)
    if match is None:
        return url
    native = f"zoommtg://zoom.us/join?confno={match.group(1)}"
    if match.group(3):
        native += f"&pwd={match.group(3)}"
    logger.debug("Rewrote %s to native Zoom link", url)
    return native
