"""Exception hierarchy for meetwatch.

Per-component problems (a malformed VEVENT, an unparseable RRULE) are raised
inside the resolution stages and collected as diagnostics by the pipeline;
they never abort the resolution of a whole feed. Only an invalid invocation
of the engine (see InvalidWindowError) escapes to the caller.
"""

from typing import Optional


class MeetwatchError(Exception):
    """Base exception for all meetwatch errors."""


class MalformedEventError(MeetwatchError):
    """A calendar component is missing a mandatory property.

    Raised when:
    - UID is absent or empty
    - DTSTART is absent or cannot be decoded

    The offending component is skipped and the rest of the feed is resolved.
    """

    def __init__(self, message: str, uid: Optional[str] = None):
        super().__init__(message)
        self.uid = uid


class RecurrenceParseError(MeetwatchError):
    """An RRULE could not be parsed or evaluated.

    The recurring master degrades to a single occurrence at DTSTART.
    """


class InvalidWindowError(MeetwatchError):
    """The query window is unusable.

    Raised when:
    - start is after end
    - a bound is not timezone-aware
    - a negative number of days is requested

    This is a programming-contract violation rather than a data problem, so
    it is not a ValueError and passes through pydantic validation unchanged.
    """


class ICSFetchError(MeetwatchError):
    """Fetching the calendar feed failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
