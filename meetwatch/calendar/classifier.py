"""Classification of raw calendar components - meetwatch."""

from .models import CalendarComponentRaw, ComponentKind


def classify(component: CalendarComponentRaw) -> ComponentKind:
    """Tag a component as plain, recurring master or recurrence override.

    A RECURRENCE-ID makes a component an override whether or not it also
    carries an RRULE.

    Raises:
        MalformedEventError: If UID or DTSTART is missing
    """
    component.get_required("UID")
    component.get_required("DTSTART")

    if component.has("RECURRENCE-ID"):
        return ComponentKind.RECURRENCE_OVERRIDE
    if component.has("RRULE"):
        return ComponentKind.RECURRING_MASTER
    return ComponentKind.PLAIN
