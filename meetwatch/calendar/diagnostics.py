"""Diagnostics accumulator threaded through the resolution stages."""

import logging
from typing import Optional

from .models import Diagnostic, DiagnosticKind

logger = logging.getLogger(__name__)


class DiagnosticsCollector:
    """Collects non-fatal conditions in the order they were first seen.

    Identical conditions (same kind, UID and message) are recorded once, so a
    feed that uses one unknown TZID on every event yields a single entry per
    event rather than one per property.
    """

    def __init__(self) -> None:
        self._items: list[Diagnostic] = []
        self._seen: set[tuple[DiagnosticKind, Optional[str], str]] = set()

    def add(self, kind: DiagnosticKind, message: str, uid: Optional[str] = None) -> None:
        key = (kind, uid, message)
        if key in self._seen:
            return
        self._seen.add(key)
        self._items.append(Diagnostic(kind=kind, message=message, uid=uid))
        if kind == DiagnosticKind.OVERRIDE_WITHOUT_MATCH:
            logger.debug("[%s] %s (uid=%s)", kind.value, message, uid)
        else:
            logger.warning("[%s] %s (uid=%s)", kind.value, message, uid)

    def of_kind(self, kind: DiagnosticKind) -> list[Diagnostic]:
        return [d for d in self._items if d.kind == kind]

    def snapshot(self) -> tuple[Diagnostic, ...]:
        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)
