from __future__ import annotations

import datetime as dt
from typing import Iterable, Optional

from .models import (
    EEWEvent,
    IssueKind,
    QuakeEvent,
    RawEventRecord,
    SeverityLevel,
    AlertClass,
    TSUNAMI_GRADES,
    TsunamiEvent,
)

FRESHNESS_SECONDS = 180.0

# JMA maxScale code -> shindo label
_INTENSITY_LABELS = {
    10: "1",
    20: "2",
    30: "3",
    40: "4",
    45: "5-",
    50: "5+",
    55: "6-",
    60: "6+",
    70: "7",
}

_TSUNAMI_GRADE_LEVEL = {
    "MajorWarning": SeverityLevel.MAJOR,
    "Warning": SeverityLevel.WARNING,
    "Watch": SeverityLevel.WATCH,
    "Unknown": SeverityLevel.WATCH,
}


def _utcnow() -> dt.datetime:
    return dt.datetime.now(tz=dt.timezone.utc)


def intensity_label(code: int | None) -> str:
    if code is None:
        return "-"
    return _INTENSITY_LABELS.get(int(code), "-")


def quake_level(max_intensity_code: int) -> SeverityLevel:
    code = int(max_intensity_code)
    if code >= 45:
        return SeverityLevel.MAJOR
    if code >= 30:
        return SeverityLevel.ALERT
    if code >= 10:
        return SeverityLevel.WATCH
    return SeverityLevel.NONE


def worst_tsunami_grade(grades: Iterable[str]) -> Optional[str]:
    """MajorWarning > Warning > Watch > Unknown; unrecognised grades count as Unknown."""
    best: Optional[int] = None
    for g in grades:
        rank = TSUNAMI_GRADES.index(g) if g in TSUNAMI_GRADES else TSUNAMI_GRADES.index("Unknown")
        if best is None or rank < best:
            best = rank
    return TSUNAMI_GRADES[best] if best is not None else None


def is_stale(occurred_at: dt.datetime, now: dt.datetime, window_seconds: float = FRESHNESS_SECONDS) -> bool:
    return (now - occurred_at).total_seconds() > window_seconds


def raw_level(event: RawEventRecord) -> SeverityLevel:
    """Severity from the record's own fields, ignoring its age."""
    if isinstance(event, EEWEvent):
        if event.cancelled:
            return SeverityLevel.NONE
        if event.issue_kind == IssueKind.WARNING:
            return SeverityLevel.EMERGENCY
        return SeverityLevel.ALERT

    if isinstance(event, QuakeEvent):
        return quake_level(event.max_intensity_code)

    if isinstance(event, TsunamiEvent):
        if event.cancelled:
            return SeverityLevel.NONE
        worst = worst_tsunami_grade(a.grade_raw for a in event.areas)
        if worst is None:
            return SeverityLevel.NONE
        return _TSUNAMI_GRADE_LEVEL[worst]

    raise TypeError(f"not a feed record: {type(event).__name__}")


def classify(
    event: RawEventRecord,
    now: dt.datetime | None = None,
    window_seconds: float = FRESHNESS_SECONDS,
) -> SeverityLevel:
    now = now or _utcnow()
    if is_stale(event.occurred_at, now, window_seconds):
        return SeverityLevel.NONE
    return raw_level(event)


def alert_class_for(level: SeverityLevel) -> Optional[AlertClass]:
    if level >= SeverityLevel.MAJOR:
        return AlertClass.EMERGENCY
    if level > SeverityLevel.NONE:
        return AlertClass.STANDARD
    return None
