from __future__ import annotations

import datetime as dt

from .models import (
    AreaView,
    EEWEvent,
    FeedType,
    IssueKind,
    NormalizedEvent,
    QuakeEvent,
    RawEventRecord,
    SeverityLevel,
    TsunamiEvent,
)
from .places import translate
from .severity import FRESHNESS_SECONDS, classify, worst_tsunami_grade

UNKNOWN_PLACE = "UNKNOWN"


def _opt_number(value: float) -> float | None:
    # feeds use -1 for "not yet determined"
    return None if value is None or value < 0 else value


def normalize(
    event: RawEventRecord,
    now: dt.datetime,
    window_seconds: float = FRESHNESS_SECONDS,
) -> NormalizedEvent:
    level = classify(event, now, window_seconds)

    if isinstance(event, QuakeEvent):
        code = int(event.max_intensity_code)
        return NormalizedEvent(
            feed_type=FeedType.QUAKE,
            occurred_at=event.occurred_at,
            place=translate(event.epicenter_raw) or UNKNOWN_PLACE,
            severity=level,
            magnitude=_opt_number(event.magnitude),
            max_intensity_code=code if code >= 0 else None,
            depth_km=_opt_number(event.depth_km),
        )

    if isinstance(event, TsunamiEvent):
        areas = tuple(
            AreaView(name=translate(a.name_raw), grade=a.grade_raw, immediate=a.immediate)
            for a in event.areas
        )
        worst = worst_tsunami_grade(a.grade for a in areas)
        # unrecognised grades rank as Unknown
        worst_names = [
            a.name for a in areas if a.name and worst_tsunami_grade([a.grade]) == worst
        ]
        return NormalizedEvent(
            feed_type=FeedType.TSUNAMI,
            occurred_at=event.occurred_at,
            place=" / ".join(dict.fromkeys(worst_names)),
            severity=level,
            cancelled=event.cancelled,
            areas=areas,
        )

    if isinstance(event, EEWEvent):
        return NormalizedEvent(
            feed_type=FeedType.EEW,
            occurred_at=event.occurred_at,
            place=translate(event.epicenter_raw) or UNKNOWN_PLACE,
            severity=level,
            cancelled=event.cancelled,
            is_warning=event.issue_kind == IssueKind.WARNING,
        )

    raise TypeError(f"not a feed record: {type(event).__name__}")


def synthetic_eew(place_raw: str, now: dt.datetime) -> NormalizedEvent:
    """The simulated emergency used by test mode."""
    return NormalizedEvent(
        feed_type=FeedType.EEW,
        occurred_at=now,
        place=translate(place_raw) or UNKNOWN_PLACE,
        severity=SeverityLevel.EMERGENCY,
        is_warning=True,
        synthetic=True,
    )
