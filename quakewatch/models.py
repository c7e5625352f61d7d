from __future__ import annotations

import datetime as dt
import enum
from dataclasses import dataclass
from typing import Optional, Tuple, Union


class FeedType(str, enum.Enum):
    QUAKE = "quake"
    TSUNAMI = "tsunami"
    EEW = "eew"


class DisplayMode(str, enum.Enum):
    SEISMIC = "seismic"
    TSUNAMI = "tsunami"
    EEW = "eew"


class SeverityLevel(enum.IntEnum):
    NONE = 0
    WATCH = 1
    ALERT = 2
    WARNING = 3
    MAJOR = 4
    EMERGENCY = 5


class AlertClass(str, enum.Enum):
    EMERGENCY = "emergency"
    STANDARD = "standard"


class IssueKind(str, enum.Enum):
    FORECAST = "Forecast"
    WARNING = "Warning"


# Tsunami grades, worst first.
TSUNAMI_GRADES: Tuple[str, ...] = ("MajorWarning", "Warning", "Watch", "Unknown")


# --- raw records, as parsed from a feed ---


@dataclass(frozen=True, slots=True)
class QuakeEvent:
    occurred_at: dt.datetime
    epicenter_raw: str
    magnitude: float
    max_intensity_code: int
    depth_km: float


@dataclass(frozen=True, slots=True)
class TsunamiArea:
    grade_raw: str
    name_raw: str
    immediate: bool = False


@dataclass(frozen=True, slots=True)
class TsunamiEvent:
    occurred_at: dt.datetime
    cancelled: bool
    areas: Tuple[TsunamiArea, ...]


@dataclass(frozen=True, slots=True)
class EEWEvent:
    occurred_at: dt.datetime
    epicenter_raw: str
    cancelled: bool
    issue_kind: IssueKind


RawEventRecord = Union[QuakeEvent, TsunamiEvent, EEWEvent]


def feed_type_of(event: RawEventRecord) -> FeedType:
    if isinstance(event, QuakeEvent):
        return FeedType.QUAKE
    if isinstance(event, TsunamiEvent):
        return FeedType.TSUNAMI
    if isinstance(event, EEWEvent):
        return FeedType.EEW
    raise TypeError(f"not a feed record: {type(event).__name__}")


# --- normalized, display-ready values ---


@dataclass(frozen=True, slots=True)
class AreaView:
    name: str
    grade: str
    immediate: bool = False


@dataclass(frozen=True, slots=True)
class NormalizedEvent:
    """
    Display-ready event. Replaced wholesale on every update, never mutated.

    ``severity`` is the classification at receipt time; use ``is_active`` to
    ask whether the event still counts at a later instant.
    """
    feed_type: FeedType
    occurred_at: dt.datetime
    place: str
    severity: SeverityLevel
    cancelled: bool = False
    magnitude: Optional[float] = None
    max_intensity_code: Optional[int] = None
    depth_km: Optional[float] = None
    is_warning: bool = False
    areas: Tuple[AreaView, ...] = ()
    synthetic: bool = False

    def is_stale(self, now: dt.datetime, window_seconds: float) -> bool:
        return (now - self.occurred_at).total_seconds() > window_seconds

    def is_active(self, now: dt.datetime, window_seconds: float) -> bool:
        if self.cancelled or self.severity <= SeverityLevel.NONE:
            return False
        return not self.is_stale(now, window_seconds)


@dataclass(frozen=True)
class MonitorSnapshot:
    latest_quake: Optional[NormalizedEvent]
    latest_tsunami: Optional[NormalizedEvent]
    latest_eew: Optional[NormalizedEvent]
    display_mode: DisplayMode
    test_mode: bool
    poll_cadence_ms: int
    last_sync_at: Optional[dt.datetime]
