"""Shared builders and fakes for the quakewatch tests."""

from __future__ import annotations

import asyncio
import datetime as dt
from pathlib import Path
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

from quakewatch.arbitrator import Arbitrator
from quakewatch.config import AlertConfig, AudioConfig, PollConfig
from quakewatch.models import (
    AlertClass,
    EEWEvent,
    FeedType,
    IssueKind,
    QuakeEvent,
    RawEventRecord,
    TsunamiArea,
    TsunamiEvent,
)

JST = ZoneInfo("Asia/Tokyo")
NOW = dt.datetime(2024, 1, 1, 7, 10, 0, tzinfo=dt.timezone.utc)


class FakeClock:
    def __init__(self, start: dt.datetime = NOW) -> None:
        self.now = start

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += dt.timedelta(seconds=seconds)


class RecordingAudio:
    """Stands in for ToneSynthesizer; remembers every requested class."""

    def __init__(self) -> None:
        self.played: List[AlertClass] = []

    def play(self, alert_class: AlertClass) -> None:
        self.played.append(alert_class)

    async def aclose(self) -> None:
        pass


class RecordingOutput:
    def __init__(self, gate: Optional[asyncio.Event] = None, error: Optional[Exception] = None) -> None:
        self.paths: List[Path] = []
        self.gate = gate
        self.error = error

    async def play_wav(self, path: Path) -> None:
        self.paths.append(path)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error


class FakeSource:
    """Feed source returning canned records; ``gate`` holds every poll until set."""

    def __init__(self, records: Optional[Dict[FeedType, object]] = None) -> None:
        self.records: Dict[FeedType, object] = dict(records or {})
        self.calls: List[FeedType] = []
        self.gate: Optional[asyncio.Event] = None

    async def poll(self, feed_type: FeedType) -> Optional[RawEventRecord]:
        self.calls.append(feed_type)
        if self.gate is not None:
            await self.gate.wait()
        rec = self.records.get(feed_type)
        if isinstance(rec, Exception):
            raise rec
        return rec  # type: ignore[return-value]


def make_quake(
    occurred_at: dt.datetime = NOW,
    *,
    place: str = "石川県能登地方",
    magnitude: float = 4.2,
    code: int = 30,
    depth: float = 10.0,
) -> QuakeEvent:
    return QuakeEvent(
        occurred_at=occurred_at,
        epicenter_raw=place,
        magnitude=magnitude,
        max_intensity_code=code,
        depth_km=depth,
    )


def make_tsunami(
    occurred_at: dt.datetime = NOW,
    *,
    grades: tuple = (("Warning", "石川県能登"),),
    cancelled: bool = False,
) -> TsunamiEvent:
    return TsunamiEvent(
        occurred_at=occurred_at,
        cancelled=cancelled,
        areas=tuple(TsunamiArea(grade_raw=g, name_raw=n) for g, n in grades),
    )


def make_eew(
    occurred_at: dt.datetime = NOW,
    *,
    place: str = "福島県沖",
    kind: IssueKind = IssueKind.WARNING,
    cancelled: bool = False,
) -> EEWEvent:
    return EEWEvent(occurred_at=occurred_at, epicenter_raw=place, cancelled=cancelled, issue_kind=kind)


def make_arbitrator(clock: Optional[FakeClock] = None, audio: Optional[RecordingAudio] = None) -> Arbitrator:
    return Arbitrator(PollConfig(), AlertConfig(), audio or RecordingAudio(), clock=clock or FakeClock())


def audio_cfg(tmp_dir: Path, **kw) -> AudioConfig:
    kw.setdefault("sample_rate", 8000)
    return AudioConfig(audio_dir=str(tmp_dir), **kw)


# --- P2PQuake JSON payloads ---


def quake_item(time: str = "2024/01/01 16:10:00", magnitude: float = 7.6, max_scale: int = 70) -> dict:
    return {
        "code": 551,
        "time": "2024/01/01 16:12:11.512",
        "issue": {"type": "DetailScale"},
        "earthquake": {
            "time": time,
            "hypocenter": {"name": "石川県能登地方", "depth": 10, "magnitude": magnitude},
            "maxScale": max_scale,
        },
    }


def tsunami_item(time: str = "2024/01/01 16:22:00", cancelled: bool = False) -> dict:
    return {
        "code": 552,
        "time": time,
        "cancelled": cancelled,
        "areas": [
            {"grade": "MajorWarning", "name": "石川県能登", "immediate": True},
            {"grade": "Warning", "name": "新潟県上中下越", "immediate": False},
            {"grade": "Watch", "name": "北海道日本海沿岸南部", "immediate": False},
        ],
    }


def eew_item(time: str = "2024/01/01 16:10:20", issue_type: str = "Warning", cancelled: bool = False) -> dict:
    return {
        "code": 554,
        "time": time,
        "cancelled": cancelled,
        "issue": {"type": issue_type},
        "earthquake": {"hypocenter": {"name": "石川県能登地方"}},
    }
