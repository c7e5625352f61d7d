from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List
import os

import yaml


DEFAULT_BASE_URL = "https://api.p2pquake.net/v2/history"
DEFAULT_UA = "quakewatch/1.0 (dashboard alert monitor)"
DEFAULT_TEST_PLACE = "福島県中通り近海 中南部"


@dataclass(frozen=True)
class FeedConfig:
    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = 4.0
    user_agent: str = DEFAULT_UA
    source_timezone: str = "Asia/Tokyo"
    quake_code: int = 551
    tsunami_code: int = 552
    eew_code: int = 554


@dataclass(frozen=True)
class PollConfig:
    eew_interval_seconds: float = 5.0
    normal_interval_seconds: float = 30.0
    heightened_interval_seconds: float = 6.0
    rotation_seconds: float = 10.0


@dataclass(frozen=True)
class AlertConfig:
    freshness_seconds: float = 180.0
    emergency_magnitude: float = 6.0
    test_place_name: str = DEFAULT_TEST_PLACE


@dataclass(frozen=True)
class AudioConfig:
    enabled: bool = True
    sample_rate: int = 22050
    volume: float = 0.3
    player: List[str] = field(default_factory=lambda: ["aplay", "-q"])
    audio_dir: str = "/tmp/quakewatch-audio"
    max_pending: int = 4


@dataclass(frozen=True)
class AppConfig:
    feed: FeedConfig = field(default_factory=FeedConfig)
    poll: PollConfig = field(default_factory=PollConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)


def _env(key: str, default: str | None = None) -> str | None:
    v = os.environ.get(key)
    return v if v not in (None, "") else default


def _env_float(key: str, default: float) -> float:
    v = _env(key)
    if v is None:
        return default
    try:
        return float(v)
    except Exception:
        return default


def _env_bool(key: str, default: bool) -> bool:
    v = _env(key)
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    sec = raw.get(name) or {}
    if not isinstance(sec, dict):
        raise ValueError(f"config section '{name}' must be a mapping")
    return sec


def _min_seconds(value: Any, floor: float = 1.0) -> float:
    return max(floor, float(value))


def _build(raw: Dict[str, Any]) -> AppConfig:
    f = _section(raw, "feed")
    p = _section(raw, "poll")
    a = _section(raw, "alerts")
    au = _section(raw, "audio")
    codes = f.get("codes") or {}

    base_feed = FeedConfig()
    feed = FeedConfig(
        base_url=str(_env("QUAKEWATCH_FEED_URL", f.get("base_url", base_feed.base_url))),
        timeout_seconds=_min_seconds(
            _env_float("QUAKEWATCH_FEED_TIMEOUT", f.get("timeout_seconds", base_feed.timeout_seconds)), 0.5
        ),
        user_agent=str(f.get("user_agent", base_feed.user_agent)),
        source_timezone=str(f.get("source_timezone", base_feed.source_timezone)),
        quake_code=int(codes.get("quake", base_feed.quake_code)),
        tsunami_code=int(codes.get("tsunami", base_feed.tsunami_code)),
        eew_code=int(codes.get("eew", base_feed.eew_code)),
    )

    base_poll = PollConfig()
    poll = PollConfig(
        eew_interval_seconds=_min_seconds(p.get("eew_interval_seconds", base_poll.eew_interval_seconds)),
        normal_interval_seconds=_min_seconds(p.get("normal_interval_seconds", base_poll.normal_interval_seconds)),
        heightened_interval_seconds=_min_seconds(
            p.get("heightened_interval_seconds", base_poll.heightened_interval_seconds)
        ),
        rotation_seconds=_min_seconds(p.get("rotation_seconds", base_poll.rotation_seconds)),
    )

    base_alerts = AlertConfig()
    alerts = AlertConfig(
        freshness_seconds=_min_seconds(a.get("freshness_seconds", base_alerts.freshness_seconds)),
        emergency_magnitude=float(a.get("emergency_magnitude", base_alerts.emergency_magnitude)),
        test_place_name=str(a.get("test_place_name", base_alerts.test_place_name)),
    )

    base_audio = AudioConfig()
    player_env = _env("QUAKEWATCH_PLAYER")
    player = player_env.split() if player_env else list(au.get("player", base_audio.player))
    audio = AudioConfig(
        enabled=_env_bool("QUAKEWATCH_AUDIO_ENABLED", bool(au.get("enabled", base_audio.enabled))),
        sample_rate=int(au.get("sample_rate", base_audio.sample_rate)),
        volume=max(0.0, min(1.0, float(au.get("volume", base_audio.volume)))),
        player=[str(x) for x in player],
        audio_dir=str(_env("QUAKEWATCH_AUDIO_DIR", au.get("audio_dir", base_audio.audio_dir))),
        max_pending=max(1, int(au.get("max_pending", base_audio.max_pending))),
    )

    return AppConfig(feed=feed, poll=poll, alerts=alerts, audio=audio)


def load_config(path: str | None) -> AppConfig:
    """
    Load the monitor config from YAML. ``None`` yields the built-in defaults
    (still subject to QUAKEWATCH_* env overrides).
    """
    if path is None:
        return _build({})
    raw = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"config file {path} must contain a mapping")
    return _build(raw)
