from __future__ import annotations

import asyncio
import datetime as dt
import logging
import math
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

import httpx

from .config import FeedConfig
from .models import (
    EEWEvent,
    FeedType,
    IssueKind,
    QuakeEvent,
    RawEventRecord,
    TsunamiArea,
    TsunamiEvent,
)

log = logging.getLogger("quakewatch.feed")

_TIME_FORMATS = (
    "%Y/%m/%d %H:%M:%S.%f",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
)


class FeedError(RuntimeError):
    def __init__(self, code: int, reason: str) -> None:
        super().__init__(f"feed {code}: {reason}")
        self.code = code
        self.reason = reason


def parse_feed_time(value: Any, tz: dt.tzinfo) -> Optional[dt.datetime]:
    """
    P2PQuake stamps are local JST without an offset ("2024/01/01 16:10:09.123").
    ISO-8601 strings with an offset (or "Z") are accepted too.
    """
    if not isinstance(value, str):
        return None
    s = value.strip()
    if not s:
        return None
    for fmt in _TIME_FORMATS:
        try:
            return dt.datetime.strptime(s, fmt).replace(tzinfo=tz)
        except ValueError:
            continue
    try:
        parsed = dt.datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=tz)


def _as_float(v: Any, default: float = -1.0) -> float:
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        return default
    try:
        f = float(v)
    except (OverflowError, ValueError):
        return default
    # json accepts Infinity/NaN
    return f if math.isfinite(f) else default


def _as_dict(v: Any) -> Dict[str, Any]:
    return v if isinstance(v, dict) else {}


def _as_str(v: Any) -> str:
    return v.strip() if isinstance(v, str) else ""


class P2PQuakeClient:
    """
    One-shot reads of the P2PQuake history API, one feed code per call.

    ``fetch_latest`` raises on any transport or shape problem; ``poll`` is
    the never-raises wrapper the poller uses.
    """

    def __init__(self, cfg: FeedConfig, client: httpx.AsyncClient | None = None) -> None:
        self.cfg = cfg
        self.tz = ZoneInfo(cfg.source_timezone)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(cfg.timeout_seconds),
            headers={
                "User-Agent": cfg.user_agent,
                "Accept": "application/json",
                "Cache-Control": "no-store",
            },
            follow_redirects=True,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def code_for(self, feed_type: FeedType) -> int:
        if feed_type == FeedType.QUAKE:
            return self.cfg.quake_code
        if feed_type == FeedType.TSUNAMI:
            return self.cfg.tsunami_code
        return self.cfg.eew_code

    async def fetch_latest(self, code: int, limit: int = 1) -> List[Dict[str, Any]]:
        r = await self._client.get(self.cfg.base_url, params={"codes": code, "limit": limit})
        if r.status_code != 200:
            raise FeedError(code, f"HTTP {r.status_code}")
        ctype = r.headers.get("content-type", "")
        if "application/json" not in ctype:
            raise FeedError(code, f"unexpected content type {ctype!r}")
        data = r.json()
        if not isinstance(data, list):
            raise FeedError(code, "response JSON was not an array")
        return [item for item in data if isinstance(item, dict)]

    async def poll(self, feed_type: FeedType) -> RawEventRecord | None:
        code = self.code_for(feed_type)
        try:
            items = await asyncio.wait_for(self.fetch_latest(code), timeout=self.cfg.timeout_seconds)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            log.warning("%s poll timed out after %.1fs", feed_type.value, self.cfg.timeout_seconds)
            return None
        except Exception as e:
            log.warning("%s poll failed: %s", feed_type.value, e)
            return None

        if not items:
            return None
        try:
            ev = self.parse(feed_type, items[0])
        except Exception as e:
            log.warning("%s poll: entry 0 could not be parsed: %s", feed_type.value, e)
            return None
        if ev is None:
            log.warning("%s poll: entry 0 did not match the expected shape", feed_type.value)
        return ev

    def parse(self, feed_type: FeedType, item: Dict[str, Any]) -> RawEventRecord | None:
        if feed_type == FeedType.QUAKE:
            return self._quake_from_item(item)
        if feed_type == FeedType.TSUNAMI:
            return self._tsunami_from_item(item)
        return self._eew_from_item(item)

    def _quake_from_item(self, item: Dict[str, Any]) -> QuakeEvent | None:
        eq = item.get("earthquake")
        if not isinstance(eq, dict):
            return None
        occurred = parse_feed_time(eq.get("time"), self.tz) or parse_feed_time(item.get("time"), self.tz)
        if occurred is None:
            return None
        hypo = _as_dict(eq.get("hypocenter"))
        return QuakeEvent(
            occurred_at=occurred,
            epicenter_raw=_as_str(hypo.get("name")),
            magnitude=_as_float(hypo.get("magnitude")),
            max_intensity_code=int(_as_float(eq.get("maxScale"))),
            depth_km=_as_float(hypo.get("depth")),
        )

    def _tsunami_from_item(self, item: Dict[str, Any]) -> TsunamiEvent | None:
        occurred = parse_feed_time(item.get("time"), self.tz)
        if occurred is None:
            return None
        raw_areas = item.get("areas")
        areas: List[TsunamiArea] = []
        if isinstance(raw_areas, list):
            for a in raw_areas:
                if not isinstance(a, dict):
                    continue
                areas.append(
                    TsunamiArea(
                        grade_raw=_as_str(a.get("grade")) or "Unknown",
                        name_raw=_as_str(a.get("name")),
                        immediate=a.get("immediate") is True,
                    )
                )
        return TsunamiEvent(
            occurred_at=occurred,
            cancelled=item.get("cancelled") is True,
            areas=tuple(areas),
        )

    def _eew_from_item(self, item: Dict[str, Any]) -> EEWEvent | None:
        occurred = parse_feed_time(item.get("time"), self.tz)
        if occurred is None:
            return None
        hypo = _as_dict(_as_dict(item.get("earthquake")).get("hypocenter"))
        issue = _as_dict(item.get("issue"))
        kind = IssueKind.WARNING if issue.get("type") == "Warning" else IssueKind.FORECAST
        return EEWEvent(
            occurred_at=occurred,
            epicenter_raw=_as_str(hypo.get("name")),
            cancelled=item.get("cancelled") is True,
            issue_kind=kind,
        )
