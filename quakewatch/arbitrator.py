from __future__ import annotations

import asyncio
import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from .audio import ToneSynthesizer
from .config import AlertConfig, PollConfig
from .models import (
    DisplayMode,
    FeedType,
    MonitorSnapshot,
    NormalizedEvent,
)
from .severity import alert_class_for

log = logging.getLogger("quakewatch.arbitrator")

Clock = Callable[[], dt.datetime]


def _utcnow() -> dt.datetime:
    return dt.datetime.now(tz=dt.timezone.utc)


@dataclass
class MonitorState:
    latest_quake: Optional[NormalizedEvent] = None
    latest_tsunami: Optional[NormalizedEvent] = None
    latest_eew: Optional[NormalizedEvent] = None
    last_fired_at: Dict[FeedType, dt.datetime] = field(default_factory=dict)
    display_mode: DisplayMode = DisplayMode.SEISMIC
    rotation_mode: DisplayMode = DisplayMode.SEISMIC
    poll_cadence_ms: int = 30000
    test_mode_active: bool = False
    last_sync_at: Optional[dt.datetime] = None

    def latest(self, feed_type: FeedType) -> Optional[NormalizedEvent]:
        if feed_type == FeedType.QUAKE:
            return self.latest_quake
        if feed_type == FeedType.TSUNAMI:
            return self.latest_tsunami
        return self.latest_eew

    def set_latest(self, ev: NormalizedEvent) -> None:
        if ev.feed_type == FeedType.QUAKE:
            self.latest_quake = ev
        elif ev.feed_type == FeedType.TSUNAMI:
            self.latest_tsunami = ev
        else:
            self.latest_eew = ev


@dataclass
class _TestStash:
    latest_eew: Optional[NormalizedEvent]
    last_fired_eew: Optional[dt.datetime]


class Arbitrator:
    """
    Sole owner of MonitorState. Every mutation goes through one lock, so the
    dedup check and the fire decision can never interleave.
    """

    def __init__(
        self,
        poll_cfg: PollConfig,
        alert_cfg: AlertConfig,
        audio: ToneSynthesizer,
        clock: Clock = _utcnow,
    ) -> None:
        self.poll_cfg = poll_cfg
        self.alert_cfg = alert_cfg
        self.audio = audio
        self.clock = clock
        self.state = MonitorState(poll_cadence_ms=self._ms(poll_cfg.normal_interval_seconds))
        self._lock = asyncio.Lock()
        self._stash: Optional[_TestStash] = None

    @staticmethod
    def _ms(seconds: float) -> int:
        return int(round(float(seconds) * 1000))

    # ---- predicates ----

    def _active(self, ev: Optional[NormalizedEvent], now: dt.datetime) -> bool:
        return ev is not None and ev.is_active(now, self.alert_cfg.freshness_seconds)

    def eew_active(self, now: dt.datetime | None = None) -> bool:
        return self._active(self.state.latest_eew, now or self.clock())

    def emergency(self, now: dt.datetime) -> bool:
        s = self.state
        if self._active(s.latest_eew, now):
            return True
        q = s.latest_quake
        if (
            q is not None
            and q.magnitude is not None
            and q.magnitude >= self.alert_cfg.emergency_magnitude
            and not q.is_stale(now, self.alert_cfg.freshness_seconds)
        ):
            return True
        return self._active(s.latest_tsunami, now)

    # ---- recompute (call with the lock held) ----

    def _recompute(self, now: dt.datetime) -> None:
        s = self.state
        if s.test_mode_active or self._active(s.latest_eew, now):
            s.display_mode = DisplayMode.EEW
        else:
            s.display_mode = s.rotation_mode

        seconds = (
            self.poll_cfg.heightened_interval_seconds
            if self.emergency(now)
            else self.poll_cfg.normal_interval_seconds
        )
        cadence = self._ms(seconds)
        if cadence != s.poll_cadence_ms:
            log.info("Quake/tsunami cadence %dms -> %dms", s.poll_cadence_ms, cadence)
        s.poll_cadence_ms = cadence

    # ---- entry points ----

    async def submit(self, ev: NormalizedEvent) -> bool:
        """
        Store ``ev`` as the latest for its feed. Returns True when the event
        was new and an alert sound was requested.
        """
        async with self._lock:
            return self._submit_locked(ev)

    def _submit_locked(self, ev: NormalizedEvent) -> bool:
        s = self.state
        now = self.clock()
        ft = ev.feed_type
        s.set_latest(ev)
        if not ev.synthetic:
            s.last_sync_at = now

        fired = False
        if s.last_fired_at.get(ft) == ev.occurred_at:
            log.debug("%s %s already announced; display refresh only", ft.value, ev.occurred_at.isoformat())
        else:
            s.last_fired_at[ft] = ev.occurred_at
            cls = alert_class_for(ev.severity)
            if not ev.cancelled and cls is not None:
                log.info(
                    "ALERT %s severity=%s place=%s occurred=%s",
                    ft.value,
                    ev.severity.name,
                    ev.place,
                    ev.occurred_at.isoformat(),
                )
                self.audio.play(cls)
                fired = True
            else:
                log.info(
                    "%s update (no alert) severity=%s cancelled=%s occurred=%s",
                    ft.value,
                    ev.severity.name,
                    ev.cancelled,
                    ev.occurred_at.isoformat(),
                )

        self._recompute(now)
        return fired

    async def refresh(self) -> None:
        """Re-evaluate staleness-dependent state without a new event."""
        async with self._lock:
            self._recompute(self.clock())

    async def rotate(self) -> DisplayMode:
        """Advance the Seismic/Tsunami rotation unless EEW (or test mode) holds the display."""
        async with self._lock:
            now = self.clock()
            s = self.state
            if not (s.test_mode_active or self._active(s.latest_eew, now)):
                s.rotation_mode = (
                    DisplayMode.TSUNAMI if s.rotation_mode == DisplayMode.SEISMIC else DisplayMode.SEISMIC
                )
            self._recompute(now)
            return s.display_mode

    async def begin_test(self, ev: NormalizedEvent) -> bool:
        async with self._lock:
            s = self.state
            if not s.test_mode_active:
                self._stash = _TestStash(
                    latest_eew=s.latest_eew,
                    last_fired_eew=s.last_fired_at.get(FeedType.EEW),
                )
            s.test_mode_active = True
            return self._submit_locked(ev)

    async def end_test(self) -> None:
        async with self._lock:
            s = self.state
            stash = self._stash
            self._stash = None
            if stash is not None:
                s.latest_eew = stash.latest_eew
                if stash.last_fired_eew is None:
                    s.last_fired_at.pop(FeedType.EEW, None)
                else:
                    s.last_fired_at[FeedType.EEW] = stash.last_fired_eew
            s.test_mode_active = False
            self._recompute(self.clock())

    def snapshot(self) -> MonitorSnapshot:
        s = self.state
        return MonitorSnapshot(
            latest_quake=s.latest_quake,
            latest_tsunami=s.latest_tsunami,
            latest_eew=s.latest_eew,
            display_mode=s.display_mode,
            test_mode=s.test_mode_active,
            poll_cadence_ms=s.poll_cadence_ms,
            last_sync_at=s.last_sync_at,
        )
