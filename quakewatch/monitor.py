from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from .arbitrator import Arbitrator, Clock, _utcnow
from .audio import ToneOutput, ToneSynthesizer
from .config import AppConfig
from .models import MonitorSnapshot
from .p2pquake import P2PQuakeClient
from .poller import FeedSource, Poller
from .signals import ResyncSignal
from .simulation import SimulationController

log = logging.getLogger("quakewatch")


class AlertMonitor:
    """
    The alert engine as the dashboard sees it: start/stop, a read-only
    snapshot, manual refresh and the test-alert toggle.
    """

    def __init__(
        self,
        cfg: AppConfig,
        *,
        source: Optional[FeedSource] = None,
        audio_output: Optional[ToneOutput] = None,
        resync: Optional[ResyncSignal] = None,
        clock: Clock = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.cfg = cfg
        self._owns_source = source is None
        self._audio_output = audio_output
        self.source: FeedSource = P2PQuakeClient(cfg.feed) if source is None else source
        self.audio = ToneSynthesizer(cfg.audio, audio_output)
        self.arbitrator = Arbitrator(cfg.poll, cfg.alerts, self.audio, clock=clock)
        self.poller = Poller(self.source, self.arbitrator, cfg.poll, sleep=sleep)
        self.simulation = SimulationController(self.arbitrator, self.poller, cfg.alerts)
        self.resync = resync if resync is not None else ResyncSignal()
        self._sleep = sleep

        self._tasks: List[asyncio.Task] = []
        self._resync_task: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._released = False

    def _reopen(self) -> None:
        # stop() closed the synthesizer and the owned client
        self.audio = ToneSynthesizer(self.cfg.audio, self._audio_output)
        self.arbitrator.audio = self.audio
        if self._owns_source:
            self.source = P2PQuakeClient(self.cfg.feed)
            self.poller.source = self.source
        self._released = False

    async def start(self) -> None:
        if self._tasks:
            return
        if self._released:
            self._reopen()
        self.poller.start()
        self._tasks.append(asyncio.create_task(self._rotation_loop(), name="display_rotation"))
        self._unsubscribe = self.resync.subscribe(self._on_resync)
        log.info("Alert monitor started")

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        tasks = list(self._tasks)
        if self._resync_task is not None:
            tasks.append(self._resync_task)
            self._resync_task = None
        self._tasks = []
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        await self.poller.stop()
        await self.audio.aclose()
        if self._owns_source:
            aclose = getattr(self.source, "aclose", None)
            if aclose is not None:
                await aclose()
        self._released = True
        log.info("Alert monitor stopped")

    async def __aenter__(self) -> "AlertMonitor":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()

    def snapshot(self) -> MonitorSnapshot:
        return self.arbitrator.snapshot()

    async def manual_refresh(self) -> int:
        return await self.poller.poll_now()

    async def enter_test(self) -> None:
        await self.simulation.enter_test()

    async def exit_test(self) -> None:
        await self.simulation.exit_test()

    def _on_resync(self) -> None:
        # collapse a burst of sync requests into one poll
        if self._resync_task is not None and not self._resync_task.done():
            return

        async def _runner() -> None:
            try:
                n = await self.manual_refresh()
                log.info("Resync: delivered %d event(s)", n)
            except asyncio.CancelledError:
                raise
            except Exception:
                log.exception("Resync poll failed")

        self._resync_task = asyncio.create_task(_runner(), name="resync_poll")

    async def _rotation_loop(self) -> None:
        while True:
            await self._sleep(self.cfg.poll.rotation_seconds)
            try:
                await self.arbitrator.rotate()
            except asyncio.CancelledError:
                raise
            except Exception:
                log.exception("Display rotation tick failed")
