from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence

from .arbitrator import Arbitrator
from .config import PollConfig
from .models import FeedType, RawEventRecord
from .normalize import normalize

log = logging.getLogger("quakewatch.poller")

ALL_FEEDS = (FeedType.QUAKE, FeedType.TSUNAMI, FeedType.EEW)
QUAKE_TSUNAMI = (FeedType.QUAKE, FeedType.TSUNAMI)

# re-check the dynamic cadence this often while waiting
_CADENCE_STEP_SECONDS = 1.0


class FeedSource(Protocol):
    async def poll(self, feed_type: FeedType) -> RawEventRecord | None: ...


class Poller:
    """
    Two scheduled loops (EEW on a fixed cadence, quake+tsunami on the
    arbitrator's dynamic cadence) plus an on-demand ``poll_now``.

    ``suspend`` bumps a generation counter: results of polls that were in
    flight when the poller was suspended are dropped, so resuming never
    replays a burst of old answers.
    """

    def __init__(
        self,
        source: FeedSource,
        arbitrator: Arbitrator,
        poll_cfg: PollConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.source = source
        self.arbitrator = arbitrator
        self.poll_cfg = poll_cfg
        self._sleep = sleep
        self._resume = asyncio.Event()
        self._resume.set()
        self._generation = 0
        self._tasks: List[asyncio.Task] = []

    @property
    def suspended(self) -> bool:
        return not self._resume.is_set()

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._eew_loop(), name="eew_poller"),
            asyncio.create_task(self._quake_tsunami_loop(), name="quake_tsunami_poller"),
        ]
        log.info(
            "Poller started (eew=%.1fs quake/tsunami=%dms)",
            self.poll_cfg.eew_interval_seconds,
            self.arbitrator.state.poll_cadence_ms,
        )

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def suspend(self) -> None:
        self._generation += 1
        self._resume.clear()
        log.info("Poller suspended")

    def resume(self) -> None:
        """
        Wake the loops. Each waits one interval before its next fetch, so
        callers that need fresh data right away follow this with ``poll_now``.
        """
        self._resume.set()
        log.info("Poller resumed")

    async def _wait_resumed(self) -> bool:
        """True when the loop had to wait out a suspension."""
        if self._resume.is_set():
            return False
        await self._resume.wait()
        return True

    async def _poll_one(self, feed_type: FeedType) -> Optional[RawEventRecord]:
        try:
            return await self.source.poll(feed_type)
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception("%s source raised; treating as no update", feed_type.value)
            return None

    async def poll_feeds(self, feeds: Sequence[FeedType]) -> int:
        """
        Fetch ``feeds`` concurrently and deliver what came back.
        Returns the number of events handed to the arbitrator.
        """
        if self.suspended:
            return 0
        gen = self._generation
        results = await asyncio.gather(*(self._poll_one(ft) for ft in feeds))

        if gen != self._generation or self.suspended:
            log.debug("Dropping %d poll result(s) from before suspend", sum(r is not None for r in results))
            return 0

        delivered = 0
        now = self.arbitrator.clock()
        window = self.arbitrator.alert_cfg.freshness_seconds
        for raw in results:
            if raw is None:
                continue
            await self.arbitrator.submit(normalize(raw, now, window))
            delivered += 1
        await self.arbitrator.refresh()
        return delivered

    async def poll_now(self) -> int:
        """Poll every feed once, right now. The scheduled loops are not reset."""
        return await self.poll_feeds(ALL_FEEDS)

    async def _wait_cadence(self) -> None:
        waited = 0.0
        while True:
            target = self.arbitrator.state.poll_cadence_ms / 1000.0
            remaining = target - waited
            if remaining <= 0:
                return
            step = min(_CADENCE_STEP_SECONDS, remaining)
            await self._sleep(step)
            waited += step

    async def _eew_loop(self) -> None:
        while True:
            if await self._wait_resumed():
                await self._sleep(self.poll_cfg.eew_interval_seconds)
                continue
            try:
                await self.poll_feeds((FeedType.EEW,))
            except asyncio.CancelledError:
                raise
            except Exception:
                log.exception("EEW poll cycle failed")
            await self._sleep(self.poll_cfg.eew_interval_seconds)

    async def _quake_tsunami_loop(self) -> None:
        while True:
            if await self._wait_resumed():
                await self._wait_cadence()
                continue
            try:
                await self.poll_feeds(QUAKE_TSUNAMI)
            except asyncio.CancelledError:
                raise
            except Exception:
                log.exception("Quake/tsunami poll cycle failed")
            await self._wait_cadence()
