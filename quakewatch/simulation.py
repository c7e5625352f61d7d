from __future__ import annotations

import logging

from .arbitrator import Arbitrator
from .config import AlertConfig
from .normalize import synthetic_eew
from .poller import Poller

log = logging.getLogger("quakewatch.simulation")


class SimulationController:
    """Operator test alert: a synthetic EEW emergency with live polling held off."""

    def __init__(self, arbitrator: Arbitrator, poller: Poller, alert_cfg: AlertConfig) -> None:
        self.arbitrator = arbitrator
        self.poller = poller
        self.alert_cfg = alert_cfg

    @property
    def active(self) -> bool:
        return self.arbitrator.state.test_mode_active

    async def enter_test(self) -> None:
        if self.active:
            return
        self.poller.suspend()
        ev = synthetic_eew(self.alert_cfg.test_place_name, self.arbitrator.clock())
        log.warning("TEST MODE: injecting simulated EEW place=%s", ev.place)
        await self.arbitrator.begin_test(ev)

    async def exit_test(self) -> None:
        if not self.active:
            return
        await self.arbitrator.end_test()
        self.poller.resume()
        log.warning("TEST MODE: ended; resyncing with live feeds")
        await self.poller.poll_now()
