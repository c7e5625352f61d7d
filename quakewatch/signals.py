from __future__ import annotations

import logging
from typing import Callable, List

log = logging.getLogger("quakewatch.signals")


class ResyncSignal:
    """Dashboard-wide "force sync" broadcast. Callbacks run synchronously on dispatch."""

    def __init__(self) -> None:
        self._subscribers: List[Callable[[], None]] = []

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass

        return _unsubscribe

    def dispatch(self) -> None:
        for cb in list(self._subscribers):
            try:
                cb()
            except Exception:
                log.exception("Resync subscriber failed")

    def __len__(self) -> int:
        return len(self._subscribers)
