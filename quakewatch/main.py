from __future__ import annotations

import argparse
import asyncio
import dataclasses
import datetime as dt
import enum
import json
import logging
import signal
import sys
from typing import Any

from .config import load_config, AppConfig
from .models import MonitorSnapshot
from .monitor import AlertMonitor
from .severity import intensity_label

log = logging.getLogger("quakewatch")


def _setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
    )


def _jsonable(v: Any) -> Any:
    if isinstance(v, dt.datetime):
        return v.isoformat()
    if isinstance(v, enum.Enum):
        return v.value
    if isinstance(v, (list, tuple)):
        return [_jsonable(x) for x in v]
    if isinstance(v, dict):
        return {str(k): _jsonable(x) for k, x in v.items()}
    return v


def snapshot_to_dict(snap: MonitorSnapshot) -> dict:
    out = _jsonable(dataclasses.asdict(snap))
    quake = out.get("latest_quake")
    if quake is not None:
        quake["intensity"] = intensity_label(quake.get("max_intensity_code"))
    return out


async def _run_once(cfg: AppConfig) -> int:
    monitor = AlertMonitor(cfg)
    try:
        n = await monitor.manual_refresh()
        log.info("One-shot poll delivered %d event(s)", n)
        print(json.dumps(snapshot_to_dict(monitor.snapshot()), ensure_ascii=False, indent=2))
    finally:
        await monitor.stop()
    return 0


async def _run_forever(cfg: AppConfig) -> int:
    monitor = AlertMonitor(cfg)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            pass
    if hasattr(signal, "SIGUSR1"):
        try:
            loop.add_signal_handler(signal.SIGUSR1, monitor.resync.dispatch)
        except (NotImplementedError, RuntimeError):
            pass

    await monitor.start()
    try:
        await stop.wait()
        log.info("Shutdown requested")
    finally:
        await monitor.stop()
    return 0


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(prog="quakewatch", description="Quake / tsunami / EEW alert monitor")
    ap.add_argument("--config", default=None, help="Path to quakewatch.yaml (defaults if omitted)")
    ap.add_argument("--once", action="store_true", help="Poll every feed once, print the snapshot as JSON and exit")
    ap.add_argument("--log-level", default="INFO")
    args = ap.parse_args(argv)

    _setup_logging(args.log_level)
    cfg = load_config(args.config)
    if args.once:
        return asyncio.run(_run_once(cfg))
    return asyncio.run(_run_forever(cfg))


if __name__ == "__main__":
    raise SystemExit(main())
