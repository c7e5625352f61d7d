"""
Operator tool for checking the alert chain without a real quake.

  quakewatch-inject tone emergency --out /tmp/emergency.wav --play
  quakewatch-inject simulate --seconds 20
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from ..audio import CommandToneOutput, render_pattern_wav
from ..config import load_config
from ..models import AlertClass
from ..monitor import AlertMonitor

log = logging.getLogger("quakewatch.inject")


def cmd_tone(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    cls = AlertClass(args.alert_class)
    out = Path(args.out) if args.out else Path(cfg.audio.audio_dir) / f"inject_{cls.value}.wav"
    render_pattern_wav(out, cls, cfg.audio.sample_rate, cfg.audio.volume)
    print(f"OK: built {out}")

    if args.play:
        player = CommandToneOutput(cfg.audio.player)
        try:
            asyncio.run(player.play_wav(out))
        except RuntimeError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
    return 0


async def _simulate(cfg_path: Optional[str], seconds: float) -> int:
    cfg = load_config(cfg_path)
    async with AlertMonitor(cfg) as monitor:
        await monitor.enter_test()
        snap = monitor.snapshot()
        eew = snap.latest_eew
        print(f"TEST MODE on: display={snap.display_mode.value} place={eew.place if eew else '-'}")
        await asyncio.sleep(max(0.0, seconds))
        await monitor.exit_test()
        snap = monitor.snapshot()
        print(f"TEST MODE off: display={snap.display_mode.value} cadence={snap.poll_cadence_ms}ms")
    return 0


def cmd_simulate(args: argparse.Namespace) -> int:
    return asyncio.run(_simulate(args.config, args.seconds))


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
    )
    ap = argparse.ArgumentParser(prog="quakewatch-inject", description="Exercise quakewatch alert tones and test mode")
    ap.add_argument("--config", default=None, help="Path to quakewatch.yaml")

    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_tone = sub.add_parser("tone", help="Render an alert tone pattern to a WAV")
    ap_tone.add_argument("alert_class", choices=[c.value for c in AlertClass])
    ap_tone.add_argument("--out", help="Output WAV path (default: <audio_dir>/inject_<class>.wav)")
    ap_tone.add_argument("--play", action="store_true", help="Play the WAV through the configured player")
    ap_tone.set_defaults(func=cmd_tone)

    ap_sim = sub.add_parser("simulate", help="Run the monitor, hold test mode for a while, then resync")
    ap_sim.add_argument("--seconds", default=15.0, type=float, help="How long to stay in test mode")
    ap_sim.set_defaults(func=cmd_simulate)

    args = ap.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
