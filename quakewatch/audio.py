from __future__ import annotations

import asyncio
import logging
import math
import shutil
import wave
from array import array
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence, Set

from .config import AudioConfig
from .models import AlertClass

log = logging.getLogger("quakewatch.audio")

_PCM_MAX = 32767


def _tone_pcm(
    freq_hz: float,
    seconds: float,
    sample_rate: int,
    peak: int,
    *,
    sweep_to_hz: float | None = None,
    square: bool = False,
    fade_out: bool = False,
) -> array:
    """
    One tone as 16-bit mono samples. ``sweep_to_hz`` bends the pitch
    exponentially over the tone; the phase accumulator keeps it click-free.
    """
    sr = int(sample_rate)
    n = int(max(0.0, float(seconds)) * sr)
    out = array("h")
    phase = 0.0
    for i in range(n):
        frac = i / n
        f = freq_hz if sweep_to_hz is None else freq_hz * (sweep_to_hz / freq_hz) ** frac
        phase += (2.0 * math.pi * f) / sr
        v = math.sin(phase)
        if square:
            v = 1.0 if v >= 0 else -1.0
        gain = (1.0 - frac) if fade_out else 1.0
        out.append(int(v * peak * gain))
    return out


def _silence_pcm(seconds: float, sample_rate: int) -> array:
    n = int(max(0.0, float(seconds)) * int(sample_rate))
    return array("h", [0] * n)


def _concat_pcm(parts: Sequence[array]) -> array:
    out = array("h")
    for p in parts:
        out.extend(p)
    return out


def _mix_pcm(a: array, b: array) -> array:
    """Overlay two tracks; the result is as long as the longer one."""
    n = max(len(a), len(b))
    out = array("h", [0] * n)
    for i in range(n):
        s = (a[i] if i < len(a) else 0) + (b[i] if i < len(b) else 0)
        out[i] = max(-_PCM_MAX, min(_PCM_MAX, s))
    return out


def render_pattern(alert_class: AlertClass, sample_rate: int, volume: float = 0.3) -> array:
    """
    Emergency: three bursts of eight short high beeps over a low sustained tone.
    Standard: two groups of three slower falling beeps.
    """
    sr = int(sample_rate)
    peak = int(_PCM_MAX * max(0.0, min(1.0, float(volume))))

    if alert_class == AlertClass.EMERGENCY:
        parts: List[array] = []
        for _ in range(3):
            for k in range(8):
                parts.append(_tone_pcm(2400.0 if k % 2 else 2000.0, 0.06, sr, peak, square=True))
                parts.append(_silence_pcm(0.04, sr))
            parts.append(_silence_pcm(0.2, sr))
        beeps = _concat_pcm(parts)
        drone = _tone_pcm(440.0, len(beeps) / sr, sr, int(peak * 0.35), fade_out=True)
        return _mix_pcm(beeps, drone)

    parts = []
    for group in range(2):
        for _ in range(3):
            parts.append(_tone_pcm(1200.0, 0.1, sr, peak, sweep_to_hz=600.0, square=True))
            parts.append(_silence_pcm(0.05, sr))
        if group == 0:
            parts.append(_silence_pcm(0.6, sr))
    return _concat_pcm(parts)


def write_pcm_wav(path: Path, pcm_mono: array, sample_rate: int) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(2)
        wf.setsampwidth(2)  # 16-bit
        wf.setframerate(int(sample_rate))
        out = array("h")
        for s in pcm_mono:
            out.append(s)
            out.append(s)
        wf.writeframes(out.tobytes())


def render_pattern_wav(path: Path, alert_class: AlertClass, sample_rate: int, volume: float = 0.3) -> Path:
    write_pcm_wav(path, render_pattern(alert_class, sample_rate, volume), sample_rate)
    return path


class ToneOutput(Protocol):
    async def play_wav(self, path: Path) -> None: ...


class NullToneOutput:
    async def play_wav(self, path: Path) -> None:
        log.info("Audio disabled; would play %s", path)


class CommandToneOutput:
    """Plays a WAV through an external player (aplay, paplay, afplay...)."""

    def __init__(self, command: Sequence[str]) -> None:
        if not command:
            raise ValueError("player command is empty")
        self.command = list(command)

    async def play_wav(self, path: Path) -> None:
        if not shutil.which(self.command[0]):
            raise RuntimeError(f"audio player not found: {self.command[0]}")
        proc = await asyncio.create_subprocess_exec(
            *self.command,
            str(path),
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, err = await proc.communicate()
        except asyncio.CancelledError:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            raise
        if proc.returncode != 0:
            msg = (err or b"").decode("utf-8", "replace").strip()
            raise RuntimeError(f"{self.command[0]} exited {proc.returncode}: {msg[:200]}")


class ToneSynthesizer:
    """
    Fire-and-forget alert sounds. ``play`` never blocks and never raises;
    at most ``max_pending`` playbacks run at once, extra requests are dropped.
    """

    def __init__(self, cfg: AudioConfig, output: Optional[ToneOutput] = None) -> None:
        self.cfg = cfg
        if output is not None:
            self.output: ToneOutput = output
        elif cfg.enabled:
            self.output = CommandToneOutput(cfg.player)
        else:
            self.output = NullToneOutput()
        self._tasks: Set[asyncio.Task] = set()
        self._wavs: Dict[AlertClass, Path] = {}
        self._render_lock = asyncio.Lock()
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def play(self, alert_class: AlertClass) -> None:
        if self._closed:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.warning("Audio: no running event loop; dropping %s tone", alert_class.value)
            return
        if len(self._tasks) >= self.cfg.max_pending:
            log.warning("Audio: %d playbacks pending; dropping %s tone", len(self._tasks), alert_class.value)
            return
        task = loop.create_task(self._play(alert_class), name=f"tone_{alert_class.value}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _wav_for(self, alert_class: AlertClass) -> Path:
        async with self._render_lock:
            path = self._wavs.get(alert_class)
            if path is not None and path.exists():
                return path
            path = Path(self.cfg.audio_dir) / f"tone_{alert_class.value}.wav"
            await asyncio.to_thread(
                render_pattern_wav, path, alert_class, self.cfg.sample_rate, self.cfg.volume
            )
            self._wavs[alert_class] = path
            return path

    async def _play(self, alert_class: AlertClass) -> None:
        try:
            path = await self._wav_for(alert_class)
            await self.output.play_wav(path)
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception("Audio: %s tone playback failed", alert_class.value)

    async def aclose(self) -> None:
        self._closed = True
        tasks = list(self._tasks)
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
