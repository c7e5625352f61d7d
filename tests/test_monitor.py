from __future__ import annotations

import asyncio
import dataclasses
import json
import tempfile
import unittest

from quakewatch.config import AppConfig, AudioConfig, FeedConfig
from quakewatch.main import snapshot_to_dict
from quakewatch.models import DisplayMode, FeedType
from quakewatch.monitor import AlertMonitor
from quakewatch.poller import ALL_FEEDS
from quakewatch.signals import ResyncSignal

from .common import FakeClock, FakeSource, RecordingOutput, make_eew, make_quake, make_tsunami


async def _park(_seconds: float) -> None:
    await asyncio.Event().wait()


class TestAlertMonitor(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.cfg = AppConfig(audio=AudioConfig(audio_dir=tmp.name, sample_rate=8000))
        self.clock = FakeClock()
        self.source = FakeSource()
        self.output = RecordingOutput()
        self.resync = ResyncSignal()
        self.monitor = AlertMonitor(
            self.cfg,
            source=self.source,
            audio_output=self.output,
            resync=self.resync,
            clock=self.clock,
            sleep=_park,
        )

    async def asyncTearDown(self):
        await self.monitor.stop()

    async def test_start_polls_every_feed_and_subscribes(self):
        await self.monitor.start()
        for _ in range(20):
            await asyncio.sleep(0)
        self.assertCountEqual(self.source.calls, list(ALL_FEEDS))
        self.assertEqual(len(self.resync), 1)

        await self.monitor.stop()
        self.assertEqual(len(self.resync), 0)
        self.assertFalse(self.monitor.poller.running)

    async def test_uses_the_dashboard_signal_even_before_anyone_subscribed(self):
        self.assertEqual(len(self.resync), 0)
        self.assertIs(self.monitor.resync, self.resync)

    async def test_dashboard_resync_after_start_runs_one_manual_poll(self):
        await self.monitor.start()
        for _ in range(20):
            await asyncio.sleep(0)
        self.assertEqual(len(self.source.calls), 3)

        self.resync.dispatch()
        self.resync.dispatch()
        await self.monitor._resync_task
        self.assertEqual(len(self.source.calls), 6)
        self.assertCountEqual(self.source.calls[3:], list(ALL_FEEDS))

    async def test_restart_after_stop_still_sounds_alerts(self):
        await self.monitor.start()
        await self.monitor.stop()
        await self.monitor.start()

        await self.monitor.enter_test()
        await asyncio.gather(*list(self.monitor.audio._tasks))
        self.assertEqual(len(self.output.paths), 1)
        self.assertIs(self.monitor.arbitrator.audio, self.monitor.audio)

    async def test_restart_reopens_owned_feed_client(self):
        local = FeedConfig(base_url="http://127.0.0.1:9/v2/history", timeout_seconds=0.5)
        cfg = dataclasses.replace(self.cfg, feed=local)
        monitor = AlertMonitor(cfg, audio_output=RecordingOutput(), sleep=_park)
        first = monitor.source
        await monitor.start()
        await monitor.stop()
        self.assertTrue(first._client.is_closed)

        await monitor.start()
        try:
            self.assertIsNot(monitor.source, first)
            self.assertIs(monitor.poller.source, monitor.source)
            self.assertFalse(monitor.source._client.is_closed)
        finally:
            await monitor.stop()

    async def test_manual_refresh_updates_snapshot(self):
        self.source.records = {
            FeedType.QUAKE: make_quake(magnitude=6.5, code=55),
            FeedType.TSUNAMI: make_tsunami(grades=(("Watch", "三陸"),)),
        }
        n = await self.monitor.manual_refresh()
        self.assertEqual(n, 2)

        snap = self.monitor.snapshot()
        self.assertEqual(snap.latest_quake.magnitude, 6.5)
        self.assertEqual(snap.poll_cadence_ms, 6000)
        self.assertEqual(snap.last_sync_at, self.clock())
        await asyncio.gather(*list(self.monitor.audio._tasks))
        self.assertEqual(len(self.output.paths), 2)

    async def test_test_mode_round_trip(self):
        self.source.records = {FeedType.EEW: make_eew()}
        await self.monitor.enter_test()
        self.assertEqual(self.monitor.snapshot().display_mode, DisplayMode.EEW)
        self.assertTrue(self.monitor.snapshot().test_mode)
        self.assertEqual(self.source.calls, [])

        await self.monitor.exit_test()
        snap = self.monitor.snapshot()
        self.assertFalse(snap.test_mode)
        self.assertFalse(snap.latest_eew.synthetic)
        self.assertEqual(snap.display_mode, DisplayMode.EEW)

    async def test_context_manager(self):
        async with AlertMonitor(self.cfg, source=FakeSource(), audio_output=RecordingOutput(), sleep=_park) as m:
            self.assertTrue(m.poller.running)
        self.assertFalse(m.poller.running)

    async def test_snapshot_serializes(self):
        self.source.records = {FeedType.QUAKE: make_quake(code=45), FeedType.TSUNAMI: make_tsunami()}
        await self.monitor.manual_refresh()
        data = snapshot_to_dict(self.monitor.snapshot())
        text = json.dumps(data, ensure_ascii=False)

        self.assertEqual(data["latest_quake"]["intensity"], "5-")
        self.assertEqual(data["display_mode"], "seismic")
        self.assertIsNone(data["latest_eew"])
        self.assertEqual(data["latest_tsunami"]["areas"][0]["grade"], "Warning")
        self.assertIn("2024-01-01T07:10:00+00:00", text)

