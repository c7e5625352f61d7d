"""
Arbitrator: dedup/fire, display priority, cadence recompute, rotation and
test-mode bookkeeping. Time is driven by a FakeClock.
"""

from __future__ import annotations

import unittest

from quakewatch.models import AlertClass, DisplayMode, FeedType, IssueKind
from quakewatch.normalize import normalize, synthetic_eew

from .common import FakeClock, NOW, RecordingAudio, make_arbitrator, make_eew, make_quake, make_tsunami


class TestArbitrator(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.audio = RecordingAudio()
        self.arb = make_arbitrator(self.clock, self.audio)

    async def _submit(self, raw):
        return await self.arb.submit(normalize(raw, self.clock(), 180))

    async def test_same_occurred_at_fires_once(self):
        self.assertTrue(await self._submit(make_eew()))
        self.assertFalse(await self._submit(make_eew()))
        self.assertEqual(self.audio.played, [AlertClass.EMERGENCY])
        self.assertEqual(self.arb.state.last_fired_at[FeedType.EEW], NOW)

    async def test_repeat_still_refreshes_display_value(self):
        await self._submit(make_quake(place="三陸沖"))
        await self._submit(make_quake(place="宮城県沖"))
        self.assertEqual(self.arb.state.latest_quake.place, "MIYAGI PREF OFF")
        self.assertEqual(len(self.audio.played), 1)

    async def test_dedup_is_per_feed_type(self):
        await self._submit(make_eew())
        await self._submit(make_quake(code=50))
        self.assertEqual(self.audio.played, [AlertClass.EMERGENCY, AlertClass.EMERGENCY])

    async def test_new_occurred_at_fires_again(self):
        await self._submit(make_eew(kind=IssueKind.FORECAST))
        self.clock.advance(20)
        await self._submit(make_eew(self.clock(), kind=IssueKind.FORECAST))
        self.assertEqual(self.audio.played, [AlertClass.STANDARD, AlertClass.STANDARD])

    async def test_eew_wins_over_quake(self):
        await self._submit(make_quake(magnitude=6.8, code=55))
        await self._submit(make_eew())
        self.assertEqual(self.arb.snapshot().display_mode, DisplayMode.EEW)

    async def test_eew_override_released_when_stale(self):
        await self._submit(make_eew())
        self.assertEqual(self.arb.state.display_mode, DisplayMode.EEW)
        self.clock.advance(181)
        await self.arb.refresh()
        self.assertEqual(self.arb.state.display_mode, DisplayMode.SEISMIC)

    async def test_cancelled_eew_releases_override(self):
        await self._submit(make_eew())
        self.clock.advance(5)
        await self._submit(make_eew(self.clock(), cancelled=True))
        self.assertNotEqual(self.arb.state.display_mode, DisplayMode.EEW)
        self.assertEqual(self.audio.played, [AlertClass.EMERGENCY])

    async def test_cadence_tightens_then_relaxes(self):
        self.assertEqual(self.arb.state.poll_cadence_ms, 30000)
        await self._submit(make_quake(magnitude=6.2, code=40))
        self.assertEqual(self.arb.state.poll_cadence_ms, 6000)

        self.clock.advance(200)
        await self.arb.refresh()
        self.assertEqual(self.arb.state.poll_cadence_ms, 30000)

    async def test_small_quake_keeps_baseline_cadence(self):
        await self._submit(make_quake(magnitude=5.9, code=40))
        self.assertEqual(self.arb.state.poll_cadence_ms, 30000)

    async def test_cancelled_tsunami_is_silent_and_relaxes(self):
        await self._submit(make_tsunami(grades=(("Warning", "石川県能登"),)))
        self.assertEqual(self.audio.played, [AlertClass.STANDARD])
        self.assertEqual(self.arb.state.poll_cadence_ms, 6000)

        self.clock.advance(60)
        fired = await self._submit(make_tsunami(self.clock(), cancelled=True))
        self.assertFalse(fired)
        self.assertEqual(self.audio.played, [AlertClass.STANDARD])
        self.assertEqual(self.arb.state.last_fired_at[FeedType.TSUNAMI], self.clock())
        self.assertEqual(self.arb.state.poll_cadence_ms, 30000)
        self.assertNotEqual(self.arb.state.display_mode, DisplayMode.EEW)

    async def test_stale_on_arrival_is_recorded_but_silent(self):
        self.clock.advance(600)
        fired = await self._submit(make_quake(NOW, code=70))
        self.assertFalse(fired)
        self.assertEqual(self.audio.played, [])
        self.assertIsNotNone(self.arb.state.latest_quake)

    async def test_rotation(self):
        self.assertEqual(await self.arb.rotate(), DisplayMode.TSUNAMI)
        self.assertEqual(await self.arb.rotate(), DisplayMode.SEISMIC)

    async def test_rotation_held_while_eew_active(self):
        await self._submit(make_eew())
        self.assertEqual(await self.arb.rotate(), DisplayMode.EEW)
        self.assertEqual(self.arb.state.rotation_mode, DisplayMode.SEISMIC)

    async def test_last_sync_only_for_live_events(self):
        await self.arb.submit(synthetic_eew("福島県沖", self.clock()))
        self.assertIsNone(self.arb.state.last_sync_at)
        await self._submit(make_quake())
        self.assertEqual(self.arb.state.last_sync_at, NOW)

    async def test_test_mode_stashes_and_restores_live_eew(self):
        await self._submit(make_eew(kind=IssueKind.FORECAST))
        live = self.arb.state.latest_eew

        self.clock.advance(10)
        self.assertTrue(await self.arb.begin_test(synthetic_eew("福島県中通り近海 中南部", self.clock())))
        snap = self.arb.snapshot()
        self.assertTrue(snap.test_mode)
        self.assertEqual(snap.display_mode, DisplayMode.EEW)
        self.assertTrue(snap.latest_eew.synthetic)
        self.assertEqual(self.audio.played, [AlertClass.STANDARD, AlertClass.EMERGENCY])

        await self.arb.end_test()
        self.assertFalse(self.arb.state.test_mode_active)
        self.assertIs(self.arb.state.latest_eew, live)
        self.assertEqual(self.arb.state.last_fired_at[FeedType.EEW], NOW)

        # the live EEW announced before the test is not announced again
        self.assertFalse(await self._submit(make_eew(kind=IssueKind.FORECAST)))

    async def test_test_mode_holds_eew_display_without_live_eew(self):
        await self.arb.begin_test(synthetic_eew("福島県沖", self.clock()))
        self.clock.advance(600)
        self.assertEqual(await self.arb.rotate(), DisplayMode.EEW)
        await self.arb.end_test()
        self.assertIsNone(self.arb.state.latest_eew)
        self.assertNotIn(FeedType.EEW, self.arb.state.last_fired_at)
        self.assertEqual(self.arb.state.display_mode, DisplayMode.SEISMIC)
