import time
import unittest

from reelproxy.core.range_stream import RangeStreamServer, SessionRetired
from reelproxy.core.reaper import IdleReaper
from reelproxy.core.session_registry import SessionRegistry

from fakes import FakeEngine, magnet


class TestIdleReaper(unittest.TestCase):
    def setUp(self):
        self.engine = FakeEngine()
        self.registry = SessionRegistry(self.engine)
        self.reaper = IdleReaper(self.registry, interval_seconds=60, ttl_seconds=3600)

    def test_idle_session_is_retired(self):
        session = self.registry.acquire(magnet("a"))
        now = session.last_accessed_at + 3601

        self.assertEqual(self.reaper.sweep(now), ["a" * 40])
        self.assertFalse(session.is_ready)
        self.assertTrue(self.engine.handles[0].destroyed)
        self.assertIsNone(self.registry.get("a" * 40))

    def test_session_with_open_ticket_survives(self):
        busy = self.registry.acquire(magnet("a"))
        idle = self.registry.acquire(magnet("b"))
        response = RangeStreamServer().prepare(busy, "bytes=0-10")
        now = max(busy.last_accessed_at, idle.last_accessed_at) + 7200

        self.assertEqual(self.reaper.sweep(now), ["b" * 40])
        self.assertTrue(busy.is_ready)
        self.assertIs(self.registry.get("a" * 40), busy)

        response.close()
        self.assertEqual(self.reaper.sweep(now), ["a" * 40])

    def test_recently_used_session_survives(self):
        session = self.registry.acquire(magnet("a"))
        self.assertEqual(self.reaper.sweep(session.last_accessed_at + 10), [])

    def test_ticket_after_retirement_is_refused(self):
        session = self.registry.acquire(magnet("a"))
        self.reaper.sweep(session.last_accessed_at + 3601)
        with self.assertRaises(SessionRetired):
            RangeStreamServer().prepare(session, None)
        fresh = self.registry.acquire(magnet("a"))
        self.assertIsNot(fresh, session)

    def test_background_thread_sweeps_and_stops(self):
        reaper = IdleReaper(self.registry, interval_seconds=0.05, ttl_seconds=0)
        session = self.registry.acquire(magnet("a"))
        session.last_accessed_at -= 10

        reaper.start()
        self.assertTrue(reaper.is_running)
        deadline = time.time() + 2
        while self.registry.get("a" * 40) is not None and time.time() < deadline:
            time.sleep(0.02)
        reaper.stop()

        self.assertIsNone(self.registry.get("a" * 40))
        self.assertFalse(reaper.is_running)


if __name__ == "__main__":
    unittest.main()
