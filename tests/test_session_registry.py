import threading
import time
import unittest

from reelproxy.core.event_bus import EventBus, Events
from reelproxy.core.session_registry import (
    SessionError,
    SessionErrorKind,
    SessionRegistry,
    select_playable_file,
    session_key_for,
)

from fakes import FakeEngine, FakeFile, magnet


class ExplodingFile(FakeFile):
    """Engine bindings can raise their own errors, not only EngineError."""

    def select(self):
        raise RuntimeError("invalid torrent handle used")


class TestSessionKeys(unittest.TestCase):
    def test_key_is_lowercase_infohash(self):
        self.assertEqual(session_key_for(magnet("A")), "a" * 40)

    def test_key_falls_back_to_locator_prefix(self):
        locator = "magnet:?dn=no-hash-here-but-long-enough-to-truncate"
        self.assertEqual(session_key_for(locator), locator[:40])


class TestPlayableSelection(unittest.TestCase):
    def test_largest_video_file_wins(self):
        files = [
            FakeFile("sample.mkv", 50),
            FakeFile("Movie.MKV", 5000),
            FakeFile("extras.iso", 90000),
            FakeFile("readme.txt", 10),
        ]
        self.assertEqual(select_playable_file(files).name, "Movie.MKV")

    def test_no_video_file(self):
        self.assertIsNone(select_playable_file([FakeFile("a.nfo", 1), FakeFile("b.srt", 2)]))


class TestSessionRegistry(unittest.TestCase):
    def test_concurrent_acquires_share_one_session(self):
        engine = FakeEngine(ready_delay=0.3)
        registry = SessionRegistry(engine, startup_timeout_seconds=5)
        results = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            results.append(registry.acquire(magnet("c")))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(5)

        self.assertEqual(len(results), 8)
        self.assertTrue(all(s is results[0] for s in results))
        self.assertEqual(len(engine.add_calls), 1)
        self.assertEqual(registry.stats()["activeSessions"], 1)

    def test_ready_session_selects_file_and_enables_sequential(self):
        video = FakeFile("movie.mp4", 1000)
        other = FakeFile("extra.mkv", 10)
        engine = FakeEngine(files_factory=lambda: [other, video])
        registry = SessionRegistry(engine)

        session = registry.acquire(magnet())
        self.assertIs(session.selected_file, video)
        self.assertTrue(video.selected)
        self.assertFalse(other.selected)
        self.assertTrue(engine.handles[0].sequential)
        self.assertIs(registry.get("a" * 40), session)

    def test_startup_timeout_destroys_handle(self):
        engine = FakeEngine(ready_delay=0.5)
        registry = SessionRegistry(engine, startup_timeout_seconds=0.1)

        with self.assertRaises(SessionError) as ctx:
            registry.acquire(magnet())
        self.assertEqual(ctx.exception.kind, SessionErrorKind.TIMEOUT)
        self.assertTrue(engine.handles[0].destroyed)
        self.assertIsNone(registry.get("a" * 40))

    def test_no_playable_file(self):
        engine = FakeEngine(files_factory=lambda: [FakeFile("setup.exe", 100)])
        registry = SessionRegistry(engine)
        failures = []
        registry.event_bus.subscribe(Events.SESSION_FAILED, failures.append)

        with self.assertRaises(SessionError) as ctx:
            registry.acquire(magnet())
        self.assertEqual(ctx.exception.kind, SessionErrorKind.NO_PLAYABLE_FILE)
        self.assertTrue(engine.handles[0].destroyed)
        self.assertEqual(failures[0]["kind"], "NO_PLAYABLE_FILE")

    def test_engine_failure(self):
        registry = SessionRegistry(FakeEngine(fail=True))
        with self.assertRaises(SessionError) as ctx:
            registry.acquire(magnet())
        self.assertEqual(ctx.exception.kind, SessionErrorKind.ENGINE_FAILURE)

    def test_failed_creation_is_retried(self):
        engine = FakeEngine(fail=True)
        registry = SessionRegistry(engine)
        with self.assertRaises(SessionError):
            registry.acquire(magnet())

        engine.fail = False
        session = registry.acquire(magnet())
        self.assertTrue(session.is_ready)
        self.assertEqual(len(engine.add_calls), 2)

    def test_waiters_see_the_same_failure(self):
        engine = FakeEngine(ready_delay=0.4)
        registry = SessionRegistry(engine, startup_timeout_seconds=0.2)
        errors = []
        barrier = threading.Barrier(4)

        def worker():
            barrier.wait()
            try:
                registry.acquire(magnet())
            except SessionError as e:
                errors.append(e.kind)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(5)

        self.assertEqual(errors, [SessionErrorKind.TIMEOUT] * 4)
        self.assertEqual(len(engine.add_calls), 1)

    def test_retired_session_is_replaced(self):
        engine = FakeEngine()
        registry = SessionRegistry(engine)
        first = registry.acquire(magnet())
        first.retire()

        second = registry.acquire(magnet())
        self.assertIsNot(first, second)
        self.assertEqual(len(engine.add_calls), 2)

    def test_release_and_shutdown(self):
        engine = FakeEngine()
        bus = EventBus()
        registry = SessionRegistry(engine, bus)
        retired = []
        bus.subscribe(Events.SESSION_RETIRED, retired.append)

        registry.acquire(magnet("a"))
        registry.acquire(magnet("b"))
        self.assertTrue(registry.release("a" * 40))
        self.assertFalse(registry.release("a" * 40))
        self.assertTrue(engine.handles[0].destroyed)

        registry.shutdown()
        self.assertTrue(engine.handles[1].destroyed)
        self.assertTrue(engine.shut_down)
        self.assertEqual(registry.sessions(), [])
        self.assertEqual(len(retired), 2)
        with self.assertRaises(SessionError):
            registry.acquire(magnet("c"))

    def test_shutdown_during_startup_destroys_the_new_handle(self):
        engine = FakeEngine(ready_delay=0.5)
        registry = SessionRegistry(engine, startup_timeout_seconds=5)
        errors = []

        def worker():
            try:
                registry.acquire(magnet())
            except SessionError as e:
                errors.append(e.kind)

        thread = threading.Thread(target=worker)
        thread.start()
        time.sleep(0.1)
        registry.shutdown()
        thread.join(5)

        self.assertEqual(errors, [SessionErrorKind.ENGINE_FAILURE])
        self.assertEqual(registry.sessions(), [])
        self.assertTrue(engine.handles[0].destroyed)
        self.assertEqual(registry.stats()["pendingSessions"], 0)

    def test_unexpected_error_after_add_destroys_handle(self):
        engine = FakeEngine(files_factory=lambda: [ExplodingFile("movie.mkv", 1000)])
        registry = SessionRegistry(engine)

        with self.assertRaises(SessionError) as ctx:
            registry.acquire(magnet())
        self.assertEqual(ctx.exception.kind, SessionErrorKind.ENGINE_FAILURE)
        self.assertTrue(engine.handles[0].destroyed)
        self.assertIsNone(registry.get("a" * 40))

    def test_snapshot(self):
        registry = SessionRegistry(FakeEngine())
        registry.acquire(magnet())
        snap = registry.snapshot()
        self.assertEqual(snap[0]["sessionKey"], "a" * 40)
        self.assertEqual(snap[0]["file"], "movie.mp4")
        self.assertEqual(snap[0]["openTickets"], 0)


if __name__ == "__main__":
    unittest.main()
