"""
Idle Reaper
Background sweep that retires sessions nobody has streamed from for a while.
"""
from typing import List, Optional
import logging
import threading

from .session_registry import SessionRegistry

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 1800.0
DEFAULT_TTL_SECONDS = 3600.0


class IdleReaper:
    def __init__(
        self,
        registry: SessionRegistry,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
    ):
        self.registry = registry
        self.interval_seconds = float(interval_seconds)
        self.ttl_seconds = float(ttl_seconds)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def sweep(self, now: Optional[float] = None) -> List[str]:
        """Retire every session with no open tickets idle longer than the TTL."""
        retired = self.registry.reap_idle(self.ttl_seconds, now)
        if retired:
            logger.info("Reaped %d idle session(s): %s", len(retired), ", ".join(retired))
        return retired

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        with self._lock:
            if self.is_running:
                return
            self._stop.clear()
            self._thread = threading.Thread(target=self._run, name="idle-reaper", daemon=True)
            self._thread.start()
        logger.info("Idle reaper started (every %gs, ttl %gs)", self.interval_seconds, self.ttl_seconds)

    def stop(self, timeout: Optional[float] = 5.0):
        with self._lock:
            thread = self._thread
            self._thread = None
            self._stop.set()
        if thread is not None:
            thread.join(timeout)

    def _run(self):
        while not self._stop.wait(self.interval_seconds):
            try:
                self.sweep()
            except Exception:
                logger.exception("Idle sweep failed")
