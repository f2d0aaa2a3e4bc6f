"""
Session Registry
Owns every fetch handle. Concurrent requests for the same content share one
session; creation happens once per key.
"""
from concurrent.futures import Future
from enum import Enum
from pathlib import PurePosixPath
from typing import Dict, List, Optional
import logging
import threading
import time

from ..engine.base import EngineError, FetchEngine, FetchFile
from ..models.candidate import Candidate
from ..models.session import Session
from .event_bus import EventBus, Events

logger = logging.getLogger(__name__)

DEFAULT_STARTUP_TIMEOUT_SECONDS = 30.0
PLAYABLE_EXTENSIONS = ('.mp4', '.avi', '.mkv', '.mov', '.wmv', '.flv', '.webm', '.m4v')


class SessionErrorKind(Enum):
    TIMEOUT = "TIMEOUT"
    NO_PLAYABLE_FILE = "NO_PLAYABLE_FILE"
    ENGINE_FAILURE = "ENGINE_FAILURE"


class SessionError(Exception):
    def __init__(self, kind: SessionErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


def session_key_for(locator: str) -> str:
    """Lowercase info-hash, or the first 40 characters of a locator without one."""
    info_hash = Candidate.extract_infohash(locator)
    return info_hash or (locator or "")[:40]


def is_playable(file: FetchFile) -> bool:
    return PurePosixPath(str(file.name or "").lower()).suffix in PLAYABLE_EXTENSIONS


def select_playable_file(files: List[FetchFile]) -> Optional[FetchFile]:
    """Largest playable file; the first one listed wins a size tie."""
    best = None
    for file in files:
        if not is_playable(file):
            continue
        if best is None or file.length > best.length:
            best = file
    return best


class SessionRegistry:
    """Map of session key to live Session, at most one per key"""

    def __init__(
        self,
        engine: FetchEngine,
        event_bus: Optional[EventBus] = None,
        startup_timeout_seconds: float = DEFAULT_STARTUP_TIMEOUT_SECONDS,
    ):
        self.engine = engine
        self.event_bus = event_bus or EventBus()
        self.startup_timeout_seconds = float(startup_timeout_seconds)
        self._sessions: Dict[str, Session] = {}
        self._pending: Dict[str, Future] = {}
        self._lock = threading.RLock()
        self._closed = False

    def acquire(self, locator: str) -> Session:
        """
        Return the live session for a locator, creating it if needed.

        Callers arriving while a creation is in flight wait on the same
        future and get the same Session or the same SessionError.
        """
        key = session_key_for(locator)
        with self._lock:
            if self._closed:
                raise SessionError(SessionErrorKind.ENGINE_FAILURE, "Session registry is shut down")
            session = self._sessions.get(key)
            if session is not None and session.is_ready:
                return session
            if session is not None:
                # Retired but not yet torn down; a fresh fetch replaces it.
                self._sessions.pop(key, None)
            pending = self._pending.get(key)
            creator = pending is None
            if creator:
                pending = Future()
                self._pending[key] = pending

        if not creator:
            return pending.result()

        try:
            session = self._create(key, locator)
        except SessionError as e:
            with self._lock:
                self._pending.pop(key, None)
            self.event_bus.emit(Events.SESSION_FAILED, {"session_key": key, "kind": e.kind.value, "error": e.message})
            pending.set_exception(e)
            raise
        except Exception as e:
            with self._lock:
                self._pending.pop(key, None)
            logger.exception("Unexpected failure creating session %s", key)
            error = SessionError(SessionErrorKind.ENGINE_FAILURE, str(e))
            pending.set_exception(error)
            raise error from e

        with self._lock:
            self._pending.pop(key, None)
            closed = self._closed
            if not closed:
                self._sessions[key] = session
        if closed:
            # shutdown() ran while this session was starting; nothing will drain it later.
            session.retire()
            self._destroy_quietly(session.fetch_handle)
            error = SessionError(SessionErrorKind.ENGINE_FAILURE, "Session registry is shut down")
            self.event_bus.emit(Events.SESSION_FAILED, {"session_key": key, "kind": error.kind.value, "error": error.message})
            pending.set_exception(error)
            raise error
        pending.set_result(session)
        self.event_bus.emit(Events.SESSION_CREATED, {"session_key": key, "file": session.file_name})
        return session

    def _create(self, key: str, locator: str) -> Session:
        logger.info("Starting fetch session %s", key)
        try:
            handle = self.engine.add_content(locator)
        except EngineError as e:
            raise SessionError(SessionErrorKind.ENGINE_FAILURE, str(e)) from e

        try:
            return self._prepare(key, locator, handle)
        except BaseException:
            # Any failure after add_content leaves a live handle that only we know about.
            self._destroy_quietly(handle)
            raise

    def _prepare(self, key: str, locator: str, handle) -> Session:
        try:
            ready = handle.wait_until_ready(self.startup_timeout_seconds)
        except EngineError as e:
            raise SessionError(SessionErrorKind.ENGINE_FAILURE, str(e)) from e
        if not ready:
            raise SessionError(
                SessionErrorKind.TIMEOUT,
                f"Content was not ready after {self.startup_timeout_seconds:g}s",
            )

        files = list(handle.files)
        selected = select_playable_file(files)
        if selected is None:
            raise SessionError(SessionErrorKind.NO_PLAYABLE_FILE, "No video file found in content")

        try:
            selected.select()
            for file in files:
                if file is not selected:
                    file.deselect()
            handle.set_sequential(True)
        except EngineError as e:
            raise SessionError(SessionErrorKind.ENGINE_FAILURE, str(e)) from e

        logger.info("Session %s ready, streaming %s (%d bytes)", key, selected.name, selected.length)
        return Session(session_key=key, locator=locator, fetch_handle=handle, selected_file=selected)

    @staticmethod
    def _destroy_quietly(handle):
        try:
            handle.destroy()
        except EngineError as e:
            logger.warning("Failed to destroy fetch handle: %s", e)

    def get(self, key: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(key)

    def sessions(self) -> List[Session]:
        with self._lock:
            return list(self._sessions.values())

    def release(self, key: str) -> bool:
        """Retire and tear down one session regardless of idleness."""
        with self._lock:
            session = self._sessions.pop(key, None)
        if session is None:
            return False
        session.retire()
        self._teardown(session)
        return True

    def reap_idle(self, ttl_seconds: float, now: Optional[float] = None) -> List[str]:
        """Retire sessions idle for longer than ttl_seconds; returns their keys."""
        now = time.time() if now is None else now
        retired: List[Session] = []
        with self._lock:
            for key, session in list(self._sessions.items()):
                if session.retire_if_idle(ttl_seconds, now):
                    del self._sessions[key]
                    retired.append(session)
        # Handles are torn down outside the registry lock.
        for session in retired:
            self._teardown(session)
        return [session.session_key for session in retired]

    def _teardown(self, session: Session):
        logger.info("Retiring session %s", session.session_key)
        self._destroy_quietly(session.fetch_handle)
        self.event_bus.emit(Events.SESSION_RETIRED, {"session_key": session.session_key})

    def snapshot(self) -> List[Dict]:
        now = time.time()
        return [
            {
                "sessionKey": s.session_key,
                "file": s.file_name,
                "size": s.file_size,
                "state": s.state.value,
                "openTickets": s.open_tickets,
                "createdAt": s.created_at,
                "idleSeconds": round(now - s.last_accessed_at, 1),
            }
            for s in self.sessions()
        ]

    def stats(self) -> Dict:
        with self._lock:
            sessions = list(self._sessions.values())
            pending = len(self._pending)
        return {
            "activeSessions": len(sessions),
            "pendingSessions": pending,
            "openTickets": sum(s.open_tickets for s in sessions),
        }

    def shutdown(self):
        """Destroy every handle, clear the map and stop the engine."""
        with self._lock:
            self._closed = True
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.retire()
            self._teardown(session)
        try:
            self.engine.shutdown()
        except EngineError as e:
            logger.warning("Engine shutdown failed: %s", e)
