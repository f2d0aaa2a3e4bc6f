"""
Session Models
Tracks fetch-session liveness and per-response stream bookkeeping
"""
from dataclasses import dataclass, field
from typing import Optional
import threading
import time
import uuid
from enum import Enum


class SessionState(Enum):
    """Fetch session state"""
    READY = "ready"
    RETIRED = "retired"


@dataclass
class StreamTicket:
    """Bookkeeping for one in-progress HTTP response"""
    session_key: str
    ticket_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: float = field(default_factory=time.time)
    bytes_streamed: int = 0

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.started_at

    @property
    def throughput_kbps(self) -> float:
        elapsed = self.elapsed_time
        if elapsed <= 0:
            return 0.0
        return (self.bytes_streamed / 1024) / elapsed


@dataclass
class Session:
    """Represents one live content fetch owned by the session registry"""
    session_key: str
    locator: str
    fetch_handle: object
    selected_file: object

    state: SessionState = SessionState.READY
    open_tickets: int = 0
    created_at: float = field(default_factory=time.time)
    last_accessed_at: float = field(default_factory=time.time)

    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def attach_ticket(self) -> Optional[StreamTicket]:
        """Open a ticket unless the session has already been retired."""
        with self._lock:
            if self.state is not SessionState.READY:
                return None
            self.open_tickets += 1
            self.last_accessed_at = time.time()
            return StreamTicket(session_key=self.session_key)

    def detach_ticket(self, ticket: StreamTicket):
        with self._lock:
            self.open_tickets = max(0, self.open_tickets - 1)

    def touch(self):
        with self._lock:
            self.last_accessed_at = time.time()

    def retire_if_idle(self, ttl_seconds: float, now: Optional[float] = None) -> bool:
        """
        Atomically retire the session when nothing streams from it and it has
        been untouched for longer than ttl_seconds.
        """
        now = time.time() if now is None else now
        with self._lock:
            if self.state is not SessionState.READY:
                return False
            if self.open_tickets > 0:
                return False
            if now - self.last_accessed_at <= ttl_seconds:
                return False
            self.state = SessionState.RETIRED
            return True

    def retire(self):
        with self._lock:
            self.state = SessionState.RETIRED

    @property
    def is_ready(self) -> bool:
        return self.state is SessionState.READY

    @property
    def idle_seconds(self) -> float:
        return time.time() - self.last_accessed_at

    @property
    def file_name(self) -> str:
        return str(getattr(self.selected_file, "name", "") or "")

    @property
    def file_size(self) -> int:
        return int(getattr(self.selected_file, "length", 0) or 0)
