"""
Range Stream Server
Turns an HTTP Range header into a scoped read of a session's selected file.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple
import logging
import os
import threading

from ..models.session import Session, StreamTicket
from .event_bus import EventBus, Events

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "video/mp4"
CONTENT_TYPES = {
    '.mp4': 'video/mp4',
    '.avi': 'video/x-msvideo',
    '.mkv': 'video/x-matroska',
    '.mov': 'video/quicktime',
    '.wmv': 'video/x-ms-wmv',
    '.flv': 'video/x-flv',
    '.webm': 'video/webm',
    '.m4v': 'video/x-m4v',
}


class RangeNotSatisfiable(ValueError):
    """Malformed or out-of-bounds Range header; answered with 416."""

    def __init__(self, message: str, size: int):
        super().__init__(message)
        self.size = size

    @property
    def headers(self) -> Dict[str, str]:
        return {"Content-Range": f"bytes */{self.size}"}


class SessionRetired(Exception):
    """The session was retired before a ticket could be opened; acquire it again."""

    def __init__(self, session_key: str):
        super().__init__(f"Session {session_key} was retired")
        self.session_key = session_key


def parse_range_header(range_header: Optional[str], size: int) -> Optional[Tuple[int, int]]:
    """
    Parse "bytes=start-end", "bytes=start-" or "bytes=-suffix" into an inclusive (start, end).
    Returns None without a header. The end is clamped to the last byte.
    """
    if not range_header or not range_header.strip():
        return None

    value = range_header.strip()
    if not value.lower().startswith("bytes="):
        raise RangeNotSatisfiable("Unsupported range unit", size)
    ranges = value[6:].strip()
    if "," in ranges:
        raise RangeNotSatisfiable("Multiple ranges not supported", size)
    if "-" not in ranges:
        raise RangeNotSatisfiable("Invalid range format", size)

    start_str, end_str = (part.strip() for part in ranges.split("-", 1))
    if not start_str and not end_str:
        raise RangeNotSatisfiable("Invalid empty range", size)
    for bound in (start_str, end_str):
        if bound and not bound.isdigit():
            raise RangeNotSatisfiable("Range bounds must be integers", size)

    if not start_str:
        suffix_len = int(end_str)
        if suffix_len <= 0 or size <= 0:
            raise RangeNotSatisfiable("Invalid suffix length", size)
        return max(0, size - suffix_len), size - 1

    start = int(start_str)
    if start >= size:
        raise RangeNotSatisfiable("Start out of range", size)
    if not end_str:
        return start, size - 1
    end = int(end_str)
    if end < start:
        raise RangeNotSatisfiable("End before start", size)
    return start, min(end, size - 1)


def content_type_for(file_name: str) -> str:
    ext = os.path.splitext(str(file_name or ""))[1].lower()
    return CONTENT_TYPES.get(ext, DEFAULT_CONTENT_TYPE)


@dataclass
class RangeResponse:
    """A prepared response. The ticket is open until close() runs."""
    status: int
    headers: Dict[str, str]
    start: int
    end: int
    length: int
    session: Session
    ticket: StreamTicket
    server: "RangeStreamServer" = field(repr=False)
    _body: Optional[Iterator[bytes]] = field(default=None, repr=False)
    _closed: bool = field(default=False, repr=False)
    _cancelled: threading.Event = field(default_factory=threading.Event, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def body(self) -> Iterator[bytes]:
        if self._body is None:
            self._body = self._iter_body()
        return self._body

    def _iter_body(self) -> Iterator[bytes]:
        reader = None
        try:
            if self.length <= 0 or self._cancelled.is_set():
                return
            reader = self.session.selected_file.read_range(self.start, self.end)
            for chunk in reader:
                # close() from another thread cannot stop a generator mid-read.
                if self._cancelled.is_set():
                    break
                if not chunk:
                    continue
                self.ticket.bytes_streamed += len(chunk)
                self.server.count_bytes(len(chunk))
                self.session.touch()
                yield chunk
        finally:
            closer = getattr(reader, "close", None)
            if callable(closer):
                closer()
            self._release()

    def close(self):
        """
        Stop the body and release the ticket. Safe from any thread: a body
        busy reading elsewhere closes its reader once the read returns.
        """
        self._cancelled.set()
        try:
            if self._body is not None:
                self._body.close()
        except ValueError:
            logger.debug("Stream %s closed while a read was in flight", self.ticket.ticket_id)
        finally:
            self._release()

    def _release(self):
        # Exactly once, whatever happened to the body.
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self.server.release(self)


class RangeStreamServer:
    """Serves byte ranges of live sessions and tracks open stream tickets"""

    def __init__(self, event_bus: Optional[EventBus] = None):
        self.event_bus = event_bus or EventBus()
        self._tickets: Dict[str, StreamTicket] = {}
        self._lock = threading.RLock()
        self._total_bytes = 0
        self._completed_streams = 0

    def prepare(self, session: Session, range_header: Optional[str] = None) -> RangeResponse:
        """
        Resolve the range and open a ticket on the session.

        Raises RangeNotSatisfiable for a bad header and SessionRetired when
        the session was retired before the ticket opened.
        """
        size = session.file_size
        byte_range = parse_range_header(range_header, size)

        headers = {
            "Content-Type": content_type_for(session.file_name),
            "Accept-Ranges": "bytes",
            "Cache-Control": "no-cache",
        }
        if byte_range is None:
            status, start, end = 200, 0, size - 1
        else:
            status, (start, end) = 206, byte_range
            headers["Content-Range"] = f"bytes {start}-{end}/{size}"
        length = max(0, end - start + 1)
        headers["Content-Length"] = str(length)

        ticket = session.attach_ticket()
        if ticket is None:
            raise SessionRetired(session.session_key)
        with self._lock:
            self._tickets[ticket.ticket_id] = ticket

        logger.debug("Stream %s opened on %s: bytes %d-%d", ticket.ticket_id, session.session_key, start, end)
        self.event_bus.emit(Events.STREAM_STARTED, {
            "ticket_id": ticket.ticket_id,
            "session_key": session.session_key,
            "start": start,
            "end": end,
        })
        return RangeResponse(
            status=status,
            headers=headers,
            start=start,
            end=end,
            length=length,
            session=session,
            ticket=ticket,
            server=self,
        )

    def serve(self, session: Session, range_header: Optional[str], sink) -> StreamTicket:
        """
        Write a full response through a sink with start(status, headers) and write(chunk).
        A sink raising ConnectionError is treated as a client disconnect.
        """
        response = self.prepare(session, range_header)
        try:
            sink.start(response.status, response.headers)
            for chunk in response.body():
                sink.write(chunk)
        except ConnectionError:
            logger.info("Client disconnected from stream %s after %d bytes",
                        response.ticket.ticket_id, response.ticket.bytes_streamed)
        finally:
            response.close()
        return response.ticket

    def count_bytes(self, amount: int):
        with self._lock:
            self._total_bytes += amount

    def release(self, response: RangeResponse):
        ticket = response.ticket
        with self._lock:
            self._tickets.pop(ticket.ticket_id, None)
            self._completed_streams += 1
        response.session.detach_ticket(ticket)
        logger.debug("Stream %s closed after %d bytes", ticket.ticket_id, ticket.bytes_streamed)
        self.event_bus.emit(Events.STREAM_ENDED, {
            "ticket_id": ticket.ticket_id,
            "session_key": ticket.session_key,
            "bytes_streamed": ticket.bytes_streamed,
        })

    def active_tickets(self) -> List[StreamTicket]:
        with self._lock:
            return list(self._tickets.values())

    def stats(self) -> Dict:
        with self._lock:
            tickets = list(self._tickets.values())
            total = self._total_bytes
            completed = self._completed_streams
        return {
            "activeStreams": len(tickets),
            "completedStreams": completed,
            "totalBytesStreamed": total,
            "streams": [
                {
                    "ticketId": t.ticket_id,
                    "sessionKey": t.session_key,
                    "bytesStreamed": t.bytes_streamed,
                    "elapsedSeconds": round(t.elapsed_time, 1),
                    "throughputKbps": round(t.throughput_kbps, 1),
                }
                for t in tickets
            ],
        }
