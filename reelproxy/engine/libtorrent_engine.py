"""
libtorrent fetch engine.
Optional backend: install with the `engine` extra. Reads come straight from the
save path once the pieces covering the requested bytes are downloaded.
"""
from __future__ import annotations

from pathlib import Path
from typing import Iterator, List, Optional
import importlib.util
import logging
import threading
import time

from .base import EngineError, FetchEngine, FetchFile, FetchHandle

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
READAHEAD_PIECES = 8
DEADLINE_STEP_MS = 150
PIECE_WAIT_TIMEOUT_SECONDS = 120.0
POLL_INTERVAL_SECONDS = 0.1

PRIORITY_SKIP = 0
PRIORITY_DEFAULT = 4


class LibtorrentFile(FetchFile):
    def __init__(self, handle: "LibtorrentHandle", index: int, name: str, length: int, offset: int):
        self._handle = handle
        self.index = index
        self.name = name
        self.length = length
        self.offset = offset

    def select(self) -> None:
        self._handle.lt_handle.file_priority(self.index, PRIORITY_DEFAULT)

    def deselect(self) -> None:
        self._handle.lt_handle.file_priority(self.index, PRIORITY_SKIP)

    @property
    def path(self) -> Path:
        return self._handle.save_path / self.name

    def read_range(self, start: int, end: int) -> Iterator[bytes]:
        if start < 0 or end >= self.length or start > end:
            raise EngineError(f"Invalid range {start}-{end} for {self.name} ({self.length} bytes)")
        return self._iter_range(start, end)

    def _iter_range(self, start: int, end: int) -> Iterator[bytes]:
        piece_length = self._handle.piece_length
        first_piece = (self.offset + start) // piece_length
        last_piece = (self.offset + end) // piece_length

        fh = None
        position = start
        try:
            for piece in range(first_piece, last_piece + 1):
                self._handle.request_pieces(piece, last_piece)
                self._handle.wait_for_piece(piece)
                if fh is None:
                    fh = open(self.path, "rb")
                    fh.seek(position)

                piece_last_byte = (piece + 1) * piece_length - 1 - self.offset
                stop = min(end, piece_last_byte)
                while position <= stop:
                    data = fh.read(min(CHUNK_SIZE, stop - position + 1))
                    if not data:
                        raise EngineError(f"Short read from {self.path} at byte {position}")
                    position += len(data)
                    yield data
        except OSError as e:
            raise EngineError(f"Failed reading {self.name}: {e}") from e
        finally:
            if fh is not None:
                fh.close()


class LibtorrentHandle(FetchHandle):
    def __init__(self, engine: "LibtorrentEngine", lt_handle, save_path: Path):
        self._engine = engine
        self.lt_handle = lt_handle
        self.save_path = save_path
        self._files: List[LibtorrentFile] = []
        self._destroyed = threading.Event()

    @property
    def files(self) -> List[LibtorrentFile]:
        return list(self._files)

    @property
    def piece_length(self) -> int:
        return int(self.lt_handle.torrent_file().piece_length())

    @property
    def num_pieces(self) -> int:
        return int(self.lt_handle.torrent_file().num_pieces())

    def wait_until_ready(self, timeout: float) -> bool:
        deadline = time.monotonic() + max(0.0, timeout)
        while not self._destroyed.is_set():
            if self.lt_handle.status().has_metadata:
                self._load_files()
                return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(POLL_INTERVAL_SECONDS)
        return False

    def _load_files(self):
        storage = self.lt_handle.torrent_file().files()
        self._files = [
            LibtorrentFile(
                handle=self,
                index=i,
                name=storage.file_path(i),
                length=int(storage.file_size(i)),
                offset=int(storage.file_offset(i)),
            )
            for i in range(storage.num_files())
        ]

    def set_sequential(self, enabled: bool = True) -> None:
        self.lt_handle.set_sequential_download(bool(enabled))

    def request_pieces(self, piece: int, last_piece: int):
        """Give the next few pieces after the read position a deadline."""
        stop = min(last_piece, piece + READAHEAD_PIECES, self.num_pieces - 1)
        for offset, index in enumerate(range(piece, stop + 1)):
            if not self.lt_handle.have_piece(index):
                self.lt_handle.set_piece_deadline(index, offset * DEADLINE_STEP_MS)

    def wait_for_piece(self, piece: int, timeout: float = PIECE_WAIT_TIMEOUT_SECONDS):
        deadline = time.monotonic() + timeout
        while not self.lt_handle.have_piece(piece):
            if self._destroyed.is_set():
                raise EngineError("Content was removed while reading")
            if time.monotonic() >= deadline:
                raise EngineError(f"Piece {piece} not available after {timeout:g}s")
            time.sleep(POLL_INTERVAL_SECONDS)

    def destroy(self) -> None:
        if self._destroyed.is_set():
            return
        self._destroyed.set()
        self._engine.remove(self)


class LibtorrentEngine(FetchEngine):
    name = "libtorrent"

    def __init__(self, download_dir: str, listen_interfaces: str = "0.0.0.0:6881"):
        import libtorrent as lt

        self._lt = lt
        self.download_dir = Path(download_dir)
        self.download_dir.mkdir(parents=True, exist_ok=True)
        self._session = lt.session({"listen_interfaces": listen_interfaces})
        self._handles: List[LibtorrentHandle] = []
        self._lock = threading.RLock()

    @staticmethod
    def is_available() -> bool:
        return importlib.util.find_spec("libtorrent") is not None

    def add_content(self, locator: str) -> LibtorrentHandle:
        lt = self._lt
        try:
            params = lt.parse_magnet_uri(locator)
            params.save_path = str(self.download_dir)
            lt_handle = self._session.add_torrent(params)
        except RuntimeError as e:
            raise EngineError(f"Could not add content: {e}") from e

        handle = LibtorrentHandle(self, lt_handle, self.download_dir)
        with self._lock:
            self._handles.append(handle)
        logger.info("Added torrent %s", lt_handle.info_hash())
        return handle

    def remove(self, handle: LibtorrentHandle):
        with self._lock:
            if handle in self._handles:
                self._handles.remove(handle)
        try:
            self._session.remove_torrent(handle.lt_handle, self._lt.options_t.delete_files)
        except RuntimeError as e:
            logger.warning("Failed to remove torrent: %s", e)

    def shutdown(self) -> None:
        with self._lock:
            handles = list(self._handles)
        for handle in handles:
            handle.destroy()
        self._session.pause()
        logger.info("libtorrent session stopped")


def build_engine(download_dir: str) -> Optional[LibtorrentEngine]:
    """The libtorrent engine when the bindings are installed, otherwise None."""
    if not LibtorrentEngine.is_available():
        logger.warning("libtorrent is not installed; /stream will answer with magnet links only")
        return None
    return LibtorrentEngine(download_dir)
