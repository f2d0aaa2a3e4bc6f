"""
Content-fetch engine contract.
The session layer only talks to these classes; LibtorrentEngine is the shipped binding.
"""
from __future__ import annotations

from typing import Iterator, List


class EngineError(Exception):
    """Raised when the fetch engine cannot add, prepare or read content."""


class FetchFile:
    """One file inside a fetched torrent"""
    name = ""
    length = 0

    def select(self) -> None:
        raise NotImplementedError

    def deselect(self) -> None:
        raise NotImplementedError

    def read_range(self, start: int, end: int) -> Iterator[bytes]:
        """
        Yield the bytes [start, end] inclusive in order.
        The returned iterator must support close() so an abandoned read can release its resources.
        """
        raise NotImplementedError


class FetchHandle:
    """A piece of content the engine is fetching"""

    @property
    def files(self) -> List[FetchFile]:
        raise NotImplementedError

    def wait_until_ready(self, timeout: float) -> bool:
        """Block until file metadata is known; False when timeout elapses first."""
        raise NotImplementedError

    def set_sequential(self, enabled: bool = True) -> None:
        """Prefer pieces in file order. Engines without the notion may ignore it."""

    def destroy(self) -> None:
        raise NotImplementedError


class FetchEngine:
    name = "base"

    def is_available(self) -> bool:
        return True

    def add_content(self, locator: str) -> FetchHandle:
        raise NotImplementedError

    def shutdown(self) -> None:
        raise NotImplementedError
