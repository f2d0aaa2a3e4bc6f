"""
Source SDK
Base interface for ReelProxy torrent search sources.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import logging

import requests
from bs4 import BeautifulSoup

from ..models.candidate import Candidate

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
DEFAULT_REQUEST_TIMEOUT = 8.0


class SourceError(Exception):
    """Raised when one source cannot produce results (network, markup or parse failure)."""

    def __init__(self, source_name: str, message: str):
        super().__init__(f"{source_name}: {message}")
        self.source_name = source_name
        self.message = message


class BaseSource(ABC):
    """
    Stable source contract for built-in adapters.

    search() returns an empty list for "no results" and raises SourceError for
    anything that prevented the source from answering.
    """
    api_version = 1
    name = "UnnamedSource"
    base_url = ""
    last_error = ""

    def __init__(self, settings=None, base_url: Optional[str] = None):
        self.settings = settings
        self.last_error = ""
        self.base_url = (base_url or self.base_url).rstrip("/")
        self.request_timeout = DEFAULT_REQUEST_TIMEOUT
        self.session = requests.Session()
        self.session.headers.update({
            'User-Agent': DEFAULT_USER_AGENT,
            'Accept': 'text/html,application/xhtml+xml,application/xml',
            'Accept-Language': 'en-US,en;q=0.9',
        })
        self.reload_from_settings()

    @abstractmethod
    def search(self, query: str) -> List[Candidate]:
        """Return candidates for a query."""
        raise NotImplementedError

    def reload_from_settings(self) -> None:
        """Pick up timeout and mirror overrides from settings."""
        if self.settings is None:
            return
        self.request_timeout = float(
            self.settings.get("source_request_timeout_seconds", DEFAULT_REQUEST_TIMEOUT) or DEFAULT_REQUEST_TIMEOUT
        )
        mirrors = self.settings.get("source_base_urls", {}) or {}
        override = str(mirrors.get(self.name, "") or "").strip() if isinstance(mirrors, dict) else ""
        if override:
            self.base_url = override.rstrip("/")

    def healthcheck(self) -> Dict[str, Any]:
        """Lightweight health payload for the status endpoint."""
        return {
            "name": self.name,
            "ok": not bool(self.last_error),
            "error": self.last_error,
            "api_version": self.api_version,
            "base_url": self.base_url,
        }

    def fetch_soup(self, url: str) -> BeautifulSoup:
        """GET a search page and parse it; every failure becomes SourceError."""
        try:
            response = self.session.get(url, timeout=self.request_timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            self.last_error = str(e)
            raise SourceError(self.name, f"request failed: {e}") from e

        try:
            return BeautifulSoup(response.content, 'html.parser')
        except Exception as e:
            self.last_error = str(e)
            raise SourceError(self.name, f"unparsable page: {e}") from e

    @staticmethod
    def parse_count(text) -> int:
        """Seeder/leecher cell text to a non-negative int; junk gives 0."""
        cleaned = str(text or "").strip().replace(",", "")
        if cleaned.isdigit():
            return int(cleaned)
        digits = ""
        for ch in cleaned:
            if not ch.isdigit():
                break
            digits += ch
        return int(digits) if digits else 0

    def make_candidate(
        self,
        title: str,
        locator: Optional[str],
        seeders: int,
        leechers: int,
        size_bytes: int,
        verified: bool = False,
        upload_date=None,
    ) -> Optional[Candidate]:
        """Build a Candidate, dropping listings without title, locator or seeders."""
        title = (title or "").strip()
        locator = (locator or "").strip()
        if not title or not locator or seeders <= 0:
            return None
        return Candidate(
            title=title,
            locator=locator,
            seeders=max(0, int(seeders)),
            leechers=max(0, int(leechers)),
            size_bytes=max(0, int(size_bytes)),
            source_name=self.name,
            verified=bool(verified),
            upload_date=upload_date,
        )
