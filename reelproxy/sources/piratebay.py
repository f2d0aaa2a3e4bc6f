"""
PirateBay Search Source
HTML search-page scraping with the apibay JSON API as fallback
"""
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import quote
import logging
import re

import requests
from bs4 import BeautifulSoup

from ..models.candidate import Candidate
from .base import BaseSource, SourceError

logger = logging.getLogger(__name__)

EMPTY_INFOHASH = "0" * 40


class PirateBaySource(BaseSource):
    """ThePirateBay torrent search source"""

    name = "ThePirateBay"
    base_url = "https://thepiratebay.org"
    API_ENDPOINT = "https://apibay.org"
    TRACKERS = [
        "udp://tracker.opentrackr.org:1337/announce",
        "udp://open.stealth.si:80/announce",
        "udp://tracker.torrent.eu.org:451/announce",
        "udp://exodus.desync.com:6969/announce",
    ]

    def __init__(self, settings=None, base_url: Optional[str] = None, api_endpoint: Optional[str] = None):
        self.api_endpoint = (api_endpoint or self.API_ENDPOINT).rstrip("/")
        super().__init__(settings, base_url)

    def search(self, query: str) -> List[Candidate]:
        """
        Search PirateBay for torrents

        1. Request the HTML search page ordered by seeders (category 200: video)
        2. Parse the #searchResult table; magnets are right there in each row
        3. If the page is unreachable or empty, ask the apibay JSON API
        """
        self.last_error = ""
        search_url = f"{self.base_url}/search/{quote(query)}/1/99/200"

        html_error: Optional[SourceError] = None
        try:
            soup = self.fetch_soup(search_url)
            results = self._parse_search_page(soup)
            if results:
                return results
        except SourceError as e:
            html_error = e
            logger.debug("PirateBay HTML search failed, trying API: %s", e)

        try:
            return self._search_via_api(query)
        except SourceError as api_error:
            if html_error is not None:
                self.last_error = f"HTML and API both failed: {html_error.message}; {api_error.message}"
                raise SourceError(self.name, self.last_error) from api_error
            # HTML answered with an empty result table; that is zero results.
            logger.debug("PirateBay API failed after empty HTML page: %s", api_error)
            return []

    def _parse_search_page(self, soup: BeautifulSoup) -> List[Candidate]:
        """Parse the results table; header and malformed rows are skipped."""
        results: List[Candidate] = []
        for row in soup.select("#searchResult tr"):
            candidate = self._parse_row(row)
            if candidate is not None:
                results.append(candidate)
        return results

    def _parse_row(self, row) -> Optional[Candidate]:
        cells = row.find_all("td")
        if len(cells) < 4:
            return None

        name_cell = cells[1]
        title_elem = name_cell.select_one(".detName a") or name_cell.find("a")
        if title_elem is None:
            return None
        title = title_elem.get_text(strip=True)

        magnet_elem = name_cell.select_one('a[href^="magnet:"]') or row.select_one('a[href^="magnet:"]')
        locator = magnet_elem.get("href", "") if magnet_elem is not None else ""

        seeders = self.parse_count(cells[2].get_text(strip=True))
        leechers = self.parse_count(cells[3].get_text(strip=True))
        size_bytes = self._extract_size(name_cell.get_text(" ", strip=True))
        verified = bool(
            name_cell.select_one('img[title*="VIP"]') or name_cell.select_one('img[title*="Trusted"]')
        )

        return self.make_candidate(
            title=title,
            locator=locator,
            seeders=seeders,
            leechers=leechers,
            size_bytes=size_bytes,
            verified=verified,
        )

    @staticmethod
    def _extract_size(text: str) -> int:
        # Format: "Uploaded 03-15 2021, Size 1.5 GiB, ULed by ..."
        match = re.search(r'Size\s+([\d.,]+\s*[KMGT]i?B)', text or "", re.IGNORECASE)
        if not match:
            return 0
        return Candidate.parse_size(match.group(1))

    def _search_via_api(self, query: str) -> List[Candidate]:
        url = f"{self.api_endpoint}/q.php?q={quote(query)}&cat=200"
        try:
            response = self.session.get(url, timeout=self.request_timeout, headers={
                "Accept": "application/json,text/plain,*/*",
            })
            response.raise_for_status()
            rows = response.json()
        except (requests.RequestException, ValueError) as e:
            raise SourceError(self.name, f"API request failed: {e}") from e

        if not isinstance(rows, list):
            raise SourceError(self.name, "API returned an unexpected payload")
        return self._parse_api_rows(rows)

    def _parse_api_rows(self, rows: List[dict]) -> List[Candidate]:
        results: List[Candidate] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            name = (row.get("name") or "").strip()
            infohash = (row.get("info_hash") or "").strip().upper()
            # apibay answers "no results" with a single all-zero placeholder row.
            if len(infohash) != 40 or infohash == EMPTY_INFOHASH:
                continue
            try:
                seeders = int(row.get("seeders") or 0)
                leechers = int(row.get("leechers") or 0)
                size_bytes = int(row.get("size") or 0)
                added = int(row.get("added") or 0)
            except (TypeError, ValueError):
                continue

            upload_date = datetime.fromtimestamp(added, tz=timezone.utc) if added > 0 else None
            status = str(row.get("status") or "").lower()
            candidate = self.make_candidate(
                title=name,
                locator=self._build_magnet(infohash, name),
                seeders=seeders,
                leechers=leechers,
                size_bytes=size_bytes,
                verified=status in {"vip", "trusted"},
                upload_date=upload_date,
            )
            if candidate is not None:
                results.append(candidate)
        return results

    def _build_magnet(self, infohash: str, title: str) -> str:
        tr = "".join([f"&tr={quote(t, safe='')}" for t in self.TRACKERS])
        return f"magnet:?xt=urn:btih:{infohash}&dn={quote(title, safe='')}{tr}"
