"""
TorrentGalaxy Search Source
"""
from typing import List, Optional
from urllib.parse import quote
import logging

from ..models.candidate import Candidate
from .base import BaseSource

logger = logging.getLogger(__name__)


class TorrentGalaxySource(BaseSource):
    """TorrentGalaxy search source; VIP uploaders count as verified"""

    name = "TorrentGalaxy"
    base_url = "https://torrentgalaxy.to"

    def search(self, query: str) -> List[Candidate]:
        self.last_error = ""
        soup = self.fetch_soup(f"{self.base_url}/torrents.php?search={quote(query)}")

        results: List[Candidate] = []
        for row in soup.select(".tgxtablerow"):
            candidate = self._parse_row(row)
            if candidate is not None:
                results.append(candidate)
        logger.debug("TorrentGalaxy parsed %d listings for %r", len(results), query)
        return results

    def _parse_row(self, row) -> Optional[Candidate]:
        title_elem = row.select_one(".txlight a")
        if title_elem is None:
            return None

        cells = row.select(".txlight")

        def _cell_text(index: int) -> str:
            if index < len(cells):
                return cells[index].get_text(strip=True)
            return ""

        magnet_elem = row.select_one('a[href^="magnet:"]')
        verified = any(
            "VIP" in (img.get("alt") or "")
            for img in row.select(".txlight img")
        )
        return self.make_candidate(
            title=title_elem.get_text(strip=True),
            locator=magnet_elem.get("href", "") if magnet_elem is not None else "",
            seeders=self.parse_count(_cell_text(4)),
            leechers=self.parse_count(_cell_text(5)),
            size_bytes=Candidate.parse_size(_cell_text(3)),
            verified=verified,
        )
