"""
LimeTorrents Search Source
"""
from typing import List, Optional
from urllib.parse import quote
import logging

from ..models.candidate import Candidate
from .base import BaseSource

logger = logging.getLogger(__name__)


class LimeTorrentsSource(BaseSource):
    """LimeTorrents search source; listings carry no uploader verification"""

    name = "LimeTorrents"
    base_url = "https://www.limetorrents.pro"

    def search(self, query: str) -> List[Candidate]:
        self.last_error = ""
        soup = self.fetch_soup(f"{self.base_url}/search/all/{quote(query)}/")

        results: List[Candidate] = []
        for index, row in enumerate(soup.select(".table2 tr")):
            if index == 0:
                continue  # header
            candidate = self._parse_row(row)
            if candidate is not None:
                results.append(candidate)
        logger.debug("LimeTorrents parsed %d listings for %r", len(results), query)
        return results

    def _parse_row(self, row) -> Optional[Candidate]:
        cells = row.find_all("td")
        if len(cells) < 5:
            return None

        name_cell = cells[0]
        title_elem = None
        for link in name_cell.find_all("a"):
            href = link.get("href", "")
            if href.startswith("magnet:"):
                continue
            if link.get_text(strip=True):
                title_elem = link
                break
        if title_elem is None:
            return None

        magnet_elem = name_cell.select_one('a[href^="magnet:"]')
        return self.make_candidate(
            title=title_elem.get_text(strip=True),
            locator=magnet_elem.get("href", "") if magnet_elem is not None else "",
            seeders=self.parse_count(cells[3].get_text(strip=True)),
            leechers=self.parse_count(cells[4].get_text(strip=True)),
            size_bytes=Candidate.parse_size(cells[2].get_text(strip=True)),
            verified=False,
        )
