"""
Candidate Model
Represents one discovered torrent source for a media item
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
import re


SIZE_MULTIPLIERS = {
    'B': 1,
    'KB': 1024, 'KIB': 1024,
    'MB': 1024**2, 'MIB': 1024**2,
    'GB': 1024**3, 'GIB': 1024**3,
    'TB': 1024**4, 'TIB': 1024**4,
}


@dataclass(frozen=True)
class Candidate:
    """Torrent candidate produced by a single source adapter"""
    title: str
    locator: str  # magnet URI
    seeders: int
    leechers: int
    size_bytes: int
    source_name: str
    verified: bool = False
    upload_date: Optional[datetime] = None

    @staticmethod
    def extract_infohash(locator: str) -> str:
        """Extract the lowercase btih infohash from a magnet link"""
        match = re.search(r'xt=urn:btih:([a-fA-F0-9]{40})', locator or "")
        if match:
            return match.group(1).lower()
        return ""

    @staticmethod
    def parse_size(size_str) -> int:
        """
        Normalize a human readable size to bytes
        Handles: "1.5 GB", "500 MB", "2.3 GiB", "700 KB"
        Binary multipliers throughout (KB = 1024), unparsable input gives 0.
        """
        if isinstance(size_str, int):
            return max(0, size_str)
        if not size_str:
            return 0

        text = str(size_str).replace(",", "").replace("\xa0", " ").strip().upper()
        match = re.search(r'(\d+(?:\.\d+)?)\s*([KMGT]I?B)\b', text)
        if not match:
            return 0

        value = float(match.group(1))
        unit = match.group(2)
        return int(value * SIZE_MULTIPLIERS.get(unit, 1))

    @staticmethod
    def format_size(bytes_size: int) -> str:
        """Format bytes to human readable size"""
        if not bytes_size:
            return "Unknown"
        amount = float(bytes_size)
        for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
            if amount < 1024.0:
                return f"{amount:.2f} {unit}"
            amount /= 1024.0
        return f"{amount:.2f} PB"

    @property
    def info_hash(self) -> str:
        return self.extract_infohash(self.locator)

    @property
    def size_gb(self) -> float:
        return self.size_bytes / (1024 ** 3)

    @property
    def size_formatted(self) -> str:
        return self.format_size(self.size_bytes)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "locator": self.locator,
            "seeders": self.seeders,
            "leechers": self.leechers,
            "sizeBytes": self.size_bytes,
            "size": self.size_formatted,
            "source": self.source_name,
            "verified": self.verified,
            "uploadDate": self.upload_date.isoformat() if self.upload_date else None,
            "infoHash": self.info_hash,
        }


@dataclass(frozen=True)
class ScoredCandidate:
    """Candidate with the score the selector ranked it by"""
    candidate: Candidate
    score: float
    breakdown: dict = field(default_factory=dict, compare=False)

    @property
    def title(self) -> str:
        return self.candidate.title

    @property
    def locator(self) -> str:
        return self.candidate.locator

    def to_dict(self) -> dict:
        payload = self.candidate.to_dict()
        payload["score"] = self.score
        if self.breakdown:
            payload["scoreBreakdown"] = dict(self.breakdown)
        return payload
