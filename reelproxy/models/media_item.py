"""
Media Item Model
Catalog record for a movie or series, enriched with its selected torrent
"""
from dataclasses import dataclass, field
from typing import List, Optional

from .candidate import ScoredCandidate


@dataclass
class MediaItem:
    """Catalog entry; candidate is filled in by a library refresh"""
    id: int
    title: str
    year: Optional[int] = None
    type: str = "movie"
    original_title: str = ""
    release_date: Optional[str] = None
    poster: Optional[str] = None
    backdrop: Optional[str] = None
    description: str = "No description available"
    rating: float = 0.0
    vote_count: int = 0
    popularity: float = 0.0
    genre_ids: List[int] = field(default_factory=list)
    language: str = "en"

    candidate: Optional[ScoredCandidate] = None

    @property
    def item_id(self) -> str:
        return str(self.id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "originalTitle": self.original_title,
            "year": self.year,
            "type": self.type,
            "releaseDate": self.release_date,
            "poster": self.poster,
            "backdrop": self.backdrop,
            "description": self.description,
            "rating": self.rating,
            "voteCount": self.vote_count,
            "popularity": self.popularity,
            "genreIds": list(self.genre_ids),
            "language": self.language,
            "torrent": self.candidate.to_dict() if self.candidate else None,
        }
