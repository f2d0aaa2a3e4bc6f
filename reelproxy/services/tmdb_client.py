"""
TMDB Client
Popular movie / TV listings and search, mapped to MediaItem records
"""
from typing import Any, Dict, List, Optional
import logging

import requests

from ..models.media_item import MediaItem

logger = logging.getLogger(__name__)

GENRE_MAP = {
    28: 'Action',
    12: 'Adventure',
    16: 'Animation',
    35: 'Comedy',
    80: 'Crime',
    99: 'Documentary',
    18: 'Drama',
    10751: 'Family',
    14: 'Fantasy',
    36: 'History',
    27: 'Horror',
    10402: 'Music',
    9648: 'Mystery',
    10749: 'Romance',
    878: 'Sci-Fi',
    10770: 'TV Movie',
    53: 'Thriller',
    10752: 'War',
    37: 'Western',
}


class CatalogError(Exception):
    """Raised when the catalog cannot be queried."""


class TMDBClient:
    """Thin TMDB v3 client"""

    BASE_URL = "https://api.themoviedb.org/3"
    IMAGE_BASE_URL = "https://image.tmdb.org/t/p"

    def __init__(self, api_key: str, timeout: float = 10.0, language: str = "en-US"):
        self.api_key = str(api_key or "").strip()
        self.timeout = float(timeout)
        self.language = language
        self.session = requests.Session()

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.is_configured:
            raise CatalogError("TMDB API key is required")
        query = {"api_key": self.api_key, "language": self.language}
        query.update(params or {})
        try:
            response = self.session.get(f"{self.BASE_URL}{path}", params=query, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise CatalogError(f"TMDB request {path} failed: {e}") from e
        except ValueError as e:
            raise CatalogError(f"TMDB returned invalid JSON for {path}") from e

    def get_popular_movies(self, page: int = 1) -> List[MediaItem]:
        data = self._get("/movie/popular", {"page": page})
        return [self._movie_from_json(raw) for raw in data.get("results", []) or []]

    def get_popular_series(self, page: int = 1) -> List[MediaItem]:
        data = self._get("/tv/popular", {"page": page})
        return [self._series_from_json(raw) for raw in data.get("results", []) or []]

    def search_movies(self, query: str, year: Optional[int] = None) -> List[MediaItem]:
        params: Dict[str, Any] = {"query": query}
        if year:
            params["year"] = year
        data = self._get("/search/movie", params)
        return [self._movie_from_json(raw) for raw in data.get("results", []) or []]

    def _image(self, path: Optional[str], size: str) -> Optional[str]:
        return f"{self.IMAGE_BASE_URL}/{size}{path}" if path else None

    @staticmethod
    def _year(date_text: Optional[str]) -> Optional[int]:
        text = str(date_text or "")
        if len(text) >= 4 and text[:4].isdigit():
            return int(text[:4])
        return None

    def _movie_from_json(self, raw: Dict[str, Any]) -> MediaItem:
        return MediaItem(
            id=int(raw["id"]),
            title=raw.get("title") or raw.get("original_title") or "",
            original_title=raw.get("original_title") or "",
            year=self._year(raw.get("release_date")),
            release_date=raw.get("release_date") or None,
            poster=self._image(raw.get("poster_path"), "w500"),
            backdrop=self._image(raw.get("backdrop_path"), "original"),
            description=raw.get("overview") or "No description available",
            rating=float(raw.get("vote_average") or 0.0),
            vote_count=int(raw.get("vote_count") or 0),
            popularity=float(raw.get("popularity") or 0.0),
            genre_ids=list(raw.get("genre_ids") or []),
            language=raw.get("original_language") or "en",
            type="movie",
        )

    def _series_from_json(self, raw: Dict[str, Any]) -> MediaItem:
        return MediaItem(
            id=int(raw["id"]),
            title=raw.get("name") or raw.get("original_name") or "",
            original_title=raw.get("original_name") or "",
            year=self._year(raw.get("first_air_date")),
            release_date=raw.get("first_air_date") or None,
            poster=self._image(raw.get("poster_path"), "w500"),
            backdrop=self._image(raw.get("backdrop_path"), "original"),
            description=raw.get("overview") or "No description available",
            rating=float(raw.get("vote_average") or 0.0),
            vote_count=int(raw.get("vote_count") or 0),
            popularity=float(raw.get("popularity") or 0.0),
            genre_ids=list(raw.get("genre_ids") or []),
            language=raw.get("original_language") or "en",
            type="series",
        )


def map_genres(genre_ids: List[int]) -> str:
    if not genre_ids:
        return 'Unknown'
    return '|'.join(GENRE_MAP.get(gid, 'Unknown') for gid in genre_ids)


def primary_genre(genre_ids: List[int]) -> str:
    if not genre_ids:
        return 'Other'
    return GENRE_MAP.get(genre_ids[0], 'Other')
