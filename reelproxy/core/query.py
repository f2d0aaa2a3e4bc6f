"""
Search phrase construction for torrent sources
"""
from typing import Optional
import re

STOP_WORDS = {'the', 'a', 'an', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for', 'of', 'with', 'by'}
SHORT_TITLE_WORDS = 3
SERIES_TYPES = {"series", "tv"}


def clean_title(title: str) -> str:
    cleaned = re.sub(r'[^\w\s-]', '', title or "")
    return re.sub(r'\s+', ' ', cleaned).strip()


def build_search_phrase(title: str, year: Optional[int] = None, media_type: str = "movie") -> str:
    """
    Build the phrase every source is queried with.

    Stop words are removed only from titles longer than three words, so
    "The Fly" stays "The Fly". Series are searched without the year.
    """
    cleaned = clean_title(title)
    if not cleaned:
        raise ValueError("A title is required to build a search phrase.")

    words = cleaned.split(' ')
    if len(words) > SHORT_TITLE_WORDS:
        kept = [word for word in words if word.lower() not in STOP_WORDS]
        # A title made only of stop words keeps them.
        if kept:
            words = kept
    phrase = ' '.join(words)

    if year and str(media_type or "movie").lower() not in SERIES_TYPES:
        return f"{phrase} {year}"
    return phrase
