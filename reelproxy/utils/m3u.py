"""
Playlist formatting
"""
from typing import Dict, List
import re

from ..models.candidate import Candidate
from ..models.media_item import MediaItem
from ..services.tmdb_client import map_genres, primary_genre

FIRST_CHANNEL = 1000
DESCRIPTION_LIMIT = 200


def sanitize(text: str) -> str:
    if not text:
        return ''
    cleaned = re.sub(r'[^\w\s\-\(\)\[\]]', '', text)
    return re.sub(r'\s+', ' ', cleaned).strip()


def sanitize_description(desc: str) -> str:
    if not desc:
        return 'No description available'
    cleaned = desc.replace('\n', ' ').replace('\r', ' ').replace('"', "'")
    cleaned = re.sub(r"[^\w\s\-\(\)\[\]'.,!?]", '', cleaned)
    suffix = '...' if len(desc) > DESCRIPTION_LIMIT else ''
    return cleaned[:DESCRIPTION_LIMIT].strip() + suffix


def extract_quality(title: str) -> str:
    title = (title or '').lower()
    if '2160p' in title or '4k' in title or 'uhd' in title:
        return '4K'
    if '1080p' in title or 'fhd' in title:
        return '1080p'
    if '720p' in title or 'hd' in title:
        return '720p'
    if '480p' in title:
        return '480p'
    if '360p' in title:
        return '360p'
    return 'SD'


class M3UBuilder:
    """Renders library items with a selected candidate as M3U or JSON playlists"""

    def __init__(self, server_url: str = "http://localhost:3000", name: str = "Movie Collection"):
        self.server_url = server_url.rstrip("/")
        self.name = name

    def stream_url(self, item: MediaItem) -> str:
        return f"{self.server_url}/stream/{item.id}"

    def build(self, items: List[MediaItem]) -> str:
        lines = ['#EXTM3U', f'#PLAYLIST:{self.name}', '#EXTM3U-version="1"', '']
        channel = FIRST_CHANNEL
        for item in items:
            if item.candidate is None:
                continue
            lines.extend(self._entry(item, channel))
            lines.append('')
            channel += 1
        return '\n'.join(lines) + '\n'

    def _entry(self, item: MediaItem, channel: int) -> List[str]:
        torrent: Candidate = item.candidate.candidate
        group = primary_genre(item.genre_ids)
        name = sanitize(item.title)
        year = item.year if item.year is not None else ''
        entry = [
            f'#EXTINF:-1 tvg-id="{item.id}" tvg-name="{name}" tvg-logo="{item.poster or ""}" '
            f'group-title="{group}" tvg-chno="{channel}" tvg-language="{item.language or "en"}" '
            f'tvg-country="US",{name} ({year})',
            f'#EXTGRP:{group}',
        ]
        if item.poster:
            entry.append(f'#EXTIMG:{item.poster}')
        if item.backdrop:
            entry.append(f'#EXTART:{item.backdrop}')
        entry.extend([
            f'#EXTDESC:{sanitize_description(item.description)}',
            f'#EXTRATING:{item.rating}',
            f'#EXTGENRE:{map_genres(item.genre_ids)}',
            f'#EXTYEAR:{year}',
            f'#EXTQUALITY:{extract_quality(torrent.title)}',
            f'#EXTSEEDERS:{torrent.seeders}',
            f'#EXTSIZE:{torrent.size_formatted}',
            f'#EXTSOURCE:{torrent.source_name}',
        ])
        if torrent.verified:
            entry.append('#EXTVERIFIED:Yes')
        entry.extend([
            f'#EXTLANGUAGE:{item.language or "en"}',
            f'#EXTTYPE:{item.type or "movie"}',
            f'#EXTPOPULARITY:{round(item.popularity)}',
            f'#EXTVOTES:{item.vote_count}',
            self.stream_url(item),
        ])
        return entry

    def build_json(self, items: List[MediaItem]) -> Dict:
        playable = [item for item in items if item.candidate is not None]
        return {
            "playlist": {
                "name": self.name,
                "version": "1.0",
                "count": len(playable),
                "items": [
                    {
                        "id": item.id,
                        "title": item.title,
                        "year": item.year,
                        "type": item.type,
                        "description": item.description,
                        "poster": item.poster,
                        "backdrop": item.backdrop,
                        "rating": item.rating,
                        "genres": map_genres(item.genre_ids),
                        "quality": extract_quality(item.candidate.title),
                        "size": item.candidate.candidate.size_formatted,
                        "seeders": item.candidate.candidate.seeders,
                        "source": item.candidate.candidate.source_name,
                        "score": item.candidate.score,
                        "streamUrl": self.stream_url(item),
                        "channelNumber": FIRST_CHANNEL + index,
                    }
                    for index, item in enumerate(playable)
                ],
            }
        }
