from .base import BaseSource, SourceError
from .limetorrents import LimeTorrentsSource
from .piratebay import PirateBaySource
from .torrentgalaxy import TorrentGalaxySource

__all__ = [
    "BaseSource",
    "SourceError",
    "LimeTorrentsSource",
    "PirateBaySource",
    "TorrentGalaxySource",
    "default_sources",
]


def default_sources(settings=None):
    """Built-in adapters in the order discovery breaks ties by."""
    return [
        PirateBaySource(settings),
        LimeTorrentsSource(settings),
        TorrentGalaxySource(settings),
    ]
