"""
Library Service
Keeps the catalog items that have a selected candidate, the rendered
playlist, and the scheduled refresh.
"""
from typing import Dict, List, Optional
import logging
import threading
import time

from ..models.media_item import MediaItem
from ..services.tmdb_client import CatalogError, TMDBClient
from ..utils.m3u import M3UBuilder
from .discovery import DiscoveryCoordinator
from .event_bus import EventBus, Events

logger = logging.getLogger(__name__)


class LibraryService:
    def __init__(
        self,
        catalog: TMDBClient,
        discovery: DiscoveryCoordinator,
        builder: M3UBuilder,
        event_bus: Optional[EventBus] = None,
        cache_duration_hours: float = 24.0,
        refresh_interval_hours: float = 6.0,
        max_items: int = 100,
        delay_seconds: float = 1.0,
        catalog_pages: int = 2,
        include_series: bool = False,
    ):
        self.catalog = catalog
        self.discovery = discovery
        self.builder = builder
        self.event_bus = event_bus or EventBus()
        self.cache_duration_hours = float(cache_duration_hours)
        self.refresh_interval_hours = float(refresh_interval_hours)
        self.max_items = int(max_items)
        self.delay_seconds = float(delay_seconds)
        self.catalog_pages = max(1, int(catalog_pages))
        self.include_series = include_series

        self._items: Dict[str, MediaItem] = {}
        self._playlist_items: List[MediaItem] = []
        self._playlist: Optional[str] = None
        self.last_update: Optional[float] = None

        self._lock = threading.RLock()
        self._refresh_lock = threading.Lock()
        self._stop = threading.Event()
        self._scheduler: Optional[threading.Thread] = None

    # Cache access

    def get_item(self, item_id: str) -> Optional[MediaItem]:
        with self._lock:
            return self._items.get(str(item_id))

    def item_count(self) -> int:
        with self._lock:
            return len(self._items)

    def playlist_items(self) -> List[MediaItem]:
        with self._lock:
            return list(self._playlist_items)

    def is_stale(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        with self._lock:
            if self._playlist is None or self.last_update is None:
                return True
            return (now - self.last_update) / 3600.0 >= self.cache_duration_hours

    def get_playlist(self) -> str:
        """Cached M3U text, refreshed first when older than the cache duration."""
        if self.is_stale():
            self.refresh()
        with self._lock:
            return self._playlist or self.builder.build([])

    def get_json_playlist(self) -> Dict:
        if self.is_stale():
            self.refresh()
        return self.builder.build_json(self.playlist_items())

    # Refresh

    def _fetch_catalog(self) -> List[MediaItem]:
        items: List[MediaItem] = []
        for page in range(1, self.catalog_pages + 1):
            items.extend(self.catalog.get_popular_movies(page))
        if self.include_series:
            items.extend(self.catalog.get_popular_series(1))
        return items

    def refresh(self, max_items: Optional[int] = None) -> int:
        """
        Rebuild the playlist from the catalog's popular titles.

        Returns the number of items with a candidate. A catalog failure
        leaves the previous cache untouched and raises CatalogError.
        """
        limit = self.max_items if max_items is None else max(0, int(max_items))
        with self._refresh_lock:
            self.event_bus.emit(Events.LIBRARY_REFRESH_STARTED, {})
            logger.info("Updating content library...")
            try:
                catalog_items = self._fetch_catalog()
            except CatalogError as e:
                logger.error("Catalog fetch failed, keeping previous library: %s", e)
                self.event_bus.emit(Events.LIBRARY_REFRESH_FAILED, {"error": str(e)})
                raise

            logger.info("Found %d items from TMDB", len(catalog_items))
            found: List[MediaItem] = []
            for index, item in enumerate(catalog_items[:limit]):
                if self._stop.is_set():
                    logger.info("Refresh interrupted by shutdown")
                    break
                if index and self.delay_seconds > 0:
                    # Spread requests so torrent sites are not hammered.
                    if self._stop.wait(self.delay_seconds):
                        break
                try:
                    best = self.discovery.discover(item.title, item.year, item.type)
                except ValueError as e:
                    logger.warning("Skipping catalog item %s: %s", item.id, e)
                    continue
                if best is None:
                    logger.info("No suitable torrent found for %s", item.title)
                    continue
                item.candidate = best
                found.append(item)
                with self._lock:
                    self._items[item.item_id] = item
                logger.info("Found torrent for %s: %d seeders", item.title, best.candidate.seeders)

            playlist = self.builder.build(found)
            with self._lock:
                self._playlist_items = found
                self._playlist = playlist
                self.last_update = time.time()
            logger.info("Successfully found torrents for %d items", len(found))
            self.event_bus.emit(Events.LIBRARY_REFRESH_COMPLETED, {"count": len(found)})
            return len(found)

    # Scheduling

    def start_scheduler(self, run_immediately: bool = False):
        if self._scheduler is not None and self._scheduler.is_alive():
            return
        self._stop.clear()
        self._scheduler = threading.Thread(
            target=self._run_scheduler,
            args=(run_immediately,),
            name="library-refresh",
            daemon=True,
        )
        self._scheduler.start()

    def stop_scheduler(self, timeout: Optional[float] = 5.0):
        self._stop.set()
        thread = self._scheduler
        self._scheduler = None
        if thread is not None:
            thread.join(timeout)

    def _run_scheduler(self, run_immediately: bool):
        interval = self.refresh_interval_hours * 3600.0
        if run_immediately:
            self._scheduled_refresh()
        while not self._stop.wait(interval):
            self._scheduled_refresh()

    def _scheduled_refresh(self):
        logger.info("Scheduled content update starting...")
        try:
            self.refresh()
        except CatalogError:
            # Already logged; the next tick retries.
            return
        except Exception:
            logger.exception("Scheduled update failed")

    def status(self) -> Dict:
        with self._lock:
            return {
                "moviesInCache": len(self._items),
                "playlistItems": len(self._playlist_items),
                "lastUpdate": self.last_update,
                "schedulerRunning": self._scheduler is not None and self._scheduler.is_alive(),
                "catalogConfigured": self.catalog.is_configured,
            }
