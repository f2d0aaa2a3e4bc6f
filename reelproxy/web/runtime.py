"""Runtime bootstrap for the ReelProxy web API."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional
import logging
import time

from ..core.discovery import DiscoveryCoordinator
from ..core.event_bus import EventBus
from ..core.library import LibraryService
from ..core.range_stream import RangeStreamServer
from ..core.reaper import IdleReaper
from ..core.session_registry import SessionRegistry
from ..core.settings_manager import SettingsManager
from ..engine.base import FetchEngine
from ..engine.libtorrent_engine import build_engine
from ..services.tmdb_client import TMDBClient
from ..sources import BaseSource, default_sources
from ..utils.m3u import M3UBuilder

logger = logging.getLogger(__name__)


@dataclass
class ReelProxyRuntime:
    """Shared service graph used by web endpoints."""

    settings: SettingsManager
    event_bus: EventBus
    discovery: DiscoveryCoordinator
    catalog: TMDBClient
    library: LibraryService
    streamer: RangeStreamServer
    engine: Optional[FetchEngine] = None
    registry: Optional[SessionRegistry] = None
    reaper: Optional[IdleReaper] = None
    started_at: float = field(default_factory=time.time)

    @property
    def streaming_available(self) -> bool:
        return self.registry is not None

    def start(self):
        """Start background work: idle reaper and scheduled library refresh."""
        if self.reaper is not None:
            self.reaper.start()
        if self.catalog.is_configured:
            self.library.start_scheduler(run_immediately=bool(self.settings.get("refresh_on_startup", True)))
        else:
            logger.warning("TMDB_API_KEY is not set; scheduled library refresh is disabled")

    def shutdown(self):
        """Graceful drain: stop background threads, then tear down every session."""
        logger.info("Shutting down ReelProxy runtime")
        self.library.stop_scheduler()
        if self.reaper is not None:
            self.reaper.stop()
        if self.registry is not None:
            self.registry.shutdown()
        self.discovery.shutdown()


def build_runtime(
    settings: Optional[SettingsManager] = None,
    engine: Optional[FetchEngine] = None,
    sources: Optional[List[BaseSource]] = None,
    catalog: Optional[TMDBClient] = None,
) -> ReelProxyRuntime:
    """Create and wire core services from settings."""

    settings = settings or SettingsManager()
    event_bus = EventBus()

    discovery = DiscoveryCoordinator(
        event_bus,
        min_seeders=int(settings.get("min_seeders_required", 5)),
        search_timeout_seconds=float(settings.get("search_timeout_seconds", 10.0)),
        cache_ttl_seconds=float(settings.get("discovery_cache_ttl_seconds", 300.0)),
    )
    for source in (default_sources(settings) if sources is None else sources):
        discovery.register(source)
    enabled_sources = settings.get("enabled_sources", {})
    if enabled_sources:
        for source_name, enabled in enabled_sources.items():
            discovery.enable_source(source_name, bool(enabled))

    catalog = catalog or TMDBClient(
        settings.get("tmdb_api_key", ""),
        timeout=float(settings.get("tmdb_request_timeout_seconds", 10.0)),
    )
    library = LibraryService(
        catalog,
        discovery,
        M3UBuilder(settings.get("server_url", "http://localhost:3000")),
        event_bus=event_bus,
        cache_duration_hours=float(settings.get("cache_duration_hours", 24.0)),
        refresh_interval_hours=float(settings.get("refresh_interval_hours", 6.0)),
        max_items=int(settings.get("refresh_max_items", 100)),
        delay_seconds=float(settings.get("refresh_delay_seconds", 1.0)),
    )

    if engine is None:
        engine = build_engine(settings.get("download_dir"))
    registry = None
    reaper = None
    if engine is not None:
        registry = SessionRegistry(
            engine,
            event_bus,
            startup_timeout_seconds=float(settings.get("session_startup_timeout_seconds", 30.0)),
        )
        reaper = IdleReaper(
            registry,
            interval_seconds=float(settings.get("reaper_interval_seconds", 1800.0)),
            ttl_seconds=float(settings.get("session_idle_ttl_seconds", 3600.0)),
        )

    return ReelProxyRuntime(
        settings=settings,
        event_bus=event_bus,
        discovery=discovery,
        catalog=catalog,
        library=library,
        streamer=RangeStreamServer(event_bus),
        engine=engine,
        registry=registry,
        reaper=reaper,
    )
