"""
Discovery Coordinator
Fans a search phrase out to every enabled source, then validates, scores and
selects the best candidate.
"""
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass
from concurrent.futures import Future, ThreadPoolExecutor, wait, FIRST_COMPLETED
from collections import OrderedDict
import logging
import threading
import time

from ..models.candidate import Candidate, ScoredCandidate
from ..sources.base import BaseSource, SourceError
from .event_bus import EventBus, Events
from .query import build_search_phrase
from .scoring import score_candidate
from .validator import DEFAULT_MIN_SEEDERS, is_valid

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_TIMEOUT_SECONDS = 10.0
DEFAULT_CACHE_TTL_SECONDS = 300.0
DEFAULT_CACHE_SIZE = 100


class DiscoveryCache:
    """LRU cache of scored candidate lists keyed by search phrase"""

    def __init__(self, max_size=DEFAULT_CACHE_SIZE, ttl_seconds=DEFAULT_CACHE_TTL_SECONDS):
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._cache: OrderedDict = OrderedDict()
        self._lock = threading.RLock()

    def get(self, phrase: str) -> Optional[List[ScoredCandidate]]:
        """Get cached candidates if still valid"""
        if self.ttl_seconds <= 0:
            return None
        with self._lock:
            key = phrase.lower()
            if key in self._cache:
                timestamp, results = self._cache[key]
                if time.time() - timestamp < self.ttl_seconds:
                    self._cache.move_to_end(key)
                    return list(results)
                del self._cache[key]
            return None

    def set(self, phrase: str, results: List[ScoredCandidate]):
        if self.ttl_seconds <= 0:
            return
        with self._lock:
            key = phrase.lower()
            self._cache[key] = (time.time(), list(results))
            self._cache.move_to_end(key)
            while len(self._cache) > self.max_size:
                self._cache.popitem(last=False)

    def clear(self):
        with self._lock:
            self._cache.clear()

    def __len__(self):
        with self._lock:
            return len(self._cache)


@dataclass
class SourceHealth:
    attempts: int = 0
    successes: int = 0
    failures: int = 0
    timeouts: int = 0
    consecutive_failures: int = 0
    last_error: str = ""
    last_latency_ms: float = 0.0
    last_attempt_at: float = 0.0
    last_success_at: float = 0.0
    last_result_count: int = 0


class DiscoveryCoordinator:
    """Concurrent multi-source discovery with deterministic best-pick"""

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        min_seeders: int = DEFAULT_MIN_SEEDERS,
        search_timeout_seconds: float = DEFAULT_SEARCH_TIMEOUT_SECONDS,
        cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        cache_size: int = DEFAULT_CACHE_SIZE,
        max_workers: int = 10,
    ):
        self.event_bus = event_bus or EventBus()
        self.min_seeders = int(min_seeders)
        self.search_timeout_seconds = max(0.01, float(search_timeout_seconds))
        # Registration order is the tie-break order, so a plain dict keeps it.
        self._sources: Dict[str, BaseSource] = {}
        self._enabled: Dict[str, bool] = {}
        self._health: Dict[str, SourceHealth] = {}
        self._lock = threading.RLock()
        self._cache = DiscoveryCache(max_size=cache_size, ttl_seconds=cache_ttl_seconds)
        # Searches that outlived their deadline and still hold a worker, by source.
        self._abandoned: Dict[str, Future] = {}
        self._max_workers = max(1, int(max_workers))
        self._executor = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="discovery")

    def _ensure_capacity(self):
        """
        Each source holds at most one abandoned search, so a pool of twice the
        source count always leaves a worker per source for the current fan-out.
        """
        needed = 2 * len(self._sources)
        if needed <= self._max_workers:
            return
        old = self._executor
        self._max_workers = needed
        self._executor = ThreadPoolExecutor(max_workers=needed, thread_name_prefix="discovery")
        old.shutdown(wait=False)

    def register(self, source):
        """Register a search source"""
        if not isinstance(source, BaseSource):
            raise TypeError(f"Invalid source type for register(): {type(source)}. Expected BaseSource.")
        if not getattr(source, "name", ""):
            raise ValueError("Source must define non-empty 'name'.")
        with self._lock:
            self._sources[source.name] = source
            self._enabled[source.name] = True
            self._health.setdefault(source.name, SourceHealth())
            self._cache.clear()
            self._ensure_capacity()

    def unregister(self, source_name: str):
        with self._lock:
            self._sources.pop(source_name, None)
            self._enabled.pop(source_name, None)
            self._health.pop(source_name, None)
            self._cache.clear()

    def enable_source(self, source_name: str, enabled: bool = True):
        """Enable or disable a source"""
        with self._lock:
            if source_name in self._enabled:
                self._enabled[source_name] = enabled
                self._cache.clear()

    def get_enabled_sources(self) -> List[str]:
        """Enabled source names in registration order"""
        with self._lock:
            return [name for name, enabled in self._enabled.items() if enabled]

    def get_source_names(self) -> List[str]:
        with self._lock:
            return list(self._sources.keys())

    def get_source_health_snapshot(self) -> Dict[str, Dict]:
        with self._lock:
            out = {}
            for name, h in self._health.items():
                out[name] = {
                    "enabled": bool(self._enabled.get(name, False)),
                    "attempts": h.attempts,
                    "successes": h.successes,
                    "failures": h.failures,
                    "timeouts": h.timeouts,
                    "consecutive_failures": h.consecutive_failures,
                    "last_error": h.last_error,
                    "last_latency_ms": round(h.last_latency_ms, 2),
                    "last_attempt_at": h.last_attempt_at,
                    "last_success_at": h.last_success_at,
                    "last_result_count": h.last_result_count,
                }
            return out

    def clear_cache(self):
        self._cache.clear()

    def discover(self, title: str, year: Optional[int] = None, media_type: str = "movie") -> Optional[ScoredCandidate]:
        """
        Find the best candidate for a media item.

        Returns None when no source produced a valid candidate. Raises
        ValueError for an empty title.
        """
        phrase = build_search_phrase(title, year, media_type)
        scored = self._scored_candidates(phrase)
        best = self.select_best(scored)
        if best is None:
            logger.info("No valid candidate for %r", phrase)
        else:
            logger.info("Selected %r from %s (score %.1f)", best.title, best.candidate.source_name, best.score)
        return best

    def search_all(self, phrase: str) -> List[ScoredCandidate]:
        """Every valid candidate for a phrase, best first; equal scores keep source order."""
        if not (phrase or "").strip():
            return []
        scored = self._scored_candidates(phrase.strip())
        return sorted(scored, key=lambda item: item.score, reverse=True)

    @staticmethod
    def select_best(scored: List[ScoredCandidate]) -> Optional[ScoredCandidate]:
        best: Optional[ScoredCandidate] = None
        for item in scored:
            # Strictly greater, so the earliest of equal scores wins.
            if best is None or item.score > best.score:
                best = item
        return best

    def _scored_candidates(self, phrase: str) -> List[ScoredCandidate]:
        cached = self._cache.get(phrase)
        if cached is not None:
            logger.debug("Discovery cache hit for %r", phrase)
            return cached

        self.event_bus.emit(Events.DISCOVERY_STARTED, {"phrase": phrase})
        raw = self._fan_out(phrase)
        valid = [c for c in raw if is_valid(c, self.min_seeders)]
        scored = [score_candidate(c) for c in valid]

        if scored:
            self._cache.set(phrase, scored)

        best = self.select_best(scored)
        self.event_bus.emit(Events.DISCOVERY_COMPLETED, {
            "phrase": phrase,
            "raw_count": len(raw),
            "valid_count": len(valid),
            "best": best,
            "source_health": self.get_source_health_snapshot(),
        })
        return scored

    def _fan_out(self, phrase: str) -> List[Candidate]:
        """Query every enabled source at once; concatenate in registration order."""
        busy: List[str] = []
        futures: Dict[Future, str] = {}
        with self._lock:
            sources = [(name, self._sources[name]) for name in self.get_enabled_sources() if name in self._sources]
            for name, source in sources:
                previous = self._abandoned.get(name)
                if previous is not None and not previous.done():
                    busy.append(name)
                    continue
                self._abandoned.pop(name, None)
                futures[self._executor.submit(self._safe_search, source, phrase)] = name

        for source_name in busy:
            self._source_failed(
                source_name,
                f"{source_name} is still running a search that timed out earlier",
                timed_out=True,
            )
        if not futures:
            return []

        per_source: Dict[str, List[Candidate]] = {}
        pending = set(futures.keys())
        deadline = time.monotonic() + self.search_timeout_seconds

        while pending:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            done, pending = wait(pending, timeout=remaining, return_when=FIRST_COMPLETED)
            for future in done:
                source_name = futures[future]
                try:
                    results, latency_ms = future.result()
                except SourceError as e:
                    self._source_failed(source_name, str(e))
                    continue
                except Exception as e:
                    logger.exception("Unexpected error from source %s", source_name)
                    self._source_failed(source_name, f"{type(e).__name__}: {e}")
                    continue
                per_source[source_name] = list(results or [])
                self._record_source_outcome(source_name, ok=True, latency_ms=latency_ms, result_count=len(per_source[source_name]))

        for future in pending:
            # Running futures cannot be interrupted; they are abandoned, never awaited.
            source_name = futures[future]
            if not future.cancel():
                with self._lock:
                    self._abandoned[source_name] = future
            self._source_failed(
                source_name,
                f"{source_name} timed out after {self.search_timeout_seconds:g}s",
                timed_out=True,
            )

        merged: List[Candidate] = []
        for name, _source in sources:
            merged.extend(per_source.get(name, []))
        return merged

    @staticmethod
    def _safe_search(source: BaseSource, phrase: str) -> Tuple[List[Candidate], float]:
        start = time.perf_counter()
        results = source.search(phrase)
        return results, (time.perf_counter() - start) * 1000.0

    def _source_failed(self, source_name: str, message: str, timed_out: bool = False):
        logger.warning("Source %s contributed no results: %s", source_name, message)
        self._record_source_outcome(source_name, ok=False, error_message=message, timed_out=timed_out)
        self.event_bus.emit(Events.SOURCE_FAILED, {
            "source": source_name,
            "error": message,
            "timed_out": timed_out,
        })

    def _record_source_outcome(
        self,
        source_name: str,
        ok: bool,
        error_message: str = "",
        latency_ms: float = 0.0,
        result_count: int = 0,
        timed_out: bool = False,
    ):
        with self._lock:
            h = self._health.setdefault(source_name, SourceHealth())
            h.attempts += 1
            h.last_attempt_at = time.time()
            h.last_latency_ms = float(latency_ms or 0.0)
            if ok:
                h.successes += 1
                h.consecutive_failures = 0
                h.last_error = ""
                h.last_success_at = h.last_attempt_at
                h.last_result_count = result_count
            else:
                h.failures += 1
                h.consecutive_failures += 1
                h.last_error = error_message
                h.last_result_count = 0
                if timed_out:
                    h.timeouts += 1

    def shutdown(self):
        """Stop accepting work; abandoned searches finish on their own"""
        self._executor.shutdown(wait=False, cancel_futures=True)
