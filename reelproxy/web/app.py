"""FastAPI app exposing playlist, discovery and streaming endpoints."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging
import time

from fastapi import Body, FastAPI, Query, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from starlette.background import BackgroundTask

from ..core.range_stream import RangeNotSatisfiable, SessionRetired
from ..core.session_registry import SessionError
from ..services.tmdb_client import CatalogError
from .runtime import ReelProxyRuntime, build_runtime

logger = logging.getLogger(__name__)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _timestamp_iso(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, timezone.utc).isoformat().replace("+00:00", "Z")


def _error(status_code: int, code: str, message: str, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(
        {"error": {"code": code, "message": message}},
        status_code=status_code,
        headers=headers,
    )


class RefreshRequest(BaseModel):
    maxItems: Optional[int] = None


def create_app(runtime: Optional[ReelProxyRuntime] = None) -> FastAPI:
    runtime = runtime or build_runtime()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        runtime.start()
        try:
            yield
        finally:
            runtime.shutdown()

    app = FastAPI(title="ReelProxy", version="1.0.0", lifespan=lifespan)
    app.state.runtime = runtime

    @app.get("/health")
    def health() -> Dict:
        return {"status": "healthy", "timestamp": _utc_now_iso()}

    @app.get("/status")
    def status() -> Dict[str, Any]:
        library = runtime.library.status()
        return {
            "status": "running",
            "moviesInCache": library["moviesInCache"],
            "playlistItems": library["playlistItems"],
            "lastUpdate": _timestamp_iso(library["lastUpdate"]),
            "uptime": round(time.time() - runtime.started_at, 1),
            "catalogConfigured": library["catalogConfigured"],
            "schedulerRunning": library["schedulerRunning"],
            "engine": {
                "available": runtime.streaming_available,
                "name": getattr(runtime.engine, "name", None),
            },
            "sessions": runtime.registry.stats() if runtime.registry is not None else None,
            "streams": runtime.streamer.stats(),
            "sources": runtime.discovery.get_source_health_snapshot(),
        }

    @app.get("/playlist.m3u")
    def playlist_m3u() -> Response:
        try:
            playlist = runtime.library.get_playlist()
        except CatalogError as e:
            return _error(503, "CATALOG_UNAVAILABLE", str(e))
        return Response(
            content=playlist,
            media_type="application/vnd.apple.mpegurl",
            headers={
                "Content-Disposition": 'attachment; filename="movies.m3u"',
                "Cache-Control": "public, max-age=3600",
            },
        )

    @app.get("/playlist.json")
    def playlist_json():
        try:
            return runtime.library.get_json_playlist()
        except CatalogError as e:
            return _error(503, "CATALOG_UNAVAILABLE", str(e))

    @app.get("/movie/{movie_id}")
    def movie_info(movie_id: str):
        item = runtime.library.get_item(movie_id)
        if item is None:
            return _error(404, "NOT_FOUND", "Movie not found")
        return item.to_dict()

    @app.get("/api/discover")
    def discover(
        title: str = Query(...),
        year: Optional[int] = Query(default=None),
        type: str = Query(default="movie"),
    ):
        try:
            best = runtime.discovery.discover(title, year, type)
        except ValueError as e:
            return _error(400, "INVALID_QUERY", str(e))
        if best is None:
            return _error(404, "NOT_FOUND", f"No suitable torrent found for {title!r}")
        return {"result": best.to_dict()}

    @app.get("/api/sessions")
    def sessions() -> Dict[str, Any]:
        if runtime.registry is None:
            return {"available": False, "sessions": []}
        return {"available": True, "sessions": runtime.registry.snapshot()}

    @app.get("/stream/{movie_id}")
    def stream(movie_id: str, request: Request):
        item = runtime.library.get_item(movie_id)
        if item is None or item.candidate is None:
            return _error(404, "NOT_FOUND", "Movie not found or no torrent available")
        candidate = item.candidate.candidate

        if runtime.registry is None:
            return JSONResponse({
                "error": "Direct streaming not available",
                "message": "Please use a torrent client to download this content",
                "magnetLink": candidate.locator,
                "title": candidate.title or "Unknown",
                "seeders": candidate.seeders,
            })

        range_header = request.headers.get("range")
        try:
            session = runtime.registry.acquire(candidate.locator)
            try:
                prepared = runtime.streamer.prepare(session, range_header)
            except SessionRetired:
                # Lost a race with the idle reaper; a fresh session replaces it.
                session = runtime.registry.acquire(candidate.locator)
                prepared = runtime.streamer.prepare(session, range_header)
        except SessionError as e:
            logger.error("Streaming %s failed: %s", movie_id, e.message)
            return _error(500, e.kind.value, e.message)
        except RangeNotSatisfiable as e:
            return _error(416, "RANGE_NOT_SATISFIABLE", str(e), headers=e.headers)
        except SessionRetired as e:
            return _error(503, "SESSION_RETIRED", str(e))

        logger.info("Streaming %s (%s) bytes %d-%d", movie_id, session.file_name, prepared.start, prepared.end)
        return StreamingResponse(
            prepared.body(),
            status_code=prepared.status,
            headers=prepared.headers,
            background=BackgroundTask(prepared.close),
        )

    @app.post("/refresh")
    def refresh(body: Optional[RefreshRequest] = Body(default=None)):
        max_items = body.maxItems if body is not None else None
        try:
            count = runtime.library.refresh(max_items=max_items)
        except CatalogError as e:
            return _error(502, "CATALOG_ERROR", str(e))
        return {"message": "Content refreshed successfully", "count": count}

    return app


app = create_app()
