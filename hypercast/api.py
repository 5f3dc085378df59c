"""
Hypercast Feed API
==================

Serves the reconciled cast feed held in memory.

Endpoints:
- GET  /health            -> liveness
- GET  /api/v1/casts      -> visible casts, newest first
- GET  /api/v1/cursor     -> current harvest cursor
- POST /api/v1/refresh    -> harvest new pages into the feed

Usage:
    hypercast-api --port 8000 --reload
    uvicorn hypercast.api:app --reload
"""

from __future__ import annotations
from contextlib import asynccontextmanager
from typing import List, Optional
import argparse
import logging

import uvicorn
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .config import load_config
from .errors import HarvestError
from .feed import CastFeed, RefreshInProgress
from .fetcher import EventFetcher, FetchConfig
from .logging_utils import configure_logging
from .poller import clamp_timeout_ms
from .store import ReconciliationStore


logger = logging.getLogger(__name__)


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class CastModel(BaseModel):
    hash: str
    fid: int
    text: str
    created_at_millis: int
    parent_fid: Optional[int] = None
    parent_hash: Optional[str] = None
    mentions: List[int]
    event_id: str


class CursorModel(BaseModel):
    from_event_id: str
    page_token: Optional[str] = None


class RefreshModel(BaseModel):
    added: int
    updated: int
    removed: int
    total_visible: int
    received_count: int
    latency_ms: float
    cursor: CursorModel


def build_feed_from_env() -> CastFeed:
    """Build a CastFeed from environment configuration."""
    config = load_config()
    fetcher = EventFetcher(FetchConfig(
        base_url=config.poller.hub_url,
        page_size=config.poller.page_size,
        timeout=clamp_timeout_ms(config.poller.timeout_ms) / 1000,
        reverse=config.poller.reverse
    ))
    return CastFeed(
        fetcher,
        ReconciliationStore(config.feed.max_visible),
        max_pages=config.poller.max_pages_per_poll
    )


def _feed(request: Request) -> CastFeed:
    feed = getattr(request.app.state, 'feed', None)
    if feed is None:
        raise HTTPException(status_code=503, detail="Feed not initialized")
    return feed


def create_app(feed: Optional[CastFeed] = None) -> FastAPI:
    """Create the API; the feed is built from the environment on startup if omitted."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, 'feed', None) is None
        if owned:
            app.state.feed = build_feed_from_env()
            logger.info("Feed initialized for %s", app.state.feed.source_url)
        yield
        if owned:
            app.state.feed = None

    app = FastAPI(
        title="Hypercast Feed API",
        version="0.1.0",
        description="Reconciled cast feed harvested from a hub events endpoint",
        lifespan=lifespan
    )
    app.state.feed = feed

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check(request: Request):
        feed = _feed(request)
        return {"status": "online", "casts": len(feed.store)}

    @app.get("/api/v1/casts", response_model=List[CastModel])
    async def list_casts(request: Request, limit: int = Query(100, ge=1, le=500)):
        rows = _feed(request).rows(limit)
        return [
            CastModel(
                hash=row.hash,
                fid=row.owner_id,
                text=row.text,
                created_at_millis=row.created_at_millis,
                parent_fid=row.parent_owner_id,
                parent_hash=row.parent_hash,
                mentions=list(row.mentions),
                event_id=str(row.event_id)
            )
            for row in rows
        ]

    @app.get("/api/v1/cursor", response_model=CursorModel)
    async def get_cursor(request: Request):
        cursor = _feed(request).last_cursor
        return CursorModel(from_event_id=str(cursor.from_event_id), page_token=cursor.page_token)

    @app.post("/api/v1/refresh", response_model=RefreshModel)
    async def refresh(request: Request):
        feed = _feed(request)
        try:
            summary = await feed.refresh()
        except RefreshInProgress as e:
            raise HTTPException(status_code=409, detail=str(e))
        except HarvestError as e:
            logger.error("Feed refresh failed: %s", e)
            raise HTTPException(status_code=502, detail=str(e))

        return RefreshModel(
            added=summary.added,
            updated=summary.updated,
            removed=summary.removed,
            total_visible=summary.total_visible,
            received_count=summary.received_count,
            latency_ms=summary.latency_ms,
            cursor=CursorModel(
                from_event_id=str(summary.last_cursor.from_event_id),
                page_token=summary.last_cursor.page_token
            )
        )

    return app


app = create_app()


def main(argv: Optional[List[str]] = None) -> int:
    """Serve the feed API with uvicorn."""
    parser = argparse.ArgumentParser(description="Hypercast feed API")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address.")
    parser.add_argument("--port", type=int, default=8000, help="Bind port.")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (development).")
    args = parser.parse_args(argv)

    configure_logging()
    logger.info("Serving feed API on http://%s:%d (docs at /docs)", args.host, args.port)
    uvicorn.run("hypercast.api:app", host=args.host, port=args.port, reload=args.reload)
    return 0
