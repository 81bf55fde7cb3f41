import logging
from functools import lru_cache
from typing import Optional

import requests
import uvicorn
from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from yield_tracker import __version__
from yield_tracker.config import ConfigManager, TrackerSettings
from yield_tracker.exceptions import TokenNotFoundError
from yield_tracker.indexer import now_ms
from yield_tracker.models import SnapshotSet
from yield_tracker.queries import single_token_view, summary_view
from yield_tracker.store import parse_snapshot_set

logger = logging.getLogger(__name__)

# Data changes hourly; let the edge cache serve stale copies while refreshing
CACHE_CONTROL = "s-maxage=300, stale-while-revalidate=600"

app = FastAPI(
    title="Yield Tracker API",
    description="Share prices and trailing APR of yield-bearing tokens",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_cache_headers(request: Request, call_next):
    response = await call_next(request)
    if request.url.path.startswith("/snapshots"):
        response.headers["Cache-Control"] = CACHE_CONTROL
    return response


@lru_cache(maxsize=1)
def get_settings() -> TrackerSettings:
    return TrackerSettings.from_config(ConfigManager())


def fetch_snapshot_set(settings: TrackerSettings) -> SnapshotSet:
    """Download the published snapshot set, bypassing intermediate caches."""
    if not settings.snapshots_url:
        raise RuntimeError("snapshots_url is not configured")
    response: requests.Response = requests.get(
        settings.snapshots_url,
        params={"t": now_ms()},
        timeout=settings.http_timeout,
    )
    if not response.ok:
        raise RuntimeError(f"Snapshot fetch failed: {response.status_code}")
    return parse_snapshot_set(response.json())


@app.get("/", tags=["Info"])
async def root():
    """API health check"""
    return {"status": "ok", "service": "Yield Tracker API"}


@app.get("/snapshots", tags=["Snapshots"])
def get_snapshots(
    token: Optional[str] = Query(None, description="Token id; all tokens if not specified"),
    settings: TrackerSettings = Depends(get_settings),
):
    """
    Latest share price and APR data.

    With `token`: latest metrics and the last 7 days of history for that token.
    Without: a summary of every token's latest snapshot.
    """
    try:
        data = fetch_snapshot_set(settings)
        if not token:
            return summary_view(data)
        return single_token_view(data, token, settings.horizons.keys())
    except TokenNotFoundError as e:
        return JSONResponse(
            status_code=404,
            content={"error": str(e), "available": e.available},
        )
    except Exception as e:
        logger.error(f"snapshots API error: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})


def start_api_server(
    settings: Optional[TrackerSettings] = None,
    host: str = "0.0.0.0",
    port: int = 8000,
):
    """
    Run the API with uvicorn.

    When settings are given (e.g. loaded from the CLI's --config), they
    replace the ones get_settings() would read from CONFIG_PATH.
    """
    if settings is not None:
        app.dependency_overrides[get_settings] = lambda: settings
    logger.info(f"Starting API server on {host}:{port}")
    uvicorn.run(app, host=host, port=port)
