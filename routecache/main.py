"""
routecache - FastAPI service

Server side of the hydration handoff: each request gets its own cache
store, runs the matched route's load and returns the store snapshot for a
client store to restore.
"""
import logging

from fastapi import FastAPI, HTTPException, Query

from config.settings import settings
from routecache import __version__
from routecache.cache import CacheStore
from routecache.navigation import load_route_data, resolve_url
from routecache.routes import build_router
from routecache.schemas import HealthResponse, SnapshotResponse

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger("main")

APP_NAME = "routecache"

app = FastAPI(
    title=APP_NAME,
    description="Route data prefetch and cache hydration snapshots",
    version=__version__,
)

router = build_router()


@app.get("/health", response_model=HealthResponse)
def health_check():
    """Health check endpoint."""
    return HealthResponse(status="ok", source=settings.upstream_base_url)


@app.get("/version")
def version_info():
    """Version information endpoint."""
    return {
        "name": APP_NAME,
        "version": __version__,
    }


@app.get("/snapshot", response_model=SnapshotResponse)
async def snapshot(path: str = Query("/", description="Route path, with optional query string")):
    """
    Load the route at ``path`` into a fresh per-request store and return
    the hydration snapshot.
    """
    url = resolve_url(path)
    match = router.match(url.path)
    if match is None:
        raise HTTPException(status_code=404, detail=f"No route for {url.path}")

    store = CacheStore()
    try:
        await load_route_data(match, store, url)
        return SnapshotResponse(path=path, data=store.snapshot())
    except Exception as e:
        logger.error(f"Server-side route load failed for {path}: {e}")
        raise HTTPException(status_code=502, detail="Route data load failed")
    finally:
        store.close()
