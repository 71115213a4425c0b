"""
Hide My Search — FastAPI Backend
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse

from backend.config import LOG_LEVEL
from backend.database.recent_searches_db import init_db
from backend.services.errors import ProxyError

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parent / "static"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Initializing Hide My Search proxy...")
    init_db()                   # Create SQLite schema if not exists
    yield
    logger.info("🛑 Shutting down Hide My Search proxy...")


app = FastAPI(
    title="Hide My Search API",
    version="0.1.0",
    lifespan=lifespan
)

# No CORSMiddleware: /api/proxy sets its own CORS headers and answers its own preflights


# ── Error shape: {message, error?} for every failure ──

@app.exception_handler(ProxyError)
async def proxy_error_handler(request: Request, exc: ProxyError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} ({exc.cause!r})")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"{request.method} {request.url.path} crashed: {exc!r}")
    return JSONResponse(
        status_code=500,
        content={"message": "Internal server error", "error": str(exc) or exc.__class__.__name__},
    )


# ── Routers ──
from backend.routers.browser_proxy import router as browser_proxy_router
from backend.routers.recent_searches import router as recent_searches_router
from backend.routers.site_analysis import router as site_analysis_router

app.include_router(browser_proxy_router)
app.include_router(recent_searches_router)
app.include_router(site_analysis_router)


# ── Health / Root ──

@app.get("/health")
async def health():
    return {"status": "ok", "service": "hide-my-search-backend"}


@app.get("/", response_class=HTMLResponse)
async def root():
    """Frame host page: address bar, sandboxed proxy frame and bridge listener."""
    return HTMLResponse((STATIC_DIR / "index.html").read_text(encoding="utf-8"))
