"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.responses import JSONResponse, RedirectResponse

from app.config import get_settings
from app.db import close_db, init_db
from app.runtime import start_runtime, stop_runtime

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    await init_db()
    logger.info("DB ready at %s", settings.db_abs_path)
    await start_runtime()
    yield
    await stop_runtime()
    await close_db()
    logger.info("DB closed")


app = FastAPI(
    title=get_settings().app_title,
    version="0.1.0",
    lifespan=lifespan,
)

# Static files
from fastapi.staticfiles import StaticFiles  # noqa: E402

app.mount(
    "/static",
    StaticFiles(directory=str(Path(__file__).resolve().parent / "static")),
    name="static",
)

# Routers
from app.routes_admin import router as admin_router  # noqa: E402
from app.routes_api import router as api_router  # noqa: E402
from app.routes_player import router as player_router  # noqa: E402

app.include_router(admin_router)
app.include_router(api_router)
app.include_router(player_router)


@app.get("/")
async def home():
    return RedirectResponse("/player")


@app.get("/health")
async def health():
    """Simple health-check endpoint."""
    return JSONResponse({"status": "ok", "version": app.version})
