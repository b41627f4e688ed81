"""Admin console routes: server-rendered track table and forms.

Every action re-renders (or redirects back to) ``/admin``; store failures
are shown to the operator as a message on the page and never retried.
"""

from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from app.runtime import get_runtime
from app.store import StoreError, TrackNotFound, TrackValidationError
from app.tracks import move_track, register_track, remove_track, toggle_track

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
templates = Jinja2Templates(directory=str(_TEMPLATES_DIR))


async def _render(
    request: Request,
    message: str | None = None,
    *,
    error: bool = False,
    status_code: int = 200,
) -> HTMLResponse:
    store = get_runtime().store
    try:
        tracks = await store.list_tracks()
    except StoreError as exc:
        tracks = []
        message, error, status_code = f"Failed to load tracks: {exc}", True, 503
    return templates.TemplateResponse(
        request,
        "admin.html",
        {"tracks": tracks, "message": message, "error": error},
        status_code=status_code,
    )


def _parse_order(raw: str) -> int | None:
    """Blank or non-numeric input means 'put it last'."""
    try:
        return int(raw.strip())
    except ValueError:
        return None


def _failure_status(exc: Exception) -> int:
    if isinstance(exc, TrackNotFound):
        return 404
    if isinstance(exc, TrackValidationError):
        return 400
    return 503


# ---------------------------------------------------------------------------
# /admin
# ---------------------------------------------------------------------------

@router.get("", response_class=HTMLResponse)
async def admin_page(request: Request):
    """Track table plus the add-track form."""
    return await _render(request)


@router.post("/tracks", response_class=HTMLResponse)
async def admin_add_track(request: Request):
    """Register a track from the add form."""
    form = await request.form()
    link = str(form.get("link", ""))
    name = str(form.get("name", "")) or None
    order = _parse_order(str(form.get("order", "")))

    store = get_runtime().store
    try:
        track_id = await register_track(store, link, name=name, order=order)
        track = await store.get_record(track_id)
    except (TrackValidationError, StoreError) as exc:
        logger.warning("Add track failed: %s", exc)
        return await _render(
            request, f"Failed to add track: {exc}", error=True, status_code=_failure_status(exc)
        )

    return await _render(request, f'Track "{track.name}" added.')


# ---------------------------------------------------------------------------
# Row actions
# ---------------------------------------------------------------------------

@router.post("/tracks/{track_id}/move", response_class=HTMLResponse)
async def admin_move_track(request: Request, track_id: str):
    form = await request.form()
    direction = str(form.get("direction", ""))
    try:
        await move_track(get_runtime().store, track_id, direction)
    except (TrackValidationError, StoreError) as exc:
        logger.warning("Reorder failed for %s: %s", track_id, exc)
        return await _render(
            request, f"Failed to reorder tracks: {exc}", error=True, status_code=_failure_status(exc)
        )
    return RedirectResponse("/admin", status_code=303)


@router.post("/tracks/{track_id}/toggle", response_class=HTMLResponse)
async def admin_toggle_track(request: Request, track_id: str):
    try:
        await toggle_track(get_runtime().store, track_id)
    except StoreError as exc:
        logger.warning("Toggle failed for %s: %s", track_id, exc)
        return await _render(
            request, f"Failed to update track: {exc}", error=True, status_code=_failure_status(exc)
        )
    return RedirectResponse("/admin", status_code=303)


@router.post("/tracks/{track_id}/delete", response_class=HTMLResponse)
async def admin_delete_track(request: Request, track_id: str):
    try:
        await remove_track(get_runtime().store, track_id)
    except StoreError as exc:
        logger.warning("Delete failed for %s: %s", track_id, exc)
        return await _render(
            request, f"Failed to remove track: {exc}", error=True, status_code=_failure_status(exc)
        )
    return RedirectResponse("/admin", status_code=303)
