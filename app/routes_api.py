"""JSON API over the track store (same operations as the admin console)."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, HTTPException, Response

from app.runtime import get_runtime
from app.store import StoreError, TrackNotFound, TrackValidationError
from app.tracks import move_track, register_track, remove_track
from core.links import normalize_link
from core.models import MoveRequest, Track, TrackCreate, TrackUpdate

router = APIRouter(prefix="/api/tracks", tags=["api"])


def _to_http(exc: Exception) -> HTTPException:
    if isinstance(exc, TrackNotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, TrackValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=503, detail=str(exc))


@router.get("", response_model=List[Track])
async def list_tracks(active_only: bool = False):
    try:
        return await get_runtime().store.list_tracks(active_only=active_only)
    except StoreError as exc:
        raise _to_http(exc) from exc


@router.post("", response_model=Track, status_code=201)
async def create_track(body: TrackCreate):
    store = get_runtime().store
    try:
        track_id = await register_track(store, body.link, name=body.name, order=body.order)
        return await store.get_record(track_id)
    except (TrackValidationError, StoreError) as exc:
        raise _to_http(exc) from exc


@router.patch("/{track_id}", response_model=Track)
async def update_track(track_id: str, body: TrackUpdate):
    partial = body.model_dump(exclude_unset=True)
    nulls = sorted(k for k, v in partial.items() if v is None)
    if nulls:
        raise HTTPException(status_code=400, detail=f"Fields cannot be null: {nulls}")
    if "source_link" in partial and "playback_link" not in partial:
        partial["playback_link"] = normalize_link(partial["source_link"])

    store = get_runtime().store
    try:
        await store.update_record(track_id, partial)
        return await store.get_record(track_id)
    except (TrackValidationError, StoreError) as exc:
        raise _to_http(exc) from exc


@router.delete("/{track_id}", status_code=204)
async def delete_track(track_id: str):
    try:
        await remove_track(get_runtime().store, track_id)
    except StoreError as exc:
        raise _to_http(exc) from exc
    return Response(status_code=204)


@router.post("/{track_id}/move")
async def move(track_id: str, body: MoveRequest):
    try:
        moved = await move_track(get_runtime().store, track_id, body.direction)
    except (TrackValidationError, StoreError) as exc:
        raise _to_http(exc) from exc
    return {"moved": moved}
