"""Operator use-cases on top of the track store.

Register / move / toggle / remove.  Store failures propagate as
``StoreError`` so the caller can show them to the operator; nothing here
retries.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from app.store import TrackNotFound, TrackStore, TrackValidationError
from core.links import generate_track_name, normalize_link
from core.models import Track

logger = logging.getLogger(__name__)


async def register_track(
    store: TrackStore,
    link: str,
    name: Optional[str] = None,
    order: Optional[int] = None,
) -> str:
    """Add a track from a share link.

    Without an explicit ``order`` the track goes after the current highest
    one (or gets 1 in an empty collection); without a ``name`` it is named
    after its order.  New tracks start active.
    """
    link = (link or "").strip()
    if not link:
        raise TrackValidationError("A share link is required.")

    if order is None:
        highest = await store.max_order()
        order = highest + 1 if highest is not None else 1

    name = (name or "").strip() or generate_track_name(order)

    track_id = await store.add_record(
        {
            "name": name,
            "source_link": link,
            "playback_link": normalize_link(link),
            "order": order,
            "active": True,
        }
    )
    logger.info("Registered %r at order %d", name, order)
    return track_id


async def move_track(store: TrackStore, track_id: str, direction: str) -> bool:
    """Swap a track's order with its neighbour.

    Returns False when there is no neighbour in that direction.
    """
    if direction not in ("up", "down"):
        raise TrackValidationError(f"Invalid direction: {direction!r}")

    tracks: List[Track] = await store.list_tracks()
    position = next((i for i, t in enumerate(tracks) if t.id == track_id), None)
    if position is None:
        raise TrackNotFound(track_id)

    neighbour = position - 1 if direction == "up" else position + 1
    if neighbour < 0 or neighbour >= len(tracks):
        return False

    track, other = tracks[position], tracks[neighbour]
    await store.atomic_swap(
        track.id, {"order": other.order},
        other.id, {"order": track.order},
    )
    logger.info("Moved %r %s (order %d <-> %d)", track.name, direction, track.order, other.order)
    return True


async def toggle_track(store: TrackStore, track_id: str) -> bool:
    """Flip the active flag; returns the new value."""
    track = await store.get_record(track_id)
    await store.update_record(track_id, {"active": not track.active})
    return not track.active


async def remove_track(store: TrackStore, track_id: str) -> None:
    await store.delete_record(track_id)
