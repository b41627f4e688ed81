"""Track store — the ``tracks`` collection with push-based change notification.

All writes go through one ``asyncio.Lock`` and, once committed, every
subscriber receives the *full* current list (never a delta), ordered by
``order`` ascending and filtered by the subscription's ``active_only``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import aiosqlite

from core.models import Track

logger = logging.getLogger(__name__)

Listener = Callable[[List[Track]], Awaitable[None]]

# Track field → column.
_COLUMNS = {
    "name": "name",
    "source_link": "source_link",
    "playback_link": "playback_link",
    "order": "sort_order",
    "active": "active",
}

_SELECT = (
    "SELECT id, name, source_link, playback_link, sort_order, active, created_at "
    "FROM tracks"
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class StoreError(Exception):
    """Raised when a store read or write fails."""


class TrackNotFound(StoreError):
    def __init__(self, track_id: str):
        self.track_id = track_id
        super().__init__(f"Track not found: {track_id}")


class TrackValidationError(ValueError):
    """Raised for payloads the store refuses before touching the database."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _row_to_track(row: Any) -> Track:
    return Track(
        id=row[0],
        name=row[1],
        source_link=row[2],
        playback_link=row[3],
        order=row[4],
        active=bool(row[5]),
        created_at=row[6],
    )


def _assignments(fields: Dict[str, Any]) -> Tuple[str, List[Any]]:
    """Build the ``SET`` clause for a partial update."""
    if not fields:
        raise TrackValidationError("No fields to update")
    parts: List[str] = []
    values: List[Any] = []
    for key, value in fields.items():
        column = _COLUMNS.get(key)
        if column is None:
            raise TrackValidationError(f"Unknown track field: {key}")
        if key == "active":
            value = int(bool(value))
        parts.append(f"{column} = ?")
        values.append(value)
    parts.append("updated_at = datetime('now')")
    return ", ".join(parts), values


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------

class Subscription:
    """Handle returned by :meth:`TrackStore.subscribe`."""

    def __init__(self, store: TrackStore, listener: Listener, active_only: bool):
        self._store = store
        self.listener = listener
        self.active_only = active_only

    @property
    def active(self) -> bool:
        return self in self._store._subscriptions

    def unsubscribe(self) -> None:
        if self.active:
            self._store._subscriptions.remove(self)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class TrackStore:
    """CRUD over ``tracks`` plus realtime fan-out to subscribers."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db
        self._write_lock = asyncio.Lock()
        self._publish_lock = asyncio.Lock()
        self._subscriptions: List[Subscription] = []

    # -- queries -----------------------------------------------------------

    async def list_tracks(self, active_only: bool = False) -> List[Track]:
        sql = _SELECT
        if active_only:
            sql += " WHERE active = 1"
        sql += " ORDER BY sort_order ASC, created_at ASC"
        try:
            cursor = await self._db.execute(sql)
            rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            logger.error("Failed to list tracks: %s", exc)
            raise StoreError(f"Failed to list tracks: {exc}") from exc
        return [_row_to_track(r) for r in rows]

    async def get_record(self, track_id: str) -> Track:
        try:
            cursor = await self._db.execute(f"{_SELECT} WHERE id = ?", (track_id,))
            row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            logger.error("Failed to read track %s: %s", track_id, exc)
            raise StoreError(f"Failed to read track: {exc}") from exc
        if row is None:
            raise TrackNotFound(track_id)
        return _row_to_track(row)

    async def max_order(self) -> Optional[int]:
        """Highest ``order`` in the collection, or None when it is empty."""
        try:
            cursor = await self._db.execute(
                "SELECT sort_order FROM tracks ORDER BY sort_order DESC LIMIT 1"
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            logger.error("Failed to read highest order: %s", exc)
            raise StoreError(f"Failed to read highest order: {exc}") from exc
        return row[0] if row else None

    # -- writes ------------------------------------------------------------

    async def add_record(self, fields: Dict[str, Any]) -> str:
        """Insert a track and return its new identifier."""
        unknown = set(fields) - set(_COLUMNS)
        if unknown:
            raise TrackValidationError(f"Unknown track fields: {sorted(unknown)}")

        track_id = uuid.uuid4().hex
        created_at = datetime.now(timezone.utc).isoformat()
        async with self._write_lock:
            try:
                await self._db.execute(
                    """
                    INSERT INTO tracks (id, name, source_link, playback_link, sort_order, active, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        track_id,
                        fields.get("name", ""),
                        fields.get("source_link", ""),
                        fields.get("playback_link", ""),
                        fields.get("order", 0),
                        int(bool(fields.get("active", True))),
                        created_at,
                    ),
                )
                await self._db.commit()
            except aiosqlite.Error as exc:
                await self._db.rollback()
                logger.error("Failed to add track: %s", exc)
                raise StoreError(f"Failed to add track: {exc}") from exc

        logger.info("Added track %s", track_id)
        await self._publish()
        return track_id

    async def update_record(self, track_id: str, partial: Dict[str, Any]) -> None:
        assignments, values = _assignments(partial)
        async with self._write_lock:
            try:
                cursor = await self._db.execute(
                    f"UPDATE tracks SET {assignments} WHERE id = ?",
                    (*values, track_id),
                )
                if cursor.rowcount == 0:
                    await self._db.rollback()
                    raise TrackNotFound(track_id)
                await self._db.commit()
            except aiosqlite.Error as exc:
                await self._db.rollback()
                logger.error("Failed to update track %s: %s", track_id, exc)
                raise StoreError(f"Failed to update track: {exc}") from exc

        await self._publish()

    async def delete_record(self, track_id: str) -> None:
        async with self._write_lock:
            try:
                cursor = await self._db.execute("DELETE FROM tracks WHERE id = ?", (track_id,))
                if cursor.rowcount == 0:
                    await self._db.rollback()
                    raise TrackNotFound(track_id)
                await self._db.commit()
            except aiosqlite.Error as exc:
                await self._db.rollback()
                logger.error("Failed to delete track %s: %s", track_id, exc)
                raise StoreError(f"Failed to delete track: {exc}") from exc

        logger.info("Deleted track %s", track_id)
        await self._publish()

    async def atomic_swap(
        self,
        id_a: str,
        fields_a: Dict[str, Any],
        id_b: str,
        fields_b: Dict[str, Any],
    ) -> None:
        """Write both documents in one transaction — both land or neither does."""
        async with self._write_lock:
            try:
                for track_id, fields in ((id_a, fields_a), (id_b, fields_b)):
                    assignments, values = _assignments(fields)
                    cursor = await self._db.execute(
                        f"UPDATE tracks SET {assignments} WHERE id = ?",
                        (*values, track_id),
                    )
                    if cursor.rowcount == 0:
                        raise TrackNotFound(track_id)
                await self._db.commit()
            except aiosqlite.Error as exc:
                await self._db.rollback()
                logger.error("Atomic swap %s <-> %s failed: %s", id_a, id_b, exc)
                raise StoreError(f"Failed to swap tracks: {exc}") from exc
            except Exception:
                await self._db.rollback()
                raise

        await self._publish()

    # -- realtime ----------------------------------------------------------

    async def subscribe(self, listener: Listener, active_only: bool = True) -> Subscription:
        """Register ``listener`` and deliver the current list to it right away."""
        sub = Subscription(self, listener, active_only)
        self._subscriptions.append(sub)
        async with self._publish_lock:
            await self._deliver(sub)
        return sub

    async def _publish(self) -> None:
        async with self._publish_lock:
            for sub in list(self._subscriptions):
                await self._deliver(sub)

    async def _deliver(self, sub: Subscription) -> None:
        try:
            tracks = await self.list_tracks(active_only=sub.active_only)
            await sub.listener(tracks)
        except Exception:
            logger.exception("Track subscriber failed")
