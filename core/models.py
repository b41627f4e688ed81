"""Pydantic models shared across the application."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Track(BaseModel):
    """Read-only snapshot of one track record."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    source_link: str = ""  # share link as entered by the operator
    playback_link: str = ""  # direct-download URL fed to the sink
    order: int = 0
    active: bool = True
    created_at: str = ""


class TrackCreate(BaseModel):
    """Payload for registering a new track."""

    link: str
    name: Optional[str] = None
    order: Optional[int] = None


class TrackUpdate(BaseModel):
    """Partial update — only fields that were set are written."""

    name: Optional[str] = None
    source_link: Optional[str] = None
    playback_link: Optional[str] = None
    order: Optional[int] = None
    active: Optional[bool] = None


class MoveRequest(BaseModel):
    direction: str = Field(pattern="^(up|down)$")


class PlaybackStatus(BaseModel):
    """Controller snapshot served to the player page."""

    state: str
    index: int
    total_tracks: int
    current_track: Optional[Track] = None
    playing: bool = False
    progress: float = 0.0
    failed_ids: List[str] = Field(default_factory=list)
    notice: Optional[str] = None
