"""Player routes: the autoplay page and its sink feedback channel.

The page polls ``/player/state`` for the sink command, confirms or
rejects each play request on ``/player/ack`` and forwards ``<audio>``
events to ``/player/events``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal, Optional

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel

from app.runtime import get_runtime

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/player", tags=["player"])

_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
templates = Jinja2Templates(directory=str(_TEMPLATES_DIR))


class PlayAck(BaseModel):
    generation: int
    ok: bool
    reason: str = ""


class PlayerEvent(BaseModel):
    generation: int
    type: Literal["ended", "error", "timeupdate"]
    current_time: float = 0.0
    duration: Optional[float] = None


@router.get("", response_class=HTMLResponse)
async def player_page(request: Request):
    return templates.TemplateResponse(request, "player.html", {})


@router.get("/state")
async def player_state():
    """Sink command for the page plus the controller's status."""
    runtime = get_runtime()
    return JSONResponse(
        {
            "command": runtime.sink.command(),
            "status": runtime.controller.snapshot().model_dump(),
        }
    )


@router.post("/ack")
async def player_ack(body: PlayAck):
    accepted = get_runtime().sink.acknowledge(body.generation, body.ok, body.reason)
    if not accepted:
        logger.debug("Dropped stale ack for generation %d", body.generation)
    return JSONResponse({"accepted": accepted})


@router.post("/events")
async def player_event(body: PlayerEvent):
    runtime = get_runtime()
    sink, controller = runtime.sink, runtime.controller

    if not sink.is_current(body.generation):
        logger.debug("Dropped stale %s event for generation %d", body.type, body.generation)
        return JSONResponse({"accepted": False})

    if body.type == "ended":
        controller.on_ended()
    elif body.type == "error":
        # An error before play was confirmed is the play rejection itself.
        if not sink.acknowledge(body.generation, False, "media error"):
            controller.on_error()
    else:
        sink.update_position(body.current_time, body.duration)
        controller.on_progress(body.current_time, body.duration)

    return JSONResponse({"accepted": True, "progress": controller.progress})
