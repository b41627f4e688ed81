"""Process-wide objects wired together at startup.

One store, one browser sink and one playlist controller subscribed to
the store's active tracks.  Created in the FastAPI lifespan hook.
"""

from __future__ import annotations

import logging

from app.config import get_settings
from app.db import get_db
from app.sink import BrowserSink
from app.store import Subscription, TrackStore
from core.playlist import PlaylistController

logger = logging.getLogger(__name__)


class Runtime:
    __slots__ = ("store", "sink", "controller", "subscription")

    def __init__(self, store: TrackStore, sink: BrowserSink, controller: PlaylistController):
        self.store = store
        self.sink = sink
        self.controller = controller
        self.subscription: Subscription | None = None


_runtime: Runtime | None = None


async def start_runtime() -> Runtime:
    """Build the store/sink/controller trio and subscribe the controller."""
    global _runtime  # noqa: PLW0603
    settings = get_settings()

    store = TrackStore(get_db())
    sink = BrowserSink(ack_timeout=settings.play_ack_timeout_seconds)
    controller = PlaylistController(
        sink,
        retry_delay=settings.retry_delay_seconds,
        notice_ttl=settings.notice_ttl_seconds,
    )
    runtime = Runtime(store, sink, controller)
    _runtime = runtime
    runtime.subscription = await store.subscribe(controller.on_list_updated, active_only=True)
    logger.info("Player subscribed to active tracks")
    return runtime


async def stop_runtime() -> None:
    global _runtime  # noqa: PLW0603
    if _runtime is None:
        return
    if _runtime.subscription is not None:
        _runtime.subscription.unsubscribe()
    _runtime.controller.close()
    _runtime.sink.pause()
    _runtime = None


def get_runtime() -> Runtime:
    """Return the running store/sink/controller (call after startup)."""
    if _runtime is None:
        raise RuntimeError("Runtime not started — call start_runtime() first.")
    return _runtime
