"""Browser-backed media sink.

The player page polls :meth:`BrowserSink.command` and mirrors it onto an
``<audio>`` element.  Each ``load()`` opens a new *generation*; the page
tags its play acknowledgements and media events with the generation it
is playing so that stragglers from an older source are dropped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from core.playlist import PlaybackRejected

logger = logging.getLogger(__name__)


class BrowserSink:
    """``MediaSink`` whose commands are executed by the player page."""

    def __init__(self, ack_timeout: float = 10.0):
        self.ack_timeout = ack_timeout
        self.source: Optional[str] = None
        self.generation = 0
        self.play_requested = False
        self.current_time = 0.0
        self._duration: Optional[float] = None
        self._pending: asyncio.Future | None = None

    @property
    def duration(self) -> Optional[float]:
        return self._duration

    # -- MediaSink commands ------------------------------------------------

    def set_source(self, url: str) -> None:
        self.source = url
        self._duration = None

    def load(self) -> None:
        self._reject_pending("superseded by a new source")
        self.generation += 1
        self.play_requested = False

    async def play(self) -> None:
        """Request playback and wait for the page to confirm it started."""
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._pending = future
        self.play_requested = True
        try:
            await asyncio.wait_for(future, self.ack_timeout)
        except asyncio.TimeoutError:
            self.play_requested = False
            raise PlaybackRejected(f"no acknowledgement within {self.ack_timeout:g}s") from None
        except PlaybackRejected:
            self.play_requested = False
            raise
        finally:
            if self._pending is future:
                self._pending = None

    def pause(self) -> None:
        self.play_requested = False
        self._reject_pending("paused")

    # -- page feedback -----------------------------------------------------

    def is_current(self, generation: int) -> bool:
        return generation == self.generation

    def acknowledge(self, generation: int, ok: bool, reason: str = "") -> bool:
        """Resolve the pending ``play()``; False if nothing was waiting for it."""
        if not self.is_current(generation) or self._pending is None or self._pending.done():
            return False
        if ok:
            self._pending.set_result(None)
        else:
            self._pending.set_exception(PlaybackRejected(reason or "rejected by browser"))
        return True

    def update_position(self, current_time: float, duration: Optional[float]) -> None:
        self.current_time = current_time
        self._duration = duration

    def command(self) -> Dict[str, Any]:
        """What the page should be doing right now."""
        return {
            "generation": self.generation,
            "source": self.source,
            "play": self.play_requested,
        }

    def _reject_pending(self, reason: str) -> None:
        if self._pending is not None and not self._pending.done():
            logger.debug("Rejecting pending play: %s", reason)
            self._pending.set_exception(PlaybackRejected(reason))
        self._pending = None
