"""Autoplay playlist controller — sequencing, failure tracking, advance.

The controller owns the playlist generation pushed by the track store,
the current position, the failure set and the playback intent. It drives
exactly one :class:`MediaSink` and reacts to the sink's lifecycle events.

Everything runs on the asyncio event loop: store pushes, sink events and
the delayed retry armed by :meth:`PlaylistController.advance` never run
concurrently, so each transition below is a complete step.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from enum import Enum
from typing import Callable, Optional, Protocol, Sequence, Set, Tuple

from core.models import PlaybackStatus, Track

logger = logging.getLogger(__name__)

NO_VALID_TRACK = "No valid track available."


# ---------------------------------------------------------------------------
# Sink interface
# ---------------------------------------------------------------------------

class PlaybackRejected(Exception):
    """Raised by :meth:`MediaSink.play` when the sink refuses to play."""


class MediaSink(Protocol):
    """The single audio output the controller commands."""

    current_time: float

    @property
    def duration(self) -> Optional[float]: ...

    def set_source(self, url: str) -> None: ...

    def load(self) -> None: ...

    async def play(self) -> None: ...

    def pause(self) -> None: ...


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class PlayerState(str, Enum):
    EMPTY = "empty"
    IDLE = "idle"
    PLAYING = "playing"
    ADVANCING = "advancing"


class PlaylistController:
    """Plays the active tracks in order, skipping the ones that fail."""

    def __init__(
        self,
        sink: MediaSink,
        *,
        retry_delay: float = 0.3,
        notice_ttl: float = 4.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.sink = sink
        self.retry_delay = retry_delay
        self.notice_ttl = notice_ttl
        self._clock = clock

        self.state = PlayerState.EMPTY
        self.playlist: Tuple[Track, ...] = ()
        self.index = 0
        self.failed: Set[str] = set()
        self.playing = False  # playback intent, not the sink's own flag
        self.progress = 0.0

        # Track last handed to the sink. It can differ from
        # ``playlist[index]`` once a newer push dropped or moved it.
        self._loaded: Track | None = None
        # Set when the loaded track vanished from a newer playlist: it is
        # left to finish and the next advance starts from the head.
        self._restart_from_head = False
        self._attempt = 0
        self._attempt_task: asyncio.Task | None = None
        self._notice: str | None = None
        self._notice_expires = 0.0

    # -- read-only views ---------------------------------------------------

    @property
    def current_track(self) -> Track | None:
        """The track in the sink while playing, otherwise the one up next."""
        if self.state is PlayerState.PLAYING and self._loaded is not None:
            return self._loaded
        if not self.playlist or self.index >= len(self.playlist):
            return None
        return self.playlist[self.index]

    @property
    def notice(self) -> str | None:
        """The transient user-facing notice, or None once it has expired."""
        if self._notice is None or self._clock() >= self._notice_expires:
            return None
        return self._notice

    @property
    def attempt_pending(self) -> bool:
        return self._attempt_task is not None and not self._attempt_task.done()

    def snapshot(self) -> PlaybackStatus:
        return PlaybackStatus(
            state=self.state.value,
            index=self.index,
            total_tracks=len(self.playlist),
            current_track=self.current_track,
            playing=self.playing,
            progress=self.progress,
            failed_ids=sorted(self.failed),
            notice=self.notice,
        )

    def _in_playlist(self, track: Track) -> bool:
        return any(t.id == track.id for t in self.playlist)

    # -- store push --------------------------------------------------------

    async def on_list_updated(self, tracks: Sequence[Track]) -> None:
        """Replace the playlist generation with a freshly pushed list."""
        previous = self.current_track
        self.playlist = tuple(tracks)
        self.failed = set()
        logger.debug("Playlist updated: %d active tracks", len(self.playlist))

        if not self.playlist:
            self._cancel_attempt()
            self._attempt += 1
            self.sink.pause()
            self.playing = False
            self.index = 0
            self._loaded = None
            self._restart_from_head = False
            self.state = PlayerState.EMPTY
            logger.info("No active tracks — playback stopped")
            return

        if self.state in (PlayerState.PLAYING, PlayerState.ADVANCING):
            self._follow(previous)
            return

        # Runs as its own task so the store push never waits on the sink.
        self.index = 0
        self.state = PlayerState.IDLE
        self._schedule_attempt(0)

    def _follow(self, previous: Track | None) -> None:
        """Re-point the position at ``previous`` inside the new playlist."""
        if previous is not None:
            for position, track in enumerate(self.playlist):
                if track.id == previous.id:
                    self.index = position
                    self._restart_from_head = False
                    return

        self.index = 0
        if self.state is PlayerState.PLAYING:
            logger.info("Playing track left the playlist; restarting from the head after it")
            self._restart_from_head = True

    # -- transitions -------------------------------------------------------

    async def attempt_play(self) -> None:
        """Try to start playback at the current position."""
        if not self.playlist:
            return

        if len(self.failed) >= len(self.playlist):
            self._stop_all_failed()
            return

        self.index %= len(self.playlist)
        track = self.playlist[self.index]
        if track.id in self.failed:
            logger.debug("Skipping failed track %s", track.id)
            self.advance()
            return

        self._attempt += 1
        attempt = self._attempt
        self._restart_from_head = False
        self._loaded = track
        self.state = PlayerState.PLAYING
        self.progress = 0.0

        self.sink.set_source(track.playback_link)
        self.sink.current_time = 0
        self.sink.load()
        try:
            await self.sink.play()
        except PlaybackRejected as exc:
            if attempt != self._attempt:
                return
            logger.warning("Play rejected for %r: %s", track.name, exc)
            # A push during the await may have dropped the track already.
            if self._in_playlist(track):
                self.failed.add(track.id)
            self.advance()
            return

        if attempt != self._attempt:
            # Superseded while the sink was starting.
            return
        self.playing = True
        logger.info("Playing %r (%d/%d)", track.name, self.index + 1, len(self.playlist))

    def advance(self) -> None:
        """Move to the next position and arm the delayed retry."""
        if not self.playlist:
            return
        if self._restart_from_head:
            self._restart_from_head = False
            self.index = 0
        else:
            self.index = (self.index + 1) % len(self.playlist)
        self._attempt += 1
        self.state = PlayerState.ADVANCING
        self._schedule_attempt(self.retry_delay)

    def _stop_all_failed(self) -> None:
        logger.warning("All %d tracks failed — stopping", len(self.playlist))
        self.sink.pause()
        self.playing = False
        self.state = PlayerState.IDLE
        self._notice = NO_VALID_TRACK
        self._notice_expires = self._clock() + self.notice_ttl

    # -- sink events -------------------------------------------------------

    def on_ended(self) -> None:
        if self.state is not PlayerState.PLAYING:
            logger.debug("Ignoring 'ended' in state %s", self.state.value)
            return
        self.advance()

    def on_error(self) -> None:
        if self.state is not PlayerState.PLAYING:
            logger.debug("Ignoring 'error' in state %s", self.state.value)
            return
        track = self._loaded
        logger.warning("Media error on %r", track.name if track else None)
        if track is not None and self._in_playlist(track):
            self.failed.add(track.id)
        self.advance()

    def on_progress(self, current_time: float, duration: float | None) -> float:
        """Recompute the completion percentage shown by the progress bar."""
        if not duration or not math.isfinite(duration):
            return self.progress
        self.progress = current_time / duration * 100
        return self.progress

    # -- attempt task ------------------------------------------------------

    def _schedule_attempt(self, delay: float) -> None:
        self._cancel_attempt()
        loop = asyncio.get_running_loop()
        self._attempt_task = loop.create_task(self._attempt_later(delay))

    async def _attempt_later(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._attempt_task = None
        await self.attempt_play()

    def _cancel_attempt(self) -> None:
        if self._attempt_task is not None and not self._attempt_task.done():
            self._attempt_task.cancel()
        self._attempt_task = None

    async def drain(self) -> None:
        """Wait until no scheduled attempt is pending."""
        while self._attempt_task is not None and not self._attempt_task.done():
            await asyncio.wait({self._attempt_task})

    def close(self) -> None:
        """Cancel any scheduled attempt (application shutdown)."""
        self._cancel_attempt()
