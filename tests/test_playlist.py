"""Tests for the autoplay playlist controller (core/playlist.py).

The media sink is a small in-memory fake; URLs listed in ``broken`` are
rejected by ``play()``.
"""

from __future__ import annotations

import asyncio

import pytest

from core.models import Track
from core.playlist import (
    NO_VALID_TRACK,
    PlaybackRejected,
    PlayerState,
    PlaylistController,
)


class FakeSink:
    def __init__(self, broken=()):
        self.broken = set(broken)
        self.source = None
        self.current_time = 0.0
        self.duration = None
        self.playing = False
        self.calls: list[tuple] = []

    def set_source(self, url):
        self.calls.append(("set_source", url))
        self.source = url

    def load(self):
        self.calls.append(("load",))

    async def play(self):
        self.calls.append(("play", self.source))
        if self.source in self.broken:
            raise PlaybackRejected("broken link")
        self.playing = True

    def pause(self):
        self.calls.append(("pause",))
        self.playing = False

    def plays(self, url=None):
        return [c for c in self.calls if c[0] == "play" and (url is None or c[1] == url)]


class GatedSink(FakeSink):
    """Holds each ``play()`` until the test resolves ``gate``."""

    def __init__(self):
        super().__init__()
        self.gate = None

    async def play(self):
        self.calls.append(("play", self.source))
        self.gate = asyncio.get_running_loop().create_future()
        await self.gate
        self.playing = True


async def _until(predicate, turns: int = 100) -> None:
    for _ in range(turns):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


def _track(n: int) -> Track:
    return Track(
        id=f"t{n}",
        name=f"Track {n:03d}",
        source_link=f"https://www.dropbox.com/s/{n}/t{n}.mp3?dl=0",
        playback_link=f"https://www.dropbox.com/s/{n}/t{n}.mp3?dl=0&raw=1",
        order=n,
    )


T1, T2, T3 = _track(1), _track(2), _track(3)


async def _run_pending(controller: PlaylistController) -> None:
    """Let the currently scheduled attempt (only) run to completion."""
    task = controller._attempt_task
    if task is not None:
        await asyncio.wait({task})


# ---------------------------------------------------------------------------
# Start / list updates
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_first_push_plays_first_track():
    sink = FakeSink()
    c = PlaylistController(sink, retry_delay=0)

    await c.on_list_updated([T1, T2])
    await c.drain()

    assert c.state == PlayerState.PLAYING
    assert c.index == 0
    assert c.playing is True
    assert sink.source == T1.playback_link
    assert sink.calls[:3] == [("set_source", T1.playback_link), ("load",), ("play", T1.playback_link)]


@pytest.mark.asyncio
async def test_empty_first_push_stays_empty():
    sink = FakeSink()
    c = PlaylistController(sink, retry_delay=0)

    await c.on_list_updated([])

    assert c.state == PlayerState.EMPTY
    assert c.playing is False
    assert sink.plays() == []


@pytest.mark.asyncio
async def test_empty_push_while_playing_stops_sink():
    """Scenario C."""
    sink = FakeSink()
    c = PlaylistController(sink, retry_delay=0)
    await c.on_list_updated([T1, T2])
    await c.drain()
    assert c.state == PlayerState.PLAYING

    await c.on_list_updated([])

    assert c.state == PlayerState.EMPTY
    assert c.playing is False
    assert sink.playing is False
    assert sink.calls[-1] == ("pause",)


@pytest.mark.asyncio
async def test_push_while_playing_does_not_interrupt():
    sink = FakeSink()
    c = PlaylistController(sink, retry_delay=0)
    await c.on_list_updated([T1, T2])
    await c.drain()
    calls_before = list(sink.calls)

    await c.on_list_updated([T1, T2, T3])
    await c.drain()

    assert sink.calls == calls_before
    assert c.index == 0
    assert c.playlist == (T1, T2, T3)
    assert c.state == PlayerState.PLAYING


@pytest.mark.asyncio
async def test_push_clears_failures_even_for_identical_list():
    sink = FakeSink(broken={T1.playback_link})
    c = PlaylistController(sink, retry_delay=0)
    await c.on_list_updated([T1, T2])
    await c.drain()
    assert c.failed == {"t1"}

    await c.on_list_updated([T1, T2])

    assert c.failed == set()
    assert c.index == 1  # still on T2
    assert c.state == PlayerState.PLAYING


@pytest.mark.asyncio
async def test_push_follows_reordered_current_track():
    sink = FakeSink()
    c = PlaylistController(sink, retry_delay=0)
    await c.on_list_updated([T1, T2, T3])
    await c.drain()

    await c.on_list_updated([T2, T3, T1])
    assert c.index == 2

    c.on_ended()
    await c.drain()
    assert sink.source == T2.playback_link


@pytest.mark.asyncio
async def test_removed_current_track_finishes_then_restarts_from_head():
    sink = FakeSink()
    c = PlaylistController(sink, retry_delay=0)
    await c.on_list_updated([T1, T2, T3])
    await c.drain()
    c.on_ended()
    await c.drain()
    assert sink.source == T2.playback_link
    plays_before = len(sink.plays())

    await c.on_list_updated([T1, T3])

    # T2 keeps playing, nothing new commanded.
    assert len(sink.plays()) == plays_before
    assert c.state == PlayerState.PLAYING
    assert c.current_track == T2
    assert c.snapshot().current_track == T2

    c.on_ended()
    await c.drain()
    assert sink.source == T1.playback_link
    assert c.index == 0


@pytest.mark.asyncio
async def test_removed_then_readded_track_is_followed():
    sink = FakeSink()
    c = PlaylistController(sink, retry_delay=0)
    await c.on_list_updated([T1, T2, T3])
    await c.drain()
    c.on_ended()
    await c.drain()  # playing T2

    await c.on_list_updated([T1, T3])
    await c.on_list_updated([T1, T2, T3])
    assert c.index == 1

    c.on_ended()
    await c.drain()
    assert sink.source == T3.playback_link


@pytest.mark.asyncio
async def test_rejection_of_dropped_track_does_not_poison_new_list():
    sink = GatedSink()
    c = PlaylistController(sink, retry_delay=0)
    await c.on_list_updated([T1, T2])
    await _until(lambda: sink.gate is not None)
    first_gate = sink.gate

    # T1 is deactivated while its play() is still pending.
    await c.on_list_updated([T2])
    first_gate.set_exception(PlaybackRejected("timeout"))
    await _until(lambda: sink.gate is not first_gate)

    assert c.failed == set()
    assert c.state == PlayerState.PLAYING
    assert sink.plays(T2.playback_link) == [("play", T2.playback_link)]

    sink.gate.set_result(None)
    await _until(lambda: c.playing)
    assert c.current_track == T2
    assert c.notice is None


@pytest.mark.asyncio
async def test_error_on_removed_track_does_not_blame_new_list():
    sink = FakeSink()
    c = PlaylistController(sink, retry_delay=0)
    await c.on_list_updated([T1, T2])
    await c.drain()
    c.on_ended()
    await c.drain()  # playing T2

    await c.on_list_updated([T1, T3])
    c.on_error()
    await c.drain()

    assert c.failed == set()
    assert sink.source == T1.playback_link


@pytest.mark.asyncio
async def test_list_update_while_idle_restarts_at_head():
    sink = FakeSink(broken={T1.playback_link})
    c = PlaylistController(sink, retry_delay=0)
    await c.on_list_updated([T1])
    await c.drain()
    assert c.state == PlayerState.IDLE

    sink.broken.clear()
    await c.on_list_updated([T1])
    await c.drain()

    assert c.state == PlayerState.PLAYING
    assert c.index == 0
    assert sink.source == T1.playback_link


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_failed_first_track_advances_to_second():
    """Scenario A."""
    sink = FakeSink(broken={T1.playback_link})
    c = PlaylistController(sink, retry_delay=0)

    await c.on_list_updated([T1, T2])
    await c.drain()

    assert c.failed == {"t1"}
    assert c.index == 1
    assert c.state == PlayerState.PLAYING
    assert sink.source == T2.playback_link
    assert sink.playing is True


@pytest.mark.asyncio
async def test_single_failed_track_is_terminal():
    """Scenario B."""
    sink = FakeSink(broken={T1.playback_link})
    c = PlaylistController(sink, retry_delay=0)

    await c.on_list_updated([T1])
    await c.drain()

    assert c.state == PlayerState.IDLE
    assert c.playing is False
    assert c.notice == NO_VALID_TRACK
    assert sink.playing is False
    assert sink.calls[-1] == ("pause",)
    assert len(sink.plays()) == 1


@pytest.mark.asyncio
async def test_all_failed_within_length_attempts():
    tracks = [_track(n) for n in range(1, 6)]
    sink = FakeSink(broken={t.playback_link for t in tracks})
    c = PlaylistController(sink, retry_delay=0)

    await c.on_list_updated(tracks)
    await c.drain()

    assert len(sink.plays()) == len(tracks)
    assert c.failed == {t.id for t in tracks}
    assert c.state == PlayerState.IDLE
    assert c.notice == NO_VALID_TRACK


@pytest.mark.asyncio
async def test_failed_track_is_skipped_without_sink_command():
    sink = FakeSink(broken={T2.playback_link})
    c = PlaylistController(sink, retry_delay=0)
    await c.on_list_updated([T1, T2, T3])
    await c.drain()

    c.on_ended()  # T1 -> T2 fails -> T3
    await c.drain()
    assert sink.source == T3.playback_link

    c.on_ended()  # T3 -> T1
    await c.drain()
    assert sink.source == T1.playback_link

    c.on_ended()  # T1 -> T2 (skipped) -> T3
    await c.drain()
    assert sink.source == T3.playback_link
    assert len(sink.plays(T2.playback_link)) == 1


@pytest.mark.asyncio
async def test_media_error_marks_failed_and_advances():
    sink = FakeSink()
    c = PlaylistController(sink, retry_delay=0)
    await c.on_list_updated([T1, T2])
    await c.drain()

    c.on_error()
    assert c.state == PlayerState.ADVANCING
    await c.drain()

    assert c.failed == {"t1"}
    assert sink.source == T2.playback_link


@pytest.mark.asyncio
async def test_events_ignored_while_advancing():
    sink = FakeSink(broken={T1.playback_link})
    c = PlaylistController(sink, retry_delay=10)
    await c.on_list_updated([T1, T2])
    await _run_pending(c)
    assert c.state == PlayerState.ADVANCING
    index = c.index

    c.on_ended()
    c.on_error()

    assert c.index == index
    assert c.failed == {"t1"}
    c.close()


@pytest.mark.asyncio
async def test_empty_push_cancels_pending_retry():
    sink = FakeSink(broken={T1.playback_link})
    c = PlaylistController(sink, retry_delay=10)
    await c.on_list_updated([T1, T2])
    await _run_pending(c)
    assert c.attempt_pending

    await c.on_list_updated([])

    assert not c.attempt_pending
    assert c.state == PlayerState.EMPTY


# ---------------------------------------------------------------------------
# Advance
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_advance_is_cyclic():
    sink = FakeSink()
    c = PlaylistController(sink, retry_delay=0)
    await c.on_list_updated([T1, T2, T3])
    await c.drain()

    visited = []
    for _ in range(6):
        c.on_ended()
        await c.drain()
        visited.append(c.index)

    assert visited == [1, 2, 0, 1, 2, 0]


@pytest.mark.asyncio
async def test_single_track_replays():
    sink = FakeSink()
    c = PlaylistController(sink, retry_delay=0)
    await c.on_list_updated([T1])
    await c.drain()

    c.on_ended()
    await c.drain()

    assert c.index == 0
    assert len(sink.plays(T1.playback_link)) == 2


@pytest.mark.asyncio
async def test_new_source_is_rewound():
    sink = FakeSink()
    sink.current_time = 42.0
    c = PlaylistController(sink, retry_delay=0)

    await c.on_list_updated([T1])
    await c.drain()

    assert sink.current_time == 0


# ---------------------------------------------------------------------------
# Progress / notice / snapshot
# ---------------------------------------------------------------------------


def test_progress_percentage():
    c = PlaylistController(FakeSink())
    assert c.on_progress(30, 120) == pytest.approx(25.0)


@pytest.mark.parametrize("duration", [None, 0, float("nan"), float("inf")])
def test_progress_ignores_unknown_duration(duration):
    c = PlaylistController(FakeSink())
    c.on_progress(30, 120)
    assert c.on_progress(10, duration) == pytest.approx(25.0)


@pytest.mark.asyncio
async def test_notice_expires():
    now = [100.0]
    sink = FakeSink(broken={T1.playback_link})
    c = PlaylistController(sink, retry_delay=0, notice_ttl=4.0, clock=lambda: now[0])
    await c.on_list_updated([T1])
    await c.drain()

    assert c.notice == NO_VALID_TRACK
    now[0] += 3.9
    assert c.notice == NO_VALID_TRACK
    now[0] += 0.2
    assert c.notice is None


@pytest.mark.asyncio
async def test_snapshot():
    sink = FakeSink(broken={T1.playback_link})
    c = PlaylistController(sink, retry_delay=0)
    await c.on_list_updated([T1, T2])
    await c.drain()

    status = c.snapshot()
    assert status.state == "playing"
    assert status.index == 1
    assert status.total_tracks == 2
    assert status.current_track == T2
    assert status.playing is True
    assert status.failed_ids == ["t1"]
    assert status.notice is None
