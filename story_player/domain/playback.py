"""Playback session state and the events published on every transition."""

from __future__ import annotations

from dataclasses import dataclass

from .story import Story

STATUS_EMPTY = "empty"
STATUS_LOADING = "loading"
STATUS_READY = "ready"
STATUS_PLAYING = "playing"
STATUS_PAUSED = "paused"
STATUS_ENDED = "ended"
STATUS_ERROR = "error"

# Media length is known and position is meaningful.
SEEKABLE_STATUSES = frozenset({STATUS_READY, STATUS_PLAYING, STATUS_PAUSED})

EVENT_LOADING = "loading"
EVENT_READY = "ready"
EVENT_RESUMED = "resumed"
EVENT_PLAY = "play"
EVENT_PAUSE = "pause"
EVENT_SEEK = "seek"
EVENT_TIME = "time"
EVENT_END = "end"
EVENT_LOAD_FAILED = "load_failed"
EVENT_VOLUME = "volume"
EVENT_RATE = "rate"
EVENT_CLEARED = "cleared"


@dataclass(slots=True)
class PlaybackSession:
    """Mutable state of the one story currently owned by the engine."""

    story: Story
    token: int
    duration: float
    position_seconds: float = 0.0
    is_playing: bool = False
    status: str = STATUS_LOADING
    play_pending: bool = False


@dataclass(frozen=True)
class PlaybackSnapshot:
    current_story: Story | None
    is_playing: bool
    current_time: float
    duration: float
    is_loading: bool
    volume: float
    playback_rate: float
    status: str


@dataclass(frozen=True)
class PlaybackEvent:
    kind: str
    snapshot: PlaybackSnapshot
    error: Exception | None = None


class MediaLoadError(RuntimeError):
    """A story's audio could not be fetched or decoded."""
