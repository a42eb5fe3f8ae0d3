"""Domain models for stories, progress and playback sessions."""

from .formatting import format_duration, format_listening_time, format_time_ago
from .playback import MediaLoadError, PlaybackEvent, PlaybackSession, PlaybackSnapshot
from .progress import (
    ProgressRecord,
    RecentlyPlayedEntry,
    compute_percentage,
    is_near_completion,
    should_resume,
)
from .story import Story

__all__ = [
    "MediaLoadError",
    "PlaybackEvent",
    "PlaybackSession",
    "PlaybackSnapshot",
    "ProgressRecord",
    "RecentlyPlayedEntry",
    "Story",
    "compute_percentage",
    "format_duration",
    "format_listening_time",
    "format_time_ago",
    "is_near_completion",
    "should_resume",
]
