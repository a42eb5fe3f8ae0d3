"""Application layer orchestration."""

from .ports import KeyValueStore, MediaEvents, MediaFactory, MediaSource, ProgressSyncClient, Scheduler
from .progress_store import ContinueListeningItem, ProgressStore
from .sync_service import ProgressSyncService
from .playback_engine import MediaLoadError, PlaybackEngine
from .playback_clock import LoopScheduler, PlaybackClock
from .bootstrap import AppServices, initialize_app_services

__all__ = [
    "AppServices",
    "ContinueListeningItem",
    "KeyValueStore",
    "LoopScheduler",
    "MediaEvents",
    "MediaFactory",
    "MediaLoadError",
    "MediaSource",
    "PlaybackClock",
    "PlaybackEngine",
    "ProgressStore",
    "ProgressSyncClient",
    "ProgressSyncService",
    "Scheduler",
    "initialize_app_services",
]
