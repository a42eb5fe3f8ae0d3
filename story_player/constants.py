"""Shared constants for playback and progress bookkeeping."""

PROGRESS_KEY_PREFIX = "story-progress-"
RECENTLY_PLAYED_KEY = "recently-played"
VOLUME_KEY = "audio-volume"
PLAYBACK_RATE_KEY = "playback-rate"
USER_TOKEN_KEY = "user-token"

RESUME_MIN_POSITION_SECONDS = 5
RESUME_MAX_FRACTION = 0.95
CONTINUE_MIN_PERCENTAGE = 5
CONTINUE_MAX_PERCENTAGE = 95
COMPLETION_FRACTION = 0.95

DEFAULT_RECENTLY_PLAYED_LIMIT = 20
DEFAULT_CONTINUE_LISTENING_LIMIT = 10
DEFAULT_RECENTLY_PLAYED_VIEW_LIMIT = 8
DEFAULT_PROGRESS_SAVE_EVERY_SECONDS = 10
DEFAULT_SYNC_INTERVAL_SECONDS = 30.0
DEFAULT_TICK_INTERVAL_MS = 1000
DEFAULT_SKIP_STEP_SECONDS = 15.0

PLAYBACK_RATES = (0.75, 1.0, 1.25, 1.5, 2.0)
