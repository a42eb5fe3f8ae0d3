"""Playback state machine for the single active story."""

from __future__ import annotations

import logging
import math
from typing import Callable

from ..constants import DEFAULT_PROGRESS_SAVE_EVERY_SECONDS
from ..domain.playback import (
    EVENT_CLEARED,
    EVENT_END,
    EVENT_LOAD_FAILED,
    EVENT_LOADING,
    EVENT_PAUSE,
    EVENT_PLAY,
    EVENT_RATE,
    EVENT_READY,
    EVENT_RESUMED,
    EVENT_SEEK,
    EVENT_TIME,
    EVENT_VOLUME,
    SEEKABLE_STATUSES,
    STATUS_EMPTY,
    STATUS_ENDED,
    STATUS_ERROR,
    STATUS_LOADING,
    STATUS_PAUSED,
    STATUS_PLAYING,
    STATUS_READY,
    MediaLoadError,
    PlaybackEvent,
    PlaybackSession,
    PlaybackSnapshot,
)
from ..domain.progress import should_resume
from ..domain.story import Story
from .ports import MediaFactory, MediaSource
from .progress_store import ProgressStore
from .sync_service import ProgressSyncService

logger = logging.getLogger(__name__)

PlaybackListener = Callable[[PlaybackEvent], None]


class _SessionEvents:
    """MediaEvents sink bound to one session token."""

    def __init__(self, engine: "PlaybackEngine", token: int) -> None:
        self._engine = engine
        self._token = token

    def on_ready(self, duration_seconds: float) -> None:
        self._engine._handle_ready(self._token, duration_seconds)

    def on_play(self) -> None:
        self._engine._handle_play(self._token)

    def on_pause(self) -> None:
        self._engine._handle_pause(self._token)

    def on_end(self) -> None:
        self._engine._handle_end(self._token)

    def on_error(self, error: Exception) -> None:
        self._engine._handle_error(self._token, error)


class PlaybackEngine:
    """Owns at most one media source and keeps progress records in step with it.

    Transport methods are no-ops while nothing is loaded. Media callbacks carry
    the token of the session that created the source, and callbacks from a
    replaced session are dropped.
    """

    def __init__(
        self,
        media_factory: MediaFactory,
        progress_store: ProgressStore,
        logger_instance=None,
        *,
        sync_service: ProgressSyncService | None = None,
        save_every_seconds: int = DEFAULT_PROGRESS_SAVE_EVERY_SECONDS,
    ) -> None:
        self.media_factory = media_factory
        self.progress_store = progress_store
        self.sync_service = sync_service
        self.logger = logger_instance or logger
        self.save_every_seconds = max(0, int(save_every_seconds))
        self.volume = progress_store.default_volume()
        self.playback_rate = progress_store.default_playback_rate()
        self.last_error: Exception | None = None
        self._session: PlaybackSession | None = None
        self._source: MediaSource | None = None
        self._token = 0
        self._idle_status = STATUS_EMPTY
        self._listeners: list[PlaybackListener] = []

    # Observation

    @property
    def status(self) -> str:
        if self._session is None:
            return self._idle_status
        return self._session.status

    @property
    def current_story(self) -> Story | None:
        return self._session.story if self._session is not None else None

    def snapshot(self) -> PlaybackSnapshot:
        session = self._session
        if session is None:
            return PlaybackSnapshot(
                current_story=None,
                is_playing=False,
                current_time=0.0,
                duration=0.0,
                is_loading=False,
                volume=self.volume,
                playback_rate=self.playback_rate,
                status=self._idle_status,
            )
        return PlaybackSnapshot(
            current_story=session.story,
            is_playing=session.is_playing,
            current_time=session.position_seconds,
            duration=session.duration,
            is_loading=session.status == STATUS_LOADING,
            volume=self.volume,
            playback_rate=self.playback_rate,
            status=session.status,
        )

    def subscribe(self, listener: PlaybackListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, kind: str, error: Exception | None = None) -> None:
        event = PlaybackEvent(kind=kind, snapshot=self.snapshot(), error=error)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                self.logger.exception("Playback listener failed on %s event", kind)

    # Transport

    def load_story(self, story: Story) -> None:
        """Tear down the current session and start loading ``story`` without playing it."""
        if not story.audio_url:
            raise ValueError(f"Story {story.id} has no audio source.")
        self._teardown()
        self._token += 1
        session = PlaybackSession(
            story=story,
            token=self._token,
            duration=float(story.duration_hint),
        )
        self._session = session
        self._idle_status = STATUS_EMPTY
        self.last_error = None
        self.logger.info("Loading story %s (%s)", story.id, story.title or story.audio_url)
        try:
            source = self.media_factory(_SessionEvents(self, session.token))
            self._source = source
            source.set_volume(self.volume)
            source.set_rate(self.playback_rate)
            self._notify(EVENT_LOADING)
            source.load(story.audio_url)
        except Exception as exc:
            if self._session is session:
                self._fail(session, exc)

    def play(self) -> None:
        session = self._session
        if session is None:
            return
        if session.status == STATUS_LOADING:
            session.play_pending = True
            return
        if session.status == STATUS_ENDED:
            self.load_story(session.story)
            if self._session is not None:
                self.play()
            return
        if session.status == STATUS_PLAYING or self._source is None:
            return
        try:
            self._source.play()
        except Exception as exc:
            self._fail(session, exc)
            return
        self._enter_playing(session)

    def pause(self) -> None:
        session = self._session
        if session is None:
            return
        if session.status == STATUS_LOADING:
            session.play_pending = False
            return
        if session.status != STATUS_PLAYING or self._source is None:
            return
        try:
            self._source.pause()
        except Exception:
            self.logger.exception("Failed to pause story %s", session.story.id)
        self._enter_paused(session)

    def toggle_play_pause(self) -> None:
        session = self._session
        if session is not None and (session.is_playing or session.play_pending):
            self.pause()
        else:
            self.play()

    def seek(self, time_seconds: float) -> None:
        """Move to ``time_seconds`` as given; callers are trusted to stay inside the duration."""
        session = self._session
        if session is None or session.status not in SEEKABLE_STATUSES:
            return
        self._apply_seek(session, float(time_seconds))

    def skip(self, delta_seconds: float) -> None:
        session = self._session
        if session is None or session.status not in SEEKABLE_STATUSES:
            return
        base = self._live_position(session)
        target = max(0.0, min(base + float(delta_seconds), session.duration))
        self._apply_seek(session, target)

    def set_volume(self, volume: float) -> None:
        clamped = max(0.0, min(1.0, float(volume)))
        self.volume = clamped
        if self._source is not None:
            try:
                self._source.set_volume(clamped)
            except Exception:
                self.logger.exception("Failed to update volume")
        self.progress_store.set_default_volume(clamped)
        self._notify(EVENT_VOLUME)

    def set_playback_rate(self, rate: float) -> None:
        value = float(rate)
        if not value > 0:
            raise ValueError(f"Playback rate must be positive, got {rate!r}")
        self.playback_rate = value
        if self._source is not None:
            try:
                self._source.set_rate(value)
            except Exception:
                self.logger.exception("Failed to update playback rate")
        self.progress_store.set_default_playback_rate(value)
        self._notify(EVENT_RATE)

    def tick(self) -> None:
        """Sample the playing position; persists when the whole second hits the save interval."""
        session = self._session
        if session is None or session.status != STATUS_PLAYING or self._source is None:
            return
        try:
            position = float(self._source.position())
        except Exception:
            self.logger.exception("Failed to read playback position")
            return
        session.position_seconds = position
        self._notify(EVENT_TIME)
        if self.save_every_seconds and int(math.floor(position)) % self.save_every_seconds == 0:
            self.progress_store.save_progress(session.story.id, position, session.duration, False)
        if self.sync_service is not None:
            try:
                self.sync_service.maybe_push(session.story.id, position, session.duration)
            except Exception:
                self.logger.exception("Failed to schedule progress sync")

    def cleanup(self) -> None:
        had_session = self._session is not None
        self._teardown()
        self._idle_status = STATUS_EMPTY
        self.last_error = None
        if had_session:
            self._notify(EVENT_CLEARED)

    # Internal transitions

    def _apply_seek(self, session: PlaybackSession, target: float) -> None:
        if self._source is not None:
            try:
                self._source.seek(target)
            except Exception:
                self.logger.exception("Failed to seek story %s", session.story.id)
        session.position_seconds = target
        self.progress_store.save_progress(session.story.id, target, session.duration, False)
        self._notify(EVENT_SEEK)

    def _live_position(self, session: PlaybackSession) -> float:
        if session.status == STATUS_PLAYING and self._source is not None:
            try:
                session.position_seconds = float(self._source.position())
            except Exception:
                self.logger.exception("Failed to read playback position")
        return session.position_seconds

    def _enter_playing(self, session: PlaybackSession) -> None:
        session.is_playing = True
        session.status = STATUS_PLAYING
        self.progress_store.record_play(session.story)
        self._notify(EVENT_PLAY)

    def _enter_paused(self, session: PlaybackSession) -> None:
        position = self._live_position(session)
        session.is_playing = False
        session.status = STATUS_PAUSED
        self.progress_store.save_progress(session.story.id, position, session.duration, False)
        self._push_remote(session, position)
        self._notify(EVENT_PAUSE)

    def _persist_current(self, session: PlaybackSession) -> None:
        # Loading sessions have nothing to save; ended sessions already wrote their completion.
        if session.status not in SEEKABLE_STATUSES:
            return
        position = self._live_position(session)
        self.progress_store.save_progress(session.story.id, position, session.duration, False)
        self._push_remote(session, position)

    def _push_remote(self, session: PlaybackSession, position: float, *, completed: bool = False) -> None:
        if self.sync_service is None:
            return
        try:
            self.sync_service.push(session.story.id, position, session.duration, completed=completed)
        except Exception:
            self.logger.exception("Failed to schedule progress sync")

    def _release_source(self) -> None:
        source = self._source
        self._source = None
        if source is None:
            return
        try:
            source.release()
        except Exception:
            self.logger.exception("Failed to release media source")

    def _teardown(self) -> None:
        session = self._session
        if session is None:
            return
        self._persist_current(session)
        self._release_source()
        self._session = None

    def _fail(self, session: PlaybackSession, error: Exception) -> None:
        self._persist_current(session)
        self._release_source()
        self._session = None
        self._idle_status = STATUS_ERROR
        if isinstance(error, MediaLoadError):
            load_error = error
        else:
            load_error = MediaLoadError(f"Failed to load story {session.story.id}: {error}")
            load_error.__cause__ = error
        self.last_error = load_error
        self.logger.error("%s", load_error)
        self._notify(EVENT_LOAD_FAILED, error=load_error)

    # Media callbacks

    def _current_session(self, token: int, callback: str) -> PlaybackSession | None:
        session = self._session
        if session is None or session.token != token:
            self.logger.debug("Ignoring stale media %s callback for session %s", callback, token)
            return None
        return session

    def _handle_ready(self, token: int, duration_seconds: float) -> None:
        session = self._current_session(token, "ready")
        if session is None:
            return
        if duration_seconds and duration_seconds > 0:
            session.duration = float(duration_seconds)
        if session.status != STATUS_LOADING:
            return
        session.status = STATUS_READY
        story_id = session.story.id
        record = self.progress_store.get_progress(story_id)
        resumed = False
        if record is None:
            self.progress_store.save_progress(story_id, 0, session.duration, False)
        elif should_resume(record.position, session.duration, completed=record.completed):
            if self._source is not None:
                try:
                    self._source.seek(record.position)
                except Exception:
                    self.logger.exception("Failed to restore position for story %s", story_id)
            session.position_seconds = float(record.position)
            resumed = True
            self.logger.info("Resuming story %s at %ss", story_id, record.position)
        self._notify(EVENT_READY)
        if resumed:
            self._notify(EVENT_RESUMED)
        if session.play_pending and self._session is session:
            session.play_pending = False
            self.play()

    def _handle_play(self, token: int) -> None:
        session = self._current_session(token, "play")
        if session is None or session.status not in (STATUS_READY, STATUS_PAUSED):
            return
        self._enter_playing(session)

    def _handle_pause(self, token: int) -> None:
        session = self._current_session(token, "pause")
        if session is None or session.status != STATUS_PLAYING:
            return
        self._enter_paused(session)

    def _handle_end(self, token: int) -> None:
        session = self._current_session(token, "end")
        if session is None or session.status == STATUS_ENDED:
            return
        duration = session.duration
        if self._source is not None:
            try:
                decoded = float(self._source.duration())
            except Exception:
                self.logger.exception("Failed to read media duration")
                decoded = 0.0
            if decoded > 0:
                duration = decoded
        session.duration = duration
        session.position_seconds = 0.0
        session.is_playing = False
        session.status = STATUS_ENDED
        self.progress_store.save_progress(session.story.id, 0, duration, True)
        self._push_remote(session, 0.0, completed=True)
        self.logger.info("Finished story %s", session.story.id)
        self._notify(EVENT_END)

    def _handle_error(self, token: int, error: Exception) -> None:
        session = self._current_session(token, "error")
        if session is None:
            return
        self._fail(session, error)
