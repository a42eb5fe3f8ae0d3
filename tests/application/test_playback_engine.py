import pytest

from story_player.application.playback_engine import PlaybackEngine
from story_player.application.progress_store import ProgressStore
from story_player.domain.playback import (
    EVENT_CLEARED,
    EVENT_END,
    EVENT_LOAD_FAILED,
    EVENT_LOADING,
    EVENT_PAUSE,
    EVENT_PLAY,
    EVENT_READY,
    EVENT_RESUMED,
    EVENT_SEEK,
    EVENT_TIME,
    STATUS_EMPTY,
    STATUS_ENDED,
    STATUS_ERROR,
    STATUS_LOADING,
    STATUS_PAUSED,
    STATUS_PLAYING,
    STATUS_READY,
    MediaLoadError,
)
from story_player.domain.story import Story
from story_player.storage.key_value import InMemoryKeyValueStore, StorageError
from story_player.storage.progress_repository import ProgressRepository


class _Logger:
    def __init__(self):
        self.messages = []
        self.errors = []
        self.exceptions = []

    def _record(self, bucket, message, args):
        bucket.append(message % args if args else message)

    def debug(self, message, *args, **_kwargs):
        self._record(self.messages, message, args)

    def info(self, message, *args, **_kwargs):
        self._record(self.messages, message, args)

    def warning(self, message, *args, **_kwargs):
        self._record(self.messages, message, args)

    def error(self, message, *args, **_kwargs):
        self._record(self.errors, message, args)

    def exception(self, message, *args, **_kwargs):
        self._record(self.exceptions, message, args)


class FakeSource:
    def __init__(self, events):
        self.events = events
        self.calls = []
        self.position_value = 0.0
        self.decoded_duration = 0.0
        self.released = False
        self.load_error = None

    def load(self, url):
        self.calls.append(("load", url))
        if self.load_error is not None:
            raise self.load_error

    def play(self):
        self.calls.append(("play",))

    def pause(self):
        self.calls.append(("pause",))

    def seek(self, seconds):
        self.calls.append(("seek", seconds))
        self.position_value = seconds

    def position(self):
        return self.position_value

    def duration(self):
        return self.decoded_duration

    def set_volume(self, volume):
        self.calls.append(("volume", volume))

    def set_rate(self, rate):
        self.calls.append(("rate", rate))

    def release(self):
        self.released = True


class FakeFactory:
    def __init__(self):
        self.sources = []
        self.load_error = None

    def __call__(self, events):
        source = FakeSource(events)
        source.load_error = self.load_error
        self.sources.append(source)
        return source

    @property
    def last(self):
        return self.sources[-1]


class _SyncSpy:
    def __init__(self):
        self.pushes = []
        self.periodic = []

    def push(self, story_id, position, duration, *, completed=False):
        self.pushes.append((story_id, position, duration, completed))

    def maybe_push(self, story_id, position, duration):
        self.periodic.append((story_id, position, duration))


class _FailingKv(InMemoryKeyValueStore):
    def set(self, key, value):
        raise StorageError("quota exceeded")


def _story(story_id="a", duration=120):
    return Story(id=story_id, audio_url=f"https://cdn/{story_id}.mp3", duration_hint=duration, title=story_id)


def _make_engine(kv=None, **kwargs):
    logger = _Logger()
    store = ProgressStore(ProgressRepository(kv or InMemoryKeyValueStore(), logger_instance=logger), logger)
    factory = FakeFactory()
    engine = PlaybackEngine(factory, store, logger, **kwargs)
    events = []
    engine.subscribe(events.append)
    return engine, factory, store, logger, events


def _kinds(events):
    return [event.kind for event in events]


def _start_playing(engine, factory, story, duration):
    engine.load_story(story)
    factory.last.events.on_ready(duration)
    engine.play()
    return factory.last


def test_transport_is_noop_without_story():
    engine, factory, _store, _logger, events = _make_engine()

    engine.play()
    engine.pause()
    engine.seek(10)
    engine.skip(15)
    engine.tick()
    engine.cleanup()

    assert engine.status == STATUS_EMPTY
    assert factory.sources == []
    assert events == []


def test_load_applies_defaults_and_waits_for_ready():
    kv = InMemoryKeyValueStore({"audio-volume": "0.4", "playback-rate": "1.25"})
    engine, factory, _store, _logger, events = _make_engine(kv=kv)

    engine.load_story(_story())

    assert engine.status == STATUS_LOADING
    assert engine.snapshot().is_loading
    assert factory.last.calls == [("volume", 0.4), ("rate", 1.25), ("load", "https://cdn/a.mp3")]
    assert _kinds(events) == [EVENT_LOADING]


def test_ready_without_record_creates_zero_position_record():
    engine, factory, store, _logger, events = _make_engine()

    engine.load_story(_story(duration=0))
    factory.last.events.on_ready(118.6)

    assert engine.status == STATUS_READY
    assert engine.snapshot().duration == 118.6
    record = store.get_progress("a")
    assert (record.position, record.duration, record.completed) == (0, 118, False)
    assert _kinds(events) == [EVENT_LOADING, EVENT_READY]


def test_resume_restores_saved_position_without_playing():
    engine, factory, store, _logger, events = _make_engine()
    store.save_progress("a", 40, 200, False)

    engine.load_story(_story(duration=200))
    factory.last.events.on_ready(200)

    snapshot = engine.snapshot()
    assert ("seek", 40) in factory.last.calls
    assert snapshot.current_time == 40
    assert snapshot.is_playing is False
    assert ("play",) not in factory.last.calls
    assert _kinds(events) == [EVENT_LOADING, EVENT_READY, EVENT_RESUMED]


@pytest.mark.parametrize(
    ("position", "completed"),
    [(190, False), (5, False), (100, True)],
)
def test_no_resume_outside_window_or_after_completion(position, completed):
    engine, factory, store, _logger, _events = _make_engine()
    store.save_progress("a", position, 200, completed)

    engine.load_story(_story(duration=200))
    factory.last.events.on_ready(200)

    assert not [call for call in factory.last.calls if call[0] == "seek"]
    assert engine.snapshot().current_time == 0
    assert store.get_progress("a").position == position


def test_play_while_loading_starts_once_ready():
    engine, factory, store, _logger, events = _make_engine()

    engine.load_story(_story())
    engine.play()
    assert ("play",) not in factory.last.calls

    factory.last.events.on_ready(120)

    assert engine.status == STATUS_PLAYING
    assert factory.last.calls.count(("play",)) == 1
    assert [entry.story_id for entry in store.recently_played()] == ["a"]
    assert _kinds(events)[-1] == EVENT_PLAY


def test_duplicate_media_play_callback_is_ignored():
    engine, factory, store, _logger, events = _make_engine()
    source = _start_playing(engine, factory, _story(), 120)

    source.events.on_play()

    assert _kinds(events).count(EVENT_PLAY) == 1
    assert len(store.recently_played()) == 1


def test_pause_persists_position_and_pushes_remote():
    sync = _SyncSpy()
    engine, factory, store, _logger, events = _make_engine(sync_service=sync)
    source = _start_playing(engine, factory, _story(), 120)
    source.position_value = 33.6

    engine.pause()
    source.events.on_pause()

    record = store.get_progress("a")
    assert engine.status == STATUS_PAUSED
    assert (record.position, record.duration, record.completed) == (33, 120, False)
    assert sync.pushes == [("a", 33.6, 120.0, False)]
    assert _kinds(events).count(EVENT_PAUSE) == 1


def test_external_pause_and_resume_from_media():
    engine, factory, store, _logger, _events = _make_engine()
    source = _start_playing(engine, factory, _story(), 120)
    source.position_value = 12

    source.events.on_pause()
    assert engine.status == STATUS_PAUSED
    assert store.get_progress("a").position == 12

    source.events.on_play()
    assert engine.status == STATUS_PLAYING


def test_toggle_play_pause():
    engine, factory, _store, _logger, _events = _make_engine()
    engine.load_story(_story())
    factory.last.events.on_ready(120)

    engine.toggle_play_pause()
    assert engine.status == STATUS_PLAYING
    engine.toggle_play_pause()
    assert engine.status == STATUS_PAUSED


def test_skip_clamps_to_duration_and_zero():
    engine, factory, store, _logger, _events = _make_engine()
    source = _start_playing(engine, factory, _story(duration=100), 100)
    source.position_value = 90

    engine.skip(15)
    assert engine.snapshot().current_time == 100
    assert store.get_progress("a").position == 100

    engine.skip(-200)
    assert engine.snapshot().current_time == 0
    assert source.calls[-1] == ("seek", 0.0)


def test_seek_does_not_clamp():
    engine, factory, store, _logger, events = _make_engine()
    _start_playing(engine, factory, _story(duration=100), 100)

    engine.seek(150)

    # Seek trusts its caller; skip is the clamped path.
    assert engine.snapshot().current_time == 150
    assert store.get_progress("a").position == 150
    assert _kinds(events)[-1] == EVENT_SEEK


def test_seek_is_ignored_while_loading():
    engine, factory, _store, _logger, _events = _make_engine()
    engine.load_story(_story())

    engine.seek(30)

    assert ("seek", 30) not in factory.last.calls


def test_switching_story_persists_previous_position():
    engine, factory, store, _logger, _events = _make_engine()
    first = _start_playing(engine, factory, _story("a", 120), 120)
    first.position_value = 30

    engine.load_story(_story("b", 300))

    record = store.get_progress("a")
    assert (record.position, record.duration, record.completed) == (30, 120, False)
    assert first.released
    assert engine.current_story.id == "b"
    assert engine.status == STATUS_LOADING
    assert engine.snapshot().current_time == 0


def test_callbacks_from_replaced_source_are_ignored():
    engine, factory, store, logger, _events = _make_engine()
    first = _start_playing(engine, factory, _story("a", 120), 120)
    first.position_value = 30
    engine.load_story(_story("b", 300))

    first.events.on_end()
    first.events.on_ready(999)
    first.events.on_error(RuntimeError("late"))

    assert engine.status == STATUS_LOADING
    assert engine.current_story.id == "b"
    assert store.get_progress("a").completed is False
    assert any("Ignoring stale" in message for message in logger.messages)


def test_end_marks_completion_with_decoded_duration():
    sync = _SyncSpy()
    engine, factory, store, _logger, events = _make_engine(sync_service=sync)
    source = _start_playing(engine, factory, _story(duration=0), 0)
    source.decoded_duration = 118.4
    source.position_value = 118

    source.events.on_end()

    record = store.get_progress("a")
    snapshot = engine.snapshot()
    assert engine.status == STATUS_ENDED
    assert (record.position, record.duration, record.completed) == (0, 118, True)
    assert snapshot.is_playing is False
    assert snapshot.current_time == 0
    assert sync.pushes[-1] == ("a", 0.0, 118.4, True)
    assert _kinds(events)[-1] == EVENT_END


def test_play_after_end_reloads_from_start():
    engine, factory, store, _logger, _events = _make_engine()
    source = _start_playing(engine, factory, _story(), 120)
    source.events.on_end()

    engine.play()

    assert len(factory.sources) == 2
    assert source.released
    assert engine.status == STATUS_LOADING
    assert store.get_progress("a").completed is True

    factory.last.events.on_ready(120)

    assert engine.status == STATUS_PLAYING
    assert not [call for call in factory.last.calls if call[0] == "seek"]


def test_load_failure_moves_to_error():
    engine, factory, _store, logger, events = _make_engine()
    factory.load_error = OSError("404")

    engine.load_story(_story())

    assert engine.status == STATUS_ERROR
    assert engine.current_story is None
    assert isinstance(engine.last_error, MediaLoadError)
    assert isinstance(engine.last_error.__cause__, OSError)
    assert factory.last.released
    assert events[-1].kind == EVENT_LOAD_FAILED
    assert events[-1].error is engine.last_error
    assert logger.errors


def test_media_error_while_loading_moves_to_error_and_next_load_recovers():
    engine, factory, _store, _logger, _events = _make_engine()
    engine.load_story(_story("a"))
    factory.last.events.on_error(MediaLoadError("decode failed"))

    assert engine.status == STATUS_ERROR
    assert str(engine.last_error) == "decode failed"

    engine.load_story(_story("b"))
    assert engine.status == STATUS_LOADING
    assert engine.last_error is None


def test_load_rejects_story_without_audio():
    engine, _factory, _store, _logger, _events = _make_engine()

    class _Broken:
        id = "x"
        audio_url = ""

    with pytest.raises(ValueError):
        engine.load_story(_Broken())


def test_tick_saves_on_interval_and_schedules_sync():
    sync = _SyncSpy()
    engine, factory, store, _logger, events = _make_engine(sync_service=sync, save_every_seconds=10)
    source = _start_playing(engine, factory, _story(), 120)

    source.position_value = 20.4
    engine.tick()
    source.position_value = 21.3
    engine.tick()

    assert engine.snapshot().current_time == 21.3
    assert store.get_progress("a").position == 20
    assert sync.periodic == [("a", 20.4, 120.0), ("a", 21.3, 120.0)]
    assert _kinds(events).count(EVENT_TIME) == 2


def test_tick_is_idle_when_paused():
    engine, factory, _store, _logger, events = _make_engine()
    source = _start_playing(engine, factory, _story(), 120)
    engine.pause()
    source.position_value = 50

    engine.tick()

    assert EVENT_TIME not in _kinds(events)


def test_persistence_failures_do_not_interrupt_playback():
    engine, factory, _store, logger, _events = _make_engine(kv=_FailingKv())
    source = _start_playing(engine, factory, _story(), 120)
    source.position_value = 10
    engine.tick()
    engine.pause()
    engine.play()

    assert engine.status == STATUS_PLAYING
    assert logger.exceptions


def test_volume_and_rate_apply_and_persist():
    engine, factory, store, _logger, _events = _make_engine()
    engine.load_story(_story())

    engine.set_volume(1.5)
    assert engine.volume == 1.0
    engine.set_volume(0)
    engine.set_playback_rate(1.5)

    assert ("volume", 0.0) in factory.last.calls
    assert ("rate", 1.5) in factory.last.calls
    assert store.default_volume() == 0.0
    assert store.default_playback_rate() == 1.5
    with pytest.raises(ValueError):
        engine.set_playback_rate(0)

    fresh = PlaybackEngine(FakeFactory(), store, _Logger())
    assert fresh.snapshot().volume == 0.0
    assert fresh.snapshot().playback_rate == 1.5


def test_cleanup_persists_and_releases():
    engine, factory, store, _logger, events = _make_engine()
    source = _start_playing(engine, factory, _story(), 120)
    source.position_value = 45

    engine.cleanup()

    assert source.released
    assert engine.status == STATUS_EMPTY
    assert engine.current_story is None
    assert store.get_progress("a").position == 45
    assert _kinds(events)[-1] == EVENT_CLEARED


def test_listener_failure_is_logged_and_unsubscribe_works():
    engine, factory, _store, logger, events = _make_engine()

    def _broken(_event):
        raise RuntimeError("ui gone")

    unsubscribe = engine.subscribe(_broken)
    engine.load_story(_story())
    unsubscribe()
    factory.last.events.on_ready(120)

    assert _kinds(events) == [EVENT_LOADING, EVENT_READY]
    assert len(logger.exceptions) == 1


def test_pause_while_loading_cancels_queued_play():
    engine, factory, _store, _logger, _events = _make_engine()
    engine.load_story(_story())
    engine.play()

    engine.pause()
    factory.last.events.on_ready(100)

    assert engine.status == STATUS_READY
    assert ("play",) not in factory.last.calls


def test_toggle_while_loading_cancels_queued_play():
    engine, factory, _store, _logger, _events = _make_engine()
    engine.load_story(_story())

    engine.toggle_play_pause()
    engine.toggle_play_pause()
    factory.last.events.on_ready(100)

    assert engine.status == STATUS_READY
    assert ("play",) not in factory.last.calls


def test_corrupt_saved_record_does_not_break_loading():
    kv = InMemoryKeyValueStore(
        {"story-progress-a": '{"position": 10, "duration": 100, "percentage": NaN}'}
    )
    engine, factory, store, _logger, _events = _make_engine(kv=kv)

    engine.load_story(_story(duration=100))
    factory.last.events.on_ready(100)

    assert engine.status == STATUS_READY
    assert ("seek", 10) in factory.last.calls
    assert store.get_progress("a").percentage == 10


def test_replaying_completed_story_returns_it_to_continue_listening():
    engine, factory, store, _logger, _events = _make_engine()
    source = _start_playing(engine, factory, _story(duration=100), 100)
    source.events.on_end()
    assert store.continue_listening() == []

    engine.play()
    replay = factory.last
    replay.events.on_ready(100)
    replay.position_value = 40
    engine.pause()

    assert [item.story.id for item in store.continue_listening()] == ["a"]
    assert store.recently_played_filtered() == []
