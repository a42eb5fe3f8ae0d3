"""Application-level ports for media playback, storage and remote sync."""

from __future__ import annotations

from typing import Any, Callable, Mapping, Protocol


class MediaEvents(Protocol):
    """Sink a media source reports its lifecycle to."""

    def on_ready(self, duration_seconds: float) -> None: ...

    def on_play(self) -> None: ...

    def on_pause(self) -> None: ...

    def on_end(self) -> None: ...

    def on_error(self, error: Exception) -> None: ...


class MediaSource(Protocol):
    """One decode/output unit; loading is asynchronous and reported through MediaEvents."""

    def load(self, url: str) -> None: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def seek(self, seconds: float) -> None: ...

    def position(self) -> float: ...

    def duration(self) -> float: ...

    def set_volume(self, volume: float) -> None: ...

    def set_rate(self, rate: float) -> None: ...

    def release(self) -> None: ...


MediaFactory = Callable[[MediaEvents], MediaSource]


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class ProgressSyncClient(Protocol):
    """Remote account API; write-only from the playback core."""

    def push_progress(
        self,
        story_id: str,
        payload: Mapping[str, Any],
        *,
        token: str,
    ) -> Mapping[str, Any]: ...


class Scheduler(Protocol):
    """Same shape as tkinter's ``after``/``after_cancel``."""

    def after(self, delay_ms: int, callback: Callable[[], None]) -> Any: ...

    def after_cancel(self, handle: Any) -> None: ...
