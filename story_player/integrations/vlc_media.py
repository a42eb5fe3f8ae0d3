"""libVLC media source for the playback engine."""

from __future__ import annotations

import logging
import os
import sys
import urllib.parse
from typing import TYPE_CHECKING, Callable

from ..domain.playback import MediaLoadError

if TYPE_CHECKING:
    from ..application.ports import MediaEvents

try:
    import vlc as _vlc
except Exception:  # pragma: no cover - libvlc may be missing at import time
    _vlc = None

logger = logging.getLogger(__name__)

Dispatch = Callable[[Callable[[], None]], object]


def _direct_dispatch(callback: Callable[[], None]) -> None:
    callback()


def _is_remote(url: str) -> bool:
    return urllib.parse.urlparse(url).scheme in {"http", "https", "ftp", "rtsp", "mms"}


class VlcMediaSource:
    """Thin libVLC wrapper for one story.

    libVLC fires events on its own thread; ``dispatch`` hands them to the
    thread that owns the engine (for example ``LoopScheduler.call_soon`` or a
    tkinter ``root.after(0, ...)`` adapter).
    """

    def __init__(
        self,
        events: MediaEvents,
        *,
        vlc_module=None,
        platform_name: str | None = None,
        dispatch: Dispatch | None = None,
        logger_instance=None,
    ) -> None:
        self._vlc = vlc_module if vlc_module is not None else _vlc
        if self._vlc is None:
            raise RuntimeError("python-vlc is not available")
        self.events = events
        self.dispatch = dispatch or _direct_dispatch
        self.logger = logger_instance or logger
        platform_value = platform_name if platform_name is not None else sys.platform
        args = ["--no-xlib", "--no-video"] if str(platform_value).startswith("linux") else ["--no-video"]
        self.instance = self._vlc.Instance(args)
        self.player = self.instance.media_player_new()
        self.media = None
        self._started = False
        self._pending_seek_ms: int | None = None
        self._released = False
        player_events = self.player.event_manager()
        event_type = self._vlc.EventType
        player_events.event_attach(event_type.MediaPlayerPlaying, self._on_vlc_playing)
        player_events.event_attach(event_type.MediaPlayerPaused, self._on_vlc_paused)
        player_events.event_attach(event_type.MediaPlayerEndReached, self._on_vlc_end)
        player_events.event_attach(event_type.MediaPlayerEncounteredError, self._on_vlc_error)

    def _post(self, callback: Callable[[], None]) -> None:
        if self._released:
            return
        try:
            self.dispatch(callback)
        except Exception:
            self.logger.exception("Failed to dispatch VLC event")

    def load(self, url: str) -> None:
        if not _is_remote(url) and not os.path.isfile(url):
            raise FileNotFoundError(url)
        location = url if _is_remote(url) else os.path.abspath(url)
        media = self.instance.media_new(location)
        self.player.set_media(media)
        self.media = media
        media.event_manager().event_attach(
            self._vlc.EventType.MediaParsedChanged,
            self._on_vlc_parsed,
        )
        flags = self._vlc.MediaParseFlag.network if _is_remote(url) else self._vlc.MediaParseFlag.local
        if media.parse_with_options(flags, -1) == -1:
            raise MediaLoadError(f"VLC could not start parsing {url}")

    def play(self) -> None:
        rc = int(self.player.play())
        if rc == -1:
            raise RuntimeError("VLC failed to start playback.")

    def pause(self) -> None:
        self.player.set_pause(1)

    def seek(self, seconds: float) -> None:
        target_ms = max(0, int(float(seconds) * 1000))
        if not self._started:
            # VLC ignores set_time before the first Playing event.
            self._pending_seek_ms = target_ms
            return
        self.player.set_time(target_ms)

    def position(self) -> float:
        if self._pending_seek_ms is not None:
            return self._pending_seek_ms / 1000.0
        return max(0, int(self.player.get_time() or 0)) / 1000.0

    def duration(self) -> float:
        length_ms = int(self.player.get_length() or 0)
        if length_ms <= 0 and self.media is not None:
            length_ms = int(self.media.get_duration() or 0)
        return max(0, length_ms) / 1000.0

    def set_volume(self, volume: float) -> None:
        self.player.audio_set_volume(max(0, min(100, int(round(float(volume) * 100)))))

    def set_rate(self, rate: float) -> None:
        self.player.set_rate(float(rate))

    def release(self) -> None:
        self._released = True
        try:
            self.player.stop()
        except Exception:
            self.logger.debug("VLC stop failed during release", exc_info=True)
        if self.media is not None:
            try:
                self.media.release()
            except Exception:
                self.logger.debug("VLC media release failed", exc_info=True)
            self.media = None
        try:
            self.player.release()
        except Exception:
            self.logger.debug("VLC player release failed", exc_info=True)
        try:
            self.instance.release()
        except Exception:
            self.logger.debug("VLC instance release failed", exc_info=True)

    # libVLC callbacks, called on the VLC event thread.

    def _on_vlc_parsed(self, _event) -> None:
        media = self.media
        if media is None:
            return
        status = media.get_parsed_status()
        if status == self._vlc.MediaParsedStatus.done:
            duration = max(0, int(media.get_duration() or 0)) / 1000.0
            self._post(lambda: self.events.on_ready(duration))
        else:
            error = MediaLoadError(f"VLC could not parse media ({status})")
            self._post(lambda: self.events.on_error(error))

    def _on_vlc_playing(self, _event) -> None:
        self._started = True
        if self._pending_seek_ms is not None:
            target_ms = self._pending_seek_ms
            self._pending_seek_ms = None
            self.player.set_time(target_ms)
        self._post(self.events.on_play)

    def _on_vlc_paused(self, _event) -> None:
        self._post(self.events.on_pause)

    def _on_vlc_end(self, _event) -> None:
        self._post(self.events.on_end)

    def _on_vlc_error(self, _event) -> None:
        error = MediaLoadError("VLC reported a playback error")
        self._post(lambda: self.events.on_error(error))


def build_vlc_media_factory(
    *,
    dispatch: Dispatch | None = None,
    vlc_module=None,
    logger_instance=None,
):
    def factory(events: MediaEvents) -> VlcMediaSource:
        return VlcMediaSource(
            events,
            vlc_module=vlc_module,
            dispatch=dispatch,
            logger_instance=logger_instance,
        )

    return factory
