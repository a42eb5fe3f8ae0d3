"""Best-effort push of listening progress to the user's account."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
import logging
import threading
import time
from typing import Callable

from ..constants import DEFAULT_SYNC_INTERVAL_SECONDS
from ..domain.progress import is_near_completion
from .ports import ProgressSyncClient

logger = logging.getLogger(__name__)


class ProgressSyncService:
    """Fire-and-forget remote writes; local playback never waits on them."""

    def __init__(
        self,
        client: ProgressSyncClient,
        token_provider: Callable[[], str | None],
        logger_instance=None,
        *,
        interval_seconds: float = DEFAULT_SYNC_INTERVAL_SECONDS,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self.client = client
        self.token_provider = token_provider
        self.logger = logger_instance or logger
        self.interval_seconds = max(0.0, float(interval_seconds))
        self.enabled = bool(enabled)
        self.clock = clock
        self._executor = executor
        self._pending: list[Future[None]] = []
        self._pending_lock = threading.Lock()
        self._last_push_at: float | None = None

    def _token(self) -> str | None:
        try:
            return self.token_provider()
        except Exception:
            self.logger.exception("Failed to read account token")
            return None

    def is_authenticated(self) -> bool:
        return bool(self._token())

    def maybe_push(self, story_id: str, position: float, duration: float) -> Future[None] | None:
        """Periodic push while playing, at most once per interval."""
        if position <= 0:
            return None
        now = self.clock()
        if self._last_push_at is not None and now - self._last_push_at < self.interval_seconds:
            return None
        return self.push(story_id, position, duration)

    def push(
        self,
        story_id: str,
        position: float,
        duration: float,
        *,
        completed: bool = False,
    ) -> Future[None] | None:
        if not self.enabled:
            return None
        token = self._token()
        if not token:
            return None
        payload = {
            "position": int(position),
            "duration": int(duration),
            "completed": bool(completed or is_near_completion(position, duration)),
        }
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="progress-sync")
        self._last_push_at = self.clock()
        future = self._executor.submit(self._send, story_id, payload, token)
        with self._pending_lock:
            self._pending = [item for item in self._pending if not item.done()]
            self._pending.append(future)
        future.add_done_callback(self._on_push_done)
        return future

    def _send(self, story_id: str, payload: dict[str, object], token: str) -> None:
        self.client.push_progress(story_id, payload, token=token)
        self.logger.debug("Synced progress: story=%s payload=%s", story_id, payload)

    def _on_push_done(self, future: Future[None]) -> None:
        try:
            future.result()
        except Exception:
            self.logger.exception("Progress sync failed")

    def wait_for_pending(self, timeout: float | None = None) -> None:
        with self._pending_lock:
            futures = list(self._pending)
            self._pending = []
        for future in futures:
            try:
                future.result(timeout=timeout)
            except Exception:
                # Failures are logged by the done-callback.
                self.logger.debug("Pending progress sync did not complete", exc_info=True)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is None:
            return
        self._executor.shutdown(wait=wait)
        self._executor = None
