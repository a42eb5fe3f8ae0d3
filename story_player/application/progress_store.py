"""Per-story progress, recently played history and the views derived from them."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from ..constants import (
    DEFAULT_CONTINUE_LISTENING_LIMIT,
    DEFAULT_RECENTLY_PLAYED_LIMIT,
    DEFAULT_RECENTLY_PLAYED_VIEW_LIMIT,
)
from ..domain.progress import ProgressRecord, RecentlyPlayedEntry, utc_now
from ..domain.story import Story
from ..storage.progress_repository import PLAYBACK_RATE, VOLUME, ProgressRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContinueListeningItem:
    entry: RecentlyPlayedEntry
    progress: ProgressRecord

    @property
    def story(self) -> Story:
        return self.entry.story


class ProgressStore:
    def __init__(
        self,
        repository: ProgressRepository,
        logger_instance=None,
        *,
        recently_played_limit: int = DEFAULT_RECENTLY_PLAYED_LIMIT,
        continue_listening_limit: int = DEFAULT_CONTINUE_LISTENING_LIMIT,
        recently_played_view_limit: int = DEFAULT_RECENTLY_PLAYED_VIEW_LIMIT,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.logger = logger_instance or logger
        self.recently_played_limit = max(1, int(recently_played_limit))
        self.continue_listening_limit = max(0, int(continue_listening_limit))
        self.recently_played_view_limit = max(0, int(recently_played_view_limit))
        self.clock = clock

    def save_progress(
        self,
        story_id: str,
        position: float,
        duration: float,
        completed: bool,
    ) -> ProgressRecord:
        """Overwrite the story's record; a failed write is logged and the record still returned."""
        record = ProgressRecord.create(story_id, position, duration, completed, now=self.clock())
        if self.repository.save_progress(record):
            self.logger.debug(
                "Saved progress: story=%s position=%s duration=%s completed=%s",
                record.story_id,
                record.position,
                record.duration,
                record.completed,
            )
        return record

    def get_progress(self, story_id: str) -> ProgressRecord | None:
        return self.repository.load_progress(story_id)

    def clear_progress(self, story_id: str) -> None:
        self.repository.delete_progress(story_id)
        self.logger.info("Cleared progress for story %s", story_id)

    def clear_all_progress(self) -> int:
        story_ids = self.repository.progress_story_ids()
        for story_id in story_ids:
            self.repository.delete_progress(story_id)
        self.repository.delete_recently_played()
        self.logger.info("Cleared all progress: records=%s", len(story_ids))
        return len(story_ids)

    def record_play(self, story: Story) -> RecentlyPlayedEntry:
        entry = RecentlyPlayedEntry(story=story, played_at=self.clock())
        history = [item for item in self.repository.load_recently_played() if item.story_id != story.id]
        history.insert(0, entry)
        self.repository.save_recently_played(history[: self.recently_played_limit])
        return entry

    def recently_played(self) -> list[RecentlyPlayedEntry]:
        return self.repository.load_recently_played()

    def continue_listening(self) -> list[ContinueListeningItem]:
        items: list[ContinueListeningItem] = []
        for entry in self.repository.load_recently_played():
            if len(items) >= self.continue_listening_limit:
                break
            record = self.repository.load_progress(entry.story_id)
            if record is not None and record.in_progress:
                items.append(ContinueListeningItem(entry=entry, progress=record))
        return items

    def recently_played_filtered(self) -> list[RecentlyPlayedEntry]:
        """Entries with no record or a decisive one; the partial band belongs to continue_listening."""
        entries: list[RecentlyPlayedEntry] = []
        for entry in self.repository.load_recently_played():
            if len(entries) >= self.recently_played_view_limit:
                break
            record = self.repository.load_progress(entry.story_id)
            if record is None or record.decisively_played:
                entries.append(entry)
        return entries

    def default_volume(self) -> float:
        return max(0.0, min(1.0, self.repository.load_float(VOLUME, 1.0)))

    def set_default_volume(self, volume: float) -> None:
        self.repository.write(VOLUME, volume)

    def default_playback_rate(self) -> float:
        rate = self.repository.load_float(PLAYBACK_RATE, 1.0)
        return rate if rate > 0 else 1.0

    def set_default_playback_rate(self, rate: float) -> None:
        self.repository.write(PLAYBACK_RATE, rate)
