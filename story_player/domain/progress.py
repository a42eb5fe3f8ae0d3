"""Progress records and the rules that classify them."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from ..constants import (
    COMPLETION_FRACTION,
    CONTINUE_MAX_PERCENTAGE,
    CONTINUE_MIN_PERCENTAGE,
    RESUME_MAX_FRACTION,
    RESUME_MIN_POSITION_SECONDS,
)
from .story import Story


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    text = str(value or "").strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _whole_seconds(value: Any) -> int:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(parsed) or math.isinf(parsed):
        return 0
    return int(math.floor(parsed))


def compute_percentage(position: float, duration: float) -> int:
    """Whole percent of ``duration`` reached at ``position``; 0 for unknown duration."""
    if duration <= 0:
        return 0
    return int(math.floor(position / duration * 100))


def should_resume(position: float, duration: float, *, completed: bool) -> bool:
    """Whether a saved position is worth seeking to when a story loads."""
    if completed:
        return False
    return RESUME_MIN_POSITION_SECONDS < position < duration * RESUME_MAX_FRACTION


def is_near_completion(position: float, duration: float) -> bool:
    return position > 0 and position >= duration * COMPLETION_FRACTION


@dataclass(frozen=True)
class ProgressRecord:
    story_id: str
    position: int
    duration: int
    percentage: int
    completed: bool
    last_played: datetime

    @classmethod
    def create(
        cls,
        story_id: str,
        position: float,
        duration: float,
        completed: bool,
        *,
        now: datetime | None = None,
    ) -> "ProgressRecord":
        # Percentage comes from the unfloored values.
        return cls(
            story_id=str(story_id),
            position=_whole_seconds(position),
            duration=_whole_seconds(duration),
            percentage=compute_percentage(float(position or 0), float(duration or 0)),
            completed=bool(completed),
            last_played=now or utc_now(),
        )

    @property
    def in_progress(self) -> bool:
        """True inside the open continue-listening band."""
        if self.completed:
            return False
        return CONTINUE_MIN_PERCENTAGE < self.percentage < CONTINUE_MAX_PERCENTAGE

    @property
    def decisively_played(self) -> bool:
        """Finished, or barely started, or almost done."""
        return (
            self.completed
            or self.percentage < CONTINUE_MIN_PERCENTAGE
            or self.percentage > CONTINUE_MAX_PERCENTAGE
        )

    def to_mapping(self) -> dict[str, Any]:
        return {
            "storyId": self.story_id,
            "position": self.position,
            "duration": self.duration,
            "percentage": self.percentage,
            "completed": self.completed,
            "lastPlayed": format_timestamp(self.last_played),
        }

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any], *, story_id: str = "") -> "ProgressRecord":
        position = _whole_seconds(payload.get("position"))
        duration = _whole_seconds(payload.get("duration"))
        raw_percentage = payload.get("percentage")
        if (
            isinstance(raw_percentage, (int, float))
            and not isinstance(raw_percentage, bool)
            and math.isfinite(raw_percentage)
        ):
            percentage = int(raw_percentage)
        else:
            percentage = compute_percentage(position, duration)
        return cls(
            story_id=str(payload.get("storyId") or story_id),
            position=position,
            duration=duration,
            percentage=percentage,
            completed=bool(payload.get("completed", False)),
            last_played=parse_timestamp(payload.get("lastPlayed")) or utc_now(),
        )


@dataclass(frozen=True)
class RecentlyPlayedEntry:
    story: Story
    played_at: datetime

    @property
    def story_id(self) -> str:
        return self.story.id

    def to_mapping(self) -> dict[str, Any]:
        payload = self.story.to_mapping()
        payload["playedAt"] = format_timestamp(self.played_at)
        return payload

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "RecentlyPlayedEntry":
        return cls(
            story=Story.from_mapping(payload),
            played_at=parse_timestamp(payload.get("playedAt")) or utc_now(),
        )
