"""Story metadata as read from the content catalog."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

_KNOWN_KEYS = {
    "_id",
    "id",
    "audioUrl",
    "audio_url",
    "duration",
    "title",
    "slug",
    "titleArabic",
    "thumbnail",
    "thumbnailUrl",
    "narrator",
    "description",
    "playedAt",
}


def upgrade_to_https(url: str | None) -> str | None:
    if url and url.startswith("http://"):
        return "https://" + url[len("http://") :]
    return url


def _duration_hint(value: Any) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, parsed)


@dataclass(frozen=True)
class Story:
    """Read-only story record; the playback core never mutates it."""

    id: str
    audio_url: str
    duration_hint: float
    title: str = ""
    slug: str = ""
    title_arabic: str = ""
    thumbnail_url: str | None = None
    narrator: str = ""
    description: str = ""
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not str(self.id or "").strip():
            raise ValueError("Story id is required.")
        if not str(self.audio_url or "").strip():
            raise ValueError(f"Story {self.id} has no audio source.")

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "Story":
        """Build a story from the platform JSON shape or a stored snapshot."""
        story_id = payload.get("_id") or payload.get("id") or ""
        audio_url = payload.get("audioUrl") or payload.get("audio_url") or ""
        thumbnail = payload.get("thumbnailUrl") or payload.get("thumbnail")
        return cls(
            id=str(story_id),
            audio_url=upgrade_to_https(str(audio_url)) or "",
            duration_hint=_duration_hint(payload.get("duration")),
            title=str(payload.get("title") or ""),
            slug=str(payload.get("slug") or ""),
            title_arabic=str(payload.get("titleArabic") or ""),
            thumbnail_url=upgrade_to_https(str(thumbnail)) if thumbnail else None,
            narrator=str(payload.get("narrator") or ""),
            description=str(payload.get("description") or ""),
            extra={key: value for key, value in payload.items() if key not in _KNOWN_KEYS},
        )

    def to_mapping(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.extra)
        payload.update(
            {
                "_id": self.id,
                "audioUrl": self.audio_url,
                "duration": self.duration_hint,
                "title": self.title,
            }
        )
        if self.slug:
            payload["slug"] = self.slug
        if self.title_arabic:
            payload["titleArabic"] = self.title_arabic
        if self.thumbnail_url:
            payload["thumbnailUrl"] = self.thumbnail_url
        if self.narrator:
            payload["narrator"] = self.narrator
        if self.description:
            payload["description"] = self.description
        return payload
