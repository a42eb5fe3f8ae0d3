"""Typed access to progress, history and preference entries in a key-value store."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from ..constants import (
    PLAYBACK_RATE_KEY,
    PROGRESS_KEY_PREFIX,
    RECENTLY_PLAYED_KEY,
    USER_TOKEN_KEY,
    VOLUME_KEY,
)
from ..domain.progress import ProgressRecord, RecentlyPlayedEntry

logger = logging.getLogger(__name__)

CODEC_JSON = "json"
CODEC_FLOAT = "float"
CODEC_TEXT = "text"


@dataclass(frozen=True)
class StorageKey:
    name: str
    codec: str


RECENTLY_PLAYED = StorageKey(RECENTLY_PLAYED_KEY, CODEC_JSON)
VOLUME = StorageKey(VOLUME_KEY, CODEC_FLOAT)
PLAYBACK_RATE = StorageKey(PLAYBACK_RATE_KEY, CODEC_FLOAT)
USER_TOKEN = StorageKey(USER_TOKEN_KEY, CODEC_TEXT)


def progress_key(story_id: str) -> StorageKey:
    return StorageKey(f"{PROGRESS_KEY_PREFIX}{story_id}", CODEC_JSON)


def encode_value(codec: str, value: Any) -> str:
    if codec == CODEC_JSON:
        return json.dumps(value, ensure_ascii=False)
    if codec == CODEC_FLOAT:
        return repr(float(value))
    if codec == CODEC_TEXT:
        return str(value)
    raise ValueError(f"Unknown storage codec: {codec}")


def decode_value(codec: str, raw: str | None) -> Any:
    """Decode a stored string; returns None for missing or unreadable values."""
    if raw is None or raw == "":
        return None
    if codec == CODEC_JSON:
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return None
    if codec == CODEC_FLOAT:
        try:
            return float(raw)
        except ValueError:
            pass
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return None
        try:
            return float(parsed)
        except (TypeError, ValueError):
            return None
    if codec == CODEC_TEXT:
        # Older clients stored some strings JSON-encoded.
        if raw.startswith('"'):
            try:
                parsed = json.loads(raw)
            except json.JSONDecodeError:
                return raw
            if isinstance(parsed, str):
                return parsed
        return raw
    raise ValueError(f"Unknown storage codec: {codec}")


class ProgressRepository:
    """Wrap a raw string store; persistence failures are logged, never raised."""

    def __init__(self, store, logger_instance=None) -> None:
        self.store = store
        self.logger = logger_instance or logger

    def read(self, key: StorageKey) -> Any:
        try:
            raw = self.store.get(key.name)
        except Exception:
            self.logger.exception("Failed to read storage key: %s", key.name)
            return None
        return decode_value(key.codec, raw)

    def write(self, key: StorageKey, value: Any) -> bool:
        try:
            self.store.set(key.name, encode_value(key.codec, value))
        except Exception:
            self.logger.exception("Failed to write storage key: %s", key.name)
            return False
        return True

    def delete(self, key: StorageKey) -> bool:
        try:
            self.store.remove(key.name)
        except Exception:
            self.logger.exception("Failed to remove storage key: %s", key.name)
            return False
        return True

    def load_progress(self, story_id: str) -> ProgressRecord | None:
        payload = self.read(progress_key(story_id))
        if not isinstance(payload, dict):
            return None
        try:
            return ProgressRecord.from_mapping(payload, story_id=story_id)
        except Exception:
            self.logger.exception("Failed to decode progress record: %s", story_id)
            return None

    def save_progress(self, record: ProgressRecord) -> bool:
        return self.write(progress_key(record.story_id), record.to_mapping())

    def delete_progress(self, story_id: str) -> bool:
        return self.delete(progress_key(story_id))

    def progress_story_ids(self) -> list[str]:
        try:
            names = self.store.keys()
        except Exception:
            self.logger.exception("Failed to list storage keys")
            return []
        return [
            name[len(PROGRESS_KEY_PREFIX) :]
            for name in names
            if name.startswith(PROGRESS_KEY_PREFIX)
        ]

    def load_recently_played(self) -> list[RecentlyPlayedEntry]:
        payload = self.read(RECENTLY_PLAYED)
        if not isinstance(payload, list):
            return []
        entries: list[RecentlyPlayedEntry] = []
        for item in payload:
            if not isinstance(item, dict):
                continue
            try:
                entries.append(RecentlyPlayedEntry.from_mapping(item))
            except ValueError:
                self.logger.warning("Skipping unreadable recently played entry: %s", item)
        return entries

    def save_recently_played(self, entries: list[RecentlyPlayedEntry]) -> bool:
        return self.write(RECENTLY_PLAYED, [entry.to_mapping() for entry in entries])

    def delete_recently_played(self) -> bool:
        return self.delete(RECENTLY_PLAYED)

    def load_float(self, key: StorageKey, default: float) -> float:
        value = self.read(key)
        if value is None:
            return float(default)
        return float(value)

    def load_user_token(self) -> str | None:
        token = self.read(USER_TOKEN)
        if not token:
            return None
        return str(token).strip() or None

    def save_user_token(self, token: str) -> bool:
        return self.write(USER_TOKEN, str(token).strip())

    def delete_user_token(self) -> bool:
        return self.delete(USER_TOKEN)
