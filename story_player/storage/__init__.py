"""Storage layer for local progress persistence."""

from .key_value import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    SqliteKeyValueStore,
    StorageError,
    build_key_value_store,
)
from .progress_repository import ProgressRepository, StorageKey, decode_value, encode_value

__all__ = [
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "ProgressRepository",
    "SqliteKeyValueStore",
    "StorageError",
    "StorageKey",
    "build_key_value_store",
    "decode_value",
    "encode_value",
]
