"""Persistence collaborators: key/value records and the preferences file."""

from .kv import JsonFileStore, KeyValueStore, MemoryStore, StagedStore
from .prefs_store import PreferencesStore

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "StagedStore",
    "PreferencesStore",
]
