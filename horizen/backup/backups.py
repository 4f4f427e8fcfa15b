"""Pre-import preference snapshots.

Before an import overwrites preferences, a copy is stored under
``horizen:backup:<epoch-ms>``. Only the most recent few are kept.
"""

import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ..models.prefs import Prefs
from ..storage.kv import KeyValueStore
from ..utils.logging import get_logger
from ..vault.config import get_vault_config

logger = get_logger(__name__)

BACKUP_PREFIX = "horizen:backup:"


@dataclass(frozen=True)
class BackupInfo:
    """A stored snapshot."""

    key: str
    timestamp: int  # epoch milliseconds

    @property
    def created_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)


def _parse_key(key: str) -> Optional[BackupInfo]:
    try:
        return BackupInfo(key=key, timestamp=int(key[len(BACKUP_PREFIX):]))
    except ValueError:
        return None


def _all_backups(store: KeyValueStore) -> list[BackupInfo]:
    backups = []
    for key in store.keys():
        if key.startswith(BACKUP_PREFIX):
            info = _parse_key(key)
            if info is not None:
                backups.append(info)
    backups.sort(key=lambda b: b.timestamp, reverse=True)
    return backups


def create_backup(
    prefs: Prefs,
    store: KeyValueStore,
    timestamp_ms: Optional[int] = None,
    max_backups: Optional[int] = None,
) -> str:
    """
    Snapshot ``prefs`` and prune old snapshots.

    Args:
        prefs: Preferences to save
        store: Storage for the snapshot
        timestamp_ms: Snapshot time (defaults to now)
        max_backups: Snapshots to keep (defaults to the vault config)

    Returns:
        Storage key of the new snapshot
    """
    timestamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    while f"{BACKUP_PREFIX}{timestamp}" in store:
        timestamp += 1

    key = f"{BACKUP_PREFIX}{timestamp}"
    store.set(key, json.dumps({"timestamp": timestamp, "prefs": prefs.to_dict()}))

    keep = max_backups if max_backups is not None else get_vault_config().max_backups
    for old in _all_backups(store)[keep:]:
        store.delete(old.key)
        logger.debug("Pruned backup %s", old.key)

    logger.info("Created preferences backup %s", key)
    return key


def restore_backup(key: str, store: KeyValueStore) -> Optional[Prefs]:
    """Load a snapshot, or None if it is missing or unreadable."""
    raw = store.get(key)
    if not raw:
        return None
    try:
        data = json.loads(raw)
        prefs = data["prefs"]
        # Older snapshots stored the preferences as a JSON string
        if isinstance(prefs, str):
            prefs = json.loads(prefs)
        return Prefs.from_dict(prefs)
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        logger.warning("Backup %s is unreadable: %s", key, e)
        return None


def get_recent_backups(store: KeyValueStore, limit: Optional[int] = None) -> list[BackupInfo]:
    """Stored snapshots, newest first."""
    limit = limit if limit is not None else get_vault_config().max_backups
    return _all_backups(store)[:limit]
