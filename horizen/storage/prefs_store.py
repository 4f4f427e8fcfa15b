"""Preference store backed by a YAML file.

The start page owns its preferences; this store is the narrow interface
the backup core reads from and writes merge results to: a ``prefs``
snapshot plus ``set_prefs(updater)``.
"""

from pathlib import Path
from typing import Callable, Optional

import yaml

from ..models.prefs import Prefs
from ..utils.logging import get_logger

logger = get_logger(__name__)

PrefsUpdater = Callable[[Prefs], Prefs]


class PreferencesStore:
    """Holds the current Prefs and persists updates.

    With no path the store is memory-only.
    """

    def __init__(self, path: Optional[Path] = None, initial: Optional[Prefs] = None):
        self.path = Path(path) if path is not None else None
        self._prefs: Optional[Prefs] = initial

    @property
    def prefs(self) -> Prefs:
        """Current preferences (loaded on first access)."""
        if self._prefs is None:
            self._prefs = self.load()
        return self._prefs

    def load(self) -> Prefs:
        """Load preferences from disk, or defaults if the file is missing."""
        if self.path is None or not self.path.exists():
            return Prefs()

        with open(self.path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return Prefs.from_dict(data)

    def save(self) -> None:
        """Write current preferences to disk."""
        if self.path is None:
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.prefs.to_dict(),
                f,
                default_flow_style=False,
                sort_keys=False,
                allow_unicode=True,
            )

    def set_prefs(self, updater: PrefsUpdater) -> Prefs:
        """
        Apply ``updater`` to the current preferences and persist the result.

        Args:
            updater: Function from current Prefs to new Prefs

        Returns:
            The new Prefs
        """
        self._prefs = updater(self.prefs)
        self.save()
        logger.debug("Preferences updated")
        return self._prefs
