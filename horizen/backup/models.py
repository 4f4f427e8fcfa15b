"""Data models for backup export and import.

The selection tree and import report are transient: they describe what a
user picked in an export or import dialog and what happened afterwards.
Wire names (``apiKeys``, ``quickLinks``...) match the backup file format.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..models.prefs import (
    PROVIDER_NAMES,
    ChatConversation,
    ChatModel,
    Prefs,
    QuickLink,
    SearchEngine,
    ShortcutBinding,
    WidgetConfig,
)

# Section names as they appear in backup documents
SECTION_API_KEYS = "apiKeys"
SECTION_CHATS = "chats"
SECTION_SETTINGS = "settings"
SECTION_WIDGETS = "widgets"

SECTIONS = (SECTION_API_KEYS, SECTION_CHATS, SECTION_SETTINGS, SECTION_WIDGETS)

# Settings sub-items
SETTING_SEARCH_ENGINE = "searchEngine"
SETTING_QUICK_LINKS = "quickLinks"
SETTING_KEYBOARD_SHORTCUTS = "keyboardShortcuts"
SETTING_CHAT_PREFERENCES = "chatPreferences"

SETTINGS_ITEMS = (
    SETTING_SEARCH_ENGINE,
    SETTING_QUICK_LINKS,
    SETTING_KEYBOARD_SHORTCUTS,
    SETTING_CHAT_PREFERENCES,
)

SETTING_LABELS = {
    SETTING_SEARCH_ENGINE: "Search Engine",
    SETTING_QUICK_LINKS: "Quick Links",
    SETTING_KEYBOARD_SHORTCUTS: "Keyboard Shortcuts",
    SETTING_CHAT_PREFERENCES: "Chat Preferences",
}


class ChatMergeStrategy(Enum):
    """How imported conversations combine with existing ones."""

    APPEND = "append"
    REPLACE = "replace"


class MergeStrategy(Enum):
    """How imported quick links or widgets combine with existing ones."""

    MERGE = "merge"
    REPLACE = "replace"


@dataclass
class SectionSelection:
    """Selection state of one top-level section."""

    selected: bool = False
    items: dict[str, bool] = field(default_factory=dict)

    def is_item_selected(self, item_id: str) -> bool:
        return self.selected and self.items.get(item_id) is True

    def selected_items(self) -> list[str]:
        if not self.selected:
            return []
        return [item_id for item_id, chosen in self.items.items() if chosen]

    def to_dict(self) -> dict[str, Any]:
        return {"selected": self.selected, "items": dict(self.items)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SectionSelection":
        return cls(
            selected=bool(data.get("selected", False)),
            items={str(k): bool(v) for k, v in (data.get("items") or {}).items()},
        )


@dataclass
class SelectionTree:
    """Which sections and items to export, or to apply from an import."""

    api_keys: Optional[SectionSelection] = None
    chats: Optional[SectionSelection] = None
    settings: Optional[SectionSelection] = None
    widgets: Optional[SectionSelection] = None

    def section(self, name: str) -> Optional[SectionSelection]:
        """Look up a section by its wire name."""
        return {
            SECTION_API_KEYS: self.api_keys,
            SECTION_CHATS: self.chats,
            SECTION_SETTINGS: self.settings,
            SECTION_WIDGETS: self.widgets,
        }[name]

    def is_selected(self, name: str) -> bool:
        section = self.section(name)
        return section is not None and section.selected

    def select_all(self) -> "SelectionTree":
        """Return a copy with every present section and item selected."""

        def _all(section: Optional[SectionSelection]) -> Optional[SectionSelection]:
            if section is None:
                return None
            return SectionSelection(True, {k: True for k in section.items})

        return SelectionTree(
            api_keys=_all(self.api_keys),
            chats=_all(self.chats),
            settings=_all(self.settings),
            widgets=_all(self.widgets),
        )

    @classmethod
    def for_prefs(
        cls,
        prefs: Prefs,
        sections: tuple[str, ...] = SECTIONS,
        api_keys: tuple[str, ...] = PROVIDER_NAMES,
    ) -> "SelectionTree":
        """
        Build a selection covering everything exportable from ``prefs``.

        Args:
            prefs: Current preferences
            sections: Section names to select
            api_keys: Providers to select when apiKeys is included

        Returns:
            SelectionTree with every item in the chosen sections selected
        """
        tree = cls()
        if SECTION_API_KEYS in sections:
            tree.api_keys = SectionSelection(
                True, {name: name in api_keys for name in PROVIDER_NAMES}
            )
        if SECTION_CHATS in sections:
            tree.chats = SectionSelection(
                True, {c.id: True for c in prefs.conversations if not c.is_ghost_mode}
            )
        if SECTION_SETTINGS in sections:
            tree.settings = SectionSelection(True, {name: True for name in SETTINGS_ITEMS})
        if SECTION_WIDGETS in sections:
            tree.widgets = SectionSelection(True, {w.id: True for w in prefs.widgets})
        return tree

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {}
        for name in SECTIONS:
            section = self.section(name)
            if section is not None:
                result[name] = section.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SelectionTree":
        def _section(name: str) -> Optional[SectionSelection]:
            raw = data.get(name)
            return SectionSelection.from_dict(raw) if raw is not None else None

        return cls(
            api_keys=_section(SECTION_API_KEYS),
            chats=_section(SECTION_CHATS),
            settings=_section(SECTION_SETTINGS),
            widgets=_section(SECTION_WIDGETS),
        )


@dataclass
class MergeStrategies:
    """Per-resource merge strategies for an import."""

    chats: ChatMergeStrategy = ChatMergeStrategy.APPEND
    quick_links: MergeStrategy = MergeStrategy.MERGE
    widgets: MergeStrategy = MergeStrategy.MERGE


@dataclass
class ImportOptions:
    """Options for applying a backup document."""

    selection: SelectionTree
    merge_strategies: MergeStrategies = field(default_factory=MergeStrategies)
    create_backup: bool = True
    allow_integrity_mismatch: bool = False


@dataclass
class ImportResult:
    """
    Outcome of an import.

    The merged collections are computed but not written; the caller applies
    them to its preference store with ``apply`` (usually through
    ``PreferencesStore.set_prefs``). A field left as None means "unchanged".
    """

    success: bool = True
    imported: dict[str, Any] = field(default_factory=dict)
    failed: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    backup_key: Optional[str] = None

    # Merged state
    conversations: Optional[list[ChatConversation]] = None
    quick_links: Optional[list[QuickLink]] = None
    widgets: Optional[list[WidgetConfig]] = None
    search_engine_id: Optional[str] = None
    custom_search_engines: Optional[list[SearchEngine]] = None
    shortcuts: Optional[list[ShortcutBinding]] = None
    show_chat: Optional[bool] = None
    show_verified_org_models: Optional[bool] = None
    chat_model: Optional[ChatModel] = None
    notes: dict[str, str] = field(default_factory=dict)
    weather_location: Optional[dict[str, Any]] = None

    def add_error(self, section: str, message: str) -> None:
        self.errors.append(f"{section}: {message}")

    def apply(self, prefs: Prefs) -> Prefs:
        """Return ``prefs`` updated with the merged state of this import."""
        changes: dict[str, Any] = {}
        for name in (
            "conversations",
            "widgets",
            "search_engine_id",
            "custom_search_engines",
            "shortcuts",
            "show_chat",
            "show_verified_org_models",
            "chat_model",
            "weather_location",
        ):
            value = getattr(self, name)
            if value is not None:
                changes[name] = value
        if self.quick_links is not None:
            changes["links"] = self.quick_links
        if self.notes:
            changes["notes"] = {**prefs.notes, **self.notes}
        return prefs.copy(**changes)

    def summary(self) -> list[str]:
        """Human-readable lines describing what was imported."""
        lines = []
        api_keys = self.imported.get(SECTION_API_KEYS)
        if api_keys:
            lines.append(f"API keys: {', '.join(api_keys['items'])}")
        chats = self.imported.get(SECTION_CHATS)
        if chats:
            lines.append(f"Chats: {chats['count']} ({chats['mode']})")
        settings = self.imported.get(SECTION_SETTINGS)
        if settings:
            lines.append(f"Settings: {', '.join(settings['items'])}")
        widgets = self.imported.get(SECTION_WIDGETS)
        if widgets:
            lines.append(f"Widgets: {', '.join(widgets['items'])}")
        return lines
