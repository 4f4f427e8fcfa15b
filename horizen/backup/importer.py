"""Backup import and merge engine.

Applies a 2.x backup document to the current preferences. The merged
collections are returned in an ImportResult for the caller to persist;
only API keys are written directly, through the secret store.

Merge rules:
    chats         append (rename colliding ids) | replace
    quick links   merge (union by id, existing wins) | replace
    widgets       merge (union by id, existing wins, habits and ticker
                  symbols unioned) | replace
    settings      overwritten when selected
"""

import time
from typing import Any, Callable, Optional

from ..models.prefs import (
    PROVIDER_LABELS,
    PROVIDER_NAMES,
    ChatConversation,
    ChatModel,
    ModelProvider,
    Prefs,
    QuickLink,
    SearchEngine,
    ShortcutBinding,
    WidgetConfig,
    WidgetType,
)
from ..storage.kv import KeyValueStore
from ..utils.logging import get_logger
from ..vault.exceptions import (
    ExportFormatError,
    IntegrityMismatchError,
    PasswordRequiredError,
    VaultError,
)
from ..vault.secret_store import SecretStore
from .backups import create_backup
from .exporter import decrypt_document, validate_export_data_v2, verify_import_hash
from .models import (
    SECTION_API_KEYS,
    SECTION_CHATS,
    SECTION_SETTINGS,
    SECTION_WIDGETS,
    SECTIONS,
    SETTING_CHAT_PREFERENCES,
    SETTING_KEYBOARD_SHORTCUTS,
    SETTING_LABELS,
    SETTING_QUICK_LINKS,
    SETTING_SEARCH_ENGINE,
    ChatMergeStrategy,
    ImportOptions,
    ImportResult,
    MergeStrategy,
    SectionSelection,
)

logger = get_logger(__name__)

# Errors raised by malformed entries inside an otherwise valid document
ENTRY_ERRORS = (KeyError, TypeError, ValueError, AttributeError)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _selected_entries(
    entries: list[dict[str, Any]],
    selection: SectionSelection,
    select_all: bool,
) -> list[dict[str, Any]]:
    if select_all:
        return list(entries)
    return [entry for entry in entries if selection.items.get(entry.get("id")) is True]


# ----------------------------------------------------------------------
# Merge helpers
# ----------------------------------------------------------------------


def merge_conversations(
    existing: list[ChatConversation],
    imported: list[ChatConversation],
    strategy: ChatMergeStrategy,
    clock: Callable[[], int] = _now_ms,
) -> list[ChatConversation]:
    """
    Combine conversations.

    In append mode an imported conversation whose id is already taken gets
    ``<id>-imported-<epoch-ms>`` (with a counter if that is taken too).
    """
    if strategy is ChatMergeStrategy.REPLACE:
        return list(imported)

    taken = {c.id for c in existing}
    stamp = clock()
    appended = []
    for conversation in imported:
        if conversation.id in taken:
            new_id = f"{conversation.id}-imported-{stamp}"
            counter = 1
            while new_id in taken:
                new_id = f"{conversation.id}-imported-{stamp}-{counter}"
                counter += 1
            logger.debug("Renamed imported conversation %s -> %s", conversation.id, new_id)
            conversation = ChatConversation.from_dict({**conversation.to_dict(), "id": new_id})
        taken.add(conversation.id)
        appended.append(conversation)
    return list(existing) + appended


def merge_quick_links(
    existing: list[QuickLink],
    imported: list[QuickLink],
    strategy: MergeStrategy,
) -> list[QuickLink]:
    """Union by id with existing links winning, or imported only."""
    if strategy is MergeStrategy.REPLACE:
        return list(imported)
    known = {link.id for link in existing}
    return list(existing) + [link for link in imported if link.id not in known]


def _union(existing: list[Any], imported: list[Any], identity: Callable[[Any], Any]) -> list[Any]:
    seen = {identity(item) for item in existing}
    result = list(existing)
    for item in imported:
        marker = identity(item)
        if marker not in seen:
            seen.add(marker)
            result.append(item)
    return result


def _habit_identity(habit: Any) -> Any:
    if isinstance(habit, dict):
        return habit.get("id") or habit.get("name")
    return habit


def _symbol_identity(symbol: Any) -> Any:
    if isinstance(symbol, dict):
        return (str(symbol.get("symbol", "")).upper(), symbol.get("type"))
    return str(symbol).upper()


def _imported_list(entry: dict[str, Any], name: str) -> list[Any]:
    """A habit or symbol list from an exported widget, preferring ``data``."""
    data = entry.get("data") or {}
    if data.get(name) is not None:
        return list(data[name])
    return list((entry.get("settings") or {}).get(name) or [])


def merge_widget(existing: WidgetConfig, entry: dict[str, Any]) -> WidgetConfig:
    """
    Merge one imported widget into the existing widget with the same id.

    The existing config wins, except that habit lists and ticker symbols
    are unioned.
    """
    settings = dict(existing.settings)
    if existing.type == WidgetType.HABIT_TRACKER.value:
        settings["habits"] = _union(
            list(settings.get("habits") or []), _imported_list(entry, "habits"), _habit_identity
        )
    elif existing.type == WidgetType.TICKER.value:
        settings["symbols"] = _union(
            list(settings.get("symbols") or []), _imported_list(entry, "symbols"), _symbol_identity
        )
    return WidgetConfig(
        id=existing.id,
        type=existing.type,
        enabled=existing.enabled,
        order=existing.order,
        settings=settings,
    )


def _widget_from_entry(entry: dict[str, Any]) -> WidgetConfig:
    widget = WidgetConfig.from_dict(entry)
    # Lists exported under "data" win over the copies in settings
    for name in ("habits", "symbols"):
        data = entry.get("data") or {}
        if data.get(name) is not None:
            widget.settings[name] = list(data[name])
    return widget


def merge_widgets(
    existing: list[WidgetConfig],
    entries: list[dict[str, Any]],
    strategy: MergeStrategy,
) -> list[WidgetConfig]:
    """Union by id (see ``merge_widget``), or imported only."""
    imported = [_widget_from_entry(entry) for entry in entries]
    if strategy is MergeStrategy.REPLACE:
        return imported

    by_id = {entry["id"]: entry for entry in entries}
    merged = [
        merge_widget(widget, by_id[widget.id]) if widget.id in by_id else widget
        for widget in existing
    ]
    known = {widget.id for widget in existing}
    return merged + [widget for widget in imported if widget.id not in known]


# ----------------------------------------------------------------------
# Section importers
# ----------------------------------------------------------------------


def _import_api_keys(
    keys: dict[str, Any],
    selection: SectionSelection,
    secret_store: Optional[SecretStore],
    result: ImportResult,
) -> None:
    to_save = {
        provider: keys[provider]
        for provider in PROVIDER_NAMES
        if selection.items.get(provider) and isinstance(keys.get(provider), str) and keys[provider]
    }
    if not to_save:
        return

    try:
        if secret_store is None:
            raise VaultError("No secret store available for API keys")
        secret_store.save_api_keys(to_save)
    except (VaultError, ValueError) as e:
        result.failed[SECTION_API_KEYS] = [PROVIDER_LABELS[ModelProvider(p)] for p in to_save]
        result.add_error("API Keys", str(e))
        logger.warning("Failed to import API keys: %s", e)
        return

    result.imported[SECTION_API_KEYS] = {
        "count": len(to_save),
        "items": [PROVIDER_LABELS[ModelProvider(p)] for p in to_save],
    }


def _import_chats(
    entries: list[dict[str, Any]],
    current: Prefs,
    strategy: ChatMergeStrategy,
    result: ImportResult,
) -> None:
    try:
        imported = [ChatConversation.from_dict(entry) for entry in entries]
    except ENTRY_ERRORS as e:
        result.failed[SECTION_CHATS] = {"count": len(entries), "error": str(e)}
        result.add_error("Chats", str(e))
        return

    # Ephemeral conversations never belong in a backup
    imported = [c for c in imported if not c.is_ghost_mode]
    if not imported:
        return

    result.conversations = merge_conversations(current.conversations, imported, strategy)
    result.imported[SECTION_CHATS] = {"count": len(imported), "mode": strategy.value}


def _apply_search_engine(value: dict[str, Any], result: ImportResult) -> None:
    result.search_engine_id = str(value["engineId"])
    result.custom_search_engines = [
        SearchEngine.from_dict(e) for e in value.get("customEngines") or []
    ]


def _apply_chat_preferences(value: dict[str, Any], result: ImportResult) -> None:
    if "showChat" in value:
        result.show_chat = bool(value["showChat"])
    if "showVerifiedOrgModels" in value:
        result.show_verified_org_models = bool(value["showVerifiedOrgModels"])
    if value.get("chatModel"):
        result.chat_model = ChatModel.from_dict(value["chatModel"])


def _import_settings(
    settings: dict[str, Any],
    selection: SectionSelection,
    current: Prefs,
    link_strategy: MergeStrategy,
    result: ImportResult,
) -> None:
    appliers: dict[str, Callable[[Any], None]] = {
        SETTING_SEARCH_ENGINE: lambda v: _apply_search_engine(v, result),
        SETTING_QUICK_LINKS: lambda v: setattr(
            result,
            "quick_links",
            merge_quick_links(current.links, [QuickLink.from_dict(link) for link in v], link_strategy),
        ),
        SETTING_KEYBOARD_SHORTCUTS: lambda v: setattr(
            result, "shortcuts", [ShortcutBinding.from_dict(s) for s in v]
        ),
        SETTING_CHAT_PREFERENCES: lambda v: _apply_chat_preferences(v, result),
    }

    imported: list[str] = []
    failed: dict[str, str] = {}
    for name, apply in appliers.items():
        if not selection.items.get(name) or not settings.get(name):
            continue
        label = SETTING_LABELS[name]
        try:
            apply(settings[name])
            imported.append(label)
        except ENTRY_ERRORS as e:
            failed[label] = str(e)

    if imported:
        result.imported[SECTION_SETTINGS] = {"items": imported}
    if failed:
        result.failed[SECTION_SETTINGS] = {"items": list(failed), "errors": failed}
        for label, message in failed.items():
            result.add_error(label, message)


def _import_widgets(
    entries: list[dict[str, Any]],
    current: Prefs,
    strategy: MergeStrategy,
    result: ImportResult,
) -> None:
    valid: list[dict[str, Any]] = []
    failed: dict[str, str] = {}
    for entry in entries:
        try:
            WidgetConfig.from_dict(entry)
        except ENTRY_ERRORS as e:
            failed[str(entry.get("type") or entry.get("id") or "widget")] = str(e)
            continue
        valid.append(entry)

    if valid:
        result.widgets = merge_widgets(current.widgets, valid, strategy)

        # Widget-local data; in merge mode existing data wins
        replace = strategy is MergeStrategy.REPLACE
        for entry in valid:
            data = entry.get("data") or {}
            if entry["type"] == WidgetType.NOTES.value and data.get("notes"):
                if replace or not current.notes.get(entry["id"]):
                    result.notes[entry["id"]] = str(data["notes"])
            if entry["type"] == WidgetType.WEATHER.value and data.get("location"):
                if replace or not current.weather_location:
                    result.weather_location = dict(data["location"])

        result.imported[SECTION_WIDGETS] = {
            "count": len(valid),
            "items": [entry["type"] for entry in valid],
        }

    if failed:
        result.failed[SECTION_WIDGETS] = {"items": list(failed), "errors": failed}
        for label, message in failed.items():
            result.add_error(label, message)


# ----------------------------------------------------------------------
# Import
# ----------------------------------------------------------------------


def import_data_v2(
    doc: dict[str, Any],
    current_prefs: Prefs,
    options: ImportOptions,
    password: Optional[str] = None,
    secret_store: Optional[SecretStore] = None,
    backup_store: Optional[KeyValueStore] = None,
) -> ImportResult:
    """
    Apply the selected parts of a backup document.

    A selected section that was encrypted in the document, and whose item
    map is empty, imports every item it contains: item ids are unknown
    until the section is decrypted.

    Args:
        doc: Parsed 2.x backup document
        current_prefs: Preferences to merge into (not modified)
        options: Selection, merge strategies and backup flag
        password: Export password for encrypted sections
        secret_store: Destination for imported API keys
        backup_store: Where to snapshot ``current_prefs`` first

    Returns:
        ImportResult with the merged state and a per-section report

    Raises:
        ExportFormatError: ``doc`` is not a 2.x document
        IntegrityMismatchError: Plaintext contents fail the hash check
        PasswordRequiredError: Encrypted sections selected without a password
        DecryptionAuthenticationError: Wrong password or tampered section
    """
    if not validate_export_data_v2(doc):
        raise ExportFormatError()

    result = ImportResult()
    selection = options.selection
    strategies = options.merge_strategies

    if not verify_import_hash(doc):
        if not options.allow_integrity_mismatch:
            raise IntegrityMismatchError()
        logger.warning("Importing backup despite integrity mismatch")
        result.errors.append("Integrity check failed; imported anyway")

    encrypted = doc.get("encryptedSections") or {}
    needed = [name for name in SECTIONS if selection.is_selected(name) and name in encrypted]
    if needed:
        if not password:
            raise PasswordRequiredError()
        doc = decrypt_document(doc, password, needed)

    if options.create_backup and backup_store is not None:
        result.backup_key = create_backup(current_prefs, backup_store)

    contents = doc.get("contents") or {}

    if selection.is_selected(SECTION_API_KEYS) and contents.get(SECTION_API_KEYS):
        _import_api_keys(contents[SECTION_API_KEYS], selection.api_keys, secret_store, result)

    if selection.is_selected(SECTION_CHATS) and contents.get(SECTION_CHATS):
        entries = _selected_entries(
            contents[SECTION_CHATS],
            selection.chats,
            SECTION_CHATS in needed and not selection.chats.items,
        )
        if entries:
            _import_chats(entries, current_prefs, strategies.chats, result)

    if selection.is_selected(SECTION_SETTINGS) and contents.get(SECTION_SETTINGS):
        _import_settings(
            contents[SECTION_SETTINGS],
            selection.settings,
            current_prefs,
            strategies.quick_links,
            result,
        )

    if selection.is_selected(SECTION_WIDGETS) and contents.get(SECTION_WIDGETS):
        entries = _selected_entries(
            contents[SECTION_WIDGETS],
            selection.widgets,
            SECTION_WIDGETS in needed and not selection.widgets.items,
        )
        if entries:
            _import_widgets(entries, current_prefs, strategies.widgets, result)

    result.success = not result.failed
    logger.info(
        "Import finished: %d section(s) imported, %d failed",
        len(result.imported),
        len(result.failed),
    )
    return result
