"""Preference data models."""

from .prefs import (
    DEFAULT_SHORTCUTS,
    PROVIDER_LABELS,
    PROVIDER_NAMES,
    ChatConversation,
    ChatMessage,
    ChatModel,
    ModelProvider,
    Prefs,
    QuickLink,
    SearchEngine,
    ShortcutBinding,
    WidgetConfig,
    WidgetType,
    default_shortcuts,
)

__all__ = [
    "ModelProvider",
    "PROVIDER_LABELS",
    "PROVIDER_NAMES",
    "WidgetType",
    "QuickLink",
    "SearchEngine",
    "ChatModel",
    "ChatMessage",
    "ChatConversation",
    "WidgetConfig",
    "ShortcutBinding",
    "DEFAULT_SHORTCUTS",
    "default_shortcuts",
    "Prefs",
]
