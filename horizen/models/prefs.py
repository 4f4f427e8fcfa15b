"""Data models for start-page preferences.

These mirror the preference object the start page persists on-device.
Serialization uses the app's camelCase field names so exported documents
stay compatible with it.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional


class ModelProvider(Enum):
    """LLM providers that need an API key."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


PROVIDER_LABELS = {
    ModelProvider.OPENAI: "OpenAI",
    ModelProvider.ANTHROPIC: "Anthropic",
    ModelProvider.GEMINI: "Google Gemini",
}

PROVIDER_NAMES = tuple(p.value for p in ModelProvider)


class WidgetType(Enum):
    """Known widget kinds."""

    WEATHER = "weather"
    NOTES = "notes"
    QUOTE = "quote"
    TICKER = "ticker"
    POMODORO = "pomodoro"
    HABIT_TRACKER = "habitTracker"


@dataclass
class QuickLink:
    """A shortcut tile on the start page."""

    id: str
    label: str
    href: str
    icon: str = "globe"

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "label": self.label, "href": self.href, "icon": self.icon}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QuickLink":
        return cls(
            id=data["id"],
            label=data.get("label", ""),
            href=data.get("href", ""),
            icon=data.get("icon", "globe"),
        )


@dataclass
class SearchEngine:
    """A built-in or user-defined search engine."""

    id: str
    name: str
    url: str
    is_custom: bool = False

    def to_dict(self) -> dict[str, Any]:
        result = {"id": self.id, "name": self.name, "url": self.url}
        if self.is_custom:
            result["isCustom"] = True
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SearchEngine":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            url=data.get("url", ""),
            is_custom=bool(data.get("isCustom", False)),
        )


@dataclass
class ChatModel:
    """Provider/model pair used for chat."""

    provider: str = ModelProvider.OPENAI.value
    model: str = "gpt-4o-mini"

    def to_dict(self) -> dict[str, Any]:
        return {"provider": self.provider, "model": self.model}

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "ChatModel":
        if not data:
            return cls()
        return cls(
            provider=data.get("provider", ModelProvider.OPENAI.value),
            model=data.get("model", "gpt-4o-mini"),
        )


@dataclass
class ChatMessage:
    """One message in a conversation."""

    id: str
    role: str
    content: str
    timestamp: int
    images: Optional[list[str]] = None  # base64 data URIs

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.images:
            result["images"] = list(self.images)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChatMessage":
        return cls(
            id=data["id"],
            role=data.get("role", "user"),
            content=data.get("content", ""),
            timestamp=int(data.get("timestamp", 0)),
            images=data.get("images"),
        )


@dataclass
class ChatConversation:
    """A chat transcript.

    Ghost-mode conversations are ephemeral and never leave the device.
    """

    id: str
    title: str
    model: ChatModel = field(default_factory=ChatModel)
    messages: list[ChatMessage] = field(default_factory=list)
    created_at: int = 0
    updated_at: int = 0
    is_ghost_mode: bool = False

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "model": self.model.to_dict(),
            "messages": [m.to_dict() for m in self.messages],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.is_ghost_mode:
            result["isGhostMode"] = True
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChatConversation":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            model=ChatModel.from_dict(data.get("model")),
            messages=[ChatMessage.from_dict(m) for m in data.get("messages", [])],
            created_at=int(data.get("createdAt", 0)),
            updated_at=int(data.get("updatedAt", 0)),
            is_ghost_mode=bool(data.get("isGhostMode", False)),
        )


@dataclass
class WidgetConfig:
    """A widget on the start page with its type-specific settings."""

    id: str
    type: str
    enabled: bool = True
    order: int = 0
    settings: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "enabled": self.enabled,
            "order": self.order,
            "settings": dict(self.settings),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WidgetConfig":
        return cls(
            id=data["id"],
            type=data["type"],
            enabled=bool(data.get("enabled", True)),
            order=int(data.get("order", 0)),
            settings=dict(data.get("settings") or {}),
        )


@dataclass
class ShortcutBinding:
    """A keyboard shortcut mapped to an app action."""

    action: str
    key: dict[str, Any]
    description: str = ""
    category: str = "navigation"

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "key": dict(self.key),
            "description": self.description,
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShortcutBinding":
        return cls(
            action=data["action"],
            key=dict(data.get("key") or {}),
            description=data.get("description", ""),
            category=data.get("category", "navigation"),
        )


DEFAULT_SHORTCUTS = [
    ShortcutBinding("focusSearch", {"key": "/"}, "Focus search bar", "navigation"),
    ShortcutBinding("escape", {"key": "Escape"}, "Close dialogs/unfocus", "navigation"),
    ShortcutBinding("openChat", {"key": "k", "ctrlKey": True}, "Toggle chat sidebar", "chat"),
    ShortcutBinding("newChat", {"key": "n", "ctrlKey": True, "shiftKey": True}, "Start new chat", "chat"),
    ShortcutBinding("openSettings", {"key": ",", "ctrlKey": True}, "Open settings", "interface"),
]


def default_shortcuts() -> list[ShortcutBinding]:
    return [ShortcutBinding.from_dict(s.to_dict()) for s in DEFAULT_SHORTCUTS]


@dataclass
class Prefs:
    """The full preference object the start page persists."""

    widgets: list[WidgetConfig] = field(default_factory=list)
    show_chat: bool = True
    show_quick_links: bool = True
    show_verified_org_models: bool = False
    links: list[QuickLink] = field(default_factory=list)
    chat_model: ChatModel = field(default_factory=ChatModel)
    conversations: list[ChatConversation] = field(default_factory=list)
    search_engine_id: str = "duckduckgo"
    custom_search_engines: list[SearchEngine] = field(default_factory=list)
    shortcuts: list[ShortcutBinding] = field(default_factory=default_shortcuts)

    # Widget-local data kept outside the widget configs
    notes: dict[str, str] = field(default_factory=dict)  # widget id -> markdown
    weather_location: Optional[dict[str, Any]] = None

    def copy(self, **changes: Any) -> "Prefs":
        """Return a shallow copy with ``changes`` applied."""
        return replace(self, **changes)

    def find_widget(self, widget_id: str) -> Optional[WidgetConfig]:
        for widget in self.widgets:
            if widget.id == widget_id:
                return widget
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for YAML/JSON serialization."""
        return {
            "widgets": [w.to_dict() for w in self.widgets],
            "showChat": self.show_chat,
            "showQuickLinks": self.show_quick_links,
            "showVerifiedOrgModels": self.show_verified_org_models,
            "links": [link.to_dict() for link in self.links],
            "chatModel": self.chat_model.to_dict(),
            "conversations": [c.to_dict() for c in self.conversations],
            "searchEngineId": self.search_engine_id,
            "customSearchEngines": [e.to_dict() for e in self.custom_search_engines],
            "shortcuts": [s.to_dict() for s in self.shortcuts],
            "notes": dict(self.notes),
            "weatherLocation": self.weather_location,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Prefs":
        """Create from dictionary, filling defaults for missing fields."""
        shortcuts = data.get("shortcuts")
        return cls(
            widgets=[WidgetConfig.from_dict(w) for w in data.get("widgets", [])],
            show_chat=bool(data.get("showChat", True)),
            show_quick_links=bool(data.get("showQuickLinks", True)),
            show_verified_org_models=bool(data.get("showVerifiedOrgModels", False)),
            links=[QuickLink.from_dict(link) for link in data.get("links", [])],
            chat_model=ChatModel.from_dict(data.get("chatModel")),
            conversations=[ChatConversation.from_dict(c) for c in data.get("conversations", [])],
            search_engine_id=data.get("searchEngineId", "duckduckgo"),
            custom_search_engines=[
                SearchEngine.from_dict(e) for e in data.get("customSearchEngines", [])
            ],
            shortcuts=(
                [ShortcutBinding.from_dict(s) for s in shortcuts]
                if shortcuts is not None
                else default_shortcuts()
            ),
            notes=dict(data.get("notes") or {}),
            weather_location=data.get("weatherLocation"),
        )
