"""Shared pytest fixtures for Horizen tests."""

from datetime import datetime, timedelta
from pathlib import Path

import pytest

TEST_PASSWORD = "Corr3ct-Horse"


@pytest.fixture(autouse=True)
def fast_vault_config():
    """Lower PBKDF2 iterations so key derivation is fast in tests."""
    from horizen.config.settings import configure
    from horizen.vault.config import VaultConfig, set_vault_config

    set_vault_config(VaultConfig(pbkdf2_iterations=1_000))
    yield
    set_vault_config(None)
    configure(None)


class FakeClock:
    """Controllable clock for session timeout tests."""

    def __init__(self, start: datetime = datetime(2025, 1, 15, 10, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, minutes: float) -> None:
        self.current += timedelta(minutes=minutes)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store():
    """Empty in-memory key/value storage."""
    from horizen.storage.kv import MemoryStore

    return MemoryStore()


@pytest.fixture
def session(clock: FakeClock):
    from horizen.vault.session import SessionManager

    return SessionManager(clock=clock)


@pytest.fixture
def vault(memory_store, session):
    """VaultManager over empty storage (protection never configured)."""
    from horizen.vault.vault_manager import VaultManager

    return VaultManager(memory_store, session=session)


@pytest.fixture
def password() -> str:
    return TEST_PASSWORD


@pytest.fixture
def unlocked_vault(vault):
    """VaultManager with a password set and the session unlocked."""
    vault.setup_password(TEST_PASSWORD)
    return vault


@pytest.fixture
def sample_prefs():
    """Preferences with conversations, links and one widget of each kind."""
    from horizen.models.prefs import (
        ChatConversation,
        ChatMessage,
        ChatModel,
        Prefs,
        QuickLink,
        SearchEngine,
        WidgetConfig,
    )

    return Prefs(
        widgets=[
            WidgetConfig(id="notes-1", type="notes", order=0, settings={"maxLength": 500}),
            WidgetConfig(
                id="habits-1",
                type="habitTracker",
                order=1,
                settings={"habits": [{"id": "h1", "name": "Read", "completedDates": []}]},
            ),
            WidgetConfig(
                id="ticker-1",
                type="ticker",
                order=2,
                settings={"symbols": [{"symbol": "AAPL", "type": "stock"}]},
            ),
            WidgetConfig(id="weather-1", type="weather", order=3, settings={"units": "metric"}),
            WidgetConfig(id="quote-1", type="quote", enabled=False, order=4),
        ],
        links=[
            QuickLink(id="gh", label="GitHub", href="https://github.com", icon="github"),
            QuickLink(id="mail", label="Mail", href="https://mail.example.com"),
        ],
        chat_model=ChatModel(provider="anthropic", model="claude-sonnet"),
        conversations=[
            ChatConversation(
                id="conv-a",
                title="Trip planning",
                messages=[ChatMessage(id="m1", role="user", content="Hello", timestamp=1)],
                created_at=1,
                updated_at=2,
            ),
            ChatConversation(id="conv-ghost", title="Secret", is_ghost_mode=True),
        ],
        search_engine_id="custom-1",
        custom_search_engines=[
            SearchEngine(id="custom-1", name="Mine", url="https://s.example.com/?q=%s", is_custom=True)
        ],
        notes={"notes-1": "# Groceries\n- milk"},
        weather_location={"name": "Lisbon", "lat": 38.72, "lon": -9.14, "country": "PT"},
    )


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Data directory for CLI tests."""
    path = tmp_path / "horizen"
    path.mkdir()
    return path
