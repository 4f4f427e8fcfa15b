"""Unit tests for reading 1.0.0 backup files."""

import json

import pytest


@pytest.fixture
def v1_doc():
    """A plaintext 1.0.0 backup."""
    return {
        "version": "1.0.0",
        "timestamp": 1_700_000_000_000,
        "preferences": {
            "widgets": [
                {
                    "id": "habits-1",
                    "type": "habitTracker",
                    "enabled": True,
                    "order": 0,
                    "settings": {"habits": [{"id": "h1", "name": "Read"}]},
                },
                {"id": "weather-1", "type": "weather", "enabled": True, "order": 1, "settings": {}},
            ],
            "links": [{"id": "gh", "label": "GitHub", "href": "https://github.com", "icon": "github"}],
            "searchEngineId": "google",
            "showChat": False,
            "chatModel": {"provider": "openai", "model": "gpt-4o"},
        },
        "apiKeys": {"openai": "sk-old", "anthropic": "", "mistral": "ignored"},
        "conversations": [
            {"id": "c1", "title": "Old chat", "messages": []},
            {"id": "c2", "title": "Ghost", "messages": [], "isGhostMode": True},
        ],
        "weatherLocation": {"name": "Porto", "lat": 41.15, "lon": -8.61},
        "shortcuts": [{"action": "focusSearch", "key": {"key": "/"}}],
    }


def _encrypt_v1(doc, password):
    from horizen.vault.crypto import (
        PBKDF2_ITERATIONS,
        AuthenticatedEncryption,
        KeyDerivation,
        encode_b64,
    )

    salt = KeyDerivation.generate_salt()
    key = KeyDerivation.derive_key(password, salt, PBKDF2_ITERATIONS)
    sealed = AuthenticatedEncryption(key).encrypt_json(doc)
    return {
        "version": doc["version"],
        "timestamp": doc["timestamp"],
        "encrypted": True,
        "salt": encode_b64(salt),
        "iv": encode_b64(sealed.iv),
        "data": encode_b64(sealed.ciphertext),
    }


class TestLegacyDetection:
    """Tests for recognising 1.x documents."""

    def test_is_v1(self, v1_doc):
        from horizen.backup.legacy import is_v1_document

        assert is_v1_document(v1_doc)
        assert not is_v1_document({"version": "2.0.0", "exportedAt": "x", "encrypted": False})
        assert not is_v1_document({"version": "1.0.0"})

    def test_validate(self, v1_doc):
        from horizen.backup.legacy import validate_v1_document

        assert validate_v1_document(v1_doc)
        assert not validate_v1_document({**v1_doc, "conversations": [{"id": 1}]})
        assert not validate_v1_document({**v1_doc, "weatherLocation": {"name": "X"}})
        assert not validate_v1_document({**v1_doc, "apiKeys": {"openai": 5}})


class TestUpgrade:
    """Tests for converting 1.x documents into 2.x contents."""

    def test_plaintext_upgrade(self, v1_doc):
        from horizen.backup.exporter import validate_export_data_v2, verify_import_hash
        from horizen.backup.legacy import upgrade_v1_document

        doc = upgrade_v1_document(v1_doc)
        contents = doc["contents"]

        assert validate_export_data_v2(doc)
        assert verify_import_hash(doc)
        assert doc["exportedAt"] == "2023-11-14T22:13:20.000Z"
        assert contents["apiKeys"] == {"openai": "sk-old"}
        assert [c["id"] for c in contents["chats"]] == ["c1"]
        assert contents["settings"]["searchEngine"]["engineId"] == "google"
        assert contents["settings"]["keyboardShortcuts"][0]["action"] == "focusSearch"
        assert contents["settings"]["chatPreferences"]["showChat"] is False

    def test_widget_data(self, v1_doc):
        from horizen.backup.legacy import upgrade_v1_document

        widgets = {w["id"]: w for w in upgrade_v1_document(v1_doc)["contents"]["widgets"]}

        assert widgets["habits-1"]["data"]["habits"][0]["id"] == "h1"
        assert widgets["weather-1"]["data"]["location"]["name"] == "Porto"

    def test_invalid(self, v1_doc):
        from horizen.backup.legacy import upgrade_v1_document
        from horizen.vault.exceptions import ExportFormatError

        with pytest.raises(ExportFormatError):
            upgrade_v1_document({**v1_doc, "shortcuts": "nope"})
        with pytest.raises(ExportFormatError):
            upgrade_v1_document({"version": "2.0.0"})

    def test_encrypted_needs_password(self, v1_doc):
        from horizen.backup.legacy import upgrade_v1_document
        from horizen.vault.exceptions import PasswordRequiredError

        with pytest.raises(PasswordRequiredError):
            upgrade_v1_document({**v1_doc, "encrypted": True})

    def test_encrypted_upgrade(self, v1_doc):
        from horizen.backup.legacy import load_backup_document

        text = json.dumps(_encrypt_v1(v1_doc, "old-pass"))

        doc = load_backup_document(text, "old-pass")

        assert doc["encrypted"] is False
        assert doc["contents"]["apiKeys"] == {"openai": "sk-old"}

    def test_encrypted_wrong_password(self, v1_doc):
        from horizen.backup.legacy import load_backup_document
        from horizen.vault.exceptions import DecryptionAuthenticationError

        text = json.dumps(_encrypt_v1(v1_doc, "old-pass"))

        with pytest.raises(DecryptionAuthenticationError):
            load_backup_document(text, "wrong")


class TestLoadBackupDocument:
    """Tests for reading backup files of either generation."""

    def test_v2_passthrough(self, sample_prefs):
        from horizen.backup.exporter import export_data_v2
        from horizen.backup.legacy import load_backup_document
        from horizen.backup.models import SelectionTree

        text = export_data_v2(sample_prefs, SelectionTree.for_prefs(sample_prefs, sections=("chats",)))

        assert load_backup_document(text) == json.loads(text)

    def test_not_json(self):
        from horizen.backup.legacy import load_backup_document
        from horizen.vault.exceptions import ExportFormatError

        with pytest.raises(ExportFormatError):
            load_backup_document("<html>")

    def test_v1_import(self, v1_doc, sample_prefs):
        """Test an upgraded 1.x file goes through the regular merge engine."""
        from horizen.backup.exporter import get_available_sections
        from horizen.backup.importer import import_data_v2
        from horizen.backup.legacy import load_backup_document
        from horizen.backup.models import ImportOptions

        doc = load_backup_document(json.dumps(v1_doc))
        selection = get_available_sections(doc).select_all()
        selection.api_keys = None

        result = import_data_v2(doc, sample_prefs, ImportOptions(selection))
        updated = result.apply(sample_prefs)

        assert [c.id for c in updated.conversations] == ["conv-a", "conv-ghost", "c1"]
        assert updated.search_engine_id == "google"
        assert updated.chat_model.model == "gpt-4o"
