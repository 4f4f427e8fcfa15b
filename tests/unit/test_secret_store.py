"""Unit tests for encrypted API key storage and key-regime migration."""

import json

import pytest


@pytest.fixture
def key():
    from horizen.vault.crypto import KeyDerivation

    return KeyDerivation.generate_key()


@pytest.fixture
def store(memory_store, key):
    """SecretStore whose active key is always available."""
    from horizen.vault.secret_store import SecretStore

    return SecretStore(memory_store, lambda: key)


class TestSecretStore:
    """Tests for reading and writing the API key blob."""

    def test_empty(self, store):
        assert store.get_api_keys() == {}
        assert not store.has_api_keys()
        assert not store.has_blob()

    def test_save_and_get(self, store, memory_store):
        """Test keys are stored encrypted and read back."""
        from horizen.vault.secret_store import API_KEYS_RECORD

        store.save_api_keys({"openai": "sk-open", "anthropic": "sk-ant"})

        record = memory_store.get(API_KEYS_RECORD)
        assert "sk-open" not in record
        assert set(json.loads(record)) == {"ciphertext", "iv"}
        assert store.get_api_keys() == {"openai": "sk-open", "anthropic": "sk-ant"}

    def test_save_merges(self, store):
        """Test unspecified providers keep their values."""
        store.save_api_keys({"openai": "sk-1"})
        store.save_api_keys({"gemini": "gm-1"})

        assert store.get_api_keys() == {"openai": "sk-1", "gemini": "gm-1"}

    def test_empty_value_removes(self, store):
        store.save_api_keys({"openai": "sk-1", "gemini": "gm-1"})
        store.save_api_keys({"openai": None})
        store.save_api_keys({"gemini": ""})

        assert store.get_api_keys() == {}

    def test_fresh_iv_on_each_save(self, store, memory_store):
        from horizen.vault.secret_store import API_KEYS_RECORD

        store.save_api_keys({"openai": "sk-1"})
        first = json.loads(memory_store.get(API_KEYS_RECORD))["iv"]
        store.save_api_keys({"openai": "sk-1"})
        second = json.loads(memory_store.get(API_KEYS_RECORD))["iv"]

        assert first != second

    def test_update_and_clear(self, store):
        store.update_api_key("anthropic", "sk-ant")
        assert store.has_api_keys()

        store.clear_api_key("anthropic")
        assert not store.has_api_keys()

    def test_unknown_provider(self, store):
        with pytest.raises(ValueError):
            store.update_api_key("mistral", "key")

    def test_locked_save_fails(self, memory_store):
        from horizen.vault.exceptions import SessionLockedError
        from horizen.vault.secret_store import SecretStore

        locked = SecretStore(memory_store, lambda: None)

        with pytest.raises(SessionLockedError):
            locked.save_api_keys({"openai": "sk-1"})

    def test_locked_get_returns_empty(self, store, memory_store):
        from horizen.vault.secret_store import SecretStore

        store.save_api_keys({"openai": "sk-1"})
        locked = SecretStore(memory_store, lambda: None)

        assert locked.get_api_keys() == {}

    def test_wrong_key_degrades_to_empty(self, store, memory_store):
        """Test a blob sealed under another key reads as no keys."""
        from horizen.vault.crypto import KeyDerivation
        from horizen.vault.secret_store import SecretStore

        store.save_api_keys({"openai": "sk-1"})
        other = SecretStore(memory_store, KeyDerivation.generate_key)

        assert other.get_api_keys() == {}

    def test_corrupted_blob_degrades_to_empty(self, store, memory_store):
        from horizen.vault.secret_store import API_KEYS_RECORD

        memory_store.set(API_KEYS_RECORD, "{garbage")

        assert store.get_api_keys() == {}

    def test_legacy_blob_layout(self, store, memory_store, key):
        """Test a blob in the single-string iv||ciphertext layout is readable."""
        from horizen.vault.crypto import AuthenticatedEncryption, encode_b64
        from horizen.vault.secret_store import API_KEYS_RECORD

        sealed = AuthenticatedEncryption(key).encrypt_json({"openai": "sk-old"})
        memory_store.set(API_KEYS_RECORD, encode_b64(sealed.iv + sealed.ciphertext))

        assert store.get_api_keys() == {"openai": "sk-old"}

    def test_reencrypt(self, store, key):
        from horizen.vault.crypto import KeyDerivation
        from horizen.vault.secret_store import SecretStore

        store.save_api_keys({"openai": "sk-1", "gemini": "gm-1"})
        new_key = KeyDerivation.generate_key()

        assert store.reencrypt_api_keys(key, new_key) == 2

        rekeyed = SecretStore(store.storage, lambda: new_key)
        assert rekeyed.get_api_keys() == {"openai": "sk-1", "gemini": "gm-1"}
        assert store.get_api_keys() == {}

    def test_reencrypt_without_blob(self, store, key):
        from horizen.vault.crypto import KeyDerivation

        assert store.reencrypt_api_keys(key, KeyDerivation.generate_key()) == 0
        assert not store.has_blob()

    def test_reencrypt_wrong_old_key(self, store):
        from horizen.vault.crypto import KeyDerivation
        from horizen.vault.exceptions import DecryptionAuthenticationError

        store.save_api_keys({"openai": "sk-1"})

        with pytest.raises(DecryptionAuthenticationError):
            store.reencrypt_api_keys(KeyDerivation.generate_key(), KeyDerivation.generate_key())

    def test_reencrypt_without_old_key_discards(self, store):
        from horizen.vault.crypto import KeyDerivation
        from horizen.vault.secret_store import SecretStore

        store.save_api_keys({"openai": "sk-1"})
        new_key = KeyDerivation.generate_key()

        assert store.reencrypt_api_keys(None, new_key) == 0
        assert SecretStore(store.storage, lambda: new_key).get_api_keys() == {}


class TestLegacyKey:
    """Tests for the non-password device key."""

    def test_get_or_create(self, memory_store):
        from horizen.vault.secret_store import get_or_create_legacy_key, load_legacy_key

        assert load_legacy_key(memory_store) is None

        created = get_or_create_legacy_key(memory_store)

        assert load_legacy_key(memory_store) == created
        assert get_or_create_legacy_key(memory_store) == created

    def test_unreadable_legacy_key(self, memory_store):
        from horizen.vault.secret_store import LEGACY_KEY_RECORD, load_legacy_key

        memory_store.set(LEGACY_KEY_RECORD, "dG9vIHNob3J0")  # "too short"

        assert load_legacy_key(memory_store) is None


class TestMigration:
    """Tests for moving keys between storage regimes."""

    def test_migrate_from_plaintext(self, store, memory_store):
        from horizen.vault.migration import migrate_from_plaintext
        from horizen.vault.secret_store import LEGACY_PLAINTEXT_RECORD

        memory_store.set(LEGACY_PLAINTEXT_RECORD, json.dumps({"openai": "sk-plain", "anthropic": ""}))

        assert migrate_from_plaintext(store)
        assert memory_store.get(LEGACY_PLAINTEXT_RECORD) is None
        assert store.get_api_keys() == {"openai": "sk-plain"}

    def test_plaintext_removed_when_encrypted_exists(self, store, memory_store):
        from horizen.vault.migration import migrate_from_plaintext
        from horizen.vault.secret_store import LEGACY_PLAINTEXT_RECORD

        store.save_api_keys({"openai": "sk-current"})
        memory_store.set(LEGACY_PLAINTEXT_RECORD, json.dumps({"openai": "sk-stale"}))

        assert not migrate_from_plaintext(store)
        assert memory_store.get(LEGACY_PLAINTEXT_RECORD) is None
        assert store.get_api_keys() == {"openai": "sk-current"}

    def test_invalid_plaintext_left_in_place(self, store, memory_store):
        from horizen.vault.migration import migrate_from_plaintext
        from horizen.vault.secret_store import LEGACY_PLAINTEXT_RECORD

        memory_store.set(LEGACY_PLAINTEXT_RECORD, "not json")

        assert not migrate_from_plaintext(store)
        assert memory_store.get(LEGACY_PLAINTEXT_RECORD) == "not json"

    def test_nothing_to_migrate(self, store):
        from horizen.vault.migration import migrate_from_plaintext

        assert not migrate_from_plaintext(store)

    def test_migrate_to_device_key(self, store, memory_store, key):
        from horizen.vault.migration import migrate_to_device_key
        from horizen.vault.secret_store import SecretStore, load_legacy_key

        store.save_api_keys({"gemini": "gm-1"})

        device_key = migrate_to_device_key(store, key)

        assert load_legacy_key(memory_store) == device_key
        assert SecretStore(memory_store, lambda: device_key).get_api_keys() == {"gemini": "gm-1"}

    def test_migrate_to_device_key_with_wrong_key_deletes(self, store, memory_store):
        from horizen.vault.crypto import KeyDerivation
        from horizen.vault.migration import migrate_to_device_key

        store.save_api_keys({"gemini": "gm-1"})

        migrate_to_device_key(store, KeyDerivation.generate_key())

        assert not store.has_blob()

    def test_migrate_to_password_key(self, memory_store):
        from horizen.vault.crypto import KeyDerivation
        from horizen.vault.migration import migrate_to_password_key
        from horizen.vault.secret_store import (
            SecretStore,
            get_or_create_legacy_key,
            load_legacy_key,
        )

        device_key = get_or_create_legacy_key(memory_store)
        SecretStore(memory_store, lambda: device_key).save_api_keys({"openai": "sk-1"})
        password_key = KeyDerivation.generate_key()

        assert migrate_to_password_key(SecretStore(memory_store, lambda: None), device_key, password_key) == 1

        assert load_legacy_key(memory_store) is None
        assert SecretStore(memory_store, lambda: password_key).get_api_keys() == {"openai": "sk-1"}
