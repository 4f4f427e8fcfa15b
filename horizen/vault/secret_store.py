"""Encrypted storage for provider API keys.

All provider credentials live in one AES-GCM envelope. The key used to
seal it comes from a key provider: the password-derived session key when
protection is enabled, otherwise a stored non-password ("legacy") key.

Security Note:
    Never log key values. Only provider names and counts are logged.
"""

from typing import Callable, Mapping, Optional

from ..models.prefs import PROVIDER_NAMES
from ..storage.kv import KeyValueStore
from ..utils.logging import get_logger
from .crypto import (
    AuthenticatedEncryption,
    DerivedKey,
    KeyDerivation,
    SealedData,
    decode_b64,
    encode_b64,
)
from .exceptions import DecryptionAuthenticationError, SessionLockedError, VaultCorruptedError

logger = get_logger(__name__)

# Storage keys
API_KEYS_RECORD = "startpage:api:keys:encrypted"
LEGACY_KEY_RECORD = "startpage:crypto:key"
LEGACY_PLAINTEXT_RECORD = "startpage:api:keys"

KeyProvider = Callable[[], Optional[DerivedKey]]


def load_legacy_key(storage: KeyValueStore) -> Optional[DerivedKey]:
    """Load the stored non-password key, or None if absent or unreadable."""
    stored = storage.get(LEGACY_KEY_RECORD)
    if not stored:
        return None
    try:
        return DerivedKey(decode_b64(stored))
    except (VaultCorruptedError, ValueError) as e:
        logger.error("Failed to load legacy encryption key: %s", e)
        return None


def save_legacy_key(storage: KeyValueStore, key: DerivedKey) -> None:
    """Persist a non-password key."""
    storage.set(LEGACY_KEY_RECORD, encode_b64(key.export_raw()))


def clear_legacy_key(storage: KeyValueStore) -> None:
    """Discard the non-password key."""
    storage.delete(LEGACY_KEY_RECORD)


def get_or_create_legacy_key(storage: KeyValueStore) -> DerivedKey:
    """Load the non-password key, generating and storing one on first use."""
    key = load_legacy_key(storage)
    if key is None:
        key = KeyDerivation.generate_key()
        save_legacy_key(storage, key)
        logger.info("Generated new device encryption key")
    return key


def _validate_provider(provider: str) -> None:
    if provider not in PROVIDER_NAMES:
        raise ValueError(
            f"Unknown provider: {provider!r} (expected one of {', '.join(PROVIDER_NAMES)})"
        )


class SecretStore:
    """
    Reads and writes the encrypted provider-credential blob.

    Usage:
        store = SecretStore(storage, vault.get_active_key)
        store.update_api_key("openai", "sk-...")
        keys = store.get_api_keys()
    """

    def __init__(self, storage: KeyValueStore, key_provider: KeyProvider):
        """
        Args:
            storage: Where the blob is persisted
            key_provider: Returns the active key, or None when locked
        """
        self.storage = storage
        self._key_provider = key_provider

    # ------------------------------------------------------------------
    # Blob access
    # ------------------------------------------------------------------

    def has_blob(self) -> bool:
        return bool(self.storage.get(API_KEYS_RECORD))

    def read_blob(self) -> Optional[SealedData]:
        """Load the persisted envelope, or None if there is none."""
        record = self.storage.get(API_KEYS_RECORD)
        if not record:
            return None
        return SealedData.from_record(record)

    def write_blob(self, sealed: SealedData) -> None:
        self.storage.set(API_KEYS_RECORD, sealed.to_json())

    def delete_blob(self) -> None:
        self.storage.delete(API_KEYS_RECORD)

    def _decrypt_with(self, key: DerivedKey) -> dict[str, str]:
        """Decrypt the current blob under ``key`` (empty if there is no blob)."""
        blob = self.read_blob()
        if blob is None:
            return {}
        data = AuthenticatedEncryption(key).decrypt_json(blob)
        if not isinstance(data, dict):
            raise VaultCorruptedError("API key payload is not a mapping")
        return {k: v for k, v in data.items() if isinstance(v, str) and v}

    def authenticates(self, key: DerivedKey) -> bool:
        """Check that ``key`` opens the current blob."""
        try:
            self._decrypt_with(key)
            return True
        except (DecryptionAuthenticationError, VaultCorruptedError):
            return False

    def _encrypt_with(self, key: DerivedKey, keys: Mapping[str, str]) -> None:
        self.write_blob(AuthenticatedEncryption(key).encrypt_json(dict(keys)))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_api_keys(self) -> dict[str, str]:
        """
        Decrypt and return the provider -> key mapping.

        Returns an empty mapping when there is no blob, when the session is
        locked, or when the blob cannot be decrypted.
        """
        if not self.has_blob():
            return {}

        key = self._key_provider()
        if key is None:
            return {}

        try:
            return self._decrypt_with(key)
        except (DecryptionAuthenticationError, VaultCorruptedError) as e:
            logger.warning("Failed to decrypt API keys, treating as empty: %s", e)
            return {}

    def save_api_keys(self, partial: Mapping[str, Optional[str]]) -> dict[str, str]:
        """
        Merge ``partial`` into the stored mapping and re-encrypt it.

        Providers not named in ``partial`` keep their value; a None or empty
        value removes that provider.

        Returns:
            The mapping now stored

        Raises:
            SessionLockedError: No key is available
            DecryptionAuthenticationError: The existing blob does not
                authenticate under the active key
        """
        for provider in partial:
            _validate_provider(provider)

        key = self._key_provider()
        if key is None:
            raise SessionLockedError()

        current = self._decrypt_with(key)
        for provider, value in partial.items():
            if value:
                current[provider] = value
            else:
                current.pop(provider, None)

        self._encrypt_with(key, current)
        logger.info("Saved API keys for %d provider(s)", len(current))
        return current

    def update_api_key(self, provider: str, value: str) -> None:
        """Set one provider's key."""
        _validate_provider(provider)
        self.save_api_keys({provider: value})

    def clear_api_key(self, provider: str) -> None:
        """Remove one provider's key."""
        _validate_provider(provider)
        self.save_api_keys({provider: None})

    def has_api_keys(self) -> bool:
        """Check whether any provider key is readable right now."""
        return bool(self.get_api_keys())

    def reencrypt_api_keys(self, old_key: Optional[DerivedKey], new_key: DerivedKey) -> int:
        """
        Move the blob from one key to another.

        Args:
            old_key: Key the blob is currently sealed with; None means the
                current contents are unreadable and are treated as empty
            new_key: Key to seal the blob with

        Returns:
            Number of provider keys carried over

        Raises:
            DecryptionAuthenticationError: ``old_key`` does not authenticate
        """
        if not self.has_blob():
            logger.info("No API keys to re-encrypt")
            return 0

        if old_key is None:
            logger.warning("No key available for existing API keys; they will be discarded")
            keys: dict[str, str] = {}
        else:
            keys = self._decrypt_with(old_key)

        self._encrypt_with(new_key, keys)
        logger.info("Re-encrypted API keys for %d provider(s)", len(keys))
        return len(keys)
