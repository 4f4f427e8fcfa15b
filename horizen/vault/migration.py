"""Migration tools for the secret store.

Moves the API-key blob between key regimes:
- plaintext (pre-encryption) storage -> encrypted blob
- legacy device key -> password-derived key (enabling protection)
- password-derived key -> fresh device key (disabling protection)
"""

import json
from typing import Optional

from ..storage.kv import KeyValueStore
from ..utils.logging import get_logger
from .crypto import DerivedKey, KeyDerivation
from .exceptions import DecryptionAuthenticationError, VaultCorruptedError
from .secret_store import (
    LEGACY_PLAINTEXT_RECORD,
    SecretStore,
    clear_legacy_key,
    load_legacy_key,
    save_legacy_key,
)

logger = get_logger(__name__)


def migrate_from_plaintext(secret_store: SecretStore) -> bool:
    """
    Encrypt API keys still held in the old plaintext record.

    If an encrypted blob already exists the plaintext copy is simply
    removed. Failures are logged and leave the plaintext record in place.

    Returns:
        True if keys were migrated into the encrypted blob
    """
    storage = secret_store.storage
    old_data = storage.get(LEGACY_PLAINTEXT_RECORD)
    if not old_data:
        return False

    if secret_store.has_blob():
        storage.delete(LEGACY_PLAINTEXT_RECORD)
        logger.info("Removed stale plaintext API keys (encrypted copy exists)")
        return False

    try:
        old_keys = json.loads(old_data)
        if not isinstance(old_keys, dict):
            raise ValueError("plaintext API keys are not a mapping")
        secret_store.save_api_keys(
            {k: v for k, v in old_keys.items() if isinstance(v, str) and v}
        )
    except (ValueError, json.JSONDecodeError) as e:
        logger.error("Failed to migrate API keys: %s", e)
        return False

    storage.delete(LEGACY_PLAINTEXT_RECORD)
    logger.info("Successfully migrated API keys to encrypted storage")
    return True


def migrate_to_password_key(
    secret_store: SecretStore,
    old_key: Optional[DerivedKey],
    new_key: DerivedKey,
) -> int:
    """
    Re-seal the blob under a freshly derived password key.

    ``old_key`` is the legacy device key (or the previous password key when
    protection was already on). The legacy key is discarded afterwards.

    Returns:
        Number of provider keys carried over
    """
    count = secret_store.reencrypt_api_keys(old_key, new_key)
    clear_legacy_key(secret_store.storage)
    return count


def migrate_to_device_key(
    secret_store: SecretStore,
    current_key: Optional[DerivedKey],
) -> DerivedKey:
    """
    Re-seal the blob under a non-password device key.

    When ``current_key`` is missing or fails to authenticate the blob, the
    blob is deleted: without the password it can never be read again.

    Returns:
        The device key now in use
    """
    storage: KeyValueStore = secret_store.storage
    device_key = load_legacy_key(storage) or KeyDerivation.generate_key()

    if secret_store.has_blob():
        if current_key is None:
            logger.warning("Session locked while disabling protection; deleting encrypted API keys")
            secret_store.delete_blob()
        else:
            try:
                secret_store.reencrypt_api_keys(current_key, device_key)
            except (DecryptionAuthenticationError, VaultCorruptedError) as e:
                logger.warning("Could not decrypt API keys (%s); deleting them", e)
                secret_store.delete_blob()

    save_legacy_key(storage, device_key)
    return device_key
