"""Vault manager for password setup, unlock and protection changes.

Ties together the persisted SecurityConfig, the in-memory session and the
secret store, and implements the protection state machine:

    NO_CONFIG --setup--> UNLOCKED --lock/timeout--> LOCKED --unlock--> UNLOCKED
    NO_CONFIG / LOCKED / UNLOCKED --disable--> DISABLED
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..storage.kv import KeyValueStore, StagedStore
from ..utils.logging import get_logger
from .config import VaultConfig, get_vault_config
from .crypto import DerivedKey, KeyDerivation, SealedData, decode_b64, encode_b64
from .exceptions import (
    SessionLockedError,
    VaultCorruptedError,
    WeakPasswordError,
)
from .migration import migrate_to_device_key, migrate_to_password_key
from .password import validate_password
from .secret_store import (
    LEGACY_PLAINTEXT_RECORD,
    SecretStore,
    clear_legacy_key,
    get_or_create_legacy_key,
    load_legacy_key,
)
from .session import SessionManager

logger = get_logger(__name__)

# Storage keys
SECURITY_CONFIG_RECORD = "startpage:security:config"
VERIFICATION_RECORD = "startpage:security:verification"


class SecurityState(Enum):
    """Protection state of the device."""

    NO_CONFIG = "no_config"
    DISABLED = "disabled"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


@dataclass
class SecurityConfig:
    """
    Persisted protection settings.

    Contains only the salt and parameters needed to re-derive the key;
    the password itself is never stored.
    """

    enabled: bool
    salt: bytes = field(default_factory=bytes)
    iterations: int = 600_000
    session_timeout_minutes: int = 30

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "enabled": self.enabled,
            "salt": encode_b64(self.salt),
            "iterations": self.iterations,
            "sessionTimeout": self.session_timeout_minutes,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SecurityConfig":
        return cls(
            enabled=bool(data["enabled"]),
            salt=decode_b64(data.get("salt", "")),
            iterations=int(data.get("iterations", 600_000)),
            session_timeout_minutes=int(data.get("sessionTimeout", 30)),
        )

    @classmethod
    def from_json(cls, json_str: str) -> "SecurityConfig":
        try:
            return cls.from_dict(json.loads(json_str))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise VaultCorruptedError(f"Invalid security config: {e}")


class VaultManager:
    """
    Manages password protection for the on-device secret store.

    Usage:
        vault = VaultManager(storage)

        if vault.state is SecurityState.NO_CONFIG:
            vault.setup_password(password)
        elif vault.state is SecurityState.LOCKED:
            vault.unlock(password)

        vault.secrets.update_api_key("openai", "sk-...")
    """

    def __init__(
        self,
        storage: KeyValueStore,
        session: Optional[SessionManager] = None,
        config: Optional[VaultConfig] = None,
    ):
        """
        Args:
            storage: Persistent key/value storage
            session: Session to hold the derived key (new one if omitted)
            config: Vault configuration (uses global if not provided)
        """
        self.storage = storage
        self.session = session or SessionManager()
        self.config = config or get_vault_config()
        self.secrets = SecretStore(storage, self.get_active_key)

    # ------------------------------------------------------------------
    # Config records
    # ------------------------------------------------------------------

    def load_security_config(self) -> Optional[SecurityConfig]:
        """Load the SecurityConfig, or None if protection was never configured."""
        stored = self.storage.get(SECURITY_CONFIG_RECORD)
        if not stored:
            return None
        return SecurityConfig.from_json(stored)

    def save_security_config(self, config: SecurityConfig) -> None:
        self.storage.set(SECURITY_CONFIG_RECORD, config.to_json())

    def _session_timeout(self, config: Optional[SecurityConfig]) -> int:
        if config is not None:
            return config.session_timeout_minutes
        return self.config.session_timeout_minutes

    def _store_verification(self, key: DerivedKey, storage: Optional[KeyValueStore] = None) -> None:
        token = KeyDerivation.create_verification_token(key)
        (storage or self.storage).set(VERIFICATION_RECORD, token.to_json())

    def _verify_key(self, key: DerivedKey) -> bool:
        """
        Check a candidate key against stored ciphertext.

        The secret blob is tried first, then the verification token. With
        nothing to verify against, the key is accepted and a new token is
        written for next time.
        """
        try:
            blob = self.secrets.read_blob()
        except VaultCorruptedError as e:
            logger.warning("Secret blob unreadable during unlock: %s", e)
            blob = None

        if blob is not None:
            return self.secrets.authenticates(key)

        stored = self.storage.get(VERIFICATION_RECORD)
        if stored:
            try:
                token = SealedData.from_record(stored)
            except VaultCorruptedError as e:
                logger.warning("Verification token unreadable: %s", e)
            else:
                return KeyDerivation.verify_key(key, token)

        logger.warning("No verification data found; re-creating verification token")
        self._store_verification(key)
        return True

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def is_protection_enabled(self) -> bool:
        config = self.load_security_config()
        return config is not None and config.enabled

    @property
    def state(self) -> SecurityState:
        """Current protection state (expires the session lazily)."""
        config = self.load_security_config()
        if config is None:
            return SecurityState.NO_CONFIG
        if not config.enabled:
            return SecurityState.DISABLED
        if self.session.is_unlocked(config.session_timeout_minutes):
            return SecurityState.UNLOCKED
        return SecurityState.LOCKED

    def is_session_unlocked(self) -> bool:
        """
        Check whether secrets are accessible.

        Always True when protection is not enabled. Otherwise the session
        is locked as a side effect once the idle timeout has passed.
        """
        config = self.load_security_config()
        if config is None or not config.enabled:
            return True
        return self.session.is_unlocked(config.session_timeout_minutes)

    def get_active_key(self) -> Optional[DerivedKey]:
        """
        Key the secret store should use right now.

        The password-derived session key when protection is enabled (None if
        locked), otherwise the device key, created on first use.
        """
        config = self.load_security_config()
        if config is not None and config.enabled:
            return self.session.get_derived_key(config.session_timeout_minutes)
        return get_or_create_legacy_key(self.storage)

    def refresh_session(self) -> None:
        """Record user activity so the idle timeout restarts."""
        self.session.refresh()

    def lock(self) -> None:
        """Lock the session, wiping the derived key."""
        self.session.lock()

    # ------------------------------------------------------------------
    # Password lifecycle
    # ------------------------------------------------------------------

    def verify_password(self, password: str) -> bool:
        """Check a password without changing the session."""
        config = self.load_security_config()
        if config is None or not config.enabled:
            return False
        key = KeyDerivation.derive_key(password, config.salt, config.iterations)
        try:
            return self._verify_key(key)
        finally:
            key.wipe()

    def setup_password(self, password: str) -> SecurityConfig:
        """
        Enable password protection.

        Derives a key from a fresh salt, moves any existing API keys onto it
        (from the device key, or from the current session key when a
        password was already set) and leaves the session unlocked. The
        re-sealed blob, verification token and config are committed as one
        batch, so the blob is never stored under a salt that was not saved.

        Raises:
            WeakPasswordError: Password shorter than 6 characters
            SessionLockedError: Protection already on and the session is locked
        """
        validation = validate_password(password)
        if not validation.valid:
            raise WeakPasswordError(validation.message)

        existing = self.load_security_config()
        if existing is not None and existing.enabled:
            old_key = self.session.get_derived_key(existing.session_timeout_minutes)
            if old_key is None:
                raise SessionLockedError("Unlock with your current password before setting a new one.")
        else:
            old_key = load_legacy_key(self.storage)

        salt = KeyDerivation.generate_salt(self.config.salt_size)
        iterations = self.config.pbkdf2_iterations
        key = KeyDerivation.derive_key(password, salt, iterations)

        config = SecurityConfig(
            enabled=True,
            salt=salt,
            iterations=iterations,
            session_timeout_minutes=self._session_timeout(existing),
        )

        staged = StagedStore(self.storage)
        migrate_to_password_key(SecretStore(staged, self.get_active_key), old_key, key)
        self._store_verification(key, staged)
        staged.set(SECURITY_CONFIG_RECORD, config.to_json())
        staged.commit()
        self.session.unlock(key)

        logger.info("Password protection enabled")
        return config

    def unlock(self, password: str) -> bool:
        """
        Unlock the session with a password.

        Returns:
            True if the password authenticated; False if protection is not
            enabled or the password is wrong (the session is unchanged)
        """
        config = self.load_security_config()
        if config is None or not config.enabled:
            return False

        key = KeyDerivation.derive_key(password, config.salt, config.iterations)
        if not self._verify_key(key):
            key.wipe()
            logger.warning("Unlock failed: password did not authenticate")
            return False

        self.session.unlock(key)
        logger.info("Session unlocked")
        return True

    def change_password(self, old_password: str, new_password: str) -> bool:
        """
        Re-key protection from ``old_password`` to ``new_password``.

        Like ``setup_password``, all records are written in a single commit.

        Returns:
            False if protection is not enabled or the old password is wrong

        Raises:
            WeakPasswordError: New password fails the policy
        """
        validation = validate_password(new_password)
        if not validation.valid:
            raise WeakPasswordError(validation.message)

        config = self.load_security_config()
        if config is None or not config.enabled:
            return False

        old_key = KeyDerivation.derive_key(old_password, config.salt, config.iterations)
        if not self._verify_key(old_key):
            old_key.wipe()
            logger.warning("Password change rejected: current password did not authenticate")
            return False

        new_salt = KeyDerivation.generate_salt(self.config.salt_size)
        new_iterations = self.config.pbkdf2_iterations
        new_key = KeyDerivation.derive_key(new_password, new_salt, new_iterations)

        staged = StagedStore(self.storage)
        try:
            SecretStore(staged, self.get_active_key).reencrypt_api_keys(old_key, new_key)
        finally:
            old_key.wipe()
        self._store_verification(new_key, staged)
        staged.set(
            SECURITY_CONFIG_RECORD,
            SecurityConfig(
                enabled=True,
                salt=new_salt,
                iterations=new_iterations,
                session_timeout_minutes=config.session_timeout_minutes,
            ).to_json(),
        )
        staged.commit()
        self.session.unlock(new_key)

        logger.info("Password changed")
        return True

    def disable_protection(self) -> None:
        """
        Turn password protection off.

        API keys are moved to a device key when the session holds a key;
        otherwise they are irreversibly deleted. Callers must confirm with
        the user before calling this.
        """
        config = self.load_security_config()

        if config is not None and config.enabled:
            current_key = self.session.get_derived_key(config.session_timeout_minutes)
        else:
            current_key = load_legacy_key(self.storage)

        migrate_to_device_key(self.secrets, current_key)
        self.storage.delete(VERIFICATION_RECORD)

        if config is None:
            config = SecurityConfig(
                enabled=False,
                salt=KeyDerivation.generate_salt(self.config.salt_size),
                iterations=self.config.pbkdf2_iterations,
                session_timeout_minutes=self.config.session_timeout_minutes,
            )
        else:
            config.enabled = False
        self.save_security_config(config)

        self.session.lock()
        logger.info("Password protection disabled")

    def reset_protection(self) -> None:
        """
        Forget the password: delete every secret and all protection records.

        This is irreversible and returns the device to the unconfigured
        state. Callers must confirm with the user before calling this.
        """
        self.secrets.delete_blob()
        self.storage.delete(VERIFICATION_RECORD)
        self.storage.delete(SECURITY_CONFIG_RECORD)
        self.storage.delete(LEGACY_PLAINTEXT_RECORD)
        clear_legacy_key(self.storage)
        self.session.lock()
        logger.warning("Password protection reset; stored API keys were deleted")
