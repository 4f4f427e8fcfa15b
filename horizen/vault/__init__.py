"""Vault module for Horizen secrets protection.

Protects provider API keys with a password-derived AES-256-GCM key that
lives only in an in-memory session.

Usage:
    from horizen.storage import JsonFileStore
    from horizen.vault import VaultManager, SecurityState

    vault = VaultManager(JsonFileStore(path))
    if vault.state is SecurityState.NO_CONFIG:
        vault.setup_password(password)
    elif vault.state is SecurityState.LOCKED:
        vault.unlock(password)

    vault.secrets.update_api_key("openai", "sk-...")
    keys = vault.secrets.get_api_keys()
"""

# Exceptions
from .exceptions import (
    DecryptionAuthenticationError,
    EncryptionRequiredError,
    ExportFormatError,
    IntegrityMismatchError,
    PasswordRequiredError,
    SessionLockedError,
    VaultCorruptedError,
    VaultError,
    WeakPasswordError,
)

# Configuration
from .config import (
    VaultConfig,
    get_vault_config,
    set_vault_config,
)

# Cryptography
from .crypto import (
    AuthenticatedEncryption,
    DerivedKey,
    KeyDerivation,
    SealedData,
)

# Password policy
from .password import PasswordValidation, validate_password

# Session management
from .session import SessionManager, SessionState

# Secret storage
from .secret_store import SecretStore

# Vault operations
from .vault_manager import (
    SecurityConfig,
    SecurityState,
    VaultManager,
)

# Migration tools
from .migration import (
    migrate_from_plaintext,
    migrate_to_device_key,
    migrate_to_password_key,
)

__all__ = [
    # Exceptions
    "VaultError",
    "WeakPasswordError",
    "SessionLockedError",
    "DecryptionAuthenticationError",
    "EncryptionRequiredError",
    "IntegrityMismatchError",
    "PasswordRequiredError",
    "ExportFormatError",
    "VaultCorruptedError",
    # Configuration
    "VaultConfig",
    "get_vault_config",
    "set_vault_config",
    # Cryptography
    "DerivedKey",
    "KeyDerivation",
    "SealedData",
    "AuthenticatedEncryption",
    # Password policy
    "PasswordValidation",
    "validate_password",
    # Session
    "SessionManager",
    "SessionState",
    # Secret storage
    "SecretStore",
    # Vault manager
    "VaultManager",
    "SecurityConfig",
    "SecurityState",
    # Migration
    "migrate_from_plaintext",
    "migrate_to_password_key",
    "migrate_to_device_key",
]
