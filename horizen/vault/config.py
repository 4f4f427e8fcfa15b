"""Vault configuration for Horizen secrets protection."""

import os
from dataclasses import dataclass


@dataclass
class VaultConfig:
    """Configuration for vault encryption operations."""

    # Key derivation
    pbkdf2_iterations: int = 600_000  # OWASP 2023 recommendation for PBKDF2-SHA256
    salt_size: int = 32  # 256 bits
    key_size: int = 32  # 256 bits for AES-256
    nonce_size: int = 12  # 96-bit AES-GCM IV

    # Session management
    session_timeout_minutes: int = 30

    # Pre-import backups kept in storage
    max_backups: int = 5

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """
        Load configuration from environment variables.

        Environment variables:
            HORIZEN_SESSION_TIMEOUT: Session timeout in minutes (default: 30)
            HORIZEN_PBKDF2_ITERATIONS: PBKDF2 iteration count for new configs
            HORIZEN_MAX_BACKUPS: Number of pre-import backups to keep (default: 5)
        """
        config = cls()

        if timeout := os.getenv("HORIZEN_SESSION_TIMEOUT"):
            config.session_timeout_minutes = int(timeout)

        if iterations := os.getenv("HORIZEN_PBKDF2_ITERATIONS"):
            config.pbkdf2_iterations = int(iterations)

        if max_backups := os.getenv("HORIZEN_MAX_BACKUPS"):
            config.max_backups = int(max_backups)

        return config


# Global configuration instance
_config: VaultConfig | None = None


def get_vault_config() -> VaultConfig:
    """Get the global vault configuration."""
    global _config
    if _config is None:
        _config = VaultConfig.from_env()
    return _config


def set_vault_config(config: VaultConfig | None) -> None:
    """Set the global vault configuration (``None`` reloads from env)."""
    global _config
    _config = config
