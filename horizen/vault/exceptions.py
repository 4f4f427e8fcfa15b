"""Vault exceptions for Horizen secrets protection."""


class VaultError(Exception):
    """Base exception for vault and backup operations."""

    pass


class WeakPasswordError(VaultError):
    """Raised when a password does not meet the minimum policy."""

    def __init__(self, message: str = "Password must be at least 6 characters"):
        super().__init__(message)


class SessionLockedError(VaultError):
    """Raised when an operation needs a key but the session is locked."""

    def __init__(self, message: str = "Session locked. Please unlock with your password."):
        super().__init__(message)


class DecryptionAuthenticationError(VaultError):
    """Raised when ciphertext fails authentication (wrong password or tampering)."""

    def __init__(self, message: str = "Incorrect password or corrupted data."):
        super().__init__(message)


class EncryptionRequiredError(VaultError):
    """Raised when credentials would leave the device unencrypted."""

    def __init__(self, message: str = "API keys must be exported with encryption."):
        super().__init__(message)


class IntegrityMismatchError(VaultError):
    """Raised when an imported document fails its integrity hash."""

    def __init__(self, message: str = "Backup integrity check failed. The file may have been modified."):
        super().__init__(message)


class PasswordRequiredError(VaultError):
    """Raised when an encrypted backup is imported without a password."""

    def __init__(self, message: str = "This backup is password-protected. Please provide the password."):
        super().__init__(message)


class ExportFormatError(VaultError):
    """Raised when a backup document is not in a recognised format."""

    def __init__(self, message: str = "Invalid import file format."):
        super().__init__(message)


class VaultCorruptedError(VaultError):
    """Raised when persisted vault records cannot be parsed."""

    def __init__(self, message: str = "Vault data is corrupted."):
        super().__init__(message)
