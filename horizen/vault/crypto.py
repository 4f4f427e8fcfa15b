"""Core cryptographic primitives for secrets protection.

Uses the cryptography library for:
- PBKDF2-HMAC-SHA256 key derivation (600,000 iterations per OWASP 2023)
- AES-256-GCM authenticated encryption with a random 96-bit IV per message

Security Note:
    Never log key material, plaintext or ciphertext values.
"""

import base64
import hmac
import json
import os
from dataclasses import dataclass
from typing import Any, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .exceptions import DecryptionAuthenticationError, VaultCorruptedError

# Key derivation parameters (OWASP 2023 recommendations)
PBKDF2_ITERATIONS = 600_000
SALT_SIZE = 32  # 256 bits
KEY_SIZE = 32  # 256 bits for AES-256

# AES-GCM parameters
NONCE_SIZE = 12  # 96 bits
TAG_SIZE = 16  # 128-bit authentication tag

# Known plaintext encrypted at setup so unlock can verify a password
VERIFICATION_PLAINTEXT = b"password_verification_token"


def encode_b64(data: bytes) -> str:
    """Encode bytes as standard base64 text."""
    return base64.b64encode(data).decode("ascii")


def decode_b64(text: str) -> bytes:
    """Decode standard base64 text, rejecting malformed input."""
    try:
        return base64.b64decode(text, validate=True)
    except (ValueError, TypeError) as e:
        raise VaultCorruptedError(f"Invalid base64 data: {e}")


class DerivedKey:
    """
    Opaque handle around a 256-bit symmetric key.

    The key bytes live in a mutable buffer so ``wipe()`` can zero them on
    lock. The handle never renders its contents and cannot be pickled or
    copied. CPython may still hold transient copies (e.g. inside the AESGCM
    object), which is an accepted limitation.
    """

    __slots__ = ("_buffer", "_wiped")

    def __init__(self, key_bytes: bytes):
        if len(key_bytes) != KEY_SIZE:
            raise ValueError(f"Key must be {KEY_SIZE} bytes, got {len(key_bytes)}")
        self._buffer = bytearray(key_bytes)
        self._wiped = False

    @property
    def is_wiped(self) -> bool:
        return self._wiped

    def wipe(self) -> None:
        """Zero the key buffer. Idempotent."""
        for i in range(len(self._buffer)):
            self._buffer[i] = 0
        self._wiped = True

    def cipher(self) -> AESGCM:
        """Build an AES-GCM cipher bound to this key."""
        if self._wiped:
            raise ValueError("Key has been wiped")
        return AESGCM(bytes(self._buffer))

    def export_raw(self) -> bytes:
        """Return the raw key bytes (only for persisting non-password legacy keys)."""
        if self._wiped:
            raise ValueError("Key has been wiped")
        return bytes(self._buffer)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DerivedKey):
            return NotImplemented
        return hmac.compare_digest(bytes(self._buffer), bytes(other._buffer))

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return "<DerivedKey [redacted]>"

    __str__ = __repr__

    def __reduce__(self):
        raise TypeError("DerivedKey cannot be serialized")

    def __copy__(self):
        raise TypeError("DerivedKey cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("DerivedKey cannot be copied")


class KeyDerivation:
    """Derives encryption keys from passwords using PBKDF2."""

    @staticmethod
    def generate_salt(size: int = SALT_SIZE) -> bytes:
        """Generate cryptographically secure random salt."""
        return os.urandom(size)

    @staticmethod
    def derive_key(password: str, salt: bytes, iterations: int = PBKDF2_ITERATIONS) -> DerivedKey:
        """
        Derive a 256-bit key from password using PBKDF2-HMAC-SHA256.

        Args:
            password: User password
            salt: Random salt (stored alongside the protected data)
            iterations: PBKDF2 iteration count

        Returns:
            Opaque DerivedKey handle
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_SIZE,
            salt=salt,
            iterations=iterations,
        )
        password_buffer = bytearray(password.encode("utf-8"))
        try:
            return DerivedKey(kdf.derive(bytes(password_buffer)))
        finally:
            for i in range(len(password_buffer)):
                password_buffer[i] = 0

    @staticmethod
    def generate_key() -> DerivedKey:
        """Generate a random (non-password) AES-256 key."""
        return DerivedKey(AESGCM.generate_key(bit_length=KEY_SIZE * 8))

    @staticmethod
    def create_verification_token(key: DerivedKey) -> "SealedData":
        """Encrypt the known verification plaintext under ``key``."""
        return AuthenticatedEncryption(key).encrypt(VERIFICATION_PLAINTEXT)

    @staticmethod
    def verify_key(key: DerivedKey, token: "SealedData") -> bool:
        """Check that ``key`` authenticates the verification token."""
        try:
            return AuthenticatedEncryption(key).decrypt(token) == VERIFICATION_PLAINTEXT
        except DecryptionAuthenticationError:
            return False


@dataclass
class SealedData:
    """AES-GCM output: ciphertext (with appended tag) and its IV."""

    ciphertext: bytes
    iv: bytes

    def to_dict(self) -> dict[str, str]:
        """Convert to the persisted ``{ciphertext, iv}`` record."""
        return {
            "ciphertext": encode_b64(self.ciphertext),
            "iv": encode_b64(self.iv),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SealedData":
        try:
            return cls(
                ciphertext=decode_b64(data["ciphertext"]),
                iv=decode_b64(data["iv"]),
            )
        except (KeyError, TypeError) as e:
            raise VaultCorruptedError(f"Invalid encrypted record: {e}")

    @classmethod
    def from_record(cls, record: str) -> "SealedData":
        """
        Parse a persisted record.

        Accepts the JSON ``{ciphertext, iv}`` layout as well as the older
        single base64 string holding ``iv || ciphertext``.
        """
        record = record.strip()
        if record.startswith("{"):
            try:
                data = json.loads(record)
            except json.JSONDecodeError as e:
                raise VaultCorruptedError(f"Invalid encrypted record: {e}")
            return cls.from_dict(data)

        combined = decode_b64(record)
        if len(combined) < NONCE_SIZE + TAG_SIZE:
            raise VaultCorruptedError("Encrypted record too short")
        return cls(ciphertext=combined[NONCE_SIZE:], iv=combined[:NONCE_SIZE])


class AuthenticatedEncryption:
    """
    AES-256-GCM encryption bound to one key.

    Each call to ``encrypt`` draws a fresh random IV, so the same key can
    seal many messages without IV reuse.
    """

    def __init__(self, key: DerivedKey):
        self.key = key

    def encrypt(self, plaintext: bytes, iv: Optional[bytes] = None) -> SealedData:
        """
        Encrypt data.

        Args:
            plaintext: Data to encrypt
            iv: Explicit IV (tests only; normally generated)

        Returns:
            SealedData with ciphertext+tag and IV
        """
        nonce = iv if iv is not None else os.urandom(NONCE_SIZE)
        ciphertext = self.key.cipher().encrypt(nonce, plaintext, None)
        return SealedData(ciphertext=ciphertext, iv=nonce)

    def decrypt(self, sealed: SealedData) -> bytes:
        """
        Decrypt and authenticate data.

        Raises:
            DecryptionAuthenticationError: wrong key or modified ciphertext
        """
        if len(sealed.iv) != NONCE_SIZE:
            raise DecryptionAuthenticationError("Invalid IV length")
        try:
            return self.key.cipher().decrypt(sealed.iv, sealed.ciphertext, None)
        except InvalidTag:
            raise DecryptionAuthenticationError()

    def encrypt_json(self, data: Any) -> SealedData:
        """Serialize ``data`` as JSON and encrypt it."""
        return self.encrypt(json.dumps(data, ensure_ascii=False).encode("utf-8"))

    def decrypt_json(self, sealed: SealedData) -> Any:
        """Decrypt and deserialize a JSON payload."""
        plaintext = self.decrypt(sealed)
        try:
            return json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise VaultCorruptedError(f"Decrypted payload is not valid JSON: {e}")
