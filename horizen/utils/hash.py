"""Hashing utilities for backup integrity verification.

Provides SHA-256 digests over a canonical JSON form so the same logical
data always hashes the same way regardless of key order or whitespace.
"""

import hashlib
import hmac
import json
from typing import Any

HASH_PREFIX = "sha256:"


def hash_bytes(data: bytes, algorithm: str = "sha256") -> str:
    """
    Calculate hash of bytes.

    Args:
        data: Bytes to hash
        algorithm: Hash algorithm

    Returns:
        Hexadecimal hash string
    """
    hasher = hashlib.new(algorithm)
    hasher.update(data)
    return hasher.hexdigest()


def hash_string(text: str, algorithm: str = "sha256") -> str:
    """Calculate hash of a UTF-8 string."""
    return hash_bytes(text.encode("utf-8"), algorithm)


def canonical_json(data: Any) -> str:
    """Serialize ``data`` deterministically (sorted keys, no whitespace)."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def hash_document(data: Any) -> str:
    """Return the ``sha256:<hex>`` digest of ``data``'s canonical JSON."""
    return HASH_PREFIX + hash_string(canonical_json(data))


def verify_document_hash(data: Any, expected_hash: str) -> bool:
    """
    Verify ``data`` matches an expected ``sha256:<hex>`` digest.

    Args:
        data: JSON-compatible value
        expected_hash: Digest previously produced by hash_document

    Returns:
        True if the digest matches
    """
    return verify_text_hash(canonical_json(data), expected_hash)


def verify_text_hash(text: str, expected_hash: str) -> bool:
    """Verify the ``sha256:<hex>`` digest of an already serialized string."""
    if not isinstance(expected_hash, str):
        return False
    actual = HASH_PREFIX + hash_string(text)
    return hmac.compare_digest(actual.lower(), expected_hash.strip().lower())
