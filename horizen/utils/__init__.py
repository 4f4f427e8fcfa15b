"""Utility modules for Horizen.

Provides common utilities:
- Logging configuration
- Canonical JSON hashing for backup integrity
"""

from .hash import (
    canonical_json,
    hash_bytes,
    hash_document,
    hash_string,
    verify_document_hash,
    verify_text_hash,
)
from .logging import (
    console,
    get_logger,
    setup_logging,
)


__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "console",
    # Hashing
    "hash_bytes",
    "hash_string",
    "canonical_json",
    "hash_document",
    "verify_document_hash",
    "verify_text_hash",
]
