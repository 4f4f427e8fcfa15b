"""Support for 1.0.0 backup files.

Version 1 backups hold the whole preference object, API keys, non-ghost
conversations, the weather location and shortcuts in one document, which
is either plaintext or encrypted as a single AES-GCM blob. They are
upgraded to an in-memory 2.x plaintext document so the regular merge
engine can apply them.
"""

import json
from datetime import datetime, timezone
from typing import Any, Optional

from ..models.prefs import PROVIDER_NAMES, WidgetType
from ..utils.hash import hash_document
from ..utils.logging import get_logger
from ..vault.crypto import (
    PBKDF2_ITERATIONS,
    AuthenticatedEncryption,
    KeyDerivation,
    SealedData,
    decode_b64,
)
from ..vault.exceptions import ExportFormatError, PasswordRequiredError, VaultCorruptedError
from .exporter import APP_VERSION, EXPORT_VERSION, parse_export_document
from .models import (
    SECTION_API_KEYS,
    SECTION_CHATS,
    SECTION_SETTINGS,
    SECTION_WIDGETS,
    SETTING_CHAT_PREFERENCES,
    SETTING_KEYBOARD_SHORTCUTS,
    SETTING_QUICK_LINKS,
    SETTING_SEARCH_ENGINE,
)

logger = get_logger(__name__)


def is_v1_document(doc: Any) -> bool:
    """True for a 1.x backup (it carries a numeric ``timestamp``)."""
    return (
        isinstance(doc, dict)
        and isinstance(doc.get("version"), str)
        and doc["version"].startswith("1.")
        and isinstance(doc.get("timestamp"), (int, float))
    )


def validate_v1_document(doc: Any) -> bool:
    """Structural check of a decrypted (or plaintext) 1.x backup."""
    if not is_v1_document(doc):
        return False

    if "preferences" in doc and not isinstance(doc["preferences"], dict):
        return False

    api_keys = doc.get("apiKeys")
    if api_keys is not None:
        if not isinstance(api_keys, dict):
            return False
        if any(v is not None and not isinstance(v, str) for v in api_keys.values()):
            return False

    conversations = doc.get("conversations")
    if conversations is not None:
        if not isinstance(conversations, list):
            return False
        for conv in conversations:
            if (
                not isinstance(conv, dict)
                or not isinstance(conv.get("id"), str)
                or not isinstance(conv.get("title"), str)
                or not isinstance(conv.get("messages"), list)
            ):
                return False

    location = doc.get("weatherLocation")
    if location is not None:
        if not isinstance(location, dict):
            return False
        if not isinstance(location.get("name"), str):
            return False
        if not all(isinstance(location.get(k), (int, float)) for k in ("lat", "lon")):
            return False

    if "shortcuts" in doc and not isinstance(doc["shortcuts"], list):
        return False

    return True


def decrypt_v1_document(doc: dict[str, Any], password: str) -> dict[str, Any]:
    """
    Open a whole-file encrypted 1.x backup.

    Raises:
        ExportFormatError: Missing encryption fields or invalid payload
        DecryptionAuthenticationError: Wrong password or corrupted data
    """
    try:
        salt = decode_b64(doc["salt"])
        sealed = SealedData(ciphertext=decode_b64(doc["data"]), iv=decode_b64(doc["iv"]))
    except (KeyError, TypeError, VaultCorruptedError) as e:
        raise ExportFormatError(f"Invalid encrypted export data: {e}")

    key = KeyDerivation.derive_key(password, salt, PBKDF2_ITERATIONS)
    try:
        inner = AuthenticatedEncryption(key).decrypt_json(sealed)
    finally:
        key.wipe()

    if not validate_v1_document(inner):
        raise ExportFormatError()
    return inner


def _settings_from_v1(doc: dict[str, Any]) -> dict[str, Any]:
    prefs = doc.get("preferences") or {}
    settings: dict[str, Any] = {}

    if "searchEngineId" in prefs:
        settings[SETTING_SEARCH_ENGINE] = {
            "engineId": prefs["searchEngineId"],
            "customEngines": list(prefs.get("customSearchEngines") or []),
        }
    if prefs.get("links"):
        settings[SETTING_QUICK_LINKS] = list(prefs["links"])
    if doc.get("shortcuts"):
        settings[SETTING_KEYBOARD_SHORTCUTS] = list(doc["shortcuts"])

    chat_prefs = {
        name: prefs[name]
        for name in ("showChat", "showVerifiedOrgModels", "chatModel")
        if name in prefs
    }
    if chat_prefs:
        settings[SETTING_CHAT_PREFERENCES] = chat_prefs
    return settings


def _widgets_from_v1(doc: dict[str, Any]) -> list[dict[str, Any]]:
    prefs = doc.get("preferences") or {}
    widgets = []
    for widget in prefs.get("widgets") or []:
        if not isinstance(widget, dict) or not isinstance(widget.get("id"), str) or "type" not in widget:
            continue
        entry = dict(widget)
        settings = entry.get("settings") or {}
        if widget["type"] == WidgetType.HABIT_TRACKER.value:
            entry["data"] = {"habits": list(settings.get("habits") or [])}
        elif widget["type"] == WidgetType.TICKER.value:
            entry["data"] = {"symbols": list(settings.get("symbols") or [])}
        elif widget["type"] == WidgetType.WEATHER.value and doc.get("weatherLocation"):
            entry["data"] = {"location": dict(doc["weatherLocation"])}
        widgets.append(entry)
    return widgets


def upgrade_v1_document(doc: dict[str, Any], password: Optional[str] = None) -> dict[str, Any]:
    """
    Convert a 1.x backup into a plaintext 2.x document.

    The result may carry API keys under ``contents``; it is only meant to be
    handed to the importer and never written out.

    Args:
        doc: Parsed 1.x document (possibly encrypted)
        password: Needed when the document is encrypted

    Raises:
        PasswordRequiredError: Encrypted document without a password
        ExportFormatError: Not a valid 1.x document
        DecryptionAuthenticationError: Wrong password
    """
    if not is_v1_document(doc):
        raise ExportFormatError()

    if doc.get("encrypted"):
        if not password:
            raise PasswordRequiredError()
        doc = decrypt_v1_document(doc, password)
    elif not validate_v1_document(doc):
        raise ExportFormatError()

    contents: dict[str, Any] = {}

    api_keys = {
        provider: value
        for provider, value in (doc.get("apiKeys") or {}).items()
        if provider in PROVIDER_NAMES and isinstance(value, str) and value
    }
    if api_keys:
        contents[SECTION_API_KEYS] = api_keys

    chats = [c for c in doc.get("conversations") or [] if not c.get("isGhostMode")]
    if chats:
        contents[SECTION_CHATS] = chats

    settings = _settings_from_v1(doc)
    if settings:
        contents[SECTION_SETTINGS] = settings

    widgets = _widgets_from_v1(doc)
    if widgets:
        contents[SECTION_WIDGETS] = widgets

    logger.info("Upgraded %s backup with %d section(s)", doc["version"], len(contents))
    return {
        "version": EXPORT_VERSION,
        "appVersion": APP_VERSION,
        "exportedAt": _timestamp_to_iso(doc["timestamp"]),
        "encrypted": False,
        "contents": contents,
        "hash": hash_document(contents),
    }


def _timestamp_to_iso(timestamp_ms: float) -> str:
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def load_backup_document(text: str, password: Optional[str] = None) -> dict[str, Any]:
    """
    Parse a backup file of either generation.

    1.x files are upgraded (and decrypted, which needs ``password``); 2.x
    files are returned as parsed, still encrypted, so the importer can check
    their integrity and decrypt only the selected sections.

    Raises:
        ExportFormatError: Unrecognised file
        PasswordRequiredError: Encrypted 1.x file without a password
    """
    try:
        doc = json.loads(text)
    except json.JSONDecodeError as e:
        raise ExportFormatError(f"Backup file is not valid JSON: {e}")

    if is_v1_document(doc):
        return upgrade_v1_document(doc, password)
    return parse_export_document(text)
