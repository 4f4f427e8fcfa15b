"""Backup export in the 2.0.0 document format.

A document carries each selected section either in plaintext under
``contents`` or, when a password is given, under ``encryptedSections``:
every section is sealed separately with AES-256-GCM and its own IV, all
under one key derived from the password and a per-export salt.

Plaintext contents are covered by a ``sha256:`` digest of their canonical
JSON; encrypted sections are covered by their GCM tags instead.

Security Note:
    API keys never leave the device unencrypted. Selecting them without a
    password fails before anything is read.
"""

import json
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from ..models.prefs import PROVIDER_NAMES, Prefs, WidgetConfig, WidgetType
from ..utils.hash import hash_document, verify_document_hash, verify_text_hash
from ..utils.logging import get_logger
from ..vault.config import get_vault_config
from ..vault.crypto import (
    PBKDF2_ITERATIONS,
    AuthenticatedEncryption,
    DerivedKey,
    KeyDerivation,
    SealedData,
    decode_b64,
    encode_b64,
)
from ..vault.exceptions import EncryptionRequiredError, ExportFormatError, VaultCorruptedError
from ..vault.secret_store import SecretStore
from .models import (
    SECTION_API_KEYS,
    SECTION_CHATS,
    SECTION_SETTINGS,
    SECTION_WIDGETS,
    SECTIONS,
    SETTING_CHAT_PREFERENCES,
    SETTING_KEYBOARD_SHORTCUTS,
    SETTING_QUICK_LINKS,
    SETTING_SEARCH_ENGINE,
    SETTINGS_ITEMS,
    SectionSelection,
    SelectionTree,
)

logger = get_logger(__name__)

EXPORT_VERSION = "2.0.0"
APP_VERSION = "1.5.0"


def _iso_timestamp(now: datetime) -> str:
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def export_filename(now: Optional[datetime] = None) -> str:
    """Suggested file name for a new backup, e.g. ``horizen-backup-v2-2024-05-01T10-30-00.json``."""
    now = now or datetime.now(timezone.utc)
    stamp = now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
    return f"horizen-backup-v2-{stamp}.json"


# ----------------------------------------------------------------------
# Section encryption
# ----------------------------------------------------------------------


def encrypt_section(data: Any, key: DerivedKey) -> dict[str, str]:
    """
    Seal one section with a fresh IV.

    Returns:
        ``{"data": <base64 ciphertext>, "iv": <base64 IV>}``
    """
    sealed = AuthenticatedEncryption(key).encrypt_json(data)
    return {"data": encode_b64(sealed.ciphertext), "iv": encode_b64(sealed.iv)}


def _decrypt_section_with_key(section: dict[str, Any], key: DerivedKey) -> Any:
    try:
        sealed = SealedData(ciphertext=decode_b64(section["data"]), iv=decode_b64(section["iv"]))
    except (KeyError, TypeError) as e:
        raise ExportFormatError(f"Malformed encrypted section: {e}")
    return AuthenticatedEncryption(key).decrypt_json(sealed)


def decrypt_section(
    data: str,
    iv: str,
    password: str,
    salt: bytes,
    iterations: int = PBKDF2_ITERATIONS,
) -> Any:
    """
    Re-derive the export key and decrypt one section.

    Args:
        data: Base64 ciphertext (with tag)
        iv: Base64 IV
        password: Export password
        salt: Export salt
        iterations: PBKDF2 iterations recorded in the document

    Raises:
        DecryptionAuthenticationError: Wrong password or tampered ciphertext
    """
    key = KeyDerivation.derive_key(password, salt, iterations)
    try:
        return _decrypt_section_with_key({"data": data, "iv": iv}, key)
    finally:
        key.wipe()


# ----------------------------------------------------------------------
# Section collection
# ----------------------------------------------------------------------


def _collect_api_keys(selection: SectionSelection, secret_store: Optional[SecretStore]) -> dict[str, str]:
    if secret_store is None:
        raise ValueError("A secret store is required to export API keys")
    all_keys = secret_store.get_api_keys()
    if not all_keys:
        logger.warning("API keys selected for export but none are readable")
    return {
        provider: all_keys[provider]
        for provider in PROVIDER_NAMES
        if selection.items.get(provider) and all_keys.get(provider)
    }


def _collect_chats(prefs: Prefs, selection: SectionSelection) -> list[dict[str, Any]]:
    return [
        conversation.to_dict()
        for conversation in prefs.conversations
        if not conversation.is_ghost_mode and selection.items.get(conversation.id)
    ]


def _collect_settings(prefs: Prefs, selection: SectionSelection) -> dict[str, Any]:
    settings: dict[str, Any] = {}
    if selection.items.get(SETTING_SEARCH_ENGINE):
        settings[SETTING_SEARCH_ENGINE] = {
            "engineId": prefs.search_engine_id,
            "customEngines": [e.to_dict() for e in prefs.custom_search_engines],
        }
    if selection.items.get(SETTING_QUICK_LINKS):
        settings[SETTING_QUICK_LINKS] = [link.to_dict() for link in prefs.links]
    if selection.items.get(SETTING_KEYBOARD_SHORTCUTS):
        settings[SETTING_KEYBOARD_SHORTCUTS] = [s.to_dict() for s in prefs.shortcuts]
    if selection.items.get(SETTING_CHAT_PREFERENCES):
        settings[SETTING_CHAT_PREFERENCES] = {
            "showChat": prefs.show_chat,
            "showVerifiedOrgModels": prefs.show_verified_org_models,
            "chatModel": prefs.chat_model.to_dict(),
        }
    return settings


def _widget_data(prefs: Prefs, widget: WidgetConfig) -> Optional[dict[str, Any]]:
    """Data a widget keeps outside its config, bundled for export."""
    if widget.type == WidgetType.NOTES.value:
        notes = prefs.notes.get(widget.id)
        return {"notes": notes} if notes else None
    if widget.type == WidgetType.HABIT_TRACKER.value:
        return {"habits": list(widget.settings.get("habits") or [])}
    if widget.type == WidgetType.TICKER.value:
        return {"symbols": list(widget.settings.get("symbols") or [])}
    if widget.type == WidgetType.WEATHER.value and prefs.weather_location:
        return {"location": dict(prefs.weather_location)}
    return None


def _collect_widgets(prefs: Prefs, selection: SectionSelection) -> list[dict[str, Any]]:
    widgets = []
    for widget in prefs.widgets:
        if not widget.enabled or not selection.items.get(widget.id):
            continue
        entry = widget.to_dict()
        data = _widget_data(prefs, widget)
        if data is not None:
            entry["data"] = data
        widgets.append(entry)
    return widgets


# ----------------------------------------------------------------------
# Export
# ----------------------------------------------------------------------


def export_data_v2(
    prefs: Prefs,
    selection: SelectionTree,
    password: Optional[str] = None,
    secret_store: Optional[SecretStore] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Build a 2.0.0 backup document.

    Args:
        prefs: Current preferences
        selection: Sections and items to include
        password: Encrypts every section when given
        secret_store: Source of API keys (needed when apiKeys is selected)
        now: Export timestamp (defaults to the current UTC time)

    Returns:
        The document as indented JSON

    Raises:
        EncryptionRequiredError: apiKeys selected without a password
    """
    if selection.is_selected(SECTION_API_KEYS) and not password:
        raise EncryptionRequiredError()

    collected: dict[str, Any] = {}
    if selection.is_selected(SECTION_API_KEYS):
        collected[SECTION_API_KEYS] = _collect_api_keys(selection.api_keys, secret_store)
    if selection.is_selected(SECTION_CHATS):
        collected[SECTION_CHATS] = _collect_chats(prefs, selection.chats)
    if selection.is_selected(SECTION_SETTINGS):
        collected[SECTION_SETTINGS] = _collect_settings(prefs, selection.settings)
    if selection.is_selected(SECTION_WIDGETS):
        collected[SECTION_WIDGETS] = _collect_widgets(prefs, selection.widgets)

    # Empty sections are left out entirely
    collected = {name: value for name, value in collected.items() if value}

    document: dict[str, Any] = {
        "version": EXPORT_VERSION,
        "appVersion": APP_VERSION,
        "exportedAt": _iso_timestamp(now or datetime.now(timezone.utc)),
        "encrypted": bool(password),
    }

    if password:
        iterations = get_vault_config().pbkdf2_iterations
        salt = KeyDerivation.generate_salt()
        key = KeyDerivation.derive_key(password, salt, iterations)
        try:
            encrypted_sections = {
                name: encrypt_section(value, key) for name, value in collected.items()
            }
        finally:
            key.wipe()
        document["salt"] = encode_b64(salt)
        document["iterations"] = iterations
        document["encryptedSections"] = encrypted_sections
    else:
        document["contents"] = collected
        document["hash"] = hash_document(collected)

    logger.info(
        "Exported %d section(s)%s",
        len(collected),
        " (encrypted)" if password else "",
    )
    return json.dumps(document, indent=2, ensure_ascii=False)


# ----------------------------------------------------------------------
# Inspection
# ----------------------------------------------------------------------


def _valid_entries(value: Any) -> bool:
    """A list of objects that each carry a string id."""
    return isinstance(value, list) and all(
        isinstance(entry, dict) and isinstance(entry.get("id"), str) for entry in value
    )


def validate_section(name: str, value: Any) -> bool:
    """Check the shape of one plaintext section."""
    if name in (SECTION_CHATS, SECTION_WIDGETS):
        return _valid_entries(value)
    if name in (SECTION_API_KEYS, SECTION_SETTINGS):
        return isinstance(value, dict)
    return True


def _valid_iterations(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def validate_export_data_v2(doc: Any) -> bool:
    """Check that ``doc`` has the shape of a 2.x backup document."""
    if not isinstance(doc, dict):
        return False
    if not isinstance(doc.get("version"), str) or not doc["version"].startswith("2."):
        return False
    if not isinstance(doc.get("exportedAt"), str):
        return False
    if not isinstance(doc.get("encrypted"), bool):
        return False
    for name in ("contents", "encryptedSections"):
        if name in doc and not isinstance(doc[name], dict):
            return False
    if "iterations" in doc and not _valid_iterations(doc["iterations"]):
        return False

    contents = doc.get("contents") or {}
    if not all(validate_section(name, value) for name, value in contents.items()):
        return False

    encrypted = doc.get("encryptedSections") or {}
    for section in encrypted.values():
        if not isinstance(section, dict):
            return False
        if not isinstance(section.get("data"), str) or not isinstance(section.get("iv"), str):
            return False
    if doc["encrypted"] and encrypted and not isinstance(doc.get("salt"), str):
        return False
    return True


def is_encrypted_export_v2(doc: Any) -> bool:
    """True when ``doc`` holds password-encrypted sections."""
    return isinstance(doc, dict) and doc.get("encrypted") is True and bool(doc.get("encryptedSections"))


def parse_export_document(text: str) -> dict[str, Any]:
    """
    Parse and validate a 2.x backup document.

    Raises:
        ExportFormatError: Not JSON, or not a 2.x document
    """
    try:
        doc = json.loads(text)
    except json.JSONDecodeError as e:
        raise ExportFormatError(f"Backup file is not valid JSON: {e}")
    if not validate_export_data_v2(doc):
        raise ExportFormatError()
    return doc


def _start_page_hash_input(doc: dict[str, Any]) -> str:
    """
    The string the start page itself hashes.

    Compact JSON of ``contents`` then ``encryptedSections``, nested keys in
    document order, with absent members left out.
    """
    payload = {name: doc[name] for name in ("contents", "encryptedSections") if name in doc}
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def verify_import_hash(doc: dict[str, Any]) -> bool:
    """
    Check the plaintext contents against the recorded digest.

    Accepts the canonical digest written by ``export_data_v2`` and the
    digest the start page writes over its own serialization. Documents
    without a hash (encrypted-only exports) verify as True.
    """
    expected = doc.get("hash")
    if not expected:
        return True
    if verify_document_hash(doc.get("contents") or {}, expected):
        return True
    return verify_text_hash(_start_page_hash_input(doc), expected)


def get_available_sections(doc: dict[str, Any]) -> SelectionTree:
    """
    Describe which sections and items a document contains.

    Needs no password. Nothing is selected; encrypted sections list no
    item ids, except apiKeys and settings whose item names are fixed.
    """
    contents = doc.get("contents") or {}
    encrypted = doc.get("encryptedSections") or {}
    tree = SelectionTree()

    if SECTION_API_KEYS in encrypted:
        tree.api_keys = SectionSelection(False, {name: True for name in PROVIDER_NAMES})
    elif contents.get(SECTION_API_KEYS):
        keys = contents[SECTION_API_KEYS]
        tree.api_keys = SectionSelection(False, {name: bool(keys.get(name)) for name in PROVIDER_NAMES})

    if SECTION_CHATS in encrypted:
        tree.chats = SectionSelection(False, {})
    elif contents.get(SECTION_CHATS):
        tree.chats = SectionSelection(False, {c["id"]: False for c in contents[SECTION_CHATS]})

    if SECTION_SETTINGS in encrypted:
        tree.settings = SectionSelection(False, {name: True for name in SETTINGS_ITEMS})
    elif contents.get(SECTION_SETTINGS):
        settings = contents[SECTION_SETTINGS]
        tree.settings = SectionSelection(False, {name: name in settings for name in SETTINGS_ITEMS})

    if SECTION_WIDGETS in encrypted:
        tree.widgets = SectionSelection(False, {})
    elif contents.get(SECTION_WIDGETS):
        tree.widgets = SectionSelection(False, {w["id"]: False for w in contents[SECTION_WIDGETS]})

    return tree


def decrypt_document(
    doc: dict[str, Any],
    password: str,
    sections: Optional[Iterable[str]] = None,
) -> dict[str, Any]:
    """
    Return a plaintext copy of ``doc`` with encrypted sections opened.

    The key is derived once for all sections. Decrypted sections are moved
    into ``contents`` and the digest is recomputed over the result.

    Args:
        doc: A validated 2.x document
        password: Export password
        sections: Section names to decrypt (all encrypted sections if None)

    Raises:
        DecryptionAuthenticationError: Wrong password or tampered section
        ExportFormatError: Missing salt or malformed section
    """
    encrypted = doc.get("encryptedSections") or {}
    wanted = [name for name in SECTIONS if name in encrypted and (sections is None or name in sections)]

    contents = dict(doc.get("contents") or {})
    if wanted:
        try:
            salt = decode_b64(doc["salt"])
        except (KeyError, TypeError, VaultCorruptedError) as e:
            raise ExportFormatError(f"Encrypted backup has no usable salt: {e}")
        iterations = doc.get("iterations", PBKDF2_ITERATIONS)
        if not _valid_iterations(iterations):
            raise ExportFormatError(f"Invalid PBKDF2 iteration count: {iterations!r}")

        key = KeyDerivation.derive_key(password, salt, iterations)
        try:
            for name in wanted:
                contents[name] = _decrypt_section_with_key(encrypted[name], key)
        finally:
            key.wipe()
        for name in wanted:
            if not validate_section(name, contents[name]):
                raise ExportFormatError(f"Decrypted section {name} is malformed")
        logger.debug("Decrypted %d backup section(s)", len(wanted))

    plain = {
        "version": doc.get("version", EXPORT_VERSION),
        "appVersion": doc.get("appVersion", APP_VERSION),
        "exportedAt": doc.get("exportedAt", ""),
        "encrypted": False,
        "contents": contents,
        "hash": hash_document(contents),
    }
    return plain
