"""Backup export and import for Horizen.

Usage:
    from horizen.backup import SelectionTree, export_data_v2

    selection = SelectionTree.for_prefs(prefs)
    text = export_data_v2(prefs, selection, password, vault.secrets)

    from horizen.backup import ImportOptions, import_data_v2, load_backup_document

    doc = load_backup_document(text)
    selection = get_available_sections(doc).select_all()
    result = import_data_v2(doc, prefs, ImportOptions(selection), password, vault.secrets)
    prefs_store.set_prefs(result.apply)
"""

from .backups import (
    BackupInfo,
    create_backup,
    get_recent_backups,
    restore_backup,
)
from .exporter import (
    APP_VERSION,
    EXPORT_VERSION,
    decrypt_document,
    decrypt_section,
    encrypt_section,
    export_data_v2,
    export_filename,
    get_available_sections,
    is_encrypted_export_v2,
    parse_export_document,
    validate_export_data_v2,
    verify_import_hash,
)
from .importer import import_data_v2
from .legacy import load_backup_document, upgrade_v1_document
from .models import (
    ChatMergeStrategy,
    ImportOptions,
    ImportResult,
    MergeStrategies,
    MergeStrategy,
    SectionSelection,
    SelectionTree,
)

__all__ = [
    # Models
    "SelectionTree",
    "SectionSelection",
    "ChatMergeStrategy",
    "MergeStrategy",
    "MergeStrategies",
    "ImportOptions",
    "ImportResult",
    # Export
    "EXPORT_VERSION",
    "APP_VERSION",
    "export_data_v2",
    "encrypt_section",
    "decrypt_section",
    "decrypt_document",
    "verify_import_hash",
    "get_available_sections",
    "is_encrypted_export_v2",
    "validate_export_data_v2",
    "parse_export_document",
    "export_filename",
    # Import
    "import_data_v2",
    "load_backup_document",
    "upgrade_v1_document",
    # Backups
    "BackupInfo",
    "create_backup",
    "restore_backup",
    "get_recent_backups",
]
