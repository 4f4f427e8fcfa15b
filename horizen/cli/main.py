"""Horizen CLI - secrets protection and backups for the Horizen start page."""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..config.settings import Settings, configure, get_settings
from ..models.prefs import PROVIDER_LABELS, PROVIDER_NAMES, ModelProvider
from ..storage.kv import JsonFileStore
from ..storage.prefs_store import PreferencesStore
from ..vault.exceptions import PasswordRequiredError, VaultError
from ..vault.vault_manager import SecurityState, VaultManager

app = typer.Typer(
    name="horizen",
    help="Password protection, API keys and backups for the Horizen start page.",
    no_args_is_help=True,
)
security_app = typer.Typer(help="Set up, unlock and manage password protection", no_args_is_help=True)
keys_app = typer.Typer(help="Manage encrypted provider API keys", no_args_is_help=True)
backup_app = typer.Typer(help="Export, inspect and import backups", no_args_is_help=True)

app.add_typer(security_app, name="security")
app.add_typer(keys_app, name="keys")
app.add_typer(backup_app, name="backup")

console = Console()


@app.callback()
def callback(
    data_dir: Optional[Path] = typer.Option(
        None,
        "--data-dir", "-d",
        help="Data directory (default: ~/.horizen or HORIZEN_DATA_DIR)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable verbose logging",
    ),
):
    """
    Horizen secrets and backup tool.
    """
    from dotenv import load_dotenv

    from ..utils.logging import setup_logging

    load_dotenv()

    settings = Settings.from_env()
    if data_dir is not None:
        settings.data_dir = data_dir
    configure(settings)

    setup_logging(level="DEBUG" if verbose else settings.log_level, log_file=settings.log_file)


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------


@contextmanager
def _vault_errors() -> Iterator[None]:
    """Report library errors as a red message and exit code 1."""
    try:
        yield
    except VaultError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


def _open_vault() -> VaultManager:
    return VaultManager(JsonFileStore(get_settings().storage_path))


def _open_prefs() -> PreferencesStore:
    return PreferencesStore(get_settings().prefs_path)


def _prompt_password(prompt: str = "Password", confirm: bool = False) -> str:
    return typer.prompt(prompt, hide_input=True, confirmation_prompt=confirm)


def _ensure_unlocked(vault: VaultManager) -> None:
    """Prompt for the password when protection is on and the session is locked."""
    if vault.state is not SecurityState.LOCKED:
        return
    if not vault.unlock(_prompt_password()):
        console.print("[red]Error: Incorrect password[/red]")
        raise typer.Exit(1)


def _validate_provider(provider: str) -> str:
    provider = provider.lower()
    if provider not in PROVIDER_NAMES:
        console.print(
            f"[red]Error: Unknown provider '{provider}'. "
            f"Choose from: {', '.join(PROVIDER_NAMES)}[/red]"
        )
        raise typer.Exit(1)
    return provider


def _mask(value: str) -> str:
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:3]}...{value[-4:]}"


def _parse_sections(names: Optional[list[str]], default: tuple[str, ...]) -> tuple[str, ...]:
    from ..backup.models import SECTIONS

    if not names:
        return default
    by_lower = {name.lower(): name for name in SECTIONS}
    chosen = []
    for name in names:
        section = by_lower.get(name.lower())
        if section is None:
            console.print(
                f"[red]Error: Unknown section '{name}'. Choose from: {', '.join(SECTIONS)}[/red]"
            )
            raise typer.Exit(1)
        chosen.append(section)
    return tuple(chosen)


# ----------------------------------------------------------------------
# security
# ----------------------------------------------------------------------


@security_app.command("setup")
def security_setup():
    """
    Enable password protection for stored API keys.

    Existing keys are re-encrypted under the new password.
    """
    from ..vault.password import validate_password

    vault = _open_vault()
    if vault.is_protection_enabled():
        console.print("[yellow]Password protection is already enabled. Use 'security change-password'.[/yellow]")
        raise typer.Exit(1)

    password = _prompt_password("New password", confirm=True)
    validation = validate_password(password)
    if validation.valid and not validation.is_strong:
        console.print(f"[yellow]{validation.message}[/yellow]")

    with _vault_errors():
        vault.setup_password(password)

    console.print("[green]Password protection enabled.[/green]")
    console.print("[dim]If you forget this password, stored API keys cannot be recovered.[/dim]")


@security_app.command("status")
def security_status():
    """Show protection state and stored data."""
    from ..backup.backups import get_recent_backups

    vault = _open_vault()
    with _vault_errors():
        state = vault.state
        config = vault.load_security_config()

    table = Table(title="Horizen Security")
    table.add_column("Property", style="cyan")
    table.add_column("Value")

    table.add_row("Protection", state.value.replace("_", " "))
    if config is not None and config.enabled:
        table.add_row("Key derivation", f"PBKDF2-SHA256, {config.iterations:,} iterations")
        table.add_row("Session timeout", f"{config.session_timeout_minutes} minutes")
    table.add_row("Encrypted API keys", "yes" if vault.secrets.has_blob() else "no")
    table.add_row("Pre-import backups", str(len(get_recent_backups(vault.storage))))
    table.add_row("Storage", str(get_settings().storage_path))

    console.print(table)


@security_app.command("unlock")
def security_unlock():
    """Check the password against the stored keys."""
    vault = _open_vault()
    if not vault.is_protection_enabled():
        console.print("[yellow]Password protection is not enabled.[/yellow]")
        return

    with _vault_errors():
        unlocked = vault.unlock(_prompt_password())

    if not unlocked:
        console.print("[red]Error: Incorrect password[/red]")
        raise typer.Exit(1)
    console.print("[green]Password accepted.[/green]")


@security_app.command("change-password")
def security_change_password():
    """Change the protection password."""
    vault = _open_vault()
    if not vault.is_protection_enabled():
        console.print("[red]Error: Password protection is not enabled.[/red]")
        raise typer.Exit(1)

    old_password = _prompt_password("Current password")
    new_password = _prompt_password("New password", confirm=True)

    with _vault_errors():
        changed = vault.change_password(old_password, new_password)

    if not changed:
        console.print("[red]Error: Current password is incorrect[/red]")
        raise typer.Exit(1)
    console.print("[green]Password changed.[/green]")


@security_app.command("disable")
def security_disable(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """
    Turn password protection off.

    API keys are kept under a device key when the password is given.
    """
    vault = _open_vault()
    with _vault_errors():
        state = vault.state

    if state is SecurityState.DISABLED:
        console.print("[yellow]Password protection is already disabled.[/yellow]")
        return

    if state is SecurityState.LOCKED:
        with _vault_errors():
            _ensure_unlocked(vault)

    if not yes:
        typer.confirm("Disable password protection?", abort=True)

    with _vault_errors():
        vault.disable_protection()
    console.print("[green]Password protection disabled.[/green]")


@security_app.command("reset")
def security_reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """
    Forget the password and delete all stored API keys.

    This cannot be undone.
    """
    if not yes:
        typer.confirm(
            "This permanently deletes all stored API keys. Continue?",
            abort=True,
        )

    vault = _open_vault()
    vault.reset_protection()
    console.print("[green]Protection reset. Stored API keys were deleted.[/green]")


# ----------------------------------------------------------------------
# keys
# ----------------------------------------------------------------------


@keys_app.command("list")
def keys_list():
    """List stored API keys (masked)."""
    vault = _open_vault()
    with _vault_errors():
        _ensure_unlocked(vault)
        keys = vault.secrets.get_api_keys()

    table = Table(title="API Keys")
    table.add_column("Provider", style="cyan")
    table.add_column("Key")

    for provider in ModelProvider:
        value = keys.get(provider.value)
        table.add_row(PROVIDER_LABELS[provider], _mask(value) if value else "[dim]not set[/dim]")

    console.print(table)


@keys_app.command("set")
def keys_set(
    provider: str = typer.Argument(..., help="Provider: openai, anthropic or gemini"),
):
    """Store an API key for a provider."""
    provider = _validate_provider(provider)
    vault = _open_vault()

    with _vault_errors():
        _ensure_unlocked(vault)
        value = typer.prompt(f"{PROVIDER_LABELS[ModelProvider(provider)]} API key", hide_input=True)
        vault.secrets.update_api_key(provider, value.strip())

    console.print(f"[green]Saved API key for {PROVIDER_LABELS[ModelProvider(provider)]}.[/green]")


@keys_app.command("clear")
def keys_clear(
    provider: str = typer.Argument(..., help="Provider: openai, anthropic or gemini"),
):
    """Remove the API key for a provider."""
    provider = _validate_provider(provider)
    vault = _open_vault()

    with _vault_errors():
        _ensure_unlocked(vault)
        vault.secrets.clear_api_key(provider)

    console.print(f"[green]Cleared API key for {PROVIDER_LABELS[ModelProvider(provider)]}.[/green]")


@keys_app.command("migrate")
def keys_migrate():
    """Encrypt API keys left in the old plaintext record."""
    from ..vault.migration import migrate_from_plaintext

    vault = _open_vault()
    with _vault_errors():
        _ensure_unlocked(vault)
        migrated = migrate_from_plaintext(vault.secrets)

    if migrated:
        console.print("[green]Plaintext API keys moved to encrypted storage.[/green]")
    else:
        console.print("No plaintext API keys to migrate.")


# ----------------------------------------------------------------------
# backup
# ----------------------------------------------------------------------


@backup_app.command("export")
def backup_export(
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output file (default: horizen-backup-v2-<timestamp>.json)",
    ),
    sections: Optional[list[str]] = typer.Option(
        None,
        "--section", "-s",
        help="Section to include (apiKeys, chats, settings, widgets); repeatable",
    ),
    encrypt: bool = typer.Option(
        False,
        "--encrypt", "-e",
        help="Encrypt the backup with a password (required for API keys)",
    ),
):
    """
    Export preferences, chats, widgets and API keys to a backup file.
    """
    from ..backup.exporter import export_data_v2, export_filename
    from ..backup.models import SECTION_API_KEYS, SECTIONS, SelectionTree

    default = SECTIONS if encrypt else tuple(s for s in SECTIONS if s != SECTION_API_KEYS)
    chosen = _parse_sections(sections, default)

    if SECTION_API_KEYS in chosen and not encrypt:
        console.print("[red]Error: API keys can only be exported with --encrypt[/red]")
        raise typer.Exit(1)

    vault = _open_vault()
    prefs = _open_prefs().prefs

    with _vault_errors():
        if SECTION_API_KEYS in chosen:
            _ensure_unlocked(vault)
        password = _prompt_password("Backup password", confirm=True) if encrypt else None
        text = export_data_v2(
            prefs,
            SelectionTree.for_prefs(prefs, sections=chosen),
            password=password,
            secret_store=vault.secrets,
        )

    output = output or Path.cwd() / export_filename()
    output.write_text(text, encoding="utf-8")

    console.print(f"[green]Backup written to {output}[/green]")
    if encrypt:
        console.print("[dim]Keep the backup password safe; it cannot be recovered.[/dim]")


def _load_backup(backup_file: Path) -> tuple[dict, Optional[str]]:
    """Read a backup, prompting for a password if a 1.x file needs one."""
    from ..backup.legacy import load_backup_document

    if not backup_file.exists():
        console.print(f"[red]Error: File not found: {backup_file}[/red]")
        raise typer.Exit(1)

    text = backup_file.read_text(encoding="utf-8")
    with _vault_errors():
        try:
            return load_backup_document(text), None
        except PasswordRequiredError:
            password = _prompt_password("Backup password")
            return load_backup_document(text, password), password


@backup_app.command("inspect")
def backup_inspect(
    backup_file: Path = typer.Argument(..., help="Backup file"),
):
    """Show what a backup file contains."""
    from ..backup.exporter import get_available_sections, verify_import_hash
    from ..backup.models import SECTION_CHATS, SECTION_WIDGETS, SECTIONS

    doc, _ = _load_backup(backup_file)
    available = get_available_sections(doc)
    encrypted = doc.get("encryptedSections") or {}

    console.print(f"\n[bold]Backup: {backup_file.name}[/bold]")
    console.print(f"Format: {doc.get('version')} (app {doc.get('appVersion', 'unknown')})")
    console.print(f"Exported: {doc.get('exportedAt')}")
    if doc.get("hash"):
        ok = verify_import_hash(doc)
        console.print(f"Integrity: {'[green]verified[/green]' if ok else '[red]MISMATCH[/red]'}")

    table = Table(title="Sections")
    table.add_column("Section", style="cyan")
    table.add_column("Encrypted")
    table.add_column("Items")

    for name in SECTIONS:
        section = available.section(name)
        if section is None:
            continue
        if name in (SECTION_CHATS, SECTION_WIDGETS):
            items = str(len(section.items)) if section.items else "[dim]unknown until decrypted[/dim]"
        else:
            # Item names are fixed; the flag marks which are present
            items = ", ".join(k for k, present in section.items.items() if present)
        table.add_row(name, "yes" if name in encrypted else "no", items)

    console.print(table)


@backup_app.command("import")
def backup_import(
    backup_file: Path = typer.Argument(..., help="Backup file"),
    sections: Optional[list[str]] = typer.Option(
        None,
        "--section", "-s",
        help="Section to import (default: all present); repeatable",
    ),
    chats: str = typer.Option("append", "--chats", help="Chat strategy: append or replace"),
    links: str = typer.Option("merge", "--links", help="Quick link strategy: merge or replace"),
    widgets: str = typer.Option("merge", "--widgets", help="Widget strategy: merge or replace"),
    no_backup: bool = typer.Option(False, "--no-backup", help="Skip the pre-import snapshot"),
    force: bool = typer.Option(False, "--force", help="Import even if the integrity check fails"),
):
    """
    Import a backup file into the current preferences.
    """
    from ..backup.exporter import get_available_sections, is_encrypted_export_v2
    from ..backup.importer import import_data_v2
    from ..backup.models import (
        SECTION_API_KEYS,
        SECTIONS,
        ChatMergeStrategy,
        ImportOptions,
        MergeStrategies,
        MergeStrategy,
    )

    try:
        strategies = MergeStrategies(
            chats=ChatMergeStrategy(chats),
            quick_links=MergeStrategy(links),
            widgets=MergeStrategy(widgets),
        )
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    doc, password = _load_backup(backup_file)
    chosen = _parse_sections(sections, SECTIONS)

    available = get_available_sections(doc).select_all()
    for name in SECTIONS:
        section = available.section(name)
        if section is not None and name not in chosen:
            section.selected = False

    vault = _open_vault()
    prefs_store = _open_prefs()

    with _vault_errors():
        if available.is_selected(SECTION_API_KEYS):
            _ensure_unlocked(vault)
        if is_encrypted_export_v2(doc) and password is None:
            password = _prompt_password("Backup password")

        result = import_data_v2(
            doc,
            prefs_store.prefs,
            ImportOptions(
                selection=available,
                merge_strategies=strategies,
                create_backup=not no_backup,
                allow_integrity_mismatch=force,
            ),
            password=password,
            secret_store=vault.secrets,
            backup_store=vault.storage,
        )

    prefs_store.set_prefs(result.apply)

    console.print("\n[bold green]Import complete![/bold green]")
    for line in result.summary():
        console.print(f"  {line}")
    if result.backup_key:
        console.print(f"  Previous preferences saved as {result.backup_key}")
    for error in result.errors:
        console.print(f"  [yellow]{error}[/yellow]")

    if not result.success:
        raise typer.Exit(1)


@backup_app.command("backups")
def backup_list():
    """List pre-import snapshots."""
    from ..backup.backups import get_recent_backups

    vault = _open_vault()
    backups = get_recent_backups(vault.storage)
    if not backups:
        console.print("No backups found.")
        return

    table = Table(title="Pre-import Backups")
    table.add_column("Key", style="cyan")
    table.add_column("Created (UTC)")

    for info in backups:
        table.add_row(info.key, info.created_at.strftime("%Y-%m-%d %H:%M:%S"))

    console.print(table)


@backup_app.command("restore")
def backup_restore(
    key: str = typer.Argument(..., help="Backup key from 'backup backups'"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Restore preferences from a pre-import snapshot."""
    from ..backup.backups import restore_backup

    vault = _open_vault()
    prefs = restore_backup(key, vault.storage)
    if prefs is None:
        console.print(f"[red]Error: Backup not found or unreadable: {key}[/red]")
        raise typer.Exit(1)

    if not yes:
        typer.confirm("Replace current preferences with this backup?", abort=True)

    _open_prefs().set_prefs(lambda _: prefs)
    console.print(f"[green]Restored preferences from {key}[/green]")


@app.command()
def version():
    """Show version information."""
    console.print(f"Horizen Vault v{__version__}")
    console.print("Secrets protection and backups for the Horizen start page")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
