"""
Command-line interface for Kryptos.

Thin glue over the core: scan gate, vault lifecycle and interactive
protection. Exit codes: 0 clean, 1 findings, 2 error.
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.prompt import Prompt
from rich.table import Table

from Kryptos.config import DetectorConfig, default_key_dir, load_config
from Kryptos.core.detector import Detector
from Kryptos.core.errors import KryptosError, RotationAbortedError
from Kryptos.core.placeholder import make_placeholder, parse_placeholder
from Kryptos.core.result import Severity
from Kryptos.core.scanner import scan_directory, scan_file
from Kryptos.remediation.engine import (
    PendingDecision,
    RemediationEngine,
    Resolution,
    Resolver,
    accept_all,
)
from Kryptos.vault.crypto import KeyPair, load_private_key, save_private_key
from Kryptos.vault.store import Vault

app = typer.Typer(
    name="kryptos",
    help="Kryptos - Secrets detection and vaulting for code repositories",
    add_completion=False,
)
vault_app = typer.Typer(help="Manage the project vault", add_completion=False)
app.add_typer(vault_app, name="vault")

console = Console()
error_console = Console(stderr=True)

_MIB = 1024 * 1024

SEVERITY_COLORS = {
    Severity.CRITICAL: "red bold",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "blue",
}


@app.callback()
def _configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _fail(message: str) -> typer.Exit:
    error_console.print(f"[red]✗[/red] {escape(message)}")
    return typer.Exit(code=2)


def _key_path(vault: Vault, key: Optional[Path]) -> Path:
    if key is not None:
        return key
    return default_key_dir() / f"{vault.vault_id}.key"


def _load_key(vault: Vault, key: Optional[Path], passphrase: Optional[str]) -> KeyPair:
    path = _key_path(vault, key)
    try:
        return load_private_key(path, passphrase.encode("utf-8") if passphrase else None)
    except FileNotFoundError:
        raise _fail(f"Private key not found: {path}")
    except (OSError, TypeError, ValueError) as e:
        raise _fail(f"Cannot load private key {path}: {e}")


@app.command()
def scan(
    path: Path = typer.Argument(..., help="File or directory to scan"),
    recursive: bool = typer.Option(
        True, "--recursive/--no-recursive", "-r",
        help="Scan directories recursively"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output results as JSON"),
    min_confidence: float = typer.Option(
        0.5, "--min-confidence",
        help="Confidence floor (0.0-1.0); findings at or above it fail the scan"
    ),
    max_file_size: int = typer.Option(10, "--max-size", help="Max file size in MB"),
    workers: Optional[int] = typer.Option(None, "--workers", help="Scanner threads"),
    no_entropy: bool = typer.Option(False, "--no-entropy", help="Pattern rules only"),
    ignore: Optional[str] = typer.Option(
        None, "--ignore",
        help="Comma-separated patterns to ignore"
    ),
) -> None:
    """
    Scan a file or directory for secrets.

    Examples:

        # Scan a single file
        kryptos scan config.env

        # Scan a directory recursively
        kryptos scan ./my_project

        # Output as JSON
        kryptos scan ./my_project --json

        # Only fail on strong findings
        kryptos scan ./my_project --min-confidence 0.8
    """
    if not path.exists():
        raise _fail(f"Path not found: {path}")

    try:
        base = DetectorConfig(
            confidence_floor=min_confidence,
            entropy_sweep=not no_entropy,
            max_file_size=max_file_size * _MIB,
            workers=workers,
        )
    except ValueError as e:
        raise _fail(str(e))

    if path.is_file():
        result = scan_file(path, config=load_config(path.parent, base))
    else:
        ignore_patterns = set(ignore.split(",")) if ignore else set()
        result = scan_directory(
            path,
            recursive=recursive,
            ignore_patterns=ignore_patterns,
            config=load_config(path, base),
        )

    for error in result.errors:
        error_console.print(f"[yellow]⚠[/yellow]  {escape(error)}")
    for sensitive in result.sensitive_files:
        error_console.print(f"[yellow]⚠[/yellow]  Credential file tracked in the project: {escape(sensitive)} (see kryptos vault seal-files)")

    blocking = result.blocking(min_confidence)

    if json_output:
        print(json.dumps(result.to_dict(), indent=2))
        raise typer.Exit(code=1 if blocking else 0)

    if not blocking:
        console.print("[green]✓[/green] No secrets detected")
        console.print(f"Scanned {result.scanned_files} files in {result.duration_ms:.0f}ms")
        raise typer.Exit(code=0)

    table = Table(
        title=f"Found {len(blocking)} potential secrets",
        show_header=True
    )
    table.add_column("Severity", style="bold")
    table.add_column("Type", style="cyan")
    table.add_column("Location")
    table.add_column("Rule")
    table.add_column("Evidence")

    for finding in blocking:
        severity_style = SEVERITY_COLORS.get(finding.severity, "white")
        severity_text = f"[{severity_style}]{finding.severity.value.upper()}[/{severity_style}]"
        location = f"{finding.file_path}:{finding.line}:{finding.column}" if finding.file_path else "text input"
        table.add_row(
            severity_text,
            finding.kind.value,
            escape(location),
            finding.rule_id,
            escape(finding.redacted),
        )

    console.print(table)
    console.print(f"\nScanned {result.scanned_files} files in {result.duration_ms:.0f}ms")
    console.print(
        f"[yellow]⚠[/yellow]  Found {result.critical_count} critical, "
        f"{result.high_count} high severity secrets"
    )
    raise typer.Exit(code=1)


@vault_app.command("init")
def vault_init(
    root: Path = typer.Option(Path("."), "--root", help="Project root"),
    key: Optional[Path] = typer.Option(
        None, "--key",
        help="Where to write the private key (default: ~/.config/kryptos/keys/<vault id>.key)"
    ),
    passphrase: Optional[str] = typer.Option(
        None, "--passphrase", envvar="KRYPTOS_KEY_PASSPHRASE",
        help="Encrypt the private key file with this passphrase"
    ),
) -> None:
    """Create the project vault and its owner key pair."""
    vault = Vault(root)
    try:
        key_pair = vault.initialize()
    except KryptosError as e:
        raise _fail(str(e))

    with key_pair:
        path = _key_path(vault, key)
        try:
            save_private_key(
                key_pair,
                path,
                project_root=root,
                passphrase=passphrase.encode("utf-8") if passphrase else None,
            )
        except (OSError, ValueError) as e:
            # Without the private key the vault cannot be opened; start over.
            vault.path.unlink()
            raise _fail(f"Cannot store private key: {e}")

    console.print(f"[green]✓[/green] Vault created at {escape(str(vault.path))}")
    console.print(f"Private key written to {escape(str(path))} (keep it out of version control)")


@vault_app.command("list")
def vault_list(
    root: Path = typer.Option(Path("."), "--root", help="Project root"),
) -> None:
    """List sealed entries. Nothing is decrypted."""
    vault = Vault(root)
    try:
        entries = vault.list_entries()
    except KryptosError as e:
        raise _fail(str(e))

    if not entries:
        console.print("Vault is empty")
        return

    table = Table(title=f"{len(entries)} sealed entries", show_header=True)
    table.add_column("Id", style="cyan")
    table.add_column("Label")
    table.add_column("Origin")
    table.add_column("Created")
    for entry in entries:
        origin = entry.provenance.path
        if entry.provenance.whole_file:
            origin = f"{origin} (file)"
        if origin and entry.provenance.line:
            origin = f"{origin}:{entry.provenance.line}"
        table.add_row(entry.id, escape(entry.label), escape(origin), entry.created_at)
    console.print(table)


@vault_app.command("unseal")
def vault_unseal(
    entry: str = typer.Argument(..., help="Entry id or kryptos-vault:// placeholder"),
    root: Path = typer.Option(Path("."), "--root", help="Project root"),
    key: Optional[Path] = typer.Option(None, "--key", help="Private key file"),
    passphrase: Optional[str] = typer.Option(
        None, "--passphrase", envvar="KRYPTOS_KEY_PASSPHRASE",
        help="Passphrase of the private key file"
    ),
) -> None:
    """Print the plaintext of one entry."""
    vault = Vault(root)
    entry_id = parse_placeholder(entry) or entry
    try:
        with _load_key(vault, key, passphrase) as key_pair:
            plaintext = vault.unseal(entry_id, key_pair)
    except KryptosError as e:
        raise _fail(str(e))
    typer.echo(plaintext.decode("utf-8", errors="replace"))


@vault_app.command("rotate")
def vault_rotate(
    root: Path = typer.Option(Path("."), "--root", help="Project root"),
    key: Optional[Path] = typer.Option(None, "--key", help="Current private key file"),
    passphrase: Optional[str] = typer.Option(
        None, "--passphrase", envvar="KRYPTOS_KEY_PASSPHRASE",
        help="Passphrase of the private key files"
    ),
) -> None:
    """
    Re-seal every entry under a new key pair.

    The new key replaces the current key file; the old key is kept next to
    it with a .retired suffix.
    """
    vault = Vault(root)
    try:
        key_path = _key_path(vault, key)
    except KryptosError as e:
        raise _fail(str(e))
    secret = passphrase.encode("utf-8") if passphrase else None

    with _load_key(vault, key, passphrase) as old, KeyPair.generate() as new:
        new_path = key_path.with_name(f"{key_path.name}.{new.fingerprint}.new")
        try:
            save_private_key(new, new_path, project_root=root, passphrase=secret)
        except (OSError, ValueError) as e:
            raise _fail(f"Cannot store new private key: {e}")
        try:
            vault.rotate(old, new)
        except KryptosError as e:
            new_path.unlink()
            if isinstance(e, RotationAbortedError):
                raise _fail(f"{e}. The current key is still valid.")
            raise _fail(str(e))

    retired = key_path.with_name(f"{key_path.name}.retired")
    os.replace(key_path, retired)
    os.replace(new_path, key_path)
    console.print(f"[green]✓[/green] Vault rotated to key {new.fingerprint}")
    console.print(f"Old key moved to {escape(str(retired))}; it no longer opens any entry")


@vault_app.command("seal-files")
def vault_seal_files(
    paths: Optional[List[Path]] = typer.Argument(
        None, help="Credential files to seal (default: every credential file in the project)"
    ),
    root: Path = typer.Option(Path("."), "--root", help="Project root"),
    keep: bool = typer.Option(False, "--keep", help="Leave the files in place after sealing"),
) -> None:
    """
    Seal whole credential files (.env, *.pem, id_rsa...) into the vault.

    Each file is removed once its entry is stored; restore it with
    'kryptos vault restore'.
    """
    engine = RemediationEngine(Vault(root))
    try:
        if paths:
            entries = [engine.seal_file(path, keep=keep) for path in paths]
        else:
            entries = engine.seal_sensitive_files(keep=keep)
    except KryptosError as e:
        raise _fail(str(e))

    if not entries:
        console.print("No credential files found")
        return
    for entry in entries:
        console.print(f"[green]✓[/green] {escape(entry.provenance.path)} sealed as {entry.id}")


@vault_app.command("restore")
def vault_restore(
    entry: str = typer.Argument(..., help="Entry id of a sealed file"),
    root: Path = typer.Option(Path("."), "--root", help="Project root"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o",
        help="Where to write the file (default: its original location)"
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
    key: Optional[Path] = typer.Option(None, "--key", help="Private key file"),
    passphrase: Optional[str] = typer.Option(
        None, "--passphrase", envvar="KRYPTOS_KEY_PASSPHRASE",
        help="Passphrase of the private key file"
    ),
) -> None:
    """Write a sealed file back to disk (mode 0600)."""
    vault = Vault(root)
    engine = RemediationEngine(vault)
    entry_id = parse_placeholder(entry) or entry
    try:
        with _load_key(vault, key, passphrase) as key_pair:
            target = engine.restore_file(entry_id, key_pair, target=output, overwrite=force)
    except KryptosError as e:
        raise _fail(str(e))
    console.print(f"[green]✓[/green] Restored {escape(str(target))}")


def _interactive_resolver(
state: Dict[str, bool]) -> Resolver:
    def resolve(decision: PendingDecision) -> Resolution:
        f = decision.finding
        console.print(
            f"\n[bold]{escape(f.file_path)}:{f.line}[/bold] "
            f"{f.kind.value} ({f.rule_id}, confidence {f.confidence:.2f})"
        )
        console.print(f"  {escape(decision.preview)}")
        choice = Prompt.ask(
            "Protect as " + escape(decision.proposed_name) + "? (y)es, (n)o, (e)dit, (q)uit",
            choices=["y", "n", "e", "q"],
            default="y",
            show_choices=False,
            console=console,
        )
        if choice == "y":
            return Resolution.accept()
        if choice == "e":
            name = Prompt.ask("Variable name", default=decision.proposed_name, console=console)
            value = Prompt.ask("Part of the value to seal (empty = all)", default="", console=console)
            return Resolution.edit(name=name, value=value or None)
        if choice == "q":
            state["cancel"] = True
        return Resolution.skip()

    return resolve


@app.command()
def protect(
    paths: List[Path] = typer.Argument(..., help="Files to protect"),
    root: Path = typer.Option(Path("."), "--root", help="Project root holding the vault"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Protect every finding without asking"),
    min_confidence: float = typer.Option(0.5, "--min-confidence", help="Confidence floor (0.0-1.0)"),
    template: Optional[Path] = typer.Option(
        None, "--template",
        help="Template file to regenerate (default: <root>/.env.example)"
    ),
) -> None:
    """
    Move secrets from source files into the vault.

    Each secret is replaced with a kryptos-vault:// placeholder and the
    template file is regenerated from the vault.
    """
    try:
        config = load_config(root, DetectorConfig(confidence_floor=min_confidence))
    except ValueError as e:
        raise _fail(str(e))
    detector = Detector(config)
    engine = RemediationEngine(Vault(root))

    state: Dict[str, bool] = {"cancel": False}
    resolver = accept_all if yes else _interactive_resolver(state)

    protected = 0
    for path in paths:
        if state["cancel"]:
            break
        if not path.is_file():
            raise _fail(f"Not a file: {path}")
        try:
            result = engine.remediate_file(
                path,
                resolver,
                detector=detector,
                template_path=template,
                should_cancel=lambda: state["cancel"],
            )
        except KryptosError as e:
            raise _fail(str(e))
        protected += len(result.entries)
        if result.changed:
            console.print(f"[green]✓[/green] {escape(str(path))}: {len(result.entries)} secrets moved to the vault")
            for entry in result.entries:
                console.print(f"  {result.template.name_for(entry.id)} -> {make_placeholder(entry.id)}")
        elif not result.skipped:
            console.print(f"{escape(str(path))}: no secrets found")

    console.print(f"Protected {protected} secrets")


@app.command()
def version() -> None:
    """Display version information."""
    from Kryptos import __version__
    console.print(f"Kryptos version {__version__}")


def main() -> None:
    """Main entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
