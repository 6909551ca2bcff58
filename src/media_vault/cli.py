"""CLI for media-vault.

Commands:
    init                 - Create the vault root, database and run the startup sweep
    import <path>        - Import files/directories and record them as items
    delete <item-id>...  - Delete items and reclaim blobs nobody references
    sweep                - Collect zero-reference blobs (and orphans)
    ledger               - Show the reference ledger
    thumbs               - Generate thumbnails for items still pending
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from media_vault.config import Settings
from media_vault.errors import VaultError
from media_vault.services.ledger import ReferenceLedger
from media_vault.services.records import item_from_import
from media_vault.vault import Vault

app = typer.Typer(
    name="media-vault",
    help="media-vault: content-addressed storage and import pipeline for a local media vault",
    no_args_is_help=True,
)
console = Console()

RootOption = Annotated[
    Path | None,
    typer.Option("--root", help="Vault root directory (defaults to MEDIA_VAULT_APP_ROOT)"),
]


def open_vault(root: Path | None) -> Vault:
    """Build settings, configure logging and start the vault."""
    settings = Settings(app_root=root) if root else Settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    vault = Vault(settings)
    vault.startup()
    return vault


@app.command()
def init(root: RootOption = None):
    """Create the vault layout and database, reconcile and sweep."""
    vault = open_vault(root)
    console.print(f"[green]Vault ready[/green] at {vault.settings.app_root}")
    vault.close()


@app.command("import")
def import_files(
    path: Annotated[Path, typer.Argument(help="File or directory to import")],
    recursive: Annotated[
        bool, typer.Option("--recursive", "-r", help="Recursively import directories")
    ] = False,
    no_thumb: Annotated[
        bool, typer.Option("--no-thumb", help="Leave thumbnails pending for a later pass")
    ] = False,
    root: RootOption = None,
):
    """Import files into the vault.

    Runs the pipeline: hash → dedupe → place → dimensions → thumbnail, then
    records one item per file.
    """
    files_to_process: list[Path] = []
    if path.is_file():
        files_to_process.append(path)
    elif path.is_dir():
        pattern = "**/*" if recursive else "*"
        files_to_process.extend(f for f in sorted(path.glob(pattern)) if f.is_file())
    else:
        console.print(f"[red]Error:[/red] Path does not exist: {path}")
        raise typer.Exit(1)

    if not files_to_process:
        console.print("[yellow]No files found to import.[/yellow]")
        raise typer.Exit(0)

    vault = open_vault(root)
    console.print(f"[blue]Importing {len(files_to_process)} file(s)...[/blue]\n")

    imported = 0
    deduped = 0
    failed = 0
    for file_path in files_to_process:
        try:
            result = vault.import_path(file_path, make_thumbnail=not no_thumb)
            item = vault.records.insert_item(item_from_import(result))
        except VaultError as e:
            failed += 1
            console.print(f"  {file_path.name}: [red]ERROR[/red] {e}")
            continue

        imported += 1
        if result.deduped:
            deduped += 1
        label = "[yellow]DEDUPED[/yellow]" if result.deduped else "[green]OK[/green]"
        console.print(
            f"  {file_path.name}: {label} → {result.vault_key[:16]}… "
            f"(thumb: {result.thumbnail_status.value}, item: {item.id})"
        )

    console.print()
    console.print(
        f"[bold]Summary:[/bold] {imported} imported ({deduped} deduplicated), {failed} failed"
    )
    vault.close()
    if failed:
        raise typer.Exit(1)


@app.command()
def delete(
    item_ids: Annotated[list[str], typer.Argument(help="Item IDs to delete")],
    root: RootOption = None,
):
    """Delete items and reclaim blobs that are no longer referenced."""
    vault = open_vault(root)
    result = vault.records.delete_items_with_cleanup(item_ids)
    console.print(f"Deleted {result.deleted_rows} item(s)")
    for entry in result.cleanup:
        status = "[green]removed[/green]" if entry.row_removed else "[yellow]retained[/yellow]"
        console.print(f"  {entry.key}: {status} ({entry.blobs_deleted} file(s) deleted)")
    vault.close()


@app.command()
def sweep(root: RootOption = None):
    """Collect zero-reference blobs and prune orphans."""
    vault = open_vault(root)
    # startup() already swept once; run again to report on a settled state
    report = vault.sweep()
    console.print(
        f"[bold]Sweep:[/bold] {report.rows_removed} row(s) removed, "
        f"{report.rows_retained} retained, {report.blobs_deleted} blob(s) deleted, "
        f"{report.orphans_pruned} orphan(s) and {report.duplicates_pruned} duplicate(s) pruned"
    )
    vault.close()


@app.command()
def ledger(
    zero_only: Annotated[
        bool, typer.Option("--zero-only", help="Only rows with no references")
    ] = False,
    root: RootOption = None,
):
    """Show the reference ledger."""
    vault = open_vault(root)
    with vault.session_factory() as session:
        entries = ReferenceLedger(session).entries(zero_only=zero_only)

    if not entries:
        console.print("[yellow]Ledger is empty.[/yellow]")
        vault.close()
        raise typer.Exit(0)

    table = Table(title=f"Vault Ledger ({len(entries)})")
    table.add_column("Key")
    table.add_column("Refs", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Path")
    for entry in entries:
        table.add_row(
            f"{entry.digest[:16]}….{entry.ext}",
            str(entry.ref_count),
            f"{entry.size_bytes:,}",
            entry.path,
        )
    console.print(table)
    vault.close()


@app.command()
def thumbs(root: RootOption = None):
    """Generate thumbnails for image items still marked pending."""
    vault = open_vault(root)
    results = vault.backfill_thumbnails()
    ok = sum(1 for r in results if r.ok)
    console.print(f"[bold]Thumbnails:[/bold] {ok} generated, {len(results) - ok} failed")
    vault.close()


if __name__ == "__main__":
    app()
