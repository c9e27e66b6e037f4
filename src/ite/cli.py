"""CLI commands for reconciling inline text edits into site sources."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer

from .batch import apply_edits as run_apply_edits
from .config import (
    DEFAULT_CONFIG_NAME,
    copy_config_template,
    read_config,
    resolve_project_root,
    search_settings,
    server_settings,
    write_config,
)
from .errors import StorageUnavailable
from .memory.schema import EditStatus
from .memory.store import EditLedger
from .reconcile import Reconciler

APP_HELP = "Inline text editor CLI entry point."

app = typer.Typer(help=APP_HELP)


def load_config(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration from disk and return it as a dictionary."""
    if not config_path.exists():
        raise typer.BadParameter(f"Config file not found: {config_path}")
    try:
        return read_config(config_path)
    except ValueError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _open_ledger(config_data: Dict[str, Any]) -> EditLedger:
    try:
        return EditLedger.from_config(config_data)
    except StorageUnavailable as error:
        typer.echo(f"Error: {error}")
        raise typer.Exit(code=1) from error


def _config_option() -> Any:
    return typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the editor configuration file.",
    )


@app.command()
def init(
    config: str = _config_option(),
    root: str = typer.Option(".", "--root", help="Site project root relative to the config file."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file."),
) -> None:
    """Write a default configuration file."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"Config already exists at {config_path}; use --force to overwrite.")
        raise typer.Exit(code=1)
    config_data = copy_config_template()
    config_data["project"]["root"] = root
    config_data["paths"]["config"] = config_path.name
    write_config(config_path, config_data)
    typer.echo(f"Wrote configuration to {config_path}.")


@app.command("apply-edits")
def apply_edits(
    url: Optional[str] = typer.Option(None, "--url", help="Page URL whose edits should be applied."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Match edits without writing files or statuses."),
    apply_all: bool = typer.Option(False, "--apply-all", help="Also re-run edits that are already applied."),
    config: str = _config_option(),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Apply recorded edits for one page to the source files."""
    _configure_logging(verbose)
    if not url:
        typer.echo("--url parameter is required")
        typer.echo("  Usage: ite apply-edits --url=<page-url> [--dry-run] [--apply-all]")
        raise typer.Exit(code=1)

    config_path = Path(config)
    config_data = load_config(config_path)
    project_root = resolve_project_root(config_data, config_path)

    typer.echo(f"Applying edits for URL: {url}")
    typer.echo(f"Mode: {'DRY RUN (no changes will be applied)' if dry_run else 'LIVE RUN'}")
    typer.echo(
        "Edit filter: "
        + ("ALL edits (including already applied)" if apply_all else "Only pending/processing/failed edits")
    )

    with _open_ledger(config_data) as ledger:
        reconciler = Reconciler(ledger, project_root, search_settings(config_data))
        try:
            summary = run_apply_edits(reconciler, url, dry_run=dry_run, apply_all=apply_all, echo=typer.echo)
        except StorageUnavailable as error:
            typer.echo(f"Error: {error}")
            raise typer.Exit(code=1) from error

    if summary.total == 0:
        typer.echo(f"No {'' if apply_all else 'pending '}edits found for URL: {url}")
        return

    if apply_all:
        breakdown = ", ".join(f"{status}: {count}" for status, count in sorted(summary.status_breakdown.items()))
        typer.echo(f"Status breakdown: {breakdown}")
    typer.echo(summary.format_summary())

    if summary.applied and not dry_run:
        typer.echo(f"Successfully applied {summary.applied} edits to codebase!")
        typer.echo("Review changes with: git diff")
    if summary.failed:
        typer.echo(f"{summary.failed} edit(s) failed. Check the log above for details.")


@app.command()
def history(
    url: Optional[str] = typer.Option(None, "--url", help="Restrict history to one page URL."),
    limit: int = typer.Option(50, "--limit", min=1, help="Maximum number of edits to show."),
    config: str = _config_option(),
) -> None:
    """Show recorded edits, newest first."""
    config_data = load_config(Path(config))
    with _open_ledger(config_data) as ledger:
        records = ledger.history(url, limit)
    if not records:
        typer.echo("No edits recorded.")
        return
    for record in records:
        typer.echo(
            f"[{record.id}] {record.status.value:<10} {record.page_url} "
            f"{record.component_id or '-'} \"{record.original_text}\" -> \"{record.new_text}\""
        )


@app.command()
def status(
    url: Optional[str] = typer.Option(None, "--url", help="Restrict counts to one page URL."),
    config: str = _config_option(),
) -> None:
    """Validate configuration and report ledger status counts."""
    config_path = Path(config)
    config_data = load_config(config_path)
    project_root = resolve_project_root(config_data, config_path)
    settings = server_settings(config_data)
    typer.echo(f"Project root: {project_root}")
    typer.echo(f"Mode: {settings.mode}")
    with _open_ledger(config_data) as ledger:
        reconciler = Reconciler(ledger, project_root, search_settings(config_data))
        typer.echo(
            f"Candidate files: {len(reconciler.component_files())} component, "
            f"{len(reconciler.data_files())} data"
        )
        counts = ledger.status_counts(url)
    typer.echo(" | ".join(f"{item.value} {counts.get(item.value, 0)}" for item in EditStatus))


@app.command()
def serve(
    config: str = _config_option(),
    host: Optional[str] = typer.Option(None, "--host", help="Override the configured bind host."),
    port: Optional[int] = typer.Option(None, "--port", help="Override the configured port."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Run the edit submission API."""
    import uvicorn

    from .server import create_app

    _configure_logging(verbose)
    config_path = Path(config)
    config_data = load_config(config_path)
    settings = server_settings(config_data)
    try:
        api = create_app(config_data, config_path=config_path)
    except StorageUnavailable as error:
        typer.echo(f"Error: {error}")
        raise typer.Exit(code=1) from error
    uvicorn.run(api, host=host or settings.host, port=port or settings.port)


if __name__ == "__main__":
    app()
