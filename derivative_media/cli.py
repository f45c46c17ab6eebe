"""
Command line interface for derivative media.

Thin typer layer over DerivativeOrchestrator; every command builds the
orchestrator from the same configuration so the CLI behaves like the host.
"""

import json
import logging
import os
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv
from rich.table import Table

from .config import console, load_config, setup_logging
from .derivatives import DerivativeOrchestrator
from .lookup import DirectoryMediaLookup, guess_media_type
from .models import MediaDescriptor, OperationResult, OperationStatus

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(
    name="derivative-media",
    help="Thumbnails and transcodes for stored media files",
)

# Options shared by every command, filled by the callback
state = {
    'config_path': None,
    'base_path': None,
    'verbose': False,
}


@app.callback()
def main(
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="JSON settings file"),
    base_path: Optional[str] = typer.Option(None, "--base-path", "-b", help="Storage root holding original/ and the derivatives"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Generate and inspect derivatives of stored media."""
    state['config_path'] = config_path
    state['base_path'] = base_path
    state['verbose'] = verbose


def _orchestrator(with_lookup: bool = False) -> DerivativeOrchestrator:
    setup_logging(logging.DEBUG if state['verbose'] else logging.WARNING)
    try:
        config = load_config(state['config_path'])
    except (OSError, ValueError) as e:
        console.print(f"[red]Cannot load configuration: {e}[/red]")
        raise typer.Exit(1)
    if state['base_path']:
        config.set_setting('base_path', state['base_path'])
    lookup = DirectoryMediaLookup(config.base_path) if with_lookup else None
    return DerivativeOrchestrator(config=config, lookup=lookup)


def _descriptor(source: str, base_path: str, storage_id: Optional[str], media_type: Optional[str]) -> MediaDescriptor:
    """
    Describe a file given on the command line.

    Files inside `{base_path}/original` keep their storage id (relative path
    without extension); other files default to their stem.
    """
    path = Path(source)
    if not path.is_file():
        console.print(f"[red]File not found: {source}[/red]")
        raise typer.Exit(1)

    if storage_id is None:
        original_dir = (Path(base_path) / 'original').resolve()
        resolved = path.resolve()
        if original_dir in resolved.parents:
            storage_id = os.path.splitext(resolved.relative_to(original_dir).as_posix())[0]
        else:
            storage_id = path.stem

    media_type = media_type or guess_media_type(str(path)) or 'application/octet-stream'
    return MediaDescriptor(
        id=storage_id,
        storage_id=storage_id,
        media_type=media_type,
        source_path=str(path),
        filename=path.name,
    )


def _print_result(result: OperationResult) -> None:
    if result.status == OperationStatus.SKIPPED:
        console.print(f"[yellow]Skipped:[/yellow] {result.reason}")
        return

    if result.artifacts:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Path")
        table.add_column("Bytes", justify="right")
        table.add_column("Size", justify="right", style="dim")
        for name, artifact in result.artifacts.items():
            dimensions = f"{artifact.width}x{artifact.height}" if artifact.width else ""
            table.add_row(name, artifact.relative_path, str(artifact.byte_size), dimensions)
        console.print(table)

    for name, failure in result.failures.items():
        console.print(f"[red]{name}: {failure.kind.value}[/red] {failure.reason}")
        if failure.output:
            console.print(failure.output, style="dim", markup=False)

    if result.status == OperationStatus.READY:
        console.print(f"[green]Done[/green] ({result.correlation_id})")
    else:
        console.print(f"[red]Failed:[/red] {result.reason} ({result.correlation_id})")


@app.command()
def thumbnail(
    source: str = typer.Argument(..., help="Image or video file"),
    storage_id: Optional[str] = typer.Option(None, "--storage-id", help="Storage id used for derivative paths"),
    media_type: Optional[str] = typer.Option(None, "--media-type", help="MIME type (guessed from the extension by default)"),
    percentage: Optional[int] = typer.Option(None, "--percentage", "-p", min=0, max=100, help="Video capture position in percent"),
    force: bool = typer.Option(False, "--force", "-f", help="Regenerate existing thumbnails"),
):
    """Create every configured thumbnail size for one file."""
    orchestrator = _orchestrator()
    descriptor = _descriptor(source, orchestrator.config.base_path, storage_id, media_type)
    result = orchestrator.generate_thumbnails(descriptor, percentage, force)
    _print_result(result)
    if result.status == OperationStatus.FAILED:
        raise typer.Exit(1)


@app.command()
def bulk(
    media_types: Optional[List[str]] = typer.Option(None, "--media-type", "-t", help="MIME type or 'type/*' to include (repeatable)"),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Maximum number of files to process"),
    force: bool = typer.Option(False, "--force", "-f", help="Regenerate existing thumbnails"),
    percentage: Optional[int] = typer.Option(None, "--percentage", "-p", min=0, max=100, help="Video capture position in percent"),
):
    """Create thumbnails for every original under the storage root."""
    orchestrator = _orchestrator(with_lookup=True)
    criteria = {
        'media_types': media_types or ['image/*', 'video/*'],
        'limit': limit,
    }
    console.print(f"[bold blue]Generating thumbnails under[/bold blue] {orchestrator.config.base_path}")
    try:
        summary = orchestrator.generate_thumbnails_bulk(criteria, force, percentage)
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
        raise typer.Exit(1)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Storage id", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Reason", style="dim")
    for item in summary.items:
        table.add_row(item.storage_id or "-", item.status.value, item.reason or "")
    if summary.items:
        console.print(table)

    counts = summary.counts()
    console.print(
        f"Processed: {counts['processed']}  Succeeded: {counts['succeeded']}  "
        f"Failed: {counts['failed']}  Skipped: {counts['skipped']}"
    )
    if summary.failed:
        raise typer.Exit(1)


@app.command()
def transcode(
    source: str = typer.Argument(..., help="Audio, video or PDF file"),
    target_format: str = typer.Argument(..., help="Converter profile, e.g. 'webm' or 'mp4/{filename}.mp4'"),
    storage_id: Optional[str] = typer.Option(None, "--storage-id", help="Storage id used for derivative paths"),
    media_type: Optional[str] = typer.Option(None, "--media-type", help="MIME type (guessed from the extension by default)"),
    force: bool = typer.Option(False, "--force", "-f", help="Convert even if the derivative exists"),
):
    """Convert one file through a converter profile."""
    orchestrator = _orchestrator()
    descriptor = _descriptor(source, orchestrator.config.base_path, storage_id, media_type)
    result = orchestrator.generate_transcode(descriptor, target_format, force)
    _print_result(result)
    if result.status == OperationStatus.FAILED:
        raise typer.Exit(1)


@app.command("list")
def list_command(
    source: str = typer.Argument(..., help="Original file"),
    storage_id: Optional[str] = typer.Option(None, "--storage-id", help="Storage id used for derivative paths"),
    media_type: Optional[str] = typer.Option(None, "--media-type", help="MIME type (guessed from the extension by default)"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table"),
):
    """Show every derivative a file can have and whether it exists."""
    orchestrator = _orchestrator()
    descriptor = _descriptor(source, orchestrator.config.base_path, storage_id, media_type)
    listings = orchestrator.list_derivatives(descriptor)

    if as_json:
        print(json.dumps([listing.model_dump(mode='json') for listing in listings], indent=2))
        return

    if not listings:
        console.print(f"[yellow]No derivatives apply to {descriptor.media_type}[/yellow]")
        return

    table = Table(title=descriptor.storage_id, show_header=True, header_style="bold magenta")
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Kind")
    table.add_column("Path")
    table.add_column("Ready", justify="center")
    table.add_column("Mode", style="dim")
    for listing in listings:
        ready = "[green]yes[/green]" if listing.ready else "[red]no[/red]"
        table.add_row(listing.key, listing.kind.value, listing.relative_path, ready, listing.mode)
    console.print(table)


@app.command()
def profiles():
    """List enabled converter profiles."""
    orchestrator = _orchestrator()
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Class")
    table.add_column("Output")
    table.add_column("Arguments", style="dim")
    for profile in orchestrator.config.converter_profiles():
        table.add_row(profile.key, profile.media_class.value, profile.output_template, profile.arguments)
    console.print(table)


@app.command("check-tools")
def check_tools():
    """Check that the external binaries can be run."""
    orchestrator = _orchestrator()
    status = orchestrator.tool_status()
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Tool", style="cyan")
    table.add_column("Binary")
    table.add_column("Available", justify="center")
    for tool, available in status.items():
        table.add_row(tool, orchestrator.config.tool_path(tool),
                      "[green]yes[/green]" if available else "[red]no[/red]")
    console.print(table)
    if not orchestrator.is_tool_available():
        console.print("[red]ffmpeg and ffprobe are required for video thumbnails[/red]")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
