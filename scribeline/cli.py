"""
scribeline.cli - Typer CLI entry point.

Provides the transcribe command plus model, history and environment
management subcommands.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from scribeline import __version__
from scribeline.config import (
    CONFIG_FILENAME,
    ScribelineConfig,
    create_default_config,
    default_data_dir,
    load_config,
    write_config,
)
from scribeline.exceptions import DependencyError, ScribelineError
from scribeline.history import HistoryStore
from scribeline.logging import configure_logging
from scribeline.utils import format_bytes, format_duration

app = typer.Typer(
    name="scribeline",
    help="Local, offline transcription toolkit.\n\n"
    "Transcribes audio/video files and remote videos on this machine with "
    "Whisper models it downloads and manages itself.",
    add_completion=False,
)
models_app = typer.Typer(help="Download, list and delete Whisper models.", add_completion=False)
history_app = typer.Typer(help="Browse and manage past transcriptions.", add_completion=False)
app.add_typer(models_app, name="models")
app.add_typer(history_app, name="history")

console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"scribeline {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
) -> None:
    """Scribeline - local, offline transcription toolkit."""
    configure_logging(verbose)


def print_error(e: ScribelineError) -> None:
    console.print(f"[red]Error: {e}[/red]")
    if isinstance(e, DependencyError) and e.install_hint:
        console.print(f"[dim]{e.install_hint}[/dim]")


def get_config() -> ScribelineConfig:
    try:
        return load_config()
    except ScribelineError as e:
        print_error(e)
        raise typer.Exit(1)


def get_history(config: ScribelineConfig) -> HistoryStore:
    return HistoryStore(config.history_path, max_entries=config.history_max_entries)


def is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


# Transcription


@app.command("transcribe")
def transcribe(
    source: str = typer.Argument(..., help="Audio/video file or remote video URL"),
    model: str | None = typer.Option(None, "--model", "-m", help="Whisper model (default from config)"),
    language: str | None = typer.Option(
        None, "--language", "-l", help="Language code, or 'auto' to detect"
    ),
    timestamps: bool = typer.Option(False, "--timestamps", "-t", help="Prefix lines with timestamps"),
    speed: float | None = typer.Option(
        None, "--speed", "-s", help="Speed audio up (1.0-2.0) before transcribing"
    ),
    captions: bool = typer.Option(
        False, "--captions", help="Use the remote video's captions instead of transcribing"
    ),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the transcript to a file"),
) -> None:
    """Transcribe a local file or a remote video."""
    from scribeline.io import write_text
    from scribeline.jobs.controller import JobController
    from scribeline.jobs.types import JobInput, JobRequest, JobState, ProgressEvent, TranscriptionOptions
    from scribeline.validation import validate_input_file

    config = get_config()
    remote = is_url(source)
    if captions and not remote:
        console.print("[red]Error: --captions only applies to remote URLs[/red]")
        raise typer.Exit(1)

    try:
        config.ensure_dirs()
        options = TranscriptionOptions(
            model_id=model or config.default_model,
            language=language or config.default_language,
            include_timestamps=timestamps,
            speed_factor=speed,
        )
        if not remote:
            validate_input_file(Path(source))
        job_input = JobInput.remote(source, use_captions=captions) if remote else JobInput.local(source)
        controller = JobController.from_config(config)
        job = controller.submit(JobRequest(input=job_input, options=options))
    except ScribelineError as e:
        print_error(e)
        raise typer.Exit(1)

    outcome = None
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Starting", total=1.0)
        try:
            for event in job.events():
                if isinstance(event, ProgressEvent):
                    progress.update(task, completed=event.fraction, description=event.message)
                else:
                    outcome = event
        except KeyboardInterrupt:
            job.cancel()
            outcome = job.wait()

    if outcome is None or outcome.state == JobState.CANCELLED:
        console.print("[yellow]Transcription cancelled[/yellow]")
        raise typer.Exit(1)
    if outcome.state == JobState.FAILED:
        failure = outcome.error
        cause = failure.error
        console.print(f"[red]Error while {failure.stage}: {cause}[/red]")
        if isinstance(cause, DependencyError) and cause.install_hint:
            console.print(f"[dim]{cause.install_hint}[/dim]")
        raise typer.Exit(1)

    result = outcome.result
    if output:
        write_text(output, result.render() + "\n")
        console.print(f"[green]✓[/green] Transcript written to {output}")
    else:
        console.print(result.render(), markup=False, highlight=False)

    console.print(
        f"\n[dim]{result.source.name} · {format_duration(result.audio_duration)} · "
        f"{len(result.text.split())} words · language {result.language or 'unknown'} · "
        f"{result.processing_time:.1f}s[/dim]"
    )


# Models


@models_app.command("list")
def models_list() -> None:
    """List available models and their install state."""
    from scribeline.models.manager import ModelManager

    config = get_config()
    manager = ModelManager(config.models_dir)

    table = Table(title="Whisper Models")
    table.add_column("Model", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Installed")
    table.add_column("Description")
    for desc in manager.list_models():
        table.add_row(
            desc.model_id,
            format_bytes(desc.expected_size_bytes),
            "[green]✓[/green]" if desc.installed else "[dim]-[/dim]",
            desc.description,
        )
    console.print(table)

    info = manager.storage_info()
    console.print(f"[dim]{format_bytes(info.total_size)} used in {info.models_dir}[/dim]")


@models_app.command("download")
def models_download(model_id: str = typer.Argument(..., help="Model to download")) -> None:
    """Download and install a model."""
    from scribeline.models.manager import ModelManager

    config = get_config()
    manager = ModelManager(
        config.models_dir,
        timeout=config.download_timeout_seconds,
        progress_interval=config.download_progress_interval,
    )

    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task(f"Downloading {model_id}", total=1.0)
        try:
            desc = manager.download(
                model_id, progress_sink=lambda e: progress.update(task, completed=e.fraction)
            )
        except ScribelineError as e:
            progress.stop()
            print_error(e)
            raise typer.Exit(1)
        except KeyboardInterrupt:
            progress.stop()
            console.print("[yellow]Download cancelled[/yellow]")
            raise typer.Exit(1)

    console.print(f"[green]✓[/green] Installed {desc.model_id} at {desc.install_path}")


@models_app.command("delete")
def models_delete(
    model_id: str = typer.Argument(..., help="Model to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Don't ask for confirmation"),
) -> None:
    """Delete an installed model."""
    from scribeline.models.manager import ModelManager

    config = get_config()
    if not yes:
        typer.confirm(f"Delete model '{model_id}'?", abort=True)
    try:
        ModelManager(config.models_dir).delete(model_id)
    except ScribelineError as e:
        print_error(e)
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Deleted {model_id}")


# History


@history_app.command("list")
def history_list(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of entries to show"),
) -> None:
    """List past transcriptions, most recent first."""
    config = get_config()
    try:
        history = get_history(config)
        entries = history.list(limit=limit)
        total = history.count()
    except ScribelineError as e:
        print_error(e)
        raise typer.Exit(1)

    if not entries:
        console.print("[yellow]No transcriptions yet.[/yellow]")
        return

    table = Table(title="Transcription History")
    table.add_column("ID", style="cyan")
    table.add_column("Date")
    table.add_column("Source")
    table.add_column("Duration", justify="right")
    table.add_column("Words", justify="right")
    for entry in entries:
        table.add_row(
            entry.id,
            entry.created_at.strftime("%Y-%m-%d %H:%M"),
            entry.source_name,
            format_duration(entry.audio_duration),
            str(entry.word_count),
        )
    console.print(table)
    if total > len(entries):
        console.print(f"[dim]Showing {len(entries)} of {total} entries[/dim]")


@history_app.command("show")
def history_show(entry_id: str = typer.Argument(..., help="History entry ID")) -> None:
    """Print a past transcription."""
    config = get_config()
    try:
        entry = get_history(config).get(entry_id)
    except ScribelineError as e:
        print_error(e)
        raise typer.Exit(1)

    console.print(f"[bold]{entry.source_name}[/bold] [dim]({entry.source_kind})[/dim]")
    console.print(
        f"[dim]{entry.created_at.strftime('%Y-%m-%d %H:%M')} · "
        f"{format_duration(entry.audio_duration)} · {entry.word_count} words[/dim]\n"
    )
    console.print(entry.transcription_text, markup=False, highlight=False)


@history_app.command("delete")
def history_delete(entry_id: str = typer.Argument(..., help="History entry ID")) -> None:
    """Delete a past transcription."""
    config = get_config()
    try:
        get_history(config).delete(entry_id)
    except ScribelineError as e:
        print_error(e)
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Deleted {entry_id}")


@history_app.command("clear")
def history_clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Don't ask for confirmation"),
) -> None:
    """Delete every past transcription."""
    config = get_config()
    if not yes:
        typer.confirm("Delete all history entries?", abort=True)
    try:
        removed = get_history(config).clear()
    except ScribelineError as e:
        print_error(e)
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Removed {removed} entries")


@history_app.command("export")
def history_export(
    entry_id: str = typer.Argument(..., help="History entry ID"),
    output_dir: Path = typer.Option(Path("."), "--output-dir", "-o", help="Directory to write to"),
) -> None:
    """Export a past transcription as a text file."""
    config = get_config()
    try:
        dest = get_history(config).export_text(entry_id, output_dir)
    except ScribelineError as e:
        print_error(e)
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Exported to {dest}")


# Environment


@app.command("init")
def init_config(
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing config file"),
) -> None:
    """Create the data directory and a default config.yaml."""
    data_dir = default_data_dir()
    config_path = data_dir / CONFIG_FILENAME
    if config_path.exists() and not force:
        console.print(f"[red]Error: {config_path} already exists[/red]")
        console.print("[dim]Use --force to overwrite[/dim]")
        raise typer.Exit(1)

    write_config(create_default_config(), config_path)
    (data_dir / "models").mkdir(parents=True, exist_ok=True)
    console.print(f"[green]✓[/green] Wrote {config_path}")
    console.print("\nNext steps:")
    console.print("  scribeline models download base")
    console.print("  scribeline transcribe <file>")


@app.command("doctor")
def doctor() -> None:
    """Check external tools, disk space and installed models."""
    from scribeline.models.manager import ModelManager
    from scribeline.validation import run_preflight_checks

    config = get_config()
    results = run_preflight_checks(config)

    table = Table(title="Environment")
    table.add_column("Check", style="cyan")
    table.add_column("Status")
    table.add_column("Details")
    for name, check in results["checks"].items():
        if "error" in check:
            table.add_row(name, "[red]✗[/red]", check.get("install_hint") or check["error"])
        elif "warning" in check:
            table.add_row(name, "[yellow]![/yellow]", check.get("install_hint") or check["warning"])
        elif name == "disk_space":
            status = "[green]✓[/green]" if check["sufficient"] else "[red]✗[/red]"
            table.add_row(name, status, f"{check['available_mb']} MB free")
        else:
            table.add_row(name, "[green]✓[/green]", ", ".join(check.values()))

    installed = ModelManager(config.models_dir).list_installed()
    names = ", ".join(m.descriptor.model_id for m in installed)
    table.add_row(
        "models",
        "[green]✓[/green]" if installed else "[yellow]![/yellow]",
        names or "none installed (scribeline models download base)",
    )
    console.print(table)

    if not results["passed"]:
        raise typer.Exit(1)
