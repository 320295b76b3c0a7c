"""CLI interface for convoy."""

import shlex
import sys
from pathlib import Path
from typing import Optional

import typer
from InquirerPy import inquirer
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeRemainingColumn,
)
from rich.table import Table

from . import __version__
from .args_builder import inject_burn_in, input_args
from .capabilities import available_presets, get_capability_service, preset_is_available
from .config import Settings, load_settings
from .discovery import discover_media_files
from .errors import ProbeError, UnknownPresetError
from .events import JobCompletedEvent, JobProgressEvent, JobStatusEvent
from .lifecycle import JobStatus
from .logging_config import init_logger
from .models import CapabilitySnapshot, Preset, Tier
from .planner import Planner, display_decision
from .presets import DEFAULT_PRESET_ID, PRESETS, resolve_preset
from .probe import check_ffprobe, probe_media
from .scheduler import Scheduler
from .strategies import video_strategy_for
from .utils import build_output_path, console, format_duration
from .validation import (
    check_disk_space,
    estimate_output_size,
    format_bytes,
    validate_output_directory,
)

app = typer.Typer(
    name="convoy",
    help="Queue-driven media conversion on top of ffmpeg",
    add_completion=False,
)


def version_callback(value: bool):
    if value:
        console.print(f"convoy version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
):
    """
    Convert media files with ffmpeg using curated presets.

    convoy probes each file, picks stream copy or re-encoding per stream,
    and runs several conversions at once within a concurrency limit.
    """


def _capabilities(settings: Settings) -> CapabilitySnapshot:
    return get_capability_service(settings.ffmpeg_path).get()


@app.command()
def presets(
    show_all: bool = typer.Option(
        False,
        "--all",
        "-a",
        help="Include presets the installed ffmpeg cannot produce",
    ),
):
    """List conversion presets."""
    settings = load_settings()
    caps = _capabilities(settings)
    shown = PRESETS if show_all else available_presets(caps)

    table = Table(title="Presets")
    table.add_column("ID", style="cyan")
    table.add_column("Label")
    table.add_column("Container", style="green")
    table.add_column("Video")
    table.add_column("Audio")
    if show_all:
        table.add_column("Available")

    for preset in shown:
        row = [
            preset.id,
            preset.label + (" [yellow](experimental)[/yellow]" if preset.experimental else ""),
            preset.container.value,
            preset.video.codec,
            preset.audio.codec,
        ]
        if show_all:
            row.append(
                "[green]yes[/green]"
                if preset_is_available(preset, caps)
                else "[red]no[/red]"
            )
        table.add_row(*row)

    console.print(table)
    if caps.is_empty:
        console.print(
            "[yellow]Warning: could not query ffmpeg; availability is unknown.[/yellow]"
        )


def _sample(names: frozenset[str], limit: int = 8) -> str:
    ordered = sorted(names)
    text = ", ".join(ordered[:limit])
    if len(ordered) > limit:
        text += f", ... (+{len(ordered) - limit})"
    return text or "-"


@app.command()
def capabilities():
    """Show what the installed ffmpeg can encode, mux and filter."""
    settings = load_settings()
    caps = _capabilities(settings)
    if caps.is_empty:
        console.print(
            f"[red]Error: no capabilities detected from {settings.ffmpeg_path}. "
            "Is ffmpeg installed?[/red]"
        )
        sys.exit(1)

    table = Table(title=f"Capabilities of {settings.ffmpeg_path}")
    table.add_column("Kind", style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("Examples", style="dim")
    table.add_row("Video encoders", str(len(caps.video_encoders)), _sample(caps.video_encoders))
    table.add_row("Audio encoders", str(len(caps.audio_encoders)), _sample(caps.audio_encoders))
    table.add_row("Formats", str(len(caps.formats)), _sample(caps.formats))
    table.add_row("Filters", str(len(caps.filters)), _sample(caps.filters))
    console.print(table)


@app.command()
def plan(
    file: Path = typer.Argument(
        ...,
        help="Media file to plan a conversion for",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    preset_id: str = typer.Option(
        DEFAULT_PRESET_ID, "--preset", "-p", help="Preset ID (see 'convoy presets')"
    ),
    tier: Tier = typer.Option(Tier.BALANCED, "--tier", "-t", help="Quality tier"),
    software_only: bool = typer.Option(
        False, "--software-only", help="Never pick hardware encoders"
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Output directory (default: next to the source)"
    ),
):
    """Show how a file would be converted, without running ffmpeg."""
    settings = load_settings()
    try:
        preset = resolve_preset(preset_id)
    except UnknownPresetError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        sys.exit(1)

    try:
        result = probe_media(file, settings.ffprobe_path)
    except ProbeError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        sys.exit(1)

    summary = result.summary
    console.print(
        f"[dim]{file.name}: {format_duration(summary.duration_sec)}, "
        f"{summary.resolution or 'no video'}, "
        f"video {summary.video_codec or '-'}, audio {summary.audio_codec or '-'}[/dim]"
    )

    planner = Planner(video_strategy=video_strategy_for(software_only))
    decision = planner.plan(result.summary, preset, tier, _capabilities(settings))
    args = input_args(file) + decision.args
    if decision.burn_in_requested:
        args, note = inject_burn_in(args, file, result.summary, decision)
        decision.notes.append(note)

    display_decision(decision, preset)
    output_path = build_output_path(file, preset, tier, output or settings.output_dir)
    command = [settings.ffmpeg_path, "-hide_banner", *args, str(output_path)]
    console.print(f"\n[yellow]{shlex.join(command)}[/yellow]")


@app.command()
def convert(
    paths: list[Path] = typer.Argument(
        ..., help="Files or directories to convert", resolve_path=True
    ),
    preset_id: Optional[str] = typer.Option(
        None,
        "--preset",
        "-p",
        help="Preset ID (prompted for when omitted)",
    ),
    tier: Tier = typer.Option(Tier.BALANCED, "--tier", "-t", help="Quality tier"),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output directory (default: next to each source)",
    ),
    jobs: Optional[int] = typer.Option(
        None, "--jobs", "-j", min=1, help="Conversions to run at once"
    ),
    software_only: bool = typer.Option(
        False, "--software-only", help="Never pick hardware encoders"
    ),
    name_preset: bool = typer.Option(
        False, "--name-preset", help="Add the preset to output file names"
    ),
    name_tier: bool = typer.Option(
        False, "--name-tier", help="Add the tier to output file names"
    ),
    recursive: bool = typer.Option(
        False, "--recursive", "-r", help="Search directories recursively"
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Don't prompt: default preset, existing outputs are skipped",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-V",
        help="Print ffmpeg commands and debug logging",
    ),
    log_file: Optional[Path] = typer.Option(
        None, "--log-file", help="Write a detailed log to this file"
    ),
):
    """
    Convert media files with a preset.

    Files are probed, planned and converted in parallel. Outputs are written
    to a temporary file first and moved into place only on success.
    """
    init_logger(log_file, verbose)
    try:
        _run(
            paths,
            preset_id,
            tier,
            output,
            jobs,
            software_only,
            name_preset,
            name_tier,
            recursive,
            yes,
            verbose,
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user.[/yellow]")
        sys.exit(1)


def _select_preset(caps: CapabilitySnapshot) -> str:
    """Ask which preset to use, offering only what ffmpeg can produce."""
    choices = [
        {"name": f"{preset.label} ({preset.id})", "value": preset.id}
        for preset in available_presets(caps)
    ]
    if not choices:
        console.print("[red]No presets are usable with the installed ffmpeg.[/red]")
        sys.exit(1)
    default = DEFAULT_PRESET_ID if any(
        choice["value"] == DEFAULT_PRESET_ID for choice in choices
    ) else choices[0]["value"]
    return inquirer.select(
        message="Select an output preset:",
        choices=choices,
        default=default,
    ).execute()


def _handle_existing(
    targets: list[tuple[Path, Path]], yes: bool
) -> list[tuple[Path, Path]]:
    """Ask what to do about outputs that already exist. Returns what to run."""
    existing = [(source, out) for source, out in targets if out.exists()]

    if not existing:
        if not yes and not inquirer.confirm(
            message=f"Convert {len(targets)} file(s)?", default=True
        ).execute():
            console.print("[yellow]Aborted.[/yellow]")
            sys.exit(0)
        return targets

    console.print(
        f"\n[yellow]Warning: {len(existing)} of {len(targets)} output file(s) "
        f"already exist:[/yellow]"
    )
    for _, out in existing[:5]:  # Show first 5
        console.print(f"  [dim]- {out.name}[/dim]")
    if len(existing) > 5:
        console.print(f"  [dim]... and {len(existing) - 5} more[/dim]")

    if yes:
        choice = "s"
    else:
        choice = inquirer.select(
            message="What would you like to do?",
            choices=[
                {"name": "Skip existing files (convert only new)", "value": "s"},
                {"name": "Overwrite existing files", "value": "o"},
                {"name": "Abort", "value": "a"},
            ],
            default="s",
        ).execute()

    if choice == "a":
        console.print("[yellow]Aborted.[/yellow]")
        sys.exit(0)
    if choice == "o":
        return targets
    return [(source, out) for source, out in targets if not out.exists()]


def _warn_disk_space(sources: list[Path], output_dir: Optional[Path]):
    required = sum(estimate_output_size(source, None) for source in sources)
    directory = output_dir or sources[0].parent
    ok, available, required = check_disk_space(directory, required)
    if not ok:
        console.print(
            f"[yellow]Warning: outputs may need {format_bytes(required)} but only "
            f"{format_bytes(available)} is free in {directory}[/yellow]"
        )


def _run(
    paths: list[Path],
    preset_id: Optional[str],
    tier: Tier,
    output: Optional[Path],
    jobs: Optional[int],
    software_only: bool,
    name_preset: bool,
    name_tier: bool,
    recursive: bool,
    yes: bool,
    verbose: bool,
):
    """Main workflow."""
    console.print(f"\n[bold]convoy v{__version__}[/bold]")
    console.print("=" * 50)

    settings = load_settings()

    # Check ffprobe
    if not check_ffprobe(settings.ffprobe_path):
        console.print("[red]Error: ffprobe not found. Please install ffmpeg.[/red]")
        sys.exit(1)

    files = discover_media_files(paths, recursive=recursive)
    if not files:
        console.print("[red]No media files found.[/red]")
        sys.exit(1)
    console.print(f"Found {len(files)} file(s).")

    service = get_capability_service(settings.ffmpeg_path)
    caps = service.get()

    if preset_id is None:
        preset_id = DEFAULT_PRESET_ID if yes else _select_preset(caps)
    try:
        preset = resolve_preset(preset_id)
    except UnknownPresetError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        sys.exit(1)
    if not preset_is_available(preset, caps):
        console.print(
            f"[yellow]Warning: ffmpeg does not report an encoder for {preset.id}; "
            "conversions may fail.[/yellow]"
        )

    output_dir = output or settings.output_dir
    if output_dir is not None:
        ok, error = validate_output_directory(output_dir)
        if not ok:
            console.print(f"[red]Error: {error}[/red]")
            sys.exit(1)

    targets = [
        (
            source,
            build_output_path(
                source,
                preset,
                tier,
                output_dir,
                include_preset=name_preset,
                include_tier=name_tier,
            ),
        )
        for source in files
    ]
    to_run = _handle_existing(targets, yes)
    skipped = len(targets) - len(to_run)
    if not to_run:
        console.print("[yellow]Nothing to convert; all outputs exist.[/yellow]")
        sys.exit(0)

    _warn_disk_space([source for source, _ in to_run], output_dir)

    scheduler = Scheduler.from_settings(
        settings,
        software_only=software_only,
        capabilities=service,
        max_concurrency=jobs or settings.max_concurrency,
        output_dir=output_dir,
        include_preset_in_name=name_preset,
        include_tier_in_name=name_tier,
    )
    job_ids = scheduler.enqueue_many([source for source, _ in to_run], preset.id, tier)

    console.print(
        f"\n[blue]Converting {len(job_ids)} file(s) with {preset.label}, "
        f"{scheduler.max_concurrency} at a time...[/blue]"
    )
    results = _execute(scheduler, job_ids, preset, settings, verbose)
    _print_summary(scheduler, results, skipped)


def _execute(
    scheduler: Scheduler,
    job_ids: list[str],
    preset: Preset,
    settings: Settings,
    verbose: bool,
) -> dict[str, JobCompletedEvent]:
    """Run every job with a progress bar each. Returns the final event per job."""
    results: dict[str, JobCompletedEvent] = {}

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeRemainingColumn(),
        console=console,
    ) as progress:
        tasks = {}
        labels = {}
        for i, job_id in enumerate(job_ids):
            job = scheduler.get(job_id)
            labels[job_id] = f"[{i + 1}/{len(job_ids)}] {job.path.name}"
            tasks[job_id] = progress.add_task(labels[job_id], total=100)

        def on_event(event):
            task_id = tasks.get(event.job_id)
            if task_id is None:
                return
            label = labels[event.job_id]
            if isinstance(event, JobProgressEvent) and event.ratio is not None:
                progress.update(task_id, completed=event.ratio * 100)
            elif isinstance(event, JobStatusEvent) and event.status == JobStatus.RUNNING:
                job = scheduler.get(event.job_id)
                if verbose and job is not None and job.decision is not None:
                    command = [
                        settings.ffmpeg_path,
                        *job.decision.args,
                        str(job.output_path),
                    ]
                    progress.console.print(f"[yellow]{shlex.join(command)}[/yellow]")
            elif isinstance(event, JobCompletedEvent):
                results[event.job_id] = event
                if event.status == JobStatus.COMPLETED:
                    progress.update(
                        task_id, completed=100, description=f"[green]✓[/green] {label}"
                    )
                elif event.status == JobStatus.CANCELLED:
                    progress.update(task_id, description=f"[yellow]-[/yellow] {label}")
                else:
                    progress.update(task_id, description=f"[red]✗[/red] {label}")

        unsubscribe = scheduler.events.subscribe(on_event)
        try:
            scheduler.start_available()
            while True:
                if scheduler.wait_until_idle(timeout=0.5):
                    if not scheduler.queued_jobs():
                        break
                    scheduler.start_available()
        except KeyboardInterrupt:
            console.print("\n[yellow]Cancelling all jobs...[/yellow]")
            scheduler.cancel_all()
            scheduler.wait_until_idle(timeout=settings.cancel_grace + 5)
            raise
        finally:
            unsubscribe()

    return results


def _print_summary(
    scheduler: Scheduler, results: dict[str, JobCompletedEvent], skipped: int
):
    successful = sum(1 for e in results.values() if e.status == JobStatus.COMPLETED)
    cancelled = sum(1 for e in results.values() if e.status == JobStatus.CANCELLED)
    failures = [e for e in results.values() if e.status == JobStatus.FAILED]

    # Print errors at the end
    for event in failures:
        job = scheduler.get(event.job_id)
        name = job.path.name if job is not None else event.job_id
        console.print(f"[red]{name} failed:[/red] [dim]{event.message}[/dim]")

    console.print("\n" + "=" * 50)
    if not failures and not cancelled:
        message = f"[bold green]Complete![/bold green] {successful} file(s) converted"
        if skipped:
            message += f", {skipped} skipped (already existed)"
        console.print(message)
        return

    console.print(
        f"[bold yellow]Completed with errors.[/bold yellow] "
        f"{successful} succeeded, {len(failures)} failed, {cancelled} cancelled, "
        f"{skipped} skipped."
    )
    sys.exit(1)


if __name__ == "__main__":
    app()
