import logging
import signal
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from .core import DEFAULT_PRESET
from .core.filtergraph import compile_filtergraph
from .core.settings import (
    JSON_KEYS,
    PRESET_NAMES,
    PRESETS,
    VHSSettings,
    load_settings,
    merge_overrides,
    parse_override,
    resolve_preset,
)
from .errors import VHSDegraderError
from .processors.image import SUPPORTED_IMAGE_FORMATS, is_supported_image, process_image
from .processors.video import (
    STRATEGIES,
    SUPPORTED_VIDEO_FORMATS,
    CancelToken,
    JobStatus,
    is_supported_video,
    process_video,
)

app = typer.Typer(
    name="vhsd",
    help="Give videos and images a worn VHS tape look.",
    add_completion=True,
)
console = Console()


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def build_settings(
    preset: str,
    settings_file: Optional[Path],
    overrides: Optional[list[str]],
    fps: Optional[float],
) -> VHSSettings:
    """Preset, then JSON file, then --set overrides, then --fps."""
    settings = resolve_preset(preset)
    if settings_file:
        settings = load_settings(settings_file, base=settings)
    changes = dict(parse_override(item) for item in overrides or [])
    if fps is not None:
        changes["target_fps"] = fps
    return merge_overrides(settings, changes)


def get_files_to_process(path: Path, recursive: bool = False) -> list[Path]:
    """Get all supported files from path (file or directory)."""
    if path.is_file():
        return [path]

    files = []
    pattern = "**/*" if recursive else "*"

    for f in path.glob(pattern):
        if f.is_file() and (is_supported_image(f) or is_supported_video(f)):
            files.append(f)

    return sorted(files)


PresetOption = typer.Option(
    DEFAULT_PRESET,
    "--preset",
    "-p",
    help=f"Base preset: {', '.join(PRESET_NAMES)}",
)
SettingsOption = typer.Option(
    None,
    "--settings",
    help="JSON settings file (camelCase keys, optional \"preset\")",
    exists=True,
    dir_okay=False,
)
SetOption = typer.Option(
    None,
    "--set",
    help="Override one setting, e.g. --set noise=40 --set dateStampText='MAY 01 1991'",
)


@app.command()
def process(
    path: Path = typer.Argument(
        ...,
        help="Path to video/image file or directory for batch processing",
        exists=True,
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output path (file or directory). Defaults to input location with '_vhs' suffix.",
    ),
    preset: str = PresetOption,
    settings_file: Optional[Path] = SettingsOption,
    overrides: Optional[list[str]] = SetOption,
    strategy: str = typer.Option(
        "frames",
        "--strategy",
        help="frames: in-process pipeline with ghosting; batch: ffmpeg filter-graph (faster, no ghosting)",
    ),
    fps: Optional[float] = typer.Option(None, "--fps", help="Target frame rate for the frames strategy (15-60)"),
    two_pass: bool = typer.Option(False, "--two-pass", help="Extract all frames before processing"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for noise and tracking glitches"),
    recursive: bool = typer.Option(
        False,
        "--recursive",
        "-r",
        help="Process directories recursively",
    ),
    suffix: str = typer.Option(
        "_vhs",
        "--suffix",
        "-s",
        help="Suffix to add to output filenames",
    ),
    overwrite: bool = typer.Option(
        False,
        "--overwrite",
        "-y",
        help="Overwrite existing output files without prompting",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """
    Apply VHS degradation to images and videos.

    Videos are output as MP4 with H.264 encoding and the source audio.

    Examples:
        vhsd process clip.mp4
        vhsd process clip.mp4 -p worn --set noise=50 -o tape.mp4
        vhsd process ./clips/ -r --strategy batch
    """
    configure_logging(verbose)

    if strategy not in STRATEGIES:
        console.print(f"[red]Unknown strategy '{strategy}'[/red] (choose from {', '.join(STRATEGIES)})")
        raise typer.Exit(2)

    try:
        settings = build_settings(preset, settings_file, overrides, fps)
    except VHSDegraderError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(2)

    files = get_files_to_process(path, recursive)

    if not files:
        console.print(f"[red]No supported files found in {path}[/red]")
        console.print(f"Supported formats: {SUPPORTED_IMAGE_FORMATS | SUPPORTED_VIDEO_FORMATS}")
        raise typer.Exit(1)

    # Determine output directory for batch processing
    output_dir = None
    if path.is_dir() and output:
        output_dir = output
        output_dir.mkdir(parents=True, exist_ok=True)

    console.print(
        Panel(
            f"Processing {len(files)} file(s) with the '{preset}' look ({strategy} strategy)",
            title="VHS Degrader",
            border_style="magenta",
        )
    )

    failures = 0
    cancel = CancelToken()
    previous_handler = cancel.cancel_on_interrupt()

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
        ) as progress:
            main_task = progress.add_task("Processing files...", total=len(files))

            for file_path in files:
                if cancel.cancelled:
                    break
                progress.update(main_task, description=f"Processing {file_path.name}...")

                # Determine output path for this file
                if output_dir:
                    file_output = (
                        output_dir
                        / f"{file_path.stem}{suffix}{'.mp4' if is_supported_video(file_path) else '.png'}"
                    )
                elif output and path.is_file():
                    file_output = output
                else:
                    file_output = None  # Use default naming

                # Check for overwrite
                if file_output and file_output.exists() and not overwrite:
                    if not typer.confirm(f"Overwrite {file_output}?"):
                        progress.advance(main_task)
                        continue

                if is_supported_image(file_path):
                    try:
                        result = process_image(file_path, file_output, settings, suffix, seed)
                        console.print(f"  [green]Image saved:[/green] {result}")
                    except (OSError, ValueError) as e:
                        failures += 1
                        console.print(f"  [red]Error processing {file_path}:[/red] {e}")

                elif is_supported_video(file_path):
                    frame_task = progress.add_task("  Frames...", total=100, visible=True)

                    def video_progress(percentage: float, message: str):
                        progress.update(frame_task, completed=percentage, description=f"  {message}")

                    job_options = {}
                    if strategy == "frames":
                        job_options = {"two_pass": two_pass, "seed": seed}

                    result = process_video(
                        file_path,
                        file_output,
                        settings,
                        strategy=strategy,
                        suffix=suffix,
                        progress=video_progress,
                        cancel=cancel,
                        **job_options,
                    )
                    progress.remove_task(frame_task)

                    if result.status is JobStatus.DONE and result.output_path:
                        console.print(f"  [green]Video saved:[/green] {result.output_path}")
                    elif result.status is JobStatus.DONE:
                        console.print(f"  [yellow]No frames to encode in {file_path}[/yellow]")
                    elif result.status is JobStatus.CANCELLED:
                        console.print(f"  [yellow]Cancelled:[/yellow] {file_path}")
                    else:
                        failures += 1
                        console.print(f"  [red]Error processing {file_path}:[/red] {result.error}")
                        log = getattr(result.error, "log", "")
                        if log and verbose:
                            console.print(log, style="dim", markup=False)

                progress.advance(main_task)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if cancel.cancelled:
        console.print("[yellow]Cancelled.[/yellow]")
        raise typer.Exit(130)
    if failures:
        console.print(f"[bold red]{failures} file(s) failed.[/bold red]")
        raise typer.Exit(1)
    console.print("[bold green]Done![/bold green]")


@app.command()
def presets():
    """List the built-in presets, cleanest first."""
    table = Table(title="VHS presets")
    table.add_column("setting")
    for name in PRESET_NAMES:
        table.add_column(name, justify="right")

    for field, key in JSON_KEYS.items():
        values = [getattr(PRESETS[name], field) for name in PRESET_NAMES]
        table.add_row(key, *(str(v) if v != "" else "-" for v in values))

    console.print(table)


@app.command()
def graph(
    preset: str = PresetOption,
    settings_file: Optional[Path] = SettingsOption,
    overrides: Optional[list[str]] = SetOption,
    height: Optional[int] = typer.Option(None, "--height", help="Source height, sizes the date stamp"),
):
    """Print the ffmpeg filter-graph the batch strategy would use."""
    try:
        settings = build_settings(preset, settings_file, overrides, None)
        compiled = compile_filtergraph(settings, frame_height=height)
    except VHSDegraderError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(2)

    console.print(str(compiled), markup=False, highlight=False, soft_wrap=True)


@app.command()
def info():
    """Display information about supported formats and strategies."""
    console.print(
        Panel(
            "[bold]VHS Degrader[/bold]\n\n"
            "Applies analog tape artifacts to images and videos.\n\n"
            "[cyan]Effects (in order):[/cyan]\n"
            "  color grade, chromatic aberration, noise, ghosting, blur,\n"
            "  scan lines, tracking error, vignette, date stamp\n\n"
            "[cyan]Strategies:[/cyan]\n"
            "  frames - frame-by-frame pipeline at --fps, includes ghosting\n"
            "  batch  - single ffmpeg filter-graph pass, no ghosting or tracking error\n\n"
            f"[cyan]Presets:[/cyan] {', '.join(PRESET_NAMES)}\n"
            f"[cyan]Supported Image Formats:[/cyan] {', '.join(sorted(SUPPORTED_IMAGE_FORMATS))}\n"
            f"[cyan]Supported Video Formats:[/cyan] {', '.join(sorted(SUPPORTED_VIDEO_FORMATS))}\n"
            "[cyan]Video Output:[/cyan] MP4 (H.264 + AAC)",
            title="About",
            border_style="magenta",
        )
    )


if __name__ == "__main__":
    app()
