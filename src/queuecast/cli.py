"""Command-line interface for Queuecast."""

import asyncio
import json
import signal
from pathlib import Path
from typing import List, Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from queuecast.config import get_settings
from queuecast.logging import configure_logging

app = typer.Typer(
    name="queuecast",
    help="Queuecast - stream a queue of videos into a live output",
    add_completion=False,
)

console = Console()


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(False, "--debug", help="Enable debug mode"),
) -> None:
    """Queuecast CLI."""
    settings = get_settings()
    settings.ensure_directories()
    if debug or settings.debug:
        configure_logging(log_level="DEBUG", log_file=settings.log_file)
    else:
        configure_logging(log_level=settings.log_level, log_file=settings.log_file)


def _mask_url(value: str) -> str:
    """Hide everything after the host (stream keys live there)."""
    if "://" not in value:
        return value
    scheme, rest = value.split("://", 1)
    host = rest.split("/", 1)[0]
    return f"{scheme}://{host}/..." if "/" in rest else value


# Config commands
config_app = typer.Typer(help="Configuration management")
app.add_typer(config_app, name="config")


@config_app.command("show")
def config_show(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Show current configuration."""
    settings = get_settings()
    config_dict = settings.model_dump(mode="json")
    config_dict["output_url"] = _mask_url(settings.output_url)

    if json_output:
        typer.echo(json.dumps(config_dict, indent=2))
        return

    table = Table(title="Queuecast Configuration", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for field_name, value in config_dict.items():
        table.add_row(field_name, str(value))

    console.print(table)


# Library commands
library_app = typer.Typer(help="Local video library")
app.add_typer(library_app, name="library")


@library_app.command("list")
def library_list(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """List videos in the local videos directory."""
    from queuecast.library import LocalLibrary

    videos = LocalLibrary().list_videos()

    if json_output:
        typer.echo(json.dumps([{"name": v.name, "path": str(v.path)} for v in videos], indent=2))
        return

    if not videos:
        rprint("[yellow]No videos found in the local videos folder.[/yellow]")
        return

    table = Table(title="Local Videos", show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("File", style="white")
    table.add_column("Size", style="yellow")

    for video in videos:
        size_mb = video.path.stat().st_size / (1024 * 1024)
        table.add_row(video.name, video.path.name, f"{size_mb:.1f} MB")

    console.print(table)


# Playback commands


def _print_event(event) -> None:
    from queuecast.playback import EventType

    label = f"[{event.item.id}] " if event.item else ""
    if event.type is EventType.ITEM_STARTED:
        rprint(f"[green]▶ Now Playing[/green] {label}{event.item.reference}")
    elif event.type is EventType.ITEM_FINISHED:
        rprint(f"[cyan]⏹ Finished[/cyan] {label}({event.message})")
    elif event.type is EventType.ITEM_SKIPPED:
        rprint(f"[yellow]⏭ Skipped[/yellow] {label}{event.message}")
    elif event.type is EventType.QUEUE_EMPTY:
        rprint("[cyan]ℹ The queue is empty.[/cyan]")
    elif event.type is EventType.STOPPED:
        rprint("[yellow]■ Playback stopped[/yellow]")
    elif event.type is EventType.FAILED:
        rprint(f"[red]✗ {event.message}[/red]")


async def _run_queue(orchestrator, references: List[str]) -> bool:
    """Play references until the queue drains or Ctrl-C. Returns False on failure."""
    from queuecast.playback import EventType

    failures = []
    orchestrator.add_listener(_print_event)
    orchestrator.add_listener(
        lambda event: failures.append(event) if event.type is EventType.FAILED else None
    )

    loop = asyncio.get_running_loop()
    pending_stops = []
    try:
        loop.add_signal_handler(
            signal.SIGINT, lambda: pending_stops.append(loop.create_task(orchestrator.stop()))
        )
    except NotImplementedError:
        pass  # signal handlers unavailable on this platform

    for uid, reference in zip(orchestrator.enqueue_batch(references), references):
        rprint(f"[green]✓ Added[/green] [{uid}] {reference}")

    try:
        orchestrator.start_if_idle()
        await orchestrator.wait_idle()
        if pending_stops:
            await asyncio.gather(*pending_stops)
    finally:
        await orchestrator.close()

    return not failures


@app.command("play")
def play(
    references: Optional[List[str]] = typer.Argument(None, help="URLs or local files to queue"),
    loop: bool = typer.Option(False, "--loop", help="Replay the queue when it ends"),
    random_pick: bool = typer.Option(False, "--random", help="Queue a random local video"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Log instead of streaming"),
) -> None:
    """Stream queued references into the configured output."""
    from queuecast.library import LocalLibrary
    from queuecast.playback import PlaybackOrchestrator

    settings = get_settings()
    queued = list(references or [])

    if random_pick:
        video = LocalLibrary(settings.videos_dir).random_video()
        if video is None:
            rprint("[red]No videos found in the local videos folder.[/red]")
            raise typer.Exit(1)
        queued.append(str(video.path))

    if not queued:
        rprint("[red]Please provide a video link or use --random.[/red]")
        raise typer.Exit(1)

    if dry_run:
        settings = settings.model_copy(
            update={"transmitter": "null", "output_url": settings.output_url or "null://dry-run"}
        )

    orchestrator = PlaybackOrchestrator.from_settings(settings)
    orchestrator.set_loop(loop or settings.loop)

    if not asyncio.run(_run_queue(orchestrator, queued)):
        raise typer.Exit(1)


@app.command("download")
def download(
    url: str = typer.Argument(..., help="Video URL to download"),
    directory: Optional[Path] = typer.Option(None, "--dir", help="Target directory"),
) -> None:
    """Download a video into the local videos folder."""
    from queuecast.exceptions import ItemFetchError
    from queuecast.sources import Fetcher

    settings = get_settings()
    fetcher = Fetcher(
        download_dir=directory or settings.videos_dir,
        max_attempts=settings.download_max_attempts,
        base_delay=settings.download_base_delay,
    )

    async def _download() -> str:
        try:
            return await fetcher.fetch(url)
        finally:
            await fetcher.close()

    rprint(f"[cyan]⏬ Downloading video from:[/cyan] {url}")
    try:
        with console.status("[bold green]Downloading...", spinner="dots"):
            path = asyncio.run(_download())
    except ItemFetchError as e:
        rprint(f"[red]Download error: {e}[/red]")
        raise typer.Exit(1)

    rprint(f"[green]✓ Download complete:[/green] {path}")


if __name__ == "__main__":
    app()
