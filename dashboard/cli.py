"""
Command-line interface for the music dashboard.

Library management, uploads and duration maintenance using the Click
framework, with Rich for output.
"""

import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn
from rich.prompt import Prompt, Confirm
from rich.table import Table

from shared.constants import DEFAULT_DATA_DIR, DATABASE_FILENAME, MUSIC_BUCKET, MAX_SWEEP_WORKERS
from shared.models import DashboardConfig, StorageProvider, TrackStatus
from .config import load_config, save_config, ConfigError
from .correction import CorrectionStatus
from .duration import AudioAsset
from .library import TrackNotFoundError, format_duration, has_placeholder_durations
from .links import diagnose_storage
from .provider_factory import StorageProviderFactory
from .services import build_services
from .storage_provider import StorageError
from .uploader import UploadStatus

console = Console()

STATUS_STYLES = {
    TrackStatus.ACTIVE: "green",
    TrackStatus.INACTIVE: "red",
    TrackStatus.DRAFT: "yellow",
}


def _services(ctx):
    """Load config and build services once per invocation."""
    if 'services' not in ctx.obj:
        config = load_config(ctx.obj.get('config_path'))
        ctx.obj['services'] = build_services(config)
    return ctx.obj['services']


@click.group()
@click.version_option(version="1.0.0")
@click.option('--config', 'config_path', type=click.Path(dir_okay=False, path_type=Path),
              help='Config file (default: ~/.config/melodia/config.json)')
@click.option('-v', '--verbose', is_flag=True, help='Show debug logging')
@click.pass_context
def cli(ctx, config_path, verbose):
    """
    🎵 Melodia music dashboard

    Manage tracks, upload music and repair track durations.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path


@cli.command()
@click.option('--provider', type=click.Choice(['local', 'r2']), default='local',
              help='Storage provider (local directory or Cloudflare R2)')
@click.option('--storage-path', help='Storage root directory (local provider)')
@click.option('--bucket', default=MUSIC_BUCKET, show_default=True, help='Bucket name')
@click.option('--public-url', help='Public base URL of the bucket')
@click.option('--db-path', help='Track database file')
@click.pass_context
def init(ctx, provider, storage_path, bucket, public_url, db_path):
    """
    Create the dashboard configuration.

    Stores the storage credentials (encrypted) and the database location.
    """
    data_dir = Path(DEFAULT_DATA_DIR).expanduser()
    provider_enum = StorageProvider(provider)

    if provider_enum == StorageProvider.LOCAL:
        endpoint = storage_path or str(data_dir / "storage")
        access_key_id = secret_access_key = ""
    else:
        console.print(Panel.fit(
            "[bold]Cloudflare R2 Setup[/bold]\n\n"
            "[yellow]You'll need:[/yellow]\n"
            "• Account ID (found in R2 dashboard)\n"
            "• Access Key ID\n"
            "• Secret Access Key",
            border_style="blue"
        ))
        account_id = Prompt.ask("Cloudflare Account ID").strip()
        endpoint = f"https://{account_id}.r2.cloudflarestorage.com"
        access_key_id = Prompt.ask("Access Key ID").strip()
        secret_access_key = Prompt.ask("Secret Access Key", password=True).strip()

    config = DashboardConfig(
        provider=provider_enum,
        endpoint=endpoint,
        bucket=bucket,
        access_key_id=access_key_id,
        secret_access_key=secret_access_key,
        public_base_url=public_url,
        database_path=db_path or str(data_dir / DATABASE_FILENAME),
    )

    with console.status("Connecting to storage..."):
        try:
            StorageProviderFactory.from_config(config)
        except StorageError as e:
            console.print(f"[red]❌ {e}[/red]")
            return

    path = save_config(config, ctx.obj.get('config_path'))
    console.print(f"\n[green]✓[/green] Configuration saved to: {path}")
    console.print(f"[green]✓[/green] Provider: {StorageProviderFactory.get_provider_name(provider_enum)}")


@cli.command()
@click.option('--search', default='', help='Match title, artist or album')
@click.option('--genre', default='all', help='Genre filter')
@click.option('--status', type=click.Choice(['all'] + [s.value for s in TrackStatus]), default='all')
@click.option('--uploader', help='Only tracks uploaded by this user ID')
@click.pass_context
def tracks(ctx, search, genre, status, uploader):
    """List tracks in the library."""
    try:
        services = _services(ctx)
        found = services.library.browse(search=search, genre=genre, status=status, uploader_id=uploader)
        stats = services.library.stats(uploader)
    except (ConfigError, StorageError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return

    if not found:
        console.print("[yellow]No tracks found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Title", style="cyan")
    table.add_column("Artist")
    table.add_column("Genre")
    table.add_column("Duration", justify="right")
    table.add_column("Status")
    table.add_column("Plays", justify="right")

    for track in found:
        style = STATUS_STYLES[track.status]
        table.add_row(
            track.id[:8],
            track.title,
            track.artist or "Unknown artist",
            track.genre or "-",
            format_duration(track.duration),
            f"[{style}]{track.status.value}[/{style}]",
            str(track.plays),
        )

    console.print(table)
    console.print(f"{len(found)} track(s) shown. Library: {stats['tracks']} total, "
                  f"{stats['active']} active, {stats['draft']} draft, {stats['inactive']} inactive")
    if has_placeholder_durations(found):
        console.print("[yellow]Some tracks show 3:00, which may be a placeholder. "
                      "Run [bold]fix-durations[/bold] to re-measure them.[/yellow]")


def _resolve_track_id(services, track_id: str) -> str:
    """Accept a full ID or the 8-character prefix shown by 'tracks'."""
    if services.store.get_track(track_id):
        return track_id
    matches = [t.id for t in services.store.list_tracks() if t.id.startswith(track_id)]
    if len(matches) == 1:
        return matches[0]
    raise TrackNotFoundError(track_id)


@cli.command()
@click.argument('track_id')
@click.option('--title')
@click.option('--artist')
@click.option('--album')
@click.option('--genre')
@click.option('--year', type=int)
@click.option('--status', type=click.Choice([s.value for s in TrackStatus]))
@click.option('--public/--private', 'is_public', default=None)
@click.pass_context
def edit(ctx, track_id, **fields):
    """Edit a track's metadata."""
    changes = {k: v for k, v in fields.items() if v is not None}
    if not changes:
        console.print("[yellow]Nothing to change.[/yellow]")
        return
    try:
        services = _services(ctx)
        track = services.library.edit(_resolve_track_id(services, track_id), changes)
    except TrackNotFoundError:
        console.print(f"[red]Track not found: {track_id}[/red]")
        return
    except (ConfigError, StorageError, ValueError) as e:
        console.print(f"[red]Error updating track: {e}[/red]")
        return
    console.print(f"[green]✓[/green] Updated [cyan]{track.title}[/cyan]")


@cli.command()
@click.argument('track_id')
@click.option('--remove-audio', is_flag=True, help='Also delete the audio object from storage')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
def delete(ctx, track_id, remove_audio, yes):
    """Delete a track."""
    try:
        services = _services(ctx)
        track = services.library.get(_resolve_track_id(services, track_id))
        if not yes and not Confirm.ask(f"Delete '{track.title}'?"):
            return
        services.library.delete(track.id, remove_audio=remove_audio)
    except TrackNotFoundError:
        console.print(f"[red]Track not found: {track_id}[/red]")
        return
    except (ConfigError, StorageError) as e:
        console.print(f"[red]Error deleting track: {e}[/red]")
        return
    console.print(f"[green]✓[/green] Deleted [cyan]{track.title}[/cyan]")


@cli.command()
@click.argument('files', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option('--uploader', required=True, help='User ID the tracks belong to')
@click.option('--genre', help='Genre for all uploaded tracks')
@click.option('--album', 'album_id', help='Album ID for all uploaded tracks')
@click.option('--parallel', default=1, type=click.IntRange(1, 8), help='Files processed at once')
@click.pass_context
def upload(ctx, files, uploader, genre, album_id, parallel):
    """
    Upload audio files.

    Each file is validated, its duration estimated, then stored and
    registered as an active public track.
    """
    try:
        services = _services(ctx)
    except (ConfigError, StorageError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        console=console
    ) as progress:
        tasks = {}

        def on_progress(update):
            if update.file_name not in tasks:
                tasks[update.file_name] = progress.add_task(update.file_name, total=100)
            progress.update(tasks[update.file_name], completed=update.progress,
                            description=f"{update.file_name} [{update.status.value}]")

        results = services.uploader.run(list(files), uploader, genre=genre, album_id=album_id,
                                        parallel=parallel, progress_callback=on_progress)

    for result in results:
        if result.status == UploadStatus.COMPLETE:
            track = result.track
            console.print(f"[green]✓[/green] {result.file_name} → [cyan]{track.title}[/cyan] "
                          f"({format_duration(track.duration)})")
        else:
            console.print(f"[red]✗ {result.file_name}: {result.error}[/red]")


@cli.command()
@click.argument('file', type=click.Path(exists=True, dir_okay=False))
@click.option('--timeout', type=click.FloatRange(0, min_open=True), help='Seconds to wait for decoding')
@click.pass_context
def estimate(ctx, file, timeout):
    """Estimate the duration of an audio file."""
    try:
        services = _services(ctx)
    except (ConfigError, StorageError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return
    result = services.estimator.estimate(AudioAsset.from_path(file), timeout=timeout)
    colour = "green" if result.is_measured else "yellow"
    console.print(f"{Path(file).name}: [bold]{format_duration(result.seconds)}[/bold] "
                  f"({result.seconds}s, [{colour}]{result.confidence.value}[/{colour}])")


@cli.command('fix-durations')
@click.option('--uploader', help='Only tracks uploaded by this user ID')
@click.option('--workers', type=click.IntRange(1, MAX_SWEEP_WORKERS), help='Tracks measured at once')
@click.pass_context
def fix_durations(ctx, uploader, workers):
    """
    Re-measure tracks stuck at the 3:00 placeholder duration.

    Only durations actually decoded from the audio are written back.
    """
    try:
        services = _services(ctx)
    except (ConfigError, StorageError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return

    corrector = services.corrector
    if workers:
        corrector.workers = workers

    candidates = corrector.candidates(uploader)
    if not candidates:
        console.print("[green]No tracks with placeholder durations.[/green]")
        return

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        console=console
    ) as progress:
        task = progress.add_task(f"Checking {len(candidates)} track(s)...", total=len(candidates))
        report = corrector.run(uploader, on_result=lambda _: progress.advance(task))

    for result in report.results:
        if result.status == CorrectionStatus.CORRECTED:
            console.print(f"[green]✅ {result.title}: {format_duration(result.new_duration)}[/green]")
        elif result.status in (CorrectionStatus.PERSIST_FAILED, CorrectionStatus.ERROR):
            console.print(f"[red]✗ {result.title}: {result.error}[/red]")

    console.print(f"\nCorrected: {report.corrected}  Unchanged: {report.unchanged}  "
                  f"Unmeasured: {report.unmeasured}  Failed: {report.failed}")


@cli.command()
@click.option('--owner', required=True, help='Album owner user ID')
@click.pass_context
def albums(ctx, owner):
    """List an artist's albums."""
    try:
        found = _services(ctx).library.albums(owner)
    except (ConfigError, StorageError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return
    if not found:
        console.print("[yellow]No albums.[/yellow]")
        return
    for album in found:
        console.print(f"[dim]{album.id}[/dim]  {album.title}")


@cli.command()
@click.pass_context
def diagnose(ctx):
    """Check that stored audio is reachable."""
    try:
        services = _services(ctx)
    except (ConfigError, StorageError) as e:
        console.print(f"[red]❌ {e}[/red]")
        return

    result = diagnose_storage(services.storage, services.resolver)
    if result.error:
        console.print(f"[red]❌ {result.error}[/red]")
    console.print(f"📁 Files listed: {len(result.files)}")
    for check, label in ((result.public_check, "Public URL"), (result.signed_check, "Signed URL")):
        if check is None:
            continue
        mark = "[green]✓[/green]" if check.ok else "[red]✗[/red]"
        console.print(f"{mark} {label}: {check.url} ({check.status or check.error})")
    if result.healthy:
        console.print("[green]Storage looks healthy.[/green]")


@cli.command()
@click.option('--port', default=5000, help='Port to run the dashboard API on')
@click.option('--debug/--no-debug', default=False, help='Run in debug mode')
@click.pass_context
def web(ctx, port, debug):
    """Launch the dashboard web API."""
    from .web import start_server
    try:
        services = _services(ctx)
    except (ConfigError, StorageError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return
    console.print(f"[green]Starting dashboard API at http://localhost:{port}[/green]")
    console.print("[yellow]Press Ctrl+C to stop[/yellow]")
    start_server(services, debug=debug, port=port)


if __name__ == '__main__':
    cli()
