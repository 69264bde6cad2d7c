"""
Main CLI interface for playlist-sync

Commands:
- scrape: fetch a playlist and update its state and export files
- download: download all tracks of a scraped playlist
- sync: scrape and download new tracks of the configured playlists, once or
  on a fixed interval
- config: show or update the saved configuration
- doctor: check prerequisites and configuration
"""

import functools
import importlib.util
import sys
import time
from typing import List

import click

from . import __version__
from .config.settings import Settings, get_settings, parse_playlist_ids, reload_settings
from .exceptions import ConfigurationError, StateCorruptError
from .spotify.client import SpotifyClient
from .sync.diff import format_diff_report
from .sync.synchronizer import PlaylistSynchronizer
from .utils.helpers import format_duration, minutes_since
from .utils.logger import configure_from_settings, get_current_log_file, get_logger
from .utils.validation import validate_playlist_id, validate_spotify_url
from .ytmusic.cookies import load_cookie_file
from .ytmusic.downloader import ffmpeg_location


logger = get_logger(__name__)


def handle_error(func):
    """
    Decorator to handle common CLI errors gracefully

    Ctrl-C exits with status 130, any other failure with status 1.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            click.echo(click.style("\n\nOperation cancelled by user", fg='yellow'))
            sys.exit(130)
        except Exception as e:
            logger.error(f"Command failed: {e}")
            click.echo(click.style(f"Error: {e}", fg='red'), err=True)
            sys.exit(1)
    return wrapper


def find_prerequisite_issues(settings: Settings, require_playlists: bool = False) -> List[str]:
    """
    Collect problems that prevent downloading

    Args:
        settings: Application settings
        require_playlists: Whether at least one playlist id must be configured

    Returns:
        Human-readable problems, empty when everything is in place
    """
    issues = list(settings.validate())

    if not ffmpeg_location():
        issues.append("ffmpeg is not installed or not in PATH")

    if importlib.util.find_spec('yt_dlp') is None:
        issues.append("yt-dlp is not installed (pip install yt-dlp)")

    cookies_path = settings.get_cookies_path()
    if not cookies_path.is_file():
        issues.append(
            f"{cookies_path} not found; export your YouTube Music cookies "
            f"with a browser extension such as \"Get cookies.txt\""
        )
    else:
        try:
            load_cookie_file(cookies_path)
        except ConfigurationError as e:
            issues.append(f"{e}; export fresh YouTube Music cookies")

    if require_playlists and not settings.sync.playlist_ids:
        issues.append("No playlist IDs configured; set PLAYLIST_IDS=id1,id2 in .env")

    return issues


def check_prerequisites(settings: Settings, require_playlists: bool = False) -> None:
    """
    Verify prerequisites before any network activity

    Raises:
        ConfigurationError: If anything is missing
    """
    issues = find_prerequisite_issues(settings, require_playlists)
    if issues:
        raise ConfigurationError(
            "Prerequisites not met:\n  - " + "\n  - ".join(issues),
            details={'issues': issues}
        )


def resolve_playlist_id(value: str) -> str:
    """
    Accept a playlist URL, URI or bare id

    Raises:
        click.BadParameter: If the value is neither
    """
    is_valid_id, _ = validate_playlist_id(value)
    if is_valid_id:
        return value

    is_valid_url, error = validate_spotify_url(value)
    if not is_valid_url:
        raise click.BadParameter(f"Invalid Spotify playlist URL: {error}")

    return SpotifyClient.extract_playlist_id(value)


def create_synchronizer(settings: Settings) -> PlaylistSynchronizer:
    settings.ensure_directories()
    return PlaylistSynchronizer(settings)


@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--config', type=click.Path(), help='Path to config file')
@click.pass_context
def cli(ctx, version, verbose, config):
    """
    playlist-sync - Mirror Spotify playlists as local audio files

    Tracks are matched on YouTube Music, downloaded with yt-dlp and tagged
    so that each playlist shows up as one album.
    """
    ctx.ensure_object(dict)

    if version:
        click.echo(f"playlist-sync v{__version__}")
        return

    settings = reload_settings(config) if config else get_settings()
    if verbose:
        settings.logging.level = "DEBUG"
        ctx.obj['verbose'] = True

    configure_from_settings()
    ctx.obj['settings'] = settings

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.argument('playlist_url')
@click.option('--force', is_flag=True, help='Ignore saved state and overwrite it')
@click.pass_context
@handle_error
def scrape(ctx, playlist_url, force):
    """Fetch a playlist and save its track list"""
    settings = ctx.obj['settings']
    playlist_id = resolve_playlist_id(playlist_url)
    synchronizer = create_synchronizer(settings)

    click.echo(f"Playlist ID: {playlist_id}")

    if not force:
        try:
            previous = synchronizer.state_store.load(playlist_id)
        except StateCorruptError:
            previous = None
        if previous is not None:
            click.echo(f"Last scan: {minutes_since(previous.captured_at)} minute(s) ago")
            click.echo(f"Previous count: {previous.track_count} tracks")

    start_time = time.time()
    result = synchronizer.scrape_playlist(playlist_id, force=force)
    click.echo(f"Duration: {format_duration(time.time() - start_time)}")
    click.echo(f"Playlist: \"{result.snapshot.name}\"")

    if result.diff is not None:
        click.echo("")
        for line in format_diff_report(result.diff, result.snapshot.name):
            click.echo(line)
        if not result.persisted:
            click.echo(click.style("\nPlaylist is up to date (no changes)", fg='green'))
            return
    elif force:
        click.echo("\nForce mode: Overwriting existing data")
    else:
        click.echo("\nFirst scan of this playlist")

    click.echo(click.style("\nSuccessfully saved:", fg='green'))
    click.echo(f"   {result.export_path}")
    click.echo(f"   {result.state_path}")

    if result.diff is not None and result.diff.added:
        click.echo(f"\n{len(result.diff.added)} new track(s) found!")
        click.echo(f"   Start download with: playlist-sync download {playlist_id}")


@cli.command()
@click.argument('playlist_id')
@click.pass_context
@handle_error
def download(ctx, playlist_id):
    """Download all tracks of a scraped playlist"""
    settings = ctx.obj['settings']
    playlist_id = resolve_playlist_id(playlist_id)
    check_prerequisites(settings)

    synchronizer = create_synchronizer(settings)
    summary = synchronizer.download_playlist(playlist_id)

    click.echo("")
    click.echo(click.style(f"Successful: {summary.downloaded}", fg='green'))
    click.echo(f"Skipped: {summary.skipped}")
    click.echo(f"Not found: {summary.not_found}")
    click.echo(click.style(f"Errors: {summary.failed}", fg='red' if summary.failed else None))
    click.echo(f"Output directory: {settings.get_output_directory() / playlist_id}")


@cli.command()
@click.option('--once', is_flag=True, help='Run a single sync cycle and exit')
@click.option('--force', is_flag=True, help='Download all tracks even if unchanged')
@click.pass_context
@handle_error
def sync(ctx, once, force):
    """Synchronize all configured playlists"""
    settings = ctx.obj['settings']
    check_prerequisites(settings, require_playlists=True)

    synchronizer = create_synchronizer(settings)
    playlist_ids = settings.sync.playlist_ids

    if once:
        summary = synchronizer.sync_all(playlist_ids, force=force)
        if summary.failed_playlists:
            click.echo(click.style(
                f"{len(summary.failed_playlists)} playlist(s) failed, see log for details",
                fg='yellow'
            ))
        return

    click.echo(f"Syncing {len(playlist_ids)} playlist(s) every {settings.sync.interval_hours} hour(s)")
    synchronizer.run_forever(playlist_ids, settings.sync.interval_hours, force_first=force)


@cli.group()
def config():
    """View and update the configuration file"""
    pass


@config.command()
@click.pass_context
@handle_error
def show(ctx):
    """Show current configuration"""
    settings = ctx.obj['settings']

    click.echo(f"Config directory: {settings.get_config_directory()}")
    click.echo("\nDownload:")
    click.echo(f"   Output: {settings.get_output_directory()}")
    click.echo(f"   Format: {settings.download.format}")
    click.echo(f"   Quality: {settings.download.quality}")
    click.echo(f"   Delay: {settings.download.delay_min}-{settings.download.delay_max}s")

    click.echo("\nSync:")
    click.echo(f"   Playlists: {', '.join(settings.sync.playlist_ids) or 'none'}")
    click.echo(f"   Interval: {settings.sync.interval_hours} hour(s)")
    click.echo(f"   On corrupt state: {settings.sync.on_corrupt_state}")
    click.echo(f"   State directory: {settings.get_data_directory()}")

    click.echo("\nYouTube Music:")
    click.echo(f"   Cookies: {settings.get_cookies_path()}")


@config.command('set')
@click.option('--format', 'audio_format', type=click.Choice(['mp3', 'flac', 'm4a']), help='Set audio format')
@click.option('--output', type=click.Path(), help='Set output directory')
@click.option('--interval', type=click.FloatRange(min=0, min_open=True), help='Set sync interval in hours')
@click.option('--playlists', help='Set playlist IDs, comma separated')
@click.pass_context
@handle_error
def set_config(ctx, audio_format, output, interval, playlists):
    """
    Update configuration settings

    Changes are written to the user config file and apply to later runs.
    Environment variables still take precedence over the file.
    """
    settings = ctx.obj['settings']
    changes = []

    if audio_format:
        settings.download.format = audio_format
        changes.append(f"Audio format: {audio_format}")

    if output:
        settings.download.output_directory = output
        changes.append(f"Output directory: {output}")

    if interval:
        settings.sync.interval_hours = interval
        changes.append(f"Sync interval: {interval} hour(s)")

    if playlists is not None:
        settings.sync.playlist_ids = parse_playlist_ids(playlists)
        changes.append(f"Playlists: {len(settings.sync.playlist_ids)}")

    if not changes:
        click.echo("No changes specified")
        return

    path = settings.save_config()
    click.echo(f"Configuration updated ({path}):")
    for change in changes:
        click.echo(f"   {change}")


@cli.command()
@click.pass_context
def doctor(ctx):
    """
    Run system diagnostics

    Checks external tools, Python dependencies, the cookie jar and the
    configuration without making any network requests.
    """
    settings = ctx.obj['settings']
    click.echo("Running diagnostics...\n")

    location = ffmpeg_location()
    click.echo(f"ffmpeg: {location or 'Not found'}")

    dependencies = [
        ('yt_dlp', 'yt-dlp', 'required for downloading'),
        ('mutagen', 'mutagen', 'required for metadata handling'),
        ('PIL', 'Pillow', 'required for cover art'),
    ]
    for module_name, display_name, _ in dependencies:
        installed = importlib.util.find_spec(module_name) is not None
        click.echo(f"{display_name}: {'OK' if installed else 'Not installed'}")

    cookies_path = settings.get_cookies_path()
    click.echo(f"Cookies: {cookies_path} ({'found' if cookies_path.is_file() else 'missing'})")
    click.echo(f"Playlists configured: {len(settings.sync.playlist_ids)}")
    click.echo(f"Output directory: {settings.get_output_directory()}")

    current_log = get_current_log_file()
    click.echo(f"Logging: {current_log or 'Console only'}")

    issues = find_prerequisite_issues(settings, require_playlists=True)
    for module_name, display_name, purpose in dependencies[1:]:
        if importlib.util.find_spec(module_name) is None:
            issues.append(f"{display_name} is {purpose}")

    click.echo("")
    if issues:
        click.echo(click.style("Issues found:", fg='yellow'))
        for issue in issues:
            click.echo(f"  - {issue}")
    else:
        click.echo(click.style("All checks passed", fg='green'))


def main():
    """Console script entry point"""
    cli(obj={})


if __name__ == '__main__':
    main()
