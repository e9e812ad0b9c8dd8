"""CLI entry point for the Spotify Web API client."""

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from src.spotify import auth as spotify_auth
from src.spotify import options
from src.spotify.auth import (
    ClientCredentialsTokenSource,
    RefreshTokenSource,
    TokenSource,
)
from src.spotify.client import SpotifyClient
from src.spotify.errors import SpotifyError
from src.utils.config import Settings, load_config
from src.utils.logging import setup_logging

app = typer.Typer(
    name="spotify",
    help="Spotify Web API client",
    no_args_is_help=True,
)
console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to configuration file"),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable verbose output"),
]


def get_config_path(config: Optional[Path]) -> Path:
    """Get the configuration file path."""
    return config or Path("config.yaml")


def _load(config: Optional[Path], verbose: bool = False) -> Settings:
    settings = load_config(get_config_path(config))
    setup_logging(
        log_level="DEBUG" if verbose else settings.logging.level,
        log_file=settings.logging.file_path,
        json_format=settings.logging.json_format,
    )
    return settings


def _token_source(settings: Settings, user: bool) -> TokenSource:
    if user:
        return RefreshTokenSource.from_keyring(
            settings.spotify.client_id,
            settings.spotify.client_secret,
        )
    return ClientCredentialsTokenSource(
        settings.spotify.client_id,
        settings.spotify.client_secret,
    )


def _client(settings: Settings, user: bool = False) -> SpotifyClient:
    return SpotifyClient(
        auth=_token_source(settings, user),
        base_url=settings.spotify.base_url,
        accept_language=settings.spotify.accept_language,
        retry=settings.spotify.retry,
        timeout=settings.spotify.timeout,
    )


def _run(coro, verbose: bool):
    try:
        return asyncio.run(coro)
    except SpotifyError as e:
        rprint(f"\n[red]Error:[/red] {e}")
        if verbose:
            console.print_exception()
        raise typer.Exit(1)


@app.command()
def auth(config: ConfigOption = None) -> None:
    """Store a Spotify refresh token in the system keychain."""
    _load(config)

    rprint("\n[bold blue]Spotify Authentication[/bold blue]\n")

    if spotify_auth.has_refresh_token():
        rprint("[green]✓[/green] Refresh token already exists in keychain")
        if not typer.confirm("Do you want to replace it?"):
            return

    rprint("Complete the authorization code flow for your Spotify app and")
    rprint("paste the refresh_token from the token response below.")
    rprint()

    token = typer.prompt("Refresh token", hide_input=True)
    if token.strip():
        spotify_auth.store_refresh_token(token.strip())
        rprint("\n[green]✓[/green] Refresh token stored in keychain")
    else:
        rprint("[yellow]Warning:[/yellow] No token provided. Authentication incomplete.")


@app.command()
def status(config: ConfigOption = None) -> None:
    """Show configuration and authentication status."""
    settings = _load(config)

    rprint("\n[bold blue]Spotify Client Status[/bold blue]\n")
    rprint(f"[bold]API:[/bold] {settings.spotify.base_url}")
    rprint(f"[bold]Retry on 429:[/bold] {'on' if settings.spotify.retry else 'off'}")
    rprint()

    rprint("[bold]Authentication:[/bold]")
    if settings.spotify.client_id and settings.spotify.client_secret:
        rprint("  [green]✓[/green] Client credentials configured")
    else:
        rprint("  [red]✗[/red] Client credentials missing")

    if spotify_auth.has_refresh_token():
        rprint("  [green]✓[/green] Refresh token present in keychain")
    else:
        rprint("  [red]✗[/red] Refresh token not found (run 'spotify auth')")


@app.command("new-releases")
def new_releases(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Albums to show")] = 20,
    config: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """List new album releases."""
    settings = _load(config, verbose)

    async def fetch():
        opts = [options.limit(limit)]
        if settings.spotify.market:
            opts.append(options.country(settings.spotify.market))
        async with _client(settings) as client:
            return await client.new_releases(*opts)

    page = _run(fetch(), verbose)

    table = Table(title=f"New Releases ({page.total} total)")
    table.add_column("Album", style="cyan")
    table.add_column("Artists")
    table.add_column("Released")
    for album in page.items:
        table.add_row(
            album.name,
            ", ".join(a.name for a in album.artists),
            album.release_date or "",
        )
    console.print(table)


@app.command()
def categories(
    config: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """List every browse category."""
    settings = _load(config, verbose)

    async def fetch():
        async with _client(settings) as client:
            first = await client.get_categories(options.limit(50))
            return [c async for c in client.iter_items(first)]

    table = Table(title="Categories")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    for category in _run(fetch(), verbose):
        table.add_row(category.id, category.name)
    console.print(table)


@app.command("playlist-tracks")
def playlist_tracks(
    playlist_id: Annotated[str, typer.Argument(help="Spotify playlist ID")],
    config: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Walk every page of a playlist's tracks."""
    settings = _load(config, verbose)

    async def walk() -> None:
        async with _client(settings) as client:
            tracks = await client.get_playlist_tracks(playlist_id)
            rprint(f"Playlist has [bold]{tracks.total}[/bold] total tracks")
            number = 0
            async for page in client.iter_pages(tracks):
                number += 1
                rprint(f"  Page {number} has {len(page.items)} tracks")
                for item in page.items:
                    if item.track is not None:
                        rprint(f"    [cyan]{item.track.name}[/cyan]")

    _run(walk(), verbose)


@app.command("library-contains")
def library_contains(
    track_ids: Annotated[list[str], typer.Argument(help="Track IDs (1 to 50)")],
    config: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Check which tracks are saved in your library."""
    settings = _load(config, verbose)

    async def check():
        async with _client(settings, user=True) as client:
            return await client.user_has_tracks(track_ids)

    for track_id, saved in zip(track_ids, _run(check(), verbose)):
        mark = "[green]✓[/green]" if saved else "[red]✗[/red]"
        rprint(f"{mark} {track_id}")


@app.command("library-add")
def library_add(
    track_ids: Annotated[list[str], typer.Argument(help="Track IDs (1 to 50)")],
    config: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Save tracks to your library."""
    settings = _load(config, verbose)

    async def add() -> None:
        async with _client(settings, user=True) as client:
            await client.add_tracks_to_library(track_ids)

    _run(add(), verbose)
    rprint(f"[green]✓[/green] Saved {len(track_ids)} track(s)")


if __name__ == "__main__":
    app()
