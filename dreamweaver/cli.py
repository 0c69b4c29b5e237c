"""Command-line interface for Dreamweaver."""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .config import Accent, Genre, SessionOptions, Voice, get_settings
from .errors import DreamweaverError
from .gateway.factory import create_gateway
from .gateway.interface import GenerationGateway
from .media import image_extension, write_wav
from .models.events import (
    ChapterStarted,
    ImageShown,
    MusicChanged,
    PlaybackError,
    SentenceStarted,
    SessionEnded,
    SessionEvent,
)
from .models.music import MUSIC_CATALOG
from .playback.music import MusicMoodSelector
from .playback.player import PacedPlayer
from .playback.playlist import PlaylistStore
from .playback.session import StorySession


load_dotenv()
console = Console()


class OutputWriter:
    """Saves narration, illustrations and the transcript as events arrive."""

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = output_dir
        (output_dir / "narration").mkdir(parents=True, exist_ok=True)
        (output_dir / "images").mkdir(parents=True, exist_ok=True)
        self.transcript = output_dir / "transcript.txt"
        self.transcript.write_text("", encoding="utf-8")

    async def __call__(self, event: SessionEvent) -> None:
        if isinstance(event, ChapterStarted):
            console.print(f"\n[bold blue]Chapter {event.chapter_index + 1}:[/bold blue] {event.title}")
            self._append(f"\n# {event.title}\n\n")
        elif isinstance(event, MusicChanged):
            console.print(f"[magenta]{event.icon} Music:[/magenta] {event.display_name}")
        elif isinstance(event, SentenceStarted):
            console.print(f"[dim]{event.index:>4}[/dim] {event.text}")
            self._append(event.text + "\n")
            if event.audio:
                write_wav(self.output_dir / "narration" / f"sentence-{event.index:05d}.wav", event.audio)
        elif isinstance(event, ImageShown):
            path = self.output_dir / "images" / f"sentence-{event.index:05d}{image_extension(event.mime_type)}"
            path.write_bytes(event.data)
            console.print(f"[cyan]🖼  {path.name}[/cyan] [dim]{event.prompt}[/dim]")
        elif isinstance(event, PlaybackError):
            style = "bold red" if event.fatal else "yellow"
            console.print(f"[{style}]Error:[/{style}] {event.message}")
        elif isinstance(event, SessionEnded):
            console.print(f"\n[green]Session ended:[/green] {event.reason}")

    def _append(self, text: str) -> None:
        with open(self.transcript, "a", encoding="utf-8") as f:
            f.write(text)


def build_gateway() -> GenerationGateway:
    return create_gateway(get_settings())


@click.group()
@click.version_option(version="0.1.0")
def main():
    """Dreamweaver - AI-narrated, illustrated stories with mood music."""
    pass


@main.command()
@click.argument("prompt")
@click.option("-o", "--output", type=click.Path(path_type=Path), default=Path("stories"), help="Output directory")
@click.option("-v", "--voice", default=Voice.KORE.value, type=click.Choice([v.value for v in Voice], case_sensitive=False))
@click.option("-a", "--accent", default=Accent.NEUTRAL.value, type=click.Choice([a.value for a in Accent], case_sensitive=False))
@click.option("-g", "--genre", default=Genre.FANTASY.value, type=click.Choice([g.value for g in Genre], case_sensitive=False))
@click.option("-m", "--minutes", type=click.IntRange(min=1), default=15, help="Session length in minutes")
@click.option("--image-interval", type=click.IntRange(min=1), default=4, help="Show an image every N sentences")
@click.option("--realtime/--fast", default=False, help="Pace narration in real time")
def tell(
    prompt: str,
    output: Path,
    voice: str,
    accent: str,
    genre: str,
    minutes: int,
    image_interval: int,
    realtime: bool,
):
    """Tell a story from PROMPT, saving narration and illustrations."""
    options = SessionOptions(
        voice=Voice(voice.capitalize()),
        accent=Accent(accent.lower()),
        genre=Genre(genre.lower()),
        session_duration_seconds=minutes * 60,
        image_display_interval_sentences=image_interval,
    )

    try:
        gateway = build_gateway()
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    console.print(f"\n[bold blue]Dreamweaver[/bold blue]")
    console.print(f"Prompt: [cyan]{prompt}[/cyan]")
    console.print(f"Voice: {options.voice.value}, accent: {options.accent.value}, genre: {options.genre.value}\n")

    session = StorySession(gateway, options=options, player=PacedPlayer(speed=1.0 if realtime else 0.0))
    writer = OutputWriter(output / session.state.session_id)
    session.on_event = writer

    try:
        summary = asyncio.run(session.run(prompt))
    except DreamweaverError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    table = Table(title="Session Summary")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Session", summary.session_id)
    table.add_row("Ended", summary.end_reason)
    table.add_row("Chapters", ", ".join(summary.chapters) or "-")
    table.add_row("Sentences", str(summary.sentences_played))
    table.add_row("Output", str(writer.output_dir))
    console.print(table)


@main.command()
def tracks():
    """List the background music catalog."""
    table = Table(title="Music Catalog")
    table.add_column("ID", style="cyan")
    table.add_column("Track", style="white")
    table.add_column("Keywords", style="green")

    for track in MUSIC_CATALOG:
        table.add_row(track.id, f"{track.icon} {track.display_name}", ", ".join(sorted(track.keywords)))

    console.print(table)


@main.command()
@click.argument("text")
@click.option("-s", "--suggested", default="", help="Mood suggested by the story model")
@click.option("-c", "--current", default=None, type=click.Choice([t.id for t in MUSIC_CATALOG]), help="Mood already playing")
@click.option("--min-score", type=click.IntRange(min=1), default=2)
def mood(text: str, suggested: str, current: Optional[str], min_score: int):
    """Score TEXT against the music catalog and show the selected track."""
    selector = MusicMoodSelector(min_score=min_score)
    scores = selector.scores(text)
    selected = selector.select(text, suggested, current)

    table = Table(title="Mood Scores")
    table.add_column("Track", style="white")
    table.add_column("Score", style="green", justify="right")
    for track in selector.catalog:
        marker = " ◀" if track.id == selected else ""
        table.add_row(f"{track.icon} {track.display_name}{marker}", str(scores[track.id]))

    console.print(table)
    console.print(f"Selected: [bold]{selector.track(selected).display_name}[/bold]")


def open_playlists(path: Optional[Path]) -> PlaylistStore:
    return PlaylistStore(path=path or get_settings().playlists_file or Path("playlists.json"))


def print_playlist(store: PlaylistStore, playlist_id: str) -> None:
    playlist = store.get(playlist_id)
    table = Table(title=f"{playlist.name} ({playlist.id})")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Track", style="white")
    for position, track_id in enumerate(playlist.items):
        track = store.track(track_id)
        table.add_row(str(position), f"{track.icon} {track.display_name}")
    console.print(table)


@main.group()
@click.option("-f", "--file", "path", type=click.Path(path_type=Path), default=None, help="Playlist file")
@click.pass_context
def playlist(ctx: click.Context, path: Optional[Path]):
    """Manage playlists of background tracks."""
    ctx.obj = open_playlists(path)


@playlist.command("list")
@click.pass_obj
def list_playlists(store: PlaylistStore):
    """List saved playlists."""
    table = Table(title="Playlists")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Tracks", justify="right")
    for p in store.all():
        table.add_row(p.id, p.name, str(len(p.items)))
    console.print(table)


@playlist.command("create")
@click.argument("name", default="")
@click.pass_obj
def create_playlist(store: PlaylistStore, name: str):
    """Create an empty playlist."""
    created = store.create(name)
    console.print(f"[green]Created[/green] {created.name} ({created.id})")


@playlist.command("delete")
@click.argument("playlist_id")
@click.pass_obj
def delete_playlist(store: PlaylistStore, playlist_id: str):
    try:
        store.delete(playlist_id)
    except KeyError:
        raise click.ClickException(f"Playlist not found: {playlist_id}")
    console.print(f"[yellow]Deleted[/yellow] {playlist_id}")


@playlist.command("add")
@click.argument("playlist_id")
@click.argument("track_id", type=click.Choice([t.id for t in MUSIC_CATALOG]))
@click.pass_obj
def add_track(store: PlaylistStore, playlist_id: str, track_id: str):
    """Append a catalog track to a playlist."""
    try:
        store.add(playlist_id, track_id)
    except KeyError:
        raise click.ClickException(f"Playlist not found: {playlist_id}")
    print_playlist(store, playlist_id)


@playlist.command("remove")
@click.argument("playlist_id")
@click.argument("position", type=int)
@click.pass_obj
def remove_track(store: PlaylistStore, playlist_id: str, position: int):
    """Remove the track at POSITION from a playlist."""
    try:
        store.remove(playlist_id, position)
    except KeyError:
        raise click.ClickException(f"Playlist not found: {playlist_id}")
    except IndexError as e:
        raise click.ClickException(str(e))
    print_playlist(store, playlist_id)


@playlist.command("show")
@click.argument("playlist_id")
@click.pass_obj
def show_playlist(store: PlaylistStore, playlist_id: str):
    try:
        print_playlist(store, playlist_id)
    except KeyError:
        raise click.ClickException(f"Playlist not found: {playlist_id}")


if __name__ == "__main__":
    main()
