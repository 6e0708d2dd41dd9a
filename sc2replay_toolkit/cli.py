"""SC2 Replay Toolkit CLI."""

import json
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click

from . import __version__
from .errors import ReplayError
from .protocol.registry import SCHEMA_PATH_ENV, ProtocolRegistry


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--schema-dir",
    "schema_dirs",
    multiple=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    envvar=SCHEMA_PATH_ENV,
    help="Extra directory of protocol<build>.json schemas (repeatable)",
)
@click.option("-v", "--verbose", is_flag=True, help="Log decoding details to stderr")
@click.pass_context
def main(ctx: click.Context, schema_dirs: Tuple[Path, ...], verbose: bool):
    """SC2 Replay Toolkit - inspect replay archives and decode their events.

    \b
    Archive commands:  info, list, extract
    Protocol commands: header, details, events
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    ctx.obj = ProtocolRegistry(search_paths=schema_dirs)


@main.command()
@click.argument("archive", type=click.Path(exists=True, path_type=Path))
def info(archive: Path):
    """Show the archive headers and table sizes."""
    from .mpq import MPQArchive

    try:
        with MPQArchive(archive, listfile=False) as mpq:
            header = mpq.header
            click.echo(f"Archive:        {archive}")
            click.echo(f"Header offset:  {header.offset}")
            click.echo(f"Format version: {header.format_version}")
            click.echo(f"Archive size:   {header.archive_size}")
            click.echo(f"Sector size:    {header.sector_size}")
            used = sum(1 for entry in mpq.hash_table if not entry.is_empty)
            click.echo(f"Hash table:     {header.hash_table_entries} slots ({used} used)")
            click.echo(f"Block table:    {header.block_table_entries} entries")
            if mpq.user_data_header:
                click.echo(f"User data:      {mpq.user_data_header.user_data_header_size} bytes")

    except ReplayError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command(name="list")
@click.argument("archive", type=click.Path(exists=True, path_type=Path))
def list_files(archive: Path):
    """List files named in the archive's listfile."""
    from .mpq import MPQArchive

    try:
        with MPQArchive(archive) as mpq:
            filenames = mpq.list_files()
            click.echo(f"Files in archive ({len(filenames)}):")
            for filename in filenames:
                entry = mpq.resolve(filename)
                size = entry.size if entry else 0
                click.echo(f"  {filename:40} {size:>10} bytes")

    except ReplayError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("archive", type=click.Path(exists=True, path_type=Path))
@click.argument("filenames", nargs=-1)
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    help="Output directory (default: <archive_name>_extracted)",
)
def extract(archive: Path, filenames: Tuple[str, ...], output: Optional[Path]):
    """Extract files from an archive.

    Extracts every file in the listfile unless FILENAMES are given.
    """
    from .mpq import MPQArchive
    from .mpq.reader import output_path_for

    if output is None:
        output = archive.parent / f"{archive.stem}_extracted"

    try:
        with MPQArchive(archive, listfile=not filenames) as mpq:
            click.echo(f"Output: {output}")
            if filenames:
                output.mkdir(parents=True, exist_ok=True)
                extracted = 0
                for filename in filenames:
                    data = mpq.read_file(filename)
                    if data is None:
                        click.echo(f"  Not found: {filename}", err=True)
                        continue
                    output_path = output_path_for(output, filename)
                    output_path.parent.mkdir(parents=True, exist_ok=True)
                    output_path.write_bytes(data)
                    extracted += 1
            else:
                extracted = sum(1 for _ in mpq.extract_all(output))

            click.echo(f"Extracted: {extracted} files")

    except ReplayError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("replay", type=click.Path(exists=True, path_type=Path))
@click.pass_obj
def header(registry: ProtocolRegistry, replay: Path):
    """Print the replay header as JSON."""
    from .replay import Replay

    try:
        value = Replay(replay, registry=registry).peek()
        click.echo(json.dumps(value.to_python(), indent=2))

    except ReplayError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("replay", type=click.Path(exists=True, path_type=Path))
@click.pass_obj
def details(registry: ProtocolRegistry, replay: Path):
    """Print the game details as JSON."""
    from .mpq import MPQArchive
    from .replay import REPLAY_DETAILS, Replay

    try:
        loader = Replay(replay, registry=registry)
        with MPQArchive(replay, listfile=False) as mpq:
            protocol = loader.protocol_for(loader.read_header(mpq))
            contents = mpq.read_file(REPLAY_DETAILS)
            if not contents:
                click.echo(f"Error: {REPLAY_DETAILS} not found", err=True)
                sys.exit(1)
            value = protocol.decode_replay_details(contents)
        click.echo(json.dumps(value.to_python(), indent=2))

    except ReplayError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("replay", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--stream",
    type=click.Choice(["tracker", "game", "message"]),
    default="tracker",
    help="Event stream to decode",
)
@click.option(
    "--event",
    "event_names",
    multiple=True,
    help="Only output events with this name (repeatable)",
)
@click.option("--limit", type=int, default=None, help="Stop after this many events")
@click.pass_obj
def events(
    registry: ProtocolRegistry,
    replay: Path,
    stream: str,
    event_names: Tuple[str, ...],
    limit: Optional[int],
):
    """Print decoded events as JSON lines."""
    from .mpq import MPQArchive
    from .replay import (
        REPLAY_GAME_EVENTS,
        REPLAY_MESSAGE_EVENTS,
        REPLAY_TRACKER_EVENTS,
        Replay,
    )

    streams = {
        "tracker": (REPLAY_TRACKER_EVENTS, "decode_replay_tracker_events"),
        "game": (REPLAY_GAME_EVENTS, "decode_replay_game_events"),
        "message": (REPLAY_MESSAGE_EVENTS, "decode_replay_message_events"),
    }
    filename, method = streams[stream]

    try:
        loader = Replay(replay, registry=registry)
        with MPQArchive(replay, listfile=False) as mpq:
            protocol = loader.protocol_for(loader.read_header(mpq))
            contents = mpq.read_file(filename)
            if not contents:
                click.echo(f"Error: {filename} not found", err=True)
                sys.exit(1)

            decode = getattr(protocol, method)
            for count, event in enumerate(decode(contents, event_names or None)):
                if limit is not None and count >= limit:
                    break
                click.echo(json.dumps(event.to_dict()))

    except ReplayError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
