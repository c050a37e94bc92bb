from __future__ import annotations
import logging
from argparse import (
    ArgumentParser,
    ArgumentDefaultsHelpFormatter,
    RawTextHelpFormatter,
)
from pathlib import Path
from . import __version__
from .config import Config
from .exceptions import PlexportError
from .orchestrator import ExportOrchestrator
from .utils.logging import enable_console_logging, setup_logging
from .utils.cli import (
    Selector,
    ensure_dependencies,
    positive_int,
    prompt_for_selection,
    select_all,
    select_by_title,
)

logger = setup_logging(__name__)


class HelpFormatter(ArgumentDefaultsHelpFormatter, RawTextHelpFormatter):
    pass


def get_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="plexport",
        description=(
            "Plexport - export Plex playlists to M3U files\n\n"
            "Tracks are downloaded next to the playlist file; lossless files\n"
            "are converted to 320k MP3. PLEX_URL and PLEX_TOKEN must be set.\n\n"
            "Examples:\n"
            "  plexport --out-dir ~/Exports\n"
            "  plexport --out-dir ~/Exports --playlist 'Road Trip' --playlist 'Gym'\n"
            "  plexport --out-dir ~/Exports --all --workers 8\n"
        ),
        formatter_class=HelpFormatter,
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"Plexport {__version__}",
        help="Show version and exit.",
    )
    parser.add_argument(
        "--out-dir",
        type=Path,
        required=True,
        help="Output directory for files and playlist(s).",
    )
    selection = parser.add_mutually_exclusive_group()
    selection.add_argument(
        "--playlist",
        action="append",
        help="Title of a playlist to export. Repeatable. Skips the interactive prompt.",
    )
    selection.add_argument(
        "--all",
        action="store_true",
        help="Export every audio playlist on the server.",
    )
    parser.add_argument(
        "--workers",
        type=positive_int,
        help="Number of tracks to download in parallel. Defaults to the config value.",
    )
    parser.add_argument(
        "--retries",
        type=positive_int,
        help="Download attempts per track. Defaults to the config value.",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="No progress bars; only warnings and errors on the console.",
    )
    return parser


def get_selector(args) -> Selector:
    if args.all:
        return select_all
    if args.playlist:
        return select_by_title(args.playlist)
    return prompt_for_selection


def main(argv: list[str] | None = None) -> None:
    parser = get_parser()
    args = parser.parse_args(argv)

    enable_console_logging(logging.WARNING if args.quiet else logging.INFO)
    ensure_dependencies()

    try:
        config = Config()
        orchestrator = ExportOrchestrator(
            out_dir=args.out_dir.expanduser(),
            config=config,
            selector=get_selector(args),
            verbose=not args.quiet,
        )
        if args.workers:
            orchestrator.max_workers = args.workers
        if args.retries:
            orchestrator.retries = args.retries
        report = orchestrator.run()
    except KeyboardInterrupt:
        logger.info("Export cancelled by user.")
        if not args.quiet:
            print("\nCancelled by user.")
        raise SystemExit(130)
    except PlexportError as e:
        logger.error(f"Error exporting playlists: {e}")
        raise SystemExit(1)

    if report.failed:
        logger.warning("Playlists with errors: " + ", ".join(report.failed))
    if not args.quiet:
        print(
            f"Exported {len(report.exported)} playlist(s) to {args.out_dir}"
            + (f", {len(report.failed)} failed" if report.failed else "")
        )
