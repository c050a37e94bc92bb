from __future__ import annotations
from argparse import ArgumentTypeError
from shutil import which
from typing import Callable, Iterable, List
from ..exceptions import ConfigError
from ..models import PlaylistRef
from .logging import setup_logging

logger = setup_logging(__name__)

Selector = Callable[[List[PlaylistRef]], List[PlaylistRef]]


def positive_int(value: str) -> int:
    try:
        iv = int(value)
        if iv <= 0:
            raise ArgumentTypeError("value must be a positive integer")
        return iv
    except ValueError:
        raise ArgumentTypeError("value must be a positive integer")


def ensure_dependencies() -> None:
    if which("ffmpeg") is None:
        logger.error("Missing dependency: ffmpeg. Install it and try again.")
        raise SystemExit(1)


def parse_selection(answer: str, count: int) -> List[int]:
    """Turn ``"1,3-5"`` or ``"all"`` into zero-based indices.

    Raises ``ValueError`` for anything out of range or malformed.
    """
    answer = answer.strip().lower()
    if not answer:
        return []
    if answer in ("all", "*"):
        return list(range(count))

    indices: List[int] = []
    for part in answer.replace(" ", ",").split(","):
        if not part:
            continue
        if "-" in part:
            start_s, end_s = part.split("-", 1)
            start, end = int(start_s), int(end_s)
            if start > end:
                raise ValueError(f"bad range {part!r}")
            numbers = range(start, end + 1)
        else:
            numbers = [int(part)]
        for n in numbers:
            if not 1 <= n <= count:
                raise ValueError(f"{n} is not between 1 and {count}")
            if n - 1 not in indices:
                indices.append(n - 1)
    return indices


def prompt_for_selection(
    playlists: List[PlaylistRef],
    input_fn: Callable[[str], str] = input,
    print_fn: Callable[..., None] = print,
) -> List[PlaylistRef]:
    if not playlists:
        print_fn("No audio playlists found on the server.")
        return []

    print_fn("Select playlists to export:")
    for i, playlist in enumerate(playlists, start=1):
        print_fn(f"  {i:>3}. {playlist.title} ({playlist.track_count} tracks)")

    while True:
        answer = input_fn("Playlists (e.g. 1,3-5 or 'all', empty for none): ")
        try:
            indices = parse_selection(answer, len(playlists))
        except ValueError as e:
            print_fn(f"Invalid selection: {e}")
            continue
        selected = [playlists[i] for i in indices]
        print_fn("Selected playlists: " + ", ".join(p.title for p in selected))
        return selected


def select_by_title(titles: Iterable[str]) -> Selector:
    wanted = list(titles)

    def select(playlists: List[PlaylistRef]) -> List[PlaylistRef]:
        by_title = {p.title: p for p in playlists}
        missing = [t for t in wanted if t not in by_title]
        if missing:
            raise ConfigError("Unknown playlist(s): " + ", ".join(missing))
        return [by_title[t] for t in wanted]

    return select


def select_all(playlists: List[PlaylistRef]) -> List[PlaylistRef]:
    return list(playlists)
