from __future__ import annotations
from os import PathLike
from os.path import exists as _path_exists
from pathlib import Path
from re import sub as _re_sub
from typing import Callable, Union

from ..models import TrackDescriptor

LOSSLESS_EXTENSIONS = (".flac", ".wav", ".aiff", ".aif")
COMPRESSED_EXTENSION = ".mp3"
PARTIAL_MARKER = ".part"

StrPath = Union[str, PathLike]


def is_lossless(path: StrPath) -> bool:
    return Path(path).suffix.lower() in LOSSLESS_EXTENSIONS


def compressed_path(path: StrPath) -> Path:
    """Return the sibling path the compressed copy of ``path`` lives at.

    Only the final suffix is replaced, so ``Song.flac.flac`` becomes
    ``Song.flac.mp3``. Paths that are not lossless come back unchanged.
    """
    path = Path(path)
    if not is_lossless(path):
        return path
    return path.with_suffix(COMPRESSED_EXTENSION)


def partial_path(path: StrPath) -> Path:
    """``Song.mp3`` -> ``Song.part.mp3``; the suffix stays last so ffmpeg
    still picks the output format from it."""
    path = Path(path)
    return path.with_name(f"{path.stem}{PARTIAL_MARKER}{path.suffix}")


def expected_final_path(descriptor: TrackDescriptor, out_dir: StrPath) -> Path:
    return compressed_path(Path(out_dir) / descriptor.filename)


def is_already_exported(
    descriptor: TrackDescriptor,
    out_dir: StrPath,
    exists: Callable[[StrPath], bool] = _path_exists,
) -> bool:
    return bool(exists(expected_final_path(descriptor, out_dir)))


def sanitize_file_name(name: str) -> str:
    # Only spaces are replaced; see DESIGN.md for the known limitation.
    return name.replace(" ", "_")


def safe_folder_name(name: str, base_path: Path) -> Path:
    safe = _re_sub(r"[/\\\x00-\x1f]+", "_", name).strip(". ")
    if not safe:
        safe = "playlist"
    # Truncate to avoid OS path length issues
    if len(safe) > 80:
        safe = safe[:80]
    return base_path / safe


def ensure_directory(path: StrPath) -> Path:
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path
