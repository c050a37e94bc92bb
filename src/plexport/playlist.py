from __future__ import annotations
import logging
from pathlib import Path
from typing import Iterable, List
from .exceptions import ManifestError
from .models import Track
from .utils.logging import setup_logging
from .utils.path_utils import ensure_directory, sanitize_file_name

module_logger = setup_logging(__name__)

M3U_HEADER = "#EXTM3U"


def manifest_name(playlist_title: str) -> str:
    return f"{sanitize_file_name(playlist_title)}.m3u"


def render_manifest(tracks: Iterable[Track]) -> str:
    lines: List[str] = [M3U_HEADER]
    for track in tracks:
        lines.append(f"#EXTINF:{track.duration},{track.title}")
        lines.append(str(track.path))
    return "\n".join(lines) + "\n"


class PlaylistWriter:
    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or module_logger

    def write_manifest(
        self, tracks: Iterable[Track], playlist_title: str, out_dir: Path
    ) -> Path:
        """Write an extended M3U for ``tracks`` and return its path.

        The file is ``<title with spaces as underscores>.m3u`` inside
        ``out_dir``; an existing file of that name is overwritten.
        """
        m3u_path = Path(out_dir) / manifest_name(playlist_title)
        try:
            ensure_directory(m3u_path.parent)
        except OSError as e:
            raise ManifestError(f"error creating directory {m3u_path.parent}: {e}") from e

        content = render_manifest(tracks)
        try:
            with open(m3u_path, "w", encoding="utf-8", newline="\n") as f:
                f.write(content)
        except OSError as e:
            raise ManifestError(f"error creating file {m3u_path}: {e}") from e

        self.logger.info(f"M3U created: {m3u_path}")
        return m3u_path


def write_manifest(tracks: Iterable[Track], playlist_title: str, out_dir: Path) -> Path:
    return PlaylistWriter().write_manifest(tracks, playlist_title, out_dir)
