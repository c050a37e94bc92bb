from __future__ import annotations
from pathlib import Path, PurePosixPath, PureWindowsPath
from tempfile import TemporaryDirectory
from typing import Any, List

from plexapi.exceptions import PlexApiException
from plexapi.server import PlexServer
from requests.exceptions import RequestException

from ..exceptions import SourceError
from ..models import PlaylistRef, TrackDescriptor
from ..utils.logging import setup_logging

logger = setup_logging(__name__)

_CLIENT_ERRORS = (PlexApiException, RequestException, OSError)


def media_file_name(item: Any) -> str | None:
    """Base name of the first media part of a Plex item, if it has one."""
    try:
        part = item.media[0].parts[0]
    except (AttributeError, IndexError):
        return None
    remote = part.file or ""
    # Servers on Windows report backslash paths.
    if "\\" in remote:
        return PureWindowsPath(remote).name or None
    return PurePosixPath(remote).name or None


class PlexSource:
    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: int | None = 30,
        server_cls: type = PlexServer,
    ):
        self.base_url = base_url
        try:
            self.server = server_cls(base_url, token, timeout=timeout)
        except _CLIENT_ERRORS as e:
            raise SourceError(f"error creating plex client for {base_url}: {e}") from e

    def ping(self) -> str:
        try:
            name = self.server.friendlyName
            version = self.server.version
        except _CLIENT_ERRORS as e:
            raise SourceError(f"error testing plex client: {e}") from e
        logger.info(f"Connected to Plex server {name} (version {version})")
        return f"{name} {version}"

    def list_playlists(self) -> List[PlaylistRef]:
        try:
            playlists = self.server.playlists(playlistType="audio")
        except _CLIENT_ERRORS as e:
            raise SourceError(f"error getting playlists: {e}") from e
        return [
            PlaylistRef(
                id=str(p.ratingKey),
                title=p.title,
                track_count=int(getattr(p, "leafCount", 0) or 0),
            )
            for p in playlists
        ]

    def list_tracks(self, playlist_id: str) -> List[TrackDescriptor]:
        try:
            playlist = self.server.fetchItem(int(playlist_id))
            items = playlist.items()
        except (ValueError, *_CLIENT_ERRORS) as e:
            raise SourceError(f"error getting playlist {playlist_id}: {e}") from e

        descriptors: List[TrackDescriptor] = []
        for item in items:
            filename = media_file_name(item)
            if not filename:
                logger.warning(f"Skipping '{item.title}': no media file on server")
                continue
            descriptors.append(
                TrackDescriptor(
                    title=item.title,
                    duration=item.duration,
                    filename=filename,
                    remote_ref=item,
                )
            )
        return descriptors

    def download_track(self, descriptor: TrackDescriptor, dest_dir: Path) -> Path:
        """Download into a hidden scratch directory, then move the finished
        file onto ``dest_dir/<filename>``. A killed run never leaves a
        truncated file under the final name."""
        dest_dir = Path(dest_dir)
        target = dest_dir / descriptor.filename
        with TemporaryDirectory(prefix=".partial-", dir=dest_dir) as scratch:
            try:
                paths = descriptor.remote_ref.download(
                    savepath=scratch, keep_original_name=True
                )
            except _CLIENT_ERRORS as e:
                raise SourceError(f"error downloading track {descriptor.title}: {e}") from e

            if not paths:
                raise SourceError(f"no file was downloaded for track {descriptor.title}")
            try:
                Path(paths[0]).replace(target)
            except OSError as e:
                raise SourceError(f"error moving download to {target}: {e}") from e
        return target
