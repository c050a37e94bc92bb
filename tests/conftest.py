from __future__ import annotations
import os
import tempfile
from pathlib import Path
from threading import Lock
from time import sleep

import pytest

# Keep test runs out of ~/.cache; must happen before plexport is imported.
os.environ.setdefault("PLEXPORT_LOG_DIR", tempfile.mkdtemp(prefix="plexport-logs-"))

from plexport.exceptions import SourceError, TranscodeError  # noqa: E402
from plexport.models import PlaylistRef, TrackDescriptor  # noqa: E402
from plexport.utils.path_utils import compressed_path  # noqa: E402


class FakeSource:
    def __init__(self, playlists: dict[str, list[TrackDescriptor]] | None = None):
        self.playlists = playlists or {}
        self.failing: set[str] = set()
        self.flaky: dict[str, int] = {}
        self.broken_playlists: set[str] = set()
        self.downloads: list[str] = []
        self.delay = 0.0
        self.active: dict[Path, int] = {}
        self.max_active: dict[Path, int] = {}
        self._lock = Lock()

    def ping(self) -> str:
        return "fake 1.0"

    def list_playlists(self) -> list[PlaylistRef]:
        return [
            PlaylistRef(id=pid, title=pid, track_count=len(tracks))
            for pid, tracks in self.playlists.items()
        ]

    def list_tracks(self, playlist_id: str) -> list[TrackDescriptor]:
        if playlist_id in self.broken_playlists:
            raise SourceError(f"error getting playlist {playlist_id}")
        return list(self.playlists[playlist_id])

    def download_track(self, descriptor: TrackDescriptor, dest_dir: Path) -> Path:
        with self._lock:
            self.downloads.append(descriptor.title)
            if self.flaky.get(descriptor.title, 0) > 0:
                self.flaky[descriptor.title] -= 1
                raise SourceError(f"connection reset for {descriptor.title}")
        if descriptor.title in self.failing:
            raise SourceError(f"error downloading track {descriptor.title}")
        target = Path(dest_dir) / descriptor.filename
        with self._lock:
            self.active[target] = self.active.get(target, 0) + 1
            self.max_active[target] = max(self.max_active.get(target, 0), self.active[target])
        try:
            sleep(self.delay)
            target.write_bytes(b"audio:" + descriptor.title.encode())
        finally:
            with self._lock:
                self.active[target] -= 1
        return target


class FakeTranscoder:
    def __init__(self):
        self.failing: set[str] = set()
        self.calls: list[Path] = []
        self._lock = Lock()

    def transcode(self, source: Path, bitrate: str = "320k", cancel_event=None) -> Path:
        with self._lock:
            self.calls.append(Path(source))
        if Path(source).stem in self.failing:
            raise TranscodeError(f"error converting {source}")
        target = compressed_path(source)
        if target.exists():
            # ffmpeg without -y refuses to overwrite
            raise TranscodeError(f"{target} already exists")
        target.write_bytes(b"mp3:" + Path(source).read_bytes())
        Path(source).unlink()
        return target


def make_descriptor(title: str, ext: str = ".flac", duration: int | None = 180000) -> TrackDescriptor:
    return TrackDescriptor(title=title, duration=duration, filename=f"{title}{ext}")


@pytest.fixture
def fake_source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def fake_transcoder() -> FakeTranscoder:
    return FakeTranscoder()
