from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any, List, Optional, Tuple

SKIPPED = "skipped"
DOWNLOADED = "downloaded"
CONVERTED = "converted"
FAILED = "failed"


@dataclass(slots=True)
class PlaylistRef:
    id: str
    title: str
    track_count: int = 0


@dataclass(slots=True)
class TrackDescriptor:
    title: str
    duration: Optional[int]  # milliseconds, as reported by the server
    filename: str
    remote_ref: Any = field(default=None, repr=False, compare=False)

    @property
    def duration_seconds(self) -> int:
        if self.duration is None or self.duration < 0:
            return -1
        return round(self.duration / 1000)


@dataclass(frozen=True, slots=True)
class Track:
    title: str
    path: Path
    duration: int  # seconds, the unit of #EXTINF


@dataclass(slots=True)
class TrackOutcome:
    descriptor: TrackDescriptor
    status: str
    track: Optional[Track] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != FAILED and self.track is not None


@dataclass
class PlaylistExportJob:
    title: str
    source_id: str
    tracks: List[Track] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)
    skipped: int = 0
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    def add_track(self, track: Track, skipped: bool = False) -> None:
        with self._lock:
            self.tracks.append(track)
            if skipped:
                self.skipped += 1

    def add_failure(self, title: str, reason: str) -> None:
        with self._lock:
            self.failures.append((title, reason))


@dataclass(slots=True)
class ExportReport:
    exported: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    manifests: List[Path] = field(default_factory=list)
    removed: List[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed
