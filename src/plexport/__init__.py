__version__ = "0.1.0"

from .config import Config
from .models import PlaylistExportJob, PlaylistRef, Track, TrackDescriptor
from .fetcher import FetchCoordinator
from .playlist import PlaylistWriter, write_manifest
from .transcoder import FFmpegTranscoder
from .plex_integration import PlexSource
from .orchestrator import ExportOrchestrator


__all__ = [
    "Config",
    "PlaylistExportJob",
    "PlaylistRef",
    "Track",
    "TrackDescriptor",
    "FetchCoordinator",
    "PlaylistWriter",
    "write_manifest",
    "FFmpegTranscoder",
    "PlexSource",
    "ExportOrchestrator",
]
