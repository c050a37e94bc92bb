from __future__ import annotations


class PlexportError(Exception):
    """Base exception for plexport."""


class ExportError(PlexportError):
    """A run-level failure. Aborts the whole export."""


class ConfigError(ExportError):
    """Required configuration is missing or invalid."""


class SourceError(ExportError):
    """The media server could not be reached or refused a request."""


class FetchError(PlexportError):
    """A playlist's track listing could not be obtained."""


class TranscodeError(PlexportError):
    """ffmpeg failed, timed out or was cancelled."""


class ManifestError(PlexportError):
    """The playlist manifest could not be written."""
