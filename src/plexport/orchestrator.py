from __future__ import annotations
import logging
from pathlib import Path
from signal import getsignal, signal, SIGTERM
from threading import Event, current_thread, main_thread
from typing import Callable
from .config import Config
from .exceptions import ExportError, PlexportError
from .fetcher import FetchCoordinator
from .models import ExportReport, PlaylistRef
from .playlist import PlaylistWriter
from .plex_integration.source import PlexSource
from .transcoder import DEFAULT_BITRATE, FFmpegTranscoder
from .utils.cli import Selector
from .utils.logging import setup_logging
from .utils.path_utils import ensure_directory, is_lossless, safe_folder_name

module_logger = setup_logging(__name__)


class ExportOrchestrator:
    def __init__(
        self,
        out_dir: Path,
        config: Config,
        selector: Selector,
        source_factory: Callable[..., PlexSource] = PlexSource,
        transcoder=None,
        cancel_event: Event | None = None,
        verbose: bool = True,
        logger: logging.Logger | None = None,
    ):
        self.out_dir = Path(out_dir)
        self.config = config
        self.selector = selector
        self.source_factory = source_factory
        self.cancel_event = cancel_event or Event()
        self.verbose = verbose
        self.logger = logger or module_logger
        self.transcoder = transcoder or FFmpegTranscoder(
            timeout=config.get_int("transcode_timeout")
        )
        self.writer = PlaylistWriter(logger=self.logger)
        self._set_default_attributes()

    def _set_default_attributes(self) -> None:
        self.max_workers: int = self.config.get_int("workers")
        self.retries: int = self.config.get_int("retries")
        self.retry_backoff: float = 2.0
        self.bitrate: str = DEFAULT_BITRATE

    def run(self) -> ExportReport:
        url, token = self.config.require_plex()
        source = self._connect(url, token)

        self.logger.info(f"Creating output directory: {self.out_dir}")
        try:
            ensure_directory(self.out_dir)
        except OSError as e:
            raise ExportError(f"error creating directory {self.out_dir}: {e}") from e

        try:
            playlists = source.list_playlists()
        except PlexportError as e:
            raise ExportError(f"error getting playlists: {e}") from e

        selected = self.selector(playlists)
        report = ExportReport()
        coordinator = FetchCoordinator(
            source,
            self.transcoder,
            max_workers=self.max_workers,
            bitrate=self.bitrate,
            retries=self.retries,
            retry_backoff=self.retry_backoff,
            cancel_event=self.cancel_event,
            verbose=self.verbose,
            logger=self.logger,
        )

        old_sigterm = self._install_sigterm_handler()
        try:
            for playlist in selected:
                self.logger.info(
                    f"Exporting playlist '{playlist.title}' (id {playlist.id})"
                )
                try:
                    manifest = self.export_playlist(coordinator, playlist)
                except Exception as e:
                    self.logger.error(
                        f"Failed exporting playlist '{playlist.title}': {e}", exc_info=True
                    )
                    report.failed.append(playlist.title)
                    continue
                report.exported.append(playlist.title)
                report.manifests.append(manifest)
        except KeyboardInterrupt:
            self.logger.info("Export cancelled by user.")
            self.cancel_event.set()
            raise
        finally:
            if old_sigterm is not None:
                signal(SIGTERM, old_sigterm)

        report.removed.extend(self.remove_lossless_files())
        self.logger.info(f"Export completed: output directory {self.out_dir}")
        return report

    def _install_sigterm_handler(self):
        # signal handlers can only be set from the main thread
        if current_thread() is not main_thread():
            return None
        old = getsignal(SIGTERM)

        def _on_signal(signum, frame):
            self.logger.info(f"Signal {signum} received. Cancelling export.")
            self.cancel_event.set()
            raise KeyboardInterrupt

        signal(SIGTERM, _on_signal)
        return old

    def _connect(self, url: str, token: str) -> PlexSource:
        # PlexSource raises SourceError for both construction and liveness failures
        source = self.source_factory(url, token, timeout=self.config.get_int("timeout"))
        source.ping()
        self.logger.debug("Client created successfully")
        return source

    def export_playlist(self, coordinator: FetchCoordinator, playlist: PlaylistRef) -> Path:
        playlist_dir = ensure_directory(safe_folder_name(playlist.title, self.out_dir))
        job = coordinator.fetch_and_convert(playlist, playlist_dir)
        for title, reason in job.failures:
            self.logger.warning(f"'{title}' left out of '{playlist.title}': {reason}")
        return self.writer.write_manifest(job.tracks, job.title, playlist_dir)

    def remove_lossless_files(self) -> list[Path]:
        removed: list[Path] = []
        try:
            for path in sorted(self.out_dir.rglob("*")):
                if path.is_file() and is_lossless(path):
                    path.unlink()
                    removed.append(path)
                    self.logger.info(f"Removed lossless file: {path}")
        except OSError as e:
            raise ExportError(f"error walking output directory {self.out_dir}: {e}") from e
        return removed
