from __future__ import annotations
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed, Future
from os.path import exists as path_exists
from pathlib import Path
from threading import Event, Lock
from typing import Callable
from tqdm import tqdm
from .exceptions import FetchError, PlexportError
from .models import (
    CONVERTED,
    DOWNLOADED,
    FAILED,
    SKIPPED,
    PlaylistExportJob,
    PlaylistRef,
    Track,
    TrackDescriptor,
    TrackOutcome,
)
from .transcoder import DEFAULT_BITRATE
from .utils.logging import setup_logging
from .utils.path_utils import expected_final_path, is_already_exported, is_lossless

module_logger = setup_logging(__name__)


class FetchCoordinator:
    """Downloads and converts the tracks of one playlist concurrently.

    Every track is handled by its own task on a thread pool. A task checks
    whether the finished MP3 is already on disk, downloads the source file
    otherwise, converts it when it is lossless and returns a
    :class:`TrackOutcome`. Outcomes are gathered on the calling thread as
    they complete, so manifest order follows completion order.
    """

    def __init__(
        self,
        source,
        transcoder,
        max_workers: int = 4,
        bitrate: str = DEFAULT_BITRATE,
        retries: int = 3,
        retry_backoff: float = 2.0,
        cancel_event: Event | None = None,
        verbose: bool = True,
        logger: logging.Logger | None = None,
        exists: Callable[[Path], bool] = path_exists,
    ):
        self.source = source
        self.transcoder = transcoder
        self.max_workers = max(1, max_workers)
        self.bitrate = bitrate
        self.retries = max(1, retries)
        self.retry_backoff = retry_backoff
        self.cancel_event = cancel_event or Event()
        self.verbose = verbose
        self.logger = logger or module_logger
        self.exists = exists
        self._path_locks: dict[Path, Lock] = {}
        self._path_locks_guard = Lock()

    def fetch_and_convert(
        self, playlist: PlaylistRef, out_dir: Path
    ) -> PlaylistExportJob:
        try:
            descriptors = self.source.list_tracks(playlist.id)
        except PlexportError as e:
            raise FetchError(f"error getting playlist {playlist.title}: {e}") from e

        job = PlaylistExportJob(title=playlist.title, source_id=playlist.id)
        self.logger.info(
            f"Fetching {len(descriptors)} tracks for '{playlist.title}' into {out_dir}"
        )
        if not descriptors:
            return job

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures: dict[Future, TrackDescriptor] = {
                executor.submit(self.process_track, d, Path(out_dir)): d
                for d in descriptors
            }
            pbar = None
            if self.verbose:
                pbar = tqdm(
                    total=len(futures), desc=playlist.title, unit="track", leave=True
                )
            try:
                for finished in as_completed(futures):
                    descriptor = futures[finished]
                    try:
                        outcome = finished.result()
                    except Exception as e:
                        self.logger.error(
                            f"Error in task for '{descriptor.title}': {e}", exc_info=True
                        )
                        outcome = TrackOutcome(descriptor, FAILED, error=str(e))
                    self._collect(job, outcome)
                    if pbar:
                        pbar.update(1)
            except KeyboardInterrupt:
                self.cancel_event.set()
                for future in futures:
                    future.cancel()
                raise
            finally:
                if pbar:
                    pbar.close()

        self.logger.info(
            f"Playlist '{playlist.title}': {len(job.tracks)} ready "
            f"({job.skipped} already present), {len(job.failures)} failed"
        )
        return job

    def _collect(self, job: PlaylistExportJob, outcome: TrackOutcome) -> None:
        if outcome.ok:
            job.add_track(outcome.track, skipped=outcome.status == SKIPPED)
        else:
            job.add_failure(outcome.descriptor.title, outcome.error or "unknown error")

    def _lock_for(self, path: Path) -> Lock:
        with self._path_locks_guard:
            return self._path_locks.setdefault(path, Lock())

    def process_track(self, descriptor: TrackDescriptor, out_dir: Path) -> TrackOutcome:
        final_path = expected_final_path(descriptor, out_dir)
        # Tracks sharing a destination run one after another, so the later
        # ones see the earlier output and take the skip path.
        with self._lock_for(final_path):
            return self._process_track(descriptor, out_dir, final_path)

    def _process_track(
        self, descriptor: TrackDescriptor, out_dir: Path, final_path: Path
    ) -> TrackOutcome:
        if is_already_exported(descriptor, out_dir, exists=self.exists):
            self.logger.info(f"Track already exists, skipping: {descriptor.title}")
            return TrackOutcome(descriptor, SKIPPED, track=self._track(descriptor, final_path))

        try:
            downloaded = self._download(descriptor, out_dir)
        except PlexportError as e:
            self.logger.error(f"Failed to download '{descriptor.title}': {e}")
            return TrackOutcome(descriptor, FAILED, error=str(e))

        if not is_lossless(downloaded):
            return TrackOutcome(descriptor, DOWNLOADED, track=self._track(descriptor, downloaded))

        self.logger.info(f"Converting track: {descriptor.title}")
        try:
            converted = self.transcoder.transcode(
                downloaded, bitrate=self.bitrate, cancel_event=self.cancel_event
            )
        except PlexportError as e:
            self.logger.error(f"Failed to convert '{descriptor.title}': {e}")
            return TrackOutcome(descriptor, FAILED, error=str(e))
        self.logger.info(f"Converted track: {descriptor.title}")
        return TrackOutcome(descriptor, CONVERTED, track=self._track(descriptor, converted))

    def _download(self, descriptor: TrackDescriptor, out_dir: Path) -> Path:
        last_error: PlexportError | None = None
        for attempt in range(1, self.retries + 1):
            if self.cancel_event.is_set():
                raise FetchError(f"download of '{descriptor.title}' cancelled")
            self.logger.info(
                f"Downloading track: {descriptor.title} (attempt {attempt}/{self.retries})"
            )
            try:
                path = Path(self.source.download_track(descriptor, out_dir))
            except PlexportError as e:
                last_error = e
                self.logger.warning(f"Attempt {attempt} for '{descriptor.title}' failed: {e}")
                if attempt < self.retries and self.retry_backoff:
                    # returns early on cancel
                    self.cancel_event.wait(self.retry_backoff ** attempt)
                continue
            if not path.exists():
                raise FetchError(f"downloaded file for '{descriptor.title}' is missing: {path}")
            self.logger.info(f"Downloaded track: {descriptor.title}")
            return path
        raise FetchError(
            f"giving up on '{descriptor.title}' after {self.retries} attempts: {last_error}"
        )

    def _track(self, descriptor: TrackDescriptor, path: Path) -> Track:
        return Track(
            title=descriptor.title,
            path=Path(path).absolute(),
            duration=descriptor.duration_seconds,
        )
