from __future__ import annotations
from subprocess import Popen, DEVNULL, PIPE, TimeoutExpired
from time import monotonic
from pathlib import Path
from threading import Event
from .exceptions import TranscodeError
from .utils.logging import setup_logging
from .utils.path_utils import compressed_path, is_lossless, partial_path

logger = setup_logging(__name__)

DEFAULT_BITRATE = "320k"


class FFmpegTranscoder:
    def __init__(
        self,
        ffmpeg: str = "ffmpeg",
        timeout: float | None = None,
        poll_interval: float = 0.5,
    ):
        self.ffmpeg = ffmpeg
        self.timeout = timeout
        self.poll_interval = poll_interval

    def build_command(self, source: Path, target: Path, bitrate: str) -> list[str]:
        return [
            self.ffmpeg,
            "-nostdin",
            "-loglevel",
            "error",
            "-i",
            str(source),
            "-ab",
            bitrate,
            "-map_metadata",
            "0",
            "-id3v2_version",
            "3",
            str(target),
        ]

    def _stop(self, proc: Popen | None, source: Path) -> None:
        if proc is None or proc.poll() is not None:
            return
        logger.warning(f"Terminating ffmpeg for {source}")
        proc.terminate()
        try:
            proc.wait(timeout=5)
        except TimeoutExpired:
            proc.kill()

    def transcode(
        self,
        source: Path,
        bitrate: str = DEFAULT_BITRATE,
        cancel_event: Event | None = None,
    ) -> Path:
        """Convert a lossless file to MP3 next to it and delete the original.

        Returns the MP3 path. An MP3 that already exists is reused without
        running ffmpeg. ffmpeg writes to a ``.part.mp3`` sibling which is
        renamed onto the MP3 only after a clean exit, so an interrupted run
        never leaves a truncated MP3 behind. On any failure the partial file
        is removed, the lossless file is kept and :class:`TranscodeError` is
        raised.
        """
        source = Path(source)
        if not is_lossless(source):
            raise TranscodeError(f"{source} is not a lossless file")
        target = compressed_path(source)

        if target.exists():
            logger.info(f"MP3 already exists: {target}")
            return target

        part = partial_path(target)
        # left over from an interrupted run
        part.unlink(missing_ok=True)

        cmd = self.build_command(source, part, bitrate)
        deadline = monotonic() + self.timeout if self.timeout else None
        proc: Popen | None = None
        finished = False
        try:
            proc = Popen(cmd, stdout=DEVNULL, stderr=PIPE, text=True)
            while True:
                try:
                    _, err = proc.communicate(timeout=self.poll_interval)
                    break
                except TimeoutExpired:
                    if cancel_event and cancel_event.is_set():
                        raise TranscodeError(f"conversion of {source} cancelled")
                    if deadline and monotonic() > deadline:
                        raise TranscodeError(
                            f"conversion of {source} timed out after {self.timeout}s"
                        )

            if proc.returncode != 0:
                raise TranscodeError(
                    f"error converting {source}: ffmpeg exited with code "
                    f"{proc.returncode}: {(err or '').strip()}"
                )
            finished = True
        except FileNotFoundError as e:
            raise TranscodeError(
                "ffmpeg command not found. Please ensure ffmpeg is installed and in your PATH."
            ) from e
        finally:
            self._stop(proc, source)
            if not finished:
                part.unlink(missing_ok=True)

        try:
            part.replace(target)
        except OSError as e:
            part.unlink(missing_ok=True)
            raise TranscodeError(f"error moving {part} to {target}: {e}") from e

        try:
            source.unlink()
        except OSError as e:
            raise TranscodeError(f"error removing lossless file {source}: {e}") from e

        logger.info(f"Converted: {source} -> {target}")
        return target
