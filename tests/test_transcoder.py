from __future__ import annotations
from pathlib import Path
from subprocess import TimeoutExpired
from threading import Event
from typing import List

import pytest

import plexport.transcoder as tc
from plexport.exceptions import TranscodeError


class FakePopen:
    """Stands in for ffmpeg: writes the output file named last on the command line."""

    instances: List["FakePopen"] = []
    returncode_to_use = 0
    pending_polls = 0

    def __init__(self, cmd, stdout=None, stderr=None, text=False):
        self.cmd = cmd
        self.returncode = None
        self.terminated = False
        self._pending = FakePopen.pending_polls
        FakePopen.instances.append(self)
        Path(cmd[-1]).write_bytes(b"partial")

    def communicate(self, timeout=None):
        if self._pending:
            self._pending -= 1
            raise TimeoutExpired(self.cmd, timeout)
        self.returncode = FakePopen.returncode_to_use
        return None, "" if self.returncode == 0 else "Invalid data found when processing input"

    def poll(self):
        return self.returncode

    def terminate(self):
        self.terminated = True
        self.returncode = -15

    def wait(self, timeout=None):
        return self.returncode

    def kill(self):
        self.returncode = -9


@pytest.fixture(autouse=True)
def fake_popen(monkeypatch):
    FakePopen.instances = []
    FakePopen.returncode_to_use = 0
    FakePopen.pending_polls = 0
    monkeypatch.setattr(tc, "Popen", FakePopen)
    return FakePopen


@pytest.fixture
def flac(tmp_path: Path) -> Path:
    path = tmp_path / "Song Title.flac"
    path.write_bytes(b"fLaC")
    return path


def test_command_carries_bitrate_and_tags(flac: Path):
    out = tc.FFmpegTranscoder().transcode(flac)
    cmd = FakePopen.instances[0].cmd
    assert cmd[0] == "ffmpeg"
    assert cmd[cmd.index("-ab") + 1] == "320k"
    assert cmd[cmd.index("-map_metadata") + 1] == "0"
    assert cmd[cmd.index("-id3v2_version") + 1] == "3"
    assert cmd[cmd.index("-i") + 1] == str(flac)
    assert cmd[-1] == str(flac.with_name("Song Title.part.mp3"))
    assert out == flac.with_name("Song Title.mp3")


def test_success_removes_lossless_source(flac: Path):
    out = tc.FFmpegTranscoder().transcode(flac)
    assert out == flac.with_name("Song Title.mp3")
    assert out.exists()
    assert not flac.exists()
    assert not flac.with_name("Song Title.part.mp3").exists()


def test_failure_keeps_source_and_removes_partial(flac: Path):
    FakePopen.returncode_to_use = 1
    with pytest.raises(TranscodeError, match="Invalid data"):
        tc.FFmpegTranscoder().transcode(flac)
    assert flac.exists()
    assert not flac.with_suffix(".mp3").exists()
    assert not flac.with_name("Song Title.part.mp3").exists()


def test_existing_mp3_is_reused(flac: Path):
    flac.with_suffix(".mp3").write_bytes(b"ID3")
    out = tc.FFmpegTranscoder().transcode(flac)
    assert out.read_bytes() == b"ID3"
    assert FakePopen.instances == []


def test_refuses_lossy_input(tmp_path: Path):
    with pytest.raises(TranscodeError):
        tc.FFmpegTranscoder().transcode(tmp_path / "song.mp3")


def test_cancellation_terminates_ffmpeg(flac: Path):
    FakePopen.pending_polls = 10
    cancel = Event()
    cancel.set()
    with pytest.raises(TranscodeError, match="cancelled"):
        tc.FFmpegTranscoder(poll_interval=0).transcode(flac, cancel_event=cancel)
    assert FakePopen.instances[0].terminated
    assert flac.exists()
    assert not flac.with_suffix(".mp3").exists()


def test_timeout_terminates_ffmpeg(flac: Path, monkeypatch):
    FakePopen.pending_polls = 10
    clock = iter([0.0, 5.0, 10.0, 15.0, 20.0])
    monkeypatch.setattr(tc, "monotonic", lambda: next(clock))
    with pytest.raises(TranscodeError, match="timed out"):
        tc.FFmpegTranscoder(timeout=8, poll_interval=0).transcode(flac)
    assert FakePopen.instances[0].terminated


def test_missing_ffmpeg(flac: Path, monkeypatch):
    def missing(*args, **kwargs):
        raise FileNotFoundError("ffmpeg")

    monkeypatch.setattr(tc, "Popen", missing)
    with pytest.raises(TranscodeError, match="not found"):
        tc.FFmpegTranscoder().transcode(flac)
    assert flac.exists()


def test_stale_partial_output_is_replaced(flac: Path):
    stale = flac.with_name("Song Title.part.mp3")
    stale.write_bytes(b"truncated")
    out = tc.FFmpegTranscoder().transcode(flac)
    assert out.read_bytes() == b"partial"
    assert not stale.exists()


def test_interrupted_conversion_leaves_no_mp3(flac: Path):
    FakePopen.pending_polls = 10
    cancel = Event()
    cancel.set()
    with pytest.raises(TranscodeError):
        tc.FFmpegTranscoder(poll_interval=0).transcode(flac, cancel_event=cancel)
    assert list(flac.parent.iterdir()) == [flac]


def test_ffmpeg_is_stopped_once_on_failure(flac: Path, monkeypatch):
    FakePopen.pending_polls = 10
    stops: list[Path] = []
    transcoder = tc.FFmpegTranscoder(poll_interval=0)
    original = transcoder._stop

    def counting_stop(proc, source):
        stops.append(source)
        original(proc, source)

    monkeypatch.setattr(transcoder, "_stop", counting_stop)
    cancel = Event()
    cancel.set()
    with pytest.raises(TranscodeError):
        transcoder.transcode(flac, cancel_event=cancel)
    assert stops == [flac]
    assert FakePopen.instances[0].terminated
