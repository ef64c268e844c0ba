"""Microphone recorder adapters.

Both recorders write one WAV file per utterance into a scratch directory and
hand it back as an AudioArtifact once it is complete and flushed to disk.
``ArecordRecorder`` drives the ALSA ``arecord`` tool as a subprocess;
``SoundDeviceRecorder`` records through PortAudio in-process.
"""

from __future__ import annotations

import atexit
import logging
import os
import shlex
import shutil
import signal
import subprocess
import tempfile
import threading
import time
import wave
from pathlib import Path
from typing import IO, Any, Optional, Set

from config import Settings
from errors import CaptureFailed
from interfaces import Recorder
from models import AudioArtifact

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)

# Files created by any recorder; whatever is still on disk at exit is removed.
_temp_file_registry: Set[Path] = set()
_temp_file_lock = threading.Lock()


def _cleanup_temp_files() -> None:
    with _temp_file_lock:
        for temp_path in list(_temp_file_registry):
            try:
                temp_path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Failed to clean up temp file %s: %s", temp_path, exc)
        _temp_file_registry.clear()


atexit.register(_cleanup_temp_files)


def _new_temp_path(scratch_dir: Optional[Path]) -> Path:
    try:
        fd, name = tempfile.mkstemp(prefix="whisperclip-", suffix=".wav", dir=scratch_dir)
    except OSError as exc:
        raise CaptureFailed(f"Cannot create a recording file in {scratch_dir}: {exc}") from exc
    os.close(fd)
    path = Path(name)
    with _temp_file_lock:
        # Discarded artifacts are no longer tracked.
        _temp_file_registry.difference_update([p for p in _temp_file_registry if not p.exists()])
        _temp_file_registry.add(path)
    return path


def _fsync(path: Path) -> None:
    with open(path, "rb") as fh:
        os.fsync(fh.fileno())


class ArecordRecorder:
    def __init__(
        self,
        scratch_dir: Optional[Path] = None,
        command: str = "arecord",
        sample_format: str = "cd",
        startup_grace_s: float = 0.2,
        stop_timeout_s: float = 3.0,
    ) -> None:
        self.scratch_dir = scratch_dir
        self.command = command
        self.sample_format = sample_format
        self.startup_grace_s = startup_grace_s
        self.stop_timeout_s = stop_timeout_s
        self._argv = shlex.split(command)
        self._lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None
        self._stderr: Optional[IO[bytes]] = None
        self._path: Optional[Path] = None
        self._started_at = 0.0

    @property
    def executable(self) -> str:
        return self._argv[0] if self._argv else ""

    def check_available(self) -> None:
        if not self.executable or shutil.which(self.executable) is None:
            raise CaptureFailed(f"'{self.executable}' was not found on PATH; install alsa-utils")
        try:
            result = subprocess.run(
                [*self._argv, "-l"],
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                timeout=self.stop_timeout_s,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise CaptureFailed(f"Cannot list capture devices with {self.executable}: {exc}") from exc
        cards = [line for line in result.stdout.splitlines() if line.startswith("card ")]
        if result.returncode != 0 or not cards:
            detail = result.stderr.strip() or "no capture devices listed"
            raise CaptureFailed(f"No audio input device available: {detail}")
        logger.debug("Capture devices: %s", "; ".join(cards))

    def start(self) -> None:
        with self._lock:
            if self._process is not None:
                return
            path = _new_temp_path(self.scratch_dir)
            stderr = tempfile.TemporaryFile()
            args = [*self._argv, "-f", self.sample_format, "-t", "wav", "-q", str(path)]
            logger.debug("Starting recorder: %s", " ".join(args))
            try:
                # Own session: a Ctrl-C in the terminal reaches only this
                # process, and stop() is what tells arecord to finish.
                process = subprocess.Popen(
                    args,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=stderr,
                    start_new_session=True,
                )
            except OSError as exc:
                stderr.close()
                path.unlink(missing_ok=True)
                raise CaptureFailed(f"Failed to start {self.executable}: {exc}") from exc

            try:
                returncode: Optional[int] = process.wait(timeout=self.startup_grace_s)
            except subprocess.TimeoutExpired:
                returncode = None
            if returncode is not None:
                detail = self._read_stderr(stderr)
                path.unlink(missing_ok=True)
                raise CaptureFailed(f"{self.executable} exited with status {returncode}: {detail}")

            self._process = process
            self._stderr = stderr
            self._path = path
            self._started_at = time.time()

    def stop(self) -> AudioArtifact:
        with self._lock:
            process, path, stderr = self._process, self._path, self._stderr
            self._process = self._path = self._stderr = None
            if process is None or path is None:
                raise CaptureFailed("Recording was not started")

            try:
                early_exit = process.poll()
                if early_exit is None:
                    if not self._interrupt(process):
                        path.unlink(missing_ok=True)
                        raise CaptureFailed(
                            f"{self.executable} did not stop within {self.stop_timeout_s}s"
                        )
                elif early_exit != 0:
                    path.unlink(missing_ok=True)
                    raise CaptureFailed(
                        f"{self.executable} exited unexpectedly with status {early_exit}: "
                        f"{self._read_stderr(stderr)}"
                    )
            finally:
                if stderr is not None:
                    stderr.close()

            finished_at = time.time()
            try:
                _fsync(path)
            except OSError as exc:
                path.unlink(missing_ok=True)
                raise CaptureFailed(f"Recording file {path} is not readable: {exc}") from exc

            logger.debug("Recording finalized at %s", path)
            return AudioArtifact(
                path=path,
                format="wav",
                started_at=self._started_at,
                finished_at=finished_at,
            )

    def abort(self) -> None:
        with self._lock:
            process, path, stderr = self._process, self._path, self._stderr
            self._process = self._path = self._stderr = None
            if process is not None and process.poll() is None:
                process.kill()
                process.wait()
            if stderr is not None:
                stderr.close()
            if path is not None:
                path.unlink(missing_ok=True)

    def _interrupt(self, process: subprocess.Popen) -> bool:
        """Ask the recorder to finish its file; False if it had to be killed."""
        # arecord rewrites the WAV header on SIGINT and SIGTERM.
        for sig, timeout in ((signal.SIGINT, self.stop_timeout_s), (signal.SIGTERM, 1.0)):
            process.send_signal(sig)
            try:
                process.wait(timeout=timeout)
                return True
            except subprocess.TimeoutExpired:
                logger.debug("%s ignored %s", self.executable, sig.name)
        process.kill()
        process.wait()
        return False

    @staticmethod
    def _read_stderr(stderr: Optional[IO[bytes]]) -> str:
        if stderr is None:
            return ""
        try:
            stderr.seek(0)
            return stderr.read().decode("utf-8", errors="replace").strip()
        except (OSError, ValueError):
            return ""
        finally:
            stderr.close()


class SoundDeviceRecorder:
    def __init__(
        self,
        scratch_dir: Optional[Path] = None,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 100,
    ) -> None:
        self.scratch_dir = scratch_dir
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self._chunks: list[bytes] = []
        self._started_at = 0.0

    def check_available(self) -> None:
        if sd is None or np is None:
            raise CaptureFailed("sounddevice and numpy are required for the sounddevice recorder")
        try:
            sd.query_devices(kind="input")
        except (ValueError, sd.PortAudioError) as exc:
            raise CaptureFailed(f"No audio input device available: {exc}") from exc

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            if sd is None:
                raise CaptureFailed("sounddevice is not installed")
            self._chunks = []
            blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
            try:
                self._stream = sd.InputStream(
                    samplerate=self.sample_rate,
                    channels=self.channels,
                    dtype="int16",
                    blocksize=blocksize,
                    callback=self._on_audio,
                )
                self._stream.start()
            except sd.PortAudioError as exc:
                self._stream = None
                raise CaptureFailed(f"Cannot open input stream: {exc}") from exc
            self._running = True
            self._started_at = time.time()

    def stop(self) -> AudioArtifact:
        with self._lock:
            if not self._running:
                raise CaptureFailed("Recording was not started")
            self._running = False
            try:
                self._close_stream()
            except sd.PortAudioError as exc:
                self._chunks = []
                raise CaptureFailed(f"Input stream failed: {exc}") from exc
            finished_at = time.time()
            pcm = b"".join(self._chunks)
            self._chunks = []

        path = _new_temp_path(self.scratch_dir)
        try:
            with open(path, "wb") as fh:
                with wave.open(fh, "wb") as wf:
                    wf.setnchannels(self.channels)
                    wf.setsampwidth(2)
                    wf.setframerate(self.sample_rate)
                    wf.writeframes(pcm)
                fh.flush()
                os.fsync(fh.fileno())
        except OSError as exc:
            path.unlink(missing_ok=True)
            raise CaptureFailed(f"Cannot write recording to {path}: {exc}") from exc

        return AudioArtifact(
            path=path,
            format="wav",
            started_at=self._started_at,
            finished_at=finished_at,
        )

    def abort(self) -> None:
        with self._lock:
            self._running = False
            self._chunks = []
            try:
                self._close_stream()
            except sd.PortAudioError as exc:
                logger.warning("Input stream did not close cleanly: %s", exc)

    def _close_stream(self) -> None:
        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            finally:
                self._stream = None

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if not self._running or np is None:
            return
        if status:
            logger.debug("Input stream status: %s", status)
        self._chunks.append(np.asarray(indata, dtype=np.int16).tobytes())


def build_recorder(settings: Settings) -> Recorder:
    if settings.recorder == "sounddevice":
        return SoundDeviceRecorder(scratch_dir=settings.scratch_dir, sample_rate=settings.sample_rate)
    return ArecordRecorder(scratch_dir=settings.scratch_dir, command=settings.arecord_command)
