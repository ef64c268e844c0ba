"""Hand-written fakes for the recorder, transcriber and clipboard seams."""

from __future__ import annotations

import threading
import wave
from pathlib import Path
from typing import Optional

from models import AudioArtifact, Transcript


class FakeRecorder:
    def __init__(self, scratch_dir: Path, start_error: Optional[Exception] = None,
                 stop_error: Optional[Exception] = None) -> None:
        self.scratch_dir = scratch_dir
        self.start_error = start_error
        self.stop_error = stop_error
        self.started = 0
        self.aborted = 0
        self.created: list[Path] = []
        self._path: Optional[Path] = None

    def check_available(self) -> None:
        pass

    def start(self) -> None:
        self.started += 1
        if self.start_error is not None:
            raise self.start_error
        self._path = self.scratch_dir / f"utterance-{self.started}.wav"
        self.created.append(self._path)
        with wave.open(str(self._path), "wb") as wf:
            wf.setnchannels(1)
            wf.setsampwidth(2)
            wf.setframerate(16000)
            wf.writeframes(b"\x01\x00" * 1600)

    def stop(self) -> AudioArtifact:
        path, self._path = self._path, None
        assert path is not None
        if self.stop_error is not None:
            path.unlink()
            raise self.stop_error
        return AudioArtifact(path=path, started_at=1.0, finished_at=3.5)

    def abort(self) -> None:
        self.aborted += 1
        if self._path is not None:
            self._path.unlink(missing_ok=True)
            self._path = None


class FakeTranscriber:
    def __init__(self, text: str = "Send the report by Friday.", error: Optional[Exception] = None,
                 block: bool = False) -> None:
        self.text = text
        self.error = error
        self.calls: list[AudioArtifact] = []
        self.seen_audio: list[bool] = []
        self.cancelled = False
        self.release = threading.Event()
        if not block:
            self.release.set()

    def transcribe(self, artifact: AudioArtifact) -> Transcript:
        self.calls.append(artifact)
        self.seen_audio.append(artifact.has_audio)
        self.release.wait(timeout=5.0)
        if self.error is not None:
            raise self.error
        return Transcript(text=self.text, backend="fake")

    def cancel(self) -> None:
        self.cancelled = True


class FakeClipboard:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.contents = "previous clipboard text"
        self.writes: list[str] = []

    def write(self, text: str) -> None:
        if self.error is not None:
            raise self.error
        self.writes.append(text)
        self.contents = text
