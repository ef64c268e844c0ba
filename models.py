"""Core data models for the app."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

WAV_HEADER_BYTES = 44


class SessionState(str, Enum):
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    TRANSCRIBING = "TRANSCRIBING"
    COPYING = "COPYING"


@dataclass
class AudioArtifact:
    path: Path
    format: str = "wav"
    started_at: float = 0.0
    finished_at: float = 0.0

    @property
    def duration_s(self) -> float:
        return max(0.0, self.finished_at - self.started_at)

    @property
    def size_bytes(self) -> int:
        try:
            return self.path.stat().st_size
        except OSError:
            return 0

    @property
    def has_audio(self) -> bool:
        return self.size_bytes > WAV_HEADER_BYTES

    def exists(self) -> bool:
        return self.path.exists()

    def discard(self) -> None:
        """Remove the file; safe to call more than once."""
        self.path.unlink(missing_ok=True)


@dataclass
class Transcript:
    text: str
    language: Optional[str] = None
    backend: str = ""
    raw: Optional[Any] = None


@dataclass
class UtteranceSession:
    session_id: int
    started_at: float = field(default_factory=time.time)
    state: SessionState = SessionState.RECORDING
    artifact: Optional[AudioArtifact] = None
    cancelled: bool = False
    settled: threading.Event = field(default_factory=threading.Event)
    transcript: Optional[Transcript] = None
    error: Optional[Exception] = None

    def release(self) -> None:
        if self.artifact is not None:
            self.artifact.discard()


def format_elapsed(seconds: float) -> str:
    """Render a duration as mm:ss."""
    total = int(max(0.0, seconds))
    return f"{total // 60:02d}:{total % 60:02d}"
