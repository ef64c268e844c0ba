"""Protocol interfaces used by SessionController."""

from __future__ import annotations

from typing import Any, Protocol

from models import AudioArtifact, Transcript


class Recorder(Protocol):
    def check_available(self) -> None: ...

    def start(self) -> None: ...

    def stop(self) -> AudioArtifact: ...

    def abort(self) -> None: ...


class Transcriber(Protocol):
    def transcribe(self, artifact: AudioArtifact) -> Transcript: ...

    def cancel(self) -> None: ...


class ClipboardSink(Protocol):
    def write(self, text: str) -> None: ...


class ConfigStore(Protocol):
    def get_api_key(self) -> str: ...

    def get_hotkey(self) -> str: ...

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...
