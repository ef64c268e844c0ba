"""JSON-based config store and resolved runtime settings."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from errors import ConfigurationError
from interfaces import ConfigStore

logger = logging.getLogger(__name__)

BACKENDS = ("openai", "dashscope")
RECORDERS = ("arecord", "sounddevice")
TRIGGERS = ("enter", "hotkey")

DEFAULT_MODELS = {
    "openai": "whisper-1",
    "dashscope": "qwen3-asr-flash",
}

API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "dashscope": "DASHSCOPE_API_KEY",
}


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "whisperclip" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def get_api_key(self) -> str:
        return str(self.get("api_key", ""))

    def get_hotkey(self) -> str:
        return str(self.get("hotkey", "Key.f9"))

    def get(self, key: str, default: Any = None) -> Any:
        return self._read_all().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Ignoring unreadable config %s: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


@dataclass(frozen=True)
class Settings:
    backend: str = "openai"
    model: str = "whisper-1"
    api_key: str = ""
    language: Optional[str] = None
    base_url: Optional[str] = None
    request_timeout_s: float = 30.0
    retries: int = 1
    transcribe_timeout_s: Optional[float] = 60.0
    recorder: str = "arecord"
    arecord_command: str = "arecord"
    sample_rate: int = 16000
    scratch_dir: Path = Path(tempfile.gettempdir())
    trigger: str = "enter"
    hotkey: str = "Key.f9"
    log_level: str = "WARNING"


def load_environment(dotenv_path: Optional[Path] = None) -> None:
    """Load variables from a .env file without overriding the real environment."""
    loaded = load_dotenv(dotenv_path=dotenv_path, override=False)
    if loaded:
        logger.debug("Loaded environment variables from %s", dotenv_path or ".env")


def load_settings(store: ConfigStore, environ: Optional[dict] = None) -> Settings:
    """Merge the config file with environment overrides.

    Environment variables win over the file. Raises ConfigurationError for
    values that name an unknown backend, recorder or trigger.
    """
    env = os.environ if environ is None else environ

    backend = str(env.get("WHISPERCLIP_BACKEND") or store.get("backend", "openai")).lower()
    if backend not in BACKENDS:
        raise ConfigurationError(f"Unknown transcription backend '{backend}', expected one of {BACKENDS}")

    recorder = str(env.get("WHISPERCLIP_RECORDER") or store.get("recorder", "arecord")).lower()
    if recorder not in RECORDERS:
        raise ConfigurationError(f"Unknown recorder '{recorder}', expected one of {RECORDERS}")

    trigger = str(env.get("WHISPERCLIP_TRIGGER") or store.get("trigger", "enter")).lower()
    if trigger not in TRIGGERS:
        raise ConfigurationError(f"Unknown trigger '{trigger}', expected one of {TRIGGERS}")

    api_key = env.get(API_KEY_ENV[backend]) or store.get_api_key()
    scratch_dir = env.get("WHISPERCLIP_SCRATCH_DIR") or store.get("scratch_dir") or tempfile.gettempdir()
    transcribe_timeout = store.get("transcribe_timeout_s", 60.0)

    try:
        return Settings(
            backend=backend,
            model=str(store.get("model") or DEFAULT_MODELS[backend]),
            api_key=str(api_key),
            language=store.get("language") or None,
            base_url=store.get("base_url") or None,
            request_timeout_s=float(store.get("request_timeout_s", 30.0)),
            retries=int(store.get("retries", 1)),
            transcribe_timeout_s=float(transcribe_timeout) if transcribe_timeout else None,
            recorder=recorder,
            arecord_command=str(store.get("arecord_command", "arecord")),
            sample_rate=int(store.get("sample_rate", 16000)),
            scratch_dir=Path(scratch_dir).expanduser(),
            trigger=trigger,
            hotkey=store.get_hotkey(),
            log_level=str(env.get("WHISPERCLIP_LOG_LEVEL") or store.get("log_level", "WARNING")).upper(),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid setting: {exc}") from exc
