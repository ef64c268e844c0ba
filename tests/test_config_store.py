from __future__ import annotations

import os
from pathlib import Path

import pytest

from config import JsonConfigStore, Settings, load_environment, load_settings
from errors import ConfigurationError


def test_config_read_write(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    store = JsonConfigStore(path=path)

    assert store.get_api_key() == ""
    assert store.get_hotkey() == "Key.f9"

    store.set("api_key", "abc")
    store.set("hotkey", "Key.f8")
    store.set("backend", "dashscope")

    reloaded = JsonConfigStore(path=path)
    assert reloaded.get_api_key() == "abc"
    assert reloaded.get_hotkey() == "Key.f8"
    assert reloaded.get("backend") == "dashscope"


def test_config_invalid_json_fallback(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{invalid", encoding="utf-8")

    store = JsonConfigStore(path=path)
    assert store.get_api_key() == ""
    assert store.get_hotkey() == "Key.f9"


def test_defaults_follow_openai_backend(tmp_path: Path) -> None:
    settings = load_settings(JsonConfigStore(path=tmp_path / "config.json"), environ={})

    assert settings.backend == "openai"
    assert settings.model == "whisper-1"
    assert settings.recorder == "arecord"
    assert settings.trigger == "enter"
    assert settings.retries == 1
    assert settings.api_key == ""


def test_environment_overrides_file(tmp_path: Path) -> None:
    store = JsonConfigStore(path=tmp_path / "config.json")
    store.set("api_key", "from-file")
    store.set("recorder", "sounddevice")
    store.set("language", "en")
    scratch = tmp_path / "scratch"

    settings = load_settings(
        store,
        environ={
            "OPENAI_API_KEY": "from-env",
            "WHISPERCLIP_SCRATCH_DIR": str(scratch),
            "WHISPERCLIP_LOG_LEVEL": "debug",
        },
    )

    assert settings.api_key == "from-env"
    assert settings.recorder == "sounddevice"
    assert settings.language == "en"
    assert settings.scratch_dir == scratch
    assert settings.log_level == "DEBUG"


def test_dashscope_backend_reads_its_own_key(tmp_path: Path) -> None:
    settings = load_settings(
        JsonConfigStore(path=tmp_path / "config.json"),
        environ={"WHISPERCLIP_BACKEND": "dashscope", "DASHSCOPE_API_KEY": "ds-key", "OPENAI_API_KEY": "x"},
    )

    assert settings.backend == "dashscope"
    assert settings.model == "qwen3-asr-flash"
    assert settings.api_key == "ds-key"


@pytest.mark.parametrize(
    "environ",
    [
        {"WHISPERCLIP_BACKEND": "vosk"},
        {"WHISPERCLIP_RECORDER": "pulse"},
        {"WHISPERCLIP_TRIGGER": "voice"},
    ],
)
def test_unknown_choices_raise(tmp_path: Path, environ: dict) -> None:
    with pytest.raises(ConfigurationError):
        load_settings(JsonConfigStore(path=tmp_path / "config.json"), environ=environ)


def test_invalid_number_raises(tmp_path: Path) -> None:
    store = JsonConfigStore(path=tmp_path / "config.json")
    store.set("retries", "twice")

    with pytest.raises(ConfigurationError, match="Invalid setting"):
        load_settings(store, environ={})


def test_transcribe_timeout_can_be_disabled(tmp_path: Path) -> None:
    store = JsonConfigStore(path=tmp_path / "config.json")
    store.set("transcribe_timeout_s", None)

    assert load_settings(store, environ={}).transcribe_timeout_s is None
    assert Settings().transcribe_timeout_s == 60.0


def test_load_environment_does_not_override(tmp_path: Path, monkeypatch) -> None:  # noqa: ANN001
    dotenv = tmp_path / ".env"
    dotenv.write_text("WHISPERCLIP_TEST_A=from-dotenv\nWHISPERCLIP_TEST_B=from-dotenv\n", encoding="utf-8")
    monkeypatch.setenv("WHISPERCLIP_TEST_A", "from-shell")
    monkeypatch.delenv("WHISPERCLIP_TEST_B", raising=False)

    load_environment(dotenv)

    assert os.environ["WHISPERCLIP_TEST_A"] == "from-shell"
    assert os.environ["WHISPERCLIP_TEST_B"] == "from-dotenv"
    monkeypatch.delenv("WHISPERCLIP_TEST_B")
