from __future__ import annotations

from pathlib import Path

from models import WAV_HEADER_BYTES, AudioArtifact, format_elapsed


def test_format_elapsed() -> None:
    assert format_elapsed(0) == "00:00"
    assert format_elapsed(9.9) == "00:09"
    assert format_elapsed(75) == "01:15"
    assert format_elapsed(-3) == "00:00"


def test_artifact_discard_is_repeatable(tmp_path: Path) -> None:
    path = tmp_path / "utterance.wav"
    path.write_bytes(b"\x00" * (WAV_HEADER_BYTES + 10))
    artifact = AudioArtifact(path=path, started_at=10.0, finished_at=12.5)

    assert artifact.has_audio
    assert artifact.duration_s == 2.5

    artifact.discard()
    artifact.discard()

    assert not artifact.exists()
    assert artifact.size_bytes == 0


def test_header_only_artifact_has_no_audio(tmp_path: Path) -> None:
    path = tmp_path / "empty.wav"
    path.write_bytes(b"\x00" * WAV_HEADER_BYTES)

    assert not AudioArtifact(path=path).has_audio
