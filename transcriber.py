"""Speech-to-text adapters.

``OpenAITranscriber`` uploads the finished WAV file to the OpenAI
transcription endpoint (``whisper-1`` by default, plain-text response).
``DashscopeTranscriber`` sends the same file base64-encoded to DashScope
``qwen3-asr-flash`` and keeps the last streamed text.

Both map library and network failures onto the session error kinds and retry
a transient connection failure a bounded number of times. Timeouts are not
retried.
"""

from __future__ import annotations

import base64
import logging
import os
import threading
from typing import Any, Optional

from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAI

from config import Settings
from errors import (
    SessionError,
    TranscriptionRejected,
    TranscriptionTimeout,
    TranscriptionUnavailable,
)
from interfaces import Transcriber
from models import AudioArtifact, Transcript

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)


def _file_to_data_uri(artifact: AudioArtifact) -> str:
    """Read a WAV artifact into a base64 data URI."""
    payload = base64.b64encode(artifact.path.read_bytes()).decode("ascii")
    return f"data:audio/{artifact.format};base64,{payload}"


def _check_audio(artifact: AudioArtifact) -> None:
    if not artifact.exists():
        raise TranscriptionRejected(f"Recording {artifact.path} does not exist")
    if not artifact.has_audio:
        raise TranscriptionRejected("Recording contains no audio")


class OpenAITranscriber:
    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "whisper-1",
        language: Optional[str] = None,
        base_url: Optional[str] = None,
        request_timeout_s: float = 30.0,
        retries: int = 1,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._language = language
        self._base_url = base_url
        self._request_timeout_s = request_timeout_s
        self._retries = max(0, retries)
        self._lock = threading.Lock()
        self._client: Optional[OpenAI] = None
        self._cancelled = threading.Event()

    def transcribe(self, artifact: AudioArtifact) -> Transcript:
        if not self._api_key:
            raise TranscriptionRejected("No OpenAI API key configured")
        _check_audio(artifact)

        self._cancelled.clear()
        client = OpenAI(
            api_key=self._api_key,
            base_url=self._base_url,
            timeout=self._request_timeout_s,
            max_retries=0,
        )
        with self._lock:
            self._client = client

        attempt = 0
        try:
            while True:
                attempt += 1
                try:
                    return self._request(client, artifact)
                except APITimeoutError as exc:
                    raise TranscriptionTimeout(
                        f"No response within {self._request_timeout_s}s"
                    ) from exc
                except APIConnectionError as exc:
                    if attempt > self._retries or self._cancelled.is_set():
                        raise TranscriptionUnavailable(f"Cannot reach transcription service: {exc}") from exc
                    logger.warning("Transcription request failed (%s), retrying", exc)
                except APIStatusError as exc:
                    raise TranscriptionRejected(
                        f"Transcription service returned {exc.status_code}: {exc.message}"
                    ) from exc
        finally:
            with self._lock:
                self._client = None
            client.close()

    def cancel(self) -> None:
        self._cancelled.set()
        with self._lock:
            client = self._client
        if client is not None:
            logger.debug("Closing in-flight transcription client")
            client.close()

    def _request(self, client: OpenAI, artifact: AudioArtifact) -> Transcript:
        options: dict[str, Any] = {"model": self._model, "response_format": "text"}
        if self._language:
            options["language"] = self._language
        with open(artifact.path, "rb") as audio_file:
            response = client.audio.transcriptions.create(file=audio_file, **options)

        text = response if isinstance(response, str) else str(getattr(response, "text", ""))
        text = text.strip()
        if not text:
            raise TranscriptionRejected("Transcription service returned an empty transcript")
        return Transcript(text=text, language=self._language, backend=self.name, raw=response)


class DashscopeTranscriber:
    name = "dashscope"

    def __init__(
        self,
        api_key: str,
        model: str = "qwen3-asr-flash",
        request_timeout_s: float = 30.0,
        retries: int = 1,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._request_timeout_s = request_timeout_s
        self._retries = max(0, retries)
        self._cancelled = threading.Event()

    def transcribe(self, artifact: AudioArtifact) -> Transcript:
        if dashscope is None:
            raise TranscriptionUnavailable("dashscope is not installed")
        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise TranscriptionRejected("No DashScope API key configured")
        _check_audio(artifact)

        self._cancelled.clear()
        audio = _file_to_data_uri(artifact)
        attempt = 0
        while True:
            attempt += 1
            try:
                return self._recognize_stream(api_key, audio)
            except TranscriptionUnavailable as exc:
                if attempt > self._retries or self._cancelled.is_set():
                    raise
                logger.warning("Transcription request failed (%s), retrying", exc)

    def cancel(self) -> None:
        self._cancelled.set()

    def _recognize_stream(self, api_key: str, audio: str) -> Transcript:
        """Send audio to dashscope and keep the last streamed text."""
        try:
            response = dashscope.MultiModalConversation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": [{"text": ""}]},
                    {"role": "user", "content": [{"audio": audio}]},
                ],
                result_format="message",
                asr_options={"enable_itn": True},
                stream=True,
                timeout=self._request_timeout_s,
            )
        except Exception as exc:
            raise self._to_error(exc) from exc

        latest_text = ""
        try:
            for chunk in response:
                if self._cancelled.is_set():
                    raise TranscriptionUnavailable("Transcription was cancelled")
                self._check_status(chunk)
                text = self._extract_text(chunk)
                if text:
                    latest_text = text
        except SessionError:
            raise
        except Exception as exc:
            raise self._to_error(exc) from exc

        latest_text = latest_text.strip()
        if not latest_text:
            raise TranscriptionRejected("Transcription service returned an empty transcript")
        return Transcript(text=latest_text, backend=self.name)

    @staticmethod
    def _check_status(chunk: object) -> None:
        if not isinstance(chunk, dict):
            return
        status = chunk.get("status_code")
        if status is not None and status != 200:
            raise TranscriptionRejected(
                f"Transcription service returned {status}: {chunk.get('message', '')}"
            )

    @staticmethod
    def _extract_text(chunk: object) -> str:
        """Pull text from a dashscope streaming chunk dict."""
        if isinstance(chunk, dict):
            output = chunk.get("output") or {}
            choices = output.get("choices") or []
            if not choices:
                return ""
            message = choices[0].get("message") or {}
            content = message.get("content") or []
            if not content:
                return ""
            value = content[0]
            if isinstance(value, dict):
                return str(value.get("text", ""))
        return ""

    @staticmethod
    def _to_error(exc: Exception) -> SessionError:
        """Map an SDK/network exception to a session error."""
        message = str(exc)
        low = message.lower()
        if "401" in low or "auth" in low or "api key" in low:
            return TranscriptionRejected(message)
        if isinstance(exc, TimeoutError) or "timeout" in low or "timed out" in low:
            return TranscriptionTimeout(message)
        if isinstance(exc, (ConnectionError, OSError)) or "network" in low or "connection" in low:
            return TranscriptionUnavailable(message)
        return TranscriptionRejected(message)


def build_transcriber(settings: Settings) -> Transcriber:
    if settings.backend == "dashscope":
        return DashscopeTranscriber(
            api_key=settings.api_key,
            model=settings.model,
            request_timeout_s=settings.request_timeout_s,
            retries=settings.retries,
        )
    return OpenAITranscriber(
        api_key=settings.api_key,
        model=settings.model,
        language=settings.language,
        base_url=settings.base_url,
        request_timeout_s=settings.request_timeout_s,
        retries=settings.retries,
    )
