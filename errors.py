"""Shared error codes, user-facing messages and session exceptions."""

from __future__ import annotations

CAPTURE_FAILED = "CAPTURE_FAILED"
TRANSCRIPTION_UNAVAILABLE = "TRANSCRIPTION_UNAVAILABLE"
TRANSCRIPTION_REJECTED = "TRANSCRIPTION_REJECTED"
TRANSCRIPTION_TIMEOUT = "TRANSCRIPTION_TIMEOUT"
CLIPBOARD_UNAVAILABLE = "CLIPBOARD_UNAVAILABLE"
SESSION_BUSY = "SESSION_BUSY"
SESSION_CANCELLED = "SESSION_CANCELLED"

ERROR_MESSAGES = {
    CAPTURE_FAILED: "Recording failed, check the microphone and recorder.",
    TRANSCRIPTION_UNAVAILABLE: "Transcription service is unreachable, please retry.",
    TRANSCRIPTION_REJECTED: "Transcription service rejected the audio.",
    TRANSCRIPTION_TIMEOUT: "Transcription timed out, please retry.",
    CLIPBOARD_UNAVAILABLE: "Clipboard is not accessible, transcript was not copied.",
    SESSION_BUSY: "A recording is already in progress.",
    SESSION_CANCELLED: "Session cancelled, nothing was copied.",
}


class SessionError(Exception):
    """Base for every error that ends an utterance session."""

    code = ""

    @property
    def user_message(self) -> str:
        return ERROR_MESSAGES.get(self.code, str(self))


class CaptureFailed(SessionError):
    code = CAPTURE_FAILED


class TranscriptionUnavailable(SessionError):
    code = TRANSCRIPTION_UNAVAILABLE


class TranscriptionRejected(SessionError):
    code = TRANSCRIPTION_REJECTED


class TranscriptionTimeout(SessionError):
    code = TRANSCRIPTION_TIMEOUT


class ClipboardUnavailable(SessionError):
    code = CLIPBOARD_UNAVAILABLE


class SessionBusy(SessionError):
    code = SESSION_BUSY


class ConfigurationError(Exception):
    """Raised when settings cannot be turned into a working setup."""
