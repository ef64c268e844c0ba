"""State-machine based session orchestration.

One utterance moves IDLE -> RECORDING -> TRANSCRIBING -> COPYING -> IDLE.
Any failure drops straight back to IDLE after the recording file is removed,
and is reported through ``on_error``. Only one session exists at a time.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from errors import (
    SESSION_CANCELLED,
    SessionBusy,
    SessionError,
    TranscriptionRejected,
    TranscriptionTimeout,
)
from interfaces import ClipboardSink, Recorder, Transcriber
from models import AudioArtifact, SessionState, Transcript, UtteranceSession

logger = logging.getLogger(__name__)

StateCallback = Callable[[SessionState, SessionState], None]
TranscriptCallback = Callable[[Transcript], None]
ErrorCallback = Callable[[str, str], None]


class SessionController:
    def __init__(
        self,
        recorder: Recorder,
        transcriber: Transcriber,
        clipboard: ClipboardSink,
        transcribe_timeout_s: Optional[float] = None,
        on_state_change: Optional[StateCallback] = None,
        on_transcript: Optional[TranscriptCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._recorder = recorder
        self._transcriber = transcriber
        self._clipboard = clipboard
        self._transcribe_timeout_s = transcribe_timeout_s
        self._on_state_change = on_state_change
        self._on_transcript = on_transcript
        self._on_error = on_error

        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._session_id = 0
        self._session: Optional[UtteranceSession] = None
        self.last_error: Optional[SessionError] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Optional[UtteranceSession]:
        return self._session

    def start_session(self) -> bool:
        """Begin recording. Returns False if the recorder failed to start."""
        with self._lock:
            if self._state != SessionState.IDLE:
                raise SessionBusy(f"Session {self._session_id} is {self._state.value}")
            self._session_id += 1
            self.last_error = None
            self._session = UtteranceSession(session_id=self._session_id)
            self._transition(SessionState.RECORDING)
            logger.info("Session %d started", self._session_id)
            try:
                self._recorder.start()
            except SessionError as exc:
                self._fail(exc)
                return False
            except Exception:
                self._reset()
                raise
            return True

    def stop_session(self) -> Optional[Transcript]:
        """Finish recording, transcribe and copy.

        Blocks until the transcript is on the clipboard, the session failed,
        or it was cancelled from another thread. Returns the transcript on
        success and None otherwise.
        """
        with self._lock:
            session = self._session
            if self._state != SessionState.RECORDING or session is None:
                return None
            self._transition(SessionState.TRANSCRIBING)
            try:
                artifact = self._recorder.stop()
            except SessionError as exc:
                self._fail(exc)
                return None
            except Exception:
                self._reset()
                raise
            session.artifact = artifact
            logger.info("Session %d recorded %.1fs of audio", session.session_id, artifact.duration_s)
            worker = threading.Thread(
                target=self._transcribe,
                args=(session, artifact),
                name=f"transcribe-{session.session_id}",
                daemon=True,
            )
            worker.start()

        settled = session.settled.wait(timeout=self._transcribe_timeout_s)

        with self._lock:
            if session.cancelled or self._session is not session:
                return None
            if not settled:
                self._safe_cancel_transcriber()
                self._fail(TranscriptionTimeout(f"No transcript after {self._transcribe_timeout_s}s"))
                return None
            error = session.error
            if isinstance(error, SessionError):
                self._fail(error)
                return None
            if error is not None:
                self._reset()
                raise error

            transcript = session.transcript
            if transcript is None:
                self._fail(TranscriptionRejected("Transcriber returned no transcript"))
                return None
            self._transition(SessionState.COPYING)
            try:
                self._clipboard.write(transcript.text)
            except SessionError as exc:
                self._fail(exc)
                return None
            except Exception:
                self._reset()
                raise
            logger.info("Session %d copied %d characters", session.session_id, len(transcript.text))
            self._reset()

        if self._on_transcript:
            self._on_transcript(transcript)
        return transcript

    def cancel_session(self, reason: str) -> None:
        with self._lock:
            session = self._session
            if self._state == SessionState.IDLE or session is None:
                return
            logger.info("Session %d cancelled during %s: %s", session.session_id, self._state.value, reason)
            session.cancelled = True
            if self._state == SessionState.RECORDING:
                self._safe_abort_recorder()
            elif self._state == SessionState.TRANSCRIBING:
                self._safe_cancel_transcriber()
            session.settled.set()
            self._reset()
            self._emit_error(SESSION_CANCELLED, reason)

    def _transcribe(self, session: UtteranceSession, artifact: AudioArtifact) -> None:
        try:
            session.transcript = self._transcriber.transcribe(artifact)
        except Exception as exc:
            session.error = exc
        finally:
            session.settled.set()

    def _fail(self, error: SessionError) -> None:
        message = str(error) or error.user_message
        logger.warning("Session %d failed in %s: %s", self._session_id, self._state.value, message)
        self.last_error = error
        if self._state == SessionState.RECORDING:
            self._safe_abort_recorder()
        self._reset()
        self._emit_error(error.code, message)

    def _reset(self) -> None:
        session = self._session
        self._session = None
        if session is not None:
            session.release()
        self._transition(SessionState.IDLE)

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)

    def _safe_abort_recorder(self) -> None:
        try:
            self._recorder.abort()
        except Exception:
            logger.warning("Recorder did not abort cleanly", exc_info=True)

    def _safe_cancel_transcriber(self) -> None:
        try:
            self._transcriber.cancel()
        except Exception:
            logger.warning("Transcriber did not cancel cleanly", exc_info=True)

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if self._session is not None:
            self._session.state = to_state
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
