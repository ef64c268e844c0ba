"""Application entrypoint.

Records one utterance, transcribes it and copies the text to the clipboard.
With the ``enter`` trigger recording starts immediately and stops on Enter or
Ctrl-C; with the ``hotkey`` trigger the global hotkey starts and stops it.
Ctrl-C while the audio is being processed cancels the session.
"""

from __future__ import annotations

import logging
import signal
import sys
import threading
import time
from typing import IO, Any, Optional

from clipboard import PyperclipClipboard
from config import API_KEY_ENV, JsonConfigStore, Settings, load_environment, load_settings
from errors import ERROR_MESSAGES, SESSION_BUSY, CaptureFailed, ConfigurationError
from hotkey import GlobalHotkeyAdapter
from interfaces import ClipboardSink, Recorder, Transcriber
from models import SessionState, Transcript, format_elapsed
from recorder import build_recorder
from session_controller import SessionController
from transcriber import build_transcriber

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_SESSION_ERROR = 1
EXIT_STARTUP_ERROR = 2
EXIT_CANCELLED = 130

STATUS_TEXT = {
    SessionState.RECORDING: "Recording...",
    SessionState.TRANSCRIBING: "Processing...",
}


def configure_logging(level: str = "WARNING") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Reduce noise from external libraries
    for name in ("httpx", "httpcore", "openai", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)


class App:
    def __init__(
        self,
        settings: Settings,
        recorder: Recorder,
        transcriber: Transcriber,
        clipboard: ClipboardSink,
        stdin: IO[str] = sys.stdin,
        stdout: IO[str] = sys.stdout,
        stderr: IO[str] = sys.stderr,
        hotkey: Optional[GlobalHotkeyAdapter] = None,
    ) -> None:
        self.settings = settings
        self._stdin = stdin
        self._stdout = stdout
        self._stderr = stderr
        self.controller = SessionController(
            recorder=recorder,
            transcriber=transcriber,
            clipboard=clipboard,
            transcribe_timeout_s=settings.transcribe_timeout_s,
            on_state_change=self._on_state_change,
            on_transcript=self._on_transcript,
            on_error=self._on_error,
        )
        self.hotkey = hotkey
        if self.hotkey is None and settings.trigger == "hotkey":
            self.hotkey = GlobalHotkeyAdapter(hotkey_name=settings.hotkey)

        self._wake = threading.Event()
        self._interrupted = threading.Event()

    # ------------------------------------------------------------------
    # Controller callbacks
    # ------------------------------------------------------------------

    def _on_state_change(self, from_state: SessionState, to_state: SessionState) -> None:
        text = STATUS_TEXT.get(to_state)
        if text:
            self._status(text)

    def _on_transcript(self, transcript: Transcript) -> None:
        print(transcript.text, file=self._stdout, flush=True)
        self._status("Copied to clipboard.")

    def _on_error(self, code: str, message: str) -> None:
        hint = ERROR_MESSAGES.get(code)
        if hint and hint != message:
            self._status(f"{code}: {message} ({hint})")
        else:
            self._status(f"{code}: {message}")

    def _status(self, text: str) -> None:
        print(text, file=self._stderr, flush=True)

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def _on_trigger(self) -> None:
        self._wake.set()

    def _on_sigint(self, signum: int, frame: Any) -> None:
        self._interrupted.set()
        self._wake.set()

    def _read_stdin(self) -> None:
        while True:
            line = self._stdin.readline()
            if not line:
                return
            self._on_trigger()

    def _wait_for_trigger(self) -> bool:
        """Block until a trigger fires; True when it was Ctrl-C."""
        while not self._wake.wait(timeout=0.1):
            pass
        self._wake.clear()
        interrupted = self._interrupted.is_set()
        self._interrupted.clear()
        return interrupted

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self, install_signal_handler: bool = True) -> int:
        previous = None
        if install_signal_handler:
            previous = signal.signal(signal.SIGINT, self._on_sigint)
        try:
            return self._run_once()
        finally:
            if self.hotkey is not None:
                self.hotkey.stop()
            if previous is not None:
                signal.signal(signal.SIGINT, previous)

    def _run_once(self) -> int:
        if self.hotkey is not None:
            try:
                self.hotkey.start(self._on_trigger)
            except RuntimeError as exc:
                self._status(f"Hotkey unavailable: {exc}")
                return EXIT_STARTUP_ERROR
            stop_hint = f"press {self.settings.hotkey} to stop"
            self._status(f"Press {self.settings.hotkey} to start recording, Ctrl-C to quit.")
            if self._wait_for_trigger():
                return EXIT_CANCELLED
        else:
            stop_hint = "press Enter to stop"
            threading.Thread(target=self._read_stdin, name="stdin-trigger", daemon=True).start()

        if not self.controller.start_session():
            return EXIT_SESSION_ERROR
        started_at = time.monotonic()
        self._status(f"({stop_hint})")

        self._wait_for_trigger()
        self._status(f"Recorded {format_elapsed(time.monotonic() - started_at)}")
        return self._finish_session()

    def _finish_session(self) -> int:
        outcome: dict[str, Any] = {}

        def _stop() -> None:
            try:
                outcome["transcript"] = self.controller.stop_session()
            except Exception as exc:
                outcome["error"] = exc

        worker = threading.Thread(target=_stop, name="stop-session", daemon=True)
        worker.start()

        cancelled = False
        while worker.is_alive():
            worker.join(timeout=0.1)
            if not self._wake.is_set():
                continue
            self._wake.clear()
            if self._interrupted.is_set() and not cancelled:
                cancelled = True
                self.controller.cancel_session("interrupted by user")
            elif not self._interrupted.is_set():
                self._status(f"{SESSION_BUSY}: {ERROR_MESSAGES[SESSION_BUSY]}")

        if "error" in outcome:
            raise outcome["error"]
        if outcome.get("transcript") is not None:
            return EXIT_OK
        return EXIT_CANCELLED if cancelled else EXIT_SESSION_ERROR


def main() -> int:
    load_environment()
    store = JsonConfigStore()
    try:
        settings = load_settings(store)
    except ConfigurationError as exc:
        configure_logging()
        print(f"whisperclip: {exc} (config: {store.path})", file=sys.stderr)
        return EXIT_STARTUP_ERROR
    configure_logging(settings.log_level)

    recorder = build_recorder(settings)
    try:
        recorder.check_available()
    except CaptureFailed as exc:
        print(f"whisperclip: {exc}", file=sys.stderr)
        return EXIT_STARTUP_ERROR

    if not settings.api_key:
        print(
            f"whisperclip: {API_KEY_ENV[settings.backend]} is not set "
            f"and no api_key is configured in {store.path}",
            file=sys.stderr,
        )
        return EXIT_STARTUP_ERROR

    app = App(
        settings=settings,
        recorder=recorder,
        transcriber=build_transcriber(settings),
        clipboard=PyperclipClipboard(),
    )
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
