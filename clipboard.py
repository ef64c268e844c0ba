"""Clipboard writer backed by pyperclip."""

from __future__ import annotations

import logging

import pyperclip

from errors import ClipboardUnavailable

logger = logging.getLogger(__name__)


class PyperclipClipboard:
    def write(self, text: str) -> None:
        try:
            pyperclip.copy(text)
        except pyperclip.PyperclipException as exc:
            raise ClipboardUnavailable(f"Cannot access the system clipboard: {exc}") from exc
        logger.debug("Copied %d characters to the clipboard", len(text))
