#!/usr/bin/env python3
# alpine-forge/alpine_forge/utils/terminal_ui.py
"""
Terminal User Interface
Colored status markers for log output and the final summary banner
"""
import logging
import sys
from typing import Dict, Optional, TextIO

ERROR_MARKER = "\033[1;31mERROR:\033[0m"
RESET = "\033[0m"


class MarkerFormatter(logging.Formatter):
    """
    Formats records with a distinguishing marker per level:
    errors get a red 'ERROR:' prefix, warnings a yellow '>' and
    informational messages a cyan '>' on their own paragraph.
    """

    def __init__(self, color: bool = True):
        super().__init__("%(message)s")
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        if record.levelno >= logging.ERROR:
            marker = ERROR_MARKER if self.color else "ERROR:"
            return f"{marker} {message}"
        if record.levelno >= logging.WARNING:
            return self._paint(f"> {message}", "\033[1;33m")
        if record.levelno >= logging.INFO:
            return "\n" + self._paint(f"> {message}", "\033[1;36m")
        return f"  {message}"

    def _paint(self, text: str, color: str) -> str:
        if not self.color:
            return text
        return f"{color}{text}{RESET}"


class TerminalUI:
    """Terminal output for alpine-forge"""

    def __init__(self, stream: Optional[TextIO] = None):
        """Initialize terminal UI"""
        self.stream = stream or sys.stderr
        self.use_color = hasattr(self.stream, "isatty") and self.stream.isatty()

    def make_handler(self, level: int = logging.INFO) -> logging.Handler:
        """Stream handler writing marked log records to the terminal"""
        handler = logging.StreamHandler(self.stream)
        handler.setLevel(level)
        handler.setFormatter(MarkerFormatter(color=self.use_color))
        return handler

    def display_banner(self, banner_text: str) -> None:
        """
        Display a banner with the provided text

        Args:
            banner_text: Text to display in banner
        """
        print(banner_text, file=self.stream)

    def display_settings(self, title: str, settings: Dict[str, object]) -> None:
        """Print a key/value table, skipping empty values"""
        print(title, file=self.stream)
        for key, value in settings.items():
            if value in (None, "", [], ()):
                continue
            print(f"  {key}: {value}", file=self.stream)

    def error(self, message: str) -> None:
        marker = ERROR_MARKER if self.use_color else "ERROR:"
        print(f"{marker} {message}", file=self.stream)
