import sys
from typing import Optional, TextIO


class Logger:
    """Console output for the detect/build phases.

    Titles mark the buildpack, headers mark a layer or step group, body lines
    are indented under their header. Everything goes to stdout so that the
    lifecycle log keeps ordering with the child processes we spawn.
    """

    BODY_INDENT = "    "

    def __init__(self, stream: Optional[TextIO] = None, debug: bool = False):
        self.stream = stream
        self.debug_enabled = debug

    def _print(self, message: str):
        print(message, file=self.stream or sys.stdout, flush=True)

    def title(self, name: str, version: str, homepage: Optional[str] = None):
        self._print(f"\n{name} {version}")
        if homepage:
            self._print(f"  {homepage}")

    def header(self, message: str):
        self._print(f"  {message}")

    def body(self, message: str):
        for line in str(message).splitlines() or [""]:
            self._print(f"{self.BODY_INDENT}{line}")

    def warning(self, message: str):
        self._print(f"  WARNING: {message}")

    def debug(self, message: str):
        if self.debug_enabled:
            self._print(f"[DEBUG] {message}")
