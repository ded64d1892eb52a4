"""Editor port: the boundary to the text editor hosting the source.

``TextBuffer`` is an in-memory implementation used by the CLI and tests.
"""

from __future__ import annotations

import threading
from typing import Protocol, runtime_checkable

from solguard.models import TextRange
from solguard.rules.source import SourceText


@runtime_checkable
class EditorPort(Protocol):
    def get_text(self) -> str: ...
    def replace_range(self, rng: TextRange, text: str) -> None: ...
    def reveal_range(self, rng: TextRange) -> None: ...


class TextBuffer:
    """In-memory editor buffer with selection tracking."""

    def __init__(self, text: str = "") -> None:
        self._text = text
        self._lock = threading.Lock()
        self.selection: TextRange | None = None
        self.edits = 0

    def get_text(self) -> str:
        with self._lock:
            return self._text

    def set_text(self, text: str) -> None:
        with self._lock:
            self._text = text

    def replace_range(self, rng: TextRange, text: str) -> None:
        with self._lock:
            self._text = SourceText(self._text).replace(rng, text)
            self.edits += 1

    def reveal_range(self, rng: TextRange) -> None:
        self.selection = rng
