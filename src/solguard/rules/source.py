"""Source text view shared by all detectors.

Positions are computed from absolute offsets against a table of line-start
offsets, so multi-line matches and trailing newlines resolve exactly.
"""

from __future__ import annotations

from bisect import bisect_right

from solguard.models import TextRange


def mask_comments(text: str, *, strings: bool = False) -> str:
    """Replace comment bodies with spaces, keeping offsets and newlines intact.

    ``//`` inside a string literal is not mistaken for a comment.  With
    *strings* set, string literal bodies are blanked too; the quotes stay.
    """
    out = list(text)
    i = 0
    n = len(text)
    quote = ""
    while i < n:
        ch = text[i]
        if quote:
            if ch == "\\":
                if strings:
                    for j in range(i, min(i + 2, n)):
                        if out[j] != "\n":
                            out[j] = " "
                i += 2
                continue
            if ch == quote or ch == "\n":
                quote = ""
            elif strings:
                out[i] = " "
            i += 1
            continue
        if ch in ("'", '"'):
            quote = ch
            i += 1
            continue
        if text.startswith("//", i):
            end = text.find("\n", i)
            end = n if end == -1 else end
            for j in range(i, end):
                out[j] = " "
            i = end
            continue
        if text.startswith("/*", i):
            end = text.find("*/", i + 2)
            end = n if end == -1 else end + 2
            for j in range(i, end):
                if out[j] != "\n":
                    out[j] = " "
            i = end
            continue
        i += 1
    return "".join(out)


class SourceText:
    """Raw source plus a code view (comments and string bodies blanked) with identical offsets."""

    def __init__(self, raw: str) -> None:
        self.raw = raw
        self.code = mask_comments(raw, strings=True)
        self._line_starts = [0]
        for i, ch in enumerate(raw):
            if ch == "\n":
                self._line_starts.append(i + 1)

    def __len__(self) -> int:
        return len(self.raw)

    @property
    def line_count(self) -> int:
        return len(self._line_starts)

    def line_length(self, line: int) -> int:
        start = self._line_starts[line - 1]
        if line < self.line_count:
            return self._line_starts[line] - 1 - start
        return len(self.raw) - start

    def position(self, offset: int) -> tuple[int, int]:
        """Return the 1-based (line, column) of an absolute offset."""
        if not 0 <= offset <= len(self.raw):
            raise ValueError(f"Offset {offset} outside source of length {len(self.raw)}")
        idx = bisect_right(self._line_starts, offset) - 1
        return idx + 1, offset - self._line_starts[idx] + 1

    def offset(self, line: int, column: int) -> int:
        return self._line_starts[line - 1] + column - 1

    def trim(self, start: int, end: int) -> tuple[int, int]:
        """Shrink a span so it neither starts nor ends on whitespace."""
        while start < end and self.raw[start].isspace():
            start += 1
        while end > start and self.raw[end - 1].isspace():
            end -= 1
        return start, end

    def range_for(self, start: int, end: int) -> TextRange:
        """Editor range for the half-open offset span ``[start, end)``."""
        sl, sc = self.position(start)
        el, ec = self.position(end)
        return TextRange(sl, sc, el, ec)

    def contains(self, rng: TextRange) -> bool:
        """True if *rng* addresses existing text in this source."""
        for line, col in ((rng.start_line, rng.start_column), (rng.end_line, rng.end_column)):
            if not 1 <= line <= self.line_count:
                return False
            if not 1 <= col <= self.line_length(line) + 1:
                return False
        return (rng.start_line, rng.start_column) <= (rng.end_line, rng.end_column)

    def text_at(self, rng: TextRange) -> str:
        if not self.contains(rng):
            raise ValueError(f"Range {rng} outside source")
        return self.raw[self.offset(rng.start_line, rng.start_column):self.offset(rng.end_line, rng.end_column)]

    def replace(self, rng: TextRange, text: str) -> str:
        """Return a new source string with *rng* replaced by *text*."""
        if not self.contains(rng):
            raise ValueError(f"Range {rng} outside source")
        start = self.offset(rng.start_line, rng.start_column)
        end = self.offset(rng.end_line, rng.end_column)
        return self.raw[:start] + text + self.raw[end:]
