import codecs
import re
from typing import List

_LINE_SPLIT_RE = re.compile(r"\r?\n")


class LineBuffer:
    """Turns arbitrary byte chunks from a pipe into complete text lines.

    Keeps the unterminated tail between calls, so a line split across chunks
    (even in the middle of a multi-byte character) comes out whole. Lines are
    stripped and blank lines are dropped.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> List[str]:
        self._pending += self._decoder.decode(chunk)
        parts = _LINE_SPLIT_RE.split(self._pending)
        self._pending = parts.pop()
        return self._clean(parts)

    def flush(self) -> List[str]:
        """Emit whatever is left once the stream has ended"""
        self._pending += self._decoder.decode(b"", final=True)
        remainder, self._pending = self._pending, ""
        return self._clean([remainder])

    @property
    def pending(self) -> str:
        return self._pending

    @staticmethod
    def _clean(lines: List[str]) -> List[str]:
        return [line.strip() for line in lines if line.strip()]
