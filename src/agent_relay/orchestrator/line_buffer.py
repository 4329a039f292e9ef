"""Incremental splitting of raw process output into complete lines."""

from __future__ import annotations

import codecs


class StreamLineBuffer:
    """Accumulate output chunks and hand out only complete lines.

    A trailing fragment without a newline stays buffered until the next chunk
    (or ``flush`` at end of stream).  Byte chunks are decoded incrementally, so
    a UTF-8 sequence split across two reads is never mangled.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes | str) -> list[str]:
        """Add a chunk and return the lines it completed."""

        if not chunk:
            return []
        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        if not text:
            return []
        self._pending += text
        if "\n" not in self._pending:
            return []
        *complete, self._pending = self._pending.split("\n")
        return [_strip_carriage_return(line) for line in complete]

    def flush(self) -> list[str]:
        """Return the buffered fragment at end of stream."""

        tail = self._decoder.decode(b"", final=True)
        remainder = _strip_carriage_return(self._pending + tail)
        self._pending = ""
        if not remainder:
            return []
        return [remainder]

    @property
    def pending(self) -> str:
        return self._pending


def _strip_carriage_return(line: str) -> str:
    return line[:-1] if line.endswith("\r") else line
