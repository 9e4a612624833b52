"""Split a chunked text stream into complete lines."""

from __future__ import annotations


class LineBuffer:
    """Accumulates output chunks and hands back complete ``\\n``-terminated lines.

    A trailing fragment without a newline is held back until a later chunk
    completes it.  Whatever is still buffered when the stream ends is dropped.
    """

    def __init__(self) -> None:
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, chunk: str) -> list[str]:
        """Add *chunk* and return every line it completes, in order."""
        if not chunk:
            return []
        *lines, self._pending = (self._pending + chunk).split("\n")
        return lines

    def close(self) -> None:
        self._pending = ""
