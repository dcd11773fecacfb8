from __future__ import annotations

import codecs
import logging
from typing import AsyncIterator, List


logger = logging.getLogger(__name__)


class FrameDecoder:
    """Turns transport chunks into complete text lines.

    Chunks may split lines and multi-byte characters anywhere; the partial
    tail is held until its line terminator arrives. Whatever is still held
    when the stream ends is dropped, never emitted as a line.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    @property
    def residual(self) -> str:
        return self._buffer

    def feed(self, chunk: bytes) -> List[str]:
        text = self._decoder.decode(chunk)
        if not text:
            return []

        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")
        return [line[:-1] if line.endswith("\r") else line for line in lines]

    def close(self) -> str:
        """End of stream. Returns the discarded residual."""
        residual = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        self._decoder.reset()
        if residual:
            logger.debug("Discarding %s chars of unterminated upstream data", len(residual))
        return residual

    async def iter_lines(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[str]:
        async for chunk in chunks:
            for line in self.feed(chunk):
                yield line
        self.close()
