"""Byte stream to line assembly for the remote module's text protocol."""

import logging

from auditdeck.protocol.constants import LINE_BUFFER_SIZE

logger = logging.getLogger(__name__)

_SEPARATORS = (0x0A, 0x0D)  # \n, \r


class LineAssembler:
    """Accumulates raw bytes into discrete text lines.

    Lines end at ``\\n`` or ``\\r``. Runs of separators collapse, so CRLF
    and blank lines never produce empty lines.

    The buffer has a fixed capacity. A line that outgrows it is dropped
    whole: the buffered part is discarded and so is everything up to the
    next separator. The line after it is assembled normally.
    """

    def __init__(self, capacity: int = LINE_BUFFER_SIZE) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._buffer = bytearray()
        self._discarding = False
        self._stats = {
            "lines": 0,
            "dropped_lines": 0,
            "bytes": 0,
        }

    @property
    def stats(self) -> dict:
        """Get assembler statistics."""
        return self._stats.copy()

    @property
    def pending(self) -> int:
        """Number of bytes buffered for the current, unterminated line."""
        return len(self._buffer)

    def feed(self, data: bytes) -> list[str]:
        """
        Append bytes and return every line they complete.

        Args:
            data: Raw bytes as read from the transport

        Returns:
            Completed lines, decoded as ASCII (undecodable bytes replaced)
        """
        lines: list[str] = []
        self._stats["bytes"] += len(data)

        for byte in data:
            if byte in _SEPARATORS:
                if self._discarding:
                    self._discarding = False
                elif self._buffer:
                    lines.append(self._buffer.decode("ascii", errors="replace"))
                    self._stats["lines"] += 1
                    self._buffer.clear()
                continue

            if self._discarding:
                continue

            if len(self._buffer) >= self.capacity:
                logger.debug("Line exceeded %d bytes, discarding", self.capacity)
                self._buffer.clear()
                self._discarding = True
                self._stats["dropped_lines"] += 1
                continue

            self._buffer.append(byte)

        return lines

    def reset(self) -> None:
        """Forget any partial line."""
        self._buffer.clear()
        self._discarding = False
