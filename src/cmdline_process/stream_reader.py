"""Delimited stream reader module.

This module contains the DelimitedStreamReader class that drains one of a
process's output pipes during a watched run and records when output was
last seen.
"""

import logging
import time
import warnings
from collections.abc import Callable
from typing import BinaryIO

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096


class DelimitedStreamReader:
    """Reader that drains a pipe segment by segment.

    A segment is everything up to and including the delimiter byte. Every
    completed segment refreshes ``last_activity`` and is forwarded to the
    optional ``on_output`` callback. Bytes left over when the stream closes
    are forwarded too but do not count as activity.
    """

    def __init__(
        self,
        stream: BinaryIO,
        delimiter: bytes = b"\n",
        on_output: Callable[[bytes], None] | None = None,
    ) -> None:
        if len(delimiter) != 1:
            error_message = f"delimiter must be a single byte, got {delimiter!r}"
            raise ValueError(error_message)
        self._stream = stream
        self._delimiter = delimiter
        self._on_output = on_output
        # Monotonic timestamp of the last completed segment, None until the first one
        self.last_activity: float | None = None
        self.segments_read: int = 0

    def _read_chunk(self) -> bytes:
        """Read whatever is available, blocking until at least one byte or EOF."""
        read1 = getattr(self._stream, "read1", None)
        if read1 is not None:
            return read1(READ_CHUNK_SIZE)
        return self._stream.read(1)

    def _forward(self, segment: bytes) -> None:
        if self._on_output is not None:
            self._on_output(segment)

    def _consume_segments(self, buffer: bytes) -> bytes:
        """Forward each complete segment in buffer and return the remainder."""
        while True:
            index = buffer.find(self._delimiter)
            if index < 0:
                return buffer
            segment, buffer = buffer[: index + 1], buffer[index + 1 :]
            self.last_activity = time.monotonic()
            self.segments_read += 1
            self._forward(segment)

    def run(self) -> None:
        """Read until EOF.

        Raises:
            OSError: If reading the pipe fails for a reason other than EOF.
        """
        buffer = b""
        while True:
            chunk = self._read_chunk()
            if not chunk:
                break
            buffer = self._consume_segments(buffer + chunk)

        if buffer:
            self._forward(buffer)
        logger.debug("Stream reader reached EOF after %d segments", self.segments_read)

    def close(self) -> None:
        """Close the parent end of the pipe safely."""
        if self._stream.closed:
            return
        try:
            self._stream.close()
        except (ValueError, OSError) as err:
            reader_error_msg = f"Stream reader encountered error on close: {err}"
            warnings.warn(reader_error_msg, stacklevel=2)
