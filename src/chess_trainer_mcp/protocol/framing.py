"""Line framing for the stdio transport.

Turns the raw stdin byte stream into one text line per message. Only ``\\n``
delimits a line; a trailing ``\\r`` is dropped so CRLF input works, but a lone
``\\r`` inside a line is kept as data.
"""

from __future__ import annotations

import asyncio
import os
import sys
import threading
from collections.abc import AsyncIterator, Callable
from typing import BinaryIO, TextIO

from chess_trainer_mcp.protocol.jsonrpc import MAX_MESSAGE_SIZE

# Reader buffer limit; anything above MAX_MESSAGE_SIZE is rejected by the codec,
# anything above this cannot be framed at all.
READER_LIMIT = 2 * MAX_MESSAGE_SIZE

_PUMP_CHUNK = 65536


class FramingError(Exception):
    """Raised when the input stream cannot be split into lines."""

    pass


class RequestFramer:
    """Async iterator over non-blank input lines.

    Iteration ends when the input reaches EOF or ``close()`` is called.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        on_close: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the framer.

        Args:
            reader: Stream reader fed with stdin bytes.
            on_close: Optional hook that detaches the underlying input source.
        """
        self._reader = reader
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        """Whether ``close()`` has been called."""
        return self._closed

    def __aiter__(self) -> AsyncIterator[str]:
        return self._lines()

    async def _lines(self) -> AsyncIterator[str]:
        while True:
            try:
                raw = await self._reader.readline()
            except ValueError as e:
                raise FramingError(f"Input line exceeds {READER_LIMIT} bytes") from e

            if not raw or self._closed:  # EOF or closed
                return

            if raw.endswith(b"\n"):
                raw = raw[:-1]
                if raw.endswith(b"\r"):
                    raw = raw[:-1]

            line = raw.decode("utf-8", errors="replace")
            if line.strip():
                yield line.strip()

    def close(self) -> None:
        """Stop delivering lines. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._on_close is not None:
            self._on_close()
        self._reader.feed_eof()


class _StdinPump:
    """Feeds a StreamReader from a blocking file descriptor on a daemon thread.

    Used when stdin is a regular file, which the event loop cannot watch.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, reader: asyncio.StreamReader, fd: int):
        self._loop = loop
        self._reader = reader
        self._fd = fd
        self._stopped = False
        self._thread = threading.Thread(target=self._run, name="stdin-pump", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stopped = True

    def _deliver(self, data: bytes) -> None:
        # Runs on the loop thread
        if self._stopped:
            return
        if data:
            self._reader.feed_data(data)
        else:
            self._reader.feed_eof()

    def _run(self) -> None:
        while not self._stopped:
            try:
                data = os.read(self._fd, _PUMP_CHUNK)
            except OSError:
                data = b""
            try:
                self._loop.call_soon_threadsafe(self._deliver, data)
            except RuntimeError:  # loop closed
                return
            if not data:
                return


async def open_stdin(stdin: TextIO | BinaryIO | None = None) -> RequestFramer:
    """Attach process stdin to the running event loop.

    Args:
        stdin: Input stream (defaults to sys.stdin).

    Returns:
        RequestFramer reading from stdin.
    """
    stdin = stdin or sys.stdin
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=READER_LIMIT)
    protocol = asyncio.StreamReaderProtocol(reader)

    try:
        transport, _ = await loop.connect_read_pipe(lambda: protocol, stdin)
    except (ValueError, OSError, NotImplementedError):
        # Regular file or platform without pipe support
        pump = _StdinPump(loop, reader, stdin.fileno())
        pump.start()
        return RequestFramer(reader, on_close=pump.stop)

    return RequestFramer(reader, on_close=transport.close)
