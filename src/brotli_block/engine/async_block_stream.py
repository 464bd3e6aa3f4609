"""asyncio block streams.

Same framing as engine.block_stream, over ``asyncio.StreamWriter``-like
sinks (write() + await drain()) and ``asyncio.StreamReader``-like sources
(await read(n)).

A cancelled operation leaves the stream broken: every later write/flush/read
raises StreamBroken. aclose() still performs the final write.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from brotli_block.core.options import WINDOW_BITS_DEFAULT, CompressionOptions
from brotli_block.engine.block_stream import _Compressing, _Decompressing
from brotli_block.engine.buffer_pool import DEFAULT_BUFFER_SIZE, SHARED_POOL, BufferPool
from brotli_block.engine.framing import BlockPosition
from brotli_block.errors import OperationInProgress, StreamBroken, StreamClosed

logger = logging.getLogger(__name__)


class _AsyncBlockStream(ABC):
    def __init__(self, stream: Any, leave_open: bool) -> None:
        self._stream = stream
        self._leave_open = leave_open
        # one event loop thread: a flag is enough, no lock
        self._busy = False
        self._broken = False

    @contextmanager
    def _operation(self) -> Iterator[None]:
        if self._busy:
            raise OperationInProgress("another operation is already in progress on this block stream")
        self._busy = True
        try:
            yield
        except asyncio.CancelledError:
            self._broken = True
            raise
        finally:
            self._busy = False

    def _check_usable(self) -> None:
        if self._stream is None:
            raise StreamClosed("I/O operation on closed block stream")
        if self._broken:
            raise StreamBroken("a previous operation was cancelled; the block stream is unusable")

    @property
    def closed(self) -> bool:
        return self._stream is None

    @property
    def broken(self) -> bool:
        return self._broken

    @property
    def base_stream(self) -> Any:
        return self._stream

    async def _release(self) -> None:
        stream, self._stream = self._stream, None
        if not self._leave_open:
            # asyncio.StreamReader has no close(): the owning writer closes the transport
            close = getattr(stream, "close", None)
            if close is not None:
                close()
            wait_closed = getattr(stream, "wait_closed", None)
            if wait_closed is not None:
                await wait_closed()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    @abstractmethod
    async def aclose(self) -> None:
        """Final write (compress side), then release the stream."""


class AsyncBlockCompressor(_AsyncBlockStream):
    """
    Write raw bytes, get a Brotli block for ``position`` on ``writer``.

    The working buffer is rented from ``pool`` and given back on aclose().
    """

    def __init__(
        self,
        writer: Any,
        position: BlockPosition | None = BlockPosition.SINGLE,
        options: CompressionOptions | None = None,
        leave_open: bool = False,
        pool: BufferPool = SHARED_POOL,
    ) -> None:
        super().__init__(writer, leave_open)
        self._pool = pool
        self._buffer: bytearray | None = pool.rent()
        try:
            self._core = _Compressing(position, options, self._buffer)
        except BaseException:
            pool.give_back(self._buffer)
            raise

    @property
    def options(self) -> CompressionOptions:
        return self._core.options

    async def write(self, data: Any) -> int:
        with self._operation():
            self._check_usable()
            n = memoryview(data).nbytes
            for out in self._core.feed(data):
                await self._push(out)
            return n

    async def flush(self) -> None:
        with self._operation():
            self._check_usable()
            out = self._core.flush()
            if out:
                await self._push(out)

    async def aclose(self) -> None:
        if self._stream is None:
            return
        with self._operation():
            try:
                await self._push(self._core.finish())
            finally:
                logger.debug(
                    "async block compressor closed: %d bytes in, broken=%s", self._core.total_in, self._broken
                )
                buf, self._buffer = self._buffer, None
                if buf is not None:
                    self._pool.give_back(buf)
                await self._release()

    async def _push(self, data: bytes) -> None:
        self._stream.write(data)
        await self._stream.drain()


class AsyncBlockDecompressor(_AsyncBlockStream):
    """Read the raw bytes of a Brotli block compressed for ``position``."""

    def __init__(
        self,
        reader: Any,
        position: BlockPosition = BlockPosition.SINGLE,
        window_bits: int = WINDOW_BITS_DEFAULT,
        leave_open: bool = False,
        read_size: int = DEFAULT_BUFFER_SIZE,
    ) -> None:
        super().__init__(reader, leave_open)
        self._core = _Decompressing(position, window_bits)
        self._pending = bytearray()
        self._read_size = read_size

    async def read(self, size: int = -1) -> bytes:
        """Up to ``size`` decompressed bytes (all of them if ``size < 0``); b"" at the end."""
        with self._operation():
            self._check_usable()
            out = bytearray()
            while size < 0 or len(out) < size:
                if self._pending:
                    take = len(self._pending) if size < 0 else min(len(self._pending), size - len(out))
                    out += self._pending[:take]
                    del self._pending[:take]
                elif self._core.eof:
                    break
                elif self._core.needs_input:
                    chunk = await self._stream.read(self._read_size)
                    self._pending += self._core.feed(chunk)
                else:
                    self._pending += self._core.drain()
            return bytes(out)

    async def aclose(self) -> None:
        if self._stream is None:
            return
        with self._operation():
            self._pending.clear()
            await self._release()

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        data = await self.read(self._read_size)
        if not data:
            raise StopAsyncIteration
        return data
