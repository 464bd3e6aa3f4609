"""Block streams: Brotli framing driven by the block position.

Compress direction (BlockCompressor):
  - codec flags follow the position (see framing.encoder_options)
  - close() performs exactly one final write: pending bytes, codec
    finish, end fragment for bare terminating positions (LAST)

Decompress direction (BlockDecompressor):
  - MIDDLE/LAST: the start fragment for ``window_bits`` primes the decoder
  - FIRST/MIDDLE: the end fragment is fed once the source is exhausted

The codec-driving halves (_Compressing / _Decompressing) do no I/O, so the
blocking streams here and the asyncio streams share them unchanged.
"""

from __future__ import annotations

import io
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, BinaryIO

from brotli_block.core.codec_brotli import BrotliDecoder, BrotliEncoder
from brotli_block.core.options import WINDOW_BITS_DEFAULT, CompressionOptions
from brotli_block.engine.buffer_pool import DEFAULT_BUFFER_SIZE
from brotli_block.engine.framing import (
    BlockPosition,
    appends_end_fragment,
    encoder_options,
    needs_end_fragment,
    needs_start_fragment,
)
from brotli_block.engine.synthetic import END_FRAGMENT, get_start_fragment
from brotli_block.errors import CorruptBlock, OperationInProgress, StreamClosed, Unsupported

logger = logging.getLogger(__name__)


# -------------------
# I/O-free halves
# -------------------
class _Compressing:
    def __init__(
        self,
        position: BlockPosition | None,
        options: CompressionOptions | None,
        buffer: bytearray,
    ) -> None:
        self.position = position
        self.options = encoder_options(position, options)
        self._encoder = BrotliEncoder(self.options)
        self._append_end = appends_end_fragment(position, self.options)
        self._buffer = buffer
        self._filled = 0

    @property
    def total_in(self) -> int:
        return self._encoder.total_in + self._filled

    def feed(self, data: Any) -> Iterator[bytes]:
        """Buffer ``data``; yield codec output each time the buffer fills."""
        view = memoryview(data).cast("B")
        cap = len(self._buffer)
        while len(view):
            n = min(len(view), cap - self._filled)
            self._buffer[self._filled : self._filled + n] = view[:n]
            self._filled += n
            view = view[n:]
            if self._filled == cap:
                out = self._drain()
                if out:
                    yield out

    def flush(self) -> bytes:
        return self._drain() + self._encoder.flush()

    def finish(self) -> bytes:
        """The final zero-length write: drain, finish, maybe terminate."""
        out = self._drain() + self._encoder.finish()
        if self._append_end:
            out += END_FRAGMENT
        return out

    def _drain(self) -> bytes:
        if self._filled == 0:
            return b""
        chunk = bytes(self._buffer[: self._filled])
        self._filled = 0
        return self._encoder.process(chunk)


class _Decompressing:
    """
    Decoder side: at most ``output_limit`` bytes come out of each feed() or
    drain() call, whatever the expansion ratio of the input.

    Caller loop: feed() while ``needs_input``, drain() otherwise, until ``eof``.
    """

    def __init__(self, position: BlockPosition, window_bits: int, output_limit: int = DEFAULT_BUFFER_SIZE) -> None:
        # same range check as the compress side
        self.window_bits = CompressionOptions(window_bits=window_bits).window_bits
        self.position = position
        self.needs_start_fragment = needs_start_fragment(position)
        self.needs_end_fragment = needs_end_fragment(position)
        self._decoder = BrotliDecoder(output_limit)
        self._primed = False
        self._source_done = False
        self.eof = False

    @property
    def needs_input(self) -> bool:
        return not self._source_done and not self._decoder.has_pending_output

    def feed(self, chunk: bytes) -> bytes:
        """Feed source bytes; an empty ``chunk`` means the source is exhausted."""
        if not self._primed:
            self._primed = True
            if self.needs_start_fragment:
                # header only: no output
                self._decoder.process(get_start_fragment(self.window_bits))

        if chunk:
            return self._decoder.process(chunk)

        self._source_done = True
        if self.needs_end_fragment:
            return self._decoder.process(END_FRAGMENT)
        return b""

    def drain(self) -> bytes:
        """Output still held by the decoder; at the end, checks the stream is complete."""
        if self._decoder.has_pending_output:
            return self._decoder.process(b"")
        if self._source_done:
            if not self._decoder.finished:
                raise CorruptBlock(
                    f"blocco troncato: la sorgente è finita prima della fine dello stream (posizione={self.position.value})"
                )
            self.eof = True
        return b""


# -------------------
# Blocking streams
# -------------------
class _BlockStream(io.RawIOBase):
    def __init__(self) -> None:
        super().__init__()
        self._stream: Any = None
        self._leave_open = False
        self._busy = threading.Lock()

    @contextmanager
    def _operation(self) -> Iterator[None]:
        if not self._busy.acquire(blocking=False):
            raise OperationInProgress("another operation is already in progress on this block stream")
        try:
            yield
        finally:
            self._busy.release()

    def _check_open(self) -> None:
        if self._stream is None:
            raise StreamClosed("I/O operation on closed block stream")

    @property
    def base_stream(self) -> BinaryIO | None:
        return self._stream

    def seekable(self) -> bool:
        return False

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        raise Unsupported("block streams do not support seek")

    def tell(self) -> int:
        raise Unsupported("block streams do not support tell")

    def truncate(self, size: int | None = None) -> int:
        raise Unsupported("block streams do not support truncate")

    def fileno(self) -> int:
        raise Unsupported("block streams have no file descriptor")

    def _release(self) -> None:
        stream, self._stream = self._stream, None
        if not self._leave_open:
            stream.close()


class BlockCompressor(_BlockStream):
    """Write raw bytes, get a Brotli block for ``position`` on ``sink``."""

    def __init__(
        self,
        sink: BinaryIO,
        position: BlockPosition | None = BlockPosition.SINGLE,
        options: CompressionOptions | None = None,
        leave_open: bool = False,
    ) -> None:
        super().__init__()
        writable = getattr(sink, "writable", None)
        if writable is not None and not writable():
            raise ValueError("sink is not writable")
        self._core = _Compressing(position, options, bytearray(DEFAULT_BUFFER_SIZE))
        self._leave_open = leave_open
        self._stream = sink

    @property
    def options(self) -> CompressionOptions:
        return self._core.options

    def readable(self) -> bool:
        return False

    def writable(self) -> bool:
        return self._stream is not None

    def readinto(self, b: Any) -> int:
        raise Unsupported("read on a compressing block stream")

    def write(self, b: Any) -> int:
        with self._operation():
            self._check_open()
            n = memoryview(b).nbytes
            for out in self._core.feed(b):
                self._stream.write(out)
            return n

    def flush(self) -> None:
        # IOBase.close() calls flush() once more after release
        if self._stream is None:
            return
        with self._operation():
            out = self._core.flush()
            if out:
                self._stream.write(out)
            self._stream.flush()

    def close(self) -> None:
        if self._stream is None:
            super().close()
            return
        # rejected by the guard => still open, the final write is still owed
        with self._operation():
            try:
                self._stream.write(self._core.finish())
            finally:
                logger.debug(
                    "block compressor closed: position=%s, %d bytes in",
                    self._core.position.value if self._core.position else "raw",
                    self._core.total_in,
                )
                try:
                    self._release()
                finally:
                    super().close()


class BlockDecompressor(_BlockStream):
    """Read the raw bytes of a Brotli block compressed for ``position``."""

    def __init__(
        self,
        source: BinaryIO,
        position: BlockPosition = BlockPosition.SINGLE,
        window_bits: int = WINDOW_BITS_DEFAULT,
        leave_open: bool = False,
    ) -> None:
        super().__init__()
        readable = getattr(source, "readable", None)
        if readable is not None and not readable():
            raise ValueError("source is not readable")
        self._core = _Decompressing(position, window_bits)
        self._buffer = bytearray(DEFAULT_BUFFER_SIZE)
        self._pending = bytearray()
        self._leave_open = leave_open
        self._stream = source

    def readable(self) -> bool:
        return self._stream is not None

    def writable(self) -> bool:
        return False

    def write(self, b: Any) -> int:
        raise Unsupported("write on a decompressing block stream")

    def readinto(self, b: Any) -> int | None:
        """
        Fill ``b`` until it is full or the block ends.

        A non-blocking source with no data ready (its read returns None)
        ends the call early: the bytes copied so far, or None if there are none.
        """
        with self._operation():
            self._check_open()
            view = memoryview(b).cast("B")
            written = 0
            # _pending never holds more than one decoder output step
            while written < len(view):
                if self._pending:
                    n = min(len(self._pending), len(view) - written)
                    view[written : written + n] = self._pending[:n]
                    del self._pending[:n]
                    written += n
                elif self._core.eof:
                    break
                elif self._core.needs_input:
                    chunk = self._pull()
                    if chunk is None:
                        return written or None
                    self._pending += self._core.feed(chunk)
                else:
                    self._pending += self._core.drain()
            return written

    def _pull(self) -> bytes | None:
        readinto = getattr(self._stream, "readinto", None)
        if readinto is None:
            return self._stream.read(len(self._buffer))
        n = readinto(self._buffer)
        if n is None:
            return None
        return bytes(self._buffer[:n])

    def close(self) -> None:
        if self._stream is None:
            super().close()
            return
        with self._operation():
            try:
                self._pending.clear()
                self._release()
            finally:
                super().close()
