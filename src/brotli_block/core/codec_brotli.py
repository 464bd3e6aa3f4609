"""Brotli codec session objects.

BrotliEncoder writes RFC 7932 streams whose meta-blocks stay valid when the
output is concatenated with other output of the same encoder:
  - one literal / insert&copy / distance tree per meta-block (no context
    modelling across block boundaries),
  - explicit distances only (no distance-cache codes),
  - distances bounded by the bytes this session produced (no static
    dictionary references).

Framing is driven by CompressionOptions (header, magic, byte alignment,
terminator). Decoding is delegated to the ``brotli`` bindings.
"""

from __future__ import annotations

import logging
from bisect import bisect_right
from collections import Counter
from typing import List

import brotli

from brotli_block.core.bit_writer import BitWriter
from brotli_block.core.match_finder import Command, MatchFinder
from brotli_block.core.options import CompressionOptions
from brotli_block.core.prefix_code import build_and_store
from brotli_block.errors import CorruptBlock

logger = logging.getLogger(__name__)

MAGIC_NUMBER = b"\xe1\x97\x81"

MAX_META_BLOCK_SIZE = 1 << 16

NUM_LITERAL_SYMBOLS = 256
NUM_COMMAND_SYMBOLS = 704
NUM_DISTANCE_SYMBOLS = 64  # 16 + NDIRECT(0) + (48 << NPOSTFIX(0))

# Insert / copy length codes (RFC 7932, 5): base value and extra bits per code.
_INSERT_BASE = (0, 1, 2, 3, 4, 5, 6, 8, 10, 14, 18, 26, 34, 50, 66, 98, 130, 194, 322, 578, 1090, 2114, 6210, 22594)
_INSERT_EXTRA = (0, 0, 0, 0, 0, 0, 1, 1, 2, 2, 3, 3, 4, 4, 5, 5, 6, 7, 8, 9, 10, 12, 14, 24)
_COPY_BASE = (2, 3, 4, 5, 6, 7, 8, 9, 10, 12, 14, 18, 22, 30, 38, 54, 70, 102, 134, 198, 326, 582, 1094, 2118)
_COPY_EXTRA = (0, 0, 0, 0, 0, 0, 0, 0, 1, 1, 2, 2, 3, 3, 4, 4, 5, 5, 6, 7, 8, 9, 10, 24)

# Insert&copy cell offsets for explicit distances, by (insert_code >> 3, copy_code >> 3).
_COMMAND_CELL = {
    (0, 0): 128,
    (0, 1): 192,
    (1, 0): 256,
    (1, 1): 320,
    (0, 2): 384,
    (2, 0): 448,
    (1, 2): 512,
    (2, 1): 576,
    (2, 2): 640,
}


def encode_window_bits(w: BitWriter, window_bits: int) -> None:
    """Stream header (WBITS)."""
    if window_bits == 16:
        w.write_bits(1, 0)
    elif window_bits == 17:
        w.write_bits(7, 1)
    elif window_bits > 17:
        w.write_bits(1, 1)
        w.write_bits(3, window_bits - 17)
    else:
        w.write_bits(1, 1)
        w.write_bits(3, 0)
        w.write_bits(3, window_bits - 8)


def write_sync_block(w: BitWriter) -> None:
    """Empty metadata meta-block, then zero padding to the byte boundary."""
    # ISLAST=0, MNIBBLES=0 (code 3), reserved=0, MSKIPBYTES=0
    w.write_bits(6, 6)
    w.align()


def write_terminator(w: BitWriter) -> None:
    # ISLAST=1, ISLASTEMPTY=1
    w.write_bits(2, 3)
    w.align()


def write_metadata_block(w: BitWriter, payload: bytes) -> None:
    if not (1 <= len(payload) <= 256):
        raise ValueError("metadata: 1..256 byte supportati")
    w.write_bits(1, 0)  # ISLAST
    w.write_bits(2, 3)  # MNIBBLES=0 -> metadata
    w.write_bits(1, 0)  # reserved
    w.write_bits(2, 1)  # MSKIPBYTES
    w.write_bits(8, len(payload) - 1)
    w.align()
    w.write_bytes(payload)


def _meta_block_header(w: BitWriter, mlen: int, uncompressed: bool) -> None:
    nibbles = max(4, ((mlen - 1).bit_length() + 3) // 4)
    w.write_bits(1, 0)  # ISLAST
    w.write_bits(2, nibbles - 4)
    w.write_bits(nibbles * 4, mlen - 1)
    w.write_bits(1, 1 if uncompressed else 0)


def _insert_code(n: int) -> int:
    return bisect_right(_INSERT_BASE, n) - 1


def _copy_code(n: int) -> int:
    return bisect_right(_COPY_BASE, n) - 1


def _distance_code(distance: int) -> tuple[int, int, int]:
    """distance -> (symbol, n extra bits, extra value) with NPOSTFIX=0, NDIRECT=0."""
    v = distance + 3
    n = v.bit_length() - 2
    h = (v >> n) & 1
    return 16 + 2 * (n - 1) + h, n, v - ((2 + h) << n)


def store_uncompressed(w: BitWriter, chunk: bytes) -> None:
    _meta_block_header(w, len(chunk), uncompressed=True)
    w.align()
    w.write_bytes(chunk)


def store_compressed(w: BitWriter, chunk: bytes, commands: List[Command]) -> None:
    # Pass 1: symbols and histograms.
    literals = bytearray()
    encoded: list[tuple[int, int, int, int, int, int, int, int, int]] = []
    cmd_hist = [0] * NUM_COMMAND_SYMBOLS
    dist_hist = [0] * NUM_DISTANCE_SYMBOLS
    pos = 0
    for insert_len, copy_len, distance in commands:
        literals += chunk[pos : pos + insert_len]
        pos += insert_len + copy_len

        ic = _insert_code(insert_len)
        cc = _copy_code(copy_len) if copy_len else 0
        symbol = _COMMAND_CELL[(ic >> 3, cc >> 3)] + ((ic & 7) << 3) + (cc & 7)
        cmd_hist[symbol] += 1
        if copy_len:
            dsym, dbits, dextra = _distance_code(distance)
            dist_hist[dsym] += 1
        else:
            dsym, dbits, dextra = -1, 0, 0
        encoded.append(
            (
                symbol,
                _INSERT_EXTRA[ic],
                insert_len - _INSERT_BASE[ic],
                _COPY_EXTRA[cc] if copy_len else 0,
                copy_len - _COPY_BASE[cc] if copy_len else 0,
                insert_len,
                dsym,
                dbits,
                dextra,
            )
        )

    lit_hist = [0] * NUM_LITERAL_SYMBOLS
    for b, c in Counter(literals).items():
        lit_hist[b] = c

    # Header.
    _meta_block_header(w, len(chunk), uncompressed=False)
    w.write_bits(1, 0)  # NBLTYPESL = 1
    w.write_bits(1, 0)  # NBLTYPESI = 1
    w.write_bits(1, 0)  # NBLTYPESD = 1
    w.write_bits(2, 0)  # NPOSTFIX
    w.write_bits(4, 0)  # NDIRECT
    w.write_bits(2, 0)  # context mode (unused with one tree)
    w.write_bits(1, 0)  # NTREESL = 1
    w.write_bits(1, 0)  # NTREESD = 1
    lit_code = build_and_store(w, lit_hist)
    cmd_code = build_and_store(w, cmd_hist)
    dist_code = build_and_store(w, dist_hist)

    # Pass 2: data.
    lit_lengths = lit_code.lengths
    lit_codes = lit_code.codes
    write_bits = w.write_bits
    lit_pos = 0
    for symbol, ibits, iextra, cbits, cextra, insert_len, dsym, dbits, dextra in encoded:
        cmd_code.write(w, symbol)
        write_bits(ibits, iextra)
        write_bits(cbits, cextra)
        for b in literals[lit_pos : lit_pos + insert_len]:
            write_bits(lit_lengths[b], lit_codes[b])
        lit_pos += insert_len
        if dsym >= 0:
            dist_code.write(w, dsym)
            write_bits(dbits, dextra)


class BrotliEncoder:
    """
    One compression session.

    process(data) -> complete bytes produced so far (partial bits stay pending)
    flush()       -> pads to a byte boundary and drains
    finish()      -> terminator (if the options want one), padding, drain
    """

    def __init__(self, options: CompressionOptions) -> None:
        self.options = options
        self._writer = BitWriter()
        self._finder = MatchFinder(options.window_bits, options.quality)
        self._finished = False
        self.total_in = 0

        if options.emits_header:
            encode_window_bits(self._writer, options.window_bits)
        if options.emits_magic_number:
            write_metadata_block(self._writer, MAGIC_NUMBER + bytes([options.window_bits]))

    @property
    def finished(self) -> bool:
        return self._finished

    def process(self, data: bytes) -> bytes:
        if self._finished:
            raise ValueError("encoder già finalizzato")
        view = memoryview(data)
        for start in range(0, len(view), MAX_META_BLOCK_SIZE):
            self._store_meta_block(bytes(view[start : start + MAX_META_BLOCK_SIZE]))
        return self._writer.take()

    def flush(self) -> bytes:
        if self._finished:
            return b""
        if not self._writer.aligned:
            write_sync_block(self._writer)
        return self._writer.take()

    def finish(self) -> bytes:
        if self._finished:
            return b""
        self._finished = True
        if self.options.emits_terminator:
            write_terminator(self._writer)
        elif not self._writer.aligned:
            write_sync_block(self._writer)
        return self._writer.take()

    def _store_meta_block(self, chunk: bytes) -> None:
        commands = self._finder.find(chunk)
        self.total_in += len(chunk)

        tmp = BitWriter()
        store_compressed(tmp, chunk, commands)
        # header of an uncompressed meta-block: at most 4 bytes + padding
        if tmp.bit_length >= (len(chunk) + 5) * 8:
            logger.debug("meta-block of %d bytes stored uncompressed", len(chunk))
            store_uncompressed(self._writer, chunk)
        else:
            logger.debug("meta-block of %d bytes stored in %d bits", len(chunk), tmp.bit_length)
            self._writer.append(tmp)

        if self.options.byte_align and not self._writer.aligned:
            write_sync_block(self._writer)


class BrotliDecoder:
    """
    Thin session wrapper over ``brotli.Decompressor``.

    With ``output_limit`` every process() call returns at most that many
    bytes; while ``has_pending_output`` is true the decoder must be drained
    with process(b"") before it takes more input.
    """

    def __init__(self, output_limit: int | None = None) -> None:
        self._d = brotli.Decompressor()
        self.output_limit = output_limit

    def process(self, data: bytes) -> bytes:
        try:
            if self.output_limit is None:
                return self._d.process(data)
            return self._d.process(data, self.output_limit)
        except brotli.error as e:
            raise CorruptBlock(f"brotli: stream non valido: {e}") from e

    @property
    def has_pending_output(self) -> bool:
        return not self._d.can_accept_more_data()

    @property
    def finished(self) -> bool:
        return bool(self._d.is_finished())
