"""Synthetic fragments spliced around headerless / unterminated blocks.

start fragment(w): an empty block that only carries the stream header for
                   window bits ``w`` (plus padding to the byte boundary).
end fragment:      the single byte 0x03 (ISLAST=1, ISLASTEMPTY=1).

Start fragments are built lazily, once per window bits value, by running
the block compressor itself over zero bytes.
"""

from __future__ import annotations

import io
import logging
import threading

from brotli_block.core.options import WINDOW_BITS_MAX, WINDOW_BITS_MIN, CompressionOptions

logger = logging.getLogger(__name__)

END_FRAGMENT = b"\x03"

_start_fragments: dict[int, bytes] = {}
_locks: dict[int, threading.Lock] = {w: threading.Lock() for w in range(WINDOW_BITS_MIN, WINDOW_BITS_MAX + 1)}


def get_end_fragment() -> bytes:
    return END_FRAGMENT


def get_start_fragment(window_bits: int) -> bytes:
    frag = _start_fragments.get(window_bits)
    if frag is not None:
        return frag

    with _locks[window_bits]:
        frag = _start_fragments.get(window_bits)
        if frag is None:
            frag = _build_start_fragment(window_bits)
            _start_fragments[window_bits] = frag
            logger.debug("start fragment for window_bits=%d: %s", window_bits, frag.hex())
    return frag


def _build_start_fragment(window_bits: int) -> bytes:
    from brotli_block.engine.block_stream import BlockCompressor

    options = CompressionOptions(
        window_bits=window_bits,
        appendable=True,
        byte_align=True,
        bare=True,
        magic_number=False,
    )
    out = io.BytesIO()
    with BlockCompressor(out, position=None, options=options, leave_open=True):
        pass
    return out.getvalue()
