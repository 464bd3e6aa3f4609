"""One-shot helpers over the block streams.

  compress(data)                      -> SINGLE block (MIDDLE with bare=True)
  compress_block(data, position)      -> block for an explicit position
  decompress_block(data, position)    -> raw bytes

Blocks compressed with the same window bits concatenate:

  compress_block(c0, FIRST) + compress_block(c1, MIDDLE) + compress_block(c2, LAST)

decodes as SINGLE to c0 + c1 + c2.
"""

from __future__ import annotations

import io
from typing import Any

from brotli_block.core.options import QUALITY_DEFAULT, WINDOW_BITS_DEFAULT, CompressionOptions
from brotli_block.engine.block_stream import BlockCompressor, BlockDecompressor
from brotli_block.engine.framing import BlockPosition


def compress(
    data: Any,
    *,
    bare: bool = False,
    quality: int = QUALITY_DEFAULT,
    window_bits: int = WINDOW_BITS_DEFAULT,
) -> bytes:
    position = BlockPosition.MIDDLE if bare else BlockPosition.SINGLE
    return compress_block(data, position, quality=quality, window_bits=window_bits)


def compress_block(
    data: Any,
    position: BlockPosition,
    *,
    quality: int = QUALITY_DEFAULT,
    window_bits: int = WINDOW_BITS_DEFAULT,
    options: CompressionOptions | None = None,
) -> bytes:
    """
    Compress ``data`` as one block.

    ``options`` (if given) wins over quality/window_bits; its framing flags
    are still overridden by ``position``.
    """
    if options is None:
        options = CompressionOptions(quality=quality, window_bits=window_bits)
    out = io.BytesIO()
    with BlockCompressor(out, position=BlockPosition(position), options=options, leave_open=True) as bc:
        bc.write(data)
    return out.getvalue()


def decompress_block(
    data: Any,
    position: BlockPosition = BlockPosition.SINGLE,
    *,
    window_bits: int = WINDOW_BITS_DEFAULT,
) -> bytes:
    """Decompress one block; ``data`` is bytes-like or a readable binary file."""
    if hasattr(data, "read"):
        source, leave_open = data, True
    else:
        source, leave_open = io.BytesIO(data), False
    with BlockDecompressor(source, position=BlockPosition(position), window_bits=window_bits, leave_open=leave_open) as bd:
        return bd.readall()
