from __future__ import annotations

import dataclasses
from enum import Enum

from brotli_block.core.options import CompressionOptions


class BlockPosition(str, Enum):
    """Where a block sits in the concatenation of one logical stream."""

    FIRST = "first"
    MIDDLE = "middle"
    LAST = "last"
    SINGLE = "single"

    @property
    def has_start_fragment(self) -> bool:
        return _FRAMING[self][0]

    @property
    def has_end_fragment(self) -> bool:
        return _FRAMING[self][1]

    @classmethod
    def for_index(cls, index: int, count: int) -> BlockPosition:
        """Position of block ``index`` in a sequence of ``count`` blocks."""
        if not (0 <= index < count):
            raise IndexError(f"indice blocco {index} fuori range (count={count})")
        if count == 1:
            return cls.SINGLE
        if index == 0:
            return cls.FIRST
        if index == count - 1:
            return cls.LAST
        return cls.MIDDLE


# position -> (carries start fragment / header, carries end fragment / terminator)
_FRAMING: dict[BlockPosition, tuple[bool, bool]] = {
    BlockPosition.FIRST: (True, False),
    BlockPosition.MIDDLE: (False, False),
    BlockPosition.LAST: (False, True),
    BlockPosition.SINGLE: (True, True),
}


def encoder_options(position: BlockPosition | None, options: CompressionOptions | None = None) -> CompressionOptions:
    """
    Codec parameters for compressing a block at ``position``.

    quality/window_bits come from ``options``; the framing flags come from
    the position. ``position=None`` returns the options untouched.
    """
    base = options if options is not None else CompressionOptions()
    if position is None:
        return dataclasses.replace(base)
    if position is BlockPosition.SINGLE:
        return dataclasses.replace(base, bare=False, catable=False, appendable=False)
    return dataclasses.replace(
        base,
        bare=True,
        magic_number=False,
        byte_align=True,
        catable=not position.has_start_fragment,
        appendable=not position.has_end_fragment,
    )


def appends_end_fragment(position: BlockPosition | None, options: CompressionOptions) -> bool:
    """A bare codec never terminates: the stream appends the end fragment itself."""
    return position is not None and position.has_end_fragment and not options.emits_terminator


def needs_start_fragment(position: BlockPosition) -> bool:
    return not position.has_start_fragment


def needs_end_fragment(position: BlockPosition) -> bool:
    return not position.has_end_fragment
