from __future__ import annotations

from fractions import Fraction

import pytest

from brotli_block.core.bit_writer import BitWriter
from brotli_block.core.prefix_code import (
    REPEAT_PREVIOUS,
    _rle_tokens,
    build_and_store,
    canonical_codes,
    huffman_lengths,
)


def _kraft(lengths: list[int]) -> Fraction:
    return sum((Fraction(1, 2**n) for n in lengths if n), Fraction(0))


def _expand(tokens: list[tuple[int, int]]) -> list[int]:
    """Reference reading of code-length tokens (repeat codes 16/17)."""
    out: list[int] = []
    prev = 8
    last_repeat_sym = None
    repeat = 0
    for sym, extra in tokens:
        if sym < 16:
            out.append(sym)
            if sym:
                prev = sym
            last_repeat_sym = None
            repeat = 0
            continue

        bits = 2 if sym == REPEAT_PREVIOUS else 3
        value = prev if sym == REPEAT_PREVIOUS else 0
        if last_repeat_sym != sym:
            repeat = 0
        old = repeat
        if repeat > 0:
            repeat = (repeat - 2) << bits
        repeat += extra + 3
        out.extend([value] * (repeat - old))
        last_repeat_sym = sym
    return out


def test_huffman_lengths_complete_code() -> None:
    counts = [10, 1, 1, 5, 0, 7, 3, 3, 0, 20]
    lengths = huffman_lengths(counts)
    assert lengths[4] == 0 and lengths[8] == 0
    assert all(n > 0 for i, n in enumerate(lengths) if counts[i])
    assert _kraft(lengths) == 1


def test_huffman_lengths_respects_limit() -> None:
    # fibonacci counts give the deepest possible tree
    counts = [1, 1]
    while len(counts) < 30:
        counts.append(counts[-1] + counts[-2])

    assert max(huffman_lengths(counts, limit=30)) > 15
    lengths = huffman_lengths(counts, limit=15)
    assert max(lengths) <= 15
    assert _kraft(lengths) == 1

    short = huffman_lengths(counts[:18], limit=5)
    assert max(short) <= 5
    assert _kraft(short) == 1


def test_huffman_lengths_degenerate() -> None:
    assert huffman_lengths([0, 0, 0]) == [0, 0, 0]
    assert huffman_lengths([0, 9, 0]) == [0, 1, 0]


def test_canonical_codes_are_bit_reversed() -> None:
    # canonical (MSB-first): a=0, b=10, c=110, d=111
    codes = canonical_codes([1, 2, 3, 3])
    assert codes == [0b0, 0b01, 0b011, 0b111]


def test_simple_code_two_symbols_golden() -> None:
    w = BitWriter()
    code = build_and_store(w, [5, 3, 0, 0])
    w.align()
    # HSKIP=1, NSYM-1=1, symbols 0 and 1 (2 bits each)
    assert w.take() == b"\x45"
    assert code.lengths == [1, 1, 0, 0]
    assert code.codes == [0, 1, 0, 0]


def test_single_symbol_is_coded_with_zero_bits() -> None:
    w = BitWriter()
    code = build_and_store(w, [0] * 255 + [42])
    assert code.lengths == [0] * 256
    w.align()
    # HSKIP=1, NSYM-1=0, symbol 255 (8 bits)
    assert w.take() == bytes([0b11110001, 0b00001111])


@pytest.mark.parametrize(
    "lengths",
    [
        [8] * 10,
        [3] * 7 + [4] * 7,
        [0] * 11 + [5] * 3,
        [0] * 20 + [3] * 9 + [0] * 4 + [5] * 2 + [3] * 7 + [0] * 11 + [2],
        [1, 0, 0, 2, 2, 2, 0, 0, 0, 4] + [0] * 200 + [7] * 30,
    ],
)
def test_rle_tokens_expand_back(lengths: list[int]) -> None:
    assert _expand(_rle_tokens(lengths)) == lengths


def test_rle_tokens_trailing_zeros_dropped() -> None:
    assert _expand(_rle_tokens([2, 2, 0, 0, 0, 0])) == [2, 2]


def test_complex_code_for_many_symbols() -> None:
    counts = [0] * 256
    for i, c in enumerate(b"the quick brown fox jumps over the lazy dog"):
        counts[c] += i + 1

    w = BitWriter()
    code = build_and_store(w, counts)
    assert w.bit_length > 0
    used = [s for s, n in enumerate(code.lengths) if n]
    assert used == [s for s, c in enumerate(counts) if c]
    assert _kraft(code.lengths) == 1
