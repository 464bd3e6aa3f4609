from __future__ import annotations

import heapq
import itertools
from typing import List, Sequence, Tuple

from brotli_block.core.bit_writer import BitWriter

MAX_CODE_LENGTH = 15
MAX_CODE_LENGTH_CODE_LENGTH = 5

# Order in which the code-length code lengths are stored (RFC 7932, 3.5).
CODE_LENGTH_STORAGE_ORDER = (1, 2, 3, 4, 0, 5, 17, 6, 16, 7, 8, 9, 10, 11, 12, 13, 14, 15)

# Static code for a code-length code length 0..5: (n_bits, value written LSB-first).
_CLCL_STATIC_CODE = ((2, 0), (4, 7), (3, 3), (2, 2), (2, 1), (4, 15))

REPEAT_PREVIOUS = 16
REPEAT_ZERO = 17
INITIAL_REPEATED_CODE_LENGTH = 8


# -------------------
# Huffman depths (length limited)
# -------------------
def huffman_lengths(counts: Sequence[int], limit: int = MAX_CODE_LENGTH) -> List[int]:
    """
    counts -> code length per symbol (0 for unused symbols).

    Limite di profondità: se l'albero supera ``limit`` si riprova
    alzando il conteggio minimo (stessa strategia dell'encoder di riferimento).
    With a single used symbol its length is 1 (the caller stores it as a
    zero-bit simple code).
    """
    used = [(sym, c) for sym, c in enumerate(counts) if c > 0]
    lengths = [0] * len(counts)
    if not used:
        return lengths
    if len(used) == 1:
        lengths[used[0][0]] = 1
        return lengths

    floor = 1
    while True:
        depths = _tree_depths([(max(c, floor), sym) for sym, c in used])
        if max(depths.values()) <= limit:
            for sym, d in depths.items():
                lengths[sym] = d
            return lengths
        floor *= 2


def _tree_depths(weighted: List[Tuple[int, int]]) -> dict[int, int]:
    counter = itertools.count()
    heap: list[tuple[int, int, object]] = []
    for w, sym in weighted:
        heapq.heappush(heap, (w, next(counter), sym))

    while len(heap) > 1:
        w1, _, n1 = heapq.heappop(heap)
        w2, _, n2 = heapq.heappop(heap)
        heapq.heappush(heap, (w1 + w2, next(counter), (n1, n2)))

    depths: dict[int, int] = {}
    stack: list[tuple[object, int]] = [(heap[0][2], 0)]
    while stack:
        node, depth = stack.pop()
        if isinstance(node, tuple):
            stack.append((node[0], depth + 1))
            stack.append((node[1], depth + 1))
        else:
            depths[node] = depth  # type: ignore[index]
    return depths


def _reverse_bits(code: int, n_bits: int) -> int:
    out = 0
    for _ in range(n_bits):
        out = (out << 1) | (code & 1)
        code >>= 1
    return out


def canonical_codes(lengths: Sequence[int]) -> List[int]:
    """
    Canonical codes (ordered by length, then symbol), already bit-reversed
    so they can go straight into an LSB-first BitWriter.
    """
    max_len = max(lengths, default=0)
    bl_count = [0] * (max_len + 1)
    for n in lengths:
        if n:
            bl_count[n] += 1

    next_code = [0] * (max_len + 1)
    code = 0
    for bits in range(1, max_len + 1):
        code = (code + bl_count[bits - 1]) << 1
        next_code[bits] = code

    codes = [0] * len(lengths)
    for sym, n in enumerate(lengths):
        if n:
            codes[sym] = _reverse_bits(next_code[n], n)
            next_code[n] += 1
    return codes


# -------------------
# Prefix code storage (RFC 7932, 3.4 / 3.5)
# -------------------
class PrefixCode:
    """A stored prefix code: per-symbol (length, reversed code) ready for writing."""

    __slots__ = ("lengths", "codes")

    def __init__(self, lengths: List[int], codes: List[int]) -> None:
        self.lengths = lengths
        self.codes = codes

    def write(self, w: BitWriter, symbol: int) -> None:
        w.write_bits(self.lengths[symbol], self.codes[symbol])


def build_and_store(w: BitWriter, counts: Sequence[int]) -> PrefixCode:
    """Build a prefix code for ``counts``, store it into ``w`` and return it."""
    alphabet_size = len(counts)
    lengths = huffman_lengths(counts)
    used = [sym for sym, n in enumerate(lengths) if n]

    if len(used) <= 4:
        _store_simple(w, lengths, used, alphabet_size)
        if len(used) <= 1:
            # a single symbol is coded with zero bits
            return PrefixCode([0] * alphabet_size, [0] * alphabet_size)
    else:
        _store_complex(w, lengths)
    return PrefixCode(lengths, canonical_codes(lengths))


def _store_simple(w: BitWriter, lengths: List[int], used: List[int], alphabet_size: int) -> None:
    alphabet_bits = (alphabet_size - 1).bit_length()
    if not used:
        used = [0]

    w.write_bits(2, 1)  # HSKIP == 1 -> simple prefix code
    w.write_bits(2, len(used) - 1)

    # The decoder assigns 1,2,2 / 1,2,3,3 in listed order: list by length.
    ordered = sorted(used, key=lambda s: (lengths[s], s))
    for sym in ordered:
        w.write_bits(alphabet_bits, sym)
    if len(used) == 4:
        w.write_bits(1, 1 if lengths[ordered[0]] == 1 else 0)


def _rle_tokens(lengths: Sequence[int]) -> List[Tuple[int, int]]:
    """Code lengths -> (code-length symbol, extra bits value) with 16/17 repeats."""
    end = len(lengths)
    while end > 0 and lengths[end - 1] == 0:
        end -= 1

    tokens: List[Tuple[int, int]] = []
    previous = INITIAL_REPEATED_CODE_LENGTH
    i = 0
    while i < end:
        value = lengths[i]
        reps = 1
        while i + reps < end and lengths[i + reps] == value:
            reps += 1
        if value == 0:
            _tokens_zeros(tokens, reps)
        else:
            _tokens_repeat(tokens, previous, value, reps)
            previous = value
        i += reps
    return tokens


def _tokens_repeat(tokens: List[Tuple[int, int]], previous: int, value: int, reps: int) -> None:
    if previous != value:
        tokens.append((value, 0))
        reps -= 1
    if reps == 7:
        tokens.append((value, 0))
        reps -= 1
    if reps < 3:
        tokens.extend([(value, 0)] * reps)
        return
    group: List[Tuple[int, int]] = []
    reps -= 3
    while True:
        group.append((REPEAT_PREVIOUS, reps & 0x3))
        reps >>= 2
        if reps == 0:
            break
        reps -= 1
    tokens.extend(reversed(group))


def _tokens_zeros(tokens: List[Tuple[int, int]], reps: int) -> None:
    if reps == 11:
        tokens.append((0, 0))
        reps -= 1
    if reps < 3:
        tokens.extend([(0, 0)] * reps)
        return
    group: List[Tuple[int, int]] = []
    reps -= 3
    while True:
        group.append((REPEAT_ZERO, reps & 0x7))
        reps >>= 3
        if reps == 0:
            break
        reps -= 1
    tokens.extend(reversed(group))


def _store_complex(w: BitWriter, lengths: List[int]) -> None:
    tokens = _rle_tokens(lengths)

    hist = [0] * 18
    for sym, _ in tokens:
        hist[sym] += 1
    clc_lengths = huffman_lengths(hist, MAX_CODE_LENGTH_CODE_LENGTH)
    num_codes = sum(1 for n in clc_lengths if n)

    codes_to_store = len(CODE_LENGTH_STORAGE_ORDER)
    if num_codes > 1:
        while codes_to_store > 0 and clc_lengths[CODE_LENGTH_STORAGE_ORDER[codes_to_store - 1]] == 0:
            codes_to_store -= 1

    w.write_bits(2, 0)  # HSKIP == 0
    for i in range(codes_to_store):
        n_bits, value = _CLCL_STATIC_CODE[clc_lengths[CODE_LENGTH_STORAGE_ORDER[i]]]
        w.write_bits(n_bits, value)

    if num_codes == 1:
        # a lone code-length symbol is read with zero bits
        clc_codes = [0] * 18
        clc_lengths = [0] * 18
    else:
        clc_codes = canonical_codes(clc_lengths)

    for sym, extra in tokens:
        w.write_bits(clc_lengths[sym], clc_codes[sym])
        if sym == REPEAT_PREVIOUS:
            w.write_bits(2, extra)
        elif sym == REPEAT_ZERO:
            w.write_bits(3, extra)
