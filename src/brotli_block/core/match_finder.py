from __future__ import annotations

from typing import List, Tuple

MIN_MATCH = 4

_HASH_BITS = 16
_HASH_MUL = 0x1E35A7BD
_MAX_SEARCH_BITS = 18  # search window cap (the format allows up to window_bits)
_COMPARE_STEP = 64

# chain depth per quality (0 => literals only)
_CHAIN_DEPTH = (0, 1, 2, 4, 8, 12, 16, 32, 48, 64, 128, 256)

# (insert_len, copy_len, distance); copy_len == 0 => insert-only tail
Command = Tuple[int, int, int]


class MatchFinder:
    """
    Greedy LZ77 over a hash chain, one instance per encoder session.

    Vincolo "catable": una distanza non supera mai i byte già prodotti
    dalla stessa sessione, quindi nessun riferimento al dizionario statico
    anche dopo concatenazione con altri blocchi.
    """

    def __init__(self, window_bits: int, quality: int) -> None:
        search_bits = min(window_bits, _MAX_SEARCH_BITS)
        self._max_distance = min((1 << window_bits) - 16, (1 << search_bits) - 1)
        self._mask = (1 << search_bits) - 1
        self._chain = _CHAIN_DEPTH[quality]
        self._insert_in_match = quality >= 5
        self._head = [-1] * (1 << _HASH_BITS)
        self._prev = [-1] * (1 << search_bits)
        self._history = bytearray()
        self._base = 0  # absolute position of _history[0]

    def find(self, chunk: bytes) -> List[Command]:
        n = len(chunk)
        if n == 0:
            return []
        if self._chain == 0:
            return [(n, 0, 0)]

        start = len(self._history)
        self._history += chunk
        buf = bytes(self._history)
        end = len(buf)
        base = self._base
        head = self._head
        prev = self._prev
        mask = self._mask
        max_distance = self._max_distance
        shift = 32 - _HASH_BITS

        cmds: List[Command] = []
        insert_from = start
        i = start
        last = end - MIN_MATCH
        while i <= last:
            h = ((int.from_bytes(buf[i : i + 4], "little") * _HASH_MUL) & 0xFFFFFFFF) >> shift
            pos = base + i
            cand = head[h]
            head[h] = pos
            prev[pos & mask] = cand

            best_len = 0
            best_dist = 0
            depth = self._chain
            while cand >= 0 and depth > 0:
                dist = pos - cand
                if dist > max_distance:
                    break
                j = cand - base
                if j < 0:
                    break
                if i + best_len < end and buf[j + best_len] == buf[i + best_len] and buf[j : j + 4] == buf[i : i + 4]:
                    length = _match_length(buf, j, i, end)
                    if length > best_len:
                        best_len = length
                        best_dist = dist
                        if i + length >= end:
                            break
                nxt = prev[cand & mask]
                if nxt >= cand:
                    break
                cand = nxt
                depth -= 1

            if best_len >= MIN_MATCH:
                cmds.append((i - insert_from, best_len, best_dist))
                if self._insert_in_match:
                    stop = min(i + best_len, last + 1)
                    for k in range(i + 1, stop):
                        hk = ((int.from_bytes(buf[k : k + 4], "little") * _HASH_MUL) & 0xFFFFFFFF) >> shift
                        prev[(base + k) & mask] = head[hk]
                        head[hk] = base + k
                i += best_len
                insert_from = i
            else:
                i += 1

        if insert_from < end:
            cmds.append((end - insert_from, 0, 0))

        self._trim()
        return cmds

    def _trim(self) -> None:
        excess = len(self._history) - (self._mask + 1)
        if excess > 0:
            del self._history[:excess]
            self._base += excess


def _match_length(buf: bytes, src: int, dst: int, end: int) -> int:
    """Length of the common run buf[src:] / buf[dst:], capped at ``end``."""
    n = 0
    limit = end - dst
    while n + _COMPARE_STEP <= limit and buf[src + n : src + n + _COMPARE_STEP] == buf[dst + n : dst + n + _COMPARE_STEP]:
        n += _COMPARE_STEP
    while n < limit and buf[src + n] == buf[dst + n]:
        n += 1
    return n
