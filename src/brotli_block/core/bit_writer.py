from __future__ import annotations


class BitWriter:
    """
    LSB-first bit packer (Brotli/DEFLATE order).

    Bits accumulate in an int; whole bytes move to ``_buf`` once the
    accumulator holds at least 64 bits. ``take()`` drains only complete
    bytes, a trailing partial byte stays pending.
    """

    __slots__ = ("_buf", "_acc", "_nacc")

    def __init__(self) -> None:
        self._buf = bytearray()
        self._acc = 0
        self._nacc = 0

    @property
    def bit_length(self) -> int:
        return len(self._buf) * 8 + self._nacc

    @property
    def aligned(self) -> bool:
        return self._nacc % 8 == 0

    def write_bits(self, n_bits: int, value: int) -> None:
        if n_bits == 0:
            return
        self._acc |= value << self._nacc
        self._nacc += n_bits
        if self._nacc >= 64:
            self._spill()

    def align(self) -> None:
        """Zero-pad to the next byte boundary."""
        rem = self._nacc % 8
        if rem:
            self._nacc += 8 - rem

    def write_bytes(self, data: bytes) -> None:
        if not self.aligned:
            raise ValueError("write_bytes richiede allineamento al byte")
        self._spill()
        # _nacc is now 0: a whole number of bytes was spilled
        self._buf += data

    def append(self, other: BitWriter) -> None:
        """Append the full bit content of another writer."""
        self._spill()
        if self._nacc == 0:
            self._buf += other._buf
        elif other._buf:
            self.write_bits(len(other._buf) * 8, int.from_bytes(other._buf, "little"))
        self.write_bits(other._nacc, other._acc)

    def take(self) -> bytes:
        """Drain complete bytes."""
        self._spill()
        out = bytes(self._buf)
        self._buf.clear()
        return out

    def _spill(self) -> None:
        k = self._nacc >> 3
        if k == 0:
            return
        nbits = k << 3
        self._buf += (self._acc & ((1 << nbits) - 1)).to_bytes(k, "little")
        self._acc >>= nbits
        self._nacc -= nbits
