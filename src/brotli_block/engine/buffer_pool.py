from __future__ import annotations

import threading

DEFAULT_BUFFER_SIZE = (1 << 16) - 16  # 65520


class BufferPool:
    """
    Shared pool of fixed-size working buffers.

    A buffer obtained with rent() is owned by the renter until give_back();
    buffers of the wrong size are not taken back.
    """

    def __init__(self, buffer_size: int = DEFAULT_BUFFER_SIZE, max_buffers: int = 16) -> None:
        if buffer_size <= 0:
            raise ValueError("buffer_size deve essere > 0")
        self.buffer_size = buffer_size
        self.max_buffers = max_buffers
        self._free: list[bytearray] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._free)

    def rent(self) -> bytearray:
        with self._lock:
            if self._free:
                return self._free.pop()
        return bytearray(self.buffer_size)

    def give_back(self, buf: bytearray) -> None:
        if len(buf) != self.buffer_size:
            return
        with self._lock:
            if len(self._free) < self.max_buffers:
                self._free.append(buf)


SHARED_POOL = BufferPool()
