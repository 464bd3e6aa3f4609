from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import brotli
import pytest

from brotli_block.core.options import WINDOW_BITS_MAX, WINDOW_BITS_MIN
from brotli_block.engine import synthetic
from brotli_block.engine.synthetic import END_FRAGMENT, get_end_fragment, get_start_fragment


def test_end_fragment() -> None:
    assert get_end_fragment() == END_FRAGMENT == b"\x03"


@pytest.mark.parametrize("window_bits,hexstr", [(10, "2103"), (16, "0c"), (22, "6b00"), (24, "6f00")])
def test_start_fragment_golden(window_bits: int, hexstr: str) -> None:
    assert get_start_fragment(window_bits).hex() == hexstr


@pytest.mark.parametrize("window_bits", range(WINDOW_BITS_MIN, WINDOW_BITS_MAX + 1))
def test_start_plus_end_is_an_empty_stream(window_bits: int) -> None:
    assert brotli.decompress(get_start_fragment(window_bits) + get_end_fragment()) == b""


def test_start_fragment_is_cached() -> None:
    assert get_start_fragment(18) is get_start_fragment(18)


@pytest.mark.parametrize("window_bits", [WINDOW_BITS_MIN - 1, WINDOW_BITS_MAX + 1])
def test_out_of_range_key(window_bits: int) -> None:
    with pytest.raises(KeyError):
        get_start_fragment(window_bits)


def test_built_once_under_concurrent_first_use(monkeypatch: pytest.MonkeyPatch) -> None:
    window_bits = 13
    monkeypatch.delitem(synthetic._start_fragments, window_bits, raising=False)

    calls: list[int] = []
    calls_lock = threading.Lock()
    real_build = synthetic._build_start_fragment

    def slow_build(w: int) -> bytes:
        with calls_lock:
            calls.append(w)
        time.sleep(0.05)
        return real_build(w)

    monkeypatch.setattr(synthetic, "_build_start_fragment", slow_build)

    barrier = threading.Barrier(8)

    def worker(_: int) -> bytes:
        barrier.wait()
        return get_start_fragment(window_bits)

    with ThreadPoolExecutor(max_workers=8) as ex:
        results = list(ex.map(worker, range(8)))

    assert calls == [window_bits]
    assert len({id(r) for r in results}) == 1
    assert results[0] == real_build(window_bits)
