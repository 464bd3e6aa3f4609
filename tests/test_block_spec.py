from __future__ import annotations

import json
from pathlib import Path

import pytest

from brotli_block.block import compress_block, decompress_block
from brotli_block.block_spec import SPEC_ID_V1, BlockSpecError, load_block_spec
from brotli_block.engine.framing import BlockPosition


def test_inline_minimal() -> None:
    spec = load_block_spec(json.dumps({"spec": SPEC_ID_V1}))
    assert spec.name == "options"
    opts = spec.options()
    assert (opts.quality, opts.window_bits, opts.magic_number) == (4, 22, True)


def test_from_file(tmp_path: Path) -> None:
    p = tmp_path / "opts.json"
    p.write_text(
        json.dumps(
            {
                "spec": "brotli-block.options.v1",
                "name": "archival",
                "quality": 9,
                "window_bits": 18,
                "magic_number": False,
                "byte_align": True,
            }
        ),
        encoding="utf-8",
    )
    spec = load_block_spec(f"@{p}")
    assert spec.name == "archival"
    opts = spec.options()
    assert (opts.quality, opts.window_bits) == (9, 18)
    assert opts.magic_number is False and opts.byte_align is True
    assert opts.bare is False

    data = b"configured by json " * 500
    blob = compress_block(data, BlockPosition.LAST, options=opts)
    assert decompress_block(blob, BlockPosition.LAST, window_bits=18) == data


@pytest.mark.parametrize(
    "arg,needle",
    [
        ("", "vuoto"),
        ("[1, 2]", "oggetto"),
        ("{not json", "non valido"),
        ('{"spec": "brotli-block.options.v0"}', "spec non supportata"),
        ('{"spec": "brotli-block.options.v1", "level": 3}', "chiavi non supportate"),
        ('{"spec": "brotli-block.options.v1", "quality": "9"}', "intero"),
        ('{"spec": "brotli-block.options.v1", "quality": true}', "intero"),
        ('{"spec": "brotli-block.options.v1", "bare": 1}', "booleano"),
        ('{"spec": "brotli-block.options.v1", "name": ""}', "name"),
        ('{"spec": "brotli-block.options.v1", "window_bits": 30}', "window_bits"),
    ],
)
def test_rejected(arg: str, needle: str) -> None:
    with pytest.raises(BlockSpecError, match=needle):
        load_block_spec(arg)


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(BlockSpecError, match="file non trovato"):
        load_block_spec(f"@{tmp_path / 'nope.json'}")


def test_spec_error_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        load_block_spec("{}")
