from __future__ import annotations

from dataclasses import dataclass

from brotli_block.errors import InvalidOption

QUALITY_MIN = 0
QUALITY_MAX = 11
QUALITY_DEFAULT = 4

WINDOW_BITS_MIN = 10
WINDOW_BITS_MAX = 24
WINDOW_BITS_DEFAULT = 22

_RANGES: dict[str, tuple[int, int]] = {
    "quality": (QUALITY_MIN, QUALITY_MAX),
    "window_bits": (WINDOW_BITS_MIN, WINDOW_BITS_MAX),
}

_FLAGS = ("byte_align", "bare", "catable", "appendable", "magic_number")


@dataclass
class CompressionOptions:
    """
    Parameters handed to the encoder.

    quality/window_bits are validated on every assignment (constructor,
    dataclasses.replace, plain attribute set): out of range values raise
    InvalidOption, they are never clamped.

    Flags:
      - byte_align:   every meta-block ends on a byte boundary
      - bare:         no magic number, no terminator
      - catable:      no stream header (output goes after other output)
      - appendable:   no terminator (other output goes after this one)
      - magic_number: metadata magic after the header (ignored when bare)
    """

    quality: int = QUALITY_DEFAULT
    window_bits: int = WINDOW_BITS_DEFAULT
    byte_align: bool = False
    bare: bool = False
    catable: bool = False
    appendable: bool = False
    magic_number: bool = True

    def __setattr__(self, name: str, value: object) -> None:
        if name in _RANGES:
            lo, hi = _RANGES[name]
            if not isinstance(value, int) or isinstance(value, bool):
                raise InvalidOption(f"{name} must be an int, got {type(value).__name__}")
            if not (lo <= value <= hi):
                raise InvalidOption(f"{name} must be {lo}..{hi}, got {value}")
        elif name in _FLAGS and not isinstance(value, bool):
            raise InvalidOption(f"{name} must be a bool, got {type(value).__name__}")
        super().__setattr__(name, value)

    @property
    def emits_header(self) -> bool:
        return not self.catable

    @property
    def emits_magic_number(self) -> bool:
        return self.magic_number and not self.bare and not self.catable

    @property
    def emits_terminator(self) -> bool:
        return not (self.appendable or self.bare)
