"""Typed errors for brotli-block.

Policy:
- Errors are small and boring.
- Three families: configuration (InvalidOption), usage (UsageError),
  data (CorruptBlock).
- Each error also derives from the builtin a Python caller would expect
  (ValueError, RuntimeError, io.UnsupportedOperation), so plain
  ``except ValueError`` keeps working.
- Nothing here retries: every error propagates to the caller.
"""

from __future__ import annotations

import io


class BrotliBlockError(Exception):
    """Base error for brotli-block."""


# -------------------------
# Configuration errors
# -------------------------


class InvalidOption(BrotliBlockError, ValueError):
    """An option was assigned a value outside its range."""


class BlockSpecError(InvalidOption):
    """An options spec (JSON) is malformed or not supported."""


# -------------------------
# Usage errors
# -------------------------


class UsageError(BrotliBlockError):
    pass


class StreamClosed(UsageError, ValueError):
    pass


class OperationInProgress(UsageError, RuntimeError):
    """A second operation was issued while one is still outstanding."""


class StreamBroken(UsageError, RuntimeError):
    """A previous operation was cancelled mid-flight; the stream must be closed."""


class Unsupported(UsageError, io.UnsupportedOperation):
    pass


# -------------------------
# Data errors
# -------------------------


class CorruptBlock(BrotliBlockError):
    """Malformed or truncated compressed input."""
