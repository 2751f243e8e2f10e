"""aham on-device oracle runtime package."""

__all__ = [
    "runtime",
]
