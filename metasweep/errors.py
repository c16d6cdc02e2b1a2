from __future__ import annotations


class MetasweepError(Exception):
    """Base class for errors raised by metasweep."""


class InputTooLargeError(MetasweepError):
    """Input file exceeds the configured in-memory read limit."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"input is {size} bytes, limit is {limit}")
        self.size = size
        self.limit = limit


class ProviderError(MetasweepError):
    """An external metadata library failed on a file."""


class PolicyError(MetasweepError):
    """A policy preset or policy file could not be loaded."""


__all__ = ["InputTooLargeError", "MetasweepError", "PolicyError", "ProviderError"]
