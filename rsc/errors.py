from __future__ import annotations

from typing import Any


class ResilienceError(Exception):
    pass


class ConfigError(ResilienceError, ValueError):
    """Invalid construction parameters. Fatal at startup, never retried."""


class OperationFailure(ResilienceError):
    """A wrapped operation raised, or returned a value declared as failure."""

    def __init__(self, message: str, cause: BaseException | None = None, result: Any = None):
        super().__init__(message)
        self.cause = cause
        self.result = result


class PrimaryFailure(OperationFailure):
    pass


class FallbackFailure(OperationFailure):
    pass


class BothFailed(PrimaryFailure):
    """Primary failed and the fallback failed too.

    Subclasses PrimaryFailure so that the first thing a caller sees is what
    went wrong on the primary path; the fallback failure rides along.
    """

    def __init__(self, primary: PrimaryFailure, fallback: FallbackFailure):
        super().__init__(str(primary), cause=primary.cause, result=primary.result)
        self.primary = primary
        self.fallback = fallback

    def __str__(self) -> str:
        return f"{self.primary} (fallback also failed: {self.fallback})"


class CapacityExhausted(ResilienceError):
    pass
