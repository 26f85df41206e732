"""Error taxonomy for sample, provider and persistence failures."""

from __future__ import annotations


class VisionLensError(Exception):
    """Base class for package errors."""


class ProviderError(VisionLensError):
    """Transport or response failure reported by an inference adapter."""


class SampleTimeoutError(VisionLensError):
    """A single inference call lost its race against the per-call timeout."""

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(f"inference call timed out after {timeout_seconds:.1f}s")
        self.timeout_seconds = timeout_seconds


class PersistenceError(VisionLensError):
    """History write failed."""
