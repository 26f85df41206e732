"""Consensus classification over inference samples."""

from .base import ColorHint, ConsensusVerdict, MatchedPair, SampleResult, SampleState, VerdictTag
from .engine import classify, color_hint

__all__ = [
    "ColorHint",
    "ConsensusVerdict",
    "MatchedPair",
    "SampleResult",
    "SampleState",
    "VerdictTag",
    "classify",
    "color_hint",
]
