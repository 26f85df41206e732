"""Analysis configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

MIN_SAMPLES = 1
MAX_SAMPLES = 5


@dataclass(slots=True)
class AnalysisConfig:
    """Runtime configuration for multi-sample analysis."""

    k: int = 3
    per_call_timeout_ms: int = 30000
    soft_deadline_seconds: float | None = None
    match_threshold: float = 0.8
    strong_match_threshold: float = 0.9
    history_dir: Path | None = None
    user_id: str | None = None

    def __post_init__(self) -> None:
        validate_sample_count(self.k)
        if self.per_call_timeout_ms <= 0:
            raise ValueError("per_call_timeout_ms must be positive")
        if self.soft_deadline_seconds is not None and self.soft_deadline_seconds <= 0:
            raise ValueError("soft_deadline_seconds must be positive")
        for name in ("match_threshold", "strong_match_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")

    @property
    def per_call_timeout_seconds(self) -> float:
        return self.per_call_timeout_ms / 1000.0

    def soft_deadline_for(self, k: int) -> float:
        """Soft deadline in seconds; defaults to max(8, 3k)."""
        if self.soft_deadline_seconds is not None:
            return float(self.soft_deadline_seconds)
        return float(max(8, 3 * k))


def validate_sample_count(k: int) -> int:
    if isinstance(k, bool) or not isinstance(k, int):
        raise ValueError(f"k must be an integer, got {k!r}")
    if not MIN_SAMPLES <= k <= MAX_SAMPLES:
        raise ValueError(f"k must be between {MIN_SAMPLES} and {MAX_SAMPLES}, got {k}")
    return k


def load_analysis_config(*, config_path: Path | None = None, raw_config: dict[str, Any] | None = None) -> AnalysisConfig:
    """Build ``AnalysisConfig`` from a YAML file or an already-parsed mapping."""
    if raw_config is None:
        if config_path is None:
            return AnalysisConfig()
        raw_config = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}

    if not isinstance(raw_config, dict):
        raise ValueError("Analysis config must be a mapping")

    known = {"k", "per_call_timeout_ms", "soft_deadline_seconds", "match_threshold", "strong_match_threshold", "history_dir", "user_id"}
    unknown = sorted(set(raw_config) - known)
    if unknown:
        raise ValueError(f"Unknown analysis config keys: {unknown}")

    soft_deadline = raw_config.get("soft_deadline_seconds")
    history_dir = raw_config.get("history_dir")
    return AnalysisConfig(
        k=raw_config.get("k", 3),
        per_call_timeout_ms=int(raw_config.get("per_call_timeout_ms", 30000)),
        soft_deadline_seconds=float(soft_deadline) if soft_deadline is not None else None,
        match_threshold=float(raw_config.get("match_threshold", 0.8)),
        strong_match_threshold=float(raw_config.get("strong_match_threshold", 0.9)),
        history_dir=Path(history_dir) if history_dir else None,
        user_id=raw_config.get("user_id"),
    )
