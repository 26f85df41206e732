"""Sample and verdict data types."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from ..models.base import Answer, QuestionAnswer


class SampleState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (SampleState.SUCCEEDED, SampleState.FAILED)


class VerdictTag(str, Enum):
    WAITING = "waiting"
    ALL_FAILED = "all_failed"
    ONLY_ONE_SUCCESS = "only_one_success"
    TWO_CONSISTENT = "two_consistent"
    TWO_DIFFERENT = "two_different"
    ALL_CONSISTENT = "all_consistent"
    ALL_DIFFERENT = "all_different"
    UNCERTAIN = "uncertain"


class ColorHint(str, Enum):
    GREEN = "green"
    AMBER = "amber"
    RED = "red"
    NEUTRAL = "neutral"


@dataclass(slots=True)
class SampleResult:
    """One of the k inference calls of a task.

    Moves pending -> running -> succeeded|failed. The first terminal write
    wins; later writes are refused and reported by returning False.
    """

    index: int
    state: SampleState = SampleState.PENDING
    answer: Answer | None = None
    error: str | None = None
    elapsed_ms: float | None = None

    @property
    def terminal(self) -> bool:
        return self.state.terminal

    @property
    def succeeded(self) -> bool:
        return self.state is SampleState.SUCCEEDED

    def start(self) -> None:
        if self.state is SampleState.PENDING:
            self.state = SampleState.RUNNING

    def succeed(self, answer: Answer, elapsed_ms: float) -> bool:
        if self.terminal:
            return False
        self.state = SampleState.SUCCEEDED
        self.answer = answer
        self.elapsed_ms = elapsed_ms
        return True

    def fail(self, error: str, elapsed_ms: float) -> bool:
        if self.terminal:
            return False
        self.state = SampleState.FAILED
        self.error = error
        self.elapsed_ms = elapsed_ms
        return True

    def snapshot(self) -> SampleResult:
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.answer, QuestionAnswer):
            answer: Any = self.answer.to_dict()
        else:
            answer = self.answer
        return {
            "index": self.index,
            "state": self.state.value,
            "answer": answer,
            "error": self.error,
            "elapsed_ms": self.elapsed_ms,
        }


@dataclass(slots=True, frozen=True)
class MatchedPair:
    """Two successful samples whose answers agree above the match threshold."""

    i: int
    j: int
    similarity: float
    normalized_answer: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "i": self.i,
            "j": self.j,
            "similarity": self.similarity,
            "normalized_answer": self.normalized_answer,
        }


@dataclass(slots=True, frozen=True)
class ConsensusVerdict:
    """Agreement classification over the samples completed so far."""

    tag: VerdictTag
    color_hint: ColorHint
    expected: int
    total_seen: int
    success_count: int
    failed_count: int
    pending_count: int = 0
    matched_pairs: tuple[MatchedPair, ...] = ()
    best_answer: str | None = None

    @property
    def complete(self) -> bool:
        return self.total_seen >= self.expected

    def to_dict(self) -> dict[str, Any]:
        return {
            "tag": self.tag.value,
            "color_hint": self.color_hint.value,
            "expected": self.expected,
            "total_seen": self.total_seen,
            "success_count": self.success_count,
            "failed_count": self.failed_count,
            "pending_count": self.pending_count,
            "matched_pairs": [pair.to_dict() for pair in self.matched_pairs],
            "best_answer": self.best_answer,
        }
