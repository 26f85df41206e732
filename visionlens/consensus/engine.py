"""Agreement classification over partially or fully completed sample sets.

``classify`` is a pure function of the terminal subset of the samples it is
given: arrival order never matters, samples are always considered in index
order, and two callers holding the same completed set get the same verdict.

Decision table (first match wins):

    total == 0                  -> waiting
    ok == 0                     -> all_failed
    ok == 1                     -> only_one_success
    ok == 2, total < k          -> two_consistent | two_different
    ok == total == k            -> all_consistent | two_consistent | all_different
    otherwise                   -> uncertain

With every sample succeeded, at least two matching pairs are required to
avoid ``all_different``. A 2-vs-1 split of three samples yields a single
matching pair and is therefore ``all_different``; there is no majority rule.
"""

from __future__ import annotations

from itertools import combinations
from typing import Iterable

from ..models.base import QuestionAnswer
from ..similarity import extract_answer_text, similarity
from .base import ColorHint, ConsensusVerdict, MatchedPair, SampleResult, VerdictTag

DEFAULT_MATCH_THRESHOLD = 0.8
DEFAULT_STRONG_MATCH_THRESHOLD = 0.9


def color_hint(tag: VerdictTag, incomplete: bool) -> ColorHint:
    """Display colour for a verdict; depends only on the tag and completeness."""
    if tag is VerdictTag.ALL_CONSISTENT:
        return ColorHint.GREEN
    if tag in (VerdictTag.ALL_FAILED, VerdictTag.ALL_DIFFERENT, VerdictTag.TWO_DIFFERENT):
        return ColorHint.RED
    if tag in (VerdictTag.ONLY_ONE_SUCCESS, VerdictTag.TWO_CONSISTENT):
        return ColorHint.GREEN if incomplete else ColorHint.AMBER
    return ColorHint.NEUTRAL


def matched_pairs(
    successes: list[SampleResult],
    answers: list[str],
    threshold: float = DEFAULT_MATCH_THRESHOLD,
) -> tuple[MatchedPair, ...]:
    """Pairs above ``threshold``, best first; ties keep (i, j) index order."""
    pairs = []
    for a, b in combinations(range(len(successes)), 2):
        score = similarity(answers[a], answers[b])
        if score > threshold:
            pairs.append(
                MatchedPair(
                    i=successes[a].index,
                    j=successes[b].index,
                    similarity=score,
                    normalized_answer=answers[a],
                )
            )
    pairs.sort(key=lambda pair: (-pair.similarity, pair.i, pair.j))
    return tuple(pairs)


def _display_answer(sample: SampleResult) -> str | None:
    if isinstance(sample.answer, QuestionAnswer):
        return sample.answer.answer
    if isinstance(sample.answer, str):
        return sample.answer.strip()
    return None


def classify(
    results: Iterable[SampleResult],
    k: int,
    *,
    match_threshold: float = DEFAULT_MATCH_THRESHOLD,
    strong_match_threshold: float = DEFAULT_STRONG_MATCH_THRESHOLD,
) -> ConsensusVerdict:
    """Classify agreement across the terminal samples in ``results``."""
    samples = sorted(results, key=lambda sample: sample.index)
    completed = [sample for sample in samples if sample.terminal]
    successes = [sample for sample in completed if sample.succeeded]
    total = len(completed)
    ok = len(successes)
    incomplete = total < k

    answers = [extract_answer_text(sample.answer) for sample in successes]
    pairs: tuple[MatchedPair, ...] = ()

    if total == 0:
        tag = VerdictTag.WAITING
    elif ok == 0:
        tag = VerdictTag.ALL_FAILED
    elif ok == 1:
        tag = VerdictTag.ONLY_ONE_SUCCESS
    elif ok == 2 and incomplete:
        pairs = matched_pairs(successes, answers, match_threshold)
        tag = VerdictTag.TWO_CONSISTENT if pairs else VerdictTag.TWO_DIFFERENT
    elif ok == total == k:
        pairs = matched_pairs(successes, answers, match_threshold)
        if len(pairs) >= 2:
            strong = any(pair.similarity > strong_match_threshold for pair in pairs)
            all_near_first = all(similarity(answer, answers[0]) > match_threshold for answer in answers)
            tag = VerdictTag.ALL_CONSISTENT if strong and all_near_first else VerdictTag.TWO_CONSISTENT
        else:
            tag = VerdictTag.ALL_DIFFERENT
    else:
        pairs = matched_pairs(successes, answers, match_threshold)
        tag = VerdictTag.UNCERTAIN

    if pairs:
        best_answer = pairs[0].normalized_answer
    elif successes and (incomplete or tag is VerdictTag.ONLY_ONE_SUCCESS):
        best_answer = _display_answer(successes[0])
    else:
        best_answer = None

    return ConsensusVerdict(
        tag=tag,
        color_hint=color_hint(tag, incomplete),
        expected=k,
        total_seen=total,
        success_count=ok,
        failed_count=total - ok,
        pending_count=len(samples) - total,
        matched_pairs=pairs,
        best_answer=best_answer,
    )
