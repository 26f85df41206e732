"""String similarity and answer-text extraction used for agreement checks.

Similarity is normalized Levenshtein:
    similarity(a, b) = (max_len - edit_distance(a, b)) / max_len

Answers are compared after extraction: structured answers contribute their
``answer`` field, free text contributes whatever follows an answer marker.
"""

from __future__ import annotations

import re

from .models.base import Answer, QuestionAnswer


# "Answer: 42" / "答案：42" / "答案 42"
_ANSWER_MARKER = re.compile(r"(?:answer\s*[:：]|答案[：:\s]*)\s*([^。！？!?\n]+)", re.IGNORECASE)


def normalize_answer(text: str) -> str:
    """Lower-case and trim."""
    return text.lower().strip()


def levenshtein_distance(a: str, b: str) -> int:
    """Classic dynamic-programming edit distance with unit costs."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j - 1], previous[j], current[j - 1]))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Normalized similarity in [0, 1]; two empty strings are identical."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return (max_len - levenshtein_distance(a, b)) / max_len


def extract_answer_text(answer: Answer | None) -> str:
    """Return the normalized comparison string for one sample answer."""
    if answer is None:
        return ""
    if isinstance(answer, QuestionAnswer):
        return normalize_answer(answer.answer)

    match = _ANSWER_MARKER.search(answer)
    if match:
        return normalize_answer(match.group(1)).rstrip(".").strip()
    return normalize_answer(answer)
