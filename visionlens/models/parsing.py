"""Turn raw vision-model text into a structured answer.

Providers wrap their JSON in reasoning markup (``<|thinking|>``,
``<|begin_of_box|>``), code fences or chatter. Parsing order:

1. strip markup tokens and fences;
2. parse the first brace-balanced JSON object carrying ``question``/``answer``;
3. regex-extract the two values from malformed JSON (unescaped quotes);
4. fall back to the stripped free text.
"""

from __future__ import annotations

import json
import logging
import re

from ..errors import ProviderError
from .base import Answer, QuestionAnswer

logger = logging.getLogger(__name__)

_MARKUP_TOKEN = re.compile(r"<\|[^|>]*\|>")
_CODE_FENCE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_QUESTION_VALUE = re.compile(r'"question"\s*:\s*"(.*?)"\s*,\s*"answer"', re.DOTALL)
_ANSWER_VALUE = re.compile(r'"answer"\s*:\s*"(.*?)"\s*}', re.DOTALL)
_SMART_QUOTES = str.maketrans({"“": '"', "”": '"'})


def strip_markup(text: str) -> str:
    """Remove reasoning markup tokens and code fences."""
    cleaned = _MARKUP_TOKEN.sub("", text)
    cleaned = _CODE_FENCE.sub("", cleaned)
    return cleaned.strip()


def extract_json_object(text: str) -> dict | None:
    """Return the first brace-balanced JSON object in *text*, if any."""
    stripped = text.strip()
    try:
        parsed = json.loads(stripped)
    except (json.JSONDecodeError, ValueError):
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    for start, ch in enumerate(stripped):
        if ch != "{":
            continue
        candidate = _balanced_slice(stripped, start)
        if candidate is None:
            continue
        try:
            parsed = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def _balanced_slice(text: str, start: int) -> str | None:
    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if escape:
            escape = False
            continue
        if ch == "\\":
            if in_string:
                escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def _from_mapping(payload: dict) -> QuestionAnswer | None:
    question = payload.get("question")
    answer = payload.get("answer")
    if not answer:
        return None
    return QuestionAnswer(question=str(question or "").strip(), answer=str(answer).strip())


def _from_loose_fields(text: str) -> QuestionAnswer | None:
    question = _QUESTION_VALUE.search(text)
    answer = _ANSWER_VALUE.search(text)
    if not (question and answer):
        return None
    return QuestionAnswer(
        question=question.group(1).replace('\\"', '"').strip(),
        answer=answer.group(1).replace('\\"', '"').strip(),
    )


def parse_answer(content: str | None) -> Answer:
    """Parse provider output into a ``QuestionAnswer`` or free text.

    Raises ``ProviderError`` when nothing but markup came back.
    """
    cleaned = strip_markup((content or "").translate(_SMART_QUOTES))
    if not cleaned:
        raise ProviderError("model returned an empty response")

    payload = extract_json_object(cleaned)
    if payload is not None:
        structured = _from_mapping(payload)
        if structured is not None:
            return structured

    structured = _from_loose_fields(cleaned)
    if structured is not None:
        return structured

    logger.debug("Response is not JSON, keeping free text (%d chars)", len(cleaned))
    return cleaned
