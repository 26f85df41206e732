"""Tests for provider response parsing."""

from __future__ import annotations

import pytest

from visionlens.errors import ProviderError
from visionlens.models.base import QuestionAnswer
from visionlens.models.parsing import extract_json_object, parse_answer, strip_markup


def test_plain_json() -> None:
    assert parse_answer('{"question": "3x4?", "answer": "12"}') == QuestionAnswer("3x4?", "12")


def test_markup_and_fences_are_stripped() -> None:
    raw = '<|begin_of_box|>```json\n{"question": "1+1?", "answer": "B. 2"}\n```<|end_of_box|>'
    assert strip_markup(raw).startswith("{")
    assert parse_answer(raw) == QuestionAnswer("1+1?", "B. 2")


def test_json_embedded_in_chatter() -> None:
    raw = 'Sure! Here is the result: {"question": "Author?", "answer": "Li Bai"} Hope it helps.'
    assert parse_answer(raw) == QuestionAnswer("Author?", "Li Bai")


def test_malformed_json_falls_back_to_field_regex() -> None:
    raw = '{"question": "Which word means "fast"?", "answer": "quick"}'
    assert extract_json_object(raw) is None
    assert parse_answer(raw) == QuestionAnswer('Which word means "fast"?', "quick")


def test_free_text_is_kept() -> None:
    assert parse_answer("  The answer: 42  ") == "The answer: 42"


def test_markup_only_response_is_an_error() -> None:
    with pytest.raises(ProviderError):
        parse_answer("<|observation|> <|thinking|>")
    with pytest.raises(ProviderError):
        parse_answer(None)
