"""Abstract async inference port for vision models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Union


ANALYSIS_PROMPT = """You are an expert at solving exam questions across academic subjects.
Read the question in the image and answer it directly. Do not output reasoning,
observation markers, code fences or anything other than JSON.

Question types to handle:
- Fill in the blank (____, ( ), brackets): give only the exact missing word, term or number.
- Multiple choice: give the option letter and its content, e.g. "B. 2".
- Calculation (maths, physics, chemistry): give the final value, with units if relevant.
- Short answer (language, history, geography, biology): give the key point concisely.
- Text recognition (poems, classical or foreign text): answer the question asked about it.

Output exactly one JSON object and nothing else:
{"question": "<the question>", "answer": "<the answer>"}

Examples:
"The chemical formula of water is ____" -> {"question": "What is the chemical formula of water?", "answer": "H2O"}
"1+1=? A.1 B.2 C.3" -> {"question": "What is 1+1?", "answer": "B. 2"}
"3x4=" -> {"question": "What is 3x4?", "answer": "12"}

Ignore anything in the image that is not part of the question."""


@dataclass(slots=True, frozen=True)
class QuestionAnswer:
    """Structured answer returned when the provider output parses as JSON."""

    question: str
    answer: str

    def to_dict(self) -> dict[str, str]:
        return {"question": self.question, "answer": self.answer}


Answer = Union[QuestionAnswer, str]


class BaseVisionClient(ABC):
    """Base class for provider-specific async vision clients."""

    def __init__(self, model_alias: str, api_model: str, dry_run: bool = False) -> None:
        self.model_alias = model_alias
        self.api_model = api_model
        self.dry_run = dry_run

    @abstractmethod
    async def infer(self, image: str, *, prompt: str = ANALYSIS_PROMPT) -> Answer:
        """Answer the question shown in a base64-encoded JPEG."""

    async def __call__(self, image: str) -> Answer:
        return await self.infer(image)

    async def close(self) -> None:
        """Optional resource cleanup hook."""
        return None

    def _mock_answer(self, image: str) -> QuestionAnswer:
        digest = sum(image[:256].encode("utf-8")) % 97
        return QuestionAnswer(
            question=f"[DRY-RUN:{self.model_alias}] question",
            answer=f"dry-run answer {digest}",
        )


def image_data_uri(image: str) -> str:
    """Wrap a base64 JPEG payload in a data URI."""
    if image.startswith("data:"):
        return image
    return f"data:image/jpeg;base64,{image}"

