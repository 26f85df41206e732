"""Vision model adapters."""

from .anthropic_client import AnthropicVisionClient
from .base import ANALYSIS_PROMPT, Answer, BaseVisionClient, QuestionAnswer
from .catalog import ModelCatalog, build_client, load_model_catalog
from .openai_client import OpenAIVisionClient
from .parsing import parse_answer

__all__ = [
    "ANALYSIS_PROMPT",
    "Answer",
    "BaseVisionClient",
    "QuestionAnswer",
    "ModelCatalog",
    "build_client",
    "load_model_catalog",
    "AnthropicVisionClient",
    "OpenAIVisionClient",
    "parse_answer",
]
