"""LLM adapters."""

from news_processor.adapters.llm.openai_client import (
    LLMError,
    LLMRequestError,
    ModelLoadingError,
    OpenAIClient,
    extract_json,
)

__all__ = ["LLMError", "LLMRequestError", "ModelLoadingError", "OpenAIClient", "extract_json"]
