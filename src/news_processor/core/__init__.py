"""Core domain layer."""

from news_processor.core.entities import (
    DigestResponse,
    Entry,
    KeyDevelopment,
    Phase,
    ProcessedItem,
    ResponseParseError,
    clean_content,
)
from news_processor.core.interfaces import (
    ArticleData,
    ArticleExtractor,
    DigestGenerator,
    EntrySource,
    Fetcher,
    ImageFetcher,
    LLMClient,
    NotificationService,
    URLExtractor,
)
from news_processor.core.persona import (
    Persona,
    PersonaError,
    PromptConfig,
    load_personas,
    select_personas,
)
from news_processor.core.retry import (
    CancellationToken,
    MaxRetriesExceededError,
    RetryCancelledError,
    RetryError,
    RetryPolicy,
    TotalTimeoutExceededError,
    retry_on_any_error,
    retry_with_backoff,
)
from news_processor.core.sent_log import SentLog, SentLogError, filter_unsent_items

__all__ = [
    "Entry",
    "ProcessedItem",
    "KeyDevelopment",
    "Phase",
    "DigestResponse",
    "ResponseParseError",
    "clean_content",
    "ArticleData",
    "ArticleExtractor",
    "DigestGenerator",
    "EntrySource",
    "Fetcher",
    "ImageFetcher",
    "LLMClient",
    "NotificationService",
    "URLExtractor",
    "Persona",
    "PersonaError",
    "PromptConfig",
    "load_personas",
    "select_personas",
    "CancellationToken",
    "MaxRetriesExceededError",
    "RetryCancelledError",
    "RetryError",
    "RetryPolicy",
    "TotalTimeoutExceededError",
    "retry_on_any_error",
    "retry_with_backoff",
    "SentLog",
    "SentLogError",
    "filter_unsent_items",
]
