"""Core interfaces for adapters."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

import httpx

from news_processor.core.entities import DigestResponse, Entry, ProcessedItem
from news_processor.core.persona import Persona
from news_processor.core.retry import CancellationToken


@dataclass(frozen=True)
class ArticleData:
    """Readable content extracted from a web page."""

    title: str
    cleaned_text: str


class LLMClient(ABC):
    """Interface for chat-completion models."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Identifier of the model this client talks to."""
        pass

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompts: list[str],
        image_urls: Optional[list[str]] = None,
        output_schema: Optional[dict[str, Any]] = None,
        temperature: float = 0.5,
        max_tokens: int = 0,
    ) -> str:
        """Return the model's text response. ``max_tokens=0`` means no limit."""
        pass

    @abstractmethod
    def preprocess_json(self, raw: str) -> str:
        """Strip markdown fences and similar noise from a JSON response."""
        pass


class Fetcher(ABC):
    """Interface for fetching web pages."""

    @abstractmethod
    async def fetch(self, url: str, cancel: Optional[CancellationToken] = None) -> httpx.Response:
        """GET ``url``. Raises on error statuses once retries are exhausted."""
        pass


class ImageFetcher(ABC):
    """Interface for downloading images for multimodal prompts."""

    @abstractmethod
    async def fetch_as_base64(self, image_url: str) -> str:
        """Return the image as a ``data:`` URI."""
        pass


class ArticleExtractor(ABC):
    """Interface for turning raw HTML into readable text."""

    @abstractmethod
    def extract(self, html: str, source_url: str) -> ArticleData:
        pass


class URLExtractor(ABC):
    """Interface for finding outbound links in an entry."""

    @abstractmethod
    def extract_external_urls(self, entry: Entry) -> list[str]:
        pass


class EntrySource(ABC):
    """Interface for fetching entries for a persona."""

    @abstractmethod
    async def fetch_entries(self, persona: Persona) -> list[Entry]:
        pass


class DigestGenerator(ABC):
    """Interface for rendering digests."""

    @abstractmethod
    async def generate(
        self,
        digest: DigestResponse,
        items: list[ProcessedItem],
        persona_name: str,
        digest_date: date,
    ) -> str:
        pass


class NotificationService(ABC):
    """Interface for delivering digests."""

    @abstractmethod
    async def send_digest(
        self,
        digest: DigestResponse,
        items: list[ProcessedItem],
        persona_name: str,
        digest_date: date,
    ) -> bool:
        """Deliver the digest. Returns True when delivery succeeded."""
        pass
