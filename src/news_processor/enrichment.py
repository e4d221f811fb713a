"""Per-entry enrichment: image descriptions and linked-page summaries.

Both steps retry every failure and then give up quietly. A missing
description or link summary makes the entry prompt poorer but never fails
the run.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from news_processor.core import (
    ArticleExtractor,
    CancellationToken,
    Entry,
    Fetcher,
    ImageFetcher,
    LLMClient,
    Persona,
    RetryError,
    RetryPolicy,
    URLExtractor,
    retry_on_any_error,
    retry_with_backoff,
)
from news_processor.prompts import (
    IMAGE_SYSTEM_PROMPT,
    compose_image_prompt,
    web_summary_system_prompt,
    web_summary_user_prompt,
)

logger = logging.getLogger(__name__)

IMAGE_TEMPERATURE = 0.1
IMAGE_MAX_TOKENS = 400
WEB_SUMMARY_TEMPERATURE = 0.5


class EnrichmentError(Exception):
    """Raised when an entry cannot be prepared for enrichment at all."""


def strip_think_tags(text: str) -> str:
    """Remove reasoning-model ``<think>`` delimiters from a response."""
    return text.replace("<think>", "").replace("</think>", "").strip()


@dataclass(frozen=True)
class LinkSummary:
    """Outcome of summarizing one linked page."""

    url: str
    title: str
    original_content: str
    summary: str
    elapsed: float


class ImageEnricher:
    """Describe an entry's first image with a multimodal model."""

    def __init__(self, image_client: LLMClient, image_fetcher: ImageFetcher, policy: RetryPolicy) -> None:
        self.image_client = image_client
        self.image_fetcher = image_fetcher
        self.policy = policy

    async def describe(
        self, entry: Entry, persona: Persona, cancel: Optional[CancellationToken] = None
    ) -> Optional[str]:
        """Return a description of ``entry.image_urls[0]``, or None when it could not be made."""
        if not entry.image_urls:
            return None

        image_url = entry.image_urls[0]
        prompt = compose_image_prompt(persona, entry.title)

        try:
            data_uri = await retry_with_backoff(
                lambda: self.image_fetcher.fetch_as_base64(image_url),
                retry_on_any_error,
                self.policy,
                cancel=cancel,
            )
            description = await retry_with_backoff(
                lambda: self.image_client.complete(
                    IMAGE_SYSTEM_PROMPT,
                    [prompt],
                    image_urls=[data_uri],
                    temperature=IMAGE_TEMPERATURE,
                    max_tokens=IMAGE_MAX_TOKENS,
                ),
                retry_on_any_error,
                self.policy,
                cancel=cancel,
            )
        except RetryError as e:
            logger.warning(f"Giving up on image for entry {entry.id} ({image_url}): {e}")
            return None

        return description.strip()


class LinkEnricher:
    """Summarize the first external page an entry links to."""

    def __init__(
        self,
        llm_client: LLMClient,
        fetcher: Fetcher,
        article_extractor: ArticleExtractor,
        url_extractor: URLExtractor,
        policy: RetryPolicy,
        max_content_chars: int = 20000,
        clock=time.monotonic,
    ) -> None:
        self.llm_client = llm_client
        self.fetcher = fetcher
        self.article_extractor = article_extractor
        self.url_extractor = url_extractor
        self.policy = policy
        self.max_content_chars = max_content_chars
        self.clock = clock

    async def summarize(
        self, entry: Entry, persona: Persona, cancel: Optional[CancellationToken] = None
    ) -> list[LinkSummary]:
        """Extract links into ``entry.external_urls`` and summarize the first one.

        Raises:
            EnrichmentError: The entry's links could not be extracted.
        """
        try:
            urls = self.url_extractor.extract_external_urls(entry)
        except Exception as e:
            raise EnrichmentError(f"failed to extract external URLs from entry {entry.id}: {e}") from e

        entry.external_urls = list(urls)
        if not urls:
            return []

        # Only the first link, to bound latency per entry
        url = urls[0]
        logger.info(f"Processing external URL for entry {entry.id}: {url}")
        start = self.clock()

        try:
            response = await self.fetcher.fetch(url, cancel=cancel)
        except Exception as e:
            logger.warning(f"Failed to fetch content for {url}: {e}")
            return []

        if response.status_code != 200:
            logger.warning(f"Received non-OK status code for {url}: {response.status_code}")
            return []

        try:
            article = self.article_extractor.extract(response.text, url)
        except Exception as e:
            logger.warning(f"Failed to extract article content for {url}: {e}")
            return []

        content = article.cleaned_text[: self.max_content_chars]
        system_prompt = web_summary_system_prompt(persona)
        user_prompt = web_summary_user_prompt(article.title, url, content)

        try:
            raw = await retry_with_backoff(
                lambda: self.llm_client.complete(
                    system_prompt, [user_prompt], temperature=WEB_SUMMARY_TEMPERATURE
                ),
                retry_on_any_error,
                self.policy,
                cancel=cancel,
            )
        except RetryError as e:
            logger.warning(f"Failed to summarize content for {url}: {e}")
            return []

        return [
            LinkSummary(
                url=url,
                title=article.title,
                original_content=article.cleaned_text,
                summary=strip_think_tags(raw),
                elapsed=self.clock() - start,
            )
        ]
