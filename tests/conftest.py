"""Shared fixtures and test doubles."""

import json
from typing import Any, Callable, Optional, Union

import httpx
import pytest

from news_processor.core import (
    ArticleData,
    ArticleExtractor,
    CancellationToken,
    Entry,
    Fetcher,
    ImageFetcher,
    LLMClient,
    Persona,
    RetryPolicy,
)
from news_processor.adapters.llm import extract_json

Reply = Union[str, Exception, Callable[[str, list[str]], str]]


class FakeLLMClient(LLMClient):
    """Scripted LLM. ``replies`` maps a substring of the user prompt to a reply.

    A reply may be a string, an exception to raise, or a callable taking
    (system_prompt, user_prompts). Every call is recorded in ``calls``.
    """

    def __init__(self, replies: Optional[dict[str, Reply]] = None, default: Reply = "", name: str = "fake-model"):
        self.replies = replies or {}
        self.default = default
        self.name = name
        self.calls: list[dict[str, Any]] = []

    @property
    def model_name(self) -> str:
        return self.name

    async def complete(
        self,
        system_prompt: str,
        user_prompts: list[str],
        image_urls: Optional[list[str]] = None,
        output_schema: Optional[dict[str, Any]] = None,
        temperature: float = 0.5,
        max_tokens: int = 0,
    ) -> str:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompts": user_prompts,
                "image_urls": image_urls,
                "output_schema": output_schema,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        joined = "\n".join(user_prompts)
        reply = self.default
        for needle, candidate in self.replies.items():
            if needle in joined:
                reply = candidate
                break

        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(system_prompt, user_prompts)
        return reply

    def preprocess_json(self, raw: str) -> str:
        return extract_json(raw)


class FakeFetcher(Fetcher):
    def __init__(self, pages: Optional[dict[str, Union[httpx.Response, Exception]]] = None):
        self.pages = pages or {}
        self.requested: list[str] = []

    async def fetch(self, url: str, cancel: Optional[CancellationToken] = None) -> httpx.Response:
        self.requested.append(url)
        page = self.pages.get(url)
        if page is None:
            return httpx.Response(404, text="not found")
        if isinstance(page, Exception):
            raise page
        return page


class FakeImageFetcher(ImageFetcher):
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.requested: list[str] = []

    async def fetch_as_base64(self, image_url: str) -> str:
        self.requested.append(image_url)
        if self.error is not None:
            raise self.error
        return "data:image/png;base64,AAAA"


class FakeArticleExtractor(ArticleExtractor):
    def extract(self, html: str, source_url: str) -> ArticleData:
        return ArticleData(title=f"Page at {source_url}", cleaned_text=html)


def item_json(entry_id: str, relevant: bool = True, title: str = "Item") -> str:
    return json.dumps(
        {
            "id": entry_id,
            "title": title,
            "overview": ["point"],
            "summary": f"Summary of {entry_id}",
            "commentSummary": "",
            "relevanceToCriteria": "matches",
            "isRelevant": relevant,
        }
    )


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Retry policy with no real waiting."""
    return RetryPolicy(
        max_retries=2,
        initial_backoff=0.0,
        backoff_factor=2.0,
        max_backoff=0.0,
        max_total_timeout=None,
    )


@pytest.fixture
def persona() -> Persona:
    return Persona(
        name="TestPersona",
        topic="AI Technology",
        feed_url="https://example.com/feed.xml",
        persona_identity="You are an AI researcher.",
        base_prompt_task="Summarize each post.",
        summary_prompt_task="Summarize the batch.",
        focus_areas=("LLMs",),
        relevance_criteria=("New model releases",),
        summary_analysis=("Trends",),
        exclusion_criteria=("Politics",),
    )


@pytest.fixture
def make_entries() -> Callable[[int], list[Entry]]:
    def _make(count: int) -> list[Entry]:
        return [
            Entry(
                id=f"entry-{i}",
                title=f"Post {i}",
                link=f"https://news.example.com/posts/{i}",
                content=f"Body of post {i}",
            )
            for i in range(1, count + 1)
        ]

    return _make
