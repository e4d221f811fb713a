"""Readable-text extraction from HTML pages."""

import re

import trafilatura
from bs4 import BeautifulSoup

from news_processor.core import ArticleData, ArticleExtractor

_NOISE_TAGS = ["script", "style", "noscript", "nav", "header", "footer", "aside", "form", "iframe", "svg"]
_WHITESPACE = re.compile(r"\s+")


class ArticleExtractionError(Exception):
    """Raised when a page has no readable content."""


class TrafilaturaArticleExtractor(ArticleExtractor):
    """Extract title and main text from a page.

    Body text comes from ``trafilatura``. Pages it cannot make sense of
    (short or unusual markup) fall back to BeautifulSoup: ``<article>``,
    then ``<main>``, then ``<body>``, with boilerplate elements dropped.
    Whitespace is collapsed to single spaces either way.
    """

    def __init__(self, min_length: int = 1) -> None:
        self.min_length = min_length

    def extract(self, html: str, source_url: str) -> ArticleData:
        if not html or not html.strip():
            raise ArticleExtractionError(f"empty document from {source_url}")

        soup = BeautifulSoup(html, "html.parser")
        title = _page_title(soup)

        text = trafilatura.extract(html, url=source_url, include_comments=False, include_tables=False)
        if text:
            text = _WHITESPACE.sub(" ", text).strip()
        else:
            text = _soup_text(soup)

        if len(text) < self.min_length:
            raise ArticleExtractionError(f"no readable content found at {source_url}")

        return ArticleData(title=title, cleaned_text=text)


def _page_title(soup: BeautifulSoup) -> str:
    og_title = soup.find("meta", attrs={"property": "og:title"})
    if og_title and og_title.get("content"):
        return og_title["content"].strip()
    if soup.title and soup.title.string:
        return soup.title.string.strip()
    return ""


def _soup_text(soup: BeautifulSoup) -> str:
    for tag in soup(_NOISE_TAGS):
        tag.decompose()

    container = soup.find("article") or soup.find("main") or soup.body or soup
    return _WHITESPACE.sub(" ", container.get_text(separator=" ", strip=True)).strip()
