"""Tests for article and link extraction."""

from unittest.mock import patch

import pytest

from news_processor.adapters.extraction import ArticleExtractionError, LinkExtractor, TrafilaturaArticleExtractor
from news_processor.core import Entry

TRAFILATURA_EXTRACT = "news_processor.adapters.extraction.article_extractor.trafilatura.extract"

PARAGRAPH = (
    "Researchers released a new open-weight language model that runs on a single consumer GPU. "
    "The team reports that quantized checkpoints keep most of the quality of the full model "
    "while cutting memory use roughly in half, and they published the evaluation scripts. "
)


@pytest.fixture
def no_trafilatura_text():
    with patch(TRAFILATURA_EXTRACT, return_value=None) as mock_extract:
        yield mock_extract


def test_article_extractor_uses_trafilatura_text() -> None:
    html = "<html><head><title>Page title</title></head><body><p>ignored</p></body></html>"

    with patch(TRAFILATURA_EXTRACT, return_value="Main   story\n\ntext.") as mock_extract:
        data = TrafilaturaArticleExtractor().extract(html, "https://example.com/a")

    assert data.title == "Page title"
    assert data.cleaned_text == "Main story text."
    mock_extract.assert_called_once()
    assert mock_extract.call_args.kwargs["url"] == "https://example.com/a"
    assert mock_extract.call_args.kwargs["include_comments"] is False


def test_article_extractor_real_page_drops_boilerplate() -> None:
    """Test extracting a realistic article page end to end."""
    html = f"""
    <html>
      <head><title>Model release</title></head>
      <body>
        <nav><a href="/">Home</a> | <a href="/about">About us</a></nav>
        <article>
          <h1>A new local model</h1>
          <p>{PARAGRAPH}</p>
          <p>{PARAGRAPH}</p>
          <p>{PARAGRAPH}</p>
        </article>
        <footer>Copyright 2025 Example Media</footer>
      </body>
    </html>
    """
    data = TrafilaturaArticleExtractor().extract(html, "https://example.com/model")

    assert data.title == "Model release"
    assert "open-weight language model" in data.cleaned_text
    assert "Copyright 2025" not in data.cleaned_text
    assert "\n" not in data.cleaned_text


def test_article_extractor_fallback_prefers_article_body(no_trafilatura_text) -> None:
    """Test that fallback text comes from <article> and boilerplate is dropped."""
    html = """
    <html>
      <head><title>Page title</title><script>var x = 1;</script></head>
      <body>
        <nav>Home | About</nav>
        <article><h1>Headline</h1><p>First   paragraph.</p>
        <p>Second
        paragraph.</p></article>
        <footer>Copyright</footer>
      </body>
    </html>
    """
    data = TrafilaturaArticleExtractor().extract(html, "https://example.com/a")

    assert data.title == "Page title"
    assert data.cleaned_text == "Headline First paragraph. Second paragraph."
    assert "Home" not in data.cleaned_text
    assert "Copyright" not in data.cleaned_text


def test_article_extractor_uses_og_title(no_trafilatura_text) -> None:
    html = (
        '<html><head><title>Site | Story</title>'
        '<meta property="og:title" content=" The Story "></head>'
        "<body><main>Main text here</main></body></html>"
    )
    data = TrafilaturaArticleExtractor().extract(html, "https://example.com/a")

    assert data.title == "The Story"
    assert data.cleaned_text == "Main text here"


def test_article_extractor_falls_back_to_body(no_trafilatura_text) -> None:
    data = TrafilaturaArticleExtractor().extract("<html><body><div>Just a div</div></body></html>", "u")
    assert data.title == ""
    assert data.cleaned_text == "Just a div"


@pytest.mark.parametrize("html", ["", "   \n"])
def test_article_extractor_rejects_empty_document(html: str) -> None:
    with pytest.raises(ArticleExtractionError):
        TrafilaturaArticleExtractor().extract(html, "https://example.com/empty")


def test_article_extractor_min_length(no_trafilatura_text) -> None:
    with pytest.raises(ArticleExtractionError, match="no readable content"):
        TrafilaturaArticleExtractor(min_length=50).extract("<body><p>short</p></body>", "https://example.com/s")


def make_entry(content: str, link: str = "https://www.reddit.com/r/test/comments/1") -> Entry:
    return Entry(id="t3_1", title="Post", link=link, content=content)


def test_link_extractor_skips_own_and_excluded_hosts() -> None:
    content = (
        '<a href="https://www.reddit.com/r/test/comments/1">self</a>'
        '<a href="https://old.reddit.com/user/x">user</a>'
        '<a href="https://i.redd.it/pic.png">image</a>'
        '<a href="https://blog.example.org/post">blog</a>'
        '<a href="mailto:someone@example.org">mail</a>'
        '<a href="/relative/path">relative</a>'
    )
    urls = LinkExtractor().extract_external_urls(make_entry(content))

    assert urls == ["https://blog.example.org/post"]


def test_link_extractor_unescapes_and_dedupes_in_order() -> None:
    content = (
        "&lt;a href=&quot;https://b.example.com/2&quot;&gt;b&lt;/a&gt;"
        "&lt;a href=&quot;https://a.example.com/1&quot;&gt;a&lt;/a&gt;"
        "&lt;a href=&quot;https://b.example.com/2&quot;&gt;again&lt;/a&gt;"
    )
    urls = LinkExtractor().extract_external_urls(make_entry(content))

    assert urls == ["https://b.example.com/2", "https://a.example.com/1"]


def test_link_extractor_custom_exclusions() -> None:
    content = '<a href="https://news.ycombinator.com/item?id=1">hn</a><a href="https://x.dev/a">x</a>'
    extractor = LinkExtractor(excluded_domains=("ycombinator.com",))

    assert extractor.extract_external_urls(make_entry(content)) == ["https://x.dev/a"]


def test_link_extractor_empty_content() -> None:
    assert LinkExtractor().extract_external_urls(make_entry("   ")) == []
