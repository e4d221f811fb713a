"""HTML content and link extraction."""

from news_processor.adapters.extraction.article_extractor import (
    ArticleExtractionError,
    TrafilaturaArticleExtractor,
)
from news_processor.adapters.extraction.url_extractor import LinkExtractor

__all__ = ["ArticleExtractionError", "TrafilaturaArticleExtractor", "LinkExtractor"]
