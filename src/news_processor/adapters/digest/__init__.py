"""Digest renderers."""

from news_processor.adapters.digest.markdown_generator import MarkdownDigestGenerator

__all__ = ["MarkdownDigestGenerator"]
