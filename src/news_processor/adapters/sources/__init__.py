"""Source adapters for fetching entries."""

from news_processor.adapters.sources.rss_source import FeedError, RSSSource

__all__ = ["FeedError", "RSSSource"]
