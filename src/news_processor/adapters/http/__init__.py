"""HTTP adapters."""

from news_processor.adapters.http.fetcher import (
    FetchStatusError,
    HTTPFetcher,
    parse_retry_after,
    should_retry_http,
)
from news_processor.adapters.http.image_fetcher import DefaultImageFetcher, ImageFetchError

__all__ = [
    "FetchStatusError",
    "HTTPFetcher",
    "parse_retry_after",
    "should_retry_http",
    "DefaultImageFetcher",
    "ImageFetchError",
]
