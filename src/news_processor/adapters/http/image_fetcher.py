"""Download images and encode them for multimodal prompts."""

import base64
from typing import Optional

import httpx

from news_processor.core import ImageFetcher

_EXTENSION_TYPES = (
    ((".jpg", ".jpeg"), "image/jpeg"),
    ((".png",), "image/png"),
    ((".gif",), "image/gif"),
    ((".webp",), "image/webp"),
)


class ImageFetchError(Exception):
    """Raised when an image cannot be downloaded."""


def guess_content_type(image_url: str) -> str:
    """Content type from the URL's extension, defaulting to JPEG."""
    path = image_url.lower().split("?", 1)[0]
    for extensions, content_type in _EXTENSION_TYPES:
        if path.endswith(extensions):
            return content_type
    return "image/jpeg"


class DefaultImageFetcher(ImageFetcher):
    """Fetch an image over HTTP and return it as a base64 ``data:`` URI."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0) -> None:
        self.client = client
        self.timeout = timeout

    async def fetch_as_base64(self, image_url: str) -> str:
        try:
            if self.client is not None:
                response = await self.client.get(image_url)
            else:
                async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                    response = await client.get(image_url)
        except httpx.HTTPError as e:
            raise ImageFetchError(f"error fetching image {image_url}: {e}") from e

        if response.status_code != 200:
            raise ImageFetchError(
                f"error fetching image {image_url}: status code {response.status_code}"
            )

        content_type = response.headers.get("content-type", "").split(";", 1)[0].strip()
        if not content_type:
            content_type = guess_content_type(image_url)

        encoded = base64.b64encode(response.content).decode("ascii")
        return f"data:{content_type};base64,{encoded}"
