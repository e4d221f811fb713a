"""Tests for the image fetcher."""

import base64

import httpx
import pytest

from news_processor.adapters.http import DefaultImageFetcher, ImageFetchError
from news_processor.adapters.http.image_fetcher import guess_content_type


def client_for(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_fetch_as_base64_uses_response_content_type() -> None:
    """Test the data URI carries the server's content type."""
    payload = b"\x89PNG fake bytes"

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=payload, headers={"Content-Type": "image/png; charset=binary"})

    async with client_for(handler) as client:
        data_uri = await DefaultImageFetcher(client=client).fetch_as_base64("https://img.example.com/a")

    assert data_uri == "data:image/png;base64," + base64.b64encode(payload).decode("ascii")


@pytest.mark.asyncio
async def test_fetch_as_base64_guesses_type_from_extension() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"GIF89a")

    async with client_for(handler) as client:
        data_uri = await DefaultImageFetcher(client=client).fetch_as_base64("https://img.example.com/anim.gif")

    assert data_uri.startswith("data:image/gif;base64,")


@pytest.mark.asyncio
async def test_fetch_as_base64_rejects_error_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403)

    async with client_for(handler) as client:
        with pytest.raises(ImageFetchError, match="status code 403"):
            await DefaultImageFetcher(client=client).fetch_as_base64("https://img.example.com/x.jpg")


@pytest.mark.asyncio
async def test_fetch_as_base64_wraps_transport_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with client_for(handler) as client:
        with pytest.raises(ImageFetchError) as exc_info:
            await DefaultImageFetcher(client=client).fetch_as_base64("https://img.example.com/x.jpg")

    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://i.example.com/a.JPG", "image/jpeg"),
        ("https://i.example.com/a.jpeg?w=300", "image/jpeg"),
        ("https://i.example.com/a.png", "image/png"),
        ("https://i.example.com/a.webp", "image/webp"),
        ("https://i.example.com/render", "image/jpeg"),
    ],
)
def test_guess_content_type(url: str, expected: str) -> None:
    assert guess_content_type(url) == expected
