"""RSS 2.0 / Atom feed source."""

import html
import logging
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Optional
from xml.etree import ElementTree as ET

import httpx
from bs4 import BeautifulSoup

from news_processor.core import Entry, EntrySource, Persona

logger = logging.getLogger(__name__)

ATOM_NS = "{http://www.w3.org/2005/Atom}"
MEDIA_NS = "{http://search.yahoo.com/mrss/}"
CONTENT_NS = "{http://purl.org/rss/1.0/modules/content/}"

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp")
IMAGE_HOSTS = ("i.redd.it", "i.imgur.com")
LOW_QUALITY_TERMS = ("thumb", "preview")


class FeedError(Exception):
    """Raised when a feed cannot be fetched or parsed."""


def is_likely_image_url(url: str) -> bool:
    lowered = url.lower().split("?", 1)[0]
    if lowered.endswith(IMAGE_EXTENSIONS):
        return True
    return any(host in lowered for host in IMAGE_HOSTS)


def extract_image_urls(content: str) -> list[str]:
    """Collect ``<img src>`` targets and direct image links, skipping thumbnails."""
    if not content or not content.strip():
        return []

    soup = BeautifulSoup(html.unescape(content), "html.parser")
    urls: list[str] = []

    for tag in soup.find_all(["img", "a"]):
        url = tag.get("src") if tag.name == "img" else tag.get("href")
        if not url:
            continue
        if tag.name == "a" and not is_likely_image_url(url):
            continue
        if any(term in url.lower() for term in LOW_QUALITY_TERMS):
            continue
        if url not in urls:
            urls.append(url)

    return urls


def _text(element: Optional[ET.Element]) -> str:
    if element is None or element.text is None:
        return ""
    return element.text.strip()


def _parse_date(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        pass
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None


class RSSSource(EntrySource):
    """Fetch entries from the persona's ``feed_url``."""

    def __init__(
        self,
        max_items: int = 50,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        user_agent: str = "news-processor/1.0",
    ) -> None:
        self.max_items = max_items
        self.client = client
        self.timeout = timeout
        self.user_agent = user_agent

    async def fetch_entries(self, persona: Persona) -> list[Entry]:
        if not persona.feed_url:
            raise FeedError(f"persona {persona.name} has no feed_url")

        logger.info(f"Fetching feed for {persona.name}: {persona.feed_url}")
        headers = {"User-Agent": self.user_agent}
        try:
            if self.client is not None:
                response = await self.client.get(persona.feed_url, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                    response = await client.get(persona.feed_url, headers=headers)
        except httpx.HTTPError as e:
            raise FeedError(f"could not fetch feed {persona.feed_url}: {e}") from e

        if response.status_code != 200:
            raise FeedError(f"feed {persona.feed_url} returned HTTP {response.status_code}")

        entries = self.parse_feed(response.text)[: self.max_items]
        logger.info(f"Found {len(entries)} entries for {persona.name}")
        return entries

    def parse_feed(self, xml_content: str) -> list[Entry]:
        """Parse RSS 2.0 ``<item>`` or Atom ``<entry>`` elements."""
        try:
            root = ET.fromstring(xml_content)
        except ET.ParseError as e:
            raise FeedError(f"could not parse feed XML: {e}") from e

        entries = []
        seen_ids: set[str] = set()

        for element in root.iter():
            if element.tag == "item":
                entry = self._parse_rss_item(element)
            elif element.tag == f"{ATOM_NS}entry":
                entry = self._parse_atom_entry(element)
            else:
                continue

            if entry is None or entry.id in seen_ids:
                continue
            seen_ids.add(entry.id)
            entries.append(entry)

        return entries

    def _parse_rss_item(self, item: ET.Element) -> Optional[Entry]:
        link = _text(item.find("link"))
        entry_id = _text(item.find("guid")) or link
        if not entry_id:
            return None

        content = _text(item.find(f"{CONTENT_NS}encoded")) or _text(item.find("description"))
        thumbnail = item.find(f"{MEDIA_NS}thumbnail")

        image_urls = extract_image_urls(content)
        enclosure = item.find("enclosure")
        if enclosure is not None and enclosure.get("type", "").startswith("image/"):
            url = enclosure.get("url", "")
            if url and url not in image_urls:
                image_urls.append(url)

        return Entry(
            id=entry_id,
            title=_text(item.find("title")),
            link=link,
            content=content,
            published=_parse_date(_text(item.find("pubDate"))),
            image_urls=image_urls,
            thumbnail_url=thumbnail.get("url", "") if thumbnail is not None else "",
        )

    def _parse_atom_entry(self, element: ET.Element) -> Optional[Entry]:
        link = ""
        for link_elem in element.findall(f"{ATOM_NS}link"):
            if link_elem.get("rel", "alternate") == "alternate":
                link = link_elem.get("href", "")
                break

        entry_id = _text(element.find(f"{ATOM_NS}id")) or link
        if not entry_id:
            return None

        content = _text(element.find(f"{ATOM_NS}content")) or _text(element.find(f"{ATOM_NS}summary"))
        thumbnail = element.find(f"{MEDIA_NS}thumbnail")
        published = _text(element.find(f"{ATOM_NS}published")) or _text(element.find(f"{ATOM_NS}updated"))

        return Entry(
            id=entry_id,
            title=_text(element.find(f"{ATOM_NS}title")),
            link=link,
            content=content,
            published=_parse_date(published),
            image_urls=extract_image_urls(content),
            thumbnail_url=thumbnail.get("url", "") if thumbnail is not None else "",
        )
