"""Find outbound links in entry content."""

import html
import logging
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from news_processor.core import Entry, URLExtractor

logger = logging.getLogger(__name__)


class LinkExtractor(URLExtractor):
    """Collect external ``<a href>`` targets from an entry's HTML content.

    Drops non-http(s) links, links back to the entry's own host and any host
    matching ``excluded_domains``. Keeps first-seen order without duplicates.
    """

    def __init__(self, excluded_domains: tuple[str, ...] = ("reddit.com", "redd.it")) -> None:
        self.excluded_domains = tuple(d.lower() for d in excluded_domains)

    def extract_external_urls(self, entry: Entry) -> list[str]:
        if not entry.content or not entry.content.strip():
            return []

        own_host = urlparse(entry.link).hostname or ""
        soup = BeautifulSoup(html.unescape(entry.content), "html.parser")

        urls: list[str] = []
        seen: set[str] = set()
        for anchor in soup.find_all("a", href=True):
            href = anchor["href"].strip()
            if not href or href in seen:
                continue

            parsed = urlparse(href)
            if parsed.scheme not in ("http", "https") or not parsed.hostname:
                logger.debug(f"Skipping non-web link '{href}' in entry {entry.id}")
                continue

            host = parsed.hostname.lower()
            if own_host and host == own_host.lower():
                continue
            if self._is_excluded(host):
                continue

            seen.add(href)
            urls.append(href)

        return urls

    def _is_excluded(self, host: str) -> bool:
        for domain in self.excluded_domains:
            if host == domain or host.endswith("." + domain):
                return True
        return False
