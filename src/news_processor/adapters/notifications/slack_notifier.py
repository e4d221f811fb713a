"""Slack notification adapter."""

import logging
import re
from datetime import date
from typing import Optional

import httpx

from news_processor.core import DigestResponse, NotificationService, ProcessedItem

logger = logging.getLogger(__name__)


class SlackNotifier(NotificationService):
    """Send digests to Slack via webhook."""

    def __init__(self, webhook_url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None) -> None:
        """Initialize Slack notifier.

        Args:
            webhook_url: Slack webhook URL. If None, notifications are skipped.
            client: Optional shared HTTP client.
        """
        self.webhook_url = webhook_url
        self.client = client

    def _convert_markdown_to_mrkdwn(self, text: str) -> str:
        """Convert markdown to Slack mrkdwn format."""
        # [text](url) -> <url|text>
        text = re.sub(r"\[([^\]]+)\]\(([^)]+)\)", r"<\2|\1>", text)
        # **text** -> *text*
        text = re.sub(r"\*\*([^*]+)\*\*", r"*\1*", text)
        return text

    def format_message(
        self,
        digest: DigestResponse,
        items: list[ProcessedItem],
        persona_name: str,
        digest_date: date,
    ) -> str:
        lines = [f"📡 *{persona_name} digest: {digest_date.strftime('%Y-%m-%d')}*", ""]

        if digest.overall_summary:
            lines.extend([self._convert_markdown_to_mrkdwn(digest.overall_summary), ""])

        items_by_id = {item.id: item for item in items}
        for development in digest.key_developments:
            item = items_by_id.get(development.item_id)
            text = self._convert_markdown_to_mrkdwn(development.text)
            if item is not None and item.link:
                lines.append(f"• {text} <{item.link}|{item.title}>")
            else:
                lines.append(f"• {text}")

        if not digest.key_developments:
            for item in items:
                link = f"<{item.link}|{item.title}>" if item.link else item.title
                lines.append(f"• {link}")

        return "\n".join(lines).strip()

    async def send_digest(
        self,
        digest: DigestResponse,
        items: list[ProcessedItem],
        persona_name: str,
        digest_date: date,
    ) -> bool:
        """Send the digest to Slack. Returns True when Slack accepted it."""
        if not self.webhook_url:
            # Silently skip if no webhook configured
            return False

        payload = {
            "text": self.format_message(digest, items, persona_name, digest_date),
            "mrkdwn": True,
        }

        try:
            if self.client is not None:
                response = await self.client.post(self.webhook_url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=30.0) as client:
                    response = await client.post(self.webhook_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Failed to send digest to Slack: {e}")
            return False

        logger.info("Digest sent to Slack")
        return True
