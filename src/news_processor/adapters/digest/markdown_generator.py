"""Markdown digest generator."""

from datetime import date

from news_processor.core import DigestGenerator, DigestResponse, ProcessedItem


class MarkdownDigestGenerator(DigestGenerator):
    """Generate a markdown digest from the digest response and its items."""

    async def generate(
        self,
        digest: DigestResponse,
        items: list[ProcessedItem],
        persona_name: str,
        digest_date: date,
    ) -> str:
        header = f"# {persona_name} digest for {digest_date.strftime('%Y-%m-%d')}"
        if not items:
            return f"{header}\n\nNo relevant items found."

        items_by_id = {item.id: item for item in items}

        lines = [
            header,
            "",
            f"Relevant items: {len(items)}",
            "",
        ]

        if digest.overall_summary:
            lines.extend(["## Overview", "", digest.overall_summary, ""])

        if digest.key_developments:
            lines.extend(["## Key developments", ""])
            for development in digest.key_developments:
                item = items_by_id.get(development.item_id)
                if item is not None and item.link:
                    lines.append(f"- {development.text} ([{item.title}]({item.link}))")
                else:
                    lines.append(f"- {development.text}")
            lines.append("")

        if digest.emerging_trends:
            lines.extend(["## Emerging trends", ""])
            for trend in digest.emerging_trends:
                lines.append(f"- {trend}")
            lines.append("")

        if digest.technical_highlight:
            lines.extend(["## Technical highlight", "", digest.technical_highlight, ""])

        lines.extend(["## Items", ""])
        for item in items:
            lines.extend(self._format_item(item))

        return "\n".join(lines)

    def _format_item(self, item: ProcessedItem) -> list[str]:
        """Format single digest item."""
        title = f"[{item.title}]({item.link})" if item.link else item.title
        lines = [f"### {title}", ""]

        if item.overview:
            for point in item.overview:
                lines.append(f"- {point}")
            lines.append("")

        lines.extend([item.summary, ""])

        if item.relevance_to_criteria:
            lines.extend([f"**Why it matters:** {item.relevance_to_criteria}", ""])

        if item.comment_summary:
            lines.extend([f"**Discussion:** {item.comment_summary}", ""])

        lines.append("---")
        lines.append("")

        return lines
