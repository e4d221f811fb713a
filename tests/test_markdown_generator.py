"""Tests for the markdown digest generator."""

from datetime import date

import pytest

from news_processor.adapters.digest import MarkdownDigestGenerator
from news_processor.core import DigestResponse, KeyDevelopment, ProcessedItem


@pytest.mark.asyncio
async def test_generate_full_digest() -> None:
    """Test every section is rendered and key developments link to their items."""
    items = [
        ProcessedItem(
            id="t3_1",
            title="New model",
            summary="A new open model.",
            is_relevant=True,
            link="https://example.com/1",
            overview=("Released today", "Apache licensed"),
            relevance_to_criteria="Major release",
            comment_summary="Users are impressed",
        ),
        ProcessedItem(id="t3_2", title="Plain", summary="Second item.", is_relevant=True),
    ]
    digest = DigestResponse(
        overall_summary="Busy week.",
        key_developments=(
            KeyDevelopment(text="Model release", item_id="t3_1"),
            KeyDevelopment(text="Unmatched", item_id="missing"),
        ),
        emerging_trends=("Smaller models",),
        technical_highlight="Sparse attention",
    )

    content = await MarkdownDigestGenerator().generate(digest, items, "LocalLLaMA", date(2025, 11, 27))

    assert content.startswith("# LocalLLaMA digest for 2025-11-27")
    assert "Relevant items: 2" in content
    assert "## Overview\n\nBusy week." in content
    assert "- Model release ([New model](https://example.com/1))" in content
    assert "- Unmatched\n" in content
    assert "## Emerging trends\n\n- Smaller models" in content
    assert "## Technical highlight\n\nSparse attention" in content
    assert "### [New model](https://example.com/1)" in content
    assert "- Released today\n- Apache licensed" in content
    assert "**Why it matters:** Major release" in content
    assert "**Discussion:** Users are impressed" in content
    assert "### Plain" in content
    assert content.index("### [New model]") < content.index("### Plain")


@pytest.mark.asyncio
async def test_generate_empty_digest() -> None:
    content = await MarkdownDigestGenerator().generate(DigestResponse.empty(), [], "HN", date(2025, 1, 2))

    assert content == "# HN digest for 2025-01-02\n\nNo relevant items found."


@pytest.mark.asyncio
async def test_generate_skips_empty_sections() -> None:
    items = [ProcessedItem(id="a", title="Only item", summary="Text.", is_relevant=True)]

    content = await MarkdownDigestGenerator().generate(DigestResponse.empty(), items, "HN", date(2025, 1, 2))

    assert "## Overview" not in content
    assert "## Key developments" not in content
    assert "## Items" in content
    assert "**Why it matters:**" not in content
