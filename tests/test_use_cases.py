"""Tests for use cases."""

import json
import re
from datetime import date
from unittest.mock import AsyncMock

import httpx
import pytest
from conftest import FakeArticleExtractor, FakeFetcher, FakeImageFetcher, FakeLLMClient, item_json

from news_processor.adapters.extraction import LinkExtractor
from news_processor.core import (
    CancellationToken,
    DigestResponse,
    Entry,
    MaxRetriesExceededError,
    Phase,
    ProcessedItem,
    ResponseParseError,
    SentLog,
)
from news_processor.telemetry import RunTelemetry
from news_processor.use_cases import (
    AllEntriesFailedError,
    DigestService,
    EntryProcessor,
    ProcessorConfig,
    filter_relevant_items,
)

SYSTEM_PROMPT = "You summarize posts."

DIGEST_JSON = json.dumps(
    {
        "overallSummary": "A busy week.",
        "keyDevelopments": [{"text": "Post 1 shipped", "itemID": "entry-1"}],
        "emergingTrends": ["Smaller models"],
        "technicalHighlight": "Quantization",
    }
)


def is_digest_call(call: dict) -> bool:
    return "keyDevelopments" in call["system_prompt"]


def scripted_llm(failing=(), irrelevant=(), unparseable=(), digest=DIGEST_JSON) -> FakeLLMClient:
    """LLM that answers per entry ID found in the prompt."""

    def reply(system_prompt: str, user_prompts: list[str]) -> str:
        if "keyDevelopments" in system_prompt:
            if isinstance(digest, Exception):
                raise digest
            return digest
        entry_id = re.search(r"ID: (\S+)", "\n".join(user_prompts)).group(1)
        if entry_id in failing:
            raise RuntimeError(f"backend error for {entry_id}")
        if entry_id in unparseable:
            return "I cannot answer that in JSON, sorry."
        return item_json(entry_id, relevant=entry_id not in irrelevant)

    return FakeLLMClient(default=reply)


def make_processor(
    llm: FakeLLMClient,
    policy,
    image_client: FakeLLMClient = None,
    fetcher: FakeFetcher = None,
    image_enabled: bool = True,
    url_summary_enabled: bool = True,
) -> EntryProcessor:
    config = ProcessorConfig(
        image_enabled=image_enabled,
        url_summary_enabled=url_summary_enabled,
        entry_policy=policy,
        enrichment_policy=policy,
    )
    return EntryProcessor(
        llm,
        image_client or FakeLLMClient(default="An image of a chart", name="vision-model"),
        fetcher or FakeFetcher(),
        FakeImageFetcher(),
        FakeArticleExtractor(),
        LinkExtractor(),
        config,
    )


def new_telemetry(llm: FakeLLMClient) -> RunTelemetry:
    return RunTelemetry("TestPersona", llm.model_name, "vision-model", llm.model_name)


def calls_for(llm: FakeLLMClient, entry_id: str) -> int:
    return sum(1 for call in llm.calls if f"ID: {entry_id}\n" in "\n".join(call["user_prompts"]))


@pytest.mark.asyncio
async def test_run_survives_single_entry_failure(persona, fast_policy, make_entries) -> None:
    """Test that one failing entry does not stop the rest of the batch."""
    llm = scripted_llm(failing={"entry-3"})
    processor = make_processor(llm, fast_policy)
    telemetry = new_telemetry(llm)

    outcome = await processor.run(SYSTEM_PROMPT, make_entries(5), persona, telemetry)

    assert [item.id for item in outcome.items] == ["entry-1", "entry-2", "entry-4", "entry-5"]
    assert len(outcome.errors) == 1
    failure = outcome.errors[0]
    assert failure.entry_id == "entry-3"
    assert failure.phase is Phase.SUMMARIES
    assert isinstance(failure.error, MaxRetriesExceededError)
    assert calls_for(llm, "entry-3") == fast_policy.max_retries + 1

    record = telemetry.run_record
    assert record is not None
    assert record.entries_attempted == 5
    assert len(record.entry_summaries) == 4
    assert record.success_rate == pytest.approx(0.8)
    assert outcome.digest.overall_summary == "A busy week."
    assert record.overall_summary == outcome.digest
    assert processor.phase is Phase.DONE


@pytest.mark.asyncio
async def test_run_all_entries_failed(persona, fast_policy, make_entries) -> None:
    llm = scripted_llm(failing={"entry-1", "entry-2", "entry-3"})
    telemetry = new_telemetry(llm)

    with pytest.raises(AllEntriesFailedError) as exc_info:
        await make_processor(llm, fast_policy).run(SYSTEM_PROMPT, make_entries(3), persona, telemetry)

    assert [f.entry_id for f in exc_info.value.failures] == ["entry-1", "entry-2", "entry-3"]
    assert "all entries failed processing" in str(exc_info.value)
    # Telemetry is still finalized so the run can be recorded
    assert telemetry.finalized
    assert telemetry.run_record.success_rate == 0.0
    assert not any(is_digest_call(call) for call in llm.calls)


@pytest.mark.asyncio
async def test_run_with_no_entries(persona, fast_policy) -> None:
    llm = scripted_llm()
    telemetry = new_telemetry(llm)

    outcome = await make_processor(llm, fast_policy).run(SYSTEM_PROMPT, [], persona, telemetry)

    assert outcome.items == []
    assert outcome.digest.is_empty
    assert llm.calls == []
    assert telemetry.run_record.entries_attempted == 0


@pytest.mark.asyncio
async def test_parse_error_is_not_retried(persona, fast_policy, make_entries) -> None:
    llm = scripted_llm(unparseable={"entry-2"})

    outcome = await make_processor(llm, fast_policy).run(
        SYSTEM_PROMPT, make_entries(3), persona, new_telemetry(llm)
    )

    assert calls_for(llm, "entry-2") == 1
    assert [item.id for item in outcome.items] == ["entry-1", "entry-3"]
    assert isinstance(outcome.errors[0].error, ResponseParseError)


@pytest.mark.asyncio
async def test_item_id_comes_from_entry(persona, fast_policy, make_entries) -> None:
    llm = FakeLLMClient(default=lambda s, u: item_json("model-invented-id"))
    processor = make_processor(llm, fast_policy)

    result = await processor.process_entries(SYSTEM_PROMPT, make_entries(2), persona, new_telemetry(llm))

    assert [item.id for item in result.items] == ["entry-1", "entry-2"]
    assert result.items[0].link == "https://news.example.com/posts/1"


@pytest.mark.asyncio
async def test_sent_items_are_excluded_from_digest(persona, fast_policy, make_entries) -> None:
    llm = scripted_llm()

    outcome = await make_processor(llm, fast_policy).run(
        SYSTEM_PROMPT,
        make_entries(3),
        persona,
        new_telemetry(llm),
        exclude_ids={"entry-2"},
    )

    assert [item.id for item in outcome.relevant_items] == ["entry-1", "entry-3"]
    assert outcome.skipped_sent == 1
    digest_calls = [call for call in llm.calls if is_digest_call(call)]
    assert len(digest_calls) == 1
    digest_input = "\n".join(digest_calls[0]["user_prompts"])
    assert "entry-2" not in digest_input
    assert "ID: entry-1" in digest_input


@pytest.mark.asyncio
async def test_no_relevant_items_skips_digest_call(persona, fast_policy, make_entries) -> None:
    llm = scripted_llm(irrelevant={"entry-1", "entry-2"})
    telemetry = new_telemetry(llm)

    outcome = await make_processor(llm, fast_policy).run(SYSTEM_PROMPT, make_entries(2), persona, telemetry)

    assert len(outcome.items) == 2
    assert outcome.relevant_items == []
    assert outcome.digest == DigestResponse.empty()
    assert not any(is_digest_call(call) for call in llm.calls)
    assert telemetry.run_record.success_rate == 1.0


@pytest.mark.asyncio
async def test_digest_failure_is_not_fatal(persona, fast_policy, make_entries) -> None:
    llm = scripted_llm(digest=RuntimeError("digest backend down"))
    telemetry = new_telemetry(llm)

    outcome = await make_processor(llm, fast_policy).run(SYSTEM_PROMPT, make_entries(2), persona, telemetry)

    assert len(outcome.items) == 2
    assert outcome.digest.is_empty
    assert outcome.errors[-1].phase is Phase.DIGEST
    assert sum(1 for call in llm.calls if is_digest_call(call)) == fast_policy.max_retries + 1
    assert telemetry.finalized


@pytest.mark.asyncio
async def test_enrichment_feeds_entry_prompt(persona, fast_policy) -> None:
    """Test that image descriptions and link summaries reach the entry prompt and telemetry."""
    llm = FakeLLMClient(
        replies={"Please provide a concise summary": "Linked page summary"},
        default=lambda s, u: item_json("e1"),
    )
    fetcher = FakeFetcher({"https://blog.example.org/a": httpx.Response(200, text="Linked page body")})
    entry = Entry(
        id="e1",
        title="Release",
        link="https://news.example.com/p/1",
        content='<a href="https://blog.example.org/a">details</a>',
        image_urls=["https://i.example.com/chart.png"],
    )
    telemetry = new_telemetry(llm)

    result = await make_processor(llm, fast_policy, fetcher=fetcher).process_entries(
        SYSTEM_PROMPT, [entry], persona, telemetry
    )

    assert entry.image_description == "An image of a chart"
    assert entry.web_content_summaries == {"https://blog.example.org/a": "Linked page summary"}

    entry_call = llm.calls[-1]
    assert entry_call["output_schema"]["name"] == "post_item"
    prompt = entry_call["user_prompts"][0]
    assert "ImageDescription: An image of a chart" in prompt
    assert "- https://blog.example.org/a: Linked page summary" in prompt

    item = result.items[0]
    assert item.image_description == "An image of a chart"
    assert item.web_content_summary == "Linked page summary"

    assert telemetry.image_summaries[0].image_url == "https://i.example.com/chart.png"
    assert telemetry.web_content_summaries[0].url == "https://blog.example.org/a"
    assert telemetry.web_content_summaries[0].original_content == "Linked page body"
    assert len(telemetry.entry_summaries) == 1


@pytest.mark.asyncio
async def test_disabled_phases_are_skipped(persona, fast_policy) -> None:
    llm = FakeLLMClient(default=lambda s, u: item_json("e1"))
    image_client = FakeLLMClient(default="should not be used")
    fetcher = FakeFetcher()
    entry = Entry(
        id="e1",
        title="Release",
        link="https://news.example.com/p/1",
        content='<a href="https://blog.example.org/a">details</a>',
        image_urls=["https://i.example.com/chart.png"],
    )

    processor = make_processor(
        llm, fast_policy, image_client=image_client, fetcher=fetcher, image_enabled=False, url_summary_enabled=False
    )
    result = await processor.process_entries(SYSTEM_PROMPT, [entry], persona, new_telemetry(llm))

    assert len(result.items) == 1
    assert image_client.calls == []
    assert fetcher.requested == []
    assert entry.external_urls == []
    assert entry.image_description == ""


@pytest.mark.asyncio
async def test_cancelled_run_processes_nothing(persona, fast_policy, make_entries) -> None:
    llm = scripted_llm()
    token = CancellationToken()
    token.cancel("shutdown")
    telemetry = new_telemetry(llm)

    outcome = await make_processor(llm, fast_policy).run(
        SYSTEM_PROMPT, make_entries(3), persona, telemetry, cancel=token
    )

    assert outcome.items == []
    assert outcome.digest.is_empty
    assert llm.calls == []
    assert telemetry.finalized


def test_filter_relevant_items() -> None:
    items = [
        ProcessedItem(id="a", title="A", summary="s", is_relevant=True),
        ProcessedItem(id="b", title="B", summary="s", is_relevant=False),
        ProcessedItem(id="", title="C", summary="s", is_relevant=True),
    ]
    assert [item.id for item in filter_relevant_items(items)] == ["a"]


@pytest.mark.asyncio
async def test_digest_service_render_and_save(tmp_path) -> None:
    """Test digest service renders through the generator and saves to disk."""
    generator = AsyncMock()
    generator.generate.return_value = "# Digest"
    service = DigestService(generator)
    items = [ProcessedItem(id="a", title="A", summary="s", is_relevant=True)]

    content = await service.render(DigestResponse.empty(), items, "TestPersona", date(2025, 11, 27))
    output_path = tmp_path / "digests" / "digest.md"
    service.save_digest(content, output_path)

    generator.generate.assert_called_once_with(DigestResponse.empty(), items, "TestPersona", date(2025, 11, 27))
    assert output_path.read_text(encoding="utf-8") == "# Digest"


@pytest.mark.asyncio
async def test_digest_service_notification() -> None:
    notifier = AsyncMock()
    notifier.send_digest.return_value = True
    digest = DigestResponse(overall_summary="x")

    assert await DigestService(AsyncMock()).send_notification(digest, [], "P", date(2025, 1, 1)) is False
    assert await DigestService(AsyncMock(), notifier).send_notification(digest, [], "P", date(2025, 1, 1)) is True
    notifier.send_digest.assert_called_once_with(digest, [], "P", date(2025, 1, 1))


def test_digest_service_mark_sent(tmp_path) -> None:
    sent_log = SentLog(tmp_path / "sent_ids.json")
    service = DigestService(AsyncMock(), sent_log=sent_log)

    service.mark_sent([ProcessedItem(id="b", title="B", summary="s", is_relevant=True)])
    service.mark_sent([ProcessedItem(id="a", title="A", summary="s", is_relevant=True)])

    assert json.loads(sent_log.path.read_text(encoding="utf-8")) == ["a", "b"]
