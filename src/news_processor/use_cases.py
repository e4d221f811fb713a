"""Business logic use cases."""

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Optional

from news_processor.core import (
    ArticleExtractor,
    CancellationToken,
    DigestGenerator,
    DigestResponse,
    Entry,
    Fetcher,
    ImageFetcher,
    LLMClient,
    NotificationService,
    Persona,
    Phase,
    ProcessedItem,
    ResponseParseError,
    RetryError,
    RetryPolicy,
    SentLog,
    URLExtractor,
    filter_unsent_items,
    retry_with_backoff,
)
from news_processor.enrichment import EnrichmentError, ImageEnricher, LinkEnricher
from news_processor.prompts import DIGEST_SCHEMA, ITEM_SCHEMA, compose_digest_input, compose_digest_prompt
from news_processor.telemetry import RunTelemetry

logger = logging.getLogger(__name__)

ENTRY_TEMPERATURE = 0.5
DIGEST_TEMPERATURE = 0.5


@dataclass(frozen=True)
class ProcessorConfig:
    """Feature flags and retry policies for one processor instance."""

    image_enabled: bool = True
    url_summary_enabled: bool = True
    entry_policy: RetryPolicy = field(
        default_factory=lambda: RetryPolicy(
            max_retries=3, initial_backoff=1.0, backoff_factor=2.0, max_backoff=10.0, max_total_timeout=None
        )
    )
    enrichment_policy: RetryPolicy = field(
        default_factory=lambda: RetryPolicy(
            max_retries=3, initial_backoff=1.0, backoff_factor=2.0, max_backoff=10.0, max_total_timeout=None
        )
    )
    max_link_content_chars: int = 20000


@dataclass(frozen=True)
class EntryFailure:
    """One entry that could not be carried through a phase."""

    entry_id: str
    phase: Phase
    error: Exception

    def __str__(self) -> str:
        return f"entry {self.entry_id} ({self.phase.value}): {self.error}"


class AllEntriesFailedError(Exception):
    """No entry survived the summaries phase."""

    def __init__(self, failures: list[EntryFailure]) -> None:
        first = failures[0] if failures else "no entries"
        super().__init__(f"all entries failed processing: {first}")
        self.failures = failures


@dataclass
class ProcessingResult:
    items: list[ProcessedItem]
    errors: list[EntryFailure]


@dataclass
class RunOutcome:
    items: list[ProcessedItem]
    relevant_items: list[ProcessedItem]
    digest: DigestResponse
    errors: list[EntryFailure]
    skipped_sent: int = 0


def filter_relevant_items(items: list[ProcessedItem]) -> list[ProcessedItem]:
    """Keep items the model marked relevant that carry an identifier."""
    return [item for item in items if item.is_relevant and item.id]


def _retry_unless_parse_error(error: Exception) -> bool:
    return not isinstance(error, ResponseParseError)


class EntryProcessor:
    """Drives entries through images, links, summaries and digest, in that order.

    Per-entry failures are collected and never stop the batch. Only a
    summaries phase in which every entry failed is fatal.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        image_client: LLMClient,
        fetcher: Fetcher,
        image_fetcher: ImageFetcher,
        article_extractor: ArticleExtractor,
        url_extractor: URLExtractor,
        config: ProcessorConfig,
        clock=time.monotonic,
    ) -> None:
        self.llm_client = llm_client
        self.image_client = image_client
        self.config = config
        self.clock = clock
        self.phase = Phase.IMAGES
        self.image_enricher = ImageEnricher(image_client, image_fetcher, config.enrichment_policy)
        self.link_enricher = LinkEnricher(
            llm_client,
            fetcher,
            article_extractor,
            url_extractor,
            config.enrichment_policy,
            max_content_chars=config.max_link_content_chars,
            clock=clock,
        )

    async def process_entries(
        self,
        system_prompt: str,
        entries: list[Entry],
        persona: Persona,
        telemetry: RunTelemetry,
        cancel: Optional[CancellationToken] = None,
    ) -> ProcessingResult:
        """Run the images, links and summaries phases over ``entries``.

        Entries are enriched in place. Items come back in entry order.

        Raises:
            AllEntriesFailedError: No item was produced and at least one entry failed.
        """
        errors: list[EntryFailure] = []

        self.phase = Phase.IMAGES
        if self.config.image_enabled:
            logger.info("Phase 1: Processing all images")
            with telemetry.time_phase(Phase.IMAGES):
                await self._images_phase(entries, persona, telemetry, cancel)
        else:
            logger.info("Phase 1: Image processing disabled, skipping")

        self.phase = Phase.LINKS
        if self.config.url_summary_enabled:
            logger.info("Phase 2: Processing all external URLs")
            with telemetry.time_phase(Phase.LINKS):
                errors.extend(await self._links_phase(entries, persona, telemetry, cancel))
        else:
            logger.info("Phase 2: URL summaries disabled, skipping")

        self.phase = Phase.SUMMARIES
        logger.info("Phase 3: Processing all text summarizations")
        telemetry.entries_attempted(len(entries))
        with telemetry.time_phase(Phase.SUMMARIES):
            items, summary_errors = await self._summaries_phase(system_prompt, entries, telemetry, cancel)
        errors.extend(summary_errors)

        if not items and errors:
            raise AllEntriesFailedError(errors)

        if errors:
            logger.warning(f"{len(errors)} entries failed processing")

        return ProcessingResult(items=items, errors=errors)

    async def _images_phase(
        self,
        entries: list[Entry],
        persona: Persona,
        telemetry: RunTelemetry,
        cancel: Optional[CancellationToken],
    ) -> None:
        for i, entry in enumerate(entries):
            if not entry.image_urls:
                continue

            logger.info(f"Processing image for entry {i}: {entry.image_urls[0]}")
            start = self.clock()
            description = await self.image_enricher.describe(entry, persona, cancel)
            if description is None:
                continue

            entry.image_description = description
            telemetry.record(
                Phase.IMAGES,
                entry.id,
                self.clock() - start,
                entry.image_urls[0],
                description,
                title=entry.title,
            )

    async def _links_phase(
        self,
        entries: list[Entry],
        persona: Persona,
        telemetry: RunTelemetry,
        cancel: Optional[CancellationToken],
    ) -> list[EntryFailure]:
        errors = []
        for i, entry in enumerate(entries):
            logger.debug(f"Processing external URLs for entry {i}")
            try:
                summaries = await self.link_enricher.summarize(entry, persona, cancel)
            except EnrichmentError as e:
                logger.error(f"Error processing external URLs for entry {i}: {e}")
                errors.append(EntryFailure(entry.id, Phase.LINKS, e))
                continue

            for summary in summaries:
                entry.web_content_summaries[summary.url] = summary.summary
                telemetry.record(
                    Phase.LINKS,
                    entry.id,
                    summary.elapsed,
                    summary.original_content,
                    summary.summary,
                    title=summary.title,
                    url=summary.url,
                )
        return errors

    async def _summaries_phase(
        self,
        system_prompt: str,
        entries: list[Entry],
        telemetry: RunTelemetry,
        cancel: Optional[CancellationToken],
    ) -> tuple[list[ProcessedItem], list[EntryFailure]]:
        items: list[ProcessedItem] = []
        errors: list[EntryFailure] = []

        for i, entry in enumerate(entries):
            if cancel is not None and cancel.cancelled:
                logger.warning(f"Run cancelled, {len(entries) - i} entries left unprocessed")
                break

            logger.info(f"Processing entry text {i}")
            start = self.clock()
            raw_input = entry.to_prompt_text(disable_truncation=True)

            try:
                item = await retry_with_backoff(
                    lambda: self._summarize_entry(system_prompt, entry, raw_input),
                    _retry_unless_parse_error,
                    self.config.entry_policy,
                    cancel=cancel,
                )
            except (RetryError, ResponseParseError) as e:
                logger.error(f"Error processing entry {i}: {e}")
                errors.append(EntryFailure(entry.id, Phase.SUMMARIES, e))
                continue

            logger.info(f"Processed item {i} successfully")
            items.append(item)
            telemetry.record(Phase.SUMMARIES, entry.id, self.clock() - start, raw_input, item)

        return items, errors

    async def _summarize_entry(self, system_prompt: str, entry: Entry, raw_input: str) -> ProcessedItem:
        response = await self.llm_client.complete(
            system_prompt,
            [raw_input],
            output_schema=ITEM_SCHEMA,
            temperature=ENTRY_TEMPERATURE,
        )
        return ProcessedItem.from_json(self.llm_client.preprocess_json(response), entry)

    async def generate_digest(
        self,
        items: list[ProcessedItem],
        persona: Persona,
        telemetry: RunTelemetry,
        cancel: Optional[CancellationToken] = None,
    ) -> DigestResponse:
        """Synthesize the relevant items into one digest. No relevant items, no LLM call."""
        self.phase = Phase.DIGEST
        relevant = filter_relevant_items(items)
        if not relevant:
            logger.info("Phase 4: No relevant items, digest is empty")
            return DigestResponse.empty()

        logger.info(f"Phase 4: Generating digest for {len(relevant)} relevant items")
        system_prompt = compose_digest_prompt(persona)
        user_prompts = compose_digest_input(relevant)

        async def attempt() -> DigestResponse:
            response = await self.llm_client.complete(
                system_prompt,
                user_prompts,
                output_schema=DIGEST_SCHEMA,
                temperature=DIGEST_TEMPERATURE,
            )
            return DigestResponse.from_json(self.llm_client.preprocess_json(response))

        with telemetry.time_phase(Phase.DIGEST):
            return await retry_with_backoff(
                attempt,
                _retry_unless_parse_error,
                self.config.entry_policy,
                cancel=cancel,
            )

    async def run(
        self,
        system_prompt: str,
        entries: list[Entry],
        persona: Persona,
        telemetry: RunTelemetry,
        exclude_ids: set[str] | frozenset[str] = frozenset(),
        cancel: Optional[CancellationToken] = None,
    ) -> RunOutcome:
        """Process entries, drop already-sent items, build the digest and finalize telemetry.

        Telemetry is finalized even when every entry failed, so the caller
        can still persist the run record.
        """
        try:
            result = await self.process_entries(system_prompt, entries, persona, telemetry, cancel)
        except AllEntriesFailedError:
            telemetry.finalize()
            raise

        relevant = filter_relevant_items(result.items)
        unsent, skipped = filter_unsent_items(relevant, exclude_ids)
        errors = list(result.errors)

        digest = DigestResponse.empty()
        if cancel is not None and cancel.cancelled:
            logger.warning("Run cancelled, skipping digest")
        else:
            try:
                digest = await self.generate_digest(unsent, persona, telemetry, cancel)
            except (RetryError, ResponseParseError) as e:
                logger.error(f"Digest generation failed: {e}")
                errors.append(EntryFailure("", Phase.DIGEST, e))

        telemetry.set_digest(digest)
        telemetry.finalize()
        self.phase = Phase.DONE

        return RunOutcome(
            items=result.items,
            relevant_items=unsent,
            digest=digest,
            errors=errors,
            skipped_sent=skipped,
        )


class DigestService:
    """Render, store and deliver digests, then remember what was sent."""

    def __init__(
        self,
        digest_generator: DigestGenerator,
        notification_service: Optional[NotificationService] = None,
        sent_log: Optional[SentLog] = None,
    ) -> None:
        self.digest_generator = digest_generator
        self.notification_service = notification_service
        self.sent_log = sent_log

    async def render(
        self, digest: DigestResponse, items: list[ProcessedItem], persona_name: str, digest_date: date
    ) -> str:
        return await self.digest_generator.generate(digest, items, persona_name, digest_date)

    def save_digest(self, content: str, output_path: Path) -> None:
        """Save digest to file."""
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(content, encoding="utf-8")
        logger.info(f"Digest saved to {output_path}")

    async def send_notification(
        self, digest: DigestResponse, items: list[ProcessedItem], persona_name: str, digest_date: date
    ) -> bool:
        if self.notification_service is None:
            return False
        return await self.notification_service.send_digest(digest, items, persona_name, digest_date)

    def mark_sent(self, items: list[ProcessedItem]) -> None:
        if self.sent_log is None or not items:
            return
        ids = self.sent_log.mark_sent(items)
        logger.info(f"Sent log updated: {len(ids)} IDs in {self.sent_log.path}")
