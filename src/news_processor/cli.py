"""CLI entry point for news processor."""

import asyncio
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import typer

from news_processor.adapters.digest import MarkdownDigestGenerator
from news_processor.adapters.extraction import LinkExtractor, TrafilaturaArticleExtractor
from news_processor.adapters.http import DefaultImageFetcher, HTTPFetcher
from news_processor.adapters.llm import OpenAIClient
from news_processor.adapters.notifications import SlackNotifier
from news_processor.adapters.sources import RSSSource
from news_processor.config import ConfigError, Settings, get_settings
from news_processor.core import EntrySource, Persona, PersonaError, SentLog, load_personas, select_personas
from news_processor.logging_config import setup_logging
from news_processor.prompts import compose_entry_prompt
from news_processor.telemetry import RunTelemetry, load_latest_run_records, write_run_record
from news_processor.use_cases import AllEntriesFailedError, DigestService, EntryProcessor

logger = logging.getLogger(__name__)


def main(
    persona: str = typer.Option("all", "--persona", help="Persona name, or 'all'"),
    config: Path = typer.Option(Path("config.yaml"), "--config", help="Path to config.yaml"),
    max_entries: Optional[int] = typer.Option(None, "--max-entries", help="Cap entries per persona"),
    no_slack: bool = typer.Option(False, "--no-slack", help="Disable Slack notifications"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Do not mark items as sent"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Log one JSON object per line"),
    latest_records: bool = typer.Option(
        False, "--latest-records", help="Show the newest run record per persona and exit"
    ),
) -> None:
    """Process feeds into persona digests."""
    setup_logging("DEBUG" if debug else "INFO", json_format=json_logs)

    try:
        settings = get_settings(config)
        if latest_records:
            show_latest_records(settings.paths.run_records_dir)
            return
        if max_entries is not None:
            settings.processing.max_entries = max_entries
        settings.validate()
        personas = select_personas(load_personas(settings.paths.personas_dir), persona)
    except (ConfigError, PersonaError) as e:
        print(f"❌ {e}")
        raise typer.Exit(code=1)

    failed = asyncio.run(async_run(settings, personas, no_slack, dry_run))
    if failed:
        raise typer.Exit(code=1)


def app() -> None:
    """CLI entry point."""
    typer.run(main)


def build_processor(settings: Settings) -> EntryProcessor:
    llm_client = OpenAIClient(
        settings.llm.url,
        settings.llm.model,
        api_key=settings.llm.api_key,
        loading_policy=settings.retry.model_loading,
        timeout=settings.llm.timeout,
    )
    image_client = OpenAIClient(
        settings.llm.url,
        settings.llm.image_model or settings.llm.model,
        api_key=settings.llm.api_key,
        loading_policy=settings.retry.model_loading,
        timeout=settings.llm.timeout,
    )
    return EntryProcessor(
        llm_client=llm_client,
        image_client=image_client,
        fetcher=HTTPFetcher(settings.retry.fetch),
        image_fetcher=DefaultImageFetcher(),
        article_extractor=TrafilaturaArticleExtractor(),
        url_extractor=LinkExtractor(tuple(settings.processing.excluded_link_domains)),
        config=settings.processor_config(),
    )


async def async_run(settings: Settings, personas: list[Persona], no_slack: bool, dry_run: bool) -> list[str]:
    """Process each persona in turn. Returns the names of personas that failed."""
    print("\n" + "=" * 70)
    print("📰 NEWS PROCESSOR")
    print("=" * 70)
    print(f"  • Model: {settings.llm.model}")
    if settings.processing.image_enabled:
        print(f"  • Image model: {settings.llm.image_model}")
    print(f"  • Personas: {', '.join(p.name for p in personas)}")
    print(f"  • Max entries: {settings.processing.max_entries}")

    if no_slack:
        print("  ⚠️  Slack disabled by --no-slack")
    elif settings.slack_webhook_url:
        print("  ✓ SLACK_WEBHOOK_URL set")
    if dry_run:
        print("  ⚠️  Dry run: items will not be marked as sent")

    source = RSSSource(max_items=settings.processing.max_entries)
    processor = build_processor(settings)
    notifier = SlackNotifier(settings.slack_webhook_url) if (settings.slack_webhook_url and not no_slack) else None
    digest_service = DigestService(
        digest_generator=MarkdownDigestGenerator(),
        notification_service=notifier,
        sent_log=SentLog(settings.paths.sent_log),
    )

    failed = []
    for persona in personas:
        print("\n" + "=" * 70)
        print(f"🧑 {persona.name}")
        print("=" * 70)
        try:
            await process_persona(persona, settings, source, processor, digest_service, dry_run)
        except Exception:
            logger.exception(f"Persona {persona.name} failed")
            failed.append(persona.name)

    print("\n" + "=" * 70)
    if failed:
        print(f"⚠️  Finished with failures: {', '.join(failed)}")
    else:
        print("✅ DONE")
    print("=" * 70)
    return failed


async def process_persona(
    persona: Persona,
    settings: Settings,
    source: EntrySource,
    processor: EntryProcessor,
    digest_service: DigestService,
    dry_run: bool,
) -> None:
    entries = (await source.fetch_entries(persona))[: settings.processing.max_entries]
    print(f"📥 Entries: {len(entries)}")
    if not entries:
        return

    sent_ids = digest_service.sent_log.load() if digest_service.sent_log else set()
    telemetry = RunTelemetry(
        persona.name,
        processor.llm_client.model_name,
        processor.image_client.model_name if settings.processing.image_enabled else "",
    )

    try:
        outcome = await processor.run(
            compose_entry_prompt(persona), entries, persona, telemetry, exclude_ids=sent_ids
        )
    except AllEntriesFailedError:
        await persist_run_record(telemetry, settings)
        raise

    print(f"✓ Processed: {len(outcome.items)}/{len(entries)}")
    print(f"✓ Relevant and unsent: {len(outcome.relevant_items)} (skipped {outcome.skipped_sent} already sent)")
    if outcome.errors:
        print(f"⚠️  Failures: {len(outcome.errors)}")

    await persist_run_record(telemetry, settings)

    if not outcome.relevant_items:
        print("❌ No new relevant items")
        return

    digest_date = date.today()
    content = await digest_service.render(outcome.digest, outcome.relevant_items, persona.name, digest_date)
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    output = settings.paths.digests_dir / f"{timestamp}_{persona.name}.md"
    digest_service.save_digest(content, output)
    print(f"📄 Digest saved: {output}")

    if await digest_service.send_notification(outcome.digest, outcome.relevant_items, persona.name, digest_date):
        print("✓ Digest sent to Slack")

    if not dry_run:
        digest_service.mark_sent(outcome.relevant_items)


def show_latest_records(directory: Path) -> None:
    """Print a one-line overview of the newest run record for each persona."""
    try:
        records = load_latest_run_records(directory)
    except FileNotFoundError as e:
        print(f"❌ {e}")
        raise typer.Exit(code=1)

    if not records:
        print(f"No run records in {directory}")
        return

    for record in records:
        name = record.get("persona", {}).get("name", "?")
        print(
            f"📊 {name}: {record.get('runDate', '?')} "
            f"model={record.get('overallModelUsed', '')} "
            f"entries={record.get('entriesAttempted', 0)} "
            f"success={record.get('successRate', 0.0):.0%} "
            f"total={record.get('totalProcessingTime', 0)}ms"
        )


async def persist_run_record(telemetry: RunTelemetry, settings: Settings) -> None:
    record = telemetry.run_record
    if record is None:
        return

    if settings.audit.output_run_record:
        write_run_record(record, settings.paths.run_records_dir)

    if settings.audit.submit:
        await telemetry.submit(settings.audit.service_url)


if __name__ == "__main__":
    app()
