"""Run instrumentation: per-phase timings, payloads and success rate."""

import json
import logging
import shutil
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

import httpx

from news_processor.core import DigestResponse, Phase, ProcessedItem

logger = logging.getLogger(__name__)

RUN_RECORD_PREFIX = "benchmark"
LATEST_RUN_RECORD = "benchmark.json"


def _ms(seconds: float) -> int:
    return int(round(seconds * 1000))


@dataclass(frozen=True)
class EntrySummary:
    raw_input: str
    result: ProcessedItem
    processing_time_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "rawInput": self.raw_input,
            "results": self.result.to_dict(),
            "processingTimeMs": self.processing_time_ms,
        }


@dataclass(frozen=True)
class ImageSummary:
    image_url: str
    image_description: str
    title: str
    entry_id: str
    processing_time_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "imageURL": self.image_url,
            "imageDescription": self.image_description,
            "title": self.title,
            "entryID": self.entry_id,
            "processingTimeMs": self.processing_time_ms,
        }


@dataclass(frozen=True)
class WebContentSummary:
    url: str
    original_content: str
    summary: str
    title: str
    entry_id: str
    processing_time_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "originalContent": self.original_content,
            "summary": self.summary,
            "title": self.title,
            "entryID": self.entry_id,
            "processingTimeMs": self.processing_time_ms,
        }


@dataclass(frozen=True)
class RunRecord:
    """Finalized telemetry for one persona's run."""

    persona: str
    run_date: datetime
    overall_model: str
    image_model: str
    web_content_model: str
    entry_summaries: tuple[EntrySummary, ...] = ()
    image_summaries: tuple[ImageSummary, ...] = ()
    web_content_summaries: tuple[WebContentSummary, ...] = ()
    overall_summary: Optional[DigestResponse] = None
    entry_total_ms: int = 0
    image_total_ms: int = 0
    web_content_total_ms: int = 0
    digest_total_ms: int = 0
    total_ms: int = 0
    entries_attempted: int = 0
    success_rate: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "entrySummaries": [s.to_dict() for s in self.entry_summaries],
            "imageSummaries": [s.to_dict() for s in self.image_summaries],
            "webContentSummaries": [s.to_dict() for s in self.web_content_summaries],
            "overallSummary": self.overall_summary.to_dict() if self.overall_summary else None,
            "persona": {"name": self.persona},
            "runDate": self.run_date.isoformat(),
            "overallModelUsed": self.overall_model,
            "imageModelUsed": self.image_model,
            "webContentModelUsed": self.web_content_model,
            "totalProcessingTime": self.total_ms,
            "entryTotalProcessingTime": self.entry_total_ms,
            "imageTotalProcessingTime": self.image_total_ms,
            "webContentTotalProcessingTime": self.web_content_total_ms,
            "digestTotalProcessingTime": self.digest_total_ms,
            "entriesAttempted": self.entries_attempted,
            "successRate": self.success_rate,
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


class RunTelemetry:
    """Accumulates one run's telemetry. Not reusable across runs.

    Example:
        telemetry = RunTelemetry("LocalLLaMA", "qwen3", "gemma3", "qwen3")
        with telemetry.time_phase(Phase.SUMMARIES):
            ...
        record = telemetry.finalize()
    """

    def __init__(
        self,
        persona_name: str,
        overall_model: str,
        image_model: str = "",
        web_content_model: str = "",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.persona_name = persona_name or "unknown"
        self.overall_model = overall_model
        self.image_model = image_model
        self.web_content_model = web_content_model or overall_model
        self.clock = clock
        self.run_date = datetime.now(timezone.utc)

        self.entry_summaries: list[EntrySummary] = []
        self.image_summaries: list[ImageSummary] = []
        self.web_content_summaries: list[WebContentSummary] = []
        self.digest: Optional[DigestResponse] = None
        self.phase_totals: dict[Phase, float] = {
            Phase.IMAGES: 0.0,
            Phase.LINKS: 0.0,
            Phase.SUMMARIES: 0.0,
            Phase.DIGEST: 0.0,
        }
        self._attempted = 0
        self._record: Optional[RunRecord] = None

    @property
    def finalized(self) -> bool:
        return self._record is not None

    @property
    def run_record(self) -> Optional[RunRecord]:
        return self._record

    def _check_open(self) -> None:
        if self._record is not None:
            raise RuntimeError("run telemetry is already finalized")

    def record(
        self,
        phase: Phase,
        entry_id: str,
        elapsed: float,
        raw_input: str,
        result: Any,
        *,
        title: str = "",
        url: str = "",
    ) -> None:
        """Append one per-entry record to ``phase``.

        For images ``raw_input`` is the image URL; for links it is the
        extracted page text and ``url`` names the page.
        """
        self._check_open()

        if phase is Phase.SUMMARIES:
            self.entry_summaries.append(EntrySummary(raw_input, result, _ms(elapsed)))
        elif phase is Phase.IMAGES:
            self.image_summaries.append(
                ImageSummary(raw_input, str(result), title, entry_id, _ms(elapsed))
            )
        elif phase is Phase.LINKS:
            self.web_content_summaries.append(
                WebContentSummary(url, raw_input, str(result), title, entry_id, _ms(elapsed))
            )
        else:
            raise ValueError(f"phase {phase.value} has no per-entry records")

    @contextmanager
    def time_phase(self, phase: Phase) -> Iterator[None]:
        """Add the block's wall-clock time to the phase total."""
        self._check_open()
        start = self.clock()
        try:
            yield
        finally:
            self.phase_totals[phase] += self.clock() - start

    def entries_attempted(self, count: int) -> None:
        """Set how many entries entered the summaries phase."""
        self._check_open()
        self._attempted = count

    def set_digest(self, digest: DigestResponse) -> None:
        self._check_open()
        self.digest = digest

    def finalize(self) -> RunRecord:
        """Freeze the accumulated data into a ``RunRecord``. Call exactly once."""
        self._check_open()

        succeeded = len(self.entry_summaries)
        success_rate = succeeded / self._attempted if self._attempted else 0.0

        self._record = RunRecord(
            persona=self.persona_name,
            run_date=self.run_date,
            overall_model=self.overall_model,
            image_model=self.image_model,
            web_content_model=self.web_content_model,
            entry_summaries=tuple(self.entry_summaries),
            image_summaries=tuple(self.image_summaries),
            web_content_summaries=tuple(self.web_content_summaries),
            overall_summary=self.digest,
            entry_total_ms=_ms(self.phase_totals[Phase.SUMMARIES]),
            image_total_ms=_ms(self.phase_totals[Phase.IMAGES]),
            web_content_total_ms=_ms(self.phase_totals[Phase.LINKS]),
            digest_total_ms=_ms(self.phase_totals[Phase.DIGEST]),
            total_ms=_ms(sum(self.phase_totals.values())),
            entries_attempted=self._attempted,
            success_rate=success_rate,
        )
        logger.info(
            f"Run finalized for {self.persona_name}: {succeeded}/{self._attempted} entries, "
            f"success rate {success_rate:.2f}"
        )
        return self._record

    def serialize(self) -> str:
        """Stable JSON for the finalized record."""
        if self._record is None:
            raise RuntimeError("run telemetry must be finalized before serializing")
        return self._record.to_json()

    async def submit(self, endpoint_url: str, client: Optional[httpx.AsyncClient] = None) -> bool:
        """POST the finalized record to ``<endpoint_url>/runs``.

        Returns True on a 2xx answer. Failures are logged, never raised.
        """
        if self._record is None:
            raise RuntimeError("run telemetry must be finalized before submitting")
        return await submit_run_record(self._record, endpoint_url, client)


def audit_runs_url(endpoint_url: str) -> str:
    if endpoint_url.endswith("/runs"):
        return endpoint_url
    return endpoint_url.rstrip("/") + "/runs"


async def submit_run_record(
    record: RunRecord, endpoint_url: str, client: Optional[httpx.AsyncClient] = None
) -> bool:
    url = audit_runs_url(endpoint_url)
    body = record.to_json(indent=None)
    headers = {"content-type": "application/json"}

    try:
        if client is not None:
            response = await client.post(url, content=body, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=10.0) as http:
                response = await http.post(url, content=body, headers=headers)
    except httpx.HTTPError as e:
        logger.warning(f"Failed to send run record to audit service at {url}: {e}")
        return False

    if not 200 <= response.status_code < 300:
        logger.warning(
            f"Audit service returned status {response.status_code}: {response.text[:200]}"
        )
        return False

    logger.info(f"Run record submitted to audit service at {url}")
    return True


def write_run_record(record: RunRecord, directory: Path, now: Optional[datetime] = None) -> Path:
    """Write the record as a timestamped file and as the latest ``benchmark.json``.

    An existing ``benchmark.json`` is copied to ``backup/benchmark.json`` first.
    Returns the path of the timestamped file.
    """
    directory.mkdir(parents=True, exist_ok=True)

    timestamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    stamped_path = directory / f"{RUN_RECORD_PREFIX}_{record.persona}_{timestamp}.json"
    latest_path = directory / LATEST_RUN_RECORD

    if latest_path.exists():
        backup_dir = directory / "backup"
        backup_dir.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(latest_path, backup_dir / LATEST_RUN_RECORD)

    payload = record.to_json()
    stamped_path.write_text(payload, encoding="utf-8")
    latest_path.write_text(payload, encoding="utf-8")

    logger.info(f"Run record written to {stamped_path} and {latest_path}")
    return stamped_path


def _parse_record_name(name: str) -> Optional[tuple[str, str]]:
    """Split ``benchmark_<persona>_<timestamp>.json`` into (persona, timestamp)."""
    if not name.startswith(RUN_RECORD_PREFIX + "_") or not name.endswith(".json"):
        return None
    stem = name[len(RUN_RECORD_PREFIX) + 1 : -len(".json")]
    persona, sep, timestamp = stem.rpartition("_")
    if not sep or not persona or not timestamp:
        return None
    return persona, timestamp


def load_latest_run_records(directory: Path) -> list[dict[str, Any]]:
    """Load the newest stored record for each persona, ordered by persona name."""
    if not directory.is_dir():
        raise FileNotFoundError(f"Run record directory not found: {directory}")

    latest: dict[str, tuple[str, Path]] = {}
    for path in directory.iterdir():
        if not path.is_file():
            continue
        parsed = _parse_record_name(path.name)
        if parsed is None:
            continue
        persona, timestamp = parsed
        if persona not in latest or timestamp > latest[persona][0]:
            latest[persona] = (timestamp, path)

    records = []
    for persona in sorted(latest):
        path = latest[persona][1]
        try:
            records.append(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load run record {path}: {e}")

    return records
