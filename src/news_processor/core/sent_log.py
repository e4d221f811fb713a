"""Log of item IDs that have already been delivered."""

import json
import logging
from pathlib import Path
from typing import Iterable

from news_processor.core.entities import ProcessedItem

logger = logging.getLogger(__name__)


class SentLogError(Exception):
    """Raised when the sent log cannot be read or written."""


class SentLog:
    """Flat JSON array of delivered item IDs, rewritten sorted after each run."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> set[str]:
        """Read the sent IDs. A missing file is an empty log."""
        if not self.path.exists():
            return set()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise SentLogError(f"could not read sent log {self.path}: {e}") from e

        if not isinstance(data, list):
            raise SentLogError(f"sent log {self.path} must contain a JSON array")

        return {str(item_id) for item_id in data if item_id}

    def save(self, ids: Iterable[str]) -> None:
        """Write IDs as a sorted JSON array, creating parent directories."""
        payload = sorted({item_id for item_id in ids if item_id})

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as e:
            raise SentLogError(f"could not write sent log {self.path}: {e}") from e

    def mark_sent(self, items: Iterable[ProcessedItem]) -> set[str]:
        """Add delivered items to the log and persist it. Returns the new ID set."""
        ids = self.load()
        ids.update(item.id for item in items if item.id)
        self.save(ids)
        return ids


def filter_unsent_items(
    items: list[ProcessedItem], sent_ids: set[str] | frozenset[str]
) -> tuple[list[ProcessedItem], int]:
    """Drop items that were delivered in an earlier run.

    Returns:
        Tuple of (unsent_items, skipped_count)
    """
    unsent = []
    skipped = 0

    for item in items:
        if not item.id:
            continue
        if item.id in sent_ids:
            skipped += 1
            continue
        unsent.append(item)

    if skipped:
        logger.info(f"Skipping {skipped} items already sent")

    return unsent, skipped
