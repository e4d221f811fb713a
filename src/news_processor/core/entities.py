"""Core domain entities."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class ResponseParseError(ValueError):
    """The model returned something that does not match the expected JSON shape."""


class Phase(str, Enum):
    """Processing phases, in execution order."""

    IMAGES = "images"
    LINKS = "links"
    SUMMARIES = "summaries"
    DIGEST = "digest"
    DONE = "done"


_HTML_ENTITIES = {
    "&#39;": "'",
    "&#32;": " ",
    "&quot;": '"',
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
}


def clean_content(text: str, max_len: int, disable_truncation: bool = False) -> str:
    """Replace common HTML entities and optionally truncate with an ellipsis."""
    cleaned = text
    for entity, replacement in _HTML_ENTITIES.items():
        cleaned = cleaned.replace(entity, replacement)

    if disable_truncation or len(cleaned) <= max_len:
        return cleaned

    return cleaned[:max_len] + "..."


@dataclass
class Entry:
    """One content item from a feed, enriched in place by the processing phases."""

    id: str
    title: str
    link: str = ""
    content: str = ""
    published: Optional[datetime] = None
    comments: list[str] = field(default_factory=list)
    image_urls: list[str] = field(default_factory=list)
    external_urls: list[str] = field(default_factory=list)
    thumbnail_url: str = ""
    image_description: str = ""
    web_content_summaries: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Entry ID cannot be empty")

    def to_prompt_text(self, disable_truncation: bool = False) -> str:
        """Render the entry as the text block sent to the LLM."""
        lines = [
            f"Title: {self.title.strip()}",
            f"ID: {self.id}",
            f"Content: {clean_content(self.content, 1200, disable_truncation)}",
            f"ImageDescription: {self.image_description}",
        ]
        text = "\n".join(lines) + "\n"

        if self.external_urls:
            text += "\nExternal URLs:\n"
            for url in self.external_urls:
                text += f"- {url}\n"

        if self.web_content_summaries:
            text += "\nExternal URL Summaries:\n"
            for url, summary in self.web_content_summaries.items():
                text += f"- {url}: {summary}\n"

        text += "Comments:\n"
        for comment in self.comments:
            text += f"- {clean_content(comment, 600, disable_truncation)}\n"

        return text


def _get(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Case-insensitive lookup over several candidate keys."""
    lowered = {str(k).lower().replace(" ", "").replace("_", ""): v for k, v in data.items()}
    for key in keys:
        normalized = key.lower().replace(" ", "").replace("_", "")
        if normalized in lowered and lowered[normalized] is not None:
            return lowered[normalized]
    return default


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(v) for v in value]
    return [str(value)]


@dataclass(frozen=True)
class ProcessedItem:
    """The model's relevance verdict and summary for one entry."""

    id: str
    title: str
    summary: str
    is_relevant: bool
    relevance_to_criteria: str = ""
    comment_summary: str = ""
    overview: tuple[str, ...] = ()
    link: str = ""
    thumbnail_url: str = ""
    image_description: str = ""
    web_content_summary: str = ""

    @classmethod
    def from_dict(cls, data: Any, entry: Entry) -> "ProcessedItem":
        """Build an item from parsed model output, anchored to its source entry.

        The identifier always comes from ``entry`` so that every item maps
        back to exactly one input entry.
        """
        if not isinstance(data, dict):
            raise ResponseParseError(
                f"expected a JSON object for entry {entry.id}, got {type(data).__name__}"
            )

        summary = _get(data, "summary")
        if summary is None:
            raise ResponseParseError(f"response for entry {entry.id} has no summary field")

        return cls(
            id=entry.id,
            title=str(_get(data, "title", default=entry.title)),
            summary=str(summary),
            is_relevant=_as_bool(_get(data, "isRelevant", default=False)),
            relevance_to_criteria=str(_get(data, "relevanceToCriteria", "relevance", default="")),
            comment_summary=str(_get(data, "commentSummary", default="")),
            overview=tuple(_as_str_list(_get(data, "overview"))),
            link=entry.link,
            thumbnail_url=entry.thumbnail_url,
            image_description=entry.image_description,
            web_content_summary="\n".join(entry.web_content_summaries.values()),
        )

    @classmethod
    def from_json(cls, text: str, entry: Entry) -> "ProcessedItem":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ResponseParseError(f"could not decode model output for entry {entry.id}: {e}") from e
        # Some models wrap the single object in an array
        if isinstance(data, list) and len(data) == 1:
            data = data[0]
        return cls.from_dict(data, entry)

    def to_summary_string(self) -> str:
        """Concise rendering used as digest input."""
        text = f"ID: {self.id}\nTitle: {self.title}\nSummary: {self.summary}\n"
        if self.comment_summary:
            text += f"Comment Summary: {self.comment_summary}\n"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "overview": list(self.overview),
            "summary": self.summary,
            "commentSummary": self.comment_summary,
            "imageDescription": self.image_description,
            "webContentSummary": self.web_content_summary,
            "link": self.link,
            "isRelevant": self.is_relevant,
            "relevanceToCriteria": self.relevance_to_criteria,
            "thumbnailUrl": self.thumbnail_url,
        }


@dataclass(frozen=True)
class KeyDevelopment:
    """A digest highlight pointing back at one processed item."""

    text: str
    item_id: str


@dataclass(frozen=True)
class DigestResponse:
    """Cross-item synthesis for one run."""

    overall_summary: str = ""
    key_developments: tuple[KeyDevelopment, ...] = ()
    emerging_trends: tuple[str, ...] = ()
    technical_highlight: str = ""

    @classmethod
    def empty(cls) -> "DigestResponse":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not (
            self.overall_summary
            or self.key_developments
            or self.emerging_trends
            or self.technical_highlight
        )

    @classmethod
    def from_json(cls, text: str) -> "DigestResponse":
        """Parse the digest JSON, accepting either the object or a bare array."""
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ResponseParseError(f"could not decode digest response: {e}") from e

        if isinstance(data, list):
            return cls(key_developments=_parse_key_developments(data))

        if not isinstance(data, dict):
            raise ResponseParseError(f"unexpected digest response type: {type(data).__name__}")

        return cls(
            overall_summary=str(_get(data, "overallSummary", "summary", default="")),
            key_developments=_parse_key_developments(_get(data, "keyDevelopments", default=[])),
            emerging_trends=tuple(_as_str_list(_get(data, "emergingTrends", default=[]))),
            technical_highlight=str(_get(data, "technicalHighlight", default="")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "overallSummary": self.overall_summary,
            "keyDevelopments": [
                {"text": kd.text, "itemID": kd.item_id} for kd in self.key_developments
            ],
            "emergingTrends": list(self.emerging_trends),
            "technicalHighlight": self.technical_highlight,
        }


def _parse_key_developments(raw: Any) -> tuple[KeyDevelopment, ...]:
    if not isinstance(raw, list):
        raise ResponseParseError("keyDevelopments must be a list")

    developments = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ResponseParseError("each key development must be an object")
        developments.append(
            KeyDevelopment(
                text=str(_get(entry, "text", default="")),
                item_id=str(_get(entry, "itemID", "itemId", "id", default="")),
            )
        )
    return tuple(developments)
