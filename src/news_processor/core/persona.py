"""Personas describe who a digest is for and what counts as relevant."""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml


class PersonaError(ValueError):
    """Raised when persona files are missing or malformed."""


@dataclass(frozen=True)
class PromptConfig:
    """Optional prompt-shaping toggles. ``None`` means use the default."""

    include_comment_summary: Optional[bool] = None
    include_image_analysis: Optional[bool] = None
    summary_paragraphs: Optional[int] = None
    summary_word_count: Optional[int] = None
    comment_paragraphs: Optional[int] = None
    overview_bullet_points: Optional[int] = None
    technical_depth: Optional[str] = None
    writing_style: Optional[str] = None


@dataclass(frozen=True)
class Persona:
    """Read-only prompt input for one digest audience."""

    name: str
    topic: str = ""
    provider: str = "rss"
    feed_url: str = ""
    persona_identity: str = ""
    base_prompt_task: str = ""
    summary_prompt_task: str = ""
    focus_areas: tuple[str, ...] = ()
    relevance_criteria: tuple[str, ...] = ()
    summary_analysis: tuple[str, ...] = ()
    exclusion_criteria: tuple[str, ...] = ()
    prompt_config: PromptConfig = field(default_factory=PromptConfig)

    @property
    def include_comment_summary(self) -> bool:
        if self.prompt_config.include_comment_summary is not None:
            return self.prompt_config.include_comment_summary
        # Discussion sites carry comments, plain syndication feeds usually don't
        return self.provider == "reddit"

    @property
    def include_image_analysis(self) -> bool:
        if self.prompt_config.include_image_analysis is not None:
            return self.prompt_config.include_image_analysis
        return True

    @property
    def summary_paragraphs(self) -> str:
        count = self.prompt_config.summary_paragraphs
        if count is None:
            return "1 - 2 paragraphs"
        return "1 paragraph" if count == 1 else f"{count} paragraphs"

    @property
    def summary_word_count(self) -> str:
        if self.prompt_config.summary_word_count is None:
            return "500-800 words total"
        return f"{self.prompt_config.summary_word_count} words total"

    @property
    def comment_paragraphs(self) -> str:
        count = self.prompt_config.comment_paragraphs
        if count is None:
            return "1 - 2 paragraphs"
        return "1 paragraph" if count == 1 else f"{count} paragraphs"

    @property
    def overview_bullet_points(self) -> str:
        if self.prompt_config.overview_bullet_points is None:
            return "2-3"
        return str(self.prompt_config.overview_bullet_points)

    @property
    def technical_depth(self) -> str:
        return self.prompt_config.technical_depth or "moderate"

    @property
    def writing_style(self) -> str:
        return self.prompt_config.writing_style or "conversational"

    @classmethod
    def from_dict(cls, data: dict) -> "Persona":
        if not data.get("name"):
            raise PersonaError("Persona name cannot be empty")

        prompt_data = data.get("prompt_config") or {}
        known = {f.name for f in fields(PromptConfig)}
        prompt_config = PromptConfig(**{k: v for k, v in prompt_data.items() if k in known})

        return cls(
            name=data["name"],
            topic=data.get("topic", ""),
            provider=data.get("provider", "rss"),
            feed_url=data.get("feed_url", ""),
            persona_identity=data.get("persona_identity", ""),
            base_prompt_task=data.get("base_prompt_task", ""),
            summary_prompt_task=data.get("summary_prompt_task", ""),
            focus_areas=tuple(data.get("focus_areas") or ()),
            relevance_criteria=tuple(data.get("relevance_criteria") or ()),
            summary_analysis=tuple(data.get("summary_analysis") or ()),
            exclusion_criteria=tuple(data.get("exclusion_criteria") or ()),
            prompt_config=prompt_config,
        )


def load_personas(directory: Path) -> list[Persona]:
    """Load every ``*.yaml``/``*.yml`` persona in ``directory``, sorted by file name."""
    if not directory.is_dir():
        raise PersonaError(f"Persona directory not found: {directory}")

    personas = []
    for path in sorted(list(directory.glob("*.yaml")) + list(directory.glob("*.yml"))):
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise PersonaError(f"Persona file {path} is not valid YAML: {e}") from e
        if not isinstance(data, dict):
            raise PersonaError(f"Persona file {path} must contain a mapping")
        personas.append(Persona.from_dict(data))

    return personas


def select_personas(personas: list[Persona], name: str = "") -> list[Persona]:
    """Pick one persona by name (case-insensitive) or all of them."""
    if not name or name.lower() == "all":
        return personas

    for persona in personas:
        if persona.name.lower() == name.lower():
            return [persona]

    available = ", ".join(p.name for p in personas)
    raise PersonaError(f"Persona '{name}' not found. Available: {available}")
