"""Configuration management."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from news_processor.core import RetryPolicy
from news_processor.use_cases import ProcessorConfig


class ConfigError(ValueError):
    """Invalid or missing configuration. Fatal at startup."""


@dataclass
class LLMConfig:
    """Chat completion endpoint settings."""
    url: str = ""
    api_key: str = ""
    model: str = ""
    image_model: str = ""
    timeout: float = 300.0


@dataclass
class ProcessingConfig:
    """Pipeline feature flags."""
    max_entries: int = 25
    image_enabled: bool = True
    url_summary_enabled: bool = True
    max_link_content_chars: int = 20000
    excluded_link_domains: list[str] = field(default_factory=lambda: ["reddit.com", "redd.it"])


@dataclass
class RetryConfig:
    """Retry policies per call site."""
    entry: RetryPolicy = field(default_factory=lambda: RetryPolicy(
        max_retries=3, initial_backoff=1.0, backoff_factor=2.0, max_backoff=10.0, max_total_timeout=None,
    ))
    fetch: RetryPolicy = field(default_factory=lambda: RetryPolicy(
        max_retries=3, initial_backoff=1.0, backoff_factor=2.0, max_backoff=30.0, max_total_timeout=120.0,
    ))
    model_loading: RetryPolicy = field(default_factory=lambda: RetryPolicy(
        max_retries=5, initial_backoff=1.0, backoff_factor=2.0, max_backoff=30.0, max_total_timeout=1800.0,
    ))


@dataclass
class PathsConfig:
    """Path settings."""
    personas_dir: Path = Path("personas")
    digests_dir: Path = Path("digests")
    sent_log: Path = Path("data/sent_ids.json")
    run_records_dir: Path = Path("benchmarkresults")


@dataclass
class AuditConfig:
    """Run record output and audit submission."""
    output_run_record: bool = False
    submit: bool = False
    service_url: str = ""


@dataclass
class Settings:
    """Application settings."""

    slack_webhook_url: Optional[str] = None

    llm: LLMConfig = field(default_factory=LLMConfig)
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)

    def validate(self) -> None:
        """Raise ``ConfigError`` describing the first problem found."""
        if not self.llm.url:
            raise ConfigError("LLM URL is required (llm.url or NP_LLM_URL)")
        if not self.llm.model:
            raise ConfigError("LLM model is required (llm.model or NP_LLM_MODEL)")
        if self.processing.image_enabled and not self.llm.image_model:
            raise ConfigError(
                "an image model is required when image processing is enabled "
                "(llm.image_model or NP_LLM_IMAGE_MODEL)"
            )
        if self.processing.max_entries < 0:
            raise ConfigError("processing.max_entries cannot be negative")
        if self.audit.submit and not self.audit.service_url:
            raise ConfigError("audit.service_url is required when audit submission is enabled")

        for name in ("entry", "fetch", "model_loading"):
            _validate_policy(name, getattr(self.retry, name))

    def processor_config(self) -> ProcessorConfig:
        return ProcessorConfig(
            image_enabled=self.processing.image_enabled,
            url_summary_enabled=self.processing.url_summary_enabled,
            entry_policy=self.retry.entry,
            enrichment_policy=self.retry.entry,
            max_link_content_chars=self.processing.max_link_content_chars,
        )


def _validate_policy(name: str, policy: RetryPolicy) -> None:
    if policy.max_retries < 0:
        raise ConfigError(f"retry.{name}.max_retries cannot be negative")
    if policy.initial_backoff < 0 or policy.max_backoff < 0:
        raise ConfigError(f"retry.{name} backoff durations cannot be negative")
    if policy.backoff_factor < 1:
        raise ConfigError(f"retry.{name}.backoff_factor must be at least 1")
    if policy.max_total_timeout is not None and policy.max_total_timeout < 0:
        raise ConfigError(f"retry.{name}.max_total_timeout cannot be negative")


def load_config(config_path: Path = Path("config.yaml")) -> dict:
    """Load configuration from YAML file."""
    if not config_path.exists():
        return {}

    with open(config_path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"{config_path} is not valid YAML: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping")
    return data


def _section(config: dict, name: str) -> dict:
    """Return a config section, treating an empty section as no overrides."""
    values = config.get(name)
    if values is None:
        return {}
    if not isinstance(values, dict):
        raise ConfigError(f"section {name} must be a mapping")
    return values


def _apply_section(target: object, values: dict, section: str) -> None:
    for key, value in values.items():
        if not hasattr(target, key):
            raise ConfigError(f"unknown setting {section}.{key}")
        setattr(target, key, value)


def get_settings(config_path: Path = Path("config.yaml")) -> Settings:
    """Get application settings from YAML config and environment."""
    config = load_config(config_path)

    settings = Settings()

    _apply_section(settings.llm, _section(config, "llm"), "llm")
    _apply_section(settings.processing, _section(config, "processing"), "processing")

    for name, values in _section(config, "retry").items():
        if not hasattr(settings.retry, name):
            raise ConfigError(f"unknown retry policy {name}")
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ConfigError(f"retry.{name} must be a mapping")
        try:
            setattr(settings.retry, name, RetryPolicy(**values))
        except TypeError as e:
            raise ConfigError(f"invalid retry.{name}: {e}") from e

    for key, value in _section(config, "paths").items():
        if not hasattr(settings.paths, key):
            raise ConfigError(f"unknown setting paths.{key}")
        if not isinstance(value, str):
            raise ConfigError(f"paths.{key} must be a string")
        setattr(settings.paths, key, Path(value))

    _apply_section(settings.audit, _section(config, "audit"), "audit")

    # Secrets and endpoints from environment win over the file
    settings.llm.api_key = os.getenv("NP_LLM_API_KEY", settings.llm.api_key)
    settings.llm.url = os.getenv("NP_LLM_URL", settings.llm.url)
    settings.llm.model = os.getenv("NP_LLM_MODEL", settings.llm.model)
    settings.llm.image_model = os.getenv("NP_LLM_IMAGE_MODEL", settings.llm.image_model)
    settings.audit.service_url = os.getenv("NP_AUDIT_SERVICE_URL", settings.audit.service_url)
    settings.slack_webhook_url = os.getenv("SLACK_WEBHOOK_URL", settings.slack_webhook_url)

    return settings
