"""News processor: persona-driven feed digests with LLM enrichment."""

__version__ = "0.1.0"
