"""Configuration loader for the opening-signals pipeline.

Reads config.yaml and returns typed configuration objects that the
orchestrator, the stores and the individual sources consume. Service
credentials come from the environment so they never land in the file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"

DEFAULT_README_URL = (
    "https://raw.githubusercontent.com/SimplifyJobs/Summer2026-Internships/master/README.md"
)
DEFAULT_TERM = "Summer 2026"


@dataclass
class SourceConfig:
    """The listings-table feed: one README plus optional structured mirrors."""

    name: str = "simplifyjobs_github"  # provenance tag written to every record
    readme_url: str = DEFAULT_README_URL
    term: str = DEFAULT_TERM
    structured_urls: list[str] = field(default_factory=list)


@dataclass
class StoreConfig:
    """Where opening signals are persisted."""

    backend: str = "json"  # "json" or "postgres"
    data_dir: str = "data"
    database_url: str = ""
    table: str = "opening_signals"


@dataclass
class CanadaSearchConfig:
    """Search-based ingestion of Canadian internship pages."""

    enabled: bool = True
    api_url: str = "https://api.firecrawl.dev/v1"
    api_key: str = ""
    term: str = DEFAULT_TERM
    country: str = "CA"
    queries: list[str] = field(default_factory=list)
    batch_size: int = 3
    batch_pause_seconds: float = 0.5
    results_per_query: int = 10
    upsert_batch_size: int = 20


@dataclass
class PipelineConfig:
    """Top-level pipeline configuration."""

    source: SourceConfig = field(default_factory=SourceConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    canada_search: CanadaSearchConfig = field(default_factory=CanadaSearchConfig)
    log_level: str = "INFO"
    request_delay_seconds: float = 0.0
    request_timeout_seconds: float = 30.0
    request_retries: int = 3
    freshness_window_hours: float = 48.0
    upsert_batch_size: int = 200
    user_agent: str = "Mozilla/5.0 (compatible; opening-signals/0.1)"


def load_config(path: Path | str | None = None) -> PipelineConfig:
    """Load the pipeline configuration from YAML and apply environment overrides."""
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        logger.warning("Config file not found at %s, using defaults", config_path)
        return apply_env_overrides(PipelineConfig())

    with open(config_path, "r") as f:
        raw = yaml.safe_load(f)

    if not raw:
        return apply_env_overrides(PipelineConfig())

    config = PipelineConfig(
        source=_load_source(raw.get("source") or {}),
        store=_load_store(raw.get("store") or {}),
        canada_search=_load_canada(raw.get("canada_search") or {}),
        log_level=raw.get("log_level", "INFO"),
        request_delay_seconds=raw.get("request_delay_seconds", 0.0),
        request_timeout_seconds=raw.get("request_timeout_seconds", 30.0),
        request_retries=raw.get("request_retries", 3),
        freshness_window_hours=raw.get("freshness_window_hours", 48.0),
        upsert_batch_size=raw.get("upsert_batch_size", 200),
        user_agent=raw.get("user_agent", PipelineConfig.user_agent),
    )
    return apply_env_overrides(config)


def apply_env_overrides(
    config: PipelineConfig, environ: dict[str, str] | None = None
) -> PipelineConfig:
    """Fill credentials and runtime switches from environment variables."""
    env = os.environ if environ is None else environ

    database_url = env.get("OPENING_SIGNALS_DATABASE_URL") or env.get("DATABASE_URL")
    if database_url:
        config.store.database_url = database_url
    if env.get("OPENING_SIGNALS_STORE"):
        config.store.backend = env["OPENING_SIGNALS_STORE"].strip().lower()
    if env.get("FIRECRAWL_API_KEY"):
        config.canada_search.api_key = env["FIRECRAWL_API_KEY"]
    if env.get("DEBUG_LOGS", "").lower() == "true":
        config.log_level = "DEBUG"
    return config


def _load_source(raw: dict[str, Any]) -> SourceConfig:
    return SourceConfig(
        name=raw.get("name", SourceConfig.name),
        readme_url=raw.get("readme_url", DEFAULT_README_URL),
        term=raw.get("term", DEFAULT_TERM),
        structured_urls=raw.get("structured_urls", []),
    )


def _load_store(raw: dict[str, Any]) -> StoreConfig:
    return StoreConfig(
        backend=str(raw.get("backend", "json")).lower(),
        data_dir=raw.get("data_dir", "data"),
        database_url=raw.get("database_url", ""),
        table=raw.get("table", "opening_signals"),
    )


def _load_canada(raw: dict[str, Any]) -> CanadaSearchConfig:
    return CanadaSearchConfig(
        enabled=raw.get("enabled", True),
        api_url=raw.get("api_url", CanadaSearchConfig.api_url),
        term=raw.get("term", DEFAULT_TERM),
        country=raw.get("country", "CA"),
        queries=raw.get("queries", []),
        batch_size=raw.get("batch_size", 3),
        batch_pause_seconds=raw.get("batch_pause_seconds", 0.5),
        results_per_query=raw.get("results_per_query", 10),
        upsert_batch_size=raw.get("upsert_batch_size", 20),
    )
