"""Shared fixtures: a fixed clock, a throwaway JSON store and a test config."""

from datetime import datetime, timezone

import pytest

from opening_signals.config import PipelineConfig, SourceConfig, StoreConfig
from opening_signals.storage import JsonSignalStore

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
README_URL = "https://raw.example.com/listings/README.md"

_ENV_VARS = (
    "OPENING_SIGNALS_DATABASE_URL",
    "DATABASE_URL",
    "OPENING_SIGNALS_STORE",
    "FIRECRAWL_API_KEY",
    "DEBUG_LOGS",
)


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def store(tmp_path):
    return JsonSignalStore(tmp_path / "data")


@pytest.fixture
def config(tmp_path):
    """Single attempt per request and no structured probes, so tests never sleep."""
    return PipelineConfig(
        source=SourceConfig(readme_url=README_URL, term="Summer 2026", structured_urls=[]),
        store=StoreConfig(backend="json", data_dir=str(tmp_path / "data")),
        request_retries=1,
    )


def make_table(rows, header=("Company", "Role", "Location", "Application", "Age")):
    """Render listing rows as an HTML table the way the README does."""
    head = "".join(f"<th>{h}</th>" for h in header) if header else ""
    body = "".join(
        "<tr>" + "".join(f"<td>{cell}</td>" for cell in row) + "</tr>" for row in rows
    )
    thead = f"<thead><tr>{head}</tr></thead>" if header else ""
    return f"<table>{thead}<tbody>{body}</tbody></table>"


def apply_link(url):
    return f'<a href="{url}"><img src="apply.png" alt="Apply"></a>'
