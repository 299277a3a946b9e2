"""Firecrawl-compatible web search for Canadian internship pages.

Queries run in small concurrent batches with a pause between batches so
the search API never sees more than ``batch_size`` requests at once.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Optional

import requests

from opening_signals.config import CanadaSearchConfig, PipelineConfig
from opening_signals.errors import SourceFetchError
from opening_signals.scrapers.base import BaseScraper

logger = logging.getLogger(__name__)

SEARCH_SOURCE = "firecrawl_search"


@dataclass
class SearchOutcome:
    query: str
    results: list[dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None


class CanadaSearchScraper(BaseScraper):
    """Runs the configured search queries against the search API."""

    def __init__(
        self,
        search_config: CanadaSearchConfig,
        pipeline_config: PipelineConfig,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(pipeline_config, session)
        self.search_config = search_config

    @property
    def name(self) -> str:
        return SEARCH_SOURCE

    def search(self, query: str) -> SearchOutcome:
        """Run one query. Failures come back in ``error``, never raised."""
        url = f"{self.search_config.api_url.rstrip('/')}/search"
        payload = {
            "query": query,
            "limit": self.search_config.results_per_query,
            "lang": "en",
            "country": self.search_config.country,
            "scrapeOptions": {"formats": ["markdown"], "onlyMainContent": True},
        }
        headers = {"Authorization": f"Bearer {self.search_config.api_key}"}

        try:
            resp = self._post(url, json=payload, headers=headers)
            data = resp.json()
        except SourceFetchError as exc:
            logger.error("[%s] Search failed for %r: %s", self.name, query, exc)
            return SearchOutcome(query=query, error=str(exc))
        except ValueError as exc:
            logger.error("[%s] Search for %r returned invalid JSON: %s", self.name, query, exc)
            return SearchOutcome(query=query, error=f"Invalid JSON response: {exc}")

        results = (data.get("data") or []) if isinstance(data, dict) else []
        logger.info("[%s] %r returned %d results", self.name, query, len(results))
        return SearchOutcome(query=query, results=results)

    def search_all(self) -> list[SearchOutcome]:
        """Run every configured query, ``batch_size`` at a time, in query order."""
        queries = list(self.search_config.queries)
        batch_size = max(1, self.search_config.batch_size)
        outcomes: list[SearchOutcome] = []

        for start in range(0, len(queries), batch_size):
            batch = queries[start:start + batch_size]
            with ThreadPoolExecutor(max_workers=len(batch)) as pool:
                outcomes.extend(pool.map(self.search, batch))
            if start + batch_size < len(queries):
                time.sleep(self.search_config.batch_pause_seconds)

        return outcomes
