"""Listings-table source: the rendered README plus its structured mirrors.

The README is fetched as one document and handed to the table parser.
Before that, the configured structured URLs (JSON/CSV/YAML) are probed
concurrently; the first one that yields rows replaces HTML parsing for
the run. Probe failures are expected (most mirrors don't exist) and are
never reported as errors.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import requests

from opening_signals.config import PipelineConfig, SourceConfig
from opening_signals.errors import SourceFetchError
from opening_signals.models import ParsedListing
from opening_signals.scrapers.base import BaseScraper
from opening_signals.scrapers.structured import (
    STRUCTURED_ERRORS,
    detect_format,
    parse_structured,
)

logger = logging.getLogger(__name__)

PROBE_ACCEPT = "application/json,text/csv,text/yaml"


@dataclass
class FetchedDocument:
    url: str
    text: str
    status_code: int

    @property
    def size_bytes(self) -> int:
        return len(self.text.encode("utf-8"))


@dataclass
class StructuredResult:
    url: str
    format: str
    rows: list[ParsedListing]


class ListingsScraper(BaseScraper):
    """Fetches the listings README and probes its structured mirrors."""

    def __init__(
        self,
        source_config: SourceConfig,
        pipeline_config: PipelineConfig,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(pipeline_config, session)
        self.source_config = source_config

    @property
    def name(self) -> str:
        return self.source_config.name

    def fetch_document(self) -> FetchedDocument:
        """GET the README.

        Raises:
            SourceFetchError: network failure or a non-2xx response
        """
        url = self.source_config.readme_url
        logger.info("[%s] Fetching %s", self.name, url)
        resp = self._get(url)
        doc = FetchedDocument(url=url, text=resp.text, status_code=resp.status_code)
        logger.info("[%s] Fetched %d bytes", self.name, doc.size_bytes)
        return doc

    def probe_structured(self, now: datetime) -> Optional[StructuredResult]:
        """Return the first structured mirror that yields at least one row."""
        urls = list(self.source_config.structured_urls)
        if not urls:
            return None

        with ThreadPoolExecutor(max_workers=len(urls)) as pool:
            futs = {pool.submit(self._probe_one, url, now): url for url in urls}
            for fut in as_completed(futs):
                result = fut.result()
                if result is not None and result.rows:
                    for other in futs:
                        other.cancel()
                    logger.info(
                        "[%s] Structured source %s yielded %d rows",
                        self.name, result.url, len(result.rows),
                    )
                    return result

        logger.debug("[%s] No structured source available", self.name)
        return None

    def _probe_one(self, url: str, now: datetime) -> Optional[StructuredResult]:
        try:
            resp = self._get(url, retries=1, headers={"Accept": PROBE_ACCEPT})
        except SourceFetchError as exc:
            logger.debug("[%s] Probe %s unavailable: %s", self.name, url, exc)
            return None

        fmt = detect_format(url, resp.headers.get("Content-Type", ""))
        if fmt is None:
            return None
        try:
            rows = parse_structured(resp.text, fmt, self.source_config.term, now)
        except STRUCTURED_ERRORS as exc:
            logger.debug("[%s] Probe %s returned unparseable %s: %s", self.name, url, fmt, exc)
            return None
        return StructuredResult(url=url, format=fmt, rows=rows)
