"""Search-based ingestion of Canadian internship openings."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from opening_signals.config import PipelineConfig
from opening_signals.errors import ConfigError, StoreError
from opening_signals.models import SIGNAL_TYPE_SEARCH, ParsedListing, UpsertDiagnostics, utcnow
from opening_signals.reconcile import Reconciler
from opening_signals.scrapers.canada_extract import extract_jobs
from opening_signals.scrapers.canada_search import SEARCH_SOURCE, CanadaSearchScraper
from opening_signals.storage import SignalStore, build_store

logger = logging.getLogger(__name__)


@dataclass
class ExtractionDiagnostics:
    total_results: int = 0
    jobs_extracted: int = 0
    duplicates_skipped: int = 0


@dataclass
class CanadaReport:
    ok: bool = False
    jobs_found: int = 0
    error: Optional[str] = None
    searches: list[dict[str, Any]] = field(default_factory=list)
    extraction: ExtractionDiagnostics = field(default_factory=ExtractionDiagnostics)
    upsert: UpsertDiagnostics = field(default_factory=UpsertDiagnostics)
    duration_ms: int = 0

    @property
    def http_status(self) -> int:
        return 200 if self.ok else 500

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "ok": self.ok,
            "inserted": self.upsert.inserted,
            "updated": self.upsert.updated,
            "total": self.upsert.total,
            "jobs_found": self.jobs_found,
        }
        if self.error is not None:
            body["error"] = self.error
        body["debug"] = {
            "searches": self.searches,
            "extraction": asdict(self.extraction),
            "upsert": asdict(self.upsert),
            "duration_ms": self.duration_ms,
        }
        return body


def job_key(job: ParsedListing) -> str:
    """In-run identity of an extracted job."""
    return "|".join(
        [job.company_name, job.role_title, job.location or "", job.apply_url or ""]
    )


class CanadaSearchRun:
    """Search, extract, dedupe and reconcile Canadian internship openings.

    A failed query or upsert batch is recorded and the run continues;
    only a missing API key, a bad store configuration or a failed
    preservation lookup make the run fail.
    """

    def __init__(
        self,
        config: PipelineConfig,
        store: Optional[SignalStore] = None,
        scraper: Optional[CanadaSearchScraper] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self.search_config = config.canada_search
        self.store = store
        self.scraper = scraper or CanadaSearchScraper(self.search_config, config)
        self.clock = clock

    def run(self) -> CanadaReport:
        started = time.monotonic()
        report = CanadaReport()

        if not self.search_config.enabled:
            logger.info("Canada search is disabled in config; skipping")
            report.ok = True
            return report
        if not self.search_config.api_key:
            return self._fail(report, "Missing FIRECRAWL_API_KEY", started)
        try:
            store = self.store or build_store(self.config.store)
        except ConfigError as exc:
            return self._fail(report, str(exc), started)

        jobs = self._collect(report)
        report.jobs_found = len(jobs)
        logger.info("Total unique jobs extracted: %d", len(jobs))

        reconciler = Reconciler(
            store,
            term=self.search_config.term,
            source=SEARCH_SOURCE,
            signal_type=SIGNAL_TYPE_SEARCH,
            country=self.search_config.country,
            batch_size=self.search_config.upsert_batch_size,
            clock=self.clock,
        )
        try:
            result = reconciler.reconcile(jobs, fail_fast=False)
        except StoreError as exc:
            return self._fail(report, f"Store lookup failed: {exc}", started)

        report.upsert = UpsertDiagnostics(
            inserted=result.inserted,
            updated=result.updated,
            total=result.total,
            errors=result.errors,
        )
        report.ok = True
        report.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Canada search done: %d inserted, %d updated in %dms",
            result.inserted, result.updated, report.duration_ms,
        )
        return report

    def _collect(self, report: CanadaReport) -> list[ParsedListing]:
        jobs: list[ParsedListing] = []
        seen: set[str] = set()

        for outcome in self.scraper.search_all():
            report.extraction.total_results += len(outcome.results)
            query_jobs = 0
            for result in outcome.results:
                for job in extract_jobs(result):
                    key = job_key(job)
                    if key in seen:
                        report.extraction.duplicates_skipped += 1
                        continue
                    seen.add(key)
                    jobs.append(job)
                    query_jobs += 1

            report.searches.append(
                {
                    "query": outcome.query,
                    "results_count": len(outcome.results),
                    "jobs_extracted": query_jobs,
                    "error": outcome.error,
                }
            )

        report.extraction.jobs_extracted = len(jobs)
        return jobs

    @staticmethod
    def _fail(report: CanadaReport, error: str, started: float) -> CanadaReport:
        report.ok = False
        report.error = error
        report.duration_ms = int((time.monotonic() - started) * 1000)
        logger.error("Canada search failed: %s", error)
        return report
