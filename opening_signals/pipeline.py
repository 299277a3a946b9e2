"""Refresh orchestrator: sweep, fetch, parse, dedupe, reconcile.

One invocation is one stateless batch run:

  1. SWEEPING: deactivate signals not seen within the freshness window.
     Runs first and unconditionally; failures are recorded, not fatal.
  2. FETCHING: probe the structured mirrors, else fetch the README.
     A fetch failure ends the run (FAILED).
  3. PARSING: split tables into active/inactive and parse every row.
     Never fails; an empty parse ends the run successfully with a note.
  4. DEDUPING: alignment check, then one row per apply URL.
  5. RECONCILING: merge with stored state and upsert. A store failure
     ends the run (FAILED).
  6. Inactive sync: URLs listed only under "Inactive roles" are
     deactivated. Non-fatal.

Whatever happens, ``run()`` returns a RunReport; it does not raise.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from opening_signals.config import PipelineConfig
from opening_signals.dedupe import dedupe_by_apply_url, verify_company_url_alignment
from opening_signals.errors import ConfigError, SourceFetchError, StoreError, UpsertError
from opening_signals.models import (
    FetchDiagnostics,
    ParsedListing,
    RunReport,
    utcnow,
)
from opening_signals.normalize import apply_url_key
from opening_signals.reconcile import Reconciler
from opening_signals.scrapers.listings import FetchedDocument, ListingsScraper
from opening_signals.storage import SignalStore, build_store
from opening_signals.sweeper import sweep_stale
from opening_signals.tables import TableParseResult, extract_tables, parse_table

logger = logging.getLogger(__name__)

MAX_LOGGED_PARSE_ERRORS = 5


class RunState(str, Enum):
    SWEEPING = "SWEEPING"
    FETCHING = "FETCHING"
    PARSING = "PARSING"
    DEDUPING = "DEDUPING"
    RECONCILING = "RECONCILING"
    DONE = "DONE"
    FAILED = "FAILED"


class RefreshPipeline:
    """Runs one refresh of the opening-signals table.

    Args:
        config: Pipeline configuration
        store: Signal store; built from ``config.store`` when omitted
        scraper: Listings source; built from ``config.source`` when omitted
        clock: Returns the current time; injectable for tests
    """

    def __init__(
        self,
        config: PipelineConfig,
        store: Optional[SignalStore] = None,
        scraper: Optional[ListingsScraper] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self.store = store
        self.scraper = scraper or ListingsScraper(config.source, config)
        self.clock = clock

    @property
    def term(self) -> str:
        return self.config.source.term

    def run(self) -> RunReport:
        started = time.monotonic()
        now = self.clock()
        report = RunReport(fetch=FetchDiagnostics(url=self.config.source.readme_url))
        logger.info("Starting refresh for %s (%s)", self.config.source.name, self.term)

        try:
            store = self.store or build_store(self.config.store)
        except ConfigError as exc:
            report.fetch.status = "skipped"
            return self._fail(report, str(exc), started)

        self._set_state(report, RunState.SWEEPING)
        self._sweep(store, report, now)

        self._set_state(report, RunState.FETCHING)
        structured = self.scraper.probe_structured(now)
        inactive_rows: list[ParsedListing] = []
        if structured is not None:
            report.fetch.url = structured.url
            report.fetch.status = "success"
            report.parsing.method = "structured"
            active_rows = structured.rows
            report.parsing.rows_parsed = report.parsing.active_rows_parsed = len(active_rows)
        else:
            try:
                doc = self.scraper.fetch_document()
            except SourceFetchError as exc:
                report.fetch.status = "failed"
                report.fetch.status_code = exc.status_code
                report.fetch.error = str(exc)
                return self._fail(report, f"Failed to fetch source: {exc}", started)
            report.fetch.status = "success"
            report.fetch.status_code = doc.status_code
            report.fetch.size_bytes = doc.size_bytes

            self._set_state(report, RunState.PARSING)
            active_rows, inactive_rows = self._parse_document(doc, report, now)

        if not active_rows and not inactive_rows:
            report.parsing.note = "No rows parsed from source"
            logger.warning("No rows parsed from source; nothing to reconcile")
            return self._finish(report, started)

        self._set_state(report, RunState.DEDUPING)
        report.verification = {
            "company_url_alignment": verify_company_url_alignment(active_rows)
        }
        unique_rows = dedupe_by_apply_url(active_rows)
        logger.info("De-duplicated %d active rows to %d", len(active_rows), len(unique_rows))

        self._set_state(report, RunState.RECONCILING)
        reconciler = Reconciler(
            store,
            term=self.term,
            source=self.config.source.name,
            batch_size=self.config.upsert_batch_size,
            clock=self.clock,
        )
        try:
            result = reconciler.reconcile(unique_rows, now=now)
        except UpsertError as exc:
            report.upsert.inserted = exc.inserted
            report.upsert.updated = exc.updated
            report.upsert.total = exc.inserted + exc.updated
            report.upsert.errors.append(str(exc))
            return self._fail(report, f"Upsert failed: {exc}", started)
        except StoreError as exc:
            report.upsert.errors.append(str(exc))
            return self._fail(report, f"Store lookup failed: {exc}", started)

        report.upsert.inserted = result.inserted
        report.upsert.updated = result.updated
        report.upsert.total = result.total

        self._sync_inactive(store, report, active_rows, inactive_rows)
        return self._finish(report, started)

    # ── Stages ────────────────────────────────────────────────────────────

    def _sweep(self, store: SignalStore, report: RunReport, now: datetime) -> None:
        window = timedelta(hours=self.config.freshness_window_hours)
        try:
            report.stale_cleanup.deactivated = sweep_stale(store, window, now)
        except StoreError as exc:
            logger.error("Stale cleanup failed: %s", exc)
            report.stale_cleanup.error = str(exc)

    def _parse_document(
        self, doc: FetchedDocument, report: RunReport, now: datetime
    ) -> tuple[list[ParsedListing], list[ParsedListing]]:
        extracted = extract_tables(doc.text)
        parsing = report.parsing
        parsing.method = "html"
        parsing.tables_found = extracted.total
        parsing.active_tables = len(extracted.active_tables)
        parsing.inactive_tables = len(extracted.inactive_tables)
        logger.info(
            "Found %d active and %d inactive tables",
            parsing.active_tables, parsing.inactive_tables,
        )

        active = TableParseResult()
        for idx, table in enumerate(extracted.active_tables):
            active.extend(
                parse_table(table, False, self.term, table_index=idx, now=now, base_url=doc.url)
            )

        inactive = TableParseResult()
        offset = len(extracted.active_tables)
        for idx, table in enumerate(extracted.inactive_tables):
            inactive.extend(
                parse_table(
                    table, True, self.term, table_index=offset + idx, now=now, base_url=doc.url
                )
            )

        parsing.active_rows_parsed = len(active.rows)
        parsing.inactive_rows_parsed = len(inactive.rows)
        parsing.rows_parsed = len(active.rows) + len(inactive.rows)
        parsing.errors = active.errors + inactive.errors
        parsing.skipped = active.skipped_count + inactive.skipped_count

        logger.info(
            "Parsed %d active and %d inactive rows (%d skipped, %d errors)",
            len(active.rows), len(inactive.rows), parsing.skipped, len(parsing.errors),
        )
        if parsing.errors:
            logger.warning("Parse errors: %s", parsing.errors[:MAX_LOGGED_PARSE_ERRORS])

        return active.rows, inactive.rows

    def _sync_inactive(
        self,
        store: SignalStore,
        report: RunReport,
        active_rows: list[ParsedListing],
        inactive_rows: list[ParsedListing],
    ) -> None:
        """Deactivate URLs listed only in inactive sections."""
        active_keys = {apply_url_key(r.apply_url) for r in active_rows if r.apply_url}
        inactive_only = [
            r.apply_url
            for r in inactive_rows
            if r.apply_url and apply_url_key(r.apply_url) not in active_keys
        ]
        if not inactive_only:
            return
        try:
            report.inactive_sync.deactivated = store.deactivate_by_apply_urls(inactive_only)
            logger.info(
                "Deactivated %d signals listed as inactive", report.inactive_sync.deactivated
            )
        except StoreError as exc:
            logger.error("Inactive sync failed: %s", exc)
            report.inactive_sync.error = str(exc)

    # ── Report helpers ────────────────────────────────────────────────────

    @staticmethod
    def _set_state(report: RunReport, state: RunState) -> None:
        report.state = state.value
        logger.debug("State -> %s", state.value)

    def _finish(self, report: RunReport, started: float) -> RunReport:
        self._set_state(report, RunState.DONE)
        report.ok = True
        report.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Refresh done: %d inserted, %d updated, %d deactivated in %dms",
            report.upsert.inserted, report.upsert.updated,
            report.stale_cleanup.deactivated, report.duration_ms,
        )
        return report

    def _fail(self, report: RunReport, error: str, started: float) -> RunReport:
        self._set_state(report, RunState.FAILED)
        report.ok = False
        report.error = error
        report.duration_ms = int((time.monotonic() - started) * 1000)
        logger.error("Refresh failed: %s", error)
        return report
