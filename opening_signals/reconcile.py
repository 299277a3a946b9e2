"""Reconciliation of freshly parsed rows against the stored signals.

Every fresh row becomes an OpeningSignal keyed by its listing hash. The
merge policy for a hash that is already stored:

  - ``posted_at``: the stored value wins; otherwise the parsed value;
    otherwise now. ``age_days`` is always recomputed from it.
  - ``first_seen_at``: left to the store, which never overwrites it.
  - ``last_seen_at`` is now and ``is_active`` is true for every row.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from opening_signals.ages import derive_age
from opening_signals.errors import StoreError, UpsertError
from opening_signals.models import (
    SIGNAL_TYPE_POSTED,
    OpeningSignal,
    ParsedListing,
    compute_listing_hash,
    utcnow,
)
from opening_signals.normalize import clean_company_name, normalize_role_title
from opening_signals.storage import SignalStore

logger = logging.getLogger(__name__)

_PRODUCT_RE = re.compile(r"product\s*(manager|management|lead)|\bpm\s+intern|\bapm\b")
_DATA_RE = re.compile(
    r"data\s*scien|machine\s*learn|\bml\b|\bai\b|deep\s*learn|\bnlp\b|computer\s*vision"
    r"|analytics|data\s*analyst"
)
_QUANT_RE = re.compile(r"quant|trading|algorithmic|financial\s*engineer")
_HARDWARE_RE = re.compile(r"hardware|electrical|embedded|firmware|asic|fpga|chip|semiconductor")
_SOFTWARE_RE = re.compile(
    r"software|\bswe\b|\bsde\b|developer|engineer|programming|full\s*stack|front\s*end"
    r"|back\s*end|devops|platform|cloud"
)
_NEW_GRAD_RE = re.compile(r"new\s*grad|entry\s*level|junior|associate|graduate|full\s*time")
_INTERN_RE = re.compile(r"intern")


def classify_role_category(role_title: str) -> str:
    title = role_title.lower()
    if _PRODUCT_RE.search(title):
        return "product_management"
    if _DATA_RE.search(title):
        return "data_science"
    if _QUANT_RE.search(title):
        return "quantitative_finance"
    if _HARDWARE_RE.search(title):
        return "hardware_engineering"
    if _SOFTWARE_RE.search(title):
        return "software_engineering"
    return "other"


def classify_job_type(role_title: str) -> str:
    title = role_title.lower()
    if _NEW_GRAD_RE.search(title) and not _INTERN_RE.search(title):
        return "new_grad"
    return "internship"


@dataclass
class ReconcileResult:
    inserted: int = 0
    updated: int = 0
    total: int = 0
    errors: list[str] = field(default_factory=list)


class Reconciler:
    """Turns ParsedListing rows into stored OpeningSignal records.

    Args:
        store: Where records are looked up and upserted
        term: Hiring term recorded on (and hashed into) every record
        source: Provenance tag, e.g. "simplifyjobs_github"
        signal_type: "job_posted" for the table feed, "opening" for search
        country: Default country for rows that don't carry one
        batch_size: Records per upsert call
        clock: Returns the current time; injectable for tests
    """

    def __init__(
        self,
        store: SignalStore,
        term: str,
        source: str,
        *,
        signal_type: str = SIGNAL_TYPE_POSTED,
        country: Optional[str] = None,
        batch_size: int = 200,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.term = term
        self.source = source
        self.signal_type = signal_type
        self.country = country
        self.batch_size = max(1, batch_size)
        self.clock = clock

    def reconcile(
        self,
        rows: Iterable[ParsedListing],
        *,
        fail_fast: bool = True,
        now: Optional[datetime] = None,
    ) -> ReconcileResult:
        """Merge ``rows`` into the store.

        With ``fail_fast`` a failed batch raises UpsertError carrying the
        counts of the batches already written. Without it the failure is
        recorded in ``errors`` and the remaining batches still run.

        Raises:
            StoreError: the preservation lookup failed
            UpsertError: a batch failed and ``fail_fast`` is set
        """
        now = now or self.clock()
        records = self.build_records(rows, now)
        result = ReconcileResult()

        for start in range(0, len(records), self.batch_size):
            batch = records[start:start + self.batch_size]
            batch_number = start // self.batch_size
            try:
                inserted, updated = self.store.upsert(batch)
            except StoreError as exc:
                message = f"Batch {batch_number}: {exc}"
                logger.error("Upsert failed for %s", message)
                if fail_fast:
                    raise UpsertError(
                        message, inserted=result.inserted, updated=result.updated
                    ) from exc
                result.errors.append(message)
                continue
            result.inserted += inserted
            result.updated += updated
            logger.debug(
                "Batch %d: %d inserted, %d updated", batch_number, inserted, updated
            )

        result.total = result.inserted + result.updated
        logger.info(
            "Reconciled %d records (%d new, %d updated)",
            result.total, result.inserted, result.updated,
        )
        return result

    def build_records(self, rows: Iterable[ParsedListing], now: datetime) -> list[OpeningSignal]:
        """Normalize, hash and merge rows with their stored counterparts.

        Rows that hash identically collapse to the first one.
        """
        keyed: dict[str, ParsedListing] = {}
        for row in rows:
            company = clean_company_name(row.company_name)
            role = normalize_role_title(row.role_title, self.term)
            if not company or not role:
                logger.debug("Dropping row without company or role: %r", row)
                continue
            location = (row.location or "").strip() or None
            listing_hash = compute_listing_hash(company, role, location, self.term, row.apply_url)
            if listing_hash in keyed:
                continue
            keyed[listing_hash] = replace(
                row, company_name=company, role_title=role, location=location
            )

        existing = self.store.fetch_by_hashes(list(keyed))
        logger.debug("%d of %d hashes already stored", len(existing), len(keyed))

        records = []
        for listing_hash, row in keyed.items():
            stored = existing.get(listing_hash)
            age_days, posted_at = derive_age(
                now, posted_at=self._merged_posted_at(row, stored, now)
            )
            records.append(
                OpeningSignal(
                    listing_hash=listing_hash,
                    company_name=row.company_name,
                    role_title=row.role_title,
                    term=self.term,
                    source=self.source,
                    location=row.location,
                    apply_url=row.apply_url,
                    signal_type=self.signal_type,
                    is_active=True,
                    first_seen_at=now,
                    last_seen_at=now,
                    posted_at=posted_at,
                    age_days=age_days,
                    country=row.country or self.country,
                    role_category=classify_role_category(row.role_title),
                    job_type=classify_job_type(row.role_title),
                    created_at=now,
                )
            )
        return records

    @staticmethod
    def _merged_posted_at(
        row: ParsedListing, stored: Optional[OpeningSignal], now: datetime
    ) -> datetime:
        if stored is not None and stored.posted_at is not None:
            return stored.posted_at
        if row.posted_at is not None:
            return row.posted_at
        if row.age_days is not None:
            return now - timedelta(days=row.age_days)
        return now
