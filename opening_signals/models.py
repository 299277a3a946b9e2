"""Data models for the opening-signals pipeline."""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Optional

SIGNAL_TYPE_POSTED = "job_posted"
SIGNAL_TYPE_SEARCH = "opening"

_TIMESTAMP_FIELDS = ("first_seen_at", "last_seen_at", "posted_at", "created_at")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_listing_hash(
    company_name: str,
    role_title: str,
    location: Optional[str],
    term: str,
    apply_url: Optional[str],
) -> str:
    """Identity hash of a listing, used as the upsert conflict key.

    Fields are concatenated in fixed order with None as the empty
    string. Each field is whitespace-collapsed and case-folded first, so
    a listing whose source only changed casing or spacing keeps its
    hash. Stored display values are left as they are.
    """
    combined = "".join(
        _hash_part(part) for part in (company_name, role_title, location, term, apply_url)
    )
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()


def _hash_part(value: Optional[str]) -> str:
    return " ".join((value or "").split()).casefold()


@dataclass
class ParsedListing:
    """One row as read from a source, before reconciliation.

    ``age_days`` and ``posted_at`` are always both set once a row leaves
    a parser; see ``ages.derive_age``.
    """

    company_name: str
    role_title: str
    location: Optional[str] = None
    apply_url: Optional[str] = None
    age_days: Optional[int] = None
    posted_at: Optional[datetime] = None
    row_index: int = 0
    country: Optional[str] = None

    def __repr__(self) -> str:
        return (
            f"ParsedListing(company={self.company_name!r}, role={self.role_title!r}, "
            f"apply_url={self.apply_url!r}, age_days={self.age_days!r})"
        )


@dataclass
class OpeningSignal:
    """The persisted record for one listing, keyed by ``listing_hash``."""

    listing_hash: str
    company_name: str
    role_title: str
    term: str
    source: str
    location: Optional[str] = None
    apply_url: Optional[str] = None
    signal_type: str = SIGNAL_TYPE_POSTED
    is_active: bool = True
    first_seen_at: datetime = field(default_factory=utcnow)
    last_seen_at: datetime = field(default_factory=utcnow)
    posted_at: Optional[datetime] = None
    age_days: Optional[int] = None
    country: Optional[str] = None
    role_category: Optional[str] = None
    job_type: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-safe dictionary (timestamps as ISO 8601)."""
        d = asdict(self)
        for key in _TIMESTAMP_FIELDS:
            if d[key] is not None:
                d[key] = d[key].isoformat()
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OpeningSignal":
        values = dict(data)
        for key in _TIMESTAMP_FIELDS:
            values[key] = parse_timestamp(values.get(key))
        # Unknown keys come from newer schema versions; ignore them.
        known = set(cls.__dataclass_fields__)
        kwargs = {k: v for k, v in values.items() if k in known}
        for key in ("id", "first_seen_at", "last_seen_at", "created_at"):
            if kwargs.get(key) is None:
                kwargs.pop(key, None)
        if "is_active" in kwargs and kwargs["is_active"] is None:
            kwargs["is_active"] = False
        return cls(**kwargs)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ── Run diagnostics ────────────────────────────────────────────────────────


@dataclass
class FetchDiagnostics:
    url: str
    status: str = "pending"  # pending | success | failed | skipped
    status_code: Optional[int] = None
    size_bytes: Optional[int] = None
    error: Optional[str] = None


@dataclass
class ParseDiagnostics:
    method: str = "html"  # html | structured
    tables_found: int = 0
    active_tables: int = 0
    inactive_tables: int = 0
    rows_parsed: int = 0
    active_rows_parsed: int = 0
    inactive_rows_parsed: int = 0
    errors: list[str] = field(default_factory=list)
    skipped: int = 0
    note: Optional[str] = None


@dataclass
class UpsertDiagnostics:
    inserted: int = 0
    updated: int = 0
    total: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class SweepDiagnostics:
    deactivated: int = 0
    error: Optional[str] = None


@dataclass
class RunReport:
    """Structured result of one refresh run, rendered as the JSON response."""

    fetch: FetchDiagnostics
    parsing: ParseDiagnostics = field(default_factory=ParseDiagnostics)
    upsert: UpsertDiagnostics = field(default_factory=UpsertDiagnostics)
    stale_cleanup: SweepDiagnostics = field(default_factory=SweepDiagnostics)
    inactive_sync: SweepDiagnostics = field(default_factory=SweepDiagnostics)
    verification: dict[str, Any] = field(default_factory=dict)
    state: str = "SWEEPING"
    ok: bool = False
    error: Optional[str] = None
    duration_ms: int = 0

    @property
    def http_status(self) -> int:
        return 200 if self.ok else 500

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "ok": self.ok,
            "inserted": self.upsert.inserted,
            "updated": self.upsert.updated,
            "deactivated": self.stale_cleanup.deactivated,
            "total": self.upsert.total,
        }
        if self.error is not None:
            body["error"] = self.error
        body["debug"] = {
            "state": self.state,
            "source_fetch": _without_none(asdict(self.fetch)),
            "parsing": _without_none(asdict(self.parsing)),
            "verification": self.verification,
            "upsert": asdict(self.upsert),
            "stale_cleanup": _without_none(asdict(self.stale_cleanup)),
            "inactive_sync": _without_none(asdict(self.inactive_sync)),
            "duration_ms": self.duration_ms,
        }
        return body


def _without_none(d: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in d.items() if v is not None}
