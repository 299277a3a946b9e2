"""Parsers for structured mirrors of the listings table (JSON, CSV, YAML).

Rows come out exactly as the HTML table parser would produce them:
company continuation is folded, role titles normalized, ages derived.
Only rows with a usable apply URL are kept, since structured mirrors
feed the active-listings path.
"""

from __future__ import annotations

import csv
import io
import json
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable, Optional
from urllib.parse import urlparse

import yaml

from opening_signals.ages import derive_age, parse_absolute_date, parse_age_cell
from opening_signals.models import ParsedListing
from opening_signals.normalize import (
    is_valid_apply_url,
    normalize_apply_url,
    normalize_role_title,
    resolve_company,
)
from opening_signals.tables import ColumnRole, classify_header

logger = logging.getLogger(__name__)

COMPANY_KEYS = ("company", "company_name")
ROLE_KEYS = ("role", "role_title", "title")
LOCATION_KEYS = ("location", "locations")
APPLY_KEYS = ("apply_url", "url", "link")
POSTED_KEYS = ("posted_at", "posted_date", "date_posted")
AGE_KEYS = ("age", "age_days")

_CSV_FIELDS = {
    ColumnRole.COMPANY: "company",
    ColumnRole.ROLE: "role",
    ColumnRole.LOCATION: "location",
    ColumnRole.APPLY: "apply_url",
    ColumnRole.AGE: "age",
}

# Top-level keys under which a JSON/YAML document may nest its list.
_CONTAINER_KEYS = ("listings", "jobs", "data")

STRUCTURED_ERRORS = (ValueError, csv.Error, yaml.YAMLError)

# Raised by out-of-range ages and epoch timestamps in a single record.
RECORD_ERRORS = (ValueError, OverflowError, OSError, TypeError)


def detect_format(url: str, content_type: str = "") -> Optional[str]:
    """Return "json", "csv" or "yaml" from the content type or URL suffix."""
    content_type = (content_type or "").lower()
    path = urlparse(url).path.lower()
    if "json" in content_type or path.endswith(".json"):
        return "json"
    if "csv" in content_type or path.endswith(".csv"):
        return "csv"
    if "yaml" in content_type or path.endswith((".yaml", ".yml")):
        return "yaml"
    return None


def parse_structured(
    text: str, fmt: str, term: Optional[str], now: datetime
) -> list[ParsedListing]:
    """Parse a structured payload into listings.

    Raises:
        ValueError, csv.Error, yaml.YAMLError: the payload is malformed
    """
    if fmt == "json":
        return build_rows(_as_records(json.loads(text)), term, now)
    if fmt == "yaml":
        return build_rows(_as_records(yaml.safe_load(text)), term, now)
    if fmt == "csv":
        return build_rows(_csv_records(text), term, now)
    raise ValueError(f"Unsupported structured format: {fmt!r}")


def build_rows(
    records: Iterable[Any], term: Optional[str], now: datetime
) -> list[ParsedListing]:
    rows: list[ParsedListing] = []
    carry: Optional[str] = None
    dropped = 0

    for index, item in enumerate(records):
        if not isinstance(item, dict):
            dropped += 1
            continue
        if item.get("active") is False or item.get("is_visible") is False:
            dropped += 1
            continue

        company, carry = resolve_company(_first_text(item, COMPANY_KEYS), carry)
        role = normalize_role_title(_first_text(item, ROLE_KEYS), term)
        apply_url = normalize_apply_url(_first_text(item, APPLY_KEYS))
        if not company or not role or not is_valid_apply_url(apply_url):
            dropped += 1
            continue

        try:
            age_days, posted_at = _item_age(item, now)
        except RECORD_ERRORS as exc:
            logger.debug("Dropping structured record %d: %s", index, exc)
            dropped += 1
            continue
        rows.append(
            ParsedListing(
                company_name=company,
                role_title=role,
                location=_first_text(item, LOCATION_KEYS) or None,
                apply_url=apply_url,
                age_days=age_days,
                posted_at=posted_at,
                row_index=index,
            )
        )

    if dropped:
        logger.debug("Dropped %d structured records", dropped)
    return rows


def _as_records(data: Any) -> list[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in _CONTAINER_KEYS:
            if isinstance(data.get(key), list):
                return data[key]
    return []


def _csv_records(text: str) -> list[dict[str, str]]:
    reader = csv.DictReader(io.StringIO(text))
    fields: dict[str, str] = {}
    for name in reader.fieldnames or []:
        role = classify_header(name or "")
        canonical = _CSV_FIELDS.get(role)
        if canonical and canonical not in fields.values():
            fields[name] = canonical

    if "company" not in fields.values() or "role" not in fields.values():
        logger.debug("CSV header has no company/role columns: %s", reader.fieldnames)
        return []

    return [
        {canonical: (row.get(name) or "").strip() for name, canonical in fields.items()}
        for row in reader
    ]


def _first_text(item: dict[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = item.get(key)
        if isinstance(value, list):
            value = "; ".join(str(v).strip() for v in value if str(v).strip())
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def _item_age(item: dict[str, Any], now: datetime) -> tuple[int, datetime]:
    for key in POSTED_KEYS:
        posted = _to_datetime(item.get(key), now)
        if posted is not None:
            return derive_age(now, posted_at=posted)

    for key in AGE_KEYS:
        value = item.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return derive_age(now, age=timedelta(days=value))
        if isinstance(value, str) and value.strip():
            try:
                reading = parse_age_cell(value, now)
            except ValueError:
                logger.debug("Ignoring unparseable age %r", value)
                continue
            if reading is not None:
                return reading

    return derive_age(now)


def _to_datetime(value: Any, now: datetime) -> Optional[datetime]:
    """Epoch seconds or a date string to an aware datetime."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time(), tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    text = str(value).strip()
    if text.isdigit():
        return datetime.fromtimestamp(int(text), tz=timezone.utc)
    return parse_absolute_date(text, now)
