"""Apply-URL deduplication and the company/apply-URL alignment check."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from opening_signals.models import ParsedListing
from opening_signals.normalize import apply_url_key, is_valid_apply_url

logger = logging.getLogger(__name__)

MAX_REPORTED_CONFLICTS = 20
SAMPLE_PAIRS = 5


def dedupe_by_apply_url(rows: Iterable[ParsedListing]) -> list[ParsedListing]:
    """Keep the first row per trimmed, case-folded apply URL.

    Rows without an apply URL are dropped; nothing else identifies them
    reliably enough to persist.
    """
    seen: set[str] = set()
    unique: list[ParsedListing] = []
    dropped = 0

    for row in rows:
        if not row.apply_url:
            dropped += 1
            continue
        key = apply_url_key(row.apply_url)
        if key in seen:
            logger.debug("Duplicate apply url dropped: %s", row.apply_url)
            continue
        seen.add(key)
        unique.append(row)

    if dropped:
        logger.debug("Dropped %d rows without an apply url", dropped)
    return unique


def verify_company_url_alignment(rows: Iterable[ParsedListing]) -> dict[str, Any]:
    """Check that every apply URL maps to exactly one company.

    Two companies sharing a posting link almost always means the
    continuation fill-down went wrong. The result is diagnostic only.
    """
    companies_by_url: dict[str, list[str]] = {}
    display_url: dict[str, str] = {}

    for row in rows:
        if not is_valid_apply_url(row.apply_url):
            continue
        key = apply_url_key(row.apply_url)
        display_url.setdefault(key, row.apply_url)
        names = companies_by_url.setdefault(key, [])
        if row.company_name not in names:
            names.append(row.company_name)

    conflicts = [
        {"apply_url": display_url[key], "companies": names}
        for key, names in companies_by_url.items()
        if len(names) > 1
    ]

    if conflicts:
        first = conflicts[0]
        logger.warning(
            "%d apply url(s) map to more than one company; first: %s -> %s",
            len(conflicts), first["apply_url"], " | ".join(first["companies"]),
        )

    result: dict[str, Any] = {
        "is_valid": not conflicts,
        "conflict_count": len(conflicts),
        "total_pairs": len(companies_by_url),
    }
    if conflicts:
        result["conflicts"] = conflicts[:MAX_REPORTED_CONFLICTS]
    else:
        result["sample_pairs"] = [
            {"apply_url": display_url[key], "company": names[0]}
            for key, names in list(companies_by_url.items())[:SAMPLE_PAIRS]
        ]
    return result
