"""Tests for the listing hash, the OpeningSignal record and the run report."""

from datetime import datetime, timedelta, timezone

from opening_signals.models import (
    FetchDiagnostics,
    OpeningSignal,
    RunReport,
    compute_listing_hash,
    parse_timestamp,
)

FIELDS = ("Google", "SWE Intern", "Waterloo, ON", "Summer 2026", "https://x/apply1")


def test_hash_is_stable():
    assert compute_listing_hash(*FIELDS) == compute_listing_hash(*FIELDS)
    assert len(compute_listing_hash(*FIELDS)) == 64


def test_hash_changes_with_any_field():
    base = compute_listing_hash(*FIELDS)
    for idx in range(len(FIELDS)):
        changed = list(FIELDS)
        changed[idx] = changed[idx] + "x"
        assert compute_listing_hash(*changed) != base


def test_hash_ignores_casing_and_spacing():
    assert compute_listing_hash(*FIELDS) == compute_listing_hash(
        "GOOGLE", "SWE  intern", " Waterloo,\tON ", "summer 2026", "https://X/apply1"
    )


def test_hash_treats_none_as_empty():
    assert compute_listing_hash("A", "B", None, "T", None) == compute_listing_hash(
        "A", "B", "", "T", ""
    )


def test_signal_round_trips_through_dict():
    now = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)
    signal = OpeningSignal(
        listing_hash="abc",
        company_name="Google",
        role_title="SWE Intern",
        term="Summer 2026",
        source="simplifyjobs_github",
        apply_url="https://x/apply1",
        first_seen_at=now,
        last_seen_at=now,
        posted_at=now - timedelta(days=3),
        age_days=3,
    )
    data = signal.to_dict()
    assert data["posted_at"] == "2026-02-26T09:30:00+00:00"

    restored = OpeningSignal.from_dict(data)
    assert restored == signal


def test_from_dict_ignores_unknown_keys_and_fills_defaults():
    restored = OpeningSignal.from_dict(
        {
            "listing_hash": "abc",
            "company_name": "Acme",
            "role_title": "Intern",
            "term": "Summer 2026",
            "source": "test",
            "updated_at": "2026-01-01T00:00:00Z",
            "id": None,
        }
    )
    assert restored.id
    assert restored.is_active is True
    assert restored.first_seen_at.tzinfo is not None


def test_parse_timestamp_treats_naive_as_utc():
    parsed = parse_timestamp("2026-03-01T10:00:00")
    assert parsed == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
    assert parse_timestamp("") is None
    assert parse_timestamp("2026-03-01T10:00:00Z").tzinfo is not None


def test_report_shape_and_status():
    report = RunReport(fetch=FetchDiagnostics(url="https://x/README.md", status="success"))
    report.ok = True
    report.upsert.inserted = 2
    report.upsert.total = 2
    report.stale_cleanup.deactivated = 1

    body = report.to_dict()
    assert report.http_status == 200
    assert body["ok"] is True
    assert body["inserted"] == 2
    assert body["deactivated"] == 1
    assert "error" not in body
    assert body["debug"]["source_fetch"] == {"url": "https://x/README.md", "status": "success"}
    assert body["debug"]["parsing"]["method"] == "html"
    assert "error" not in body["debug"]["stale_cleanup"]


def test_failed_report_is_500_with_error():
    report = RunReport(fetch=FetchDiagnostics(url="u", status="failed", error="boom"))
    report.error = "Failed to fetch source: boom"
    body = report.to_dict()
    assert report.http_status == 500
    assert body["ok"] is False
    assert body["error"].startswith("Failed to fetch")
    assert body["debug"]["source_fetch"]["error"] == "boom"
