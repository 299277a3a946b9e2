"""Tests for the listings source and its structured mirrors, using mocked HTTP responses."""

import json
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
import requests
import responses

from conftest import NOW, README_URL
from opening_signals.config import PipelineConfig, SourceConfig
from opening_signals.errors import SourceFetchError
from opening_signals.scrapers.listings import ListingsScraper
from opening_signals.scrapers.structured import detect_format, parse_structured


def _scraper(config, structured_urls=()):
    source = SourceConfig(readme_url=README_URL, term="Summer 2026",
                          structured_urls=list(structured_urls))
    return ListingsScraper(source, config)


# --- README fetch ---

@responses.activate
def test_fetch_document(config):
    responses.add(responses.GET, README_URL, body="<table></table>", status=200)

    doc = _scraper(config).fetch_document()

    assert doc.url == README_URL
    assert doc.status_code == 200
    assert doc.size_bytes == len("<table></table>")
    assert "opening-signals" in responses.calls[0].request.headers["User-Agent"]


@responses.activate
def test_fetch_failure_carries_status(config):
    responses.add(responses.GET, README_URL, status=503)

    with pytest.raises(SourceFetchError) as excinfo:
        _scraper(config).fetch_document()
    assert excinfo.value.status_code == 503


@responses.activate
def test_fetch_retries_with_backoff(monkeypatch):
    """Failed attempts are retried with exponential back-off."""
    sleeps = []
    monkeypatch.setattr("opening_signals.scrapers.base.time.sleep", sleeps.append)
    responses.add(responses.GET, README_URL, body=requests.ConnectionError("reset"))
    responses.add(responses.GET, README_URL, status=500)
    responses.add(responses.GET, README_URL, body="ok", status=200)

    scraper = _scraper(PipelineConfig(request_retries=3))
    doc = scraper.fetch_document()

    assert doc.text == "ok"
    assert sleeps == [2, 4]
    assert len(responses.calls) == 3


def test_rate_limit_spaces_concurrent_requests():
    """Worker threads sharing one scraper still wait out the request delay."""
    scraper = _scraper(PipelineConfig(request_delay_seconds=0.05))
    stamps = []

    def take_slot(_):
        scraper._rate_limit()
        stamps.append(time.monotonic())

    with ThreadPoolExecutor(max_workers=4) as pool:
        list(pool.map(take_slot, range(4)))

    stamps.sort()
    gaps = [later - earlier for earlier, later in zip(stamps, stamps[1:])]
    assert all(gap >= 0.04 for gap in gaps)


# --- Structured mirrors ---

def test_detect_format():
    assert detect_format("https://x/data.json") == "json"
    assert detect_format("https://x/export", "text/csv; charset=utf-8") == "csv"
    assert detect_format("https://x/data.yml") == "yaml"
    assert detect_format("https://x/README.md", "text/plain") is None


def test_parse_json_listings():
    payload = {
        "listings": [
            {
                "company_name": "Google",
                "title": "SWE Intern - Summer 2026",
                "locations": ["Waterloo, ON", "Remote"],
                "url": "https://x/apply1",
                "date_posted": int((NOW - timedelta(days=3)).timestamp()),
                "active": True,
            },
            {"company_name": "", "title": "Data Intern", "url": "https://x/apply2"},
            {"company_name": "Closed Co", "title": "Intern", "url": "https://x/c", "active": False},
            {"company_name": "Locked Co", "title": "Intern", "url": "🔒"},
            "not a record",
        ]
    }
    rows = parse_structured(json.dumps(payload), "json", "Summer 2026", NOW)

    assert [(r.company_name, r.role_title) for r in rows] == [
        ("Google", "SWE Intern"),
        ("Google", "Data Intern"),
    ]
    assert rows[0].location == "Waterloo, ON; Remote"
    assert rows[0].age_days == 3
    assert rows[1].age_days == 0
    assert rows[1].posted_at == NOW


def test_parse_csv_listings():
    text = (
        "Company,Role,Location,Application/Link,Date Posted\n"
        "Acme,Hardware Intern,Austin TX,https://x/a,2026-03-08\n"
        "↳,Firmware Intern,Austin TX,https://x/b,3d\n"
        "Beta,Intern,NYC,,1d\n"
    )
    rows = parse_structured(text, "csv", None, NOW)

    assert [r.company_name for r in rows] == ["Acme", "Acme"]
    assert rows[0].age_days == 2
    assert rows[1].age_days == 3


def test_csv_without_company_column_is_empty():
    assert parse_structured("foo,bar\n1,2\n", "csv", None, NOW) == []


def test_parse_yaml_listings():
    text = (
        "jobs:\n"
        "  - company: Acme\n"
        "    role: Intern\n"
        "    link: https://x/y\n"
        "    posted_at: 2026-03-01\n"
        "  - company: Acme\n"
        "    role: Analyst Intern\n"
        "    link: https://x/z\n"
        "    age: 2w\n"
    )
    rows = parse_structured(text, "yaml", None, NOW)

    assert rows[0].age_days == 9
    assert rows[1].age_days == 14


def test_malformed_payload_raises():
    with pytest.raises(ValueError):
        parse_structured("{broken", "json", None, NOW)


@responses.activate
def test_probe_uses_first_mirror_with_rows(config):
    json_url = "https://raw.example.com/listings/data.json"
    csv_url = "https://raw.example.com/listings/data.csv"
    responses.add(responses.GET, json_url, status=404)
    responses.add(
        responses.GET,
        csv_url,
        body="Company,Role,Location,Link\nAcme,Intern,Remote,https://x/a\n",
        status=200,
        content_type="text/csv",
    )

    result = _scraper(config, [json_url, csv_url]).probe_structured(NOW)

    assert result is not None
    assert result.url == csv_url
    assert result.format == "csv"
    assert len(result.rows) == 1


@responses.activate
def test_probe_returns_none_when_nothing_usable(config):
    json_url = "https://raw.example.com/listings/data.json"
    yaml_url = "https://raw.example.com/listings/data.yaml"
    responses.add(responses.GET, json_url, body="{not json", status=200)
    responses.add(responses.GET, yaml_url, body="[]", status=200)

    assert _scraper(config, [json_url, yaml_url]).probe_structured(NOW) is None
    assert _scraper(config).probe_structured(NOW) is None
