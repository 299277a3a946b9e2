"""Tests for the JSON signal store and store selection."""

import json
from datetime import timedelta

import pytest

from conftest import NOW
from opening_signals.config import StoreConfig
from opening_signals.errors import ConfigError, StoreError
from opening_signals.models import OpeningSignal
from opening_signals.storage import JsonSignalStore, build_store


def _signal(listing_hash, url, seen=NOW, **kwargs):
    return OpeningSignal(
        listing_hash=listing_hash,
        company_name="Acme",
        role_title="Intern",
        term="Summer 2026",
        source="test",
        apply_url=url,
        first_seen_at=seen,
        last_seen_at=seen,
        created_at=seen,
        **kwargs,
    )


def test_upsert_counts_and_preserves_identity(store):
    first = _signal("h1", "https://x/a")
    assert store.upsert([first]) == (1, 0)

    later = NOW + timedelta(hours=5)
    again = _signal("h1", "https://x/a", seen=later, age_days=3)
    assert store.upsert([again, _signal("h2", "https://x/b")]) == (1, 1)

    stored = store.fetch_by_hashes(["h1", "missing"])
    assert list(stored) == ["h1"]
    assert stored["h1"].id == first.id
    assert stored["h1"].first_seen_at == NOW
    assert stored["h1"].created_at == NOW
    assert stored["h1"].last_seen_at == later
    assert stored["h1"].age_days == 3


def test_deactivate_stale_only_touches_old_active_rows(store):
    store.upsert(
        [
            _signal("old", "https://x/old", seen=NOW - timedelta(hours=50)),
            _signal("fresh", "https://x/fresh", seen=NOW - timedelta(hours=1)),
            _signal("gone", "https://x/gone", seen=NOW - timedelta(days=9), is_active=False),
        ]
    )
    assert store.deactivate_stale(NOW - timedelta(hours=48)) == 1

    active = {r.listing_hash for r in store.list_active()}
    assert active == {"fresh"}


def test_deactivate_by_apply_urls_matches_case_insensitively(store):
    store.upsert([_signal("h1", "https://x/Closed"), _signal("h2", "https://x/open")])

    assert store.deactivate_by_apply_urls([" HTTPS://x/closed ", ""]) == 1
    assert store.deactivate_by_apply_urls([]) == 0
    assert [r.listing_hash for r in store.list_active()] == ["h2"]


def test_list_active_newest_first_with_limit(store):
    store.upsert(
        [_signal(f"h{i}", f"https://x/{i}", seen=NOW - timedelta(hours=i)) for i in range(5)]
    )
    listed = store.list_active(limit=3)
    assert [r.listing_hash for r in listed] == ["h0", "h1", "h2"]


def test_corrupt_file_restored_from_backup(store):
    store.upsert([_signal("h1", "https://x/a")])
    store.upsert([_signal("h2", "https://x/b")])
    assert store.path.with_suffix(".json.bak").exists()

    store.path.write_text("{not json")
    records = store.all_records()

    # The backup predates the second write.
    assert [r.listing_hash for r in records] == ["h1"]
    assert json.loads(store.path.read_text())["h1"]["listing_hash"] == "h1"


def test_corrupt_file_without_backup_raises(store):
    store.data_dir.mkdir(parents=True)
    store.path.write_text("garbage")

    with pytest.raises(StoreError):
        store.fetch_by_hashes(["h1"])


def test_missing_file_is_empty_store(tmp_path):
    store = JsonSignalStore(tmp_path / "nowhere")
    assert store.list_active() == []
    assert store.deactivate_stale(NOW) == 0


def test_build_store_selects_backend(tmp_path):
    store = build_store(StoreConfig(backend="json", data_dir=str(tmp_path)))
    assert isinstance(store, JsonSignalStore)

    with pytest.raises(ConfigError):
        build_store(StoreConfig(backend="postgres", database_url=""))

    with pytest.raises(ConfigError):
        build_store(StoreConfig(backend="sqlite"))
