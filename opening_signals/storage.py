"""Persistence for opening signals.

``SignalStore`` is the small surface the pipeline needs from a store:

1. **Preservation lookup**: ``fetch_by_hashes`` returns the stored
   records for a list of listing hashes.
2. **Keyed upsert**: ``upsert`` inserts new hashes and replaces the
   mutable fields of known ones, leaving ``id``, ``first_seen_at`` and
   ``created_at`` untouched.
3. **Filtered updates**: ``deactivate_stale`` and
   ``deactivate_by_apply_urls`` flip ``is_active`` off.

Two backends implement it: ``JsonSignalStore`` below (a single JSON file,
for local runs and tests) and ``postgres.PostgresSignalStore``.

The JSON file is written with the atomic pattern:
  1. Write to a .tmp file
  2. fsync
  3. Rename to target (atomic on POSIX)

Before each write a .bak copy is made. If the primary file is corrupt it
is restored from .bak automatically.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from opening_signals.config import StoreConfig
from opening_signals.errors import ConfigError, StoreError
from opening_signals.models import OpeningSignal, parse_timestamp
from opening_signals.normalize import apply_url_key

logger = logging.getLogger(__name__)

STORE_FILENAME = "opening_signals.json"

# Columns an update must never overwrite.
PRESERVED_FIELDS = ("id", "first_seen_at", "created_at")


class SignalStore(ABC):
    """Keyed store of OpeningSignal records (conflict key: listing_hash)."""

    @abstractmethod
    def fetch_by_hashes(self, hashes: list[str]) -> dict[str, OpeningSignal]:
        ...

    @abstractmethod
    def upsert(self, records: list[OpeningSignal]) -> tuple[int, int]:
        """Insert or update ``records``; return ``(inserted, updated)``."""
        ...

    @abstractmethod
    def deactivate_stale(self, cutoff: datetime) -> int:
        """Mark active records last seen before ``cutoff`` inactive."""
        ...

    @abstractmethod
    def deactivate_by_apply_urls(self, apply_urls: Iterable[str]) -> int:
        ...

    @abstractmethod
    def list_active(self, limit: int = 100) -> list[OpeningSignal]:
        """Active records, most recently seen first."""
        ...

    def ensure_schema(self) -> None:
        """Create the backing table or directory if it does not exist yet."""


def build_store(config: StoreConfig) -> SignalStore:
    """Create the store selected by ``config.backend``."""
    backend = (config.backend or "json").lower()
    if backend == "json":
        return JsonSignalStore(config.data_dir)
    if backend == "postgres":
        if not config.database_url:
            raise ConfigError(
                "Postgres store selected but no database URL is configured "
                "(set OPENING_SIGNALS_DATABASE_URL)"
            )
        from opening_signals.postgres import PostgresSignalStore

        return PostgresSignalStore(config.database_url, table=config.table)
    raise ConfigError(f"Unknown store backend: {config.backend!r}")


class JsonSignalStore(SignalStore):
    """All records in one JSON object keyed by listing hash."""

    def __init__(self, data_dir: str | Path):
        self.data_dir = Path(data_dir)
        self.path = self.data_dir / STORE_FILENAME

    def ensure_schema(self) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreError(f"Failed to create {self.data_dir}: {exc}") from exc

    def fetch_by_hashes(self, hashes: list[str]) -> dict[str, OpeningSignal]:
        data = self._load()
        return {h: OpeningSignal.from_dict(data[h]) for h in hashes if h in data}

    def upsert(self, records: list[OpeningSignal]) -> tuple[int, int]:
        data = self._load()
        inserted = updated = 0

        for record in records:
            row = record.to_dict()
            existing = data.get(record.listing_hash)
            if existing is None:
                inserted += 1
            else:
                for key in PRESERVED_FIELDS:
                    if existing.get(key) is not None:
                        row[key] = existing[key]
                updated += 1
            data[record.listing_hash] = row

        self._save(data)
        logger.debug("Upserted %d records (%d new, %d updated)", len(records), inserted, updated)
        return inserted, updated

    def deactivate_stale(self, cutoff: datetime) -> int:
        data = self._load()
        count = 0
        for row in data.values():
            last_seen = parse_timestamp(row.get("last_seen_at"))
            if row.get("is_active") and last_seen is not None and last_seen < cutoff:
                row["is_active"] = False
                count += 1
        if count:
            self._save(data)
        return count

    def deactivate_by_apply_urls(self, apply_urls: Iterable[str]) -> int:
        keys = {apply_url_key(url) for url in apply_urls if url}
        if not keys:
            return 0
        data = self._load()
        count = 0
        for row in data.values():
            url = row.get("apply_url")
            if row.get("is_active") and url and apply_url_key(url) in keys:
                row["is_active"] = False
                count += 1
        if count:
            self._save(data)
        return count

    def list_active(self, limit: int = 100) -> list[OpeningSignal]:
        records = [r for r in self.all_records() if r.is_active]
        records.sort(key=lambda r: r.last_seen_at, reverse=True)
        return records[:limit]

    def all_records(self) -> list[OpeningSignal]:
        return [OpeningSignal.from_dict(row) for row in self._load().values()]

    # ── Internal helpers ──────────────────────────────────────────────────

    def _load(self) -> dict[str, Any]:
        return _safe_read_json(self.path)

    def _save(self, data: dict[str, Any]) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        try:
            _backup_and_write(self.path, data)
        except OSError as exc:
            raise StoreError(f"Failed to write {self.path}: {exc}") from exc


def _safe_read_json(path: Path) -> dict[str, Any]:
    """Read the store file, restoring from .bak if it is corrupted.

    A missing file is an empty store. A corrupt file with no readable
    backup raises StoreError rather than starting over empty.
    """
    if not path.exists():
        return {}

    try:
        with open(path, "r") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s: %s; trying backup", path, exc)

    bak_path = path.with_suffix(path.suffix + ".bak")
    if bak_path.exists():
        try:
            with open(bak_path, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as exc:
            logger.error("Backup %s also corrupted: %s", bak_path, exc)
        else:
            logger.info("Restored %s from backup", path)
            _atomic_write_json(path, data)
            return data

    raise StoreError(f"Could not read {path} or its backup")


def _backup_and_write(path: Path, data: Any) -> None:
    """Copy the current file to .bak, then atomically write new data."""
    if path.exists():
        bak_path = path.with_suffix(path.suffix + ".bak")
        try:
            shutil.copy2(path, bak_path)
        except OSError as exc:
            logger.warning("Failed to create backup of %s: %s", path, exc)

    _atomic_write_json(path, data)


def _atomic_write_json(path: Path, data: Any) -> None:
    tmp_path = path.with_suffix(path.suffix + ".tmp")

    try:
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())

        tmp_path.replace(path)
    except OSError as exc:
        logger.error("Failed to write %s: %s", path, exc)
        if tmp_path.exists():
            tmp_path.unlink()
        raise
