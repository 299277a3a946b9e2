"""Postgres backend for the signal store (psycopg2)."""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Iterator

import psycopg2
import psycopg2.extras

from opening_signals.errors import ConfigError, StoreError
from opening_signals.models import OpeningSignal
from opening_signals.normalize import apply_url_key
from opening_signals.storage import PRESERVED_FIELDS, SignalStore

logger = logging.getLogger(__name__)

COLUMNS = (
    "id",
    "listing_hash",
    "company_name",
    "role_title",
    "location",
    "apply_url",
    "term",
    "source",
    "signal_type",
    "is_active",
    "first_seen_at",
    "last_seen_at",
    "posted_at",
    "age_days",
    "country",
    "role_category",
    "job_type",
    "created_at",
)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS {table} (
    id              uuid PRIMARY KEY,
    listing_hash    text NOT NULL UNIQUE,
    company_name    text NOT NULL,
    role_title      text NOT NULL,
    location        text,
    apply_url       text,
    term            text NOT NULL,
    source          text NOT NULL,
    signal_type     text NOT NULL DEFAULT 'job_posted',
    is_active       boolean NOT NULL DEFAULT true,
    first_seen_at   timestamptz NOT NULL DEFAULT now(),
    last_seen_at    timestamptz NOT NULL DEFAULT now(),
    posted_at       timestamptz,
    age_days        integer,
    country         text,
    role_category   text,
    job_type        text,
    created_at      timestamptz NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS {table}_active_last_seen_idx
    ON {table} (is_active, last_seen_at DESC);
"""


class PostgresSignalStore(SignalStore):
    """Signal store backed by one Postgres table.

    Every call opens its own connection and commits (or rolls back) as a
    single transaction.
    """

    def __init__(self, dsn: str, table: str = "opening_signals", connect_timeout: int = 10):
        if not _IDENTIFIER_RE.match(table):
            raise ConfigError(f"Invalid table name: {table!r}")
        self.dsn = dsn
        self.table = table
        self.connect_timeout = connect_timeout

    def ensure_schema(self) -> None:
        with self._cursor() as cur:
            cur.execute(SCHEMA_SQL.format(table=self.table))
        logger.info("Ensured table %s exists", self.table)

    def fetch_by_hashes(self, hashes: list[str]) -> dict[str, OpeningSignal]:
        if not hashes:
            return {}
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {', '.join(COLUMNS)} FROM {self.table} WHERE listing_hash = ANY(%s)",
                (list(hashes),),
            )
            rows = cur.fetchall()
        return {row["listing_hash"]: OpeningSignal.from_dict(row) for row in rows}

    def upsert(self, records: list[OpeningSignal]) -> tuple[int, int]:
        if not records:
            return 0, 0

        updatable = [c for c in COLUMNS if c not in PRESERVED_FIELDS and c != "listing_hash"]
        sql = f"""
            INSERT INTO {self.table} ({', '.join(COLUMNS)})
            VALUES %s
            ON CONFLICT (listing_hash) DO UPDATE SET
                {', '.join(f'{c} = EXCLUDED.{c}' for c in updatable)}
            RETURNING (xmax = 0) AS inserted
        """
        values = [tuple(getattr(r, c) for c in COLUMNS) for r in records]

        with self._cursor() as cur:
            results = psycopg2.extras.execute_values(
                cur, sql, values, page_size=len(values), fetch=True
            )

        inserted = sum(1 for row in results if row["inserted"])
        return inserted, len(results) - inserted

    def deactivate_stale(self, cutoff: datetime) -> int:
        with self._cursor() as cur:
            cur.execute(
                f"UPDATE {self.table} SET is_active = false "
                f"WHERE is_active AND last_seen_at < %s RETURNING id",
                (cutoff,),
            )
            return len(cur.fetchall())

    def deactivate_by_apply_urls(self, apply_urls: Iterable[str]) -> int:
        keys = sorted({apply_url_key(url) for url in apply_urls if url})
        if not keys:
            return 0
        with self._cursor() as cur:
            cur.execute(
                f"UPDATE {self.table} SET is_active = false "
                f"WHERE is_active AND lower(btrim(apply_url)) = ANY(%s) RETURNING id",
                (keys,),
            )
            return len(cur.fetchall())

    def list_active(self, limit: int = 100) -> list[OpeningSignal]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {', '.join(COLUMNS)} FROM {self.table} "
                f"WHERE is_active ORDER BY last_seen_at DESC LIMIT %s",
                (limit,),
            )
            rows = cur.fetchall()
        return [OpeningSignal.from_dict(row) for row in rows]

    @contextmanager
    def _cursor(self) -> Iterator[psycopg2.extensions.cursor]:
        try:
            conn = psycopg2.connect(self.dsn, connect_timeout=self.connect_timeout)
        except psycopg2.Error as exc:
            raise StoreError(f"Could not connect to Postgres: {exc}") from exc

        try:
            with conn:
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                    yield cur
        except psycopg2.Error as exc:
            raise StoreError(f"Postgres error on {self.table}: {exc}") from exc
        finally:
            conn.close()
