"""Exception types raised across the ingestion pipeline."""

from __future__ import annotations

from typing import Optional


class OpeningSignalsError(Exception):
    """Base class for pipeline failures."""


class ConfigError(OpeningSignalsError):
    """The configuration cannot support the requested run."""


class SourceFetchError(OpeningSignalsError):
    """The upstream document could not be fetched."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StoreError(OpeningSignalsError):
    """The persisted store rejected a read or a write."""


class UpsertError(StoreError):
    """A batched upsert failed.

    Carries the counts committed by earlier batches so the report can
    still show them.
    """

    def __init__(self, message: str, inserted: int = 0, updated: int = 0):
        super().__init__(message)
        self.inserted = inserted
        self.updated = updated
