"""Staleness sweep: deactivate signals not re-observed within the window."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from opening_signals.models import utcnow
from opening_signals.storage import SignalStore

logger = logging.getLogger(__name__)

DEFAULT_FRESHNESS_WINDOW = timedelta(hours=48)


def stale_cutoff(now: datetime, window: timedelta = DEFAULT_FRESHNESS_WINDOW) -> datetime:
    return now - window


def sweep_stale(
    store: SignalStore,
    window: timedelta = DEFAULT_FRESHNESS_WINDOW,
    now: Optional[datetime] = None,
) -> int:
    """Flip ``is_active`` off for records last seen before ``now - window``.

    Returns the number of records deactivated. Store errors propagate;
    the orchestrator decides whether they are fatal.
    """
    cutoff = stale_cutoff(now or utcnow(), window)
    deactivated = store.deactivate_stale(cutoff)
    logger.info("Deactivated %d signals last seen before %s", deactivated, cutoff.isoformat())
    return deactivated
