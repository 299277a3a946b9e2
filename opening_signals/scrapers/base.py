"""Abstract base class for the HTTP sources."""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Optional

import requests

from opening_signals.config import PipelineConfig
from opening_signals.errors import SourceFetchError

logger = logging.getLogger(__name__)


class BaseScraper(ABC):
    """Base class that the listings and search sources extend.

    Provides shared HTTP utilities (session management, rate limiting,
    retries) so individual sources only deal with their own payloads.
    """

    def __init__(self, pipeline_config: PipelineConfig, session: Optional[requests.Session] = None):
        self.pipeline_config = pipeline_config
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": pipeline_config.user_agent})
        self._last_request_time: float = 0
        self._rate_lock = threading.Lock()

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _get(self, url: str, retries: Optional[int] = None, **kwargs) -> requests.Response:
        """Rate-limited GET request with retries."""
        return self._request("GET", url, retries, **kwargs)

    def _post(self, url: str, retries: Optional[int] = None, **kwargs) -> requests.Response:
        """Rate-limited POST request with retries."""
        return self._request("POST", url, retries, **kwargs)

    def _request(
        self, method: str, url: str, retries: Optional[int], **kwargs
    ) -> requests.Response:
        """Send a request, retrying with exponential back-off.

        Raises:
            SourceFetchError: every attempt failed; carries the last
                HTTP status when the server answered at all
        """
        attempts = max(1, retries if retries is not None else self.pipeline_config.request_retries)
        kwargs.setdefault("timeout", self.pipeline_config.request_timeout_seconds)

        for attempt in range(1, attempts + 1):
            self._rate_limit()
            try:
                resp = self.session.request(method, url, **kwargs)
                resp.raise_for_status()
                return resp
            except requests.RequestException as exc:
                logger.warning(
                    "[%s] %s %s attempt %d failed: %s", self.name, method, url, attempt, exc
                )
                if attempt == attempts:
                    status = exc.response.status_code if exc.response is not None else None
                    raise SourceFetchError(
                        f"{method} {url} failed: {exc}", status_code=status
                    ) from exc
                time.sleep(2 ** attempt)

        raise RuntimeError("Retry loop exited unexpectedly")

    def _rate_limit(self) -> None:
        """Enforce minimum delay between requests, across worker threads."""
        delay = self.pipeline_config.request_delay_seconds
        with self._rate_lock:
            elapsed = time.monotonic() - self._last_request_time
            if elapsed < delay:
                time.sleep(delay - elapsed)
            self._last_request_time = time.monotonic()
