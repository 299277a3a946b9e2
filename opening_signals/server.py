"""HTTP surface: the two ingestion jobs plus the active-signals read."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from opening_signals import __version__
from opening_signals.canada import CanadaSearchRun
from opening_signals.config import PipelineConfig, load_config
from opening_signals.errors import ConfigError, StoreError
from opening_signals.pipeline import RefreshPipeline
from opening_signals.storage import SignalStore, build_store

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}


def create_app(
    config: Optional[PipelineConfig] = None, store: Optional[SignalStore] = None
) -> FastAPI:
    """Build the FastAPI app.

    ``store`` is shared by every request when given; otherwise each
    request builds one from ``config.store``, so a misconfigured store
    is reported per request rather than at startup.
    """
    config = config or load_config()
    app = FastAPI(title="Opening Signals", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    def preflight() -> Response:
        return Response(status_code=200, headers=CORS_HEADERS)

    @app.options("/refresh_opening_signals")
    def refresh_preflight() -> Response:
        return preflight()

    @app.options("/search_canada_internships")
    def canada_preflight() -> Response:
        return preflight()

    @app.post("/refresh_opening_signals")
    def refresh_opening_signals() -> JSONResponse:
        report = RefreshPipeline(config, store=store).run()
        return JSONResponse(
            status_code=report.http_status, content=report.to_dict(), headers=CORS_HEADERS
        )

    @app.post("/search_canada_internships")
    def search_canada_internships() -> JSONResponse:
        report = CanadaSearchRun(config, store=store).run()
        return JSONResponse(
            status_code=report.http_status, content=report.to_dict(), headers=CORS_HEADERS
        )

    @app.get("/opening_signals")
    def list_opening_signals(limit: int = Query(100, ge=1, le=1000)) -> JSONResponse:
        try:
            signals = (store or build_store(config.store)).list_active(limit)
        except (ConfigError, StoreError) as exc:
            logger.error("Listing opening signals failed: %s", exc)
            return JSONResponse(
                status_code=500, content={"ok": False, "error": str(exc)}, headers=CORS_HEADERS
            )
        return JSONResponse(
            content={"ok": True, "count": len(signals), "signals": [s.to_dict() for s in signals]},
            headers=CORS_HEADERS,
        )

    return app
