"""Entry point for the opening-signals jobs.

Usage:
    python -m opening_signals.main                     # refresh from the listings table
    python -m opening_signals.main --job canada        # run the Canada search ingestion
    python -m opening_signals.main --job sweep         # only deactivate stale signals
    python -m opening_signals.main --job init-db       # create the store table if missing
    python -m opening_signals.main --config my.yaml    # use custom config
    python -m opening_signals.main --dry-run           # validate config without running
    python -m opening_signals.main --serve --port 8000 # serve the HTTP endpoints
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import timedelta
from pathlib import Path
from typing import Any

from opening_signals.canada import CanadaSearchRun
from opening_signals.config import PipelineConfig, load_config
from opening_signals.errors import ConfigError, StoreError
from opening_signals.models import utcnow
from opening_signals.pipeline import RefreshPipeline
from opening_signals.storage import build_store
from opening_signals.sweeper import sweep_stale

logger = logging.getLogger(__name__)

JOBS = ("refresh", "canada", "sweep", "init-db")


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the pipeline."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Opening signals: ingest internship listings into the signals table."
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--job",
        choices=JOBS,
        default="refresh",
        help="Which job to run (default: refresh)",
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Override the JSON store directory (default: from config)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Also write the JSON report to this file",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Load config and show what would run without fetching or writing",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Serve the HTTP endpoints instead of running a job",
    )
    parser.add_argument("--host", type=str, default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug-level logging",
    )
    return parser.parse_args(argv)


def run_job(job: str, config: PipelineConfig) -> tuple[bool, dict[str, Any]]:
    """Run one job and return ``(ok, report body)``."""
    if job == "refresh":
        report = RefreshPipeline(config).run()
        return report.ok, report.to_dict()
    if job == "canada":
        report = CanadaSearchRun(config).run()
        return report.ok, report.to_dict()
    if job == "init-db":
        return run_init_db(config)
    return run_sweep(config)


def run_sweep(config: PipelineConfig) -> tuple[bool, dict[str, Any]]:
    window = timedelta(hours=config.freshness_window_hours)
    try:
        deactivated = sweep_stale(build_store(config.store), window, utcnow())
    except (ConfigError, StoreError) as exc:
        logger.error("Sweep failed: %s", exc)
        return False, {"ok": False, "deactivated": 0, "error": str(exc)}
    return True, {"ok": True, "deactivated": deactivated}


def run_init_db(config: PipelineConfig) -> tuple[bool, dict[str, Any]]:
    try:
        build_store(config.store).ensure_schema()
    except (ConfigError, StoreError) as exc:
        logger.error("Store initialisation failed: %s", exc)
        return False, {"ok": False, "error": str(exc)}
    return True, {"ok": True, "backend": config.store.backend}


def log_plan(job: str, config: PipelineConfig) -> None:
    logger.info("=== Dry Run ===")
    logger.info("  job: %s", job)
    logger.info(
        "  store: %s (%s)",
        config.store.backend,
        config.store.data_dir if config.store.backend == "json" else config.store.table,
    )
    if job == "refresh":
        logger.info("  source: %s -> %s", config.source.name, config.source.readme_url)
        logger.info("  term: %s", config.source.term)
        for url in config.source.structured_urls:
            logger.info("  structured probe: %s", url)
    elif job == "canada":
        search = config.canada_search
        logger.info("  search api: %s (key %s)", search.api_url, "set" if search.api_key else "MISSING")
        for query in search.queries:
            logger.info("  query: %s", query)
    logger.info("  freshness window: %sh", config.freshness_window_hours)
    logger.info("Dry run complete; nothing fetched or written.")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    config = load_config(args.config)
    setup_logging("DEBUG" if args.verbose else config.log_level)
    if args.data_dir:
        config.store.data_dir = args.data_dir

    if args.serve:
        import uvicorn

        from opening_signals.server import create_app

        uvicorn.run(create_app(config), host=args.host, port=args.port)
        return 0

    if args.dry_run:
        log_plan(args.job, config)
        return 0

    ok, body = run_job(args.job, config)
    rendered = json.dumps(body, indent=2, ensure_ascii=False)
    print(rendered)

    if args.output:
        out_path = Path(args.output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(rendered + "\n")
        logger.info("Report written to %s", out_path)

    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
