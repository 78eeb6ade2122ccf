"""
Engine for one rekrute.com crawl.

Features:
  - Wires the default fetch service and output sinks from Settings
  - Dependency injection for testability (`fetcher`, `sink`)
  - Summary logging via `logging_bridge`
"""

from __future__ import annotations

import time
from typing import Any

from . import logging_bridge
from .config import Settings
from .db import SqliteSink
from .frontier import FrontierController, PageFetcher
from .http_client import HttpFetchService
from .sink import JsonlSink, MultiSink, RecordSink


# =============================================================================
# DEFAULT WIRING (PRODUCTION)
# =============================================================================
def build_fetcher(settings: Settings) -> HttpFetchService:
    return HttpFetchService(
        timeout=settings.request_timeout_s,
        max_retries=settings.max_retries,
        headers=settings.headers,
        cookies=settings.cookies,
        proxy_urls=settings.proxy_urls,
        pool_size=settings.max_concurrency,
    )


def build_sink(settings: Settings) -> RecordSink:
    sinks: list[RecordSink] = []
    if settings.output_path.strip():
        sinks.append(JsonlSink(settings.output_path))
    if settings.sqlite_path:
        sinks.append(SqliteSink(settings.sqlite_path))
    return sinks[0] if len(sinks) == 1 else MultiSink(sinks)


# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================
def run_once(
    settings: Settings,
    fetcher: PageFetcher | None = None,
    sink: RecordSink | None = None,
) -> dict[str, Any]:
    """
    Run one crawl to completion.

    Args:
        settings: validated run configuration.
        fetcher: optional fetch service override (tests inject a fake).
        sink: optional record sink override.

    Returns:
        Summary dict: the crawl counters plus timing and output locations.
        Injected fetchers/sinks are left open; default ones are closed here.
    """
    start_ns = time.perf_counter_ns()
    own_fetcher = fetcher is None
    own_sink = sink is None
    active_fetcher = fetcher if fetcher is not None else build_fetcher(settings)
    active_sink = sink if sink is not None else build_sink(settings)

    seeds = settings.start_requests()
    logging_bridge.activity({
        "component": "rekrute_jobs.engine",
        "op": "seeds",
        "seeds": [{"url": r.url, "label": r.label.value} for r in seeds],
    })

    try:
        controller = FrontierController(settings, active_fetcher, active_sink)
        stats = controller.run(seeds)
    except Exception as e:
        logging_bridge.error({
            "component": "rekrute_jobs.engine",
            "op": "run",
            "error": repr(e),
        })
        raise
    finally:
        if own_sink:
            active_sink.close()
        if own_fetcher:
            active_fetcher.close()

    total_us = int((time.perf_counter_ns() - start_ns) // 1000)
    summary: dict[str, Any] = {
        **stats.as_dict(),
        "results_wanted": settings.results_wanted,
        "collect_details": settings.collect_details,
        "output_path": settings.output_path if own_sink else None,
        "sqlite_path": settings.sqlite_path if own_sink else None,
        "total_us": total_us,
    }

    logging_bridge.activity({
        "component": "rekrute_jobs.engine",
        "op": "summary",
        **summary,
    })
    return summary
