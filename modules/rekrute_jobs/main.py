from __future__ import annotations

from typing import Any

from .lib.config import Settings
from .lib.engine import run_once as _run_engine
from .lib.logging_bridge import activity as log_activity


def run(**kwargs: Any) -> dict[str, Any]:
    """
    Entry point for the 'rekrute_jobs' module.

    Accepts kwargs (from the CLI or a caller), including:
      keyword, location, category: str
      lang: "fr" | "en" | "both" = "fr"
      start_urls: list[str]            # overrides the search filters
      collect_details: bool = True     # False -> one URL record per job link
      results_wanted: int = 100
      max_pages: int = 999
      max_concurrency: int = 20
      headers, cookies, proxy_urls
      output_path: str = "./local/output/rekrute_jobs.jsonl"
      sqlite_path: Optional[str]

    Test hooks (not part of Settings):
      fetcher: object with fetch(url) / retire_session()
      sink: object with write(record) / close()

    Returns:
      Crawl summary dict (saved, list_pages, detail_pages, ...).
    Raises:
      ConfigError for invalid kwargs.
    """
    fetcher = kwargs.pop("fetcher", None)
    sink = kwargs.pop("sink", None)

    settings = Settings.from_env_and_kwargs(kwargs)

    log_activity({
        "component": "rekrute_jobs.main",
        "op": "start",
        "settings": settings.summary(),
    })

    return _run_engine(settings, fetcher=fetcher, sink=sink)
