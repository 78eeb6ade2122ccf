# modules/rekrute_jobs/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience
from .config import ConfigError, ExtractionConfig, Settings
from .engine import run_once
from .frontier import BlockedPageError, FrontierController, FrontierState
from .http_client import FetchError, FetchResult, HttpFetchService
from .models import CrawlRequest, CrawlStats, JobRecord, Label, UrlOnlyRecord

__all__ = [
    "BlockedPageError",
    "ConfigError",
    "CrawlRequest",
    "CrawlStats",
    "ExtractionConfig",
    "FetchError",
    "FetchResult",
    "FrontierController",
    "FrontierState",
    "HttpFetchService",
    "JobRecord",
    "Label",
    "Settings",
    "UrlOnlyRecord",
    "run_once",
]
