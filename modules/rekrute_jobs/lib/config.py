from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

from .models import CrawlRequest, Label
from .utils import getenv_str, to_positive_int, truthy


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when provided kwargs/env cannot form a valid Settings."""


# -----------------------------
# Site constants
# -----------------------------
BASE_URL = "https://www.rekrute.com"
LISTING_PATHS = {
    "fr": "/offres.html",
    "en": "/en/offres.html",
}
LANGS = ("fr", "en", "both")

DEFAULT_RESULTS_WANTED = 100
DEFAULT_MAX_PAGES = 999
DEFAULT_CONCURRENCY = 20
MAX_CONCURRENCY = 50
MAX_BUDGET = 10000


# -----------------------------
# Models
# -----------------------------
@dataclass(frozen=True)
class ExtractionConfig:
    """
    Site markup knowledge: URL shapes, selectors and thresholds.

    Everything here is tuned to rekrute.com and is the first thing to revisit
    when the site changes its templates.
    """

    host_pattern: str = r"(^|\.)rekrute\.com$"
    # /offre-emploi-<slug>-<numeric id>.html, optionally under /en/ or /fr/
    job_link_pattern: str = r"^/(?:[a-z]{2}/)?offre-emploi-[^/]*?-\d+\.html$"
    # /offres.html, /offres-emploi-secteur-x.html, ... are listings, never jobs
    listing_exclude_pattern: str = r"^/(?:[a-z]{2}/)?offres(?:[-_][^/]*)?\.html$"
    next_text_pattern: str = r"suivant|\bnext\b|[›»]|^\s*>+\s*$"

    block_markers: tuple[str, ...] = (
        "captcha",
        "access denied",
        "unusual traffic",
        "are you a robot",
        "request blocked",
        "403 forbidden",
    )

    noise_selectors: tuple[str, ...] = (
        ".sidebar",
        "#sidebar",
        ".col-md-3",
        ".pagination",
        ".modal",
        ".login",
        ".login-box",
        ".auth",
        ".signup",
        ".breadcrumb",
        ".share",
        ".social",
        ".cookie",
        "#cookie-banner",
        ".similar-offers",
        ".related",
    )
    description_selectors: tuple[str, ...] = (
        "#job_desc",
        ".job-description",
        ".jobdesciption",
        "#job-info",
        ".annonce",
        ".jobDetail",
        "#job",
        ".job",
    )
    central_column_selectors: tuple[str, ...] = (
        ".col-md-9",
        "#fortopscroll",
        ".main-content",
        "main",
        "article",
    )
    company_selectors: tuple[str, ...] = (
        ".company",
        ".company-name",
        ".societe",
        ".society",
        "a.company",
        "a.company-name",
        "[itemprop='hiringOrganization'] [itemprop='name']",
    )
    location_selectors: tuple[str, ...] = (
        ".location",
        ".job-location",
        ".lieu",
        "[itemprop='jobLocation']",
    )
    min_description_chars: int = 80
    max_collapse_iterations: int = 50

    @property
    def host_re(self) -> re.Pattern[str]:
        return re.compile(self.host_pattern, re.I)

    @property
    def job_link_re(self) -> re.Pattern[str]:
        return re.compile(self.job_link_pattern, re.I)

    @property
    def listing_exclude_re(self) -> re.Pattern[str]:
        return re.compile(self.listing_exclude_pattern, re.I)

    @property
    def next_text_re(self) -> re.Pattern[str]:
        return re.compile(self.next_text_pattern, re.I)


@dataclass
class Settings:
    """
    Canonical configuration for one crawl run.

    Built once from kwargs (CLI or caller) plus a couple of env fallbacks;
    immutable in practice after `from_env_and_kwargs`.
    """

    # Search filters (ignored when explicit start URLs are given)
    keyword: str = ""
    location: str = ""
    category: str = ""
    lang: str = "fr"
    start_urls: list[str] = field(default_factory=list)

    # Budgets
    collect_details: bool = True
    results_wanted: int = DEFAULT_RESULTS_WANTED
    max_pages: int = DEFAULT_MAX_PAGES
    max_concurrency: int = DEFAULT_CONCURRENCY

    # Passed through to the fetch service
    headers: dict[str, str] = field(default_factory=dict)
    cookies: dict[str, str] = field(default_factory=dict)
    proxy_urls: list[str] = field(default_factory=list)
    request_timeout_s: float = 30.0
    max_retries: int = 3
    min_delay_s: float = 1.0
    max_delay_s: float = 3.0

    # Sinks
    output_path: str = "./local/output/rekrute_jobs.jsonl"
    sqlite_path: str | None = None

    extraction: ExtractionConfig = field(default_factory=ExtractionConfig, repr=False)

    # ------------- convenience -------------
    def start_requests(self) -> list[CrawlRequest]:
        """
        Seed requests for the frontier.

        Explicit start URLs win over filter-derived ones. A start URL shaped
        like a job detail page is seeded as DETAIL, everything else as LIST.
        """
        from .links import is_job_url

        urls = list(self.start_urls)
        if not urls:
            langs = ["fr", "en"] if self.lang == "both" else [self.lang]
            urls = [build_start_url(self.keyword, self.location, self.category, lg) for lg in langs]

        out: list[CrawlRequest] = []
        seen: set[str] = set()
        for u in urls:
            if u in seen:
                continue
            seen.add(u)
            if is_job_url(u, self.extraction):
                out.append(CrawlRequest(url=u, label=Label.DETAIL, page_no=0))
            else:
                out.append(CrawlRequest(url=u, label=Label.LIST, page_no=1))
        return out

    def summary(self) -> dict[str, Any]:
        """Loggable view (no headers/cookies/proxies)."""
        return {
            "keyword": self.keyword,
            "location": self.location,
            "category": self.category,
            "lang": self.lang,
            "start_urls": list(self.start_urls),
            "collect_details": self.collect_details,
            "results_wanted": self.results_wanted,
            "max_pages": self.max_pages,
            "max_concurrency": self.max_concurrency,
            "proxies": len(self.proxy_urls),
            "output_path": self.output_path,
            "sqlite_path": self.sqlite_path,
        }

    # ------------- constructors -------------
    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None) -> Settings:
        """
        Build Settings from kwargs with validation.

        Expected kwargs (all optional):

            keyword, location, category: str
            lang: "fr" | "en" | "both" = "fr"
            start_urls: list[str]      # also accepts start_url / url
            collect_details: bool = true
            results_wanted: int = 100   # clamped to 1..10000
            max_pages: int = 999        # clamped to 1..10000
            max_concurrency: int = 20   # clamped to 1..50
            headers: dict[str, str]
            cookies: dict[str, str] | "k=v; k2=v2"
            proxy_urls: list[str] | "url1,url2"   # env REKRUTE_PROXY_URLS
            request_timeout_s: float = 30
            max_retries: int = 3
            min_delay_s / max_delay_s: float = 1 / 3
            output_path: str            # env REKRUTE_OUTPUT_PATH
            sqlite_path: str | None
        """
        kw = dict(kwargs or {})

        lang = str(kw.get("lang") or "fr").strip().lower()

        start_urls = _parse_str_list(kw.get("start_urls"), "start_urls")
        for alias in ("start_url", "url"):
            val = str(kw.get(alias) or "").strip()
            if val:
                start_urls.append(val)

        collect_details = truthy(kw["collect_details"]) if "collect_details" in kw else True

        proxy_raw = kw.get("proxy_urls")
        if proxy_raw is None:
            proxy_raw = getenv_str("REKRUTE_PROXY_URLS")
        proxy_urls = _parse_str_list(proxy_raw, "proxy_urls")

        min_delay = _to_float(kw.get("min_delay_s"), 1.0)
        max_delay = _to_float(kw.get("max_delay_s"), 3.0)

        output_path = str(
            kw.get("output_path") or getenv_str("REKRUTE_OUTPUT_PATH") or "./local/output/rekrute_jobs.jsonl"
        )
        sqlite_path = str(kw.get("sqlite_path") or "").strip() or None

        settings = cls(
            keyword=str(kw.get("keyword") or "").strip(),
            location=str(kw.get("location") or "").strip(),
            category=str(kw.get("category") or "").strip(),
            lang=lang,
            start_urls=start_urls,
            collect_details=collect_details,
            results_wanted=to_positive_int(
                kw.get("results_wanted"), DEFAULT_RESULTS_WANTED, min_value=1, max_value=MAX_BUDGET
            ),
            max_pages=to_positive_int(kw.get("max_pages"), DEFAULT_MAX_PAGES, min_value=1, max_value=MAX_BUDGET),
            max_concurrency=to_positive_int(
                kw.get("max_concurrency"), DEFAULT_CONCURRENCY, min_value=1, max_value=MAX_CONCURRENCY
            ),
            headers=_parse_str_map(kw.get("headers"), "headers"),
            cookies=_parse_cookies(kw.get("cookies")),
            proxy_urls=proxy_urls,
            request_timeout_s=_to_float(kw.get("request_timeout_s"), 30.0),
            max_retries=to_positive_int(kw.get("max_retries"), 3, min_value=0, max_value=10),
            min_delay_s=max(0.0, min_delay),
            max_delay_s=max(0.0, max_delay, min_delay),
            output_path=output_path,
            sqlite_path=sqlite_path,
        )
        _validate_settings(settings)
        return settings


# -----------------------------
# Helpers
# -----------------------------
def build_start_url(keyword: str, location: str, category: str, lang: str) -> str:
    """
    Listing URL for the given filters, e.g.
    https://www.rekrute.com/offres.html?clear=1&keyword=data
    """
    path = LISTING_PATHS.get(lang, LISTING_PATHS["fr"])
    params = {"clear": "1"}
    if keyword:
        params["keyword"] = str(keyword).strip()
    if location:
        params["location"] = str(location).strip()
    if category:
        params["category"] = str(category).strip()
    return f"{BASE_URL}{path}?{urlencode(params)}"


def _parse_str_list(value: Any, name: str) -> list[str]:
    """
    Accepts a list of strings (or {"url": ...} objects), a JSON array string,
    or a comma-separated string.
    """
    if value is None or value == "":
        return []
    if isinstance(value, str):
        s = value.strip()
        if s.startswith("["):
            try:
                value = json.loads(s)
            except json.JSONDecodeError as e:
                raise ConfigError(f"'{name}' is not a valid JSON array.") from e
        else:
            return [p.strip() for p in s.split(",") if p.strip()]
    if not isinstance(value, (list, tuple)):
        raise ConfigError(f"'{name}' must be a list of strings.")
    out: list[str] = []
    for i, item in enumerate(value):
        if isinstance(item, dict):
            item = item.get("url")
        if not isinstance(item, str):
            raise ConfigError(f"{name}[{i}] must be a string.")
        if item.strip():
            out.append(item.strip())
    return out


def _parse_str_map(value: Any, name: str) -> dict[str, str]:
    if not value:
        return {}
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise ConfigError(f"'{name}' must be an object.") from e
    if not isinstance(value, Mapping):
        raise ConfigError(f"'{name}' must be an object.")
    return {str(k): str(v) for k, v in value.items()}


def _parse_cookies(value: Any) -> dict[str, str]:
    """Cookie jar from a mapping or a raw 'a=1; b=2' header value."""
    if not value:
        return {}
    if isinstance(value, str) and not value.strip().startswith("{"):
        out: dict[str, str] = {}
        for part in value.split(";"):
            if "=" not in part:
                continue
            k, v = part.split("=", 1)
            if k.strip():
                out[k.strip()] = v.strip()
        return out
    return _parse_str_map(value, "cookies")


def _to_float(value: Any, default: float) -> float:
    try:
        return float(value) if value is not None and value != "" else default
    except (TypeError, ValueError):
        return default


def _validate_settings(s: Settings) -> None:
    if s.lang not in LANGS:
        raise ConfigError(f"'lang' must be one of {', '.join(LANGS)} (got {s.lang!r}).")
    if s.request_timeout_s <= 0:
        raise ConfigError("'request_timeout_s' must be > 0.")
    if not s.output_path.strip() and not s.sqlite_path:
        raise ConfigError("At least one of 'output_path' or 'sqlite_path' is required.")
    for u in s.start_urls:
        if not u.lower().startswith(("http://", "https://")):
            raise ConfigError(f"Start URL must be absolute http(s): {u!r}")
