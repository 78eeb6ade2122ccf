# tests/conftest.py
import os
import tempfile
import threading
import time

import pytest
from freezegun import freeze_time

from modules.rekrute_jobs.lib.config import Settings
from modules.rekrute_jobs.lib.http_client import FetchError, FetchResult


SITE = "https://www.rekrute.com"
LISTING_URL = f"{SITE}/offres.html?clear=1&keyword=data"


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (network calls to rekrute.com).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "live: marks tests that perform live network calls (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch):
    # Write logs to a throwaway dir so real logs stay clean (per test)
    tmp_logs = tempfile.mkdtemp(prefix="rk-pytest-logs-")
    monkeypatch.setenv("LOG_DIR", tmp_logs)
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")
    monkeypatch.delenv("REKRUTE_PROXY_URLS", raising=False)
    monkeypatch.delenv("REKRUTE_OUTPUT_PATH", raising=False)
    yield


@pytest.fixture
def frozen_utc():
    with freeze_time("2025-01-01T00:00:00Z"):
        yield


# ---------------------------------------------------------------------
# Canned site
# ---------------------------------------------------------------------
def job_url(n: int, slug: str = "data-analyst-recrutement-acme-casablanca") -> str:
    return f"{SITE}/offre-emploi-{slug}-{150000 + n}.html"


def listing_page(job_urls, next_href=None, extra="") -> str:
    items = "\n".join(
        f'<li class="post-id"><a class="titreJob" href="{u}">Offre {i}</a></li>' for i, u in enumerate(job_urls)
    )
    nxt = f'<div class="pagination"><a href="{next_href}">Suivant ›</a></div>' if next_href else ""
    return f"""
    <html lang="fr"><body>
      <nav><a href="/offres.html">Offres</a><a href="/offres-emploi-secteur-informatique.html">IT</a></nav>
      <ul class="job-list">{items}</ul>
      {nxt}
      {extra}
    </body></html>
    """


def detail_page(title="Data Analyst", company="Acme", city="Casablanca") -> str:
    return f"""
    <html lang="fr"><head><title>{title} - {company} | ReKrute</title></head><body>
      <header><a href="/">ReKrute</a></header>
      <div class="col-md-9">
        <h1>{title} - {company} - {city}</h1>
        <h2>Poste</h2>
        <p>Vous rejoindrez l'équipe data pour construire des tableaux de bord et des analyses
           pour les directions métier. Type de contrat : CDI</p>
        <h2>Profil recherché</h2>
        <ul><li>Bac+5 en statistiques</li><li>Maîtrise de SQL et Python</li></ul>
        <p>Publiée le 12/03/2025</p>
      </div>
    </body></html>
    """


BLOCKED_PAGE = "<html><body><h1>Access denied</h1><p>Please complete the captcha.</p></body></html>"


class FakeFetcher:
    """
    In-memory fetch service.

    pages: url -> html, or url -> (final_url, html), or url -> Exception.
    Unknown URLs raise FetchError (404). Tracks calls and peak concurrency.
    """

    def __init__(self, pages, delay=0.0):
        self.pages = dict(pages)
        self.delay = delay
        self.calls = []
        self.retired = 0
        self._lock = threading.Lock()
        self._in_flight = 0
        self.max_in_flight = 0

    def fetch(self, url):
        with self._lock:
            self.calls.append(url)
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            page = self.pages.get(url)
            if page is None:
                raise FetchError(url, "HTTP 404", status=404)
            if isinstance(page, Exception):
                raise page
            if isinstance(page, tuple):
                final_url, html = page
            else:
                final_url, html = url, page
            return FetchResult(url=url, final_url=final_url, status=200, text=html)
        finally:
            with self._lock:
                self._in_flight -= 1

    def retire_session(self):
        with self._lock:
            self.retired += 1

    def close(self):
        pass


@pytest.fixture
def make_settings(tmp_path):
    """Settings with no politeness delay and output under tmp_path."""

    def _make(**kwargs):
        kw = {
            "start_urls": [LISTING_URL],
            "min_delay_s": 0,
            "max_delay_s": 0,
            "output_path": str(tmp_path / "out.jsonl"),
        }
        kw.update(kwargs)
        return Settings.from_env_and_kwargs(kw)

    return _make
