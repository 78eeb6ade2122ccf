# rekrute_jobs/http_client.py
from __future__ import annotations

import itertools
import logging
import random
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .logging_bridge import activity as log_activity

LOG = logging.getLogger(__name__)

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14.4; rv:125.0) Gecko/20100101 Firefox/125.0",
)

BASE_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "fr-FR,fr;q=0.9,en-US;q=0.8,en;q=0.7",
    "Upgrade-Insecure-Requests": "1",
}

RETRY_STATUSES = (429, 500, 502, 503, 504)


class FetchError(RuntimeError):
    """A page could not be fetched (network failure or non-2xx after retries)."""

    def __init__(self, url: str, message: str, status: int | None = None):
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status = status


@dataclass(frozen=True)
class FetchResult:
    url: str
    final_url: str
    status: int
    text: str


class HttpFetchService:
    """
    Thread-safe page fetcher for the crawler.

    One requests.Session shared by all workers (its connection pool is sized
    for the crawl's concurrency). retire_session() throws it away and starts
    a fresh one with a new user agent and the next proxy, which is what the
    crawler asks for when a page looks like a bot wall.
    """

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        max_retries: int = 3,
        headers: Mapping[str, str] | None = None,
        cookies: Mapping[str, str] | None = None,
        proxy_urls: Sequence[str] | None = None,
        pool_size: int = 20,
        rng: random.Random | None = None,
    ):
        self.timeout = float(timeout)
        self.max_retries = int(max_retries)
        self.headers = dict(headers or {})
        self.cookies = dict(cookies or {})
        self.proxy_urls = list(proxy_urls or [])
        self.pool_size = max(1, int(pool_size))
        self._rng = rng or random.Random()
        self._proxies = itertools.cycle(self.proxy_urls) if self.proxy_urls else None
        self._lock = threading.Lock()
        self._generation = 0
        self.session = self._new_session()

    # ---- session lifecycle ----
    def _new_session(self) -> requests.Session:
        s = requests.Session()
        s.headers.update(BASE_HEADERS)
        s.headers["User-Agent"] = self._rng.choice(USER_AGENTS)
        # Caller headers win over the browser-like defaults.
        s.headers.update(self.headers)
        for k, v in self.cookies.items():
            s.cookies.set(k, v)

        if self._proxies is not None:
            proxy = next(self._proxies)
            s.proxies.update({"http": proxy, "https": proxy})

        retry = Retry(
            total=self.max_retries,
            backoff_factor=0.5,
            status_forcelist=RETRY_STATUSES,
            allowed_methods=frozenset(["GET", "HEAD"]),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=self.pool_size)
        s.mount("http://", adapter)
        s.mount("https://", adapter)
        return s

    def retire_session(self) -> None:
        """Drop the current session (cookies, UA, proxy) and start a new one."""
        with self._lock:
            old = self.session
            self.session = self._new_session()
            self._generation += 1
            generation = self._generation
        try:
            old.close()
        except OSError:
            LOG.debug("closing retired session failed", exc_info=True)
        log_activity({
            "component": "rekrute_jobs.http_client",
            "op": "retire_session",
            "generation": generation,
        })

    # ---- fetching ----
    def fetch(self, url: str) -> FetchResult:
        """GET `url`; FetchError on network failure or a non-2xx final status."""
        session = self.session
        try:
            resp = session.get(url, timeout=self.timeout, allow_redirects=True)
        except requests.RequestException as e:
            raise FetchError(url, f"request failed: {e.__class__.__name__}: {e}") from e

        if not 200 <= resp.status_code < 300:
            raise FetchError(url, f"HTTP {resp.status_code}", status=resp.status_code)

        if not resp.encoding or resp.encoding.lower() == "iso-8859-1":
            # requests falls back to latin-1 for text/html without a charset
            resp.encoding = resp.apparent_encoding or "utf-8"
        return FetchResult(url=url, final_url=resp.url or url, status=resp.status_code, text=resp.text)

    def close(self) -> None:
        try:
            self.session.close()
        except OSError:
            LOG.debug("HttpFetchService.close() failed", exc_info=True)

    def __enter__(self) -> HttpFetchService:
        return self

    def __exit__(self, *exc) -> None:
        self.close()
