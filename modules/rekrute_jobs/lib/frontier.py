"""
Crawl frontier for rekrute.com: listing pages (LIST) fan out into job detail
pages (DETAIL) under a results budget.

Layout:
  - FrontierState: the only shared mutable state (visited listing URLs, claimed
    job URLs, counters) behind one lock. Every check-then-act is a single
    method call.
  - FrontierController: owns the thread pool. Workers fetch and parse one
    request and return follow-up requests; only the coordinating thread
    submits work.

Budget accounting: a job URL claimed for detail collection holds a pending
slot until its DETAIL request finishes, so `saved + pending_detail` never
exceeds `results_wanted`. A failed or blocked detail gives its slot back.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Protocol

from bs4 import BeautifulSoup

from . import logging_bridge
from .config import ExtractionConfig, Settings
from .extractors import looks_blocked
from .http_client import FetchError, FetchResult
from .links import find_job_links, find_next_page
from .models import CrawlRequest, CrawlStats, Label, UrlOnlyRecord
from .reconcile import reconcile
from .sink import RecordSink
from .utils import now_iso

log = logging.getLogger(__name__)

COMPONENT = "rekrute_jobs.frontier"


class BlockedPageError(RuntimeError):
    """The fetched page is an anti-bot interstitial rather than content."""

    def __init__(self, url: str):
        super().__init__(f"blocked page: {url}")
        self.url = url


class PageFetcher(Protocol):
    def fetch(self, url: str) -> FetchResult: ...

    def retire_session(self) -> None: ...


# =============================================================================
# SHARED STATE
# =============================================================================
class FrontierState:
    """Thread-safe crawl bookkeeping."""

    def __init__(self, results_wanted: int):
        self.results_wanted = int(results_wanted)
        self._lock = threading.Lock()
        self._visited_list: set[str] = set()
        self._seen_jobs: set[str] = set()
        self.saved = 0
        self.pending_detail = 0
        self.queued_detail = 0
        self.list_pages = 0
        self.detail_pages = 0
        self.failed_details = 0
        self.blocked_pages = 0
        self.abandoned_requests = 0

    # ---- listing pages ----
    def try_visit_list(self, url: str) -> bool:
        """Mark a listing URL visited; False if it already was."""
        with self._lock:
            if url in self._visited_list:
                return False
            self._visited_list.add(url)
            return True

    def is_list_visited(self, url: str) -> bool:
        with self._lock:
            return url in self._visited_list

    # ---- job URLs and budget ----
    def remaining(self) -> int:
        with self._lock:
            return self.results_wanted - self.saved - self.pending_detail

    def budget_reached(self) -> bool:
        with self._lock:
            return self.saved >= self.results_wanted

    def try_claim_job(self, url: str, *, for_detail: bool) -> bool:
        """
        Claim an unseen job URL and a budget slot for it in one step.
        False when the URL was already seen or no slot is left.
        """
        with self._lock:
            if self.saved + self.pending_detail >= self.results_wanted:
                return False
            if url in self._seen_jobs:
                return False
            self._seen_jobs.add(url)
            self.pending_detail += 1
            if for_detail:
                self.queued_detail += 1
            return True

    def try_reserve_save(self) -> bool:
        """Turn a claimed slot into a saved result. False if the budget is already met."""
        with self._lock:
            if self.pending_detail > 0:
                self.pending_detail -= 1
            if self.saved >= self.results_wanted:
                return False
            self.saved += 1
            return True

    def cancel_save(self) -> None:
        """Undo try_reserve_save(); the slot goes back to pending, not to the pool."""
        with self._lock:
            self.saved = max(0, self.saved - 1)
            self.pending_detail += 1

    def release_claim(self) -> None:
        """Give a claimed slot back without saving (detail failed or skipped)."""
        with self._lock:
            self.pending_detail = max(0, self.pending_detail - 1)

    # ---- counters ----
    def bump(self, counter: str, n: int = 1) -> None:
        with self._lock:
            setattr(self, counter, getattr(self, counter) + n)

    def snapshot(self) -> CrawlStats:
        with self._lock:
            return CrawlStats(
                saved=self.saved,
                queued_detail=self.queued_detail,
                list_pages=self.list_pages,
                detail_pages=self.detail_pages,
                failed_details=self.failed_details,
                blocked_pages=self.blocked_pages,
                abandoned_requests=self.abandoned_requests,
                visited_list_urls=len(self._visited_list),
                seen_job_urls=len(self._seen_jobs),
            )


# =============================================================================
# CONTROLLER
# =============================================================================
class FrontierController:
    def __init__(
        self,
        settings: Settings,
        fetcher: PageFetcher,
        sink: RecordSink,
        extraction: ExtractionConfig | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ):
        self.settings = settings
        self.fetcher = fetcher
        self.sink = sink
        self.cfg = extraction or settings.extraction
        self.state = FrontierState(settings.results_wanted)
        self._sleep = sleep
        self._rng = rng or random.Random()

    # -------------------------------------------------------------------------
    # Run loop
    # -------------------------------------------------------------------------
    def run(self, seeds: Iterable[CrawlRequest] | None = None) -> CrawlStats:
        """
        Crawl until the queue drains or `results_wanted` records are saved.
        Returns the final counters.
        """
        seeds = list(seeds) if seeds is not None else self.settings.start_requests()
        initial = self._admit_seeds(seeds)

        with ThreadPoolExecutor(
            max_workers=self.settings.max_concurrency, thread_name_prefix="rekrute"
        ) as pool:
            in_flight: set[Future] = {pool.submit(self._process, r) for r in initial}
            while in_flight:
                done, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
                for fut in done:
                    if fut.cancelled():
                        continue
                    follow_ups = fut.result()
                    if self.state.budget_reached():
                        continue
                    for req in follow_ups:
                        in_flight.add(pool.submit(self._process, req))

                if self.state.budget_reached() and in_flight:
                    # Not-yet-started work is dropped; running fetches finish.
                    for f in in_flight:
                        f.cancel()
                    in_flight = {f for f in in_flight if not f.cancelled()}

        return self.state.snapshot()

    def _admit_seeds(self, seeds: list[CrawlRequest]) -> list[CrawlRequest]:
        """
        LIST seeds go straight in. DETAIL seeds claim their URL first; in
        URL-only mode they are emitted as records without being fetched.
        """
        out: list[CrawlRequest] = []
        for req in seeds:
            if req.label is Label.LIST:
                out.append(req)
                continue
            if not self.state.try_claim_job(req.url, for_detail=self.settings.collect_details):
                continue
            if self.settings.collect_details:
                out.append(req)
            else:
                self._emit_url_only(req.url, discovered_on=req.discovered_on or req.url, page_no=req.page_no)
        return out

    # -------------------------------------------------------------------------
    # Worker side
    # -------------------------------------------------------------------------
    def _process(self, req: CrawlRequest) -> list[CrawlRequest]:
        """Handle one request; never raises. Returns follow-up requests."""
        is_detail = req.label is Label.DETAIL
        try:
            self._delay()
            if is_detail:
                return self._handle_detail(req)
            return self._handle_list(req)
        except BlockedPageError as e:
            self.state.bump("blocked_pages")
            if is_detail:
                self.state.release_claim()
            self.fetcher.retire_session()
            logging_bridge.activity({
                "component": COMPONENT,
                "op": "blocked",
                "label": req.label.value,
                "url": e.url,
            })
        except FetchError as e:
            self.state.bump("abandoned_requests")
            if is_detail:
                self.state.release_claim()
            logging_bridge.error({
                "component": COMPONENT,
                "op": "fetch",
                "label": req.label.value,
                "url": req.url,
                "status": e.status,
                "error": str(e),
            })
        except Exception as e:
            if is_detail:
                self.state.bump("failed_details")
                self.state.release_claim()
            else:
                self.state.bump("abandoned_requests")
            logging_bridge.error({
                "component": COMPONENT,
                "op": "detail" if is_detail else "list",
                "url": req.url,
                "error": repr(e),
            })
        return []

    def _delay(self) -> None:
        lo, hi = self.settings.min_delay_s, self.settings.max_delay_s
        if hi <= 0:
            return
        self._sleep(self._rng.uniform(lo, hi))

    def _load(self, url: str) -> tuple[FetchResult, BeautifulSoup]:
        result = self.fetcher.fetch(url)
        soup = BeautifulSoup(result.text or "", "html.parser")
        if looks_blocked(soup, self.cfg):
            raise BlockedPageError(result.final_url or url)
        return result, soup

    def _handle_list(self, req: CrawlRequest) -> list[CrawlRequest]:
        if not self.state.try_visit_list(req.url):
            return []

        result, soup = self._load(req.url)
        base = result.final_url or req.url
        if base != req.url and not self.state.try_visit_list(base):
            log.debug("redirect target already visited: %s -> %s", req.url, base)
            return []
        self.state.bump("list_pages")

        # Budget already saved or held by queued details: no links, no next page.
        # Pagination queued by earlier pages still runs.
        if self.state.remaining() <= 0:
            log.debug("list page %s: budget taken, not following links", base)
            return []

        follow_ups: list[CrawlRequest] = []
        collect = self.settings.collect_details
        links = find_job_links(soup, base, self.cfg)
        claimed = 0
        for job_url in links:
            if self.state.remaining() <= 0:
                break
            if not self.state.try_claim_job(job_url, for_detail=collect):
                continue
            claimed += 1
            if collect:
                follow_ups.append(
                    CrawlRequest(url=job_url, label=Label.DETAIL, page_no=req.page_no, discovered_on=base)
                )
            else:
                self._emit_url_only(job_url, discovered_on=base, page_no=req.page_no)

        log.debug("list page %s (page %d): %d links, %d claimed", base, req.page_no, len(links), claimed)

        if req.page_no < self.settings.max_pages and not self.state.budget_reached():
            nxt = find_next_page(soup, base, self.cfg)
            if nxt and not self.state.is_list_visited(nxt):
                follow_ups.append(CrawlRequest(url=nxt, label=Label.LIST, page_no=req.page_no + 1, discovered_on=base))
        return follow_ups

    def _handle_detail(self, req: CrawlRequest) -> list[CrawlRequest]:
        if not self.settings.collect_details or self.state.budget_reached():
            self.state.release_claim()
            return []

        _result, soup = self._load(req.url)
        self.state.bump("detail_pages")
        record = reconcile(req.url, soup, self.cfg)

        if not self.state.try_reserve_save():
            return []
        try:
            self.sink.write(record.to_dict())
        except Exception:
            self.state.cancel_save()
            raise
        return []

    def _emit_url_only(self, url: str, *, discovered_on: str, page_no: int) -> None:
        if not self.state.try_reserve_save():
            return
        rec = UrlOnlyRecord(url=url, discovered_on=discovered_on, page_no=page_no, scraped_at=now_iso())
        try:
            self.sink.write(rec.to_dict())
        except Exception:
            self.state.cancel_save()
            self.state.release_claim()
            raise
