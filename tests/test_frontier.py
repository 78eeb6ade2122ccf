# tests/test_frontier.py
import time

import pytest
from conftest import BLOCKED_PAGE, LISTING_URL, SITE, FakeFetcher, detail_page, job_url, listing_page

from modules.rekrute_jobs.lib.frontier import FrontierController, FrontierState
from modules.rekrute_jobs.lib.models import CrawlRequest, Label
from modules.rekrute_jobs.lib.sink import MemorySink

PAGE_2 = f"{SITE}/offres.html?clear=1&keyword=data&p=2"
PAGE_3 = f"{SITE}/offres.html?clear=1&keyword=data&p=3"


def _site(n_jobs, per_page=None, pages=1):
    """Listing pages chained with 'Suivant', each job on its own detail page."""
    per_page = per_page or n_jobs
    listing_urls = [LISTING_URL, PAGE_2, PAGE_3][:pages]
    site = {}
    n = 0
    for i, url in enumerate(listing_urls):
        jobs = [job_url(n + k) for k in range(per_page)]
        n += per_page
        nxt = listing_urls[i + 1] if i + 1 < len(listing_urls) else None
        site[url] = listing_page(jobs, next_href=nxt)
        for j in jobs:
            site[j] = detail_page(title=f"Poste {j[-11:-5]}")
    return site


def _crawl(settings, fetcher, seeds=None):
    sink = MemorySink()
    stats = FrontierController(settings, fetcher, sink).run(seeds)
    return stats, sink


# ----------------------------------------------------------------------
# FrontierState
# ----------------------------------------------------------------------
def test_state_visit_and_claim_are_check_and_set():
    st = FrontierState(results_wanted=2)
    assert st.try_visit_list("a")
    assert not st.try_visit_list("a")

    assert st.try_claim_job("j1", for_detail=True)
    assert not st.try_claim_job("j1", for_detail=True)
    assert st.try_claim_job("j2", for_detail=True)
    # budget fully reserved by pending details
    assert not st.try_claim_job("j3", for_detail=True)
    assert st.remaining() == 0

    assert st.try_reserve_save()
    st.release_claim()
    assert st.saved == 1 and st.pending_detail == 0
    assert st.try_claim_job("j3", for_detail=True)
    assert st.queued_detail == 3


# ----------------------------------------------------------------------
# Detail mode
# ----------------------------------------------------------------------
def test_follows_pagination_and_dedupes_jobs(make_settings):
    site = _site(0)
    site[LISTING_URL] = listing_page([job_url(1), job_url(2), job_url(3)], next_href=PAGE_2)
    site[PAGE_2] = listing_page([job_url(3), job_url(4)])
    for i in range(1, 5):
        site[job_url(i)] = detail_page(title=f"Poste {i}")
    fetcher = FakeFetcher(site)

    stats, sink = _crawl(make_settings(), fetcher)

    assert sorted(sink.urls()) == [job_url(i) for i in range(1, 5)]
    assert stats.saved == 4
    assert stats.list_pages == 2
    assert stats.detail_pages == 4
    assert stats.queued_detail == 4
    assert fetcher.calls.count(job_url(3)) == 1
    assert all(r["source"] == "rekrute.com" for r in sink.records)
    assert {r["title"] for r in sink.records} == {"Poste 1", "Poste 2", "Poste 3", "Poste 4"}


@pytest.mark.parametrize("wanted, concurrency", [(1, 1), (3, 2), (5, 10)])
def test_results_wanted_is_never_exceeded(make_settings, wanted, concurrency):
    fetcher = FakeFetcher(_site(10, per_page=10, pages=3), delay=0.005)
    settings = make_settings(results_wanted=wanted, max_concurrency=concurrency)

    stats, sink = _crawl(settings, fetcher)

    assert stats.saved == wanted
    assert len(sink.records) == wanted
    assert len(set(sink.urls())) == wanted
    assert stats.queued_detail <= wanted


def test_max_pages_limits_pagination(make_settings):
    fetcher = FakeFetcher(_site(6, per_page=2, pages=3))
    stats, sink = _crawl(make_settings(max_pages=1), fetcher)

    assert stats.list_pages == 1
    assert PAGE_2 not in fetcher.calls
    assert stats.saved == 2


def test_pagination_stops_on_last_page(make_settings):
    fetcher = FakeFetcher(_site(6, per_page=2, pages=3))
    stats, sink = _crawl(make_settings(), fetcher)

    assert stats.list_pages == 3
    assert stats.saved == 6


def test_concurrency_bound_is_respected(make_settings):
    fetcher = FakeFetcher(_site(12, per_page=12), delay=0.02)
    stats, _sink = _crawl(make_settings(max_concurrency=3), fetcher)

    assert stats.saved == 12
    assert 1 <= fetcher.max_in_flight <= 3


def test_listing_links_are_never_enqueued_as_details(make_settings):
    site = _site(2)
    site[LISTING_URL] = listing_page([job_url(0), job_url(1)], extra='<a href="/offres-emploi-ville-rabat.html">Rabat</a>')
    fetcher = FakeFetcher(site)

    stats, sink = _crawl(make_settings(), fetcher)

    assert stats.queued_detail == 2
    assert all("offre-emploi-" in u for u in fetcher.calls if u != LISTING_URL)


# ----------------------------------------------------------------------
# URL-only mode
# ----------------------------------------------------------------------
def test_url_only_mode_emits_minimal_records(make_settings, frozen_utc):
    fetcher = FakeFetcher(_site(4, per_page=2, pages=2))
    stats, sink = _crawl(make_settings(collect_details=False), fetcher)

    assert stats.saved == 4
    assert stats.detail_pages == 0
    assert stats.queued_detail == 0
    assert not any("offre-emploi-" in u for u in fetcher.calls)

    by_url = {r["url"]: r for r in sink.records}
    first = by_url[job_url(0)]
    assert first == {
        "url": job_url(0),
        "source": "rekrute.com",
        "discoveredOn": LISTING_URL,
        "pageNo": 1,
        "scrapedAt": "2025-01-01T00:00:00Z",
    }
    assert by_url[job_url(2)]["pageNo"] == 2
    assert by_url[job_url(2)]["discoveredOn"] == PAGE_2


def test_url_only_mode_respects_budget(make_settings):
    fetcher = FakeFetcher(_site(10, per_page=10))
    stats, sink = _crawl(make_settings(collect_details=False, results_wanted=3), fetcher)

    assert stats.saved == 3
    assert sink.urls() == [job_url(0), job_url(1), job_url(2)]


# ----------------------------------------------------------------------
# Seeds
# ----------------------------------------------------------------------
def test_detail_start_url_is_fetched_directly(make_settings):
    url = job_url(7)
    fetcher = FakeFetcher({url: detail_page(title="Analyste")})
    settings = make_settings(start_urls=[url])

    stats, sink = _crawl(settings, fetcher)

    assert fetcher.calls == [url]
    assert stats.saved == 1
    assert sink.records[0]["title"] == "Analyste"


def test_detail_start_url_in_url_only_mode_is_not_fetched(make_settings):
    url = job_url(7)
    fetcher = FakeFetcher({})
    stats, sink = _crawl(make_settings(start_urls=[url], collect_details=False), fetcher)

    assert fetcher.calls == []
    assert stats.saved == 1
    assert sink.records[0]["discoveredOn"] == url
    assert sink.records[0]["pageNo"] == 0


def test_redirected_listing_is_processed_once(make_settings):
    alias = f"{SITE}/offres.html?keyword=data"
    site = _site(2)
    site[alias] = (LISTING_URL, site[LISTING_URL])
    fetcher = FakeFetcher(site)
    seeds = [CrawlRequest(url=alias, label=Label.LIST), CrawlRequest(url=LISTING_URL, label=Label.LIST)]

    stats, sink = _crawl(make_settings(max_concurrency=1), fetcher, seeds=seeds)

    assert stats.list_pages == 1
    assert stats.saved == 2


# ----------------------------------------------------------------------
# Failures
# ----------------------------------------------------------------------
def test_blocked_listing_retires_session_and_emits_nothing(make_settings):
    fetcher = FakeFetcher({LISTING_URL: BLOCKED_PAGE})
    stats, sink = _crawl(make_settings(), fetcher)

    assert stats.blocked_pages == 1
    assert stats.list_pages == 0
    assert fetcher.retired == 1
    assert sink.records == []


def test_blocked_detail_gives_its_slot_back(make_settings):
    site = _site(0)
    site[LISTING_URL] = listing_page([job_url(1), job_url(2)], next_href=PAGE_2)
    site[PAGE_2] = listing_page([job_url(3)])
    site[job_url(1)] = BLOCKED_PAGE
    site[job_url(2)] = detail_page(title="Deux")
    site[job_url(3)] = detail_page(title="Trois")
    fetcher = FakeFetcher(site)

    # one worker: requests run in submission order
    stats, sink = _crawl(make_settings(results_wanted=2, max_concurrency=1), fetcher)

    assert stats.blocked_pages == 1
    assert fetcher.retired == 1
    assert stats.saved == 2
    assert sorted(sink.urls()) == [job_url(2), job_url(3)]


def test_failed_fetch_is_abandoned(make_settings):
    site = _site(3)
    del site[job_url(1)]  # FakeFetcher answers 404
    fetcher = FakeFetcher(site)

    stats, sink = _crawl(make_settings(), fetcher)

    assert stats.abandoned_requests == 1
    assert stats.saved == 2
    assert job_url(1) not in sink.urls()


def test_detail_handler_error_is_counted(make_settings, monkeypatch):
    from modules.rekrute_jobs.lib import frontier

    real = frontier.reconcile

    def flaky(url, soup, cfg):
        if url == job_url(0):
            raise RuntimeError("boom")
        return real(url, soup, cfg)

    monkeypatch.setattr(frontier, "reconcile", flaky)
    fetcher = FakeFetcher(_site(3))

    stats, sink = _crawl(make_settings(), fetcher)

    assert stats.failed_details == 1
    assert stats.saved == 2


def test_unusual_traffic_page_counts_as_blocked(make_settings):
    site = _site(2)
    site[job_url(1)] = (
        "<html><body><h1>Sorry...</h1>"
        "<p>Our systems have detected unusual traffic from your computer network.</p></body></html>"
    )
    fetcher = FakeFetcher(site)

    stats, sink = _crawl(make_settings(), fetcher)

    assert stats.blocked_pages == 1
    assert fetcher.retired == 1
    assert sink.urls() == [job_url(0)]


# ----------------------------------------------------------------------
# Budget vs. pagination and concurrent listings
# ----------------------------------------------------------------------
class SlowDetailFetcher(FakeFetcher):
    """Listing pages answer at once, detail pages take `detail_delay`."""

    def __init__(self, pages, detail_delay):
        super().__init__(pages)
        self.detail_delay = detail_delay

    def fetch(self, url):
        if "/offre-emploi-" in url:
            time.sleep(self.detail_delay)
        return super().fetch(url)


def test_listing_without_budget_left_does_not_paginate(make_settings):
    pages = [LISTING_URL] + [f"{SITE}/offres.html?clear=1&keyword=data&p={n}" for n in range(2, 9)]
    site = {}
    for i, url in enumerate(pages):
        jobs = [job_url(i * 5 + k) for k in range(5)]
        nxt = pages[i + 1] if i + 1 < len(pages) else None
        site[url] = listing_page(jobs, next_href=nxt)
        for j in jobs:
            site[j] = detail_page()
    fetcher = SlowDetailFetcher(site, detail_delay=0.2)

    stats, sink = _crawl(make_settings(results_wanted=2, max_concurrency=4), fetcher)

    assert stats.saved == 2
    assert stats.list_pages == 2
    assert not any(p in fetcher.calls for p in pages[2:])


def test_concurrent_listings_share_a_job_link(make_settings):
    other = f"{SITE}/offres.html?clear=1&keyword=finance"
    site = {
        LISTING_URL: listing_page([job_url(1), job_url(2)]),
        other: listing_page([job_url(1), job_url(3)]),
    }
    for n in (1, 2, 3):
        site[job_url(n)] = detail_page(title=f"Poste {n}")
    seeds = [CrawlRequest(url=LISTING_URL, label=Label.LIST), CrawlRequest(url=other, label=Label.LIST)]

    for _ in range(5):
        fetcher = FakeFetcher(site, delay=0.01)
        stats, sink = _crawl(make_settings(max_concurrency=2), fetcher, seeds=seeds)

        assert fetcher.calls.count(job_url(1)) == 1
        assert stats.queued_detail == 3
        assert sorted(sink.urls()) == [job_url(1), job_url(2), job_url(3)]


@pytest.mark.parametrize("collect_details", [True, False])
def test_twenty_links_with_budget_of_five(make_settings, collect_details):
    fetcher = FakeFetcher(_site(20, per_page=20))
    stats, sink = _crawl(make_settings(results_wanted=5, collect_details=collect_details), fetcher)

    assert stats.saved == 5
    assert len(sink.records) == 5
    if collect_details:
        assert stats.queued_detail == 5
        assert sum("/offre-emploi-" in u for u in fetcher.calls) == 5


def test_unusual_traffic_listing_follows_no_links(make_settings):
    site = _site(4, per_page=2, pages=2)
    site[LISTING_URL] = site[LISTING_URL].replace(
        "</body>", "<p>We have detected unusual traffic from your network.</p></body>"
    )
    fetcher = FakeFetcher(site)

    stats, sink = _crawl(make_settings(), fetcher)

    assert stats.blocked_pages == 1
    assert stats.list_pages == 0
    assert fetcher.calls == [LISTING_URL]
    assert sink.records == []
