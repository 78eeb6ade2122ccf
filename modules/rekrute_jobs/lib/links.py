"""
Link normalization for rekrute.com pages.

Resolves hrefs against the page URL, keeps the crawl on the site's own host,
and tells job detail links apart from listing/index links.
"""

from __future__ import annotations

import logging
from urllib.parse import urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup

from .config import ExtractionConfig

log = logging.getLogger(__name__)

_DEFAULT = ExtractionConfig()
_SKIP_SCHEMES = ("javascript:", "mailto:", "tel:", "#")


def to_abs(href: str | None, base: str) -> str | None:
    """
    Absolute http(s) URL for `href` relative to `base`, fragment dropped.
    Returns None for empty, script, mail or otherwise unusable references.
    """
    href = (href or "").strip()
    if not href or href.lower().startswith(_SKIP_SCHEMES):
        return None
    try:
        parsed = urlparse(urljoin(base, href))
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return urlunparse(parsed._replace(fragment=""))


def is_site_url(url: str, cfg: ExtractionConfig = _DEFAULT) -> bool:
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        return False
    return bool(cfg.host_re.search(host))


def is_job_url(url: str, cfg: ExtractionConfig = _DEFAULT) -> bool:
    """
    True when `url` is on the site's host and its path has the detail-page
    shape. Listing paths are rejected first, whatever else they match.
    """
    if not is_site_url(url, cfg):
        return False
    path = urlparse(url).path or ""
    if cfg.listing_exclude_re.search(path):
        return False
    return bool(cfg.job_link_re.search(path))


def canonical_job_url(url: str) -> str:
    """Detail URLs are identified by path alone; query strings are tracking noise."""
    p = urlparse(url)
    return urlunparse(p._replace(query="", params="", fragment=""))


def find_job_links(soup: BeautifulSoup, base_url: str, cfg: ExtractionConfig = _DEFAULT) -> list[str]:
    """
    Job detail links on a listing page, in document order, without duplicates.
    """
    out: list[str] = []
    seen: set[str] = set()
    for a in soup.select("a[href]"):
        abs_url = to_abs(a.get("href"), base_url)
        if not abs_url or not is_job_url(abs_url, cfg):
            continue
        job_url = canonical_job_url(abs_url)
        if job_url in seen:
            continue
        seen.add(job_url)
        out.append(job_url)
    return out


def find_next_page(soup: BeautifulSoup, base_url: str, cfg: ExtractionConfig = _DEFAULT) -> str | None:
    """
    URL of the next listing page, or None.

    Order: rel="next" inside the pagination block, rel="next" anywhere
    (including <link rel=next> in the head), then an anchor whose text reads
    like "next" in French or English or is an arrow glyph.
    """
    for sel in (".pagination a[rel~='next']", "a[rel~='next']", "link[rel~='next']"):
        el = soup.select_one(sel)
        if el is None:
            continue
        url = to_abs(el.get("href"), base_url)
        if url and is_site_url(url, cfg) and url != base_url:
            return url

    next_re = cfg.next_text_re
    for a in soup.select("a[href]"):
        txt = a.get_text(" ", strip=True).lower()
        if not txt:
            txt = str(a.get("title") or a.get("aria-label") or "").strip().lower()
        if not txt or not next_re.search(txt):
            continue
        url = to_abs(a.get("href"), base_url)
        if url and is_site_url(url, cfg) and url != base_url:
            return url

    log.debug("no next page link on %s", base_url)
    return None
