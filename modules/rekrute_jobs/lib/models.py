from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

SOURCE = "rekrute.com"


class Label(str, Enum):
    LIST = "LIST"
    DETAIL = "DETAIL"


@dataclass(frozen=True)
class CrawlRequest:
    """
    One unit of work for the frontier. Never mutated after creation.
    - page_no: listing page number (1-based) for LIST; 0 for DETAIL seeds.
    - discovered_on: the LIST url this request was found on, if any.
    """

    url: str
    label: Label = Label.LIST
    page_no: int = 1
    discovered_on: str | None = None


@dataclass
class JsonLdJobPosting:
    """
    Partial projection of a schema.org JobPosting node.
    Only lives long enough for the reconciler to read it.
    """

    title: str | None = None
    company: str | None = None
    location: str | None = None
    date_posted: str | None = None
    valid_through: str | None = None
    employment_type: str | None = None
    salary: str | None = None
    description_html: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class JobRecord:
    """
    Canonical record for a single job detail page.
    Everything except url/source/scraped_at may be None.
    """

    url: str
    scraped_at: str
    source: str = SOURCE
    title: str | None = None
    company: str | None = None
    location: str | None = None
    date_posted: str | None = None
    employment_type: str | None = None
    valid_through: str | None = None
    salary: str | None = None
    description_html: str | None = None
    description_text: str | None = None
    language: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "company": self.company,
            "location": self.location,
            "datePosted": self.date_posted,
            "employmentType": self.employment_type,
            "validThrough": self.valid_through,
            "salary": self.salary,
            "descriptionHtml": self.description_html,
            "descriptionText": self.description_text,
            "language": self.language,
            "source": self.source,
            "scrapedAt": self.scraped_at,
        }


@dataclass(frozen=True)
class UrlOnlyRecord:
    """Minimal record emitted per discovered link when details are not collected."""

    url: str
    discovered_on: str
    page_no: int
    scraped_at: str
    source: str = SOURCE

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "source": self.source,
            "discoveredOn": self.discovered_on,
            "pageNo": self.page_no,
            "scrapedAt": self.scraped_at,
        }


@dataclass
class CrawlStats:
    """Counters reported at the end of a run."""

    saved: int = 0
    queued_detail: int = 0
    list_pages: int = 0
    detail_pages: int = 0
    failed_details: int = 0
    blocked_pages: int = 0
    abandoned_requests: int = 0
    visited_list_urls: int = 0
    seen_job_urls: int = 0

    def as_dict(self) -> dict[str, int]:
        return dict(self.__dict__)
