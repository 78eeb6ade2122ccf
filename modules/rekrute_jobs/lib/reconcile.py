"""
Record reconciler: merges the extractors' partial answers into one JobRecord.

Every field has its own ordered list of sources (structured metadata first,
then page headings and selectors, then free-text patterns). The first source
that yields a non-empty value wins; a field no source can fill stays None.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from functools import cached_property

from bs4 import BeautifulSoup

from . import extractors as ex
from .config import ExtractionConfig
from .models import JobRecord, JsonLdJobPosting
from .sanitize import html_to_text, sanitize_description
from .utils import now_iso

log = logging.getLogger(__name__)

_DEFAULT = ExtractionConfig()


class _Page:
    """Lazily computed views of one detail page, shared by all cascades."""

    def __init__(self, url: str, soup: BeautifulSoup, cfg: ExtractionConfig):
        self.url = url
        self.soup = soup
        self.cfg = cfg

    @cached_property
    def json_ld(self) -> JsonLdJobPosting:
        return ex.extract_json_ld(self.soup) or JsonLdJobPosting()

    @cached_property
    def heading(self) -> ex.HeadingFields:
        return ex.extract_heading_fields(self.soup, self.cfg)

    @cached_property
    def text(self) -> str:
        return "\n".join(ex.text_lines(self.soup))

    @cached_property
    def content_text(self) -> str:
        """Page text without nav, header and footer."""
        return "\n".join(ex.text_lines(self.soup, skip_chrome=True))

    @cached_property
    def description_html(self) -> str | None:
        return DESCRIPTION.resolve(self)

    @cached_property
    def description_text(self) -> str | None:
        return html_to_text(self.description_html)


Strategy = Callable[[_Page], "str | None"]


@dataclass(frozen=True)
class FieldCascade:
    """Ordered (name, strategy) pairs for one field."""

    field: str
    strategies: Sequence[tuple[str, Strategy]]

    def resolve(self, page: _Page) -> str | None:
        for name, strategy in self.strategies:
            value = strategy(page)
            if isinstance(value, str):
                value = value.strip()
            if value:
                log.debug("%s <- %s for %s", self.field, name, page.url)
                return value
        return None


def _description(raw: str | None, cfg: ExtractionConfig) -> str | None:
    return sanitize_description(raw, cfg) if raw else None


CASCADES: tuple[FieldCascade, ...] = (
    FieldCascade(
        "title",
        (
            ("json_ld", lambda p: p.json_ld.title),
            ("heading", lambda p: p.heading.title),
            ("meta", lambda p: ex.title_from_meta(p.soup)),
        ),
    ),
    FieldCascade(
        "company",
        (
            ("json_ld", lambda p: p.json_ld.company),
            ("heading", lambda p: p.heading.company),
        ),
    ),
    FieldCascade(
        "location",
        (
            ("json_ld", lambda p: p.json_ld.location),
            ("heading", lambda p: p.heading.location),
            ("fallback", lambda p: ex.extract_location_fallback(p.soup, p.url)),
        ),
    ),
    FieldCascade(
        "date_posted",
        (
            ("json_ld", lambda p: p.json_ld.date_posted),
            ("text", lambda p: ex.extract_date_posted(p.soup)),
        ),
    ),
    FieldCascade(
        "valid_through",
        (
            ("json_ld", lambda p: p.json_ld.valid_through),
            ("text", lambda p: ex.extract_valid_through(p.soup)),
        ),
    ),
    FieldCascade(
        "employment_type",
        (
            ("json_ld", lambda p: p.json_ld.employment_type),
            ("description", lambda p: ex.extract_employment_type(p.description_text)),
            ("text", lambda p: ex.extract_employment_type(p.content_text)),
        ),
    ),
    FieldCascade(
        "salary",
        (
            ("json_ld", lambda p: p.json_ld.salary),
            ("description", lambda p: ex.extract_salary(p.description_text)),
            ("text", lambda p: ex.extract_salary(p.content_text)),
        ),
    ),
)

# Resolved once per page through _Page.description_html; employment type and
# salary read the description before the rest of the page.
DESCRIPTION = FieldCascade(
    "description_html",
    (
        ("json_ld", lambda p: _description(p.json_ld.description_html, p.cfg)),
        ("page", lambda p: _description(ex.extract_description_html(p.soup, p.cfg), p.cfg)),
    ),
)


def reconcile(url: str, soup: BeautifulSoup, cfg: ExtractionConfig = _DEFAULT) -> JobRecord:
    """
    Build the JobRecord for a detail page.

    Never raises on missing data; the only mandatory fields are url, source
    and scraped_at.
    """
    page = _Page(url, soup, cfg)
    values = {c.field: c.resolve(page) for c in CASCADES}

    description_html = page.description_html
    description_text = page.description_text

    return JobRecord(
        url=url,
        scraped_at=now_iso(),
        title=values["title"],
        company=values["company"],
        location=values["location"],
        date_posted=values["date_posted"],
        employment_type=values["employment_type"],
        valid_through=values["valid_through"],
        salary=values["salary"],
        description_html=description_html,
        description_text=description_text,
        language=ex.detect_language(soup, url, page.text),
    )
