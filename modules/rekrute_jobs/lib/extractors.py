"""
Field extractors for rekrute.com detail pages.

Every extractor is a plain function over an already-parsed document that
returns a value or None. None is a normal outcome: the reconciler simply
moves on to the next source for that field. Nothing here mutates the soup.
"""

from __future__ import annotations

import html as htmllib
import json
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Tag

from .config import ExtractionConfig
from .models import JsonLdJobPosting
from .sanitize import select_main_block
from .utils import squash

log = logging.getLogger(__name__)

_DEFAULT = ExtractionConfig()


# -----------------------------------------------------------------------------
# Shared helpers
# -----------------------------------------------------------------------------
_INVISIBLE_TAGS = ("script", "style", "noscript", "template")

# Site-wide chrome repeated on every page (menus, banners, footers).
CHROME_TAGS = ["nav", "header", "footer"]


def body_text(soup: BeautifulSoup, separator: str = "\n", *, skip_chrome: bool = False) -> str:
    """Visible text of the page body (whole document if there is no <body>)."""
    root = soup.body or soup
    parts: list[str] = []
    for s in root.find_all(string=True):
        if s.parent is not None and s.parent.name in _INVISIBLE_TAGS:
            continue
        if skip_chrome and s.find_parent(CHROME_TAGS) is not None:
            continue
        parts.append(str(s))
    return separator.join(parts)


def text_lines(soup: BeautifulSoup, *, skip_chrome: bool = False) -> list[str]:
    lines = []
    for raw in body_text(soup, skip_chrome=skip_chrome).split("\n"):
        line = squash(raw)
        if line:
            lines.append(line)
    return lines


def looks_blocked(soup: BeautifulSoup, cfg: ExtractionConfig = _DEFAULT) -> bool:
    """Anti-bot / captcha interstitial heuristic on the rendered body text."""
    text = body_text(soup, " ").lower()
    return any(marker in text for marker in cfg.block_markers)


def _first_text(soup: BeautifulSoup | Tag, selectors: Iterable[str]) -> str | None:
    for sel in selectors:
        el = soup.select_one(sel)
        if el is None:
            continue
        txt = squash(el.get_text(" "))
        if txt:
            return txt
    return None


def _clip(value: str | None, limit: int = 120) -> str | None:
    if not value:
        return None
    value = squash(value).strip(" :-–|,;.")
    if not value:
        return None
    return value[:limit].rstrip()


# -----------------------------------------------------------------------------
# Structured metadata (JSON-LD)
# -----------------------------------------------------------------------------
def extract_json_ld(soup: BeautifulSoup) -> JsonLdJobPosting | None:
    """
    First usable schema.org JobPosting among the page's ld+json blocks.
    Blocks that fail to parse are skipped.
    """
    for script in soup.find_all("script", attrs={"type": re.compile(r"ld\+json", re.I)}):
        raw = script.string or script.get_text() or ""
        if not raw.strip():
            continue
        try:
            data = json.loads(raw, strict=False)
        except (json.JSONDecodeError, ValueError) as e:
            log.debug("skipping malformed JSON-LD block: %s", e)
            continue

        for node in _flatten_json_ld(data):
            if not _is_job_posting(node):
                continue
            posting = _project_job_posting(node)
            if posting is not None:
                return posting
    return None


def _flatten_json_ld(data: Any) -> list[dict]:
    out: list[dict] = []
    stack = [data]
    while stack:
        node = stack.pop(0)
        if isinstance(node, list):
            stack[0:0] = node
        elif isinstance(node, dict):
            if "@graph" in node:
                graph = node["@graph"]
                stack[0:0] = graph if isinstance(graph, list) else [graph]
            else:
                out.append(node)
    return out


def _is_job_posting(node: dict) -> bool:
    t = node.get("@type") or node.get("type")
    types = t if isinstance(t, list) else [t]
    return any(isinstance(x, str) and x.split("/")[-1] == "JobPosting" for x in types)


def _str_or_none(v: Any) -> str | None:
    if v is None:
        return None
    if isinstance(v, (int, float)):
        return str(v)
    if isinstance(v, str):
        s = squash(htmllib.unescape(v))
        return s or None
    return None


def _project_job_posting(node: dict) -> JsonLdJobPosting | None:
    title = _str_or_none(node.get("title")) or _str_or_none(node.get("name"))
    description = node.get("description")
    if isinstance(description, str):
        description = description.strip()
        # Some sites ship the HTML entity-escaped inside the JSON string.
        if "&lt;" in description and "<" not in description:
            description = htmllib.unescape(description)
    else:
        description = None

    if not title and not description:
        return None

    org = node.get("hiringOrganization")
    if isinstance(org, dict):
        company = _str_or_none(org.get("name")) or _str_or_none(org.get("legalName"))
    else:
        company = _str_or_none(org)

    employment = node.get("employmentType")
    if isinstance(employment, list):
        employment = ", ".join(s for s in (_str_or_none(x) for x in employment) if s) or None
    else:
        employment = _str_or_none(employment)

    return JsonLdJobPosting(
        title=title,
        company=company,
        location=_json_ld_location(node.get("jobLocation")),
        date_posted=_str_or_none(node.get("datePosted")),
        valid_through=_str_or_none(node.get("validThrough")),
        employment_type=employment,
        salary=_json_ld_salary(node.get("baseSalary")),
        description_html=description or None,
        raw=node,
    )


def _json_ld_location(loc: Any) -> str | None:
    """addressLocality, else addressRegion, else addressCountry."""
    if isinstance(loc, list):
        for item in loc:
            got = _json_ld_location(item)
            if got:
                return got
        return None
    if isinstance(loc, str):
        return _str_or_none(loc)
    if not isinstance(loc, dict):
        return None
    addr = loc.get("address")
    if isinstance(addr, str):
        return _str_or_none(addr)
    if isinstance(addr, dict):
        for key in ("addressLocality", "addressRegion", "addressCountry"):
            val = addr.get(key)
            if isinstance(val, dict):
                val = val.get("name")
            got = _str_or_none(val)
            if got:
                return got
    return _str_or_none(loc.get("name"))


def _json_ld_salary(base: Any) -> str | None:
    """'<amount> <currency>' or '<min>-<max> <currency>'."""
    if base is None:
        return None
    if not isinstance(base, dict):
        return _str_or_none(base)
    currency = _str_or_none(base.get("currency")) or ""
    value = base.get("value")
    amount: str | None = None
    if isinstance(value, dict):
        currency = currency or _str_or_none(value.get("currency")) or ""
        amount = _str_or_none(value.get("value"))
        if not amount:
            lo = _str_or_none(value.get("minValue"))
            hi = _str_or_none(value.get("maxValue"))
            if lo and hi:
                amount = f"{lo}-{hi}"
            else:
                amount = lo or hi
    else:
        amount = _str_or_none(value)
    if not amount:
        return None
    return f"{amount} {currency}".strip()


# -----------------------------------------------------------------------------
# Title / company / location from headings and selectors
# -----------------------------------------------------------------------------
@dataclass
class HeadingFields:
    title: str | None = None
    company: str | None = None
    location: str | None = None


_HEADING_SPLIT_RE = re.compile(r"\s+[-–|]\s+")

_LOCATION_LABEL_RE = re.compile(
    r"(?:poste\s+bas[ée]\s+[àa]|bas[ée]\s+[àa]|localisation|lieu\s+de\s+travail|location|based\s+in|ville)"
    r"\s*[:\-–]?\s*(.+)",
    re.I,
)


def split_heading(text: str | None) -> HeadingFields:
    """'Title - Company - Location' (also – and |); parts past the third are ignored."""
    out = HeadingFields()
    text = squash(text)
    if not text:
        return out
    parts = [p.strip() for p in _HEADING_SPLIT_RE.split(text)]
    if len(parts) >= 1:
        out.title = parts[0] or None
    if len(parts) >= 2:
        out.company = parts[1] or None
    if len(parts) >= 3:
        out.location = parts[2] or None
    return out


def extract_heading_fields(soup: BeautifulSoup, cfg: ExtractionConfig = _DEFAULT) -> HeadingFields:
    h1 = soup.find("h1")
    out = split_heading(h1.get_text(" ") if h1 else None)

    if not out.company:
        out.company = _first_text(soup, cfg.company_selectors)

    if not out.location:
        out.location = _first_text(soup, cfg.location_selectors)

    if not out.location:
        out.location = _microdata_location(soup)

    if not out.location:
        out.location = labeled_location(soup)

    return out


def _microdata_location(soup: BeautifulSoup) -> str | None:
    for prop in ("addressLocality", "addressRegion", "jobLocation"):
        el = soup.find(attrs={"itemprop": prop})
        if el is None:
            continue
        val = el.get("content") or el.get_text(" ")
        got = _clip(str(val), 80)
        if got:
            return got
    return None


def labeled_location(soup: BeautifulSoup) -> str | None:
    """'Poste basé à : Rabat', 'Location: Casablanca', ..."""
    for line in text_lines(soup):
        m = _LOCATION_LABEL_RE.search(line)
        if m:
            got = _clip(m.group(1), 80)
            if got:
                return got
    return None


# -----------------------------------------------------------------------------
# Description
# -----------------------------------------------------------------------------
SECTION_HEADING_RES = (
    re.compile(r"^(?:l['’]\s*)?entreprise\b|^about\s+(?:the\s+)?company\b|^qui\s+sommes[- ]nous", re.I),
    re.compile(r"^(?:poste|description\s+du\s+poste|job\s+description|position|role|the\s+role|missions?)\b", re.I),
    re.compile(
        r"^(?:profil\s+recherch[ée]|profil|requirements|profile|candidate\s+profile|qualifications)\b", re.I
    ),
    re.compile(r"^(?:avantages|benefits|ce\s+que\s+nous\s+offrons|what\s+we\s+offer)\b", re.I),
)

_HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")


def _heading_level(tag: Tag) -> int:
    return int(tag.name[1]) if tag.name in _HEADING_TAGS else 0


def _section_nodes(heading: Tag) -> list:
    """Siblings after `heading` up to the next heading of the same (or higher) level."""
    level = _heading_level(heading)
    nodes = []
    for sib in heading.next_siblings:
        if isinstance(sib, Tag) and sib.name in _HEADING_TAGS and _heading_level(sib) <= level:
            break
        nodes.append(sib)
    return nodes


def _render_nodes(nodes: list) -> str:
    chunks: list[str] = []
    for node in nodes:
        if isinstance(node, Tag):
            chunks.append(node.decode())
        else:
            s = str(node)
            if s.strip():
                chunks.append(htmllib.escape(s, quote=False))
    return "".join(chunks).strip()


def description_from_sections(soup: BeautifulSoup) -> str | None:
    """
    Content under the known section headings, in page order. A matching
    sub-heading already inside a captured section is not taken again.
    """
    parts: list[str] = []
    covered: set[int] = set()
    for h in soup.find_all(["h2", "h3", "h4"]):
        if id(h) in covered:
            continue
        label = squash(h.get_text(" "))
        if not label or not any(rx.search(label) for rx in SECTION_HEADING_RES):
            continue
        nodes = _section_nodes(h)
        for node in nodes:
            if isinstance(node, Tag):
                if node.name in _HEADING_TAGS:
                    covered.add(id(node))
                covered.update(id(el) for el in node.find_all(list(_HEADING_TAGS)))
        content = _render_nodes(nodes)
        if content and BeautifulSoup(content, "html.parser").get_text(strip=True):
            parts.append(content)
    return "".join(parts) or None


def description_from_containers(soup: BeautifulSoup, cfg: ExtractionConfig = _DEFAULT) -> str | None:
    for sel in cfg.description_selectors:
        for el in soup.select(sel):
            if len(squash(el.get_text(" "))) >= cfg.min_description_chars:
                return el.decode_contents().strip()
    return None


def description_from_central_column(soup: BeautifulSoup, cfg: ExtractionConfig = _DEFAULT) -> str | None:
    for sel in cfg.central_column_selectors:
        el = soup.select_one(sel)
        if el is None:
            continue
        block = select_main_block(el.decode(), cfg)
        if len(squash(BeautifulSoup(block, "html.parser").get_text(" "))) >= cfg.min_description_chars:
            return block
    return None


def extract_description_html(soup: BeautifulSoup, cfg: ExtractionConfig = _DEFAULT) -> str | None:
    """Section headings, then known containers, then the central column's densest block."""
    return (
        description_from_sections(soup)
        or description_from_containers(soup, cfg)
        or description_from_central_column(soup, cfg)
    )


# -----------------------------------------------------------------------------
# Dates
# -----------------------------------------------------------------------------
DATE_TOKEN_RE = re.compile(r"\b(\d{1,2})\s*[/.\-]\s*(\d{1,2})\s*[/.\-]\s*(\d{4}|\d{2})\b")

_POSTED_FR_RE = re.compile(r"publi[ée]e?s?\s+(?:le\s+)?[:\-]?\s*(.+)", re.I)
_POSTED_EN_RE = re.compile(r"(?:published|posted)\s+(?:on\s+)?[:\-]?\s*(.+)", re.I)
_DEADLINE_RE = re.compile(
    r"(?:date\s+limite|date\s+d['’]expiration|expire\s+le|deadline|apply\s+before|closing\s+date)"
    r"\s*(?:de\s+candidature\s*)?[:\-]?\s*(.+)",
    re.I,
)


def _date_or_phrase(value: str) -> str | None:
    m = DATE_TOKEN_RE.search(value)
    if m:
        return m.group(0).replace(" ", "")
    return _clip(value, 60)


def extract_date_posted(soup: BeautifulSoup) -> str | None:
    lines = text_lines(soup)
    for rx in (_POSTED_FR_RE, _POSTED_EN_RE):
        for line in lines:
            m = rx.search(line)
            if m:
                got = _date_or_phrase(m.group(1))
                if got:
                    return got
    m = DATE_TOKEN_RE.search(" ".join(lines))
    return m.group(0).replace(" ", "") if m else None


def extract_valid_through(soup: BeautifulSoup) -> str | None:
    for line in text_lines(soup):
        m = _DEADLINE_RE.search(line)
        if m:
            token = DATE_TOKEN_RE.search(m.group(1))
            if token:
                return token.group(0).replace(" ", "")
    return None


# -----------------------------------------------------------------------------
# Employment type / salary (free text)
# -----------------------------------------------------------------------------
EMPLOYMENT_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("PERMANENT", re.compile(r"\bCDI\b|dur[ée]e\s+ind[ée]termin[ée]e|permanent\s+contract|\bpermanent\b", re.I)),
    ("FIXED_TERM", re.compile(r"\bCDD\b|dur[ée]e\s+d[ée]termin[ée]e|fixed[- ]term", re.I)),
    ("FULL_TIME", re.compile(r"temps\s+plein|full[- ]time", re.I)),
    ("PART_TIME", re.compile(r"temps\s+partiel|part[- ]time", re.I)),
    ("INTERNSHIP", re.compile(r"\bstages?\b|\bstagiaire\b|\binternship\b|\bPFE\b", re.I)),
    ("FREELANCE", re.compile(r"free[- ]?lance|\bind[ée]pendant\b", re.I)),
    ("TEMPORARY", re.compile(r"int[ée]rim|\btemporaire\b|\btemporary\b", re.I)),
)

_CONTRACT_LABEL_RE = re.compile(r"(?:type\s+de\s+contrat|contrat\s+propos[ée]|contract\s+type|job\s+type)\s*:?\s*(.+)", re.I)


def extract_employment_type(text: str | None) -> str | None:
    """
    Contract-type constants found in `text`, first-seen order, comma-joined.
    A 'Type de contrat : ...' line wins over the rest of the text.
    """
    if not text:
        return None
    for line in text.split("\n"):
        m = _CONTRACT_LABEL_RE.search(line)
        if m:
            found = _employment_hits(m.group(1))
            if found:
                return found
    return _employment_hits(text)


def _employment_hits(text: str) -> str | None:
    hits: list[tuple[int, str]] = []
    for label, rx in EMPLOYMENT_PATTERNS:
        m = rx.search(text)
        if m:
            hits.append((m.start(), label))
    if not hits:
        return None
    return ", ".join(label for _, label in sorted(hits))


_CURRENCY = r"(?:MAD|DHS?|Dhs|dirhams?|EUR|€|euros?|USD|\$)"
_AMOUNT = r"\d{1,3}(?:[ .,\u00a0\u202f]\d{3})+(?:[.,]\d+)?|\d+(?:[.,]\d+)?\s?[kK]?"
SALARY_AMOUNT_RE = re.compile(
    rf"(?:(?:{_AMOUNT})\s*(?:-|–|à|a|to|et)\s*)?(?:{_AMOUNT})\s*{_CURRENCY}(?![A-Za-z])"
    rf"|{_CURRENCY}\s*(?:{_AMOUNT})(?:\s*(?:-|–|to)\s*(?:{_AMOUNT}))?",
    re.I,
)
_SALARY_LABEL_RE = re.compile(
    r"(?:salaire|salary|r[ée]mun[ée]ration|package)\s*(?:propos[ée]e?|offered|brut|net|mensuel|annuel)?\s*[:\-–]\s*(.+)",
    re.I,
)
_UNSPECIFIED_RE = re.compile(r"non\s+(?:sp[ée]cifi|pr[ée]cis|communiqu)|not\s+specified|confidenti|n/?a\b", re.I)


def extract_salary(text: str | None) -> str | None:
    """Labeled salary line first, then the first amount next to a currency."""
    if not text:
        return None
    for line in text.split("\n"):
        m = _SALARY_LABEL_RE.search(line)
        if not m:
            continue
        value = m.group(1)
        if _UNSPECIFIED_RE.search(value):
            continue
        amount = SALARY_AMOUNT_RE.search(value)
        if amount:
            return squash(amount.group(0))
        got = _clip(value, 80)
        if got and re.search(r"\d", got):
            return got
    m = SALARY_AMOUNT_RE.search(text)
    return squash(m.group(0)) if m else None


# -----------------------------------------------------------------------------
# Language
# -----------------------------------------------------------------------------
FR_KEYWORDS = (
    "poste",
    "profil recherché",
    "entreprise",
    "expérience",
    "compétences",
    "missions",
    "nous recherchons",
    "diplôme",
    "contrat",
    "candidature",
    "rattaché",
    "vous",
)
EN_KEYWORDS = (
    "job description",
    "requirements",
    "experience",
    "skills",
    "responsibilities",
    "we are looking",
    "degree",
    "company",
    "position",
    "apply",
    "you will",
    "you",
)


def detect_language(soup: BeautifulSoup, url: str | None = None, text: str | None = None) -> str | None:
    """Declared lang attribute, then /en/ or /fr/ URL prefix, then keyword counts."""
    html_el = soup.find("html")
    if html_el is not None:
        declared = str(html_el.get("lang") or html_el.get("xml:lang") or "").strip().lower()
        if declared:
            return declared.replace("_", "-").split("-")[0] or None

    if url:
        path = urlparse(url).path.lower()
        if path.startswith("/en/") or path == "/en":
            return "en"
        if path.startswith("/fr/") or path == "/fr":
            return "fr"

    blob = (text if text is not None else body_text(soup, " ")).lower()
    fr = _count_hits(blob, FR_KEYWORDS)
    en = _count_hits(blob, EN_KEYWORDS)
    if fr == en:
        return None
    return "fr" if fr > en else "en"


def _count_hits(blob: str, keywords: Iterable[str]) -> int:
    return sum(len(re.findall(rf"(?<!\w){re.escape(kw)}(?!\w)", blob)) for kw in keywords)


# -----------------------------------------------------------------------------
# Location fallback (secondary heading, URL slug)
# -----------------------------------------------------------------------------
_CITY_IN_HEADING_RE = re.compile(r"([A-Za-zÀ-ÖØ-öø-ÿ'’ .\-]{2,40}?)\s*\((?:maroc|morocco)\)", re.I)
_CITY_PREFIXES = {"el", "ben", "sidi", "ait", "beni", "dar", "ksar", "oued", "ain", "bir", "had", "souk", "moulay"}
_SLUG_NOISE = {"h", "f", "hf", "fh", "m", "w", "mw", "html", "emploi", "offre", "recrutement"}


def location_from_secondary_heading(soup: BeautifulSoup) -> str | None:
    for h in soup.find_all(["h2", "h3", "h4"]):
        text = squash(h.get_text(" "))
        if not text:
            continue
        m = _CITY_IN_HEADING_RE.search(text)
        if m:
            city = _HEADING_SPLIT_RE.split(m.group(1))[-1]
            city = re.split(r"\s*[|,]\s*", city)[-1]
            got = _clip(city, 60)
            if got:
                return got
    return None


def location_from_url(url: str | None) -> str | None:
    """
    '/offre-emploi-comptable-recrutement-acme-el-jadida-154321.html' -> 'El Jadida'.
    The token right before the numeric id is taken as the city, plus a known
    multi-word prefix (el, sidi, ...) when present.
    """
    if not url:
        return None
    slug = urlparse(url).path.rsplit("/", 1)[-1]
    slug = re.sub(r"\.html?$", "", slug, flags=re.I)
    tokens = [t for t in slug.lower().split("-") if t]
    if len(tokens) < 2 or not tokens[-1].isdigit():
        return None
    tokens = tokens[:-1]
    city = tokens[-1]
    if not city.isalpha() or len(city) < 3 or city in _SLUG_NOISE:
        return None
    words = [city]
    if len(tokens) >= 2 and tokens[-2] in _CITY_PREFIXES:
        words.insert(0, tokens[-2])
    return " ".join(w.capitalize() for w in words)


def extract_location_fallback(soup: BeautifulSoup, url: str | None) -> str | None:
    return location_from_secondary_heading(soup) or location_from_url(url)


# -----------------------------------------------------------------------------
# Title fallback
# -----------------------------------------------------------------------------
def title_from_meta(soup: BeautifulSoup) -> str | None:
    """og:title, then <title>, cut at the first ' - ' / ' | ' separator."""
    meta = soup.find("meta", attrs={"property": "og:title"})
    raw = meta.get("content") if meta is not None else None
    if not raw and soup.title is not None:
        raw = soup.title.get_text(" ")
    if not raw:
        return None
    return split_heading(str(raw)).title
