"""
HTML cleanup for job descriptions.

Two stages:
  1. select_main_block(): strip page chrome and known layout noise, flatten
     redundant wrappers, and keep the densest content block.
  2. simplify_html(): reduce whatever is left to a small safe vocabulary
     (paragraphs, lists, emphasis, headings, links) with no attributes
     except a[href].

sanitize_description() runs both. Both stages are deterministic and
re-running them on their own output changes nothing.
"""

from __future__ import annotations

import logging
import re

from bs4 import BeautifulSoup, Comment, Declaration, Doctype, NavigableString, ProcessingInstruction, Tag

from .config import ExtractionConfig
from .utils import clean_text, squash

log = logging.getLogger(__name__)

_DEFAULT = ExtractionConfig()

NOISE_TAGS = (
    "head",
    "title",
    "script",
    "style",
    "link",
    "meta",
    "noscript",
    "template",
    "form",
    "header",
    "nav",
    "footer",
    "iframe",
    "svg",
    "button",
    "input",
    "select",
    "textarea",
)

ALLOWED_TAGS = frozenset({
    "p",
    "br",
    "ul",
    "ol",
    "li",
    "b",
    "strong",
    "i",
    "em",
    "u",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "a",
})

# Containers that may become a paragraph when unwrapped.
BLOCK_TAGS = frozenset({
    "html",
    "body",
    "div",
    "section",
    "article",
    "main",
    "aside",
    "table",
    "thead",
    "tbody",
    "tfoot",
    "tr",
    "td",
    "th",
    "dl",
    "dt",
    "dd",
    "blockquote",
    "figure",
    "figcaption",
    "center",
    "pre",
    "address",
    "fieldset",
    "details",
    "summary",
})

# Candidates for the densest-block pick; allowed tags are never candidates so
# already-simplified output has none.
CANDIDATE_TAGS = frozenset({"div", "section", "article", "main", "td", "dd", "blockquote"})

# Tags that break a run of inline content into separate paragraphs.
_RUN_BREAKERS = frozenset({"p", "ul", "ol", "li", "h1", "h2", "h3", "h4", "h5", "h6"})

_NAV_HINT_RE = re.compile(r"nav|menu|filter|pagination|pager|breadcrumb|sidebar|footer|header", re.I)

# A child holding at least this share of its parent's text is preferred
# over the parent when picking the densest block.
DESCEND_RATIO = 0.75


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------
def sanitize_description(html: str | None, cfg: ExtractionConfig = _DEFAULT) -> str | None:
    """Both stages; None when nothing readable survives."""
    if not html or not html.strip():
        return None
    out = simplify_html(select_main_block(html, cfg))
    return out or None


def select_main_block(html: str, cfg: ExtractionConfig = _DEFAULT) -> str:
    """
    Stage 1: noise removal and densest-block selection.

    Returns the outer HTML of the chosen block, or the whole (de-noised)
    fragment if no block reaches `cfg.min_description_chars` of text.
    """
    soup = BeautifulSoup(html, "html.parser")
    _drop_non_content(soup)

    for name in NOISE_TAGS:
        for el in soup.find_all(name):
            el.decompose()
    for sel in cfg.noise_selectors:
        for el in soup.select(sel):
            el.decompose()

    collapse_wrappers(soup, max_iterations=cfg.max_collapse_iterations)

    best = _densest_block(soup)
    if best is soup or _text_len(best) < cfg.min_description_chars:
        return soup.decode().strip()
    return best.decode().strip()


def simplify_html(html: str | None) -> str:
    """
    Stage 2: restrict to ALLOWED_TAGS, keep only a[href], drop empty
    paragraphs and list items. Loose text inside an unwrapped block ends
    up in a <p>; nested paragraphs, lists and headings are left as they are.
    """
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    _drop_non_content(soup)
    for name in NOISE_TAGS:
        for el in soup.find_all(name):
            el.decompose()

    # Deepest first, so a container is handled after everything inside it.
    for el in reversed(soup.find_all(True)):
        if el.name in ALLOWED_TAGS:
            continue
        if el.name in BLOCK_TAGS and el.get_text(strip=True):
            _paragraphize(soup, el)
        else:
            el.unwrap()

    for el in soup.find_all(True):
        if el.name == "a":
            href = str(el.get("href") or "").strip()
            el.attrs = {}
            if href and not href.lower().startswith("javascript:"):
                el["href"] = href
        else:
            el.attrs = {}

    for el in reversed(soup.find_all(["p", "li"])):
        if not el.get_text(strip=True):
            el.decompose()
    for el in reversed(soup.find_all(["ul", "ol"])):
        if el.find("li") is None and not el.get_text(strip=True):
            el.decompose()
    _normalize_whitespace(soup)

    return soup.decode().strip()


def html_to_text(html: str | None) -> str | None:
    """
    Plain-text projection of an HTML fragment: tags stripped, one line per
    paragraph/list item/heading/<br>, whitespace normalized.
    """
    if not html:
        return None
    soup = BeautifulSoup(html, "html.parser")
    _drop_non_content(soup)
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for el in soup.find_all(["p", "li", "h1", "h2", "h3", "h4", "h5", "h6", "ul", "ol", "div", "tr"]):
        el.insert_after("\n")
    return clean_text(soup.get_text())


def collapse_wrappers(soup: BeautifulSoup, *, max_iterations: int = 50) -> int:
    """
    Flatten wrappers whose only content is one structural child carrying the
    same text (<div><div>..</div></div> -> <div>..</div>), repeated to a
    fixed point. Returns the number of wrappers removed.

    Each collapse removes one nesting level, so the loop ends on its own;
    max_iterations is only a backstop.
    """
    removed = 0
    for _ in range(max_iterations):
        changed = False
        for el in soup.find_all(list(CANDIDATE_TAGS | {"span", "center", "aside"})):
            if el.parent is None:
                continue
            child = _sole_structural_child(el)
            if child is None:
                continue
            if squash(child.get_text(" ")) != squash(el.get_text(" ")):
                continue
            el.unwrap()
            removed += 1
            changed = True
        if not changed:
            break
    else:
        log.debug("collapse_wrappers hit the iteration cap (%d)", max_iterations)
    return removed


# -----------------------------------------------------------------------------
# Internals
# -----------------------------------------------------------------------------
def _drop_non_content(soup: BeautifulSoup) -> None:
    for node in soup.find_all(string=lambda s: isinstance(s, (Comment, Doctype, Declaration, ProcessingInstruction))):
        node.extract()


def _sole_structural_child(el: Tag) -> Tag | None:
    child: Tag | None = None
    for node in el.contents:
        if isinstance(node, NavigableString):
            if node.strip():
                return None
            continue
        if not isinstance(node, Tag):
            continue
        if child is not None:
            return None
        child = node
    if child is None or child.name not in CANDIDATE_TAGS:
        return None
    return child


def _text_len(el: Tag) -> int:
    return len(squash(el.get_text(" ")))


def _is_nav_like(el: Tag) -> bool:
    classes = el.get("class") or []
    if isinstance(classes, str):
        classes = [classes]
    hint = " ".join([*classes, str(el.get("id") or ""), str(el.get("role") or "")])
    return bool(hint.strip()) and bool(_NAV_HINT_RE.search(hint))


def _candidates(root: Tag) -> list[Tag]:
    return [el for el in root.find_all(list(CANDIDATE_TAGS)) if not _is_nav_like(el)]


def _densest_block(soup: BeautifulSoup) -> Tag:
    """
    Start from the whole fragment (it always has the most text) and step into
    the largest candidate block for as long as that block still holds
    DESCEND_RATIO of the current text. Ties keep the first in document order.
    """
    best: Tag = soup
    while True:
        total = _text_len(best)
        inner = [c for c in _candidates(best) if c is not best]
        if not inner or total == 0:
            return best
        top = max(inner, key=_text_len)
        if _text_len(top) < total * DESCEND_RATIO:
            return best
        best = top


def _paragraphize(soup: BeautifulSoup, el: Tag) -> None:
    """
    Replace a block container by its content, wrapping each run of inline
    content that carries text in a <p>.
    """
    run: list = []

    def flush() -> None:
        if run and any(_has_text(n) for n in run):
            p = soup.new_tag("p")
            run[0].insert_before(p)
            for node in run:
                p.append(node.extract())
        run.clear()

    for node in list(el.contents):
        if isinstance(node, Tag) and node.name in _RUN_BREAKERS:
            flush()
        else:
            run.append(node)
    flush()
    el.unwrap()


def _has_text(node) -> bool:
    if isinstance(node, Tag):
        return bool(node.get_text(strip=True))
    return bool(str(node).strip())


# Whitespace the HTML parser treats as blank (no nbsp).
_PARSER_SPACES = " \t\n\r\f"


def _normalize_whitespace(soup: BeautifulSoup) -> None:
    """
    Merge text nodes left side by side by unwrap() and reduce blank ones the
    way the parser does on read (newline if there was one, else a space), so
    the serialized fragment parses back to the same tree.
    """
    soup.smooth()
    for node in soup.find_all(string=True):
        if type(node) is not NavigableString or node.strip(_PARSER_SPACES):
            continue
        blank = "\n" if "\n" in node else " "
        if str(node) != blank:
            node.replace_with(blank)
