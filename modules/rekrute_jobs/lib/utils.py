from __future__ import annotations

import os
import re
from datetime import datetime, timezone
from typing import Any

_NBSP_RE = re.compile(r"[\u00a0\u202f]")
_HSPACE_RE = re.compile(r"[ \t\f\v]+")
_NEWLINES_RE = re.compile(r"\s*\n\s*")


def truthy(v: Any) -> bool:
    """
    Normalize common truthy inputs from env/kwargs.
    Accepts bools or strings like: '1', 'true', 'yes', 'on'.
    """
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    if isinstance(v, (int, float)):
        return v != 0
    s = str(v).strip().lower()
    return s in {"1", "true", "yes", "on", "y", "t"}


def to_positive_int(value: Any, default: int, *, min_value: int = 1, max_value: int = 100000) -> int:
    """
    Coerce to int and clamp into [min_value, max_value].
    Anything non-numeric yields `default`.
    """
    try:
        n = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default
    return min(max_value, max(min_value, n))


def now_iso() -> str:
    """
    UTC ISO-8601 timestamp with 'Z' suffix.
    """
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def getenv_str(name: str, default: str | None = None) -> str | None:
    """
    Typed wrapper for environment access.
    """
    val = os.getenv(name)
    return val if val is not None else default


def clean_text(text: str | None) -> str | None:
    """
    Whitespace-normalize a text blob: nbsp -> space, runs of spaces collapsed,
    line breaks kept (one per break, no surrounding blanks). Empty -> None.
    """
    if not text:
        return None
    t = text.replace("\r\n", "\n").replace("\r", "\n")
    t = _NBSP_RE.sub(" ", t)
    t = _HSPACE_RE.sub(" ", t)
    t = _NEWLINES_RE.sub("\n", t)
    t = t.strip()
    return t or None


def squash(text: str | None) -> str:
    """Collapse every whitespace run to a single space."""
    return re.sub(r"\s+", " ", text or "").strip()
