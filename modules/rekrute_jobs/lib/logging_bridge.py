from __future__ import annotations

import logging
from typing import Any

# The service package owns the JSONL log files; when the module is used on its
# own (tests, notebooks) records go to stdlib logging instead.
_logging_backend = None
try:
    from service import logging_utils as _svc_logging

    _logging_backend = _svc_logging
except ImportError:
    _logging_backend = None

_REDACT_KEYS = {
    "authorization",
    "cookie",
    "cookies",
    "proxy",
    "proxies",
    "proxy_url",
    "proxy_urls",
    "password",
    "token",
    "secret",
}

REDACTED = "***REDACTED***"


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            lk = str(k).lower()
            if lk in _REDACT_KEYS or lk.endswith("_secret") or lk.endswith("_token"):
                out[k] = REDACTED
            else:
                out[k] = _redact(v)
        return out
    if isinstance(value, list):
        return [_redact(v) for v in value]
    return value


def activity(record: dict[str, Any]) -> None:
    """
    Structured activity record ({"component": ..., "op": ..., ...}).
    Goes to the service activity log when available, stdlib logging otherwise.
    """
    payload = _redact(record)
    if _logging_backend is not None:
        try:
            _logging_backend.write_activity_log(payload)
            return
        except OSError:
            logging.getLogger("rekrute_jobs").debug("activity log write failed", exc_info=True)
    logging.getLogger("rekrute_jobs.activity").info(payload)


def error(record: dict[str, Any]) -> None:
    """Same as activity() for the error stream."""
    payload = _redact(record)
    if _logging_backend is not None:
        try:
            _logging_backend.write_error_log(payload)
            return
        except OSError:
            logging.getLogger("rekrute_jobs").debug("error log write failed", exc_info=True)
    logging.getLogger("rekrute_jobs.error").error(payload)
