from __future__ import annotations

import json
import os
import threading
from collections.abc import Iterable
from typing import Any, Protocol


class RecordSink(Protocol):
    """Append-only destination for crawl output; one call per record."""

    def write(self, record: dict[str, Any]) -> None: ...

    def close(self) -> None: ...


class JsonlSink:
    """
    JSON Lines file, one object per line. Appends, never truncates, so
    consecutive runs accumulate in the same file.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        d = os.path.dirname(os.path.abspath(path)) or "."
        os.makedirs(d, exist_ok=True)
        self._fh = open(path, "a", encoding="utf-8")  # noqa: SIM115

    def write(self, record: dict[str, Any]) -> None:
        line = json.dumps(record, ensure_ascii=False) + "\n"
        with self._lock:
            self._fh.write(line)
            self._fh.flush()

    def close(self) -> None:
        with self._lock:
            if not self._fh.closed:
                self._fh.close()


class MemorySink:
    """Keeps records in a list (tests, dry runs)."""

    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def write(self, record: dict[str, Any]) -> None:
        with self._lock:
            self.records.append(dict(record))

    def close(self) -> None:
        pass

    def urls(self) -> list[str]:
        with self._lock:
            return [r["url"] for r in self.records]


class MultiSink:
    """Fans every record out to several sinks, in order."""

    def __init__(self, sinks: Iterable[RecordSink]):
        self.sinks = list(sinks)

    def write(self, record: dict[str, Any]) -> None:
        for s in self.sinks:
            s.write(record)

    def close(self) -> None:
        for s in self.sinks:
            s.close()


def read_jsonl(path: str) -> list[dict[str, Any]]:
    """All records of a JSON Lines file; blank lines skipped. Missing file -> []."""
    if not os.path.exists(path):
        return []
    out: list[dict[str, Any]] = []
    with open(path, encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if line:
                out.append(json.loads(line))
    return out
