#!/usr/bin/env python3

import json
import os
import sys
from datetime import datetime
from pathlib import Path

# Default output written by the crawler
PROJECT_ROOT = Path(__file__).resolve().parent.parent  # ../scripts → project root
DEFAULT_PATH = PROJECT_ROOT / "local" / "output" / "rekrute_jobs.jsonl"


def get_latest_entries(path: str, limit: int = 15) -> list[dict]:
    """
    Return the last `limit` records of a JSON Lines file, newest first.
    Unparseable lines are reported and skipped.
    """
    records: list[dict] = []
    with open(path, encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, 1):
            line = line.strip()
            if not line:
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError as e:
                print(f"Skipping line {lineno}: {e}", file=sys.stderr)
    return list(reversed(records[-limit:]))


def format_timestamp(iso_str: str) -> str:
    """Convert ISO timestamp to readable local format."""
    try:
        dt = datetime.fromisoformat(iso_str.replace("Z", "+00:00"))
        return dt.astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")
    except (AttributeError, ValueError):
        return str(iso_str)


def main():
    path = Path(os.getenv("REKRUTE_OUTPUT_PATH") or DEFAULT_PATH)

    # Parse optional limit
    limit = 15
    if len(sys.argv) > 1:
        try:
            limit = int(sys.argv[1])
            if limit <= 0:
                raise ValueError
        except ValueError:
            print(f"Invalid limit: {sys.argv[1]}. Using default (15).", file=sys.stderr)
            limit = 15

    if not path.exists():
        print(f"File not found: {path}")
        sys.exit(1)

    entries = get_latest_entries(str(path), limit)
    if not entries:
        print(f"No records in {path}")
        return

    print(f"FILE: {path}")
    print(f"Showing last {len(entries)} record(s).\n")
    print("=" * 80)
    for i, rec in enumerate(entries, 1):
        print(f"{i:2d}. [{format_timestamp(rec.get('scrapedAt', ''))}]")
        if rec.get("title"):
            print(f"     Title:    {rec['title']}")
            print(f"     Company:  {rec.get('company') or '-'}")
            print(f"     Location: {rec.get('location') or '-'}")
        else:
            print(f"     Found on: {rec.get('discoveredOn') or '-'} (page {rec.get('pageNo', '?')})")
        print(f"     URL:      {rec.get('url')}")
        print()


if __name__ == "__main__":
    main()
