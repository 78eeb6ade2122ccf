# service/cli.py
"""
User-facing command-line entrypoints.

Subcommands
-----------
run [--kwargs k=v ...] [--print-summary]
    - Runs one rekrute.com crawl via modules.rekrute_jobs.main.run(**kwargs)
    - Writes a cli_run activity record (or an error record on failure)
    - Optionally prints the crawl summary as JSON

validate-config [--kwargs k=v ...]
    - Builds Settings from the same kwargs and returns nonzero on error
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
import uuid
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from modules.rekrute_jobs import main as _crawler
from modules.rekrute_jobs.lib.config import ConfigError, Settings
from service import logging_utils as L

LOG = logging.getLogger("service.cli")


# ----------------------------- Logging setup ---------------------------------
def _ensure_logging() -> None:
    """Console logging for crawl workers, unless the host already configured it."""
    if logging.getLogger().handlers:
        return
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s [%(threadName)s %(name)s] %(message)s",
    )


# -------------------------- Utility / glue code ------------------------------
def _parse_kv_pairs(pairs: Iterable[str]) -> dict[str, Any]:
    """
    Turn `--kwargs` items into crawl keyword arguments.

    JSON-looking values (numbers, booleans, lists such as start_urls) are
    decoded; anything else, e.g. `location=Casablanca, Rabat`, stays a string.
    """
    kwargs: dict[str, Any] = {}
    for item in pairs:
        key, sep, value = item.partition("=")
        if not sep:
            raise argparse.ArgumentTypeError(f"--kwargs item must be key=value (got {item!r})")
        key = key.strip()
        if not key:
            raise argparse.ArgumentTypeError(f"Invalid key in --kwargs item {item!r}")
        value = value.strip()
        try:
            kwargs[key] = json.loads(value)
        except ValueError:
            kwargs[key] = value
    return kwargs


def _now_iso() -> str:
    return datetime.now().astimezone().isoformat()


# ------------------------------ Subcommands ----------------------------------
def cmd_validate_config(args: argparse.Namespace) -> int:
    try:
        kwargs = _parse_kv_pairs(args.kwargs or [])
        settings = Settings.from_env_and_kwargs(kwargs)
    except (ConfigError, argparse.ArgumentTypeError) as e:
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return 1
    print("OK: configuration is valid.")
    print(json.dumps(settings.summary(), indent=2, ensure_ascii=False))
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    run_id = uuid.uuid4().hex
    start_time = time.monotonic()

    try:
        kwargs = _parse_kv_pairs(args.kwargs or [])
    except argparse.ArgumentTypeError as e:
        print(f"FAILURE: {e}", file=sys.stderr)
        return 2
    LOG.debug("Run crawl with kwargs=%s", kwargs)

    try:
        summary = _crawler.run(**kwargs)
        duration_ms = int((time.monotonic() - start_time) * 1000)
        L.write_activity_log({
            "ts": _now_iso(),
            "event": "cli_run",
            "run_id": run_id,
            "kwargs": kwargs,
            "saved": summary.get("saved"),
            "duration_ms": duration_ms,
        })

        if args.print_summary:
            print(json.dumps(summary, indent=2, ensure_ascii=False))
        print(f"DONE: {summary.get('saved', 0)} record(s) saved.")
        return 0

    except KeyboardInterrupt:
        return 130
    except ConfigError as e:
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        duration_s = time.monotonic() - start_time
        print(f"FAILURE: {e}", file=sys.stderr)
        L.write_error_log({
            "ts": _now_iso(),
            "where": "cli.run",
            "run_id": run_id,
            "kwargs": kwargs,
            "error": repr(e),
            "duration_ms": int(duration_s * 1000),
        })
        return 1


# ------------------------------- Argparse ------------------------------------
def _add_kwargs_arg(sp: argparse.ArgumentParser) -> None:
    sp.add_argument(
        "--kwargs",
        metavar="k=v",
        nargs="*",
        help="Crawl settings, e.g. keyword=data results_wanted=20 (JSON values supported).",
    )


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="python -m service.cli",
        description="rekrute.com job crawler",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    # run
    sp = sub.add_parser("run", help="Run one crawl.")
    _add_kwargs_arg(sp)
    sp.add_argument(
        "--print-summary",
        action="store_true",
        help="Print the crawl summary as JSON.",
    )
    sp.set_defaults(func=cmd_run)

    # validate-config
    sp = sub.add_parser("validate-config", help="Check crawl settings without running.")
    _add_kwargs_arg(sp)
    sp.set_defaults(func=cmd_validate_config)

    return p


# --------------------------------- Main --------------------------------------
def main(argv: Iterable[str] | None = None) -> int:
    _ensure_logging()
    parser = _build_parser()
    args = parser.parse_args(args=list(argv) if argv is not None else None)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
