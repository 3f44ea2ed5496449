"""Interactive Kafka inspection shell.

Usage:
  kafka-inspector
  kafka-inspector --bootstrap broker1:9092
  kafka-inspector -e "kls" -e "kstats orders"

Connection and tuning settings come from INSPECTOR_* environment variables
(see docs/ENV_VARS.md); command-line options override them.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from .config.settings import Settings
from .session import Session
from .shell.console import Console


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="kafka-inspector")
    ap.add_argument("--bootstrap", default=None, help="Kafka bootstrap servers (host:port[,host:port]).")
    ap.add_argument("--fetch-size", type=int, default=None, help="Default fetch size in bytes.")
    ap.add_argument("--debug", action="store_true", help="Verbose logging and tracebacks for failed commands.")
    ap.add_argument(
        "-e",
        "--execute",
        action="append",
        default=[],
        metavar="COMMAND",
        help="Run COMMAND and exit instead of starting the shell (repeatable).",
    )
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(sys.argv[1:] if argv is None else argv)

    settings = Settings.from_env()
    if args.bootstrap:
        settings = replace(settings, kafka_bootstrap_servers=args.bootstrap)
    if args.fetch_size:
        settings = replace(settings, default_fetch_size=args.fetch_size)
    debug = args.debug or settings.debug

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    with Session(settings) as session:
        console = Console(session, debug=debug)
        if args.execute:
            ok = True
            for line in args.execute:
                ok = console.execute(line) and ok
            return 0 if ok else 1
        console.run()
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
