#!/usr/bin/env python3
"""Generate docs/ENV_VARS.md from kafka_inspector.config.settings.

Usage:
    python tools/generate_env_vars_md.py
    python tools/generate_env_vars_md.py --check   # exit 1 if the file is stale
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from kafka_inspector.config.settings import ENV_SPECS, Settings

OUT = Path(__file__).resolve().parents[1] / "docs" / "ENV_VARS.md"


def render() -> str:
    base = Settings()
    lines: List[str] = []
    lines.append("# Environment variables")
    lines.append("")
    lines.append("This file is generated from `Settings` + `ENV_SPECS`.")
    lines.append("Command-line options (`--bootstrap`, `--fetch-size`, `--debug`) override them;")
    lines.append("`kfetchsize` changes the fetch size for the running session only.")
    lines.append("")
    lines.append("| Env var | Field | Type | Default |")
    lines.append("|---|---|---|---|")

    for spec in ENV_SPECS:
        default = getattr(base, spec.field)
        if isinstance(default, bool):
            default_str = str(default).lower()
        else:
            default_str = "" if default is None else str(default)
        lines.append(f"| `{spec.env}` | `{spec.field}` | `{spec.kind}` | `{default_str}` |")

    return "\n".join(lines) + "\n"


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--check", action="store_true", help="Compare instead of writing.")
    args = ap.parse_args(argv)

    text = render()
    if args.check:
        current = OUT.read_text(encoding="utf-8") if OUT.exists() else ""
        if current != text:
            print(f"{OUT} is out of date; run tools/generate_env_vars_md.py", file=sys.stderr)
            return 1
        return 0

    OUT.parent.mkdir(parents=True, exist_ok=True)
    OUT.write_text(text, encoding="utf-8")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
