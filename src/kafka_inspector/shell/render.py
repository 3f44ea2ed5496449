from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

from ..events.models import Cursor, FetchedMessage
from ..utils import to_text


def hexdump(data: bytes, width: int = 16) -> List[str]:
    lines: List[str] = []
    for i in range(0, len(data), width):
        chunk = data[i:i + width]
        hex_part = " ".join(f"{b:02x}" for b in chunk).ljust(width * 3 - 1)
        ascii_part = "".join(chr(b) if 32 <= b < 127 else "." for b in chunk)
        lines.append(f"[{i:04x}] {hex_part} | {ascii_part}")
    return lines


def table(rows: Sequence[Dict[str, Any]], headers: Optional[List[str]] = None) -> List[str]:
    if not rows:
        return []
    headers = headers or list(rows[0].keys())
    cols = {h: len(h) for h in headers}
    for r in rows:
        for h in headers:
            cols[h] = max(cols[h], len(_cell_text(r.get(h))))

    def _cell(key: str, val: Any) -> str:
        s = _cell_text(val)
        return s.rjust(cols[key]) if isinstance(val, (int, float)) and not isinstance(val, bool) else s.ljust(cols[key])

    out = [" ".join(h.ljust(cols[h]) for h in headers).rstrip()]
    out.append(" ".join("-" * cols[h] for h in headers))
    for r in rows:
        out.append(" ".join(_cell(h, r.get(h)) for h in headers).rstrip())
    return out


def _cell_text(val: Any) -> str:
    if val is None:
        return ""
    if isinstance(val, bytes):
        return to_text(val) or ""
    return str(val)


def _cursor_row(c: Cursor) -> Dict[str, Any]:
    return {
        "topic": c.topic,
        "partition": c.partition,
        "offset": c.offset,
        "next_offset": c.next_offset,
        "decoder": getattr(c.decoder, "name", None),
    }


def render_message(m: FetchedMessage, *, encoding: str = "utf-8") -> List[str]:
    r = m.record
    header = f"{m.topic}/{m.partition}:{r.offset}"
    if r.key is not None:
        header += f" key={to_text(r.key, encoding)}"
    lines = [header]
    if m.decoded is not None:
        lines.extend(json.dumps(m.decoded, indent=2, ensure_ascii=False, default=str).splitlines())
    elif r.payload is None:
        lines.append("<tombstone>")
    else:
        lines.extend(hexdump(r.payload))
    return lines


def render(result: Any, *, encoding: str = "utf-8") -> List[str]:
    """Turn a command result into console lines."""
    if result is None:
        return []
    if isinstance(result, FetchedMessage):
        return render_message(result, encoding=encoding)
    if isinstance(result, bytes):
        return [to_text(result, encoding) or ""]
    if isinstance(result, (str, int, float)):
        return [str(result)]
    if isinstance(result, list):
        if not result:
            return []
        if isinstance(result[0], Cursor):
            return table([_cursor_row(c) for c in result])
        if hasattr(result[0], "to_dict"):
            return table([r.to_dict() for r in result])
        return [str(r) for r in result]
    if hasattr(result, "to_dict"):
        return table([result.to_dict()])
    return [str(result)]
