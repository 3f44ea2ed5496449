from __future__ import annotations

import re
import time
from datetime import datetime
from typing import Optional

from .errors import CommandSyntaxError

_DOTTED_HEX = re.compile(r"^[0-9a-fA-F]{2}(\.[0-9a-fA-F]{2})+$")
_EPOCH = re.compile(r"^\d+$")
_ISO_SECONDS = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}$")


def now_ms() -> int:
    return time.time_ns() // 1_000_000


def is_dotted_hex(value: str) -> bool:
    """True for byte literals like ``a0.00.11.22``."""
    return bool(_DOTTED_HEX.match(value or ""))


def parse_dotted_hex(value: str) -> bytes:
    if not is_dotted_hex(value):
        raise CommandSyntaxError(f"Invalid dotted-hex literal {value!r}")
    return bytes(int(part, 16) for part in value.split("."))


def to_bytes(value: str, encoding: str = "utf-8") -> bytes:
    return parse_dotted_hex(value) if is_dotted_hex(value) else value.encode(encoding)


def to_dotted_hex(data: bytes) -> str:
    return ".".join(f"{b:02x}" for b in data)


def to_text(data: Optional[bytes], encoding: str = "utf-8") -> Optional[str]:
    """Decode bytes as text, falling back to dotted hex for binary data."""
    if data is None:
        return None
    try:
        return data.decode(encoding)
    except UnicodeDecodeError:
        return to_dotted_hex(data)


def parse_instant(value: str) -> int:
    """Parse epoch millis or ``yyyy-MM-ddTHH:mm:ss`` (local time) into epoch millis."""
    if _EPOCH.match(value):
        return int(value)
    if _ISO_SECONDS.match(value):
        return int(datetime.strptime(value, "%Y-%m-%dT%H:%M:%S").timestamp() * 1000)
    raise CommandSyntaxError(
        f"Illegal timestamp format {value!r} - expected either EPOCH millis or yyyy-MM-ddTHH:mm:ss format"
    )


def parse_int(label: str, value: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise CommandSyntaxError(f"Invalid {label} {value!r}; integer expected") from None


def parse_delta(value: str) -> int:
    """Parse a navigation delta such as ``10`` or ``+10``."""
    return parse_int("position delta", value[1:] if value.startswith("+") else value)


def matches_prefix(prefix: Optional[str], name: str) -> bool:
    return prefix is None or name.startswith(prefix)
