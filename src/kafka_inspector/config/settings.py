from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import List, Optional


def _env(name: str) -> Optional[str]:
    v = os.getenv(name)
    return v if v not in (None, "") else None


def _env_bool(name: str, default: bool) -> bool:
    v = _env(name)
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    v = _env(name)
    if v is None:
        return default
    try:
        return int(v.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    v = _env(name)
    if v is None:
        return default
    try:
        return float(v.strip())
    except ValueError:
        return default


@dataclass(frozen=True)
class EnvSpec:
    env: str
    field: str
    kind: str  # "str" | "bool" | "int" | "float"


def _coerce_env(spec: EnvSpec, *, default: object) -> object:
    if spec.kind == "str":
        v = _env(spec.env)
        return default if v is None else v
    if spec.kind == "bool":
        return _env_bool(spec.env, bool(default))
    if spec.kind == "int":
        return _env_int(spec.env, int(default))
    if spec.kind == "float":
        return _env_float(spec.env, float(default))
    return default


@dataclass(frozen=True)
class Settings:
    """Static configuration loaded from environment (once)."""

    # Kafka
    kafka_bootstrap_servers: str = "localhost:9092"
    kafka_client_id: str = "kafka-inspector"
    kafka_timeout_s: float = 10.0

    # Fetching
    default_fetch_size: int = 65536
    encoding: str = "utf-8"

    # Inbound sampling
    inbound_wait_s: int = 3
    inbound_stale_s: int = 1800

    # Search
    search_max_workers: int = 8
    scan_batch_size: int = 500

    debug: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        base = cls()
        overrides: dict[str, object] = {}
        for spec in ENV_SPECS:
            overrides[spec.field] = _coerce_env(spec, default=getattr(base, spec.field))
        return replace(base, **overrides)


ENV_SPECS: List[EnvSpec] = [
    # Kafka
    EnvSpec("INSPECTOR_KAFKA_BOOTSTRAP_SERVERS", "kafka_bootstrap_servers", "str"),
    EnvSpec("INSPECTOR_KAFKA_CLIENT_ID", "kafka_client_id", "str"),
    EnvSpec("INSPECTOR_KAFKA_TIMEOUT_S", "kafka_timeout_s", "float"),

    # Fetching
    EnvSpec("INSPECTOR_DEFAULT_FETCH_SIZE", "default_fetch_size", "int"),
    EnvSpec("INSPECTOR_ENCODING", "encoding", "str"),

    # Inbound sampling
    EnvSpec("INSPECTOR_INBOUND_WAIT_S", "inbound_wait_s", "int"),
    EnvSpec("INSPECTOR_INBOUND_STALE_S", "inbound_stale_s", "int"),

    # Search
    EnvSpec("INSPECTOR_SEARCH_MAX_WORKERS", "search_max_workers", "int"),
    EnvSpec("INSPECTOR_SCAN_BATCH_SIZE", "scan_batch_size", "int"),

    # Generic
    EnvSpec("INSPECTOR_DEBUG", "debug", "bool"),
]
