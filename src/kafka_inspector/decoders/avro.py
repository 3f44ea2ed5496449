from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

import fastavro

from ..errors import DecodeError, DecoderLookupError


def _type_name(avro_type: Any) -> Optional[str]:
    """Collapse an Avro type declaration to a single type name.

    Unions with ``null`` collapse to the other branch; other unions have no
    single type and yield None.
    """
    if isinstance(avro_type, str):
        return avro_type
    if isinstance(avro_type, list):
        branches = [t for t in avro_type if t != "null"]
        return _type_name(branches[0]) if len(branches) == 1 else None
    if isinstance(avro_type, dict):
        return avro_type.get("type")
    return None


def _record_of(avro_type: Any) -> Optional[Dict[str, Any]]:
    if isinstance(avro_type, dict) and avro_type.get("type") == "record":
        return avro_type
    if isinstance(avro_type, list):
        branches = [t for t in avro_type if t != "null"]
        return _record_of(branches[0]) if len(branches) == 1 else None
    return None


class AvroDecoder:
    """Decodes schemaless Avro binary payloads into dicts."""

    kind = "avro"

    def __init__(self, *, name: str, schema: Dict[str, Any]) -> None:
        self.name = name
        self._schema = schema
        try:
            self._parsed = fastavro.parse_schema(schema)
        except Exception as e:
            raise DecoderLookupError(f"Invalid Avro schema {name!r}: {e}") from e

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "AvroDecoder":
        p = Path(path).expanduser()
        try:
            schema = json.loads(p.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise DecoderLookupError(f"Avro schema file {str(p)!r} not found") from e
        except (OSError, ValueError) as e:
            raise DecoderLookupError(f"Cannot read Avro schema {str(p)!r}: {e}") from e
        return cls(name=str(p), schema=schema)

    def field_type(self, path: str) -> Optional[str]:
        """Return the Avro type name of a (dotted) field, or None if unknown."""
        record = _record_of(self._schema)
        parts = path.split(".")
        for i, part in enumerate(parts):
            if record is None:
                return None
            match = next((f for f in record.get("fields", []) if f.get("name") == part), None)
            if match is None:
                return None
            if i == len(parts) - 1:
                return _type_name(match.get("type"))
            record = _record_of(match.get("type"))
        return None

    def decode(self, payload: bytes) -> Dict[str, Any]:
        try:
            return fastavro.schemaless_reader(io.BytesIO(payload), self._parsed)
        except Exception as e:
            raise DecodeError(f"Payload does not conform to Avro schema {self.name!r}: {e}") from e

    def __repr__(self) -> str:
        return f"AvroDecoder({self.name!r})"
