from __future__ import annotations

import json
from pathlib import Path

import pytest

from kafka_inspector.decoders.avro import AvroDecoder
from kafka_inspector.decoders.resolution import DecoderCache, decode, ensure_supported, resolve
from kafka_inspector.errors import DecodeError, DecoderLookupError, UnsupportedDecoderError
from tests.unit._fakes import avro_bytes

QUOTE_SCHEMA = {
    "type": "record",
    "name": "Quote",
    "namespace": "com.example.quotes",
    "fields": [
        {"name": "symbol", "type": "string"},
        {"name": "price", "type": ["null", "double"], "default": None},
        {"name": "volume", "type": "long"},
        {
            "name": "venue",
            "type": {
                "type": "record",
                "name": "Venue",
                "fields": [{"name": "code", "type": "string"}, {"name": "open", "type": "boolean"}],
            },
        },
    ],
}


class _JsonDecoder:
    name = "json"
    kind = "json"


@pytest.fixture()
def schema_file(tmp_path: Path) -> Path:
    p = tmp_path / "quotes.avsc"
    p.write_text(json.dumps(QUOTE_SCHEMA), encoding="utf-8")
    return p


def _quote() -> dict:
    return {"symbol": "ACME", "price": 12.5, "volume": 1000, "venue": {"code": "XNYS", "open": True}}


def test_decode_round_trips_avro_payload() -> None:
    d = AvroDecoder(name="quotes", schema=QUOTE_SCHEMA)
    assert d.decode(avro_bytes(QUOTE_SCHEMA, _quote())) == _quote()


def test_field_types() -> None:
    d = AvroDecoder(name="quotes", schema=QUOTE_SCHEMA)

    assert d.field_type("symbol") == "string"
    assert d.field_type("price") == "double"
    assert d.field_type("volume") == "long"
    assert d.field_type("venue") == "record"
    assert d.field_type("venue.open") == "boolean"
    assert d.field_type("venue.missing") is None
    assert d.field_type("nope") is None


def test_invalid_schema_is_a_lookup_error() -> None:
    with pytest.raises(DecoderLookupError):
        AvroDecoder(name="bad", schema={"type": "record", "name": "X", "fields": [{"name": "a", "type": "nope"}]})


def test_garbage_payload_is_a_decode_error() -> None:
    d = AvroDecoder(name="quotes", schema=QUOTE_SCHEMA)
    with pytest.raises(DecodeError):
        d.decode(b"\x80")


def test_cache_loads_file_once(schema_file: Path) -> None:
    cache = DecoderCache()

    a = cache.lookup(f"file:{schema_file}")
    b = cache.lookup(str(schema_file))

    assert a is b
    assert len(cache) == 1
    assert a.name == str(schema_file)

    cache.clear()
    assert len(cache) == 0


def test_cache_missing_file(tmp_path: Path) -> None:
    with pytest.raises(DecoderLookupError):
        DecoderCache().lookup(f"file:{tmp_path / 'missing.avsc'}")


def test_cache_unreadable_schema(tmp_path: Path) -> None:
    p = tmp_path / "broken.avsc"
    p.write_text("{not json", encoding="utf-8")
    with pytest.raises(DecoderLookupError):
        DecoderCache().lookup(str(p))


def test_cache_empty_reference() -> None:
    with pytest.raises(DecoderLookupError):
        DecoderCache().lookup("file:")


def test_resolve_precedence(schema_file: Path) -> None:
    cache = DecoderCache()
    bound = AvroDecoder(name="bound", schema=QUOTE_SCHEMA)

    explicit = resolve(f"file:{schema_file}", bound, cache)
    assert explicit is not bound and explicit.name == str(schema_file)

    assert resolve(None, bound, cache) is bound
    assert resolve(None, None, cache) is None


def test_unsupported_decoder_kind_is_rejected() -> None:
    with pytest.raises(UnsupportedDecoderError):
        resolve(None, _JsonDecoder(), DecoderCache())
    with pytest.raises(UnsupportedDecoderError):
        ensure_supported(_JsonDecoder())


def test_decode_tombstone_is_none() -> None:
    d = AvroDecoder(name="quotes", schema=QUOTE_SCHEMA)
    assert decode(None, d) is None
    assert decode(avro_bytes(QUOTE_SCHEMA, _quote()), d)["symbol"] == "ACME"
