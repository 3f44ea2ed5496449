from __future__ import annotations

from typing import Iterator, List

import pytest

from kafka_inspector.conditions.compiler import compile_tokens
from kafka_inspector.decoders.avro import AvroDecoder
from kafka_inspector.errors import BrokerError, DecodeError, NoCursorError, NotFoundError
from kafka_inspector.events.models import MessageRecord
from kafka_inspector.search import SearchEngine
from tests.unit._fakes import FakeBroker, MemPublisher, avro_bytes

PRICE_SCHEMA = {
    "type": "record",
    "name": "Tick",
    "fields": [
        {"name": "symbol", "type": "string"},
        {"name": "price", "type": "double"},
    ],
}


def _quotes() -> FakeBroker:
    b = FakeBroker()
    b.create_topic("quotes", 3)
    prices = {0: [50, 150, 250], 1: [120, 10], 2: [5, 7, 300, 400]}
    for p, values in prices.items():
        for i, price in enumerate(values):
            b.append_json("quotes", p, {"symbol": f"S{p}{i}", "price": price}, key=f"k{p}{i}".encode())
    return b


@pytest.fixture(params=[1, 4], ids=["serial", "parallel"])
def engine(request) -> Iterator[SearchEngine]:
    e = SearchEngine(_quotes(), max_workers=request.param)
    yield e
    e.close()


def test_count_scans_every_partition(engine: SearchEngine) -> None:
    assert engine.count("quotes", compile_tokens(["price", ">", "100"])) == 5
    assert engine.count("quotes", compile_tokens(["price", ">", "1000"])) == 0


def test_count_with_small_fetch_size_pages_through_partition(engine: SearchEngine) -> None:
    assert engine.count("quotes", compile_tokens(["price", ">", "100"]), fetch_size=1) == 5


def test_find_first_prefers_lowest_partition_then_offset(engine: SearchEngine) -> None:
    partition, record = engine.find_first("quotes", compile_tokens(["price", ">", "100"]))
    assert (partition, record.offset) == (0, 1)

    partition, record = engine.find_first("quotes", compile_tokens(["price", ">", "280"]))
    assert (partition, record.offset) == (2, 2)


def test_find_first_without_match(engine: SearchEngine) -> None:
    assert engine.find_first("quotes", compile_tokens(["symbol", "==", "NOPE"])) is None


def test_find_next_starts_from_offset(engine: SearchEngine) -> None:
    c = compile_tokens(["price", ">", "100"])

    assert engine.find_next("quotes", 2, c).offset == 2
    assert engine.find_next("quotes", 2, c, start=3).offset == 3
    assert engine.find_next("quotes", 2, c, start=4) is None


def test_find_next_unknown_partition(engine: SearchEngine) -> None:
    with pytest.raises(NotFoundError):
        engine.find_next("quotes", 7, compile_tokens(["price", ">", "1"]))


def test_find_and_export_publishes_every_match(engine: SearchEngine) -> None:
    sink = MemPublisher()

    n = engine.find_and_export("quotes", compile_tokens(["price", ">", "100"]), None, sink)

    assert n == 5
    assert sorted(m.key for m in sink.messages) == [b"k01", b"k02", b"k10", b"k22", b"k23"]
    assert sink.flushed == 1


def test_search_without_topic_needs_cursor(engine: SearchEngine) -> None:
    with pytest.raises(NoCursorError):
        engine.count(None, compile_tokens(["price", ">", "100"]))


def test_search_unknown_topic(engine: SearchEngine) -> None:
    with pytest.raises(NotFoundError):
        engine.count("nope", compile_tokens(["price", ">", "100"]))


def test_scan_skips_truncated_offsets() -> None:
    b = _quotes()
    b.truncate_before("quotes", 2, 3)

    engine = SearchEngine(b, max_workers=1)

    assert engine.count("quotes", compile_tokens(["price", ">", "100"])) == 4


def test_avro_decoded_search() -> None:
    decoder = AvroDecoder(name="tick", schema=PRICE_SCHEMA)
    b = FakeBroker()
    b.create_topic("ticks", 2)
    b.append("ticks", 0, avro_bytes(PRICE_SCHEMA, {"symbol": "ACME", "price": 99.5}))
    b.append("ticks", 1, avro_bytes(PRICE_SCHEMA, {"symbol": "ACME", "price": 101.25}))
    b.append("ticks", 1, avro_bytes(PRICE_SCHEMA, {"symbol": "BOLT", "price": 250.0}))

    engine = SearchEngine(b)
    c = compile_tokens(["symbol", "==", "ACME", "and", "price", ">", "100"], decoder)

    assert engine.count("ticks", c, decoder) == 1
    partition, record = engine.find_first("ticks", c, decoder)
    assert (partition, record.offset) == (1, 0)


def test_decode_failure_aborts_the_scan() -> None:
    decoder = AvroDecoder(name="tick", schema=PRICE_SCHEMA)
    b = FakeBroker()
    b.create_topic("ticks", 1)
    b.append("ticks", 0, avro_bytes(PRICE_SCHEMA, {"symbol": "ACME", "price": 1.0}))
    b.append("ticks", 0, b"\x80")

    engine = SearchEngine(b)

    with pytest.raises(DecodeError):
        engine.count("ticks", compile_tokens(["price", ">", "0"], decoder), decoder)


class _StalledBroker(FakeBroker):
    """Returns nothing on the second fetch, as a consumer that hits its deadline would."""

    def fetch(self, topic: str, partition: int, offset: int, fetch_size: int) -> List[MessageRecord]:
        records = super().fetch(topic, partition, offset, fetch_size)
        return [] if self.fetch_calls == 2 else records


@pytest.mark.parametrize("op", ["count", "find_and_export"])
def test_empty_fetch_before_last_offset_fails_the_scan(op: str) -> None:
    b = _StalledBroker()
    b.create_topic("orders", 1)
    for i in range(10):
        b.append_json("orders", 0, {"id": i, "price": 200})

    engine = SearchEngine(b, max_workers=1)
    condition = compile_tokens(["price", ">", "100"])

    with pytest.raises(BrokerError) as ei:
        if op == "count":
            engine.count("orders", condition, fetch_size=30)
        else:
            engine.find_and_export("orders", condition, None, MemPublisher(), fetch_size=30)
    assert "orders/0@" in str(ei.value)
    assert "last offset 9" in str(ei.value)
