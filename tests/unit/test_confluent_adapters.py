from __future__ import annotations

from typing import Any, List, Optional

import pytest
from confluent_kafka import KafkaError, KafkaException

from kafka_inspector.conditions.compiler import compile_tokens
from kafka_inspector.errors import BrokerError
from kafka_inspector.events.models import OutboundMessage
from kafka_inspector.kafka import confluent
from kafka_inspector.search import SearchEngine


class _Err:
    def __init__(self, code: int) -> None:
        self._code = code

    def code(self) -> int:
        return self._code

    def __str__(self) -> str:
        return f"error {self._code}"


class _Msg:
    def __init__(self, offset: int, value: Optional[bytes], *, error: Optional[_Err] = None) -> None:
        self._offset = offset
        self._value = value
        self._error = error

    def error(self):
        return self._error

    def offset(self) -> int:
        return self._offset

    def partition(self) -> int:
        return 0

    def key(self) -> Optional[bytes]:
        return None if self._value is None else b"k%d" % self._offset

    def value(self) -> Optional[bytes]:
        return self._value

    def timestamp(self):
        return (1, 1_000 + self._offset)


class _Consumer:
    instances: List["_Consumer"] = []

    def __init__(self, conf: dict) -> None:
        self.conf = conf
        self.batches: List[List[_Msg]] = []
        self.assigned: List[Any] = []
        self.unassigned = 0
        self.closed = False
        _Consumer.instances.append(self)

    def assign(self, partitions) -> None:
        self.assigned.append(partitions)

    def unassign(self) -> None:
        self.unassigned += 1

    def consume(self, num_messages: int = 1, timeout: float = -1) -> List[_Msg]:
        return self.batches.pop(0) if self.batches else []

    def get_watermark_offsets(self, tp, timeout=None):
        return (3, 9)

    def close(self) -> None:
        self.closed = True


class _Producer:
    def __init__(self, conf: dict) -> None:
        self.conf = conf
        self.produced: List[tuple] = []
        self.callbacks: List[Any] = []
        self.pending = 0
        self.fail_with: Optional[Exception] = None

    def produce(self, topic, key=None, value=None, on_delivery=None) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.produced.append((topic, key, value))
        self.callbacks.append(on_delivery)

    def poll(self, timeout: float) -> int:
        return 0

    def flush(self, timeout: float = -1) -> int:
        return self.pending


@pytest.fixture()
def broker(monkeypatch: pytest.MonkeyPatch) -> confluent.ConfluentBroker:
    _Consumer.instances = []
    monkeypatch.setattr(confluent, "Consumer", _Consumer)
    return confluent.ConfluentBroker(bootstrap_servers="k1:9092", client_id="inspector", correlation_id=42, timeout_s=5.0)


def test_consumer_config_is_group_free(broker: confluent.ConfluentBroker) -> None:
    assert broker.watermarks("orders", 0) == (3, 9)

    (c,) = _Consumer.instances
    assert c.conf["group.id"] == "inspector-42"
    assert c.conf["client.id"] == "inspector-42"
    assert c.conf["enable.auto.commit"] is False
    assert c.conf["enable.partition.eof"] is True


def test_consumer_is_reused_per_thread(broker: confluent.ConfluentBroker) -> None:
    broker.watermarks("orders", 0)
    broker.watermarks("orders", 1)
    assert len(_Consumer.instances) == 1


def test_fetch_stops_at_partition_eof(broker: confluent.ConfluentBroker) -> None:
    broker.watermarks("orders", 0)
    c = _Consumer.instances[0]
    c.batches = [
        [_Msg(3, b"aaa"), _Msg(4, None)],
        [_Msg(5, b"bb"), _Msg(6, None, error=_Err(KafkaError._PARTITION_EOF))],
    ]

    records = broker.fetch("orders", 0, 3, 65536)

    assert [(r.offset, r.next_offset, r.key, r.payload) for r in records] == [
        (3, 4, b"k3", b"aaa"),
        (4, 5, None, None),
        (5, 6, b"k5", b"bb"),
    ]
    assert records[0].timestamp == 1_003
    assert c.unassigned == 1
    assert c.assigned[0][0].offset == 3


def test_fetch_stops_at_fetch_size(broker: confluent.ConfluentBroker) -> None:
    broker.watermarks("orders", 0)
    c = _Consumer.instances[0]
    c.batches = [[_Msg(3, b"aaaa"), _Msg(4, b"bbbb"), _Msg(5, b"cccc")]]

    records = broker.fetch("orders", 0, 3, 6)

    assert [r.offset for r in records] == [3, 4]


def test_fetch_error_is_broker_error(broker: confluent.ConfluentBroker) -> None:
    broker.watermarks("orders", 0)
    c = _Consumer.instances[0]
    c.batches = [[_Msg(3, None, error=_Err(KafkaError._TRANSPORT))]]

    with pytest.raises(BrokerError):
        broker.fetch("orders", 0, 3, 65536)
    assert c.unassigned == 1


def test_close_closes_consumers(broker: confluent.ConfluentBroker) -> None:
    broker.watermarks("orders", 0)
    broker.close()
    assert _Consumer.instances[0].closed is True


class _Ticker:
    def __init__(self) -> None:
        self.now = 0.0

    def time(self) -> float:
        self.now += 1.0
        return self.now


def test_fetch_that_times_out_is_broker_error(broker: confluent.ConfluentBroker, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(confluent, "time", _Ticker())
    broker.watermarks("orders", 0)
    c = _Consumer.instances[0]

    with pytest.raises(BrokerError) as ei:
        broker.fetch("orders", 0, 3, 65536)
    assert "timed out" in str(ei.value)
    assert c.unassigned == 1


class _LogConsumer(_Consumer):
    """Serves offsets 3..8 of every partition, then reports EOF."""

    def consume(self, num_messages: int = 1, timeout: float = -1) -> List[_Msg]:
        start = self.assigned[-1][0].offset
        return [_Msg(o, b"x") for o in range(start, 9)] + [_Msg(9, None, error=_Err(KafkaError._PARTITION_EOF))]


def test_repeated_scans_reuse_consumers(monkeypatch: pytest.MonkeyPatch) -> None:
    _Consumer.instances = []
    monkeypatch.setattr(confluent, "Consumer", _LogConsumer)
    broker = confluent.ConfluentBroker(bootstrap_servers="k1:9092", timeout_s=5.0)
    monkeypatch.setattr(broker, "topics", lambda: {"orders": [0, 1, 2, 3]})
    engine = SearchEngine(broker, max_workers=4)

    for _ in range(5):
        assert engine.count("orders", compile_tokens(["payload", "==", "x"])) == 24
    assert 1 <= len(_Consumer.instances) <= 4

    engine.close()
    broker.close()
    assert all(c.closed for c in _Consumer.instances)


def test_publisher_counts_failed_deliveries(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(confluent, "Producer", _Producer)
    pub = confluent.ConfluentKafkaPublisher(bootstrap_servers="k1:9092", topic="copy")

    pub.publish(OutboundMessage(key=b"k", payload=b"v"))
    pub.publish(OutboundMessage(key=None, payload=b"w"))
    assert pub._producer.produced == [("copy", b"k", b"v"), ("copy", None, b"w")]

    pub._producer.callbacks[1](KafkaError(KafkaError._MSG_TIMED_OUT), None)
    with pytest.raises(BrokerError) as ei:
        pub.flush()
    assert "1 message(s)" in str(ei.value)

    # counter resets after being reported
    pub.flush()


def test_publisher_wraps_produce_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(confluent, "Producer", _Producer)
    pub = confluent.ConfluentKafkaPublisher(bootstrap_servers="k1:9092", topic="copy")

    pub._producer.fail_with = BufferError("queue full")
    with pytest.raises(BrokerError):
        pub.publish(OutboundMessage(key=None, payload=b"x"))

    pub._producer.fail_with = KafkaException(KafkaError(KafkaError._UNKNOWN_TOPIC))
    with pytest.raises(BrokerError):
        pub.publish(OutboundMessage(key=None, payload=b"x"))
