from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, List, Optional, Tuple

from confluent_kafka import (
    Consumer,
    ConsumerGroupTopicPartitions,
    KafkaError,
    KafkaException,
    Producer,
    TopicPartition,
    admin,
)

from ..errors import BrokerError
from ..events.models import BrokerDetails, MessageRecord, OutboundMessage

logger = logging.getLogger(__name__)


def _to_record(msg: Any) -> MessageRecord:
    ts_type, ts = msg.timestamp()
    return MessageRecord(
        offset=msg.offset(),
        next_offset=msg.offset() + 1,
        key=msg.key(),
        payload=msg.value(),
        partition=msg.partition(),
        timestamp=ts if ts_type != 0 else None,  # TIMESTAMP_NOT_AVAILABLE
    )


class ConfluentBroker:
    """Broker access on top of confluent-kafka.

    Consumers are never subscribed; every fetch assigns the partition explicitly,
    so no consumer-group membership or rebalancing is involved. Each thread gets
    its own consumer since partition scans run in parallel.
    """

    def __init__(
        self,
        *,
        bootstrap_servers: str,
        client_id: str = "kafka-inspector",
        correlation_id: int = 0,
        timeout_s: float = 10.0,
        batch_size: int = 500,
    ) -> None:
        self._bootstrap_servers = bootstrap_servers
        self._client_id = client_id
        self._correlation_id = correlation_id
        self._timeout_s = timeout_s
        self._batch_size = max(1, batch_size)

        self._local = threading.local()
        self._lock = threading.Lock()
        self._consumers: List[Consumer] = []
        self._admin: Optional[admin.AdminClient] = None

    def _consumer(self) -> Consumer:
        c = getattr(self._local, "consumer", None)
        if c is not None:
            return c
        conf = {
            "bootstrap.servers": self._bootstrap_servers,
            "client.id": f"{self._client_id}-{self._correlation_id}",
            "group.id": f"{self._client_id}-{self._correlation_id}",
            "enable.auto.commit": False,
            "enable.partition.eof": True,
            "auto.offset.reset": "earliest",
        }
        c = Consumer(conf)
        with self._lock:
            self._consumers.append(c)
        self._local.consumer = c
        return c

    def _admin_client(self) -> admin.AdminClient:
        with self._lock:
            if self._admin is None:
                self._admin = admin.AdminClient(
                    {"bootstrap.servers": self._bootstrap_servers, "client.id": self._client_id}
                )
            return self._admin

    def _metadata(self) -> Any:
        try:
            return self._admin_client().list_topics(timeout=self._timeout_s)
        except KafkaException as e:
            raise BrokerError(f"Failed to retrieve cluster metadata: {e}") from e

    def topics(self) -> Dict[str, List[int]]:
        md = self._metadata()
        return {
            name: sorted(t.partitions.keys())
            for name, t in md.topics.items()
            if not name.startswith("__")
        }

    def brokers(self) -> List[BrokerDetails]:
        md = self._metadata()
        return [BrokerDetails(broker_id=b.id, host=b.host, port=b.port) for b in sorted(md.brokers.values(), key=lambda b: b.id)]

    def watermarks(self, topic: str, partition: int) -> Tuple[int, int]:
        try:
            return self._consumer().get_watermark_offsets(TopicPartition(topic, partition), timeout=self._timeout_s)
        except KafkaException as e:
            raise BrokerError(f"Failed to query offsets for {topic}/{partition}: {e}") from e

    def fetch(self, topic: str, partition: int, offset: int, fetch_size: int) -> List[MessageRecord]:
        c = self._consumer()
        out: List[MessageRecord] = []
        size = 0
        deadline = time.time() + self._timeout_s
        try:
            c.assign([TopicPartition(topic, partition, offset)])
            while size < fetch_size and len(out) < self._batch_size and time.time() < deadline:
                msgs = c.consume(num_messages=self._batch_size - len(out), timeout=1.0)
                if not msgs:
                    continue
                for msg in msgs:
                    err = msg.error()
                    if err is not None:
                        if err.code() == KafkaError._PARTITION_EOF:
                            return out
                        raise BrokerError(f"Fetch from {topic}/{partition}@{offset} failed: {err}")
                    out.append(_to_record(msg))
                    size += len(msg.value() or b"")
                    if size >= fetch_size:
                        break
        except KafkaException as e:
            raise BrokerError(f"Fetch from {topic}/{partition}@{offset} failed: {e}") from e
        finally:
            try:
                c.unassign()
            except KafkaException:
                logger.debug("unassign failed", exc_info=True)
        if not out:
            # deadline passed without reaching the end of the partition
            raise BrokerError(f"Fetch from {topic}/{partition}@{offset} timed out after {self._timeout_s}s")
        return out

    def offset_for_time(self, topic: str, partition: int, timestamp_ms: int) -> Optional[int]:
        try:
            res = self._consumer().offsets_for_times(
                [TopicPartition(topic, partition, timestamp_ms)], timeout=self._timeout_s
            )
        except KafkaException as e:
            raise BrokerError(f"Failed to look up offset by time for {topic}/{partition}: {e}") from e
        if not res or res[0].offset < 0:
            return None
        return res[0].offset

    def commit_offset(
        self, group_id: str, topic: str, partition: int, offset: int, metadata: Optional[str] = None
    ) -> None:
        tp = TopicPartition(topic, partition, offset)
        if metadata is not None:
            tp = TopicPartition(topic, partition, offset, metadata)
        fs = self._admin_client().alter_consumer_group_offsets([ConsumerGroupTopicPartitions(group_id, [tp])])
        try:
            for f in fs.values():
                f.result()
        except KafkaException as e:
            raise BrokerError(f"Failed to commit offset for group {group_id!r}: {e}") from e

    def committed_offset(self, group_id: str, topic: str, partition: int) -> Optional[int]:
        req = ConsumerGroupTopicPartitions(group_id, [TopicPartition(topic, partition)])
        fs = self._admin_client().list_consumer_group_offsets([req])
        try:
            for f in fs.values():
                res = f.result()
                for tp in res.topic_partitions or []:
                    if tp.topic == topic and tp.partition == partition:
                        return tp.offset if tp.offset >= 0 else None
        except KafkaException as e:
            raise BrokerError(f"Failed to fetch offsets for group {group_id!r}: {e}") from e
        return None

    def group_offsets(self, group_id: str) -> Dict[Tuple[str, int], int]:
        fs = self._admin_client().list_consumer_group_offsets([ConsumerGroupTopicPartitions(group_id)])
        out: Dict[Tuple[str, int], int] = {}
        try:
            for f in fs.values():
                for tp in f.result().topic_partitions or []:
                    if tp.offset >= 0:
                        out[(tp.topic, tp.partition)] = tp.offset
        except KafkaException as e:
            raise BrokerError(f"Failed to fetch offsets for group {group_id!r}: {e}") from e
        return out

    def consumer_groups(self) -> List[str]:
        try:
            res = self._admin_client().list_consumer_groups(request_timeout=self._timeout_s).result()
        except KafkaException as e:
            raise BrokerError(f"Failed to list consumer groups: {e}") from e
        return sorted(g.group_id for g in res.valid)

    def close(self) -> None:
        with self._lock:
            consumers = list(self._consumers)
            self._consumers.clear()
            self._admin = None
        for c in consumers:
            try:
                c.close()
            except Exception:
                logger.exception("Failed to close Kafka consumer")


class ConfluentKafkaPublisher:
    def __init__(
        self,
        *,
        bootstrap_servers: str,
        topic: str,
        client_id: str = "kafka-inspector",
        acks: str = "all",
    ) -> None:
        self._topic = topic
        conf = {
            "bootstrap.servers": bootstrap_servers,
            "client.id": client_id,
            "acks": acks,
        }
        self._producer = Producer(conf)
        self._failed = 0

    @property
    def topic(self) -> str:
        return self._topic

    def publish(self, message: OutboundMessage) -> None:
        try:
            self._producer.produce(
                self._topic,
                key=message.key,
                value=message.payload,
                on_delivery=self._on_delivery,
            )
            self._producer.poll(0)
        except (KafkaException, BufferError) as e:
            raise BrokerError(f"Failed to produce message to {self._topic!r}: {e}") from e

    def _on_delivery(self, err, msg):
        if err is not None:
            self._failed += 1
            logger.error("Failed to deliver message to Kafka: %s", err)

    def flush(self) -> None:
        undelivered = self._producer.flush() + self._failed
        self._failed = 0
        if undelivered:
            raise BrokerError(f"{undelivered} message(s) were not delivered to {self._topic!r}")

    def close(self) -> None:
        self.flush()
