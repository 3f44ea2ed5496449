from __future__ import annotations

from typing import Dict, List, Optional, Protocol, Tuple, runtime_checkable

from ..events.models import BrokerDetails, MessageRecord, TopicOffsets


@runtime_checkable
class Broker(Protocol):
    """Read-side access to a Kafka cluster.

    ``watermarks`` returns ``(low, high)`` where ``high`` is the offset the next
    message will be written at, so a partition is empty when ``low == high``.
    ``fetch`` returns the records at or after ``offset``, up to roughly
    ``fetch_size`` bytes of payload, and an empty list past the end.
    """

    def topics(self) -> Dict[str, List[int]]: ...
    def watermarks(self, topic: str, partition: int) -> Tuple[int, int]: ...
    def fetch(self, topic: str, partition: int, offset: int, fetch_size: int) -> List[MessageRecord]: ...
    def offset_for_time(self, topic: str, partition: int, timestamp_ms: int) -> Optional[int]: ...
    def commit_offset(
        self, group_id: str, topic: str, partition: int, offset: int, metadata: Optional[str] = None
    ) -> None: ...
    def committed_offset(self, group_id: str, topic: str, partition: int) -> Optional[int]: ...
    def group_offsets(self, group_id: str) -> Dict[Tuple[str, int], int]: ...
    def consumer_groups(self) -> List[str]: ...
    def brokers(self) -> List[BrokerDetails]: ...
    def close(self) -> None: ...


def first_offset(broker: Broker, topic: str, partition: int) -> Optional[int]:
    low, high = broker.watermarks(topic, partition)
    return low if high > low else None


def last_offset(broker: Broker, topic: str, partition: int) -> Optional[int]:
    low, high = broker.watermarks(topic, partition)
    return high - 1 if high > low else None


def partition_range(broker: Broker, topic: str) -> Optional[Tuple[int, int]]:
    partitions = broker.topics().get(topic)
    if not partitions:
        return None
    return min(partitions), max(partitions)


def fetch_one(broker: Broker, topic: str, partition: int, offset: int, fetch_size: int) -> Optional[MessageRecord]:
    """Return the first record at or after ``offset`` (compacted logs have gaps), or None."""
    records = broker.fetch(topic, partition, offset, fetch_size)
    return records[0] if records else None


def topic_offsets(broker: Broker, topic: str, begin: int, end: int) -> List[TopicOffsets]:
    partitions = set(broker.topics().get(topic, []))
    out: List[TopicOffsets] = []
    for p in range(begin, end + 1):
        if p not in partitions:
            continue
        low, high = broker.watermarks(topic, p)
        out.append(TopicOffsets(topic=topic, partition=p, start_offset=low, end_offset=high, messages=max(0, high - low)))
    return out
