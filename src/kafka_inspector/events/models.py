from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, NamedTuple, Optional


@dataclass(frozen=True)
class MessageRecord:
    offset: int
    next_offset: int
    key: Optional[bytes]
    payload: Optional[bytes]
    partition: Optional[int] = None
    timestamp: Optional[int] = None  # epoch millis (broker)


@dataclass(frozen=True)
class FetchedMessage:
    """A retrieved message, decoded when a decoder applied."""

    topic: str
    partition: int
    record: MessageRecord
    decoded: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class Cursor:
    topic: str
    partition: int
    offset: int
    next_offset: int
    decoder: Optional[Any] = field(default=None, compare=False)


class Position(NamedTuple):
    topic: str
    partition: int
    offset: int


@dataclass(frozen=True)
class InboundSnapshot:
    start_offset: int
    end_offset: int
    last_check_time: int  # epoch millis


@dataclass(frozen=True)
class Inbound:
    topic: str
    partition: int
    start_offset: int
    end_offset: int
    change: int
    rate: float  # msgs/sec
    checked_at: int  # epoch millis

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class TopicOffsets:
    topic: str
    partition: int
    start_offset: int
    end_offset: int
    messages: int

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class TopicItem:
    topic: str
    partitions: int
    messages: Optional[int] = None  # only populated in detailed listings

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class ConsumerDelta:
    group_id: str
    topic: str
    partition: int
    committed_offset: Optional[int]
    last_offset: Optional[int]
    lag: Optional[int]

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class BrokerDetails:
    broker_id: int
    host: str
    port: int

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class MessageSizeRange:
    topic: str
    partition: int
    start_offset: int
    end_offset: int
    min_size: Optional[int]
    max_size: Optional[int]

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class OutboundMessage:
    key: Optional[bytes]
    payload: bytes

    @classmethod
    def from_record(cls, record: MessageRecord) -> "OutboundMessage":
        return cls(key=record.key, payload=record.payload or b"")
