from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterator, List, Optional, Tuple, TypeVar

from .conditions.compiler import Condition, evaluate
from .decoders.avro import AvroDecoder
from .decoders.resolution import decode
from .errors import BrokerError, NoCursorError, NotFoundError
from .events.models import MessageRecord, OutboundMessage
from .kafka.broker import Broker, first_offset, last_offset
from .kafka.publisher import Publisher

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_FETCH_SIZE = 65536


class SearchEngine:
    """Scans topic partitions for messages matching a compiled condition.

    Every candidate message is fetched (and decoded, when a decoder is given)
    before the condition is applied. Partitions are scanned in parallel;
    results are always reported in ascending partition/offset order. A decode
    failure aborts the whole operation instead of being counted as a miss.
    """

    def __init__(self, broker: Broker, *, max_workers: int = 8) -> None:
        self._broker = broker
        self._max_workers = max(1, max_workers)
        self._pool: Optional[ThreadPoolExecutor] = None
        self._pool_lock = threading.Lock()

    def _executor(self) -> ThreadPoolExecutor:
        # one pool per engine: the broker keeps a consumer per worker thread
        with self._pool_lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="kafka-inspector-scan")
            return self._pool

    def close(self) -> None:
        with self._pool_lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=True)

    def _partitions(self, topic: Optional[str]) -> List[int]:
        if not topic:
            raise NoCursorError()
        partitions = self._broker.topics().get(topic)
        if partitions is None:
            raise NotFoundError(f"Topic {topic!r} not found")
        return sorted(partitions)

    def _each_partition(self, partitions: List[int], fn: Callable[[int], T]) -> List[T]:
        if len(partitions) <= 1 or self._max_workers == 1:
            return [fn(p) for p in partitions]
        return list(self._executor().map(fn, partitions))

    def _matches(self, record: MessageRecord, condition: Condition, decoder: Optional[AvroDecoder]) -> bool:
        if decoder is not None:
            return evaluate(condition, decode(record.payload, decoder))
        return evaluate(condition, record)

    def scan(
        self,
        topic: str,
        partition: int,
        condition: Condition,
        decoder: Optional[AvroDecoder] = None,
        *,
        start: Optional[int] = None,
        fetch_size: int = DEFAULT_FETCH_SIZE,
    ) -> Iterator[MessageRecord]:
        """Yield matching records of one partition from ``start`` (default: first offset) to its last offset."""
        first = first_offset(self._broker, topic, partition)
        last = last_offset(self._broker, topic, partition)
        if first is None or last is None:
            return
        offset = first if start is None else max(start, first)
        while offset <= last:
            batch = self._broker.fetch(topic, partition, offset, fetch_size)
            if not batch:
                raise BrokerError(
                    f"Fetch returned no records at {topic}/{partition}@{offset} before last offset {last}"
                )
            for record in batch:
                if record.offset > last:
                    return
                if self._matches(record, condition, decoder):
                    yield record
            offset = batch[-1].next_offset

    def count(
        self,
        topic: Optional[str],
        condition: Condition,
        decoder: Optional[AvroDecoder] = None,
        *,
        fetch_size: int = DEFAULT_FETCH_SIZE,
    ) -> int:
        partitions = self._partitions(topic)

        def _count(p: int) -> int:
            return sum(1 for _ in self.scan(topic, p, condition, decoder, fetch_size=fetch_size))

        total = sum(self._each_partition(partitions, _count))
        logger.debug("count %s [%s] = %d", topic, condition, total)
        return total

    def find_first(
        self,
        topic: Optional[str],
        condition: Condition,
        decoder: Optional[AvroDecoder] = None,
        *,
        fetch_size: int = DEFAULT_FETCH_SIZE,
    ) -> Optional[Tuple[int, MessageRecord]]:
        partitions = self._partitions(topic)

        def _first(p: int) -> Optional[MessageRecord]:
            return next(self.scan(topic, p, condition, decoder, fetch_size=fetch_size), None)

        for p, record in zip(partitions, self._each_partition(partitions, _first)):
            if record is not None:
                return p, record
        return None

    def find_next(
        self,
        topic: Optional[str],
        partition: int,
        condition: Condition,
        decoder: Optional[AvroDecoder] = None,
        *,
        start: Optional[int] = None,
        fetch_size: int = DEFAULT_FETCH_SIZE,
    ) -> Optional[MessageRecord]:
        if partition not in self._partitions(topic):
            raise NotFoundError(f"Partition {partition} not found for topic {topic!r}")
        return next(self.scan(topic, partition, condition, decoder, start=start, fetch_size=fetch_size), None)

    def find_and_export(
        self,
        topic: Optional[str],
        condition: Condition,
        decoder: Optional[AvroDecoder],
        sink: Publisher,
        *,
        fetch_size: int = DEFAULT_FETCH_SIZE,
    ) -> int:
        partitions = self._partitions(topic)
        lock = threading.Lock()

        def _export(p: int) -> int:
            n = 0
            for record in self.scan(topic, p, condition, decoder, fetch_size=fetch_size):
                with lock:
                    sink.publish(OutboundMessage.from_record(record))
                n += 1
            return n

        written = sum(self._each_partition(partitions, _export))
        sink.flush()
        logger.debug("exported %d message(s) from %s [%s]", written, topic, condition)
        return written
