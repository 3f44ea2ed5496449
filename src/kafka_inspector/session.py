from __future__ import annotations

import logging
import random
import time
from typing import Callable, List, Optional, Sequence, Tuple

from .conditions.compiler import compile_tokens
from .config.settings import Settings
from .cursors import CursorRegistry
from .decoders.avro import AvroDecoder
from .decoders.resolution import DecoderCache, decode, resolve
from .errors import CommandSyntaxError, NoCursorError, NotFoundError
from .events.models import (
    BrokerDetails,
    ConsumerDelta,
    Cursor,
    FetchedMessage,
    Inbound,
    MessageSizeRange,
    OutboundMessage,
    Position,
    TopicItem,
    TopicOffsets,
)
from .inbound import InboundTracker
from .kafka.broker import Broker, fetch_one, first_offset, last_offset, topic_offsets
from .kafka.publisher import Publisher, publisher_for_url
from .navigation import NavigationEngine
from .search import SearchEngine
from .utils import matches_prefix, now_ms, to_bytes

logger = logging.getLogger(__name__)


def _default_broker_factory(settings: Settings, correlation_id: int) -> Broker:
    from .kafka.confluent import ConfluentBroker

    return ConfluentBroker(
        bootstrap_servers=settings.kafka_bootstrap_servers,
        client_id=settings.kafka_client_id,
        correlation_id=correlation_id,
        timeout_s=settings.kafka_timeout_s,
        batch_size=settings.scan_batch_size,
    )


class Session:
    """One operator session against a cluster.

    Owns the cursor registry, the inbound snapshot cache and the decoder cache.
    The broker connection is opened on first use and released by ``close()``.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        broker: Optional[Broker] = None,
        broker_factory: Optional[Callable[[Settings, int], Broker]] = None,
        publisher_factory: Optional[Callable[[Settings, str], Publisher]] = None,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.correlation_id = random.randint(0, 2**31 - 1)
        self.cursors = CursorRegistry()
        self.decoders = DecoderCache()

        self._broker = broker
        self._broker_factory = broker_factory or _default_broker_factory
        self._publisher_factory = publisher_factory or publisher_for_url
        self._clock = clock
        self._sleep = sleep
        self._fetch_size = self.settings.default_fetch_size

        self._navigation: Optional[NavigationEngine] = None
        self._search: Optional[SearchEngine] = None
        self._inbound: Optional[InboundTracker] = None

    # -- resources ----------------------------------------------------------

    @property
    def broker(self) -> Broker:
        if self._broker is None:
            logger.debug("Connecting to %s (correlation id %d)", self.settings.kafka_bootstrap_servers, self.correlation_id)
            self._broker = self._broker_factory(self.settings, self.correlation_id)
        return self._broker

    @property
    def navigation(self) -> NavigationEngine:
        if self._navigation is None:
            self._navigation = NavigationEngine(self.broker)
        return self._navigation

    @property
    def search(self) -> SearchEngine:
        if self._search is None:
            self._search = SearchEngine(self.broker, max_workers=self.settings.search_max_workers)
        return self._search

    @property
    def inbound_tracker(self) -> InboundTracker:
        if self._inbound is None:
            self._inbound = InboundTracker(
                self.broker,
                default_wait_s=self.settings.inbound_wait_s,
                stale_after_s=self.settings.inbound_stale_s,
                clock=self._clock,
                sleep=self._sleep,
            )
        return self._inbound

    def close(self) -> None:
        broker, self._broker = self._broker, None
        search = self._search
        self._navigation = self._search = self._inbound = None
        if search is not None:
            search.close()
        self.decoders.clear()
        if broker is not None:
            broker.close()

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # -- state --------------------------------------------------------------

    @property
    def fetch_size(self) -> int:
        return self._fetch_size

    @fetch_size.setter
    def fetch_size(self, size: int) -> None:
        if size <= 0:
            raise CommandSyntaxError(f"Fetch size must be positive (got {size})")
        self._fetch_size = size

    @property
    def cursor(self) -> Optional[Cursor]:
        return self.cursors.current()

    def require_cursor(self) -> Cursor:
        cursor = self.cursors.current()
        if cursor is None:
            raise NoCursorError()
        return cursor

    def prompt(self) -> str:
        c = self.cursor
        return f"{c.topic}/{c.partition}:{c.offset}" if c else "/"

    def resolve_decoder(self, topic: str, decoder_ref: Optional[str]) -> Optional[AvroDecoder]:
        cursor = self.cursors.get(topic)
        return resolve(decoder_ref, cursor.decoder if cursor else None, self.decoders)

    def _search_target(self, topic: Optional[str], decoder_ref: Optional[str]) -> Tuple[str, Optional[AvroDecoder]]:
        if topic:
            return topic, self.resolve_decoder(topic, decoder_ref)
        cursor = self.require_cursor()
        return cursor.topic, resolve(decoder_ref, cursor.decoder, self.decoders)

    # -- message retrieval --------------------------------------------------

    def get_message(
        self,
        topic: str,
        partition: int,
        offset: int,
        *,
        decoder_ref: Optional[str] = None,
        instant: Optional[int] = None,
        output_url: Optional[str] = None,
    ) -> FetchedMessage:
        """Fetch (and decode) one message, then make it the topic's cursor."""
        decoder = self.resolve_decoder(topic, decoder_ref)

        if instant is not None:
            found = self.broker.offset_for_time(topic, partition, instant)
            if found is None:
                raise NotFoundError(f"No message at or after {instant} in {topic}/{partition}")
            offset = found

        record = fetch_one(self.broker, topic, partition, offset, self._fetch_size)
        if record is None:
            raise NotFoundError(f"No message found at {topic}/{partition}:{offset}")

        decoded = decode(record.payload, decoder) if decoder is not None else None

        if output_url:
            sink = self._publisher_factory(self.settings, output_url)
            try:
                sink.publish(OutboundMessage.from_record(record))
            finally:
                sink.close()

        self.cursors.set_current(topic, partition, record, decoder)
        return FetchedMessage(topic=topic, partition=partition, record=record, decoded=decoded)

    def _get_position(self, position: Optional[Position], **kwargs) -> Optional[FetchedMessage]:
        if position is None:
            return None
        return self.get_message(position.topic, position.partition, position.offset, **kwargs)

    def first_message(self, topic: str, partition: int, **kwargs) -> FetchedMessage:
        offset = first_offset(self.broker, topic, partition)
        if offset is None:
            raise NotFoundError(f"Partition {topic}/{partition} is empty")
        return self.get_message(topic, partition, offset, **kwargs)

    def last_message(self, topic: str, partition: int, **kwargs) -> FetchedMessage:
        offset = last_offset(self.broker, topic, partition)
        if offset is None:
            raise NotFoundError(f"Partition {topic}/{partition} is empty")
        return self.get_message(topic, partition, offset, **kwargs)

    def next_message(self, delta: Optional[int] = None, **kwargs) -> Optional[FetchedMessage]:
        position = self.navigation.advance(self.cursor, 0 if delta is None else delta)
        return self._get_position(position, **kwargs)

    def previous_message(self, delta: Optional[int] = None, **kwargs) -> Optional[FetchedMessage]:
        position = self.navigation.retreat(self.cursor, 1 if delta is None else delta)
        return self._get_position(position, **kwargs)

    def message_key(self, topic: str, partition: int, offset: int) -> Optional[bytes]:
        record = fetch_one(self.broker, topic, partition, offset, self._fetch_size)
        if record is None:
            raise NotFoundError(f"No message found at {topic}/{partition}:{offset}")
        return record.key

    def message_size(self, topic: str, partition: int, offset: int) -> int:
        record = fetch_one(self.broker, topic, partition, offset, self._fetch_size)
        if record is None:
            raise NotFoundError(f"No message found at {topic}/{partition}:{offset}")
        return len(record.payload or b"")

    def message_size_range(self, topic: str, partition: int, start: int, end: int) -> MessageSizeRange:
        if end < start:
            raise CommandSyntaxError(f"End offset {end} precedes start offset {start}")
        sizes: List[int] = []
        offset = start
        while offset <= end:
            batch = self.broker.fetch(topic, partition, offset, self._fetch_size)
            if not batch:
                break
            sizes.extend(len(r.payload or b"") for r in batch if r.offset <= end)
            offset = batch[-1].next_offset
        return MessageSizeRange(
            topic=topic,
            partition=partition,
            start_offset=start,
            end_offset=end,
            min_size=min(sizes) if sizes else None,
            max_size=max(sizes) if sizes else None,
        )

    # -- search -------------------------------------------------------------

    def count(self, tokens: Sequence[str], *, topic: Optional[str] = None, decoder_ref: Optional[str] = None) -> int:
        topic, decoder = self._search_target(topic, decoder_ref)
        condition = compile_tokens(tokens, decoder)
        return self.search.count(topic, condition, decoder, fetch_size=self._fetch_size)

    def find_one(
        self,
        tokens: Sequence[str],
        *,
        topic: Optional[str] = None,
        decoder_ref: Optional[str] = None,
        output_url: Optional[str] = None,
    ) -> Optional[FetchedMessage]:
        topic, decoder = self._search_target(topic, decoder_ref)
        condition = compile_tokens(tokens, decoder)
        found = self.search.find_first(topic, condition, decoder, fetch_size=self._fetch_size)
        if found is None:
            return None
        partition, record = found
        return self.get_message(topic, partition, record.offset, decoder_ref=decoder_ref, output_url=output_url)

    def find_next(
        self,
        tokens: Sequence[str],
        *,
        topic: Optional[str] = None,
        partition: Optional[int] = None,
        decoder_ref: Optional[str] = None,
        output_url: Optional[str] = None,
    ) -> Optional[FetchedMessage]:
        cursor = self.cursor
        if topic is None and cursor is None:
            raise NoCursorError()
        topic = topic or cursor.topic
        on_cursor = cursor is not None and cursor.topic == topic
        if partition is None:
            partition = cursor.partition if on_cursor else 0
        start = cursor.next_offset if on_cursor and cursor.partition == partition else None

        decoder = self.resolve_decoder(topic, decoder_ref)
        condition = compile_tokens(tokens, decoder)
        record = self.search.find_next(topic, partition, condition, decoder, start=start, fetch_size=self._fetch_size)
        if record is None:
            return None
        return self.get_message(topic, partition, record.offset, decoder_ref=decoder_ref, output_url=output_url)

    def find(
        self,
        tokens: Sequence[str],
        output_url: str,
        *,
        topic: Optional[str] = None,
        decoder_ref: Optional[str] = None,
    ) -> int:
        topic, decoder = self._search_target(topic, decoder_ref)
        condition = compile_tokens(tokens, decoder)
        sink = self._publisher_factory(self.settings, output_url)
        try:
            return self.search.find_and_export(topic, condition, decoder, sink, fetch_size=self._fetch_size)
        finally:
            sink.close()

    # -- publishing and consumer groups --------------------------------------

    def publish(self, topic: str, key: str, message: str) -> None:
        """Publish a message; key and message accept dotted hex (``a0.ff.01``) or text."""
        encoding = self.settings.encoding
        sink = self._publisher_factory(self.settings, f"topic:{topic}")
        try:
            sink.publish(OutboundMessage(key=to_bytes(key, encoding), payload=to_bytes(message, encoding)))
        finally:
            sink.close()

    def commit_offset(self, topic: str, partition: int, group_id: str, offset: int, metadata: Optional[str] = None) -> None:
        self.broker.commit_offset(group_id, topic, partition, offset, metadata)

    def fetch_offset(self, topic: str, partition: int, group_id: str) -> Optional[int]:
        return self.broker.committed_offset(group_id, topic, partition)

    def reset_group(self, topic: str, group_id: str) -> List[TopicOffsets]:
        """Move ``group_id`` to the first available offset of every partition of ``topic``."""
        partitions = self.broker.topics().get(topic)
        if not partitions:
            raise NotFoundError(f"Topic {topic!r} not found")
        offsets = topic_offsets(self.broker, topic, min(partitions), max(partitions))
        for o in offsets:
            self.broker.commit_offset(group_id, topic, o.partition, o.start_offset)
        return offsets

    def consumers(self, *, topic_prefix: Optional[str] = None, group_prefix: Optional[str] = None) -> List[ConsumerDelta]:
        out: List[ConsumerDelta] = []
        for group_id in self.broker.consumer_groups():
            if not matches_prefix(group_prefix, group_id):
                continue
            for (topic, partition), committed in sorted(self.broker.group_offsets(group_id).items()):
                if not matches_prefix(topic_prefix, topic):
                    continue
                last = last_offset(self.broker, topic, partition)
                lag = None if last is None else max(0, last + 1 - committed)
                out.append(
                    ConsumerDelta(
                        group_id=group_id,
                        topic=topic,
                        partition=partition,
                        committed_offset=committed,
                        last_offset=last,
                        lag=lag,
                    )
                )
        return out

    # -- cluster ------------------------------------------------------------

    def topics(self, prefix: Optional[str] = None, *, detailed: bool = False) -> List[TopicItem]:
        items: List[TopicItem] = []
        for topic, partitions in sorted(self.broker.topics().items()):
            if not matches_prefix(prefix, topic):
                continue
            messages = None
            if detailed and partitions:
                messages = sum(o.messages for o in topic_offsets(self.broker, topic, min(partitions), max(partitions)))
            items.append(TopicItem(topic=topic, partitions=len(partitions), messages=messages))
        return items

    def brokers(self) -> List[BrokerDetails]:
        return self.broker.brokers()

    def statistics(self, topic: Optional[str] = None, begin: Optional[int] = None, end: Optional[int] = None) -> List[TopicOffsets]:
        if topic is None:
            topic = self.require_cursor().topic
        if begin is None:
            partitions = self.broker.topics().get(topic)
            if not partitions:
                return []
            begin, end = min(partitions), max(partitions)
        elif end is None:
            end = begin

        if self.cursor is None:
            offset = first_offset(self.broker, topic, begin)
            if offset is not None:
                self.cursors.seed(topic, begin, offset)

        return topic_offsets(self.broker, topic, begin, end)

    def inbound(self, prefix: Optional[str] = None, wait_s: Optional[int] = None) -> List[Inbound]:
        return self.inbound_tracker.inbound(prefix, wait_s)
