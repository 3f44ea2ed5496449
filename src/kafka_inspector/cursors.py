from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional

from .events.models import Cursor, MessageRecord
from .utils import matches_prefix


class CursorRegistry:
    """Per-topic message cursors plus the "current" topic.

    Cursors are created or replaced when a message is retrieved and are never
    removed; the registry lives for the session only.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cursors: Dict[str, Cursor] = {}
        self._current_topic: Optional[str] = None

    def get(self, topic: str) -> Optional[Cursor]:
        with self._lock:
            return self._cursors.get(topic)

    def current(self) -> Optional[Cursor]:
        with self._lock:
            if self._current_topic is None:
                return None
            return self._cursors.get(self._current_topic)

    @property
    def current_topic(self) -> Optional[str]:
        with self._lock:
            return self._current_topic

    def set_current(self, topic: str, partition: int, record: Optional[MessageRecord], decoder: Optional[Any]) -> Optional[Cursor]:
        """Record a retrieved message as the topic's position and make the topic current.

        Without a record the existing cursor (if any) is left alone, but the
        topic still becomes current.
        """
        with self._lock:
            if record is not None:
                self._cursors[topic] = Cursor(
                    topic=topic,
                    partition=partition,
                    offset=record.offset,
                    next_offset=record.offset + 1,
                    decoder=decoder,
                )
            self._current_topic = topic
            return self._cursors.get(topic)

    def seed(self, topic: str, partition: int, offset: int) -> Cursor:
        """Create a decoder-less cursor at ``offset`` and make the topic current."""
        with self._lock:
            cursor = Cursor(topic=topic, partition=partition, offset=offset, next_offset=offset + 1)
            self._cursors[topic] = cursor
            self._current_topic = topic
            return cursor

    def switch_current(self, topic: str) -> bool:
        with self._lock:
            if topic not in self._cursors:
                return False
            self._current_topic = topic
            return True

    def list(self, prefix: Optional[str] = None) -> List[Cursor]:
        with self._lock:
            return [c for t, c in sorted(self._cursors.items()) if matches_prefix(prefix, t)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._cursors)
