from __future__ import annotations

import logging
from typing import Optional

from .errors import NoCursorError
from .events.models import Cursor, Position
from .kafka.broker import Broker, first_offset, last_offset, partition_range

logger = logging.getLogger(__name__)


class NavigationEngine:
    """Computes next/previous message positions relative to a cursor.

    Running off either end of a partition wraps to the neighbouring partition
    (modulo the topic's partition range). Only one partition boundary is
    crossed per call: if the neighbour is empty the result is None rather than
    a search for the next non-empty partition.
    """

    def __init__(self, broker: Broker) -> None:
        self._broker = broker

    def advance(self, cursor: Optional[Cursor], delta: int = 0) -> Optional[Position]:
        if cursor is None:
            raise NoCursorError()

        candidate = cursor.next_offset + delta
        last = last_offset(self._broker, cursor.topic, cursor.partition)
        if last is not None and candidate > last:
            bounds = partition_range(self._broker, cursor.topic)
            if bounds is None:
                return None
            _, hi = bounds
            target = (cursor.partition + 1) % (hi + 1)
            offset = first_offset(self._broker, cursor.topic, target)
            logger.debug("advance wrapped %s/%d -> %d (offset %s)", cursor.topic, cursor.partition, target, offset)
            return None if offset is None else Position(cursor.topic, target, offset)
        return Position(cursor.topic, cursor.partition, candidate)

    def retreat(self, cursor: Optional[Cursor], delta: int = 1) -> Optional[Position]:
        if cursor is None:
            raise NoCursorError()

        candidate = max(0, cursor.offset - delta)
        first = first_offset(self._broker, cursor.topic, cursor.partition)
        if first is not None and candidate < first:
            bounds = partition_range(self._broker, cursor.topic)
            if bounds is None:
                return None
            lo, hi = bounds
            target = hi if cursor.partition <= lo else (cursor.partition - 1) % (hi + 1)
            offset = last_offset(self._broker, cursor.topic, target)
            logger.debug("retreat wrapped %s/%d -> %d (offset %s)", cursor.topic, cursor.partition, target, offset)
            return None if offset is None else Position(cursor.topic, target, offset)
        return Position(cursor.topic, cursor.partition, candidate)
