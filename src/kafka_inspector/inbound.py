from __future__ import annotations

import logging
import math
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

from .events.models import Inbound, InboundSnapshot
from .kafka.broker import Broker, topic_offsets
from .utils import matches_prefix, now_ms

logger = logging.getLogger(__name__)


def _round_up(value: float, places: int = 1) -> float:
    scale = 10 ** places
    return math.ceil(value * scale) / scale


class InboundTracker:
    """Derives per-partition traffic from successive high-water offset samples.

    Snapshots live only for the session and are replaced wholesale on every
    sample.
    """

    def __init__(
        self,
        broker: Broker,
        *,
        default_wait_s: int = 3,
        stale_after_s: int = 1800,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._broker = broker
        self._default_wait_s = default_wait_s
        self._stale_after_s = stale_after_s
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._snapshots: Dict[Tuple[str, int], InboundSnapshot] = {}
        self._last_check: Optional[int] = None

    def snapshot(self, topic: str, partition: int) -> Optional[InboundSnapshot]:
        with self._lock:
            return self._snapshots.get((topic, partition))

    def needs_baseline(self) -> bool:
        with self._lock:
            if not self._snapshots or self._last_check is None:
                return True
            return self._clock() - self._last_check >= self._stale_after_s * 1000

    def sample(self, prefix: Optional[str] = None) -> List[Inbound]:
        """Poll end offsets once and diff them against the previous sample."""
        topics = self._broker.topics()
        offsets = []
        for topic in sorted(topics):
            partitions = topics[topic]
            if not matches_prefix(prefix, topic) or not partitions:
                continue
            offsets.extend(topic_offsets(self._broker, topic, min(partitions), max(partitions)))

        out: List[Inbound] = []
        with self._lock:
            for o in offsets:
                key = (o.topic, o.partition)
                now = self._clock()
                prev = self._snapshots.get(key)
                elapsed_s = max(1.0, (now - prev.last_check_time) / 1000.0) if prev else 1.0
                change = o.end_offset - prev.end_offset if prev else 0
                rate = _round_up(change / elapsed_s)
                self._snapshots[key] = InboundSnapshot(
                    start_offset=o.start_offset, end_offset=o.end_offset, last_check_time=now
                )
                out.append(
                    Inbound(
                        topic=o.topic,
                        partition=o.partition,
                        start_offset=o.start_offset,
                        end_offset=o.end_offset,
                        change=change,
                        rate=rate,
                        checked_at=now,
                    )
                )

        changed = [i for i in out if i.change != 0]
        changed.sort(key=lambda i: -i.change)
        return changed

    def inbound(self, prefix: Optional[str] = None, wait_s: Optional[int] = None) -> List[Inbound]:
        """Topics with new messages since the last call.

        The first call in a session (or an explicit wait time, or a baseline
        older than ``stale_after_s``) takes a throwaway sample and sleeps before
        sampling again, so there is something to diff against.
        """
        if wait_s is not None or self.needs_baseline():
            logger.debug("taking baseline inbound sample")
            self.sample()
            self._sleep(wait_s if wait_s is not None else self._default_wait_s)

        with self._lock:
            self._last_check = self._clock()
        return self.sample(prefix)
