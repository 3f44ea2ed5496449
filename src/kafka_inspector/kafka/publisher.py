from __future__ import annotations

import json
import logging
import sys
from typing import Optional, Protocol, TextIO, runtime_checkable

from ..config.settings import Settings
from ..errors import CommandSyntaxError, PublisherError
from ..events.models import OutboundMessage
from ..utils import to_text

logger = logging.getLogger(__name__)


@runtime_checkable
class Publisher(Protocol):
    def publish(self, message: OutboundMessage) -> None: ...
    def flush(self) -> None: ...
    def close(self) -> None: ...


class StdoutPublisher:
    """Writes one JSON object per line; used for the ``stdout`` output source."""

    def __init__(self, *, stream: Optional[TextIO] = None, encoding: str = "utf-8") -> None:
        self._stream = stream
        self._encoding = encoding

    def publish(self, message: OutboundMessage) -> None:
        payload = {
            "key": to_text(message.key, self._encoding),
            "message": to_text(message.payload, self._encoding),
        }
        stream = self._stream or sys.stdout
        stream.write(json.dumps(payload, ensure_ascii=False, separators=(",", ":")) + "\n")

    def flush(self) -> None:
        (self._stream or sys.stdout).flush()

    def close(self) -> None:
        self.flush()


def build_topic_publisher(settings: Settings, topic: str) -> Publisher:
    """Producer for ``topic``: confluent-kafka first, kafka-python as fallback."""
    try:
        from .confluent import ConfluentKafkaPublisher
        return ConfluentKafkaPublisher(
            bootstrap_servers=settings.kafka_bootstrap_servers,
            topic=topic,
            client_id=settings.kafka_client_id,
        )
    except Exception:
        logger.debug("confluent-kafka publisher unavailable; trying kafka-python", exc_info=True)

    from .kafka_python import KafkaPythonPublisher
    return KafkaPythonPublisher(
        bootstrap_servers=settings.kafka_bootstrap_servers,
        topic=topic,
        client_id=settings.kafka_client_id,
        timeout_s=settings.kafka_timeout_s,
    )


def publisher_for_url(settings: Settings, url: str) -> Publisher:
    """Resolve an output source URL (``topic:<name>`` or ``stdout``)."""
    if url in ("-", "stdout"):
        return StdoutPublisher(encoding=settings.encoding)
    if url.startswith("topic:"):
        topic = url[len("topic:"):]
        if not topic:
            raise CommandSyntaxError(f"Output source {url!r} names no topic")
        try:
            return build_topic_publisher(settings, topic)
        except PublisherError:
            raise
        except Exception as e:
            raise PublisherError(f"Cannot open output source {url!r}: {e}") from e
    raise CommandSyntaxError(f"Unsupported output source {url!r}; expected 'topic:<name>' or 'stdout'")
