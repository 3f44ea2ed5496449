from __future__ import annotations

from ..errors import BrokerError, PublisherError
from ..events.models import OutboundMessage


class KafkaPythonPublisher:
    def __init__(
        self,
        *,
        bootstrap_servers: str,
        topic: str,
        client_id: str = "kafka-inspector",
        acks: str = "all",
        timeout_s: float = 10.0,
    ) -> None:
        try:
            from kafka import KafkaProducer  # type: ignore
        except Exception as e:
            raise PublisherError("kafka-python is not installed. Install kafka-inspector[kafka-python].") from e

        self._topic = topic
        self._timeout_s = timeout_s
        self._producer = KafkaProducer(
            bootstrap_servers=bootstrap_servers.split(","),
            client_id=client_id,
            acks=acks,
            key_serializer=lambda b: b,
            value_serializer=lambda b: b,
        )

    @property
    def topic(self) -> str:
        return self._topic

    def publish(self, message: OutboundMessage) -> None:
        try:
            self._producer.send(self._topic, key=message.key, value=message.payload)
        except Exception as e:
            raise BrokerError(f"Failed to produce message to {self._topic!r}: {e}") from e

    def flush(self) -> None:
        self._producer.flush(timeout=self._timeout_s)

    def close(self) -> None:
        self.flush()
        self._producer.close()
