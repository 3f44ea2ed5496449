from __future__ import annotations

import io
import json
import uuid

import pytest

from kafka_inspector.config.settings import Settings
from kafka_inspector.session import Session
from kafka_inspector.shell.console import Console
from tests.integration._helpers import create_topic, produce, wait_for_port


@pytest.mark.integration
def test_inspector_end_to_end_kafka() -> None:
    wait_for_port("localhost", 9092, timeout_s=120.0)

    topic = f"inspector_it_{uuid.uuid4().hex[:8]}"
    export = f"{topic}_hits"
    group = f"{topic}_group"
    create_topic(topic=topic, partitions=2)
    create_topic(topic=export, partitions=1)
    produce(
        topic=topic,
        messages=[(0, f"o{i}".encode(), json.dumps({"id": i, "price": i * 25}).encode()) for i in range(10)],
    )

    settings = Settings(kafka_bootstrap_servers="localhost:9092", kafka_timeout_s=15.0)
    out, err = io.StringIO(), io.StringIO()

    with Session(settings) as session:
        console = Console(session, out=out, err=err)

        assert topic in [t.topic for t in session.topics(topic)]

        assert console.execute(f"kfirst {topic} 0"), err.getvalue()
        assert session.prompt() == f"{topic}/0:0"

        for _ in range(9):
            assert console.execute("knext"), err.getvalue()
        assert session.cursor.offset == 9

        # partition 1 is empty
        assert console.execute("knext")
        assert session.cursor.offset == 9

        assert session.count(["price", ">", "100"]) == 5
        assert session.find_one(["price", ">=", "100"], topic=topic).record.offset == 4
        assert session.find_next(["price", ">=", "100"]).record.offset == 5

        assert session.find(["price", ">", "150"], f"topic:{export}", topic=topic) == 3

        session.commit_offset(topic, 0, group, 6)
        assert session.fetch_offset(topic, 0, group) == 6
        session.reset_group(topic, group)
        assert session.fetch_offset(topic, 0, group) == 0

        stats = session.statistics(topic)
        assert [(o.partition, o.messages) for o in stats] == [(0, 10), (1, 0)]

    assert err.getvalue() == ""
