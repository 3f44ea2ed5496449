from __future__ import annotations

from datetime import datetime

import pytest

from kafka_inspector.errors import CommandSyntaxError
from kafka_inspector.utils import (
    is_dotted_hex,
    matches_prefix,
    parse_delta,
    parse_dotted_hex,
    parse_instant,
    parse_int,
    to_bytes,
    to_dotted_hex,
    to_text,
)


def test_dotted_hex() -> None:
    assert is_dotted_hex("a0.00.11.ff")
    assert not is_dotted_hex("a0")
    assert not is_dotted_hex("hello.world")
    assert parse_dotted_hex("a0.00.11.FF") == b"\xa0\x00\x11\xff"
    assert to_dotted_hex(b"\xa0\x00\x11\xff") == "a0.00.11.ff"

    with pytest.raises(CommandSyntaxError):
        parse_dotted_hex("zz.00")


def test_to_bytes_accepts_hex_or_text() -> None:
    assert to_bytes("de.ad.be.ef") == b"\xde\xad\xbe\xef"
    assert to_bytes("hello") == b"hello"


def test_to_text_falls_back_to_hex_for_binary() -> None:
    assert to_text(None) is None
    assert to_text(b"plain") == "plain"
    assert to_text(b"\xff\xfe") == "ff.fe"


def test_parse_instant_epoch_millis() -> None:
    assert parse_instant("1700000000000") == 1700000000000


def test_parse_instant_local_iso_seconds() -> None:
    expected = int(datetime(2016, 5, 1, 12, 30, 0).timestamp() * 1000)
    assert parse_instant("2016-05-01T12:30:00") == expected


@pytest.mark.parametrize("value", ["yesterday", "2016-05-01", "2016-05-01 12:30:00"])
def test_parse_instant_rejects_other_formats(value) -> None:
    with pytest.raises(CommandSyntaxError):
        parse_instant(value)


def test_parse_int_and_delta() -> None:
    assert parse_int("offset", "12") == 12
    assert parse_delta("+10") == 10
    assert parse_delta("3") == 3

    with pytest.raises(CommandSyntaxError) as ei:
        parse_int("offset", "twelve")
    assert "offset" in str(ei.value)


def test_matches_prefix() -> None:
    assert matches_prefix(None, "orders")
    assert matches_prefix("ord", "orders")
    assert not matches_prefix("ers", "orders")
