from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

from ..errors import DecodeError, DecoderLookupError, UnsupportedDecoderError
from .avro import AvroDecoder

logger = logging.getLogger(__name__)


class DecoderCache:
    """Session-owned cache of decoders keyed by reference (e.g. ``file:avro/quotes.avsc``)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._decoders: Dict[str, AvroDecoder] = {}

    def lookup(self, ref: str) -> AvroDecoder:
        path = ref[len("file:"):] if ref.startswith("file:") else ref
        if not path:
            raise DecoderLookupError(f"Decoder reference {ref!r} names no schema")
        with self._lock:
            decoder = self._decoders.get(path)
            if decoder is None:
                logger.debug("Loading Avro schema %s", path)
                decoder = AvroDecoder.from_file(path)
                self._decoders[path] = decoder
            return decoder

    def clear(self) -> None:
        with self._lock:
            self._decoders.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._decoders)


def ensure_supported(decoder: Any) -> AvroDecoder:
    if not isinstance(decoder, AvroDecoder):
        raise UnsupportedDecoderError(f"Only Avro decoding is supported (got {type(decoder).__name__})")
    return decoder


def resolve(
    explicit_ref: Optional[str],
    cursor_decoder: Optional[Any],
    cache: DecoderCache,
) -> Optional[AvroDecoder]:
    """Pick the decoder for a message.

    Precedence: a decoder named in the command, then the one bound to the
    topic's cursor, then none. Unsupported decoder kinds are rejected here so
    the failure surfaces before anything is fetched.
    """
    if explicit_ref:
        return ensure_supported(cache.lookup(explicit_ref))
    if cursor_decoder is not None:
        return ensure_supported(cursor_decoder)
    return None


def decode(payload: Optional[bytes], decoder: AvroDecoder) -> Optional[Dict[str, Any]]:
    """Decode a payload; tombstones (no payload) decode to None."""
    if payload is None:
        return None
    try:
        return decoder.decode(payload)
    except DecodeError:
        raise
    except Exception as e:
        raise DecodeError(str(e)) from e
