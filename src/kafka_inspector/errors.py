from __future__ import annotations


class InspectorError(Exception):
    """Base error."""


class CommandSyntaxError(InspectorError):
    """Raised when command arguments are malformed."""


class ConditionSyntaxError(CommandSyntaxError):
    """Raised when a condition expression cannot be compiled."""


class NoCursorError(InspectorError):
    """Raised when no topic was given and no cursor exists."""

    def __init__(self, message: str = "No topic/partition specified and no cursor exists") -> None:
        super().__init__(message)


class NotFoundError(InspectorError):
    """Raised when no message or offset exists at the requested position."""


class DecoderLookupError(InspectorError):
    """Raised when a decoder reference cannot be resolved."""


class UnsupportedDecoderError(InspectorError):
    """Raised when a decoder is not of the structured-record (Avro) kind."""


class DecodeError(InspectorError):
    """Raised when a payload does not conform to the decoder's schema."""


class BrokerError(InspectorError):
    """Raised when the broker access layer fails."""


class PublisherError(InspectorError):
    """Raised when a publisher cannot be initialized."""
