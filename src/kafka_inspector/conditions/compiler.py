"""Condition compiler.

Turns ``field operator value [and field operator value ...]`` tokens into an
immutable predicate tree and evaluates it against decoded records or raw
payloads. Only conjunction is supported; there is no ``or`` and no grouping.
"""

from __future__ import annotations

import json
import operator as op
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple, Union

from ..errors import ConditionSyntaxError
from ..events.models import MessageRecord

_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "<": op.lt,
    "<=": op.le,
    ">": op.gt,
    ">=": op.ge,
    "==": op.eq,
    "!=": op.ne,
}

_INT = re.compile(r"^[+-]?\d+$")
_FLOAT = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$")

_MISSING = object()


@dataclass(frozen=True)
class Comparison:
    field: str
    operator: str
    literal: str
    value: Any  # literal coerced to the field's type

    def __str__(self) -> str:
        return f"{self.field} {self.operator} {self.literal}"


@dataclass(frozen=True)
class Compound:
    left: "Condition"
    right: "Condition"
    op: str = "and"

    def __str__(self) -> str:
        return f"{self.left} {self.op} {self.right}"


Condition = Union[Comparison, Compound]


def _strip_quotes(literal: str) -> Tuple[str, bool]:
    if len(literal) >= 2 and literal[0] == literal[-1] and literal[0] in "'\"":
        return literal[1:-1], True
    return literal, False


def _coerce(field: str, literal: str, field_type: Optional[str]) -> Any:
    text, quoted = _strip_quotes(literal)
    if field_type in ("int", "long"):
        if not _INT.match(text):
            raise ConditionSyntaxError(f"Field {field!r} is {field_type}; {literal!r} is not an integer")
        return int(text)
    if field_type in ("float", "double"):
        if not _FLOAT.match(text):
            raise ConditionSyntaxError(f"Field {field!r} is {field_type}; {literal!r} is not a number")
        return float(text)
    if field_type == "boolean":
        if text.lower() not in ("true", "false"):
            raise ConditionSyntaxError(f"Field {field!r} is boolean; {literal!r} is not true/false")
        return text.lower() == "true"
    if field_type in ("string", "enum", "bytes", "fixed") or quoted:
        return text

    # no type information: go by lexical form
    if _INT.match(text):
        return int(text)
    if _FLOAT.match(text):
        return float(text)
    return text


def compile_comparison(field: str, operator: str, literal: str, decoder: Optional[Any] = None) -> Comparison:
    if operator not in _OPERATORS:
        raise ConditionSyntaxError(f"Invalid operator {operator!r} near {field!r}; expected one of {', '.join(_OPERATORS)}")
    if not field or field in _OPERATORS:
        raise ConditionSyntaxError(f"Field name expected near {field!r}")
    field_type = decoder.field_type(field) if decoder is not None else None
    return Comparison(field=field, operator=operator, literal=literal, value=_coerce(field, literal, field_type))


def compile_tokens(tokens: Sequence[str], decoder: Optional[Any] = None) -> Condition:
    """Compile ``field op value [and ...]`` tokens into a single condition.

    >>> str(compile_tokens(["price", ">", "100", "and", "qty", "<", "5"]))
    'price > 100 and qty < 5'
    """
    tokens = list(tokens)
    if not tokens:
        raise ConditionSyntaxError("Condition expected (field operator value)")

    condition: Optional[Condition] = None
    i = 0
    while True:
        triple = tokens[i:i + 3]
        if len(triple) < 3:
            near = " ".join(triple) if triple else tokens[i - 1]
            raise ConditionSyntaxError(f"Incomplete expression near {near!r}")
        comparison = compile_comparison(triple[0], triple[1], triple[2], decoder)
        condition = comparison if condition is None else Compound(condition, comparison)
        i += 3
        if i >= len(tokens):
            return condition
        if tokens[i].lower() != "and":
            raise ConditionSyntaxError(f"Invalid expression near {tokens[i]!r}")
        i += 1


def _lookup(record: Mapping[str, Any], path: str) -> Any:
    value: Any = record
    for part in path.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return _MISSING
        value = value[part]
    return value


def raw_view(payload: Optional[bytes], key: Optional[bytes] = None) -> Dict[str, Any]:
    """Field view of an undecoded message.

    JSON object payloads expose their fields; ``key`` and ``payload`` are
    available as text unless the JSON already defines them.
    """
    view: Dict[str, Any] = {}
    if payload:
        try:
            obj = json.loads(payload)
        except (UnicodeDecodeError, ValueError):
            obj = None
        if isinstance(obj, dict):
            view.update(obj)
    view.setdefault("payload", payload.decode("utf-8", "replace") if payload is not None else None)
    view.setdefault("key", key.decode("utf-8", "replace") if key is not None else None)
    return view


def _normalize(actual: Any, expected: Any, literal: str) -> Tuple[Any, Any]:
    if isinstance(actual, (bytes, bytearray)):
        actual = bytes(actual).decode("utf-8", "replace")

    if isinstance(expected, bool):
        if isinstance(actual, str) and actual.lower() in ("true", "false"):
            actual = actual.lower() == "true"
        return actual, expected

    if isinstance(expected, (int, float)):
        if isinstance(actual, bool):
            return actual, expected
        if isinstance(actual, (int, float)):
            return actual, expected
        if isinstance(actual, str):
            s = actual.strip()
            if _INT.match(s):
                return int(s), expected
            if _FLOAT.match(s):
                return float(s), expected
            return actual, _strip_quotes(literal)[0]
        return actual, expected

    if isinstance(expected, str) and actual is not None and not isinstance(actual, str):
        return str(actual), expected
    return actual, expected


def _evaluate_comparison(c: Comparison, record: Mapping[str, Any]) -> bool:
    actual = _lookup(record, c.field)
    if actual is _MISSING or actual is None:
        return c.operator == "!="
    a, b = _normalize(actual, c.value, c.literal)
    try:
        return bool(_OPERATORS[c.operator](a, b))
    except TypeError:
        return c.operator == "!="


def evaluate(condition: Condition, message: Union[Mapping[str, Any], bytes, MessageRecord, None]) -> bool:
    """Evaluate a compiled condition against a decoded record or a raw message."""
    if isinstance(message, MessageRecord):
        record: Mapping[str, Any] = raw_view(message.payload, message.key)
    elif isinstance(message, (bytes, bytearray)):
        record = raw_view(bytes(message))
    elif message is None:
        record = {}
    else:
        record = message
    return _evaluate(condition, record)


def _evaluate(condition: Condition, record: Mapping[str, Any]) -> bool:
    if isinstance(condition, Compound):
        return _evaluate(condition.left, record) and _evaluate(condition.right, record)
    if isinstance(condition, Comparison):
        return _evaluate_comparison(condition, record)
    raise TypeError(f"Not a condition: {condition!r}")
