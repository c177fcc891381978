"""Query result values and their JSON encoding."""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Union

_TIMESTAMP_RE = re.compile(r"[+-]?\d+(\.\d*)?")
_LABEL_NAME_RE = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")


class ValueType(str, Enum):
    """Kinds of value a query can return."""

    SCALAR = "scalar"
    VECTOR = "vector"
    MATRIX = "matrix"
    STRING = "string"


def format_timestamp(ms: int) -> str:
    """Render a millisecond timestamp as seconds with up to three decimals."""
    sign = "-" if ms < 0 else ""
    seconds, fraction = divmod(abs(int(ms)), 1000)
    if fraction:
        return f"{sign}{seconds}.{fraction:03d}"
    return f"{sign}{seconds}"


def parse_timestamp(text: str | int | float | Decimal) -> int:
    """Parse seconds (text or number) into milliseconds, dropping finer digits."""
    if isinstance(text, bool):
        raise ValueError(f"invalid timestamp {text!r}")
    if isinstance(text, int):
        return text * 1000
    if isinstance(text, float):
        if not math.isfinite(text):
            raise ValueError(f"invalid timestamp {text!r}")
        raw: Any = repr(text)
    elif isinstance(text, Decimal):
        raw = text
    elif isinstance(text, (str, bytes)):
        raw = text.decode() if isinstance(text, bytes) else text
        if not _TIMESTAMP_RE.fullmatch(raw):
            raise ValueError(f"invalid timestamp {raw!r}")
    else:
        raise ValueError(f"invalid timestamp {text!r}")
    try:
        number = Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"invalid timestamp {text!r}") from None
    if not number.is_finite():
        raise ValueError(f"invalid timestamp {text!r}")
    return int((number * 1000).to_integral_value(rounding=ROUND_DOWN))


def format_sample_value(value: float) -> str:
    """Render a sample value in the shortest form that reads back exactly."""
    v = float(value)
    if math.isnan(v):
        return "NaN"
    if math.isinf(v):
        return "+Inf" if v > 0 else "-Inf"
    number = Decimal(repr(v)).normalize()
    magnitude = abs(v)
    if magnitude != 0 and (magnitude < 1e-6 or magnitude >= 1e21):
        sign, digit_tuple, exponent = number.as_tuple()
        digits = "".join(str(d) for d in digit_tuple)
        mantissa = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
        exp = exponent + len(digits) - 1
        return f"{'-' if sign else ''}{mantissa}e{'+' if exp >= 0 else '-'}{abs(exp):02d}"
    return format(number, "f")


def _parse_sample_value(text: Any) -> float:
    if not isinstance(text, str):
        raise ValueError("SamplePair value must be a string")
    if text != text.strip() or "_" in text:
        raise ValueError(f"invalid sample value {text!r}")
    try:
        return float(text)
    except ValueError:
        raise ValueError(f"invalid sample value {text!r}") from None


def _load(data: Any) -> Any:
    if isinstance(data, (str, bytes, bytearray)):
        return json.loads(data, parse_float=Decimal)
    return data


def _decode_pair(data: Any) -> tuple[int, float]:
    if (
        not isinstance(data, Sequence)
        or isinstance(data, (str, bytes, bytearray))
        or not data
    ):
        raise ValueError("SamplePair must be [timestamp, value]")
    if len(data) < 2:
        raise ValueError("SamplePair missing value")
    if len(data) > 2:
        raise ValueError("SamplePair has too many values, must be [timestamp, value]")
    return parse_timestamp(data[0]), _parse_sample_value(data[1])


def _labels(data: Any) -> dict[str, str]:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError("labels must be an object")
    labels: dict[str, str] = {}
    for name, value in data.items():
        if not isinstance(name, str) or not _LABEL_NAME_RE.fullmatch(name):
            raise ValueError(f"{name!r} is not a valid label name")
        if not isinstance(value, str):
            raise ValueError(f"value of label {name!r} must be a string")
        labels[name] = value
    return labels


def _mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"{what} must be an object")
    return data


@dataclass(frozen=True)
class SamplePair:
    """One value at one timestamp (milliseconds)."""

    timestamp: int
    value: float

    def to_json(self) -> str:
        """Encode as ``[seconds,"value"]``."""
        return f'[{format_timestamp(self.timestamp)},"{format_sample_value(self.value)}"]'

    @classmethod
    def from_json(cls, data: Any) -> SamplePair:
        """Decode from JSON text or an already decoded ``[seconds, "value"]``."""
        timestamp, value = _decode_pair(_load(data))
        return cls(timestamp, value)


@dataclass(frozen=True)
class Scalar:
    """A scalar query result."""

    value: float
    timestamp: int

    @classmethod
    def from_json(cls, data: Any) -> Scalar:
        timestamp, value = _decode_pair(_load(data))
        return cls(value, timestamp)


@dataclass(frozen=True)
class Sample:
    """One element of an instant vector."""

    metric: dict[str, str]
    value: float
    timestamp: int

    @classmethod
    def from_json(cls, data: Any) -> Sample:
        obj = _mapping(_load(data), "sample")
        if "value" not in obj:
            raise ValueError("sample has no value")
        timestamp, value = _decode_pair(obj["value"])
        return cls(_labels(obj.get("metric")), value, timestamp)


@dataclass(frozen=True)
class SampleStream:
    """One series of a range vector."""

    metric: dict[str, str]
    values: list[SamplePair] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Any) -> SampleStream:
        obj = _mapping(_load(data), "sample stream")
        raw_values = obj.get("values") or []
        if not isinstance(raw_values, Sequence) or isinstance(raw_values, (str, bytes)):
            raise ValueError("sample stream values must be an array")
        return cls(
            _labels(obj.get("metric")),
            [SamplePair.from_json(v) for v in raw_values],
        )


Value = Union[Scalar, "list[Sample]", "list[SampleStream]"]


def _items(result: Any) -> list[Any]:
    if result is None:
        return []
    if not isinstance(result, Sequence) or isinstance(result, (str, bytes)):
        raise ValueError("result must be an array")
    return list(result)


def decode_value(result_type: str | ValueType, result: Any) -> Value:
    """Decode a query result according to its ``resultType``."""
    try:
        kind = ValueType(result_type)
    except ValueError:
        raise ValueError(f'unexpected value type "{result_type}"') from None
    result = _load(result)
    if kind is ValueType.SCALAR:
        return Scalar.from_json(result)
    if kind is ValueType.VECTOR:
        return [Sample.from_json(item) for item in _items(result)]
    if kind is ValueType.MATRIX:
        return [SampleStream.from_json(item) for item in _items(result)]
    raise ValueError(f'unexpected value type "{kind.value}"')