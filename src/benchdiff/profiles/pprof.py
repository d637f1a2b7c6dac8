"""Minimal reader for pprof ``profile.proto`` payloads.

Only the fields needed to total sample values are decoded:
``Profile.sample_type`` (1), ``Profile.sample`` (2) and ``Profile.string_table`` (6).
Everything else is skipped at the wire level.
"""

import gzip
from collections.abc import Iterator
from dataclasses import dataclass, field

from ..errors import ProfileDecodeError

_GZIP_MAGIC = b"\x1f\x8b"

_WIRE_VARINT = 0
_WIRE_FIXED64 = 1
_WIRE_LEN = 2
_WIRE_FIXED32 = 5

_PROFILE_SAMPLE_TYPE = 1
_PROFILE_SAMPLE = 2
_PROFILE_STRING_TABLE = 6
_VALUE_TYPE_TYPE = 1
_VALUE_TYPE_UNIT = 2
_SAMPLE_VALUE = 2


@dataclass(frozen=True)
class SampleType:
    type: str
    unit: str


@dataclass
class Profile:
    sample_types: list[SampleType] = field(default_factory=list)
    samples: list[list[int]] = field(default_factory=list)

    def total(self, index: int) -> int:
        return sum(values[index] for values in self.samples if index < len(values))

    def totals(self) -> dict[str, int]:
        """Sum of every sample value, keyed by sample type name."""
        return {t.type: self.total(i) for i, t in enumerate(self.sample_types)}


def _read_varint(buf: bytes, pos: int) -> tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(buf):
            raise ProfileDecodeError("truncated varint")
        byte = buf[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, pos
        shift += 7
        if shift >= 70:
            raise ProfileDecodeError("varint too long")


def _to_int64(value: int) -> int:
    value &= (1 << 64) - 1
    return value - (1 << 64) if value >= 1 << 63 else value


def _iter_fields(buf: bytes) -> Iterator[tuple[int, int, int | bytes]]:
    pos = 0
    end = len(buf)
    while pos < end:
        tag, pos = _read_varint(buf, pos)
        number, wire_type = tag >> 3, tag & 0x7
        if wire_type == _WIRE_VARINT:
            value, pos = _read_varint(buf, pos)
            yield number, wire_type, value
        elif wire_type == _WIRE_LEN:
            length, pos = _read_varint(buf, pos)
            if pos + length > end:
                raise ProfileDecodeError(f"field {number} overruns buffer")
            yield number, wire_type, buf[pos : pos + length]
            pos += length
        elif wire_type == _WIRE_FIXED64:
            pos += 8
        elif wire_type == _WIRE_FIXED32:
            pos += 4
        else:
            raise ProfileDecodeError(f"unsupported wire type {wire_type} for field {number}")
        if pos > end:
            raise ProfileDecodeError("truncated message")


def _parse_value_type(buf: bytes) -> tuple[int, int]:
    type_idx = unit_idx = 0
    for number, wire_type, value in _iter_fields(buf):
        if wire_type != _WIRE_VARINT:
            continue
        if number == _VALUE_TYPE_TYPE:
            type_idx = int(value)  # type: ignore[arg-type]
        elif number == _VALUE_TYPE_UNIT:
            unit_idx = int(value)  # type: ignore[arg-type]
    return type_idx, unit_idx


def _parse_sample_values(buf: bytes) -> list[int]:
    values: list[int] = []
    for number, wire_type, value in _iter_fields(buf):
        if number != _SAMPLE_VALUE:
            continue
        if wire_type == _WIRE_VARINT:
            values.append(_to_int64(int(value)))  # type: ignore[arg-type]
        elif wire_type == _WIRE_LEN:
            packed = bytes(value)  # type: ignore[arg-type]
            pos = 0
            while pos < len(packed):
                raw, pos = _read_varint(packed, pos)
                values.append(_to_int64(raw))
    return values


def _lookup(strings: list[str], idx: int) -> str:
    if idx < 0 or idx >= len(strings):
        raise ProfileDecodeError(f"string index {idx} out of range")
    return strings[idx]


def parse_profile(data: bytes) -> Profile:
    """Decode a (possibly gzip-compressed) pprof profile.

    Raises:
        ProfileDecodeError: If the payload is not a valid profile.
    """
    if not data:
        raise ProfileDecodeError("empty profile")
    if data[:2] == _GZIP_MAGIC:
        try:
            data = gzip.decompress(data)
        except (OSError, EOFError) as exc:
            raise ProfileDecodeError(f"invalid gzip stream: {exc}") from exc

    raw_types: list[tuple[int, int]] = []
    samples: list[list[int]] = []
    strings: list[str] = []
    for number, wire_type, value in _iter_fields(data):
        if wire_type != _WIRE_LEN:
            continue
        payload = bytes(value)  # type: ignore[arg-type]
        if number == _PROFILE_SAMPLE_TYPE:
            raw_types.append(_parse_value_type(payload))
        elif number == _PROFILE_SAMPLE:
            samples.append(_parse_sample_values(payload))
        elif number == _PROFILE_STRING_TABLE:
            try:
                strings.append(payload.decode("utf-8"))
            except UnicodeDecodeError as exc:
                raise ProfileDecodeError(f"invalid string table entry: {exc}") from exc

    sample_types = [SampleType(_lookup(strings, t), _lookup(strings, u)) for t, u in raw_types]
    return Profile(sample_types=sample_types, samples=samples)
