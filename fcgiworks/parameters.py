"""Binary SQL parameter encodings for text and one-dimensional arrays."""

from __future__ import annotations

import struct
from dataclasses import dataclass

from .endian import decode, encode
from .log import Level, log

_SIZE_FMT = "i"
_SIZE_BYTES = struct.calcsize(">" + _SIZE_FMT)
_HEADER_FIELDS = 5

TEXT_OID = 25


@dataclass(frozen=True)
class _Kind:
    fmt: str
    oid: int

    @property
    def size(self) -> int:
        return struct.calcsize(">" + self.fmt)


KINDS = {
    "smallint": _Kind("h", 21),
    "integer": _Kind("i", 23),
    "bigint": _Kind("q", 20),
    "real": _Kind("f", 700),
    "double precision": _Kind("d", 701),
}


def _lookup_kind(kind: str) -> _Kind:
    key = str(kind).strip().lower().replace("_", " ")
    try:
        return KINDS[key]
    except KeyError:
        raise ValueError(f"unknown numeric array kind {kind!r}") from None


def _array_header(element_oid: int, count: int) -> bytes:
    # ndim, has-null flag, element type, dimension, lower bound
    return b"".join(encode(field, _SIZE_FMT) for field in (1, 0, element_oid, count, 1))


def encode_text(value: str) -> bytes:
    """UTF-8 bytes of ``value``; empty bytes if it cannot be encoded."""
    try:
        return value.encode("utf-8")
    except UnicodeEncodeError:
        log(Level.WARNING, "Error in code conversion to utf8 in SQL parameter")
        return b""


def decode_text(data) -> str:
    """Text held in the UTF-8 ``data``; empty text if it cannot be decoded."""
    try:
        return bytes(data).decode("utf-8")
    except UnicodeDecodeError:
        log(Level.WARNING, "Error in code conversion from utf8 in SQL parameter")
        return ""


class NumericArray:
    """A one-dimensional array of numbers in the binary array format."""

    def __init__(self, values, kind: str = "integer"):
        self._kind = _lookup_kind(kind)
        self._values = tuple(values)
        length = encode(self._kind.size, _SIZE_FMT)
        self._data = _array_header(self._kind.oid, len(self._values)) + b"".join(
            length + encode(value, self._kind.fmt) for value in self._values
        )

    @property
    def oid(self) -> int:
        """Type identifier of the array's elements."""
        return self._kind.oid

    def __getitem__(self, index):
        return self._values[index]

    def __bytes__(self) -> bytes:
        return self._data

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"NumericArray({list(self._values)!r})"


class TextArray:
    """A one-dimensional array of text in the binary array format."""

    def __init__(self, values):
        encoded = [
            encode_text(value) if isinstance(value, str) else bytes(value)
            for value in values
        ]
        self._count = len(encoded)
        self._data = _array_header(TEXT_OID, self._count) + b"".join(
            encode(len(item), _SIZE_FMT) + item for item in encoded
        )

    @property
    def oid(self) -> int:
        """Type identifier of the array's elements."""
        return TEXT_OID

    def _items(self):
        pos = _HEADER_FIELDS * _SIZE_BYTES
        while pos < len(self._data):
            length = decode(self._data[pos : pos + _SIZE_BYTES], _SIZE_FMT)
            pos += _SIZE_BYTES
            yield self._data[pos : pos + length]
            pos += length

    def __getitem__(self, index: int) -> str:
        if index < 0:
            index += self._count
        if not 0 <= index < self._count:
            raise IndexError("text array index out of range")
        for position, item in enumerate(self._items()):
            if position == index:
                return decode_text(item)
        raise IndexError("text array index out of range")

    def __iter__(self):
        return (decode_text(item) for item in self._items())

    def __bytes__(self) -> bytes:
        return self._data

    def __len__(self) -> int:
        return self._count

    def __repr__(self) -> str:
        return f"TextArray({list(self)!r})"