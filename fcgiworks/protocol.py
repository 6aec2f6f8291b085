"""FastCGI record layouts, name-value pairs and management replies."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, NamedTuple

from .endian import decode, encode

VERSION = 1
HEADER_SIZE = 8
CHUNK_SIZE = 8
MAX_CONTENT_LENGTH = 0xFFFF
BAD_FCGI_ID = 0xFFFF
KEEP_CONN = 1

_HEADER = struct.Struct(">BBHHBx")
_BEGIN_REQUEST = struct.Struct(">HB5x")
_END_REQUEST = struct.Struct(">IB3x")
_UNKNOWN_TYPE = struct.Struct(">B7x")


class RecordType(IntEnum):
    BEGIN_REQUEST = 1
    ABORT_REQUEST = 2
    END_REQUEST = 3
    PARAMS = 4
    IN = 5
    OUT = 6
    ERR = 7
    DATA = 8
    GET_VALUES = 9
    GET_VALUES_RESULT = 10
    UNKNOWN_TYPE = 11


class Role(IntEnum):
    RESPONDER = 1
    AUTHORIZER = 2
    FILTER = 3


class ProtocolStatus(IntEnum):
    REQUEST_COMPLETE = 0
    CANT_MPX_CONN = 1
    OVERLOADED = 2
    UNKNOWN_ROLE = 3


def _as_enum(enum_type, value: int):
    try:
        return enum_type(value)
    except ValueError:
        return value


@dataclass(frozen=True)
class RequestId:
    """Identifies a request by its FastCGI id and the connection it came on."""

    fcgi_id: int
    socket: Any = None


@dataclass(frozen=True)
class Header:
    """The eight byte header that starts every FastCGI record."""

    type: int
    fcgi_id: int = 0
    content_length: int = 0
    padding_length: int = 0
    version: int = VERSION

    def pack(self) -> bytes:
        return _HEADER.pack(
            self.version,
            int(self.type),
            self.fcgi_id,
            self.content_length,
            self.padding_length,
        )

    @classmethod
    def unpack(cls, data) -> "Header":
        if len(data) < HEADER_SIZE:
            raise ValueError(
                f"a record header needs {HEADER_SIZE} bytes, got {len(data)}"
            )
        version, record_type, fcgi_id, content_length, padding = _HEADER.unpack_from(
            data
        )
        return cls(
            type=_as_enum(RecordType, record_type),
            fcgi_id=fcgi_id,
            content_length=content_length,
            padding_length=padding,
            version=version,
        )


class Param(NamedTuple):
    name: bytes
    value: bytes
    end: int


def _read_length(data, pos: int):
    if pos >= len(data):
        return None
    first = data[pos]
    if first & 0x80:
        if pos + 4 > len(data):
            return None
        return decode(bytes(data[pos : pos + 4]), "I") & 0x7FFFFFFF, pos + 4
    return first, pos + 1


def process_param_header(data, offset: int = 0) -> Param | None:
    """Decode the name-value pair starting at ``offset``.

    Returns the name, the value and the offset just past the pair, or None
    when the data ends before a whole pair is present.
    """
    name_part = _read_length(data, offset)
    if name_part is None:
        return None
    name_size, pos = name_part
    value_part = _read_length(data, pos)
    if value_part is None:
        return None
    value_size, pos = value_part

    value_start = pos + name_size
    end = value_start + value_size
    if end > len(data):
        return None
    return Param(bytes(data[pos:value_start]), bytes(data[value_start:end]), end)


def _encode_length(size: int) -> bytes:
    if size > 0x7FFFFFFF:
        raise ValueError(f"length {size} is too large for a FastCGI name-value pair")
    if size < 0x80:
        return bytes((size,))
    return encode(size | 0x80000000, "I")


def _to_bytes(x) -> bytes:
    return x.encode("utf-8") if isinstance(x, str) else bytes(x)


def encode_param(name, value) -> bytes:
    """Encode a FastCGI name-value pair."""
    name_bytes = _to_bytes(name)
    value_bytes = _to_bytes(value)
    return (
        _encode_length(len(name_bytes))
        + _encode_length(len(value_bytes))
        + name_bytes
        + value_bytes
    )


def get_record_size(content_length: int) -> int:
    """Size of a whole record carrying up to ``content_length`` bytes."""
    content_length = min(content_length, MAX_CONTENT_LENGTH)
    return (content_length + HEADER_SIZE + CHUNK_SIZE - 1) // CHUNK_SIZE * CHUNK_SIZE


def management_reply(name, value) -> bytes:
    """Build a GET_VALUES_RESULT record holding one name-value pair."""
    body = encode_param(name, value)
    padding = -(HEADER_SIZE + len(body)) % CHUNK_SIZE
    header = Header(
        type=RecordType.GET_VALUES_RESULT,
        fcgi_id=0,
        content_length=len(body),
        padding_length=padding,
    )
    return header.pack() + body + bytes(padding)


MAX_CONNS_REPLY = management_reply("FCGI_MAX_CONNS", "10")
MAX_REQS_REPLY = management_reply("FCGI_MAX_REQS", "50")
MPXS_CONNS_REPLY = management_reply("FCGI_MPXS_CONNS", "1")


def parse_begin_request(data) -> tuple[Role | int, bool]:
    """Return the role and the kill flag from a BEGIN_REQUEST body."""
    if len(data) < _BEGIN_REQUEST.size:
        raise ValueError(
            f"a BEGIN_REQUEST body needs {_BEGIN_REQUEST.size} bytes, got {len(data)}"
        )
    role, flags = _BEGIN_REQUEST.unpack_from(data)
    return _as_enum(Role, role), not (flags & KEEP_CONN)


def end_request_record(
    request_id: int,
    app_status: int = 0,
    protocol_status: int = ProtocolStatus.REQUEST_COMPLETE,
) -> bytes:
    """Build an END_REQUEST record."""
    header = Header(
        type=RecordType.END_REQUEST,
        fcgi_id=request_id,
        content_length=_END_REQUEST.size,
    )
    return header.pack() + _END_REQUEST.pack(app_status, int(protocol_status))


def unknown_type_record(record_type: int) -> bytes:
    """Build an UNKNOWN_TYPE record naming ``record_type``."""
    header = Header(
        type=RecordType.UNKNOWN_TYPE,
        fcgi_id=0,
        content_length=_UNKNOWN_TYPE.size,
    )
    return header.pack() + _UNKNOWN_TYPE.pack(int(record_type))