"""Big-endian packing of fixed-size integers and floats."""

from __future__ import annotations

import struct

_ALLOWED_SIZES = frozenset({2, 4, 8})


def _codec(fmt: str) -> struct.Struct:
    if len(fmt) != 1:
        raise ValueError(f"format must be a single struct code, got {fmt!r}")
    try:
        codec = struct.Struct(">" + fmt)
    except struct.error as exc:
        raise ValueError(f"unknown format {fmt!r}") from exc
    if codec.size not in _ALLOWED_SIZES:
        raise ValueError(
            f"format {fmt!r} has size {codec.size}; only sizes 2, 4 or 8 are allowed"
        )
    return codec


def encode(value, fmt: str) -> bytes:
    """Return ``value`` in big-endian form using the struct code ``fmt``."""
    codec = _codec(fmt)
    try:
        return codec.pack(value)
    except struct.error as exc:
        raise ValueError(str(exc)) from exc


def decode(data, fmt: str):
    """Read a big-endian value of type ``fmt`` from the start of ``data``."""
    codec = _codec(fmt)
    if len(data) < codec.size:
        raise ValueError(
            f"need {codec.size} bytes to decode {fmt!r}, got {len(data)}"
        )
    return codec.unpack_from(data)[0]