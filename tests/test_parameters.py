import struct

import pytest

from fcgiworks.parameters import (
    TEXT_OID,
    NumericArray,
    TextArray,
    decode_text,
    encode_text,
)


def header_fields(data):
    return struct.unpack_from(">5i", data)


def numeric_elements(data, fmt, count):
    size = struct.calcsize(">" + fmt)
    values = []
    pos = 20
    for _ in range(count):
        (length,) = struct.unpack_from(">i", data, pos)
        assert length == size
        values.append(struct.unpack_from(">" + fmt, data, pos + 4)[0])
        pos += 4 + size
    assert pos == len(data)
    return values


def test_integer_array_header():
    array = NumericArray([1, 2, 3], "integer")
    ndim, has_null, oid, dim, lbound = header_fields(bytes(array))
    assert (ndim, has_null, dim, lbound) == (1, 0, 3, 1)
    assert oid == array.oid == 23


@pytest.mark.parametrize(
    "kind,fmt,values",
    [
        ("smallint", "h", [-5, 0, 32767]),
        ("integer", "i", [7, -1]),
        ("bigint", "q", [2**40, -(2**40)]),
        ("real", "f", [1.5, -0.25]),
        ("double_precision", "d", [3.125, 1e100]),
    ],
)
def test_numeric_round_trip(kind, fmt, values):
    array = NumericArray(values, kind)
    assert len(array) == len(values)
    assert numeric_elements(bytes(array), fmt, len(values)) == values


def test_numeric_empty():
    array = NumericArray([], "bigint")
    assert len(array) == 0
    assert header_fields(bytes(array))[3] == 0
    assert len(bytes(array)) == 20


def test_numeric_unknown_kind():
    with pytest.raises(ValueError):
        NumericArray([1], "complex")


def test_numeric_out_of_range():
    with pytest.raises(ValueError):
        NumericArray([70000], "smallint")


def test_text_array_items():
    values = ["alpha", "", "животное", "インターネット"]
    array = TextArray(values)
    assert len(array) == 4
    assert [array[i] for i in range(4)] == values
    assert array[-1] == values[-1]
    assert list(array) == values


def test_text_array_header_and_layout():
    array = TextArray(["ab", "c"])
    data = bytes(array)
    ndim, has_null, oid, dim, lbound = header_fields(data)
    assert (ndim, has_null, oid, dim, lbound) == (1, 0, TEXT_OID, 2, 1)
    assert data[20:] == b"\x00\x00\x00\x02ab\x00\x00\x00\x01c"


def test_text_array_accepts_bytes():
    array = TextArray([b"raw", "text"])
    assert array[0] == "raw"
    assert array[1] == "text"


def test_text_array_index_error():
    array = TextArray(["one"])
    with pytest.raises(IndexError):
        array[1]
    with pytest.raises(IndexError):
        array[-2]
    assert array[0] == "one"
    assert array[-1] == "one"
    assert len(array) == 1


def test_text_round_trip():
    text = "Él está con un niño"
    assert decode_text(encode_text(text)) == text


def test_text_conversion_failures():
    assert encode_text("bad \udc80 surrogate") == b""
    assert decode_text(b"\xff\xfe") == ""