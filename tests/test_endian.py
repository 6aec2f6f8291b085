import pytest

from fcgiworks.endian import decode, encode


@pytest.mark.parametrize(
    "value, fmt",
    [
        (0, "H"),
        (0xFFFF, "H"),
        (-1234, "h"),
        (0x7FFFFFFF, "I"),
        (-5, "i"),
        (2**63 + 17, "Q"),
        (-(2**40), "q"),
    ],
)
def test_integer_round_trip(value, fmt):
    assert decode(encode(value, fmt), fmt) == value


@pytest.mark.parametrize("fmt, size", [("H", 2), ("I", 4), ("Q", 8), ("d", 8)])
def test_encoded_size(fmt, size):
    assert len(encode(1, fmt)) == size


def test_float_round_trip():
    assert decode(encode(3.5, "d"), "d") == 3.5
    assert decode(encode(-0.25, "f"), "f") == -0.25


def test_most_significant_byte_first():
    assert encode(0x0102, "H") == b"\x01\x02"


def test_decode_reads_only_leading_bytes():
    data = encode(0xABCD, "H") + b"trailing"
    assert decode(data, "H") == 0xABCD


def test_decode_accepts_memoryview():
    data = memoryview(encode(99, "I"))
    assert decode(data, "I") == 99


def test_unsupported_size_rejected():
    with pytest.raises(ValueError):
        encode(1, "b")
    with pytest.raises(ValueError):
        decode(b"\x00", "B")


def test_short_data_rejected():
    with pytest.raises(ValueError):
        decode(b"\x00\x01\x02", "I")


def test_out_of_range_value_rejected():
    with pytest.raises(ValueError):
        encode(0x10000, "H")


def test_unknown_format_rejected():
    with pytest.raises(ValueError):
        encode(1, "Z")